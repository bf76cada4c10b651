"""
Pytest fixtures shared by the scraper test modules.
"""
from datetime import datetime, timedelta, timezone

import pytest

from marketscrape.cache import DetailCache
from marketscrape.config import get_settings
from marketscrape.store import InMemoryListingStore

ALIBABA_URL = "https://www.alibaba.com/product-detail/Stainless-Steel-Water-Bottle_1600123456789.html"
MIC_URL = "https://hzzhongda.en.made-in-china.com/product/abcDEFghiJKL/China-Bamboo-Cutting-Board.html"
INDIAMART_URL = "https://www.indiamart.com/proddetail/cotton-tote-bag-2851234567.html"

ALIBABA_HTML = """
<html>
<head>
  <title>Stainless Steel Water Bottle - Buy Water Bottle Product on Alibaba.com</title>
  <meta property="og:image" content="https://s.alicdn.com/@sc04/kf/Hog.jpg_350x350.jpg">
</head>
<body>
  <h1 class="product-title">Stainless Steel Water Bottle 500ml</h1>
  <div data-testid="range-price">
    <div class="price-item"><div>50 - 499 pieces</div><div>US$8.89</div></div>
    <div class="price-item"><div>500 - 999 pieces</div><div>US$8.28</div></div>
    <div class="price-item"><div>&gt;= 1000 pieces</div><div>US$6.95</div></div>
  </div>
  <div data-testid="fortifiedSample">Sample price: US$12.00</div>
  <div data-testid="media-image">
    <img src="https://s.alicdn.com/@img/imgextra/badge.png">
    <img src="https://s.alicdn.com/@sc04/kf/H1234567890abcdef.png">
    <img src="https://s.alicdn.com/@sc04/kf/H99.jpg_960x960q80.jpg">
    <img src="https://s.alicdn.com/@sc04/kf/H42.jpg_120x120.jpg">
  </div>
  <div data-module-name="module_attribute">
    <h3>Key attributes</h3>
    <div class="id-grid id-grid-cols-2">
      <div class="id-grid-cols-[2fr_3fr]">
        <div class="id-text-sm id-p-4 id-bg-gray">Material</div>
        <div class="id-text-sm id-p-4">Stainless Steel</div>
      </div>
      <div class="id-grid-cols-[2fr_3fr]">
        <div class="id-text-sm id-p-4 id-bg-gray">Capacity</div>
        <div class="id-text-sm id-p-4">500ml</div>
      </div>
      <div class="id-grid-cols-[2fr_3fr]">
        <div class="id-text-sm id-p-4 id-bg-gray">Customization options</div>
        <div class="id-text-sm id-p-4">Logo</div>
      </div>
    </div>
    <h3>Packaging and delivery</h3>
    <div class="id-grid id-grid-cols-2">
      <div class="id-grid-cols-[2fr_3fr]">
        <div class="id-text-sm id-p-4 id-bg-gray">Selling Units</div>
        <div class="id-text-sm id-p-4">Single item</div>
      </div>
    </div>
  </div>
  <div class="company-name">Yongkang Best Drinkware Co., Ltd.</div>
  <div class="business-type">Manufacturer</div>
  <div class="company-location">Zhejiang, China</div>
  <div class="detail-product-comment">
    <span class="detail-review-item detail-star">4.8</span>
    <span class="detail-review-item detail-review">56 reviews</span>
    <span class="detail-review-item">1,203 sold</span>
  </div>
  <div class="module_ta_plus">
    <div class="id-flex id-flex-col id-gap-2"><h4>Secure payments</h4><p></p></div>
    <div class="id-flex id-flex-col id-gap-2"><h4>Refund policy</h4><p>Claim a refund if your order is missing.</p></div>
  </div>
  <script>window.detailData = {"tradeCount": "980"};</script>
</body>
</html>
"""

MIC_HTML = """
<html>
<head><title>China Bamboo Cutting Board - China Kitchen Board, Chopping Board | Made-in-China.com</title></head>
<body>
  <h1 class="sr-proMainInfo-baseInfoH1">Bamboo Cutting Board with Juice Groove</h1>
  <div class="sr-proMainInfo-baseInfo-propertyPrice">
    <div class="swiper-slide-div">US$ 2.10 500-999 Pieces</div>
    <div class="swiper-slide-div">US$ 1.85 1,000+ Pieces</div>
  </div>
  <div class="sr-proMainInfo-baseInfo-propertyAttr">
    <table>
      <tr><th>Min. Order:</th><td>500 Pieces</td></tr>
      <tr><th>Type:</th><td>Cutting Board</td></tr>
    </table>
  </div>
  <div class="basic-info-list">
    <div class="bsc-item"><div class="bac-item-label">Material</div><div class="bac-item-value">Bamboo</div></div>
    <div class="bsc-item"><div class="bac-item-label">Transport Package</div><div class="bac-item-value">Carton</div></div>
  </div>
  <div class="sr-comInfo-title"><span class="title-txt"><a href="/company/hz.html">Hangzhou Zhongda Housewares Co., Ltd.</a></span></div>
  <div class="info-businessType">Manufacturer/Factory</div>
  <span class="txt-year">Member since 2015</span>
  <div class="sr-proMainInfo-slide-pageInside">
    <img src="https://www.micstatic.com/common/img/space.png">
    <img data-original="//image.made-in-china.com/2f0j00abcd/Bamboo-Cutting-Board.webp">
  </div>
</body>
</html>
"""

INDIAMART_HTML = """
<html>
<head><title>Cotton Tote Bag at Rs 45/piece | IndiaMART</title></head>
<body>
  <h1>Printed Cotton Tote Bag</h1>
  <div class="p_price">₹ 45 / Piece</div>
  <div class="moq">Minimum Order Quantity: 100 Piece</div>
  <div class="specs">
    <table>
      <tr><td>Material</td><td>Cotton</td></tr>
      <tr><td>Color</td><td>Natural</td></tr>
      <tr><td>Packaging Type</td><td>Poly bag</td></tr>
    </table>
  </div>
  <div class="cmp-name">Shree Bags</div>
  <div class="cmp-loc">Kolkata, West Bengal</div>
  <div id="prdimgdiv">
    <img src="https://5.imimg.com/data5/SELLER/Default/2023/1/AB/CD/tote-bag-250x250.jpg">
  </div>
</body>
</html>
"""

ALIBABA_SEARCH_HTML = """
<html><body>
  <div class="organic-offer">
    <a href="//www.alibaba.com/product-detail/Bottle-A_1600000000001.html?spm=a2700" title="Insulated Bottle A"></a>
    <div class="pic"><img src="//s.alicdn.com/@sc04/kf/Ha1.jpg_300x300.jpg"></div>
    <div class="price">US$3.20 - 4.10</div>
    <div class="min-order">Min. order: 200 pieces</div>
    <div class="company-name">Cup Co.</div>
    <span>1,200 sold</span>
  </div>
  <div class="organic-offer">
    <a href="https://www.alibaba.com/product-detail/Bottle-B_1600000000002.html">Bottle B</a>
    <div class="pic"><img src="https://s.alicdn.com/@sc04/kf/Hb2.jpg_350x350.jpg"></div>
    <div class="price">US$5.00</div>
  </div>
  <div class="organic-offer"><span>Sponsored</span></div>
</body></html>
"""


class FakeClock:
    """Settable clock for cache TTL tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class StubFetcher:
    """Async fetcher returning canned HTML and counting calls."""

    def __init__(self, pages=None, default=None):
        self.pages = dict(pages or {})
        self.default = default
        self.calls = []

    async def __call__(self, url):
        self.calls.append(url)
        return self.pages.get(url, self.default)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Deterministic settings for every test."""
    for var in ("SUPABASE_URL", "SUPABASE_SERVICE_KEY", "SCRAPE_HEADLESS", "SCRAPE_CONCURRENCY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("IMAGE_CACHE_DIR", str(tmp_path / "cache"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return DetailCache(memo_ttl=timedelta(minutes=5), freshness=timedelta(hours=24), clock=clock)


@pytest.fixture
def store():
    return InMemoryListingStore()


@pytest.fixture
def alibaba_html():
    return ALIBABA_HTML


@pytest.fixture
def mic_html():
    return MIC_HTML


@pytest.fixture
def indiamart_html():
    return INDIAMART_HTML
