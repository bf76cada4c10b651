"""
Tests for merging parsed details with listing fallbacks.
"""
import itertools

from conftest import ALIBABA_URL

from marketscrape.normalizer import (
    FALLBACK_PACKAGING,
    FALLBACK_PROTECTIONS,
    OK,
    PARTIAL,
    WEAK,
    is_complete,
    is_weak,
    normalize,
    scrape_status,
    with_fallback_content,
)
from marketscrape.pricing import OPEN
from marketscrape.schema import ListingFallback, Pair, PriceTier, ProductDetail, Supplier
from marketscrape.scrape import parse_detail
from marketscrape.textutil import clean_title

EMPTY_PAGE = "<html><body><p>Nothing here</p></body></html>"


def complete_detail(**overrides):
    fields = dict(
        title="Bottle",
        price_text="US$1",
        price_tiers=[PriceTier(range_label="10 - 99", min=10, max=99, price="US$1")],
        moq_text="10 PCS",
        attributes=[Pair(label="Material", value="Steel")],
        packaging=[Pair(label="Selling Units", value="Single item")],
        supplier=Supplier(name="Cup Co."),
        hero_image="https://s.alicdn.com/@sc04/kf/H1.jpg_960x960q80.jpg",
        protections=["Refund policy: yes"],
        source_url=ALIBABA_URL,
    )
    fields.update(overrides)
    return ProductDetail(**fields)


class TestNormalize:
    """Field-by-field merge rules."""

    def test_empty_page_with_listing_price(self):
        """Title from the URL, price from the listing, one synthesized tier."""
        parsed = parse_detail(EMPTY_PAGE, ALIBABA_URL)
        out = normalize(parsed, ListingFallback(price_raw="US$ 5 - 8"))
        assert out.title == "Stainless Steel Water Bottle"
        assert out.price_text == "US$ 5 - 8"
        assert len(out.price_tiers) == 1
        assert out.price_tiers[0].max == OPEN
        assert "normalize:synth-tier" in out.debug
        assert not is_weak(out)

    def test_none_draft(self):
        """A failed parse still yields a full record shape."""
        out = normalize(None, ListingFallback(title="Tote Bag", price_min=2, price_max=3, currency="USD"))
        assert out.title == "Tote Bag"
        assert out.price_text == "US$2 - US$3"
        assert out.moq == 1
        assert out.attributes == []
        assert out.supplier is None

    def test_draft_title_wins_over_fallback(self):
        """Parsed values take precedence over listing values."""
        out = normalize(complete_detail(), ListingFallback(title="Other", price_raw="US$9"))
        assert out.title == "Bottle"
        assert out.price_text == "US$1"

    def test_moq_number_and_tier_minimum(self):
        """MOQ text becomes an integer and seeds the synthesized tier."""
        out = normalize(ProductDetail(title="x", price_text="US$2", moq_text="1,200 PCS"))
        assert out.moq == 1200
        assert out.price_tiers[0].min == 1200

    def test_sold_and_hero_fallbacks(self):
        """Sold count and hero fall back to the listing when the page has neither."""
        fb = ListingFallback(orders_raw="340 orders", image="https://example.com/a.jpg")
        out = normalize(ProductDetail(title="x", gallery=["https://example.com/g.jpg"]), fb)
        assert out.sold_count == 340
        assert out.hero_image == "https://example.com/g.jpg"
        assert normalize(ProductDetail(title="x"), fb).hero_image == "https://example.com/a.jpg"

    def test_idempotent(self):
        """Normalizing a normalized record changes nothing."""
        fb = ListingFallback(price_raw="US$ 5 - 8", orders_raw="12 sold")
        once = normalize(parse_detail(EMPTY_PAGE, ALIBABA_URL), fb)
        twice = normalize(once, fb)
        assert twice == once

    def test_idempotent_with_stacked_title_suffixes(self):
        """Marketplace suffixes, ids and .html in any order come off in one pass."""
        pieces = ["", " | Alibaba.com", " - Made-in-China.com", "_1600123456789", ".html"]
        for tail in itertools.product(pieces, repeat=3):
            raw = "Widget" + "".join(tail)
            assert clean_title(raw) == "Widget", raw
            once = normalize(ProductDetail(title=raw, price_text="US$1"))
            assert once.title == "Widget"
            assert normalize(once) == once

    def test_source_url_argument(self):
        """A detail without a source URL takes the caller's."""
        out = normalize(None, None, source_url=ALIBABA_URL)
        assert out.source_url == ALIBABA_URL
        assert out.title == "Stainless Steel Water Bottle"


class TestStatus:
    """Weak, partial and complete classification."""

    def test_weak_cases(self):
        """Missing title or missing price both make a record weak."""
        assert is_weak(None)
        assert is_weak(ProductDetail(price_text="US$1"))
        assert is_weak(ProductDetail(title="  ", price_text="US$1"))
        assert is_weak(ProductDetail(title="Bottle"))
        assert not is_weak(ProductDetail(title="Bottle", price_text="US$1"))

    def test_adding_fields_never_makes_weak(self):
        """Filling more fields keeps a non-weak record non-weak."""
        base = ProductDetail(title="Bottle", price_text="US$1")
        richer = base.model_copy(update={"gallery": ["https://example.com/a.jpg"], "sold_count": 4})
        assert not is_weak(base)
        assert not is_weak(richer)

    def test_scrape_status(self):
        """Three-way status."""
        assert scrape_status(None) == WEAK
        assert scrape_status(ProductDetail(title="Bottle", price_text="US$1")) == PARTIAL
        assert scrape_status(complete_detail()) == OK

    def test_complete_needs_specs(self):
        """Without attributes or packaging a record is not complete."""
        assert is_complete(complete_detail())
        assert not is_complete(complete_detail(attributes=[], packaging=[]))
        assert is_complete(complete_detail(packaging=[], attributes=[Pair(label=f"k{i}", value="v") for i in range(3)]))


class TestFallbackContent:
    """Presentational stand-ins for incomplete records."""

    def test_complete_record_unchanged(self):
        """Complete records are returned as-is."""
        detail = normalize(complete_detail())
        assert with_fallback_content(detail) is detail

    def test_fills_only_empty_blocks(self):
        """Scraped blocks are kept; empty ones are filled and named."""
        detail = normalize(complete_detail(protections=[], supplier=None))
        out = with_fallback_content(detail)
        assert out.attributes == detail.attributes
        assert out.packaging == detail.packaging
        assert out.protections == FALLBACK_PROTECTIONS
        assert out.synthesized == ["protections"]

    def test_listing_derived_attributes(self):
        """Attributes are built from the listing and platform."""
        detail = normalize(ProductDetail(title="Bottle", moq_text="200 PCS", source_url=ALIBABA_URL))
        out = with_fallback_content(detail, ListingFallback(price_raw="US$ 5 - 8", orders_raw="1,000+ orders"))
        assert out.attributes == [
            Pair(label="Price Range", value="US$ 5 - 8"),
            Pair(label="Source Platform", value="Alibaba.com"),
            Pair(label="Minimum Order", value="200 pieces"),
            Pair(label="Orders", value="1,000+ orders"),
        ]
        assert out.packaging == FALLBACK_PACKAGING
        assert out.synthesized == ["attributes", "packaging", "protections"]

    def test_scraped_detail_untouched(self):
        """The input record is not modified."""
        detail = normalize(ProductDetail(title="Bottle"))
        with_fallback_content(detail)
        assert detail.packaging == []
        assert detail.synthesized == []
