"""
Tests for image candidate collection, scoring and CDN upgrades.
"""
from bs4 import BeautifulSoup

from marketscrape.images import (
    best_candidate,
    collect_candidates,
    collect_gallery,
    filter_candidates,
    is_bad_image_url,
    pick_best_image,
    score_image,
    upgrade_image_url,
)

BADGE = "https://s.alicdn.com/@img/imgextra/badge.png"
HASHED_PNG = "https://s.alicdn.com/@sc04/kf/H1234567890abcdef.png"
BIG_JPG = "https://s.alicdn.com/@sc04/kf/H99.jpg_960x960q80.jpg"


def soup_of(html):
    return BeautifulSoup(html, "lxml")


class TestPickBestImage:
    """End-to-end selection over a scope."""

    def test_large_jpeg_beats_badge_and_hashed_png(self):
        """The explicit 960px JPEG wins over badge and unsized hashed PNG."""
        html = f'<div><img src="{BADGE}"><img src="{HASHED_PNG}"><img src="{BIG_JPG}"></div>'
        assert pick_best_image(soup_of(html).div) == BIG_JPG

    def test_deterministic_with_first_seen_tie_break(self):
        """Equal scores resolve to the first candidate, every time."""
        a = "https://s.alicdn.com/@sc04/kf/Ha.jpg_960x960q80.jpg"
        b = "https://s.alicdn.com/@sc04/kf/Hb.jpg_960x960q80.jpg"
        scope = soup_of(f'<div><img src="{a}"><img src="{b}"></div>').div
        picks = {pick_best_image(scope) for _ in range(5)}
        assert picks == {a}

    def test_lazy_attributes_and_srcset(self):
        """Lazy-load attributes and srcset entries are collected."""
        html = (
            '<div><img src="data:image/gif;base64,R0lGOD" data-src="//sc04.alicdn.com/kf/Hlazy.jpg_350x350.jpg">'
            '<picture><source srcset="https://s.alicdn.com/@sc04/kf/Hset.jpg_220x220.jpg 1x"></picture></div>'
        )
        urls = [c.url for c in collect_candidates(soup_of(html).div)]
        assert "https://sc04.alicdn.com/kf/Hlazy.jpg_350x350.jpg" in urls
        assert "https://s.alicdn.com/@sc04/kf/Hset.jpg_220x220.jpg" in urls
        assert not any(u.startswith("data:") for u in urls)

    def test_json_data_attribute_and_background_style(self):
        """Image URLs inside data-* JSON and inline styles are candidates."""
        html = (
            '<div data-images=\'["https://5.imimg.com/data5/a/b-500x500.jpg"]\'>'
            '<span style="background-image:url(\'https://image.made-in-china.com/2f0j00x/y.jpg\')"></span></div>'
        )
        urls = [c.url for c in collect_candidates(soup_of(html).div)]
        assert urls == ["https://5.imimg.com/data5/a/b-500x500.jpg", "https://image.made-in-china.com/2f0j00x/y.jpg"]

    def test_relative_urls_resolved_against_base(self):
        """Relative src values resolve against the page URL."""
        html = '<div><img src="/images/p1.jpg"></div>'
        assert pick_best_image(soup_of(html).div, "http://shop.example.com/item/1") == "https://shop.example.com/images/p1.jpg"

    def test_empty_scope(self):
        """No candidates gives an empty string."""
        assert pick_best_image(soup_of("<div>no images</div>").div) == ""


class TestFiltering:
    """Hard rejects and the unsized PNG rule."""

    def test_bad_urls(self):
        """Badges, logo assets, sprites, svgs and tiny icons are rejected."""
        assert is_bad_image_url(BADGE)
        assert is_bad_image_url("https://www.micstatic.com/common/logo/site.jpg")
        assert is_bad_image_url("https://5.imimg.com/data5/company_logo_500x500.jpg")
        assert is_bad_image_url("https://img.alicdn.com/tfs/TB1-sprite.png_50x50.png")
        assert is_bad_image_url("https://s.alicdn.com/@sc04/kf/O1CN01tps-96-96.png")
        assert is_bad_image_url("https://example.com/icon.svg")
        assert is_bad_image_url("https://s.alicdn.com/@sc04/kf/Hsmall.jpg_40x40.jpg")
        assert not is_bad_image_url(BIG_JPG)

    def test_logo_in_title_slug_kept(self):
        """Title words in a file-name slug are not asset tokens."""
        url = "https://image.made-in-china.com/2f0j00abcd/Custom-Logo-Bamboo-Cutting-Board.webp"
        assert not is_bad_image_url(url)
        assert pick_best_image(soup_of(f'<div><img src="{url}"></div>').div) == url

    def test_hashed_png_is_last_resort(self):
        """An unsized hashed PNG is scored down, not rejected, and wins when it is all there is."""
        assert not is_bad_image_url(HASHED_PNG)
        picked = pick_best_image(soup_of(f'<div><img src="{HASHED_PNG}"></div>').div)
        assert picked == HASHED_PNG + "_960x960.png"

    def test_unsized_png_kept_only_as_last_resort(self):
        """An unsized PNG survives filtering only when nothing else does."""
        png = "https://www.micstatic.com/athena/img/product.png"
        jpg = "https://image.made-in-china.com/2f0j00x/board.jpg"
        both = collect_candidates(soup_of(f'<div><img src="{png}"><img src="{jpg}"></div>').div)
        assert [c.url for c in filter_candidates(both)] == [jpg]
        alone = collect_candidates(soup_of(f'<div><img src="{png}"></div>').div)
        assert [c.url for c in filter_candidates(alone)] == [png]

    def test_certificate_alt_skipped(self):
        """Certificate images are not product photos."""
        html = '<div><img alt="CE certificate" src="https://s.alicdn.com/@sc04/kf/Hcert.jpg_960x960q80.jpg"></div>'
        assert collect_candidates(soup_of(html).div) == []


class TestScoring:
    """Relative orderings the scorer has to keep."""

    def test_jpeg_with_size_beats_unsized_png(self):
        """Explicit large JPEG outranks an unsized PNG on the same CDN."""
        assert score_image(BIG_JPG) > score_image(HASHED_PNG)
        assert score_image(BIG_JPG) > score_image("https://s.alicdn.com/@sc04/kf/Habc.png")

    def test_small_side_penalised(self):
        """Thumbnails under 180px lose to large images."""
        small = "https://s.alicdn.com/@sc04/kf/H42.jpg_120x120.jpg"
        assert score_image(BIG_JPG) > score_image(small)

    def test_placeholder_sinks(self):
        """Placeholder assets score below anything real."""
        assert score_image("https://example.com/img/placeholder.jpg") < score_image("https://example.com/p.png")

    def test_element_dimensions_used_when_url_has_none(self):
        """width/height attributes feed the size score."""
        assert score_image("https://example.com/a.jpg", 800, 800) > score_image("https://example.com/a.jpg")

    def test_best_candidate_none_for_empty(self):
        """Nothing to choose from."""
        assert best_candidate([]) is None


class TestGallery:
    """Gallery collection keeps document order and host filtering."""

    def test_host_filter_and_placeholder_dropped(self, mic_html):
        """Only marketplace-hosted, non-placeholder images make the gallery."""
        soup = soup_of(mic_html)
        gallery = collect_gallery(soup, "https://x.made-in-china.com/", r"made-in-china|micstatic")
        assert gallery == ["https://image.made-in-china.com/2f0j00abcd/Bamboo-Cutting-Board.webp"]

    def test_limit(self):
        """Gallery is capped."""
        imgs = "".join(f'<img src="https://s.alicdn.com/@sc04/kf/H{i}.jpg_960x960q80.jpg">' for i in range(15))
        assert len(collect_gallery(soup_of(f"<div>{imgs}</div>").div, limit=10)) == 10


class TestUpgrade:
    """Pure string rewrites of CDN size variants."""

    def test_alicdn_small_suffix_upgraded(self):
        """Small alicdn variants become 960px JPEG variants on s.alicdn.com."""
        url = "https://sc04.alicdn.com/kf/Habc.jpg_350x350.jpg"
        assert upgrade_image_url(url) == "https://s.alicdn.com/@sc04/kf/Habc.jpg_960x960q80.jpg"

    def test_alicdn_png_keeps_png(self):
        """PNG variants stay PNG."""
        url = "https://s.alicdn.com/@sc04/kf/Habc.png_100x100.png"
        assert upgrade_image_url(url) == "https://s.alicdn.com/@sc04/kf/Habc.png_960x960.png"

    def test_alicdn_suffix_appended(self):
        """A bare alicdn image gets a size suffix."""
        url = "https://s.alicdn.com/@sc04/kf/Habc.jpg"
        assert upgrade_image_url(url) == "https://s.alicdn.com/@sc04/kf/Habc.jpg_960x960q80.jpg"

    def test_large_alicdn_untouched(self):
        """Already-large variants are left alone."""
        assert upgrade_image_url(BIG_JPG) == BIG_JPG

    def test_indiamart_size(self):
        """IndiaMART -WxH suffixes become 1000x1000."""
        url = "https://5.imimg.com/data5/SELLER/Default/2023/1/AB/CD/bag-250x250.jpg"
        assert upgrade_image_url(url) == "https://5.imimg.com/data5/SELLER/Default/2023/1/AB/CD/bag-1000x1000.jpg"

    def test_protocol_and_query(self):
        """Protocol-relative and http URLs become https; the query survives."""
        assert upgrade_image_url("//example.com/a.jpg?x=1") == "https://example.com/a.jpg?x=1"
        assert upgrade_image_url("http://example.com/a.jpg") == "https://example.com/a.jpg"
