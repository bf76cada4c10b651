from typing import List, Optional

from bs4 import BeautifulSoup

from ..images import collect_gallery, pick_best_image
from ..pricing import extract_moq, extract_tiers, moq_from_tiers
from ..schema import ListingSummary, MadeInChinaDraft, Supplier
from .adapter_generic import (
    CardLayout,
    PriceHit,
    attempt,
    block_moq,
    cards_from,
    first_attr,
    first_text,
    labeled_pairs,
    make_soup,
    max_present,
    moq_from_regions,
    node_text,
    price_from_body,
    price_from_json_blobs,
    price_from_meta,
    price_from_selectors,
    price_from_text_scan,
    run_price_chain,
    sold_from_scripts,
    sold_from_text_nodes,
    split_packaging,
    table_pairs,
    tiers_from_items,
    visible_text,
)

HOST_PATTERN = r"made-in-china|micstatic"

TITLE_SELECTORS = [".sr-proMainInfo-baseInfoH1", "h1", 'meta[property="og:title"]', "title"]
PRICE_BLOCK = ".sr-proMainInfo-baseInfo-propertyPrice"
MOQ_SELECTORS = [".sr-proMainInfo-baseInfo-propertyAttr", ".baseInfo-price-related", PRICE_BLOCK]
GALLERY_SELECTORS = [".sr-proMainInfo-slide-pageInside", ".J-proSlide-content", "ul.sr-proMainInfo-slide-pageUl"]

CARD_LAYOUT = CardLayout(
    platform="MADE_IN_CHINA",
    card_selectors=[".prod-info", ".product-item", ".list-node", ".prod-list .item", ".search-list .item"],
    link_pattern=r"/product/|made-in-china\.com/.+\.html",
    title_selectors=[".product-name", "h2", "h3", ".title"],
    price_selectors=[".price", ".price-info", '[class*="price"]'],
    moq_selectors=[".info", ".moq", '[class*="min-order"]'],
    store_selectors=[".company-name", ".compnay-name", ".supplier-name"],
    image_selectors=[".prod-image", ".img-wrap", ".pic"],
)


def price_from_price_block(soup: BeautifulSoup) -> Optional[PriceHit]:
    block = soup.select_one(PRICE_BLOCK)
    if block is None:
        return None
    tiers = (
        tiers_from_items(block.select(".only-one-priceNum-tr td"))
        or tiers_from_items(block.select(".swiper-slide-div"))
        or extract_tiers(block.get_text("\n"))
    )
    return PriceHit(tiers=tiers, moq_text=block_moq(node_text(block), tiers), tag="price-block") if tiers else None


PRICE_STRATEGIES = [
    ("price-block", price_from_price_block),
    ("fixed-price", price_from_selectors([PRICE_BLOCK, ".only-one-priceNum", ".price"], "fixed-price")),
    ("text-scan", price_from_text_scan),
    ("json", price_from_json_blobs),
    ("meta", price_from_meta),
    ("body", price_from_body),
]


def extract_attributes(soup: BeautifulSoup):
    attrs = []
    for scope in soup.select(".sr-proMainInfo-baseInfo-propertyAttr"):
        attrs.extend(table_pairs(scope))
    for scope in soup.select(".sr-layout-block .basic-info-list, .basic-info-list"):
        attrs.extend(labeled_pairs(scope, ".bsc-item", ".bac-item-label, .bsc-item-label", ".bac-item-value, .bsc-item-value"))
    for scope in soup.select(".sr-attribute, .detail-table"):
        attrs.extend(table_pairs(scope))
    return split_packaging(attrs)


def extract_supplier(soup: BeautifulSoup, url: str) -> Supplier:
    badges = [node_text(el) for el in soup.select(".sign-item, .verified-item")]
    return Supplier(
        name=first_text(soup, [".sr-comInfo-title .title-txt a", ".sr-comInfo-title a", ".company-name"]) or None,
        type=first_text(soup, [".info-businessType", ".business-type"]) or None,
        location=first_text(soup, [".company-location .gold-content .tip-con", ".company-location", ".J-location"]) or None,
        logo=first_attr(soup, [".sr-com-logo img", ".company-logo img"], "src", url) or None,
        profile_link=first_attr(soup, [".sr-comInfo-title .title-txt a", ".sr-comInfo-title a"], "href", url) or None,
        badges=[b for b in badges if b],
    )


def _gallery_scope(soup: BeautifulSoup):
    for sel in GALLERY_SELECTORS:
        scope = soup.select_one(sel)
        if scope is not None:
            return scope
    return soup


def extract_madeinchina(html: str, url: str) -> MadeInChinaDraft:
    soup = make_soup(html)
    draft = MadeInChinaDraft(source_url=url)

    draft.title = attempt("title", first_text, soup, TITLE_SELECTORS, default="")

    hit = attempt("price", run_price_chain, soup, PRICE_STRATEGIES)
    if hit is not None:
        draft.price_text = hit.price_text
        draft.price_tiers = hit.tiers
        draft.price_source = hit.tag
        draft.debug.append(f"price:{hit.tag}")

    draft.moq_text = (
        attempt("moq:regions", moq_from_regions, soup, MOQ_SELECTORS)
        or (hit.moq_text if hit else None)
        or moq_from_tiers(draft.price_tiers)
        or attempt("moq:body", lambda: extract_moq(visible_text(soup)))
    )

    draft.attributes, draft.packaging = attempt("attributes", extract_attributes, soup, default=([], []))
    draft.supplier = attempt("supplier", extract_supplier, soup, url, default=Supplier())
    draft.member_since = attempt("member-since", first_text, soup, [".txt-year"]) or None
    draft.sold_count = max_present(
        attempt("sold:text", sold_from_text_nodes, soup),
        attempt("sold:scripts", sold_from_scripts, soup),
    )

    draft.gallery = attempt("gallery", collect_gallery, _gallery_scope(soup), url, HOST_PATTERN, default=[])
    draft.hero_image = attempt(
        "hero", lambda: pick_best_image(_gallery_scope(soup), url) or pick_best_image(soup, url)
    ) or None
    if not draft.hero_image and draft.gallery:
        draft.hero_image = draft.gallery[0]
    return draft


def extract_cards(html: str, page_url: str) -> List[ListingSummary]:
    soup = make_soup(html)
    rows = attempt("cards", cards_from, soup, page_url, CARD_LAYOUT, default=[])
    return [ListingSummary(**row) for row in rows]
