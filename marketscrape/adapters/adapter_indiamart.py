from typing import List

from bs4 import BeautifulSoup

from ..images import collect_gallery, pick_best_image
from ..pricing import extract_moq
from ..schema import IndiaMartDraft, ListingSummary, Supplier
from .adapter_generic import (
    CardLayout,
    attempt,
    first_attr,
    first_text,
    cards_from,
    labeled_pairs,
    make_soup,
    max_present,
    moq_from_regions,
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
    visible_text,
)

# IndiaMART product photos only ever come from imimg.com
HOST_PATTERN = r"imimg\.com"

TITLE_SELECTORS = ["h1", ".prd-title", ".productTitle", 'meta[property="og:title"]', "title"]
PRICE_SELECTORS = [".p_price", ".price", ".pdp-price", ".r_price", ".prc"]
MOQ_SELECTORS = [".moq", ".min-order", ".order-qty", ".mq"]
GALLERY_SELECTORS = ["#prdimgdiv", ".prd_img", ".pdp-img", ".img-container"]

CARD_LAYOUT = CardLayout(
    platform="INDIAMART",
    card_selectors=[".prod_box", ".prod-card", ".lst-product", ".product-card", ".prd", ".p_card", ".card"],
    link_pattern=r"product|detail|proddetail",
    title_selectors=[".prd-name", ".product-name", "h2", "h3"],
    price_selectors=[".pdp-price", ".price", ".prd-prc", ".r_price"],
    moq_selectors=[".moq", ".min-order", ".order-qty"],
    store_selectors=[".cmp-name", ".cmp-title", ".company-name"],
    image_selectors=[".prd-img", ".img", ".pic"],
)

PRICE_STRATEGIES = [
    ("fixed-price", price_from_selectors(PRICE_SELECTORS, "fixed-price")),
    ("text-scan", price_from_text_scan),
    ("json", price_from_json_blobs),
    ("meta", price_from_meta),
    ("body", price_from_body),
]


def extract_attributes(soup: BeautifulSoup):
    attrs = []
    for scope in soup.select(".specs, .dtlsec1, .pdp-specs"):
        attrs.extend(table_pairs(scope))
        attrs.extend(labeled_pairs(scope, "li", ".label", ".value"))
    return split_packaging(attrs)


def _gallery_scope(soup: BeautifulSoup):
    for sel in GALLERY_SELECTORS:
        scope = soup.select_one(sel)
        if scope is not None:
            return scope
    return soup


def extract_indiamart(html: str, url: str) -> IndiaMartDraft:
    soup = make_soup(html)
    draft = IndiaMartDraft(source_url=url)

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
        or attempt("moq:body", lambda: extract_moq(visible_text(soup)))
    )
    draft.attributes, draft.packaging = attempt("attributes", extract_attributes, soup, default=([], []))
    draft.supplier = attempt(
        "supplier",
        lambda: Supplier(
            name=first_text(soup, [".cmp-name", ".company-name", ".seller-name"]) or None,
            location=first_text(soup, [".loc", ".cmp-loc", ".location"]) or None,
            profile_link=first_attr(soup, ["a.cmp-name", ".cmp-name a", ".company-name a"], "href", url) or None,
        ),
        default=Supplier(),
    )
    draft.sold_count = max_present(
        attempt("sold:text", sold_from_text_nodes, soup),
        attempt("sold:scripts", sold_from_scripts, soup),
    )

    draft.gallery = attempt("gallery", collect_gallery, soup, url, HOST_PATTERN, default=[])
    draft.hero_image = attempt("hero", lambda: pick_best_image(_gallery_scope(soup), url)) or None
    if not draft.hero_image and draft.gallery:
        draft.hero_image = draft.gallery[0]
    return draft


def extract_cards(html: str, page_url: str) -> List[ListingSummary]:
    soup = make_soup(html)
    rows = attempt("cards", cards_from, soup, page_url, CARD_LAYOUT, default=[])
    return [ListingSummary(**row) for row in rows]
