import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from ..images import collect_gallery, pick_best_image
from ..pricing import extract_moq, extract_price_like, extract_tiers, moq_from_tiers
from ..schema import AlibabaDraft, ListingSummary, Rating, Supplier, Variation
from .adapter_generic import (
    CardLayout,
    PriceHit,
    attempt,
    block_moq,
    cards_from,
    dl_pairs,
    first_attr,
    first_text,
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
    variations_from_scripts,
    variations_from_thumbs,
    visible_text,
)

HOST_PATTERN = r"alicdn|alibaba|aliimg"

TITLE_SELECTORS = ["h1.product-title", "h1.title", "h1", 'meta[property="og:title"]', "title"]
LADDER_SELECTORS = ['[data-testid="range-price"]', '[data-testid="ladder-price"]']
FIXED_PRICE_SELECTORS = [
    '[data-testid="promotion-fixed-price"]',
    '[data-testid="presentation-fixed-price"]',
    '[data-testid="product-price"]',
]
PRICE_MODULE_SELECTORS = [".module_price", *LADDER_SELECTORS, '[data-testid="product-price"]']
MOQ_SELECTORS = [
    ".min-order",
    ".moq",
    ".order-quantity",
    ".sku-min-order",
    ".min-order-quantity",
    '[data-testid="range-price"]',
    '[data-testid="ladder-price"]',
    ".specification",
    ".key-attributes",
    ".trade-details",
]
GALLERY_SELECTORS = ['[data-testid="media-image"]', '[data-module-name="module_pic"]', ".main-image", ".image-list"]
ATTRIBUTE_MODULE = '[data-module-name="module_attribute"], [data-testid="module-attribute"], .module_attribute'
GRID_ROW = '[class*="id-grid-cols-[2fr_3fr]"]'

CARD_LAYOUT = CardLayout(
    platform="ALIBABA",
    card_selectors=[
        ".organic-offer", ".list-item", ".J-offer-wrapper", ".offer-card", ".offer-item",
        "[data-offer-id]", '[data-role="offer"]', ".seb-card", ".m-gallery-product-item", ".offer-wrapper",
    ],
    link_pattern=r"/product-detail/|/product/|/offer/|alibaba\.com/product",
    price_selectors=['[class*="price"]', ".elements-offer-price", ".seb__price"],
    moq_selectors=['[class*="min-order"]', ".seb__min-order", ".min-order"],
    store_selectors=[".company-name", ".supplier-name", ".store-name", ".seb-supplier__seller-name"],
    image_selectors=[".pic", ".image", ".gallery", ".media", ".main-image", ".offer-image", ".seb-img", ".img-wrapper"],
)


# ---------------------------------------------------------------------------- #
# Price strategies
# ---------------------------------------------------------------------------- #
def price_from_ladder(soup: BeautifulSoup) -> Optional[PriceHit]:
    for sel in LADDER_SELECTORS:
        block = soup.select_one(sel)
        if block is None:
            continue
        tiers = tiers_from_items(block.select(".price-item")) or extract_tiers(block.get_text("\n"))
        price = ""
        for el in block.find_all(["strong", "span", "div"]):
            price = extract_price_like(node_text(el))
            if price:
                break
        hit = PriceHit(price_text=price, tiers=tiers, moq_text=block_moq(node_text(block), tiers), tag=sel.split('"')[1])
        if hit.ok():
            return hit
    return None


def price_from_legacy_rows(soup: BeautifulSoup) -> Optional[PriceHit]:
    cells = soup.select(".only-one-priceNum-tr td") or soup.select(".only-one-priceNum-tr")
    tiers = tiers_from_items(cells)
    if not tiers:
        price = extract_price_like(" ".join(node_text(c) for c in cells))
        return PriceHit(price_text=price, tag="legacy-rows") if price else None
    return PriceHit(tiers=tiers, tag="legacy-rows")


def price_from_module_scan(soup: BeautifulSoup) -> Optional[PriceHit]:
    return price_from_text_scan(soup, PRICE_MODULE_SELECTORS) or price_from_text_scan(soup)


PRICE_STRATEGIES = [
    ("range-price", price_from_ladder),
    ("fixed-price", price_from_selectors(FIXED_PRICE_SELECTORS, "fixed-price")),
    ("legacy-rows", price_from_legacy_rows),
    ("text-scan", price_from_module_scan),
    ("json", price_from_json_blobs),
    ("meta", price_from_meta),
    ("body", price_from_body),
]


# ---------------------------------------------------------------------------- #
# Field extractors
# ---------------------------------------------------------------------------- #
def _grid_rows(grid: Tag) -> List[Tuple[str, str]]:
    rows = []
    for row in grid.select(GRID_ROW):
        cells = row.select(".id-text-sm.id-p-4")
        if not cells:
            continue
        shaded = [c for c in cells if any("id-bg" in cls for cls in c.get("class", []))]
        left = shaded[0] if shaded else cells[0]
        rest = [c for c in cells if c is not left]
        if not rest:
            continue
        name, value = node_text(left), node_text(rest[0])
        if name and value:
            rows.append((name, value))
    return rows


def _is_grid(tag) -> bool:
    classes = tag.get("class", []) if isinstance(tag, Tag) else []
    return "id-grid" in classes and "id-grid-cols-2" in classes


def extract_attribute_module(soup: BeautifulSoup) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    """Key attributes plus the packaging grid that follows a "Packaging" heading."""
    module = soup.select_one(ATTRIBUTE_MODULE)
    if module is None:
        return [], []
    grids = module.select(".id-grid.id-grid-cols-2")
    attrs = _grid_rows(grids[0]) if grids else []
    packs: List[Tuple[str, str]] = []
    header = next((h for h in module.find_all("h3") if re.search("packaging", h.get_text(), re.I)), None)
    if header is not None:
        pack_grid = header.find_next_sibling(_is_grid) or header.find_next(_is_grid)
        if pack_grid is not None:
            packs = _grid_rows(pack_grid)
    elif len(grids) > 1:
        packs = _grid_rows(grids[1])
    if not attrs and not packs:
        for grid in grids:
            attrs.extend(_grid_rows(grid))
    return attrs, packs


def extract_attributes(soup: BeautifulSoup) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    attrs, packs = extract_attribute_module(soup)
    for sel in (".product-attributes", ".attr-list", ".sr-attribute"):
        for scope in soup.select(sel):
            attrs.extend(table_pairs(scope))
    attrs.extend(dl_pairs(soup))
    if not attrs:
        attrs.extend(table_pairs(soup))
    if not packs:
        attrs, packs = split_packaging(attrs)
    return attrs, packs


def extract_supplier(soup: BeautifulSoup, url: str) -> Supplier:
    badges = [node_text(el) for el in soup.select(".supplier-badge, .verified-badge, .company-tag")]
    return Supplier(
        name=first_text(soup, [".company-name", ".store-name", ".seller-name", ".company-name-wrapper a", ".title-txt a"]) or None,
        type=first_text(soup, [".business-type", ".info-businessType", ".supplier-type", ".company-type"]) or None,
        location=first_text(soup, [".company-location", ".supplier-address", ".company-address", ".location"]) or None,
        logo=first_attr(soup, [".company-logo img", ".shop-logo img", ".sr-com-logo img"], "src", url) or None,
        profile_link=first_attr(soup, ["a.company-name", "a.store-name", ".company-name-wrapper a"], "href", url) or None,
        badges=[b for b in badges if b],
    )


def extract_review_cluster(soup: BeautifulSoup) -> Tuple[Optional[Rating], Optional[int]]:
    cluster = soup.select_one(".detail-product-comment")
    if cluster is None:
        return None, None
    value = count = sold = None
    star = node_text(cluster.select_one(".detail-review-item.detail-star"))
    m = re.search(r"(\d+(?:\.\d+)?)", star)
    if m:
        value = float(m.group(1))
    review = node_text(cluster.select_one(".detail-review-item.detail-review")) or star
    m = re.search(r"(\d[\d,]*)\s*review", review, re.I)
    if m:
        count = int(m.group(1).replace(",", ""))
    for item in cluster.select(".detail-review-item"):
        m = re.search(r"(\d[\d,]*)\s*sold", node_text(item), re.I)
        if m:
            sold = int(m.group(1).replace(",", ""))
    return Rating(value=value, count=count), sold


def extract_protections(soup: BeautifulSoup) -> List[Tuple[str, str]]:
    out = []
    root = soup.select_one(".module_ta_plus")
    if root is not None:
        for block in root.select(".id-flex.id-flex-col.id-gap-2"):
            header, body = node_text(block.find("h4")), node_text(block.find("p"))
            if header or body:
                out.append((header, body))
    for widget in soup.select('[data-widget="tradeAssurance"]'):
        for card in widget.select("li, .item, .card"):
            header = first_text(card, ["h3", ".title", ".name"])
            body = first_text(card, ["p", ".desc", ".content"])
            if header or body:
                out.append((header, body))
    return out


def extract_variations(soup: BeautifulSoup, url: str, hero: Optional[str]) -> List[Variation]:
    thumbs = soup.select('[data-testid="sku-list"] [data-testid="sku-list-item"] img') or soup.select('[data-testid="sku-list"] img')
    variations = variations_from_thumbs(thumbs, url) or variations_from_scripts(soup, HOST_PATTERN)
    selected = soup.select_one('[data-testid="last-sku-first-item"]')
    if selected is not None:
        label = node_text(selected.find("span")) or node_text(selected)
        if label and not any(v.label.lower() == label.lower() for v in variations):
            variations.insert(0, Variation(label=label, image_url=hero))
    return variations


def _gallery_scope(soup: BeautifulSoup):
    for sel in GALLERY_SELECTORS:
        scope = soup.select_one(sel)
        if scope is not None:
            return scope
    return soup


# ---------------------------------------------------------------------------- #
# Entry points
# ---------------------------------------------------------------------------- #
def extract_alibaba(html: str, url: str) -> AlibabaDraft:
    soup = make_soup(html)
    draft = AlibabaDraft(source_url=url)

    draft.title = attempt("title", first_text, soup, TITLE_SELECTORS, default="")

    hit = attempt("price", run_price_chain, soup, PRICE_STRATEGIES)
    if hit is not None:
        draft.price_text = hit.price_text
        draft.price_tiers = hit.tiers
        draft.price_source = hit.tag
        draft.debug.append(f"price:{hit.tag}")

    draft.moq_text = (
        (hit.moq_text if hit else None)
        or attempt("moq:regions", moq_from_regions, soup, MOQ_SELECTORS)
        or moq_from_tiers(draft.price_tiers)
        or attempt("moq:body", lambda: extract_moq(visible_text(soup)))
    )
    draft.sample_price = attempt(
        "sample", lambda: extract_price_like(node_text(soup.select_one('[data-testid="fortifiedSample"]')))
    ) or None

    attrs, packs = attempt("attributes", extract_attributes, soup, default=([], []))
    draft.attributes, draft.packaging = attrs, packs

    draft.supplier = attempt("supplier", extract_supplier, soup, url, default=Supplier())

    rating, cluster_sold = attempt("reviews", extract_review_cluster, soup, default=(None, None))
    draft.rating = rating
    draft.sold_count = max_present(
        cluster_sold,
        attempt("sold:text", sold_from_text_nodes, soup),
        attempt("sold:scripts", sold_from_scripts, soup),
    )

    draft.gallery = attempt("gallery", collect_gallery, soup, url, HOST_PATTERN, default=[])
    draft.hero_image = attempt(
        "hero", lambda: pick_best_image(_gallery_scope(soup), url) or pick_best_image(soup, url)
    ) or None
    if not draft.hero_image and draft.gallery:
        draft.hero_image = draft.gallery[0]

    draft.variations = attempt("variations", extract_variations, soup, url, draft.hero_image, default=[])
    draft.protections = attempt("protections", extract_protections, soup, default=[])
    return draft


def extract_cards(html: str, page_url: str) -> List[ListingSummary]:
    soup = make_soup(html)
    rows = attempt("cards", cards_from, soup, page_url, CARD_LAYOUT, default=[])
    return [ListingSummary(**row) for row in rows]
