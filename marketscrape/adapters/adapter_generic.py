"""
Extraction strategies shared by every marketplace adapter.

Adapters pick the selectors; the functions here do the walking. Nothing in
this module raises for unexpected markup: helpers return ``None``/empty and
``attempt`` swallows per-field failures with a DEBUG log line.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import orjson
from bs4 import BeautifulSoup, Comment, Tag

from ..images import pick_best_image
from ..pricing import (
    PRICE_TOKEN_RE,
    QTY_RANGE_RE,
    extract_moq,
    extract_price_like,
    extract_tiers,
    moq_from_tiers,
    normalize_tiers,
    parse_tier,
    tiers_by_repeated_groups,
)
from ..schema import PriceTier, Variation
from ..textutil import absolutize, clean_text, title_from_url

logger = logging.getLogger(__name__)

SOLD_RE = re.compile(r"(\d[\d,]*)\s*\+?\s*sold\b", re.I)
SOLD_BY_RE = re.compile(r"sold\s+by", re.I)
TRADE_COUNT_RES = (
    re.compile(r'"tradeCount"\s*:\s*"?(\d[\d,+]*)"?', re.I),
    re.compile(r'"sold"\s*:\s*(\d[\d,]*)', re.I),
    re.compile(r'"salesCount"\s*:\s*(\d[\d,]*)', re.I),
    re.compile(r'"dealCount"\s*:\s*(\d[\d,]*)', re.I),
)
NON_ATTRIBUTE_KEY_RE = re.compile(r"(price|usd|\$|moq|min\.?\s*order|order|sold|review)", re.I)
PACKAGING_KEY_RE = re.compile(
    r"(packag|packing|lead\s*time|selling\s*units?|gross\s*weight|transport|port\b|supply\s*ability)",
    re.I,
)
SKU_NAME_FIRST_RE = re.compile(
    r'"(?:name|propertyValueName)"\s*:\s*"([^"]{1,80})"[\s\S]{0,200}?"(?:imageUrl|image|imgUrl|imagePath)"\s*:\s*"([^"]{6,400})"'
)
SKU_IMAGE_FIRST_RE = re.compile(
    r'"(?:imageUrl|image|imgUrl|imagePath)"\s*:\s*"([^"]{6,400})"[\s\S]{0,200}?"(?:name|propertyValueName)"\s*:\s*"([^"]{1,80})"'
)
INVISIBLE_TAGS = {"script", "style", "noscript", "template"}


@dataclass
class PriceHit:
    price_text: str = ""
    tiers: List[PriceTier] = field(default_factory=list)
    moq_text: Optional[str] = None
    tag: str = ""

    def ok(self) -> bool:
        return bool(self.price_text or self.tiers)


PriceStrategy = Callable[[BeautifulSoup], Optional[PriceHit]]


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def attempt(label: str, fn: Callable, *args, default=None, **kwargs):
    """Run one field extractor; a failure leaves the field at ``default``."""
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.debug("field extraction failed: %s", label, exc_info=True)
        return default


# ------------------------------------------------------------------ #
# Text helpers
# ------------------------------------------------------------------ #
def node_text(el: Optional[Tag], sep: str = " ") -> str:
    if el is None:
        return ""
    if el.get("title"):
        return clean_text(el["title"])
    return clean_text(el.get_text(sep))


def first_text(soup: Tag, selectors: Sequence[str]) -> str:
    for sel in selectors:
        for el in soup.select(sel):
            t = clean_text(el.get("content")) if el.name == "meta" else node_text(el)
            if t:
                return t
    return ""


def first_attr(soup: Tag, selectors: Sequence[str], attr: str, base_url: str = "") -> str:
    for sel in selectors:
        el = soup.select_one(sel)
        if el is not None and el.get(attr):
            value = el[attr]
            return absolutize(value, base_url) if base_url else clean_text(value)
    return ""


def visible_text(soup: Tag, sep: str = " ") -> str:
    """Text of the page without script/style bodies or comments."""
    root = soup.body or soup
    parts = []
    for s in root.find_all(string=True):
        if isinstance(s, Comment) or s.parent is None or s.parent.name in INVISIBLE_TAGS:
            continue
        parts.append(str(s))
    return sep.join(parts)


def script_texts(soup: Tag, limit: int = 800000) -> Iterable[str]:
    for script in soup.find_all("script"):
        txt = script.string or script.get_text() or ""
        if txt:
            yield txt[:limit]


# ------------------------------------------------------------------ #
# JSON helpers
# ------------------------------------------------------------------ #
def _safe_json_loads(text: Optional[str]):
    if not text:
        return None
    try:
        return orjson.loads(text)
    except ValueError:
        return None


def _pick_product_node(data: Any) -> Optional[Dict[str, Any]]:
    """Find a schema.org Product node in parsed JSON-LD (dict, list or @graph)."""
    def is_product(node) -> bool:
        t = node.get("@type")
        return t == "Product" or (isinstance(t, list) and "Product" in t)

    if isinstance(data, dict):
        for node in data.get("@graph") or []:
            if isinstance(node, dict) and is_product(node):
                return node
        if is_product(data):
            return data
    if isinstance(data, list):
        for node in data:
            if isinstance(node, dict) and is_product(node):
                return node
    return None


def embedded_object(text: str, name: str) -> Optional[Dict[str, Any]]:
    """Parse the object literal assigned to a global such as ``window.runParams = {...}``."""
    m = re.search(rf"{re.escape(name)}\s*=\s*\{{", text)
    if not m:
        return None
    start = m.end() - 1
    depth = 0
    quote = None
    escaped = False
    for i in range(start, min(len(text), start + 2_000_000)):
        ch = text[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                data = _safe_json_loads(text[start:i + 1])
                return data if isinstance(data, dict) else None
    return None


def dig(data: Any, *path) -> Any:
    cur = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or len(cur) <= key:
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(key)
    return cur


def money_text(currency: Optional[str], low: Any, high: Any = None) -> str:
    if low in (None, "") or isinstance(low, (dict, list)):
        return ""
    cur = currency if isinstance(currency, str) and currency else "USD"
    if high not in (None, "") and not isinstance(high, (dict, list)) and str(high) != str(low):
        try:
            if float(high) != float(low):
                return f"{cur} {low} - {high}"
        except (TypeError, ValueError):
            pass
    return f"{cur} {low}"


# ------------------------------------------------------------------ #
# Price strategies usable by every source
# ------------------------------------------------------------------ #
def run_price_chain(soup: BeautifulSoup, strategies: Sequence[Tuple[str, PriceStrategy]]) -> Optional[PriceHit]:
    for name, strategy in strategies:
        hit = attempt(f"price:{name}", strategy, soup)
        if hit is not None and hit.ok():
            hit.tag = hit.tag or name
            if hit.tiers:
                hit.tiers = normalize_tiers(hit.tiers)
            if not hit.price_text and hit.tiers:
                hit.price_text = hit.tiers[0].price
            return hit
    return None


def tiers_from_items(items: Iterable[Tag]) -> List[PriceTier]:
    tiers = []
    for item in items:
        tier = parse_tier(node_text(item))
        if tier:
            tiers.append(tier)
    return tiers


def price_from_text_scan(soup: BeautifulSoup, selectors: Sequence[str] = (), limit: int = 1500) -> Optional[PriceHit]:
    """Short nodes holding both a currency token and a quantity range."""
    roots = [el for sel in selectors for el in soup.select(sel)] or [soup.body or soup]
    tiers: List[PriceTier] = []
    seen = set()
    inspected = 0
    for root in roots:
        for el in [root] + root.find_all(True):
            if inspected >= limit:
                break
            inspected += 1
            if el.name in INVISIBLE_TAGS:
                continue
            t = clean_text(el.get_text(" "))
            if not t or len(t) > 200 or t in seen:
                continue
            seen.add(t)
            if not PRICE_TOKEN_RE.search(t) or not QTY_RANGE_RE.search(PRICE_TOKEN_RE.sub(" ", t)):
                continue
            found = tiers_by_repeated_groups(t)
            if not found:
                one = parse_tier(t)
                found = [one] if one else []
            tiers.extend(found)
    if not tiers:
        return None
    return PriceHit(tiers=tiers, tag="text-scan")


def price_from_json_blobs(soup: BeautifulSoup) -> Optional[PriceHit]:
    for script in soup.find_all("script", type="application/ld+json"):
        prod = _pick_product_node(_safe_json_loads(script.string or script.get_text()))
        if not prod:
            continue
        offers = prod.get("offers")
        if isinstance(offers, list) and offers:
            offers = offers[0]
        if isinstance(offers, dict):
            text = money_text(
                offers.get("priceCurrency"),
                offers.get("price") or offers.get("lowPrice"),
                offers.get("highPrice"),
            )
            if text:
                return PriceHit(price_text=text, tag="ld-json")

    for txt in script_texts(soup):
        if "runParams" in txt:
            rp = embedded_object(txt, "runParams")
            if rp:
                price = (
                    rp.get("price")
                    or dig(rp, "priceModule", "formatedPrice")
                    or dig(rp, "skuModule", "skuPriceList", 0, "price")
                    or dig(rp, "skuModule", "skuPriceList", 0, "discountPrice")
                )
                cur = rp.get("currency") or dig(rp, "priceModule", "currency")
                text = money_text(cur, price)
                if text:
                    return PriceHit(price_text=text, tag="runParams")
        for name in ("__GLOBAL_DATA__", "__AUI_INITIAL_STATE__"):
            if name not in txt:
                continue
            blob = embedded_object(txt, name)
            offer = dig(blob, "data", "offer") or dig(blob, "offer")
            if isinstance(offer, dict):
                text = money_text(
                    offer.get("currency") or offer.get("priceCurrency"),
                    offer.get("price") or offer.get("lowPrice") or offer.get("minPrice"),
                    offer.get("highPrice") or offer.get("maxPrice"),
                )
                if text:
                    return PriceHit(price_text=text, tag=name.strip("_").lower())
    return None


def price_from_meta(soup: BeautifulSoup) -> Optional[PriceHit]:
    price = first_attr(soup, ['meta[itemprop="price"]', 'meta[property="og:price:amount"]', 'meta[property="product:price:amount"]'], "content")
    if not price:
        return None
    cur = first_attr(soup, ['meta[itemprop="priceCurrency"]', 'meta[property="og:price:currency"]', 'meta[property="product:price:currency"]'], "content")
    return PriceHit(price_text=money_text(cur, price), tag="meta")


def price_from_body(soup: BeautifulSoup) -> Optional[PriceHit]:
    text = extract_price_like(visible_text(soup))
    return PriceHit(price_text=text, tag="body-regex") if text else None


def price_from_selectors(selectors: Sequence[str], tag: str) -> PriceStrategy:
    """Strategy reading a single price (plus MOQ and tiers if present) from known blocks."""
    def strategy(soup: BeautifulSoup) -> Optional[PriceHit]:
        for sel in selectors:
            for el in soup.select(sel):
                text = node_text(el, "\n")
                price = extract_price_like(text)
                if not price:
                    continue
                tiers = extract_tiers(el.get_text("\n"))
                return PriceHit(
                    price_text=price,
                    tiers=tiers,
                    moq_text=block_moq(text, tiers),
                    tag=tag,
                )
        return None
    return strategy


# ------------------------------------------------------------------ #
# MOQ
# ------------------------------------------------------------------ #
def block_moq(text: str, tiers: List[PriceTier]) -> Optional[str]:
    """MOQ for a price block; a ladder's lowest tier beats "≥ N" text inside it."""
    return moq_from_tiers(tiers) if tiers else extract_moq(text)


def moq_from_regions(soup: BeautifulSoup, selectors: Sequence[str]) -> Optional[str]:
    for sel in selectors:
        for el in soup.select(sel):
            found = extract_moq(node_text(el))
            if found:
                return found
    return None


# ------------------------------------------------------------------ #
# Attributes / packaging
# ------------------------------------------------------------------ #
def looks_like_attribute_key(key: str) -> bool:
    k = clean_text(key)
    if not k or len(k) > 64:
        return False
    # quantity ranges and prices are tier rows, not attributes
    if re.match(r"^[\d\s,.\-–~≥>+]", k) or PRICE_TOKEN_RE.search(k):
        return False
    return not NON_ATTRIBUTE_KEY_RE.search(k)


def table_pairs(scope: Tag, row_selector: str = "tr") -> List[Tuple[str, str]]:
    pairs = []
    for tr in scope.select(row_selector):
        th = tr.find("th")
        tds = tr.find_all("td")
        if th is not None and tds:
            key, value = node_text(th), node_text(tds[0])
        elif len(tds) >= 2:
            key, value = node_text(tds[0]), node_text(tds[1])
        else:
            continue
        if key and value and looks_like_attribute_key(key):
            pairs.append((key, value))
    return pairs


def dl_pairs(scope: Tag) -> List[Tuple[str, str]]:
    pairs = []
    for dl in scope.find_all("dl"):
        for dt in dl.find_all("dt"):
            dd = dt.find_next_sibling("dd")
            key, value = node_text(dt), node_text(dd)
            if key and value and looks_like_attribute_key(key):
                pairs.append((key, value))
    return pairs


def labeled_pairs(scope: Tag, item_selector: str, label_selector: str, value_selector: str) -> List[Tuple[str, str]]:
    pairs = []
    for item in scope.select(item_selector):
        key = node_text(item.select_one(label_selector))
        value = node_text(item.select_one(value_selector))
        if key and value and looks_like_attribute_key(key):
            pairs.append((key, value))
    return pairs


def split_packaging(pairs: List[Tuple[str, str]]) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
    attrs, packs = [], []
    for k, v in pairs:
        (packs if PACKAGING_KEY_RE.search(k) else attrs).append((k, v))
    return attrs, packs


# ------------------------------------------------------------------ #
# Social proof
# ------------------------------------------------------------------ #
def _count(raw: str) -> Optional[int]:
    try:
        return int(raw.replace(",", "").replace("+", ""))
    except ValueError:
        return None


def sold_from_text_nodes(soup: BeautifulSoup, limit: int = 800) -> Optional[int]:
    best = None
    inspected = 0
    for el in (soup.body or soup).find_all(True):
        if inspected >= limit:
            break
        inspected += 1
        if el.name in INVISIBLE_TAGS:
            continue
        t = clean_text(el.get_text(" "))
        if not t or len(t) > 120 or SOLD_BY_RE.search(t):
            continue
        m = SOLD_RE.search(t)
        if m:
            n = _count(m.group(1))
            if n is not None and (best is None or n > best):
                best = n
    return best


def sold_from_scripts(soup: BeautifulSoup) -> Optional[int]:
    best = None
    for txt in script_texts(soup):
        for pat in TRADE_COUNT_RES:
            m = pat.search(txt)
            if m:
                n = _count(m.group(1))
                if n is not None and (best is None or n > best):
                    best = n
    return best


def max_present(*values: Optional[int]) -> Optional[int]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


# ------------------------------------------------------------------ #
# Variations
# ------------------------------------------------------------------ #
def variations_from_thumbs(imgs: Iterable[Tag], base_url: str) -> List[Variation]:
    out = []
    for i, img in enumerate(imgs, start=1):
        src = absolutize(img.get("src") or img.get("data-src"), base_url)
        if not src:
            continue
        label = clean_text(img.get("alt"))
        if not label or label.lower() in ("thumb", "thumbnail"):
            label = f"Image {i}"
        out.append(Variation(label=label, image_url=src))
    return out


def variations_from_scripts(soup: BeautifulSoup, host_pattern: str) -> List[Variation]:
    out = []
    for txt in script_texts(soup, limit=500000):
        if not re.search("sku", txt, re.I) or not re.search("image", txt, re.I):
            continue
        pairs = [(m.group(1), m.group(2)) for m in SKU_NAME_FIRST_RE.finditer(txt)]
        pairs += [(m.group(2), m.group(1)) for m in SKU_IMAGE_FIRST_RE.finditer(txt)]
        for label, src in pairs:
            url = absolutize(src.replace("\\/", "/"))
            if url and re.search(host_pattern, url, re.I):
                out.append(Variation(label=clean_text(label) or "Variant", image_url=url))
    return out


# ------------------------------------------------------------------ #
# Search-result cards
# ------------------------------------------------------------------ #
@dataclass
class CardLayout:
    platform: str
    card_selectors: Sequence[str]
    link_pattern: str
    title_selectors: Sequence[str] = ("h2", "h3", ".title")
    price_selectors: Sequence[str] = ('[class*="price"]',)
    moq_selectors: Sequence[str] = ('[class*="min-order"]', ".moq")
    store_selectors: Sequence[str] = (".company-name", ".supplier-name", ".store-name")
    image_selectors: Sequence[str] = (".pic", ".image", ".gallery", ".main-image", ".img-wrapper")


ORDERS_RE = re.compile(r"\b(\d[\d,.]*\+?)\s*(orders?|sold)\b", re.I)


def cards_from(soup: BeautifulSoup, page_url: str, layout: CardLayout) -> List[Dict[str, Any]]:
    """Raw card dicts in page order; images go through the same scorer as detail pages."""
    out = []
    for card in soup.select(", ".join(layout.card_selectors)):
        link = None
        for a in card.find_all("a", href=True):
            if re.search(layout.link_pattern, a["href"], re.I):
                link = a
                break
        if link is None:
            continue
        url = absolutize(link["href"], page_url)
        if not url:
            continue
        title = clean_text(link.get("title")) or first_text(card, layout.title_selectors) or node_text(link)
        title = title or title_from_url(url)

        image = ""
        for sel in layout.image_selectors:
            scope = card.select_one(sel)
            if scope is not None:
                image = pick_best_image(scope, page_url)
                if image:
                    break
        image = image or pick_best_image(card, page_url)

        blob = node_text(card)
        price_blob = " ".join(node_text(el) for sel in layout.price_selectors for el in card.select(sel)) or blob
        moq_blob = " ".join(node_text(el) for sel in layout.moq_selectors for el in card.select(sel)) or blob
        orders = ORDERS_RE.search(blob)
        out.append({
            "platform": layout.platform,
            "title": title,
            "url": url,
            "image": image,
            "price_raw": extract_price_like(price_blob) or None,
            "moq_text": extract_moq(moq_blob),
            "store_name": first_text(card, layout.store_selectors) or None,
            "orders_raw": orders.group(0) if orders else None,
        })
    return out
