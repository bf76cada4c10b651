"""
Collapse near-duplicate search-result cards.

Two cards are the same listing when their canonical URLs match, or when they
share platform, store and a slugified title. The merged card keeps whichever
image scores higher and backfills empty fields from the other copy.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from slugify import slugify

from .images import score_image
from .schema import ListingSummary
from .scrape import registered_domain

logger = logging.getLogger(__name__)

# query params that identify the product rather than the visit
KEEP_PARAMS = {
    "indiamart.com": {"id", "kwd"},
}

BACKFILL_FIELDS = ("title", "image", "price_raw", "moq_text", "store_name", "orders_raw", "platform")


def canonicalize_url(url: str) -> str:
    if not url:
        return ""
    raw = url.strip()
    if raw.startswith("//"):
        raw = "https:" + raw
    p = urlparse(raw)
    host = (p.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = p.path.rstrip("/") or "/"
    keep = KEEP_PARAMS.get(registered_domain(raw), set())
    query = urlencode(sorted((k, v) for k, v in parse_qsl(p.query) if k in keep))
    return urlunparse(("https", host, path, "", query, ""))


def title_key(title: Optional[str]) -> str:
    return slugify(title or "", max_length=80)


def _identity(card: ListingSummary) -> Tuple[str, str]:
    store = slugify(card.store_name or "")
    tk = title_key(card.title)
    return canonicalize_url(card.url), (f"{card.platform or ''}|{store}|{tk}" if tk else "")


def _image_score(card: ListingSummary) -> int:
    return score_image(card.image) if card.image else -10000


def merge_pair(a: ListingSummary, b: ListingSummary) -> ListingSummary:
    """Keep the card with the better image; ties keep ``a``."""
    winner, other = (b, a) if _image_score(b) > _image_score(a) else (a, b)
    update = {f: getattr(other, f) for f in BACKFILL_FIELDS if not getattr(winner, f) and getattr(other, f)}
    update["url"] = canonicalize_url(winner.url) or winner.url
    return winner.model_copy(update=update)


def merge_listings(cards: Iterable[ListingSummary]) -> List[ListingSummary]:
    merged: List[ListingSummary] = []
    by_url: Dict[str, int] = {}
    by_title: Dict[str, int] = {}
    for card in cards:
        url_key, t_key = _identity(card)
        idx = by_url.get(url_key)
        if idx is None and t_key:
            idx = by_title.get(t_key)
        if idx is None:
            merged.append(card.model_copy(update={"url": url_key or card.url}))
            idx = len(merged) - 1
        else:
            merged[idx] = merge_pair(merged[idx], card)
        by_url[url_key] = idx
        if t_key:
            by_title[t_key] = idx
    logger.debug("merged listings down to %d", len(merged))
    return merged
