import logging
from typing import Callable, Dict, List, Optional

import tldextract

from .adapters import adapter_alibaba, adapter_indiamart, adapter_madeinchina
from .schema import ListingSummary, ProductDetail

logger = logging.getLogger(__name__)

# bundled public-suffix snapshot only, never fetch the list at runtime
_extract = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)

ADAPTERS: Dict[str, Callable] = {
    "alibaba.com": adapter_alibaba.extract_alibaba,
    "made-in-china.com": adapter_madeinchina.extract_madeinchina,
    "indiamart.com": adapter_indiamart.extract_indiamart,
    # add more marketplaces here...
}

CARD_ADAPTERS: Dict[str, Callable] = {
    "alibaba.com": adapter_alibaba.extract_cards,
    "made-in-china.com": adapter_madeinchina.extract_cards,
    "indiamart.com": adapter_indiamart.extract_cards,
}


def registered_domain(url: str) -> str:
    ext = _extract(url or "")
    if not ext.domain or not ext.suffix:
        return ""
    return f"{ext.domain}.{ext.suffix}".lower()


def pick_adapter(domain: str, registry: Optional[Dict[str, Callable]] = None):
    for d, fn in (registry or ADAPTERS).items():
        if domain.endswith(d):
            return fn
    return None


def parse_detail(html: Optional[str], url: str) -> Optional[ProductDetail]:
    """
    Route raw HTML to the marketplace parser for ``url``.

    Unknown hosts and empty HTML give ``None``. Never raises: an adapter that
    blows up outside its per-field guards is logged and treated as no data.
    """
    if not html or not html.strip():
        return None
    domain = registered_domain(url)
    adapter = pick_adapter(domain)
    if adapter is None:
        logger.debug("no parser registered for %s", domain or url)
        return None
    try:
        return adapter(html, url).to_detail()
    except Exception:
        logger.exception("parser for %s failed on %s", domain, url)
        return None


def parse_cards(html: Optional[str], page_url: str) -> List[ListingSummary]:
    if not html:
        return []
    adapter = pick_adapter(registered_domain(page_url), CARD_ADAPTERS)
    if adapter is None:
        return []
    try:
        return adapter(html, page_url)
    except Exception:
        logger.exception("card parser failed on %s", page_url)
        return []
