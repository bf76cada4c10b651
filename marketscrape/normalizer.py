"""
Merge a parsed detail with the listing's fallback record and classify it.

``normalize`` never drops a field: scalars end up populated or ``None``,
lists populated or empty. Running it twice with the same fallback gives the
same record.
"""
from typing import List, Optional, Union

from .pricing import ensure_tiers, format_range, parse_moq_number, parse_orders
from .schema import ListingFallback, NormalizedDetail, Pair, ProductDetail
from .scrape import registered_domain
from .textutil import clean_text, clean_title, title_from_url

WEAK = "WEAK"
PARTIAL = "PARTIAL"
OK = "OK"

PLATFORM_NAMES = {
    "alibaba.com": "Alibaba.com",
    "made-in-china.com": "Made-in-China.com",
    "indiamart.com": "IndiaMART",
}

FALLBACK_PACKAGING = [
    Pair(label="Selling Units", value="Single item"),
    Pair(label="Package Type", value="Standard export packaging"),
    Pair(label="Lead Time", value="7-14 days after payment"),
]

FALLBACK_PROTECTIONS = [
    "Secure Payment: Your payment information is encrypted and secure. We never share your card details.",
    "Quality Assurance: Products are verified before shipment. Contact us within 7 days if you receive defective items.",
    "Buyer Protection: Full refund if product is not as described or doesn't arrive on time.",
]


def normalize(
    draft: Union[ProductDetail, NormalizedDetail, None],
    fallback: Optional[ListingFallback] = None,
    source_url: Optional[str] = None,
) -> NormalizedDetail:
    fb = fallback or ListingFallback()
    d = draft or ProductDetail()
    url = d.source_url or source_url

    title = clean_title(d.title) or clean_title(fb.title) or title_from_url(url) or None
    price_text = (
        clean_text(d.price_text)
        or clean_text(fb.price_raw)
        or format_range(fb.price_min, fb.price_max, fb.currency)
        or None
    )
    moq = parse_moq_number(d.moq_text) or getattr(d, "moq", None) or 1

    debug = list(d.debug)
    tiers = ensure_tiers(d.price_tiers, price_text, moq)
    if tiers and not d.price_tiers:
        debug.append("normalize:synth-tier")

    sold = d.sold_count if d.sold_count is not None else parse_orders(fb.orders_raw)
    hero = d.hero_image or (d.gallery[0] if d.gallery else None) or fb.image or None

    return NormalizedDetail(
        title=title,
        price_text=price_text,
        price_tiers=tiers,
        moq_text=d.moq_text,
        moq=moq,
        attributes=list(d.attributes),
        packaging=list(d.packaging),
        variations=list(d.variations),
        supplier=d.supplier,
        gallery=list(d.gallery),
        hero_image=hero,
        rating=d.rating,
        sold_count=sold,
        protections=list(d.protections),
        sample_price=d.sample_price,
        source_url=url,
        debug_source=d.debug_source,
        debug=debug,
        synthesized=list(getattr(d, "synthesized", [])),
    )


def is_weak(detail: Optional[ProductDetail]) -> bool:
    """No title, or neither a price string nor any tier."""
    if detail is None:
        return True
    if not (detail.title or "").strip():
        return True
    return not (detail.price_text or detail.price_tiers)


def is_complete(detail: Optional[ProductDetail]) -> bool:
    if detail is None:
        return False
    has_specs = len(detail.attributes) >= 3 or len(detail.packaging) >= 1
    has_supplier = bool(detail.supplier and (detail.supplier.name or "").strip())
    return bool(
        (detail.title or "").strip()
        and detail.hero_image
        and detail.price_tiers
        and has_specs
        and detail.protections
        and has_supplier
    )


def scrape_status(detail: Optional[ProductDetail]) -> str:
    if is_weak(detail):
        return WEAK
    return OK if is_complete(detail) else PARTIAL


def _fallback_attributes(detail: NormalizedDetail, fb: ListingFallback) -> List[Pair]:
    out = []
    price_range = clean_text(fb.price_raw) or format_range(fb.price_min, fb.price_max, fb.currency)
    if price_range:
        out.append(Pair(label="Price Range", value=price_range))
    platform = PLATFORM_NAMES.get(registered_domain(detail.source_url or ""))
    if platform:
        out.append(Pair(label="Source Platform", value=platform))
    if detail.moq > 1:
        out.append(Pair(label="Minimum Order", value=f"{detail.moq} pieces"))
    if fb.orders_raw or detail.sold_count:
        out.append(Pair(label="Orders", value=clean_text(fb.orders_raw) or f"{detail.sold_count} sold"))
    return out


def with_fallback_content(detail: NormalizedDetail, fallback: Optional[ListingFallback] = None) -> NormalizedDetail:
    """
    Fill the empty attribute, packaging and protection blocks of an
    incomplete record with generic presentational copy.

    Only empty blocks are touched, and each filled block is named in
    ``synthesized`` so callers can tell scraped content from stand-ins.
    Complete records come back unchanged.
    """
    if is_complete(detail):
        return detail
    fb = fallback or ListingFallback()
    update = {}
    synthesized = list(detail.synthesized)

    if not detail.attributes:
        attrs = _fallback_attributes(detail, fb)
        if attrs:
            update["attributes"] = attrs
            synthesized.append("attributes")
    if not detail.packaging:
        update["packaging"] = list(FALLBACK_PACKAGING)
        synthesized.append("packaging")
    if not detail.protections:
        update["protections"] = list(FALLBACK_PROTECTIONS)
        synthesized.append("protections")

    if not update:
        return detail
    update["synthesized"] = synthesized
    return detail.model_copy(update=update)
