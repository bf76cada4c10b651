"""
Price-tier and MOQ extraction over plain text.

Every strategy is a pure function ``str -> list`` (tiers) or ``str -> str | None``
(MOQ); the public entry points run them in order and stop at the first hit.
"""
import re
from typing import Callable, List, Optional

from .schema import OPEN, PriceTier
from .textutil import clean_text

CURRENCY = r"(?:US\s?\$|USD|RMB|CNY|INR|Rs\.?|₹|¥|￥|€|£|\$)"
AMOUNT = r"\d[\d,]*(?:\.\d+)?"
QTY = r"\d[\d,]{0,8}"
UNIT = (
    r"(?:square\s+meters?|pieces?|pcs|pc|units?|sets?|pairs?|bags?|boxes|box|cartons?|"
    r"meters?|metres?|kilograms?|kgs?|tons?|lots?|rolls?|sheets?|dozens?|packs?|yards?|sqm)\b"
)

PRICE_TOKEN_RE = re.compile(rf"{CURRENCY}\s*:?\s*{AMOUNT}", re.I)
PRICE_LIKE_RE = re.compile(
    rf"{CURRENCY}\s*:?\s*\d{{1,6}}(?:[.,]\d{{1,3}})*"
    rf"(?:\s*[-~–]\s*(?:{CURRENCY}\s*:?\s*)?\d{{1,6}}(?:[.,]\d{{1,3}})*)?",
    re.I,
)

_QTY_SPAN = (
    rf"(?:(?P<lo>{QTY})\s*(?:-|–|~|to)\s*(?P<hi>{QTY})"
    rf"|(?:≥|>=)\s*(?P<ge>{QTY})"
    rf"|(?P<plus>{QTY})\s*\+)"
)
QTY_RANGE_RE = re.compile(rf"(?<![\d.,]){_QTY_SPAN}\s*(?P<unit>{UNIT})?", re.I)
TIER_RE = re.compile(
    rf"(?<![\d.,]){_QTY_SPAN}\s*(?P<unit>{UNIT})?\s*:?\s*(?P<price>{CURRENCY}\s*{AMOUNT})",
    re.I,
)
PRICE_FIRST_TIER_RE = re.compile(
    rf"(?P<price>{CURRENCY}\s*{AMOUNT})\s*(?:/\s*[A-Za-z]+)?\s*[:(]?\s*{_QTY_SPAN}\s*(?P<unit>{UNIT})?",
    re.I,
)


# ------------------------------------------------------------------ #
# Tier helpers
# ------------------------------------------------------------------ #
def _int(s: Optional[str]) -> Optional[int]:
    if not s:
        return None
    try:
        return int(s.replace(",", ""))
    except ValueError:
        return None


def _tier_from_match(m: "re.Match") -> Optional[PriceTier]:
    price = clean_text(m.group("price"))
    unit = clean_text(m.group("unit") or "")
    if m.group("lo") is not None:
        lo, hi = _int(m.group("lo")), _int(m.group("hi"))
        if lo is None or hi is None:
            return None
        label = f"{m.group('lo')} - {m.group('hi')}"
        return PriceTier(range_label=f"{label} {unit}".strip(), min=lo, max=hi, price=price)
    raw = m.group("ge") if m.group("ge") is not None else m.group("plus")
    lo = _int(raw)
    if lo is None:
        return None
    return PriceTier(range_label=f"≥ {raw} {unit}".strip(), min=lo, max=OPEN, price=price)


def parse_tier(text: str) -> Optional[PriceTier]:
    """
    Parse one tier from a single price-item block in either order,
    e.g. "50 - 499 pieces US$8.89" or "US$8.89 50-499 pieces".
    """
    t = clean_text(text)
    price = PRICE_TOKEN_RE.search(t)
    if not price:
        return None
    rest = t[:price.start()] + " " + t[price.end():]
    q = QTY_RANGE_RE.search(rest)
    if not q:
        return None
    tier_text = f"{q.group(0)} {price.group(0)}"
    m = TIER_RE.search(tier_text)
    return _tier_from_match(m) if m else None


# ------------------------------------------------------------------ #
# Tier strategies
# ------------------------------------------------------------------ #
def tiers_by_repeated_groups(text: str) -> List[PriceTier]:
    t = clean_text(text)
    out = []
    for m in TIER_RE.finditer(t):
        tier = _tier_from_match(m)
        if tier:
            out.append(tier)
    return out


def tiers_by_bar_segments(text: str) -> List[PriceTier]:
    if "|" not in text:
        return []
    out = []
    for seg in clean_text(text).split("|"):
        m = TIER_RE.search(seg) or PRICE_FIRST_TIER_RE.search(seg)
        if m:
            tier = _tier_from_match(m)
            if tier:
                out.append(tier)
    return out


def tiers_by_lines(text: str) -> List[PriceTier]:
    """Pair a quantity-range line with the nearest price up to two lines below."""
    lines = [clean_text(l) for l in (text or "").splitlines()]
    lines = [l for l in lines if l]
    out = []
    i = 0
    while i < len(lines):
        line = lines[i]
        qty_part = PRICE_TOKEN_RE.sub(" ", line)
        q = QTY_RANGE_RE.search(qty_part)
        if not q:
            i += 1
            continue
        found_at = None
        price = None
        for j in range(i, min(i + 3, len(lines))):
            p = PRICE_TOKEN_RE.search(lines[j])
            if p:
                found_at, price = j, p.group(0)
                break
        if price is None:
            i += 1
            continue
        m = TIER_RE.search(f"{q.group(0)} {price}")
        tier = _tier_from_match(m) if m else None
        if tier:
            out.append(tier)
        i = max(i + 1, found_at + 1)
    return out


TIER_STRATEGIES: List[Callable[[str], List[PriceTier]]] = [
    tiers_by_repeated_groups,
    tiers_by_bar_segments,
    tiers_by_lines,
]


def normalize_tiers(tiers: List[PriceTier]) -> List[PriceTier]:
    """Dedupe by ``min`` (first occurrence wins) and sort ascending."""
    seen = {}
    for t in tiers:
        if t.min not in seen:
            seen[t.min] = t
    return sorted(seen.values(), key=lambda t: t.min)


def extract_tiers(text: str) -> List[PriceTier]:
    if not text:
        return []
    for strategy in TIER_STRATEGIES:
        tiers = strategy(text)
        if tiers:
            return normalize_tiers(tiers)
    return []


def synthesize_tier(price_text: str, moq: Optional[int] = None) -> PriceTier:
    qty = moq if moq and moq > 0 else 1
    return PriceTier(range_label=f"≥ {qty}", min=qty, max=OPEN, price=price_text)


def ensure_tiers(tiers: List[PriceTier], price_text: Optional[str], moq: Optional[int] = None) -> List[PriceTier]:
    if tiers:
        return normalize_tiers(tiers)
    if price_text:
        return [synthesize_tier(price_text, moq)]
    return []


# ------------------------------------------------------------------ #
# MOQ passes
# ------------------------------------------------------------------ #
MOQ_LABELED_RE = re.compile(
    rf"(?:\bMOQ\b|\bMin(?:imum)?\.?\s*Order(?:\s*Quantity)?|≥)\s*:?\s*(?P<qty>\d[\d,]{{0,6}})(?:\s*(?P<unit>{UNIT}))?",
    re.I,
)
MOQ_TAGGED_RE = re.compile(rf"(?P<qty>\d[\d,]{{0,6}})\s*(?P<unit>{UNIT})\s*\(\s*MOQ\s*\)", re.I)
MOQ_AT_LEAST_RE = re.compile(rf"≥\s*(?P<qty>\d[\d,]{{0,6}})\s*(?P<unit>{UNIT})", re.I)
MOQ_BARE_RE = re.compile(rf"(?<![\d.,])(?P<qty>\d[\d,]{{0,6}})\s*(?P<unit>{UNIT})", re.I)
_CURRENCY_NEAR_RE = re.compile(CURRENCY + r"\s*:?\s*[\d.,]*\s*$", re.I)


def _format_moq(qty: str, unit: Optional[str]) -> Optional[str]:
    n = _int(qty)
    if not n:
        return None
    u = clean_text(unit).upper() if unit else "PCS"
    return f"{n:,} {u}"


def moq_from_label(text: str) -> Optional[str]:
    m = MOQ_LABELED_RE.search(clean_text(text))
    return _format_moq(m.group("qty"), m.group("unit")) if m else None


def moq_from_loose(text: str) -> Optional[str]:
    t = clean_text(text)
    m = MOQ_TAGGED_RE.search(t) or MOQ_AT_LEAST_RE.search(t)
    return _format_moq(m.group("qty"), m.group("unit")) if m else None


def moq_from_bare_unit(text: str) -> Optional[str]:
    t = clean_text(text)
    for m in MOQ_BARE_RE.finditer(t):
        before = t[max(0, m.start() - 12):m.start()]
        if _CURRENCY_NEAR_RE.search(before) or re.search(r"[-–~]\s*$", before):
            continue
        return _format_moq(m.group("qty"), m.group("unit"))
    return None


MOQ_PASSES: List[Callable[[str], Optional[str]]] = [
    moq_from_label,
    moq_from_loose,
    moq_from_bare_unit,
]


def extract_moq(text: str) -> Optional[str]:
    if not text:
        return None
    for moq_pass in MOQ_PASSES:
        found = moq_pass(text)
        if found:
            return found
    return None


def moq_from_tiers(tiers: List[PriceTier]) -> Optional[str]:
    """MOQ implied by the lowest tier, e.g. "50 - 499 pieces" -> "50 PIECES"."""
    if not tiers:
        return None
    first = min(tiers, key=lambda t: t.min)
    if first.min < 1:
        return None
    unit = re.search(rf"({UNIT})\s*$", first.range_label, re.I)
    return _format_moq(str(first.min), unit.group(1) if unit else None)


def parse_moq_number(text: Optional[str]) -> Optional[int]:
    """Numeric MOQ from free text; values outside 1..100000 are rejected."""
    if not text:
        return None
    t = clean_text(text)
    m = re.search(r"(\d[\d,]*)\s*(?:件|个|套|双)?\s*起[订批]", t) or re.search(r"[≥>]?\s*(\d[\d,]*)", t)
    if not m:
        return None
    n = _int(m.group(1))
    if n is None or n < 1 or n > 100000:
        return None
    return n


# ------------------------------------------------------------------ #
# Single prices, orders, display formatting
# ------------------------------------------------------------------ #
def extract_price_like(text: Optional[str]) -> str:
    m = PRICE_LIKE_RE.search(clean_text(text))
    return clean_text(m.group(0)) if m else ""


def parse_orders(s: Optional[str]) -> Optional[int]:
    if not s:
        return None
    m = re.search(r"(\d[\d,.]*?)\s*(?:sold|orders?)\b", s, re.I)
    if not m:
        return None
    return _int(m.group(1).replace(".", ""))


def currency_sym(currency: Optional[str]) -> str:
    c = (currency or "").upper()
    if not c or c == "USD":
        return "US$"
    if c in ("CNY", "RMB"):
        return "¥"
    if c == "INR":
        return "₹"
    return currency


def _format_price(n: Optional[float]) -> Optional[str]:
    if n is None:
        return None
    v = float(n)
    if v.is_integer():
        return f"{v:,.0f}"
    return f"{v:,.2f}"


def format_range(lo: Optional[float], hi: Optional[float], currency: Optional[str]) -> Optional[str]:
    sym = currency_sym(currency)
    a, b = _format_price(lo), _format_price(hi)
    if a and b and a != b:
        return f"{sym}{a} - {sym}{b}"
    if a:
        return f"{sym}{a}"
    if b:
        return f"{sym}{b}"
    return None
