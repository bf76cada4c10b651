import re
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar
from urllib.parse import urljoin

T = TypeVar("T")

_ZERO_WIDTH = re.compile(r"[\u200B-\u200D\uFEFF]")
_WS = re.compile(r"\s+")

PLACEHOLDER_VALUES = {
    "customization options",
    "supplier's customization ability",
    "supplier’s customization ability",
    "secure payments",
    "easy return & refund",
    "protections",
    "thumb",
    "thumbnail",
}
_PLACEHOLDER_PATTERNS = [
    re.compile(r"^lightcustom_", re.I),
    re.compile(r"^default$", re.I),
    re.compile(r"^no[_\s-]?sku$", re.I),
    re.compile(r"^--+$"),
]

_TITLE_SUFFIXES = [
    re.compile(r"\s*-\s*Buy\b.*?(?:on\s+Alibaba\.com)?$", re.I),
    re.compile(r"\s*[-|]\s*(?:Alibaba|Made-in-China|IndiaMART)(?:\.com)?$", re.I),
    re.compile(r"\s*[-|]\s*(?:Manufacturers|Suppliers|Wholesale)[^-|]*(?:Made-in-China|IndiaMART)(?:\.com)?$", re.I),
]
_TITLE_TRAILING_ID = re.compile(r"[\s_-]*\d{6,}$")
_HTML_EXT = re.compile(r"\.html?$", re.I)


def clean_text(s: Optional[str]) -> str:
    """Strip zero-width characters, turn nbsp into spaces and collapse whitespace."""
    if not s:
        return ""
    s = _ZERO_WIDTH.sub("", s).replace("\u00a0", " ")
    return _WS.sub(" ", s).strip()


def is_placeholder_value(s: Optional[str]) -> bool:
    """True for empty, single-letter and known UI placeholder strings."""
    t = clean_text(s).lower()
    if not t or (len(t) == 1 and t.isalpha()):
        return True
    if t in PLACEHOLDER_VALUES:
        return True
    return any(p.search(t) for p in _PLACEHOLDER_PATTERNS)


def clean_title(s: Optional[str]) -> str:
    """Drop marketplace suffixes, a trailing .html and trailing numeric ids until none remain."""
    t = clean_text(s)
    prev = None
    while t != prev:
        prev = t
        for pat in _TITLE_SUFFIXES:
            t = pat.sub("", t)
        t = _HTML_EXT.sub("", t)
        t = _TITLE_TRAILING_ID.sub("", t)
        t = t.strip(" -|")
    return t


def title_from_url(url: Optional[str]) -> str:
    """Best-effort human title from the last path segment of a product URL."""
    if not url:
        return ""
    path = url.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    seg = path.rsplit("/", 1)[-1]
    seg = _HTML_EXT.sub("", seg)
    seg = re.sub(r"_?\d{6,}$", "", seg)
    seg = re.sub(r"[-_]+", " ", seg)
    seg = clean_text(seg)
    # bare ids and very short slugs are not titles
    if len(seg) < 3 or not re.search(r"[A-Za-z]{3}", seg):
        return ""
    return seg


def uniq_by(items: Iterable[T], key: Callable[[T], str]) -> List[T]:
    seen = set()
    out: List[T] = []
    for item in items:
        k = (key(item) or "").strip().lower()
        if not k or k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


def clean_pairs(pairs: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Clean label/value pairs, drop placeholders, dedupe by label|value ignoring case."""
    cleaned = []
    for label, value in pairs:
        label = clean_text(label).rstrip(":").strip()
        value = clean_text(value)
        if is_placeholder_value(label) or is_placeholder_value(value):
            continue
        cleaned.append((label, value))
    return uniq_by(cleaned, lambda p: f"{p[0]}|{p[1]}")


def absolutize(src: Optional[str], base: str = "") -> str:
    """Resolve an image or link reference to an absolute https URL, or ''."""
    s = (src or "").strip().strip("'\"")
    if not s or s.startswith("data:") or s.startswith("javascript:"):
        return ""
    if s.startswith("//"):
        s = "https:" + s
    elif not re.match(r"^https?://", s, re.I):
        if not base:
            return ""
        s = urljoin(base, s)
    if s.lower().startswith("http://"):
        s = "https://" + s[7:]
    return s
