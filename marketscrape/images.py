"""
Image candidate collection, filtering, scoring and CDN size upgrades.

The same functions serve a whole detail document and a single search-result
card: pass whichever BeautifulSoup node should bound the search.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

import orjson
from bs4 import Tag

from .textutil import absolutize

LAZY_ATTRS = (
    "src",
    "data-src",
    "data-image",
    "data-img",
    "data-lazy-src",
    "data-original",
    "data-ks-lazyload",
    "data-lazyload",
    "data-lazyload-src",
    "lazy-src",
    "image-src",
    "data-zoom-image",
)
SRCSET_ATTRS = ("srcset", "data-srcset")
SKIP_TAGS = {"script", "iframe", "link", "video", "audio", "embed", "input"}

ICON_MIN_SIDE = 60
SMALL_SIDE = 180

BAD_WORDS = frozenset((
    "sprite", "sprites", "logo", "logos", "favicon", "badge", "badges", "watermark", "trademark",
    "assurance", "verified", "icon", "icons", "qrcode", "avatar", "avatars",
))
DIR_TOKEN_RE = re.compile(r"[-_.]")
# hyphens separate title words in file names, so they do not split name tokens
NAME_TOKEN_RE = re.compile(r"[_.]")
BADGE_PNG_RE = re.compile(r"tps-\d+-\d+\.png", re.I)
PLACEHOLDER_RE = re.compile(
    r"(placeholder|/common/img/space\.png|blank\.(?:gif|png)|loading\.gif|no[-_]?image|default[-_]?img|/seed/)",
    re.I,
)
HASHED_KF_RE = re.compile(r"/kf/H[0-9a-z]{16,}[^/]*\.png$", re.I)
KNOWN_CDN_RE = re.compile(r"(alicdn\.com|imimg\.com|micstatic\.com|image\.made-in-china\.com)", re.I)
PRODUCT_PATH_RE = re.compile(r"(/kf/|imgextra|/product/|/data\d*/|/2f0j\d\d)", re.I)
PREFERRED_KF_RE = re.compile(r"s\.alicdn\.com/@sc\d+/kf/", re.I)
IMAGE_EXT_RE = re.compile(r"\.(jpe?g|png|webp|gif|avif|svg)(?=$|[?#_])", re.I)
SCRIPT_IMAGE_RE = re.compile(
    r"(?:https?:)?//[^\s\"'<>()\\]+?\.(?:jpe?g|png|webp)(?:_\d{2,4}x\d{2,4}(?:q\d{1,3})?\.(?:jpe?g|png|webp))?",
    re.I,
)
STYLE_URL_RE = re.compile(r"url\((['\"]?)(.*?)\1\)", re.I)
DIMS_RES = (
    re.compile(r"_(\d{2,4})x(\d{2,4})(?=[._q]|xz|$)", re.I),
    re.compile(r"-(\d{2,4})x(\d{2,4})(?=\.)", re.I),
    re.compile(r"-(\d{2,4})-(\d{2,4})(?=\.)", re.I),
)
ALI_SIZE_RE = re.compile(r"_(\d{2,4})x(\d{2,4})(?:xz|q\d{1,3})?\.(jpe?g|png|webp)$", re.I)
IMIMG_SIZE_RE = re.compile(r"-(\d{2,4})x(\d{2,4})(\.[a-z]{3,4})$", re.I)
CERT_ALT_RE = re.compile(r"\b(ce|rohs|fcc|iso|sgs|certificate|certification)\b", re.I)


@dataclass
class ImageCandidate:
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    source_tag: str = "img"
    order: int = 0

    @property
    def score(self) -> int:
        return score_image(self.url, self.width, self.height)


# ------------------------------------------------------------------ #
# URL predicates
# ------------------------------------------------------------------ #
def extract_dims(url: str) -> Optional[Tuple[int, int]]:
    path = urlsplit(url).path if url else ""
    for pat in DIMS_RES:
        m = pat.search(path)
        if m:
            return int(m.group(1)), int(m.group(2))
    return None


def image_ext(url: str) -> str:
    path = urlsplit(url).path
    found = IMAGE_EXT_RE.findall(path)
    return found[-1].lower().replace("jpeg", "jpg") if found else ""


def is_unsized_png(url: str) -> bool:
    return image_ext(url) == "png" and extract_dims(url) is None


def has_bad_token(url: str) -> bool:
    """Logo, badge and icon assets named by a directory or a file-name token."""
    *dirs, name = urlsplit(url).path.lower().split("/")
    for seg in dirs:
        if seg == "@img" or BAD_WORDS.intersection(DIR_TOKEN_RE.split(seg)):
            return True
    return bool(BAD_WORDS.intersection(NAME_TOKEN_RE.split(name)))


def is_bad_image_url(url: str) -> bool:
    """Hard rejects: never a product photo regardless of what else is on the page."""
    if not url or url.startswith("data:"):
        return True
    low = url.lower()
    if has_bad_token(low) or BADGE_PNG_RE.search(low):
        return True
    if image_ext(low) == "svg":
        return True
    dims = extract_dims(low)
    if dims and min(dims) < ICON_MIN_SIDE:
        return True
    return False


def is_placeholder_image(url: str) -> bool:
    return bool(url and PLACEHOLDER_RE.search(url))


def _looks_like_image(url: str) -> bool:
    return bool(IMAGE_EXT_RE.search(urlsplit(url).path) or KNOWN_CDN_RE.search(url))


# ------------------------------------------------------------------ #
# Scoring
# ------------------------------------------------------------------ #
def score_image(url: str, width: Optional[int] = None, height: Optional[int] = None) -> int:
    u = (url or "").lower()
    s = 0
    if KNOWN_CDN_RE.search(u):
        s += 100
    if PRODUCT_PATH_RE.search(u):
        s += 80
    if PREFERRED_KF_RE.search(u):
        s += 160

    encoded = extract_dims(u)
    dims = encoded or ((width, height) if width and height else None)
    if dims:
        side = min(dims)
        s += min(400, side)
        if side < SMALL_SIDE:
            s -= 120
        ratio = dims[0] / dims[1] if dims[1] else 0
        if 0.8 <= ratio <= 1.25:
            s += 40

    ext = image_ext(u)
    if ext in ("jpg", "webp"):
        s += 80
    elif ext == "png":
        s -= 60
        if encoded is None:
            s -= 180
            if HASHED_KF_RE.search(urlsplit(u).path):
                s -= 260

    if PLACEHOLDER_RE.search(u):
        s -= 1000
    return s


# ------------------------------------------------------------------ #
# Collection
# ------------------------------------------------------------------ #
def _int_attr(value) -> Optional[int]:
    try:
        return int(str(value).strip().rstrip("px"))
    except (TypeError, ValueError):
        return None


def _srcset_urls(value: str) -> List[str]:
    out = []
    for part in (value or "").split(","):
        part = part.strip()
        if part:
            out.append(part.split()[0])
    return out


def _json_strings(data) -> Iterable[str]:
    if isinstance(data, str):
        yield data
    elif isinstance(data, dict):
        for v in data.values():
            yield from _json_strings(v)
    elif isinstance(data, list):
        for v in data:
            yield from _json_strings(v)


def _scope_elements(scope: Tag) -> List[Tag]:
    if scope.name == "[document]":
        return list(scope.find_all(True))
    return [scope] + list(scope.find_all(True))


def collect_candidates(scope: Tag, base_url: str = "") -> List[ImageCandidate]:
    """Every plausible image URL in ``scope``, deduplicated, in first-seen order."""
    seen = {}

    def add(raw, tag: str, width=None, height=None):
        url = absolutize(raw, base_url)
        if not url or url in seen or not _looks_like_image(url):
            return
        seen[url] = ImageCandidate(url=url, width=width, height=height, source_tag=tag, order=len(seen))

    for el in _scope_elements(scope):
        if el.name == "script":
            text = (el.string or el.get_text() or "")[:500000].replace("\\/", "/")
            for m in SCRIPT_IMAGE_RE.finditer(text):
                add(m.group(0), "script")
            continue
        if el.name == "meta":
            prop = (el.get("property") or el.get("itemprop") or el.get("name") or "").lower()
            if prop in ("og:image", "og:image:secure_url", "image", "twitter:image"):
                add(el.get("content"), "meta")
            continue
        if el.name == "link":
            if "image_src" in (el.get("rel") or []):
                add(el.get("href"), "link")
            continue
        if el.name in SKIP_TAGS:
            continue

        if el.name == "img" and CERT_ALT_RE.search(el.get("alt") or ""):
            continue
        width, height = _int_attr(el.get("width")), _int_attr(el.get("height"))
        for attr in LAZY_ATTRS:
            if el.get(attr):
                add(el[attr], f"{el.name}[{attr}]", width, height)
        for attr in SRCSET_ATTRS:
            if el.get(attr):
                for u in _srcset_urls(el[attr]):
                    add(u, f"{el.name}[{attr}]")
        style = el.get("style") or ""
        if "url(" in style:
            for m in STYLE_URL_RE.finditer(style):
                add(m.group(2), f"{el.name}[style]")
        for attr, value in el.attrs.items():
            if not attr.startswith("data-") or not isinstance(value, str):
                continue
            v = value.strip()
            if not v or v[0] not in "[{":
                continue
            try:
                data = orjson.loads(v)
            except orjson.JSONDecodeError:
                continue
            for s in _json_strings(data):
                add(s, f"{el.name}[{attr}]")
    return list(seen.values())


def filter_candidates(candidates: List[ImageCandidate]) -> List[ImageCandidate]:
    survivors = [c for c in candidates if not is_bad_image_url(c.url)]
    sized = [c for c in survivors if not is_unsized_png(c.url)]
    # unsized PNGs are usually icons; keep them only when nothing else is left
    return sized or survivors


def best_candidate(candidates: List[ImageCandidate]) -> Optional[ImageCandidate]:
    best = None
    best_score = None
    for c in sorted(candidates, key=lambda c: c.order):
        sc = c.score
        if best_score is None or sc > best_score:
            best, best_score = c, sc
    return best


def pick_best_image(scope: Tag, base_url: str = "") -> str:
    if scope is None:
        return ""
    pool = filter_candidates(collect_candidates(scope, base_url))
    best = best_candidate(pool)
    return upgrade_image_url(best.url) if best else ""


def collect_gallery(scope: Tag, base_url: str = "", host_pattern: Optional[str] = None, limit: int = 10) -> List[str]:
    """Filtered, upgraded gallery in document order; placeholders are left out."""
    pool = filter_candidates(collect_candidates(scope, base_url))
    out: List[str] = []
    for c in pool:
        if is_placeholder_image(c.url):
            continue
        if host_pattern and not re.search(host_pattern, c.url, re.I):
            continue
        u = upgrade_image_url(c.url)
        if u not in out:
            out.append(u)
        if len(out) >= limit:
            break
    return out


# ------------------------------------------------------------------ #
# Upgrade
# ------------------------------------------------------------------ #
def upgrade_image_url(url: str) -> str:
    """Rewrite known low-resolution CDN variants to a large canonical size."""
    u = absolutize(url)
    if not u:
        return ""
    base, sep, query = u.partition("?")
    host = urlsplit(base).netloc.lower()

    if host.endswith("alicdn.com"):
        base = re.sub(r"//(sc\d+)\.alicdn\.com/kf/", r"//s.alicdn.com/@\1/kf/", base, flags=re.I)
        m = ALI_SIZE_RE.search(base)
        if m:
            if min(int(m.group(1)), int(m.group(2))) < 960:
                target = "_960x960.png" if m.group(3).lower() == "png" else "_960x960q80.jpg"
                base = base[:m.start()] + target
        else:
            ext = re.search(r"\.(jpe?g|png|webp)$", base, re.I)
            if ext:
                base += "_960x960.png" if ext.group(1).lower() == "png" else "_960x960q80.jpg"
    elif host.endswith("imimg.com"):
        m = IMIMG_SIZE_RE.search(base)
        if m and min(int(m.group(1)), int(m.group(2))) < 1000:
            base = base[:m.start()] + "-1000x1000" + m.group(3)

    return base + (sep + query if sep else "")
