"""
Copy remote product photos into the local static cache so pages never
hot-link marketplace CDNs.
"""
import hashlib
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests

from .config import get_settings
from .fetcher import UA
from .images import is_bad_image_url, is_placeholder_image

logger = logging.getLogger(__name__)

ALLOWED_HOST_SUFFIXES = (
    "alibaba.com",
    "alicdn.com",
    "made-in-china.com",
    "micstatic.com",
    "indiamart.com",
    "imimg.com",
)
MIN_BYTES = 4000
EXTS = ("jpg", "png", "webp")

IMAGE_HEADERS = {
    "User-Agent": UA,
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class ImageCacheError(Exception):
    pass


def is_allowed_host(host: str) -> bool:
    h = (host or "").lower()
    return any(h == suf or h.endswith("." + suf) for suf in ALLOWED_HOST_SUFFIXES)


def referer_for_host(host: str) -> Optional[str]:
    h = (host or "").lower()
    if "alicdn" in h or "alibaba" in h:
        return "https://www.alibaba.com/"
    if "made-in-china" in h or "micstatic" in h:
        return "https://www.made-in-china.com/"
    if "indiamart" in h or "imimg" in h:
        return "https://dir.indiamart.com/"
    return None


def detect_ext(data: bytes) -> Optional[str]:
    if data[:2] == b"\xff\xd8":
        return "jpg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


def ext_from_content_type(ct: str) -> str:
    ct = (ct or "").lower()
    if "webp" in ct:
        return "webp"
    if "png" in ct:
        return "png"
    return "jpg"


def _normalize_src(raw: str) -> str:
    src = (raw or "").strip()
    if src.lower().startswith("http%3a") or src.lower().startswith("https%3a") or "%2F" in src:
        src = unquote(src)
    if src.startswith("//"):
        src = "https:" + src
    return src


def _existing(cache_dir: Path, digest: str) -> Optional[str]:
    for ext in EXTS:
        p = cache_dir / f"{digest}.{ext}"
        if not p.exists():
            continue
        with open(p, "rb") as f:
            head = f.read(16)
        if detect_ext(head) == ext:
            return p.name
        # wrong bytes under this extension, re-download
        p.unlink()
    return None


def cache_external_image(
    url: str,
    cache_dir: Optional[Path] = None,
    url_prefix: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Download ``url`` into the image cache and return its public path,
    e.g. ``/cache/<sha1>.jpg``. Raises ``ImageCacheError`` when the image is
    not cacheable.
    """
    settings = get_settings()
    cache_dir = Path(cache_dir or settings.image_cache_dir)
    prefix = (url_prefix if url_prefix is not None else settings.image_cache_url_prefix).rstrip("/")

    src = _normalize_src(url)
    p = urlparse(src)
    if p.scheme not in ("http", "https"):
        raise ImageCacheError(f"protocol not allowed: {url}")
    host = p.hostname or ""
    if not is_allowed_host(host):
        raise ImageCacheError(f"host not allowed: {host}")
    if "micstatic.com" in host and p.path.lower().endswith("/common/img/space.png"):
        raise ImageCacheError("made-in-china placeholder image rejected")
    if is_bad_image_url(src) or is_placeholder_image(src):
        raise ImageCacheError(f"placeholder or badge image rejected: {src}")

    digest = hashlib.sha1(src.encode()).hexdigest()
    cache_dir.mkdir(parents=True, exist_ok=True)
    hit = _existing(cache_dir, digest)
    if hit:
        return f"{prefix}/{hit}"

    headers = dict(IMAGE_HEADERS)
    referer = referer_for_host(host)
    if referer:
        headers["Referer"] = referer
    try:
        resp = requests.get(src, headers=headers, timeout=timeout or settings.fetch_timeout)
    except requests.RequestException as e:
        raise ImageCacheError(f"download failed: {type(e).__name__}: {e}") from e
    if not resp.ok:
        raise ImageCacheError(f"upstream {resp.status_code}")

    data = resp.content
    if len(data) < MIN_BYTES:
        raise ImageCacheError(f"tiny image payload rejected ({len(data)} bytes)")

    ext = detect_ext(data) or ext_from_content_type(resp.headers.get("content-type", ""))
    dest = cache_dir / f"{digest}.{ext}"
    dest.write_bytes(data)
    logger.info("cached %s -> %s", src, dest)
    return f"{prefix}/{dest.name}"


def resolve_display_image(url: Optional[str], cache_dir: Optional[Path] = None, url_prefix: Optional[str] = None) -> str:
    """Local cached copy, else the remote URL, else the placeholder asset."""
    placeholder = get_settings().placeholder_image
    if not url:
        return placeholder
    if url.startswith(get_settings().image_cache_url_prefix.rstrip("/") + "/"):
        return url
    try:
        return cache_external_image(url, cache_dir=cache_dir, url_prefix=url_prefix)
    except ImageCacheError as e:
        logger.info("image not cached (%s), using remote URL", e)
    except OSError:
        logger.exception("writing image cache failed for %s", url)

    remote = _normalize_src(url)
    if remote.startswith("https://") or remote.startswith("http://"):
        if not is_bad_image_url(remote) and not is_placeholder_image(remote):
            return remote
    return placeholder
