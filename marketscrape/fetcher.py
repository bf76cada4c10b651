import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

import requests
from playwright.async_api import async_playwright

from .config import get_settings

logger = logging.getLogger(__name__)

UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

HEADERS = {
    "User-Agent": UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "sec-ch-ua": '"Chromium";v="124", "Not-A.Brand";v="99"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
}

REFERERS = {
    "alibaba.com": "https://www.alibaba.com/",
    "made-in-china.com": "https://www.made-in-china.com/",
    "indiamart.com": "https://www.indiamart.com/",
}


def referer_for(url: str) -> Optional[str]:
    host = (urlparse(url).hostname or "").lower()
    for domain, referer in REFERERS.items():
        if host == domain or host.endswith("." + domain):
            return referer
    return None


def build_headers(url: str) -> Dict[str, str]:
    headers = dict(HEADERS)
    referer = referer_for(url)
    if referer:
        headers["Referer"] = referer
    return headers


def fetch_html(url: str, timeout: Optional[float] = None) -> Optional[str]:
    """
    Blocking GET with browser-like headers and no cookies.

    Timeouts, non-2xx answers and network errors are logged at WARNING and
    give ``None``; nothing is raised to the caller.
    """
    if timeout is None:
        timeout = get_settings().fetch_timeout
    try:
        resp = requests.get(url, headers=build_headers(url), timeout=timeout, allow_redirects=True)
    except requests.Timeout:
        logger.warning("fetch timed out after %.1fs: %s", timeout, url)
        return None
    except requests.RequestException as e:
        logger.warning("fetch failed: %s | %s: %s", url, type(e).__name__, e)
        return None

    if not resp.ok:
        logger.warning("fetch got HTTP %s: %s", resp.status_code, url)
        return None
    return resp.text or None


async def render_html(url: str, timeout: Optional[float] = None) -> Optional[str]:
    """Headless Chromium render for pages whose static HTML is an empty shell."""
    if timeout is None:
        timeout = get_settings().fetch_timeout
    try:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=True, args=["--no-sandbox"])
            try:
                ctx = await browser.new_context(user_agent=UA, extra_http_headers=build_headers(url))
                page = await ctx.new_page()
                await page.goto(url, timeout=timeout * 1000, wait_until="domcontentloaded")
                # let client-side price/gallery widgets populate
                await page.wait_for_timeout(1500)
                html = await page.content()
                await ctx.close()
                return html
            finally:
                await browser.close()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("headless render failed: %s | %s: %s", url, type(e).__name__, e)
        return None


async def fetch_page(url: str, timeout: Optional[float] = None, headless: Optional[bool] = None) -> Optional[str]:
    """Static fetch in a worker thread, then an optional headless render, both under one timeout."""
    settings = get_settings()
    if timeout is None:
        timeout = settings.fetch_timeout
    html = await asyncio.to_thread(fetch_html, url, timeout)
    use_headless = settings.headless if headless is None else headless
    if html is None and use_headless:
        html = await render_html(url, timeout)
    return html
