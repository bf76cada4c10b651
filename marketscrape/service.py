import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from .cache import MISSING, DetailCache
from .config import get_settings
from .fetcher import fetch_page
from .normalizer import is_weak, normalize, scrape_status
from .schema import ListingFallback, ListingRecord, NormalizedDetail, ProductDetail
from .scrape import parse_detail
from .store import ListingStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[Optional[str]]]
Parser = Callable[[Optional[str], str], Optional[ProductDetail]]


def build_cache() -> DetailCache:
    settings = get_settings()
    return DetailCache(
        memo_ttl=timedelta(seconds=settings.memo_ttl_seconds),
        freshness=timedelta(hours=settings.fresh_hours),
    )


class DetailService:
    """
    Cache-first access to normalized product details.

    Lookup order for ``get_detail``: the process memo, then the persisted
    listing record while it is fresh, then one live fetch shared by every
    concurrent caller of the same URL. A memo entry, weak or not, answers
    until it expires; a weak persisted record never does.
    """

    def __init__(
        self,
        cache: Optional[DetailCache] = None,
        store: Optional[ListingStore] = None,
        fetcher: Optional[Fetcher] = None,
        parser: Parser = parse_detail,
    ):
        self.cache = cache or build_cache()
        self.store = store
        self.fetcher = fetcher or fetch_page
        self.parser = parser
        # refresh callers currently waiting per URL
        self._refreshing: Dict[str, int] = {}

    async def get_detail(
        self,
        url: str,
        fallback: Optional[ListingFallback] = None,
        force_refresh: bool = False,
        listing_id: Optional[str] = None,
    ) -> NormalizedDetail:
        if force_refresh:
            return await self.refresh(url, fallback, listing_id=listing_id)

        hit = self.cache.get_memo(url)
        if hit is not MISSING:
            return normalize(hit, fallback, source_url=url) if hit is None else hit

        record = await self._read(listing_id)
        stale = self._cached_detail(record)
        if stale is not None and record is not None and self.cache.is_fresh(record.cached_at):
            if not is_weak(stale):
                self.cache.put_memo(url, stale)
                return stale
            logger.info("fresh cached detail for %s is weak, fetching live", url)

        fallback = fallback or (record.fallback() if record else None)
        return await self.cache.single_flight(
            url, lambda: self._fetch_and_store(url, fallback, listing_id, stale=stale)
        )

    async def refresh(
        self,
        url: str,
        fallback: Optional[ListingFallback] = None,
        listing_id: Optional[str] = None,
    ) -> NormalizedDetail:
        """Drop the memo and fetch once; the persisted record is always overwritten."""
        self.cache.evict(url)
        record = await self._read(listing_id)
        return await self._refresh(url, fallback, listing_id, record)

    async def refresh_listing(self, listing_id: str) -> NormalizedDetail:
        """Force-refresh a stored listing by id, using its own URL and fields."""
        record = await self._read(listing_id)
        if record is None or not record.url:
            raise LookupError(f"listing {listing_id} has no source URL")
        self.cache.evict(record.url)
        return await self._refresh(record.url, None, listing_id, record)

    # ------------------------------------------------------------------ #
    async def _refresh(
        self,
        url: str,
        fallback: Optional[ListingFallback],
        listing_id: Optional[str],
        record: Optional[ListingRecord],
    ) -> NormalizedDetail:
        fallback = fallback or (record.fallback() if record else None)
        if self.cache.waiters(url):
            logger.info("refresh of %s joins a running fetch", url)
        # a lookup already fetching this URL is joined and made to persist
        self._refreshing[url] = self._refreshing.get(url, 0) + 1
        try:
            return await self.cache.single_flight(
                url, lambda: self._fetch_and_store(url, fallback, listing_id)
            )
        finally:
            self._refreshing[url] -= 1
            if not self._refreshing[url]:
                del self._refreshing[url]

    async def _fetch_and_store(
        self,
        url: str,
        fallback: Optional[ListingFallback],
        listing_id: Optional[str],
        stale: Optional[NormalizedDetail] = None,
    ) -> NormalizedDetail:
        html = await self.fetcher(url)
        overwrite = url in self._refreshing
        if html is None:
            logger.info("no HTML for %s", url)
            if stale is not None and not overwrite:
                detail = normalize(stale, fallback, source_url=url)
                self.cache.put_memo(url, detail)
                return detail
            detail = normalize(None, fallback, source_url=url)
            self.cache.put_memo(url, None)
            if overwrite:
                await self._persist(listing_id, detail)
            return detail

        detail = normalize(self.parser(html, url), fallback, source_url=url)
        self.cache.put_memo(url, detail)
        await self._persist(listing_id, detail)
        return detail

    async def _persist(self, listing_id: Optional[str], detail: NormalizedDetail):
        if self.store is None or not listing_id:
            return
        try:
            await asyncio.to_thread(
                self.store.update,
                listing_id,
                detail.model_dump(mode="json"),
                self.cache.now(),
                scrape_status(detail),
            )
        except Exception:
            logger.exception("persisting detail for listing %s failed", listing_id)

    async def _read(self, listing_id: Optional[str]) -> Optional[ListingRecord]:
        if self.store is None or not listing_id:
            return None
        try:
            return await asyncio.to_thread(self.store.read, listing_id)
        except Exception:
            logger.exception("reading listing %s failed", listing_id)
            return None

    @staticmethod
    def _cached_detail(record: Optional[ListingRecord]) -> Optional[NormalizedDetail]:
        if record is None or not record.detail_json:
            return None
        try:
            return NormalizedDetail.model_validate(record.detail_json)
        except ValidationError:
            logger.warning("discarding unreadable cached detail for listing %s", record.id)
            return None
