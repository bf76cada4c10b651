"""
Listing record persistence.

The pipeline only needs ``read`` and ``update``; ``SupabaseListingStore``
maps them onto the ``saved_listings`` table.
"""
import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from supabase import Client

from .config import get_settings
from .schema import ListingRecord
from .supabase_client import get_supabase

logger = logging.getLogger(__name__)

COLUMNS = (
    "id, url, title, price_raw, price_min, price_max, currency, orders_raw, image, "
    "detail_json, detail_updated_at, last_scrape_status"
)


class ListingStore(Protocol):
    def read(self, listing_id: str) -> Optional[ListingRecord]:
        ...

    def update(self, listing_id: str, detail_json: Dict[str, Any], cached_at: datetime, status: str) -> None:
        ...


class InMemoryListingStore:
    def __init__(self, records: Optional[Dict[str, ListingRecord]] = None):
        self._records: Dict[str, ListingRecord] = dict(records or {})
        self._lock = threading.Lock()
        self.updates = 0

    def add(self, record: ListingRecord) -> ListingRecord:
        with self._lock:
            self._records[record.id] = record
        return record

    def read(self, listing_id: str) -> Optional[ListingRecord]:
        with self._lock:
            return self._records.get(listing_id)

    def update(self, listing_id: str, detail_json: Dict[str, Any], cached_at: datetime, status: str) -> None:
        with self._lock:
            current = self._records.get(listing_id)
            if current is None:
                raise KeyError(f"unknown listing: {listing_id}")
            self._records[listing_id] = current.model_copy(
                update={"detail_json": detail_json, "cached_at": cached_at, "scrape_status": status}
            )
            self.updates += 1


def _row_to_record(row: Dict[str, Any]) -> ListingRecord:
    detail = row.get("detail_json")
    if isinstance(detail, str):
        detail = json.loads(detail) if detail else None
    return ListingRecord(
        id=str(row["id"]),
        url=row.get("url"),
        title=row.get("title"),
        price_raw=row.get("price_raw"),
        price_min=row.get("price_min"),
        price_max=row.get("price_max"),
        currency=row.get("currency"),
        orders_raw=row.get("orders_raw"),
        image=row.get("image"),
        detail_json=detail,
        cached_at=row.get("detail_updated_at"),
        scrape_status=row.get("last_scrape_status"),
    )


class SupabaseListingStore:
    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self._client = client
        self.table = table or get_settings().listings_table

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def read(self, listing_id: str) -> Optional[ListingRecord]:
        resp = self.client.table(self.table).select(COLUMNS).eq("id", listing_id).limit(1).execute()
        data = getattr(resp, "data", None) or []
        if not data:
            logger.info("Listing %s not found in %s", listing_id, self.table)
            return None
        return _row_to_record(data[0])

    def update(self, listing_id: str, detail_json: Dict[str, Any], cached_at: datetime, status: str) -> None:
        """
        Write the cached detail for one listing. Errors propagate; the
        detail service decides whether a failed write matters.
        """
        record = {
            "detail_json": detail_json,
            "detail_updated_at": cached_at.isoformat(),
            "last_scrape_status": status,
        }
        logger.info("Updating %s/%s: status=%s at %s", self.table, listing_id, status, record["detail_updated_at"])

        resp = self.client.table(self.table).update(record).eq("id", listing_id).execute()

        # supabase-py v2 returns an object with .data and .error
        error = getattr(resp, "error", None)
        if error:
            raise RuntimeError(f"Supabase error: {error}")
        logger.debug("Supabase response.data: %s", json.dumps(getattr(resp, "data", None), default=str))
