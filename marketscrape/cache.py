import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from .schema import NormalizedDetail

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]

MISSING = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


@dataclass
class CacheEntry:
    value: Optional[NormalizedDetail]   # None records a failed fetch
    fetched_at: datetime


@dataclass
class _Flight:
    task: asyncio.Task
    waiters: int = 0


class DetailCache:
    """
    Process-local memo of normalized details plus the persisted-record
    freshness policy.

    The memo is guarded by a lock so worker threads and the event loop can
    share one instance. ``single_flight`` keeps at most one fetch per key in
    flight on the running loop.
    """

    def __init__(
        self,
        memo_ttl: timedelta = timedelta(minutes=5),
        freshness: timedelta = timedelta(hours=24),
        clock: Clock = utcnow,
    ):
        self.memo_ttl = memo_ttl
        self.freshness = freshness
        self.clock = clock
        self._memo: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._flights: Dict[str, _Flight] = {}

    def now(self) -> datetime:
        return _aware(self.clock())

    # ---- memo ----------------------------------------------------------
    def get_memo(self, key: str):
        """The memoized value, or ``MISSING`` when absent or expired."""
        with self._lock:
            entry = self._memo.get(key)
            if entry is None:
                return MISSING
            if self.now() - entry.fetched_at > self.memo_ttl:
                del self._memo[key]
                return MISSING
            return entry.value

    def put_memo(self, key: str, value: Optional[NormalizedDetail], fetched_at: Optional[datetime] = None):
        with self._lock:
            self._memo[key] = CacheEntry(value=value, fetched_at=_aware(fetched_at) if fetched_at else self.now())

    def evict(self, key: str) -> bool:
        with self._lock:
            return self._memo.pop(key, None) is not None

    # ---- persisted freshness ------------------------------------------
    def is_fresh(self, cached_at: Optional[datetime]) -> bool:
        if cached_at is None:
            return False
        return self.now() - _aware(cached_at) < self.freshness

    # ---- single flight ------------------------------------------------
    async def single_flight(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        flight = self._flights.get(key)
        if flight is None or flight.task.done():
            task = asyncio.ensure_future(factory())
            flight = _Flight(task=task)
            self._flights[key] = flight
            task.add_done_callback(lambda _t, k=key, f=flight: self._forget(k, f))
        else:
            logger.debug("joining in-flight fetch for %s", key)

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                # last interested caller went away
                flight.task.cancel()

    def _forget(self, key: str, flight: _Flight):
        if self._flights.get(key) is flight:
            del self._flights[key]

    def waiters(self, key: str) -> int:
        """Callers awaiting the running fetch for ``key``; 0 when none is running."""
        flight = self._flights.get(key)
        if flight is None or flight.task.done():
            return 0
        return flight.waiters
