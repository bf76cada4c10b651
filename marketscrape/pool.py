import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_STOP = object()


@dataclass
class PoolResult(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WorkerPool(Generic[T, R]):
    """
    Fixed number of workers pulling items off one queue.

    A failing item is recorded on its ``PoolResult`` and the batch carries
    on. Results arrive in completion order. ``cancel`` aborts in-flight
    items; ``shutdown`` lets queued work drain first.

        async with WorkerPool(fetch_one, concurrency=5) as pool:
            results = await pool.run(urls)
    """

    def __init__(self, handler: Callable[[T], Awaitable[R]], concurrency: int = 5):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.handler = handler
        self.concurrency = concurrency
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._results: "asyncio.Queue[PoolResult]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._closed = False

    async def __aenter__(self) -> "WorkerPool[T, R]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            await self.shutdown()
        else:
            await self.cancel()

    def start(self):
        if self._closed:
            raise RuntimeError("pool is closed")
        if not self._workers:
            self._workers = [
                asyncio.ensure_future(self._worker(i)) for i in range(self.concurrency)
            ]

    async def _worker(self, idx: int):
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                try:
                    result = PoolResult(item=item, value=await self.handler(item))
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("worker %d: item failed: %r | %s: %s", idx, item, type(e).__name__, e)
                    result = PoolResult(item=item, error=e)
                self._results.put_nowait(result)
            finally:
                self._queue.task_done()

    async def run(self, items: Iterable[T]) -> List[PoolResult]:
        self.start()
        count = 0
        for item in items:
            self._queue.put_nowait(item)
            count += 1
        out = []
        try:
            for _ in range(count):
                out.append(await self._results.get())
        except asyncio.CancelledError:
            await self.cancel()
            raise
        return out

    async def shutdown(self):
        if self._closed:
            return
        self._closed = True
        for _ in self._workers:
            self._queue.put_nowait(_STOP)
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def cancel(self):
        self._closed = True
        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
