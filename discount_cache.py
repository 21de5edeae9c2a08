import asyncio
import logging
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60


class DiscountCache(Generic[T]):
    """Single-entry TTL cache for the automatic discount list.

    One instance is shared by every cart its owner analyzes. Concurrent misses
    wait on the same fetch rather than each hitting the platform.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[T] = None
        self._fetched_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        return (
            self._fetched_at is not None
            and self._clock() - self._fetched_at < self.ttl_seconds
        )

    async def get_or_fetch(self, fetch: Callable[[], Awaitable[T]]) -> T:
        if self._fresh():
            logger.debug("Discount cache hit")
            return self._value

        async with self._lock:
            # Another caller may have refilled the entry while we waited
            if self._fresh():
                return self._value

            logger.debug("Discount cache miss, fetching")
            now = self._clock()
            value = await fetch()
            self._value = value
            self._fetched_at = now
            return value

    def clear(self) -> None:
        self._value = None
        self._fetched_at = None
