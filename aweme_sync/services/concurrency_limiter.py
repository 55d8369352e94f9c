import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from aweme_sync.config_loader import config

T = TypeVar("T")


class ConcurrencyLimiter:
    """Caps in-flight remote calls shared by every pipeline stage."""

    def __init__(self, max_concurrent: Optional[int] = None):
        self.max_concurrent = max(1, max_concurrent or config.MAX_CONCURRENT_REQUESTS)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self.in_flight = 0
        self.peak_in_flight = 0

    async def run(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        async with self._semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return await func(*args, **kwargs)
            finally:
                self.in_flight -= 1
