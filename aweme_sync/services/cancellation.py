import asyncio
from typing import Optional


class CancellationToken:
    """
    Cooperative cancellation flag.

    Long-running loops check `cancelled` at their checkpoints; `wait` sleeps but
    returns early once `cancel()` is called. In-flight calls are never interrupted.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancel requested") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds; return True if cancelled meanwhile."""
        if timeout <= 0:
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self.cancelled
