"""Fixed-delay request pacing.

Affiliate APIs publish quotas as "N calls per minute". Each adapter keeps a
pacer per endpoint family and waits before every call so that consecutive
calls are at least `min_interval` seconds apart (60 / N plus headroom).
Bursts are never allowed (no token bucket).
"""

import asyncio
import time


class RequestPacer:
    """Enforce a minimum interval between successive calls."""

    def __init__(self, min_interval: float) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self._lock = asyncio.Lock()
        self._last_call: float | None = None

    async def wait(self) -> None:
        """Sleep until the next call is allowed, then claim the slot."""
        async with self._lock:
            if self._last_call is not None and self.min_interval > 0:
                elapsed = time.monotonic() - self._last_call
                if elapsed < self.min_interval:
                    await asyncio.sleep(self.min_interval - elapsed)
            self._last_call = time.monotonic()
