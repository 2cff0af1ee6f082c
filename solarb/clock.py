"""
Time source shared by the scheduler, scanner and execution engine.

Everything that waits or reads "now" goes through a Clock so tests can
drive timers deterministically.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable


class Clock:
    """Wall-clock and event-loop backed clock."""

    def time(self) -> float:
        """Monotonic seconds, for intervals."""
        return time.monotonic()

    def now(self) -> datetime:
        """Timezone-aware UTC wall-clock time, for timestamps."""
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        """Schedule a plain callback; the returned handle supports cancel()."""
        return asyncio.get_running_loop().call_later(delay, callback, *args)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


_clock = Clock()


def get_clock() -> Clock:
    """Get the process-wide default clock."""
    return _clock
