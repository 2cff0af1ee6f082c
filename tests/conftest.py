"""
Pytest configuration and shared fixtures.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pathlib import Path

# Set test environment
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG_MODE"] = "true"
os.environ["ENABLE_NOTIFICATIONS"] = "false"
os.environ["HELIUS_RPC_URL"] = ""
os.environ["WALLET_PRIVATE_KEY"] = ""
os.environ["MONITOR_PAIRS"] = "RAY/SOL,BONK/SOL"
os.environ["DATABASE_PATH"] = "./test_data/trading.db"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment."""
    test_dir = Path("./test_data")
    test_dir.mkdir(exist_ok=True)

    yield

    # Cleanup
    import shutil
    if test_dir.exists():
        shutil.rmtree(test_dir)


@pytest.fixture
def mock_config():
    """Provide the test configuration."""
    from solarb.config import get_config
    return get_config()


class FakeTimer:
    """Timer handle returned by FakeClock.call_later."""

    def __init__(self, due: float, callback, args):
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """
    Manually driven clock.

    Timers fire only from advance(); sleep() records the requested delay and
    returns after moving time forward by it.
    """

    def __init__(self, start: datetime = None):
        self._monotonic = 1000.0
        self._now = start or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        self.timers = []
        self.sleeps = []

    def time(self) -> float:
        return self._monotonic

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay, callback, *args) -> FakeTimer:
        timer = FakeTimer(self._monotonic + delay, callback, args)
        self.timers.append(timer)
        return timer

    async def sleep(self, seconds) -> None:
        self.sleeps.append(seconds)
        self._move(seconds)
        await asyncio.sleep(0)

    def set_now(self, moment: datetime) -> None:
        self._now = moment

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def _move(self, seconds) -> None:
        self._monotonic += seconds
        self._now += timedelta(seconds=seconds)

    async def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order and letting tasks run."""
        target = self._monotonic + seconds
        while True:
            due = sorted(
                (t for t in self.pending if t.due <= target + 1e-9),
                key=lambda t: t.due,
            )
            if not due:
                break
            timer = due[0]
            self._move(max(0.0, timer.due - self._monotonic))
            timer.cancelled = True
            timer.callback(*timer.args)
            await flush()
        self._move(max(0.0, target - self._monotonic))
        await flush()


async def flush(rounds: int = 10) -> None:
    """Let scheduled tasks run a few steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


def make_opportunity(
    token: str = "RAY",
    buy_venue: str = "Raydium",
    sell_venue: str = "Orca",
    buy_price: str = "0.0101",
    sell_price: str = "0.0105",
    profit_percent: str = "3.0",
    detected_at: datetime = None,
):
    from solarb.models import Opportunity
    return Opportunity(
        token_pair=f"{token}/SOL",
        buy_venue=buy_venue,
        sell_venue=sell_venue,
        buy_price=Decimal(buy_price),
        sell_price=Decimal(sell_price),
        profit_percent=Decimal(profit_percent),
        raw_spread_percent=Decimal(profit_percent),
        detected_at=detected_at or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc),
    )
