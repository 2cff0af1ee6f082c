"""
Tests for the scan-and-trade orchestration.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeClock

from solarb.engine.arbitrage_bot import ArbitrageBot
from solarb.engine.opportunity_scanner import OpportunityScanner
from solarb.models import ExecutionResult, ExecutionStatus, PricePoint


class BlockingSleepClock(FakeClock):
    """Background loops park on sleep until cancelled."""

    async def sleep(self, seconds) -> None:
        self.sleeps.append(seconds)
        await asyncio.Event().wait()


def make_bot(prices_by_token, clock=None, execute=None):
    """
    Bot over fake collaborators. Monitored tokens are RAY and BONK.

    prices_by_token maps a symbol to a list of (venue, price) or to an
    exception to raise.
    """
    clock = clock or FakeClock()

    async def get_prices(token):
        entry = prices_by_token.get(token, [])
        if isinstance(entry, Exception):
            raise entry
        return [
            PricePoint(venue=venue, price=Decimal(str(price)), observed_at=clock.now())
            for venue, price in entry
        ]

    aggregator = MagicMock()
    aggregator.get_prices = AsyncMock(side_effect=get_prices)
    aggregator.connect = AsyncMock()
    aggregator.disconnect = AsyncMock()
    aggregator.get_stats.return_value = {}

    engine = MagicMock()
    engine.balance = Decimal("20")
    engine.dry_run = True
    engine.init = AsyncMock(return_value=Decimal("20"))
    engine.wait_idle = AsyncMock()
    engine.router.connect = AsyncMock()
    engine.router.disconnect = AsyncMock()

    async def default_execute(opportunity):
        return ExecutionResult(opportunity=opportunity, status=ExecutionStatus.COMPLETED,
                               realized_profit=Decimal("0.2"))

    engine.execute = AsyncMock(side_effect=execute or default_execute)

    monitor = MagicMock()
    monitor.start = AsyncMock()
    monitor.stop = AsyncMock()
    monitor.get_stats.return_value = {}

    ledger = MagicMock()
    notifier = AsyncMock()

    scanner = OpportunityScanner(clock=clock, slippage=0.01, min_profit_pct=0.005, near_miss_margin_pct=0.2)
    return ArbitrageBot(
        aggregator=aggregator,
        scanner=scanner,
        ledger=ledger,
        notifier=notifier,
        engine=engine,
        monitor=monitor,
        clock=clock,
    )


class TestScanAndTrade:

    @pytest.mark.asyncio
    async def test_best_opportunities_executed_first(self):
        bot = make_bot({
            "RAY": [("Raydium", 100), ("Orca", 105)],
            "BONK": [("Raydium", 100), ("Meteora", 110)],
        })

        results = await bot.scan_and_trade("test")

        assert len(results) == 2
        executed = [call.args[0].token_pair for call in bot.engine.execute.await_args_list]
        assert executed == ["BONK/SOL", "RAY/SOL"]
        assert bot.notifier.notify_trade.await_count == 2

    @pytest.mark.asyncio
    async def test_opportunities_recorded_then_marked_taken(self):
        async def execute(opportunity):
            status = ExecutionStatus.COMPLETED if opportunity.token == "BONK" else ExecutionStatus.SKIPPED
            return ExecutionResult(opportunity=opportunity, status=status)

        bot = make_bot({
            "RAY": [("Raydium", 100), ("Orca", 105)],
            "BONK": [("Raydium", 100), ("Meteora", 110)],
        }, execute=execute)

        await bot.scan_and_trade("test")

        calls = bot.ledger.record_opportunity.call_args_list
        assert [c.kwargs["taken"] for c in calls] == [False, False, True]
        assert calls[2].args[0].token == "BONK"
        bot.notifier.notify_trade.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_execution_capped_per_scan(self):
        bot = make_bot({
            "RAY": [("Raydium", 100), ("Orca", 105), ("Meteora", 112)],
            "BONK": [("Raydium", 100), ("Meteora", 110)],
        })
        bot.max_per_scan = 3

        await bot.scan_and_trade("test")

        assert bot.ledger.record_opportunity.call_count == 4 + 3
        assert bot.engine.execute.await_count == 3

    @pytest.mark.asyncio
    async def test_delay_between_tokens(self):
        bot = make_bot({})

        await bot.scan_and_trade("test")

        assert bot._clock.sleeps == [0.3]
        assert bot.aggregator.get_prices.await_count == 2

    @pytest.mark.asyncio
    async def test_near_miss_alert(self):
        bot = make_bot({"RAY": [("Raydium", 100), ("Orca", 100.4)]})

        await bot.scan_and_trade("test")

        bot.notifier.notify_near_miss.assert_awaited_once()
        report = bot.notifier.notify_near_miss.await_args.args[0]
        assert report.token == "RAY"
        bot.engine.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_venue_skipped(self):
        bot = make_bot({"RAY": [("Raydium", 100)]})

        assert await bot.scan_and_trade("test") == []
        assert bot.scanner.metrics["evaluations"] == 0

    @pytest.mark.asyncio
    async def test_token_error_does_not_stop_scan(self):
        bot = make_bot({
            "RAY": RuntimeError("quote api down"),
            "BONK": [("Raydium", 100), ("Meteora", 110)],
        })

        results = await bot.scan_and_trade("test")

        assert [r.opportunity.token for r in results] == ["BONK"]

    @pytest.mark.asyncio
    async def test_execution_error_does_not_stop_scan(self):
        async def execute(opportunity):
            if opportunity.token == "BONK":
                raise RuntimeError("engine exploded")
            return ExecutionResult(opportunity=opportunity, status=ExecutionStatus.COMPLETED,
                                   realized_profit=Decimal("0.2"))

        bot = make_bot({
            "RAY": [("Raydium", 100), ("Orca", 105)],
            "BONK": [("Raydium", 100), ("Meteora", 110)],
        }, execute=execute)

        results = await bot.scan_and_trade("test")

        assert bot.engine.execute.await_count == 2
        assert [r.opportunity.token for r in results] == ["RAY"]
        bot.notifier.notify_error.assert_awaited_once()
        assert "BONK/SOL" in bot.notifier.notify_error.await_args.args[0]


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_runs_boot_scan_and_stop_cleans_up(self):
        clock = BlockingSleepClock()
        bot = make_bot({}, clock=clock)
        bot.token_scan_delay = 0

        await bot.start()

        assert bot.is_running
        assert bot.scheduler.is_running
        bot.monitor.start.assert_awaited_once()
        bot.notifier.notify_startup.assert_awaited_once()
        assert bot.scheduler.get_stats()["scans_completed"] == 1
        assert bot.aggregator.get_prices.await_count == 2

        await bot.stop()

        assert not bot.is_running
        assert not bot.scheduler.is_running
        bot.monitor.stop.assert_awaited_once()
        bot.engine.wait_idle.assert_awaited_once()
        bot.aggregator.disconnect.assert_awaited_once()
        bot.engine.router.disconnect.assert_awaited_once()
        assert clock.pending == []

    @pytest.mark.asyncio
    async def test_run_returns_after_stop(self):
        clock = BlockingSleepClock()
        bot = make_bot({}, clock=clock)
        bot.token_scan_delay = 0

        running = asyncio.ensure_future(bot.run())
        for _ in range(50):
            await asyncio.sleep(0)
        assert not running.done()
        assert bot.is_running

        await bot.stop()
        await asyncio.wait_for(running, timeout=1)
