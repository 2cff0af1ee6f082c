"""
Top-level orchestrator.

Wires price sources, the scanner, the scan scheduler, the swap event feed,
the execution engine and the background loops (sweep, status, reports).
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

from solarb.clock import Clock, get_clock
from solarb.config import get_config
from solarb.database import get_database
from solarb.engine.execution_engine import ExecutionEngine
from solarb.engine.opportunity_scanner import OpportunityScanner
from solarb.engine.scan_scheduler import ScanScheduler
from solarb.engine.sweeper import AutoSweeper
from solarb.feeds.swap_monitor import SwapEventMonitor
from solarb.models import ExecutionResult, ExecutionStatus, Opportunity, SpreadClass
from solarb.notifications import get_notification_service
from solarb.prices.aggregator import PriceAggregator
from solarb.reports import ReportScheduler
from solarb.logger import get_logger, trade_logger


logger = get_logger("bot")


class ArbitrageBot:
    """
    Scan-and-trade loop driven by swap events with a polling fallback.

    Each scan walks the monitored tokens, records every opportunity it finds
    and executes the best few sequentially.
    """

    def __init__(
        self,
        aggregator: Optional[PriceAggregator] = None,
        scanner: Optional[OpportunityScanner] = None,
        router=None,
        ledger=None,
        notifier=None,
        engine: Optional[ExecutionEngine] = None,
        monitor: Optional[SwapEventMonitor] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = get_config()
        self._clock = clock or get_clock()

        self.aggregator = aggregator or PriceAggregator(clock=self._clock)
        self.scanner = scanner or OpportunityScanner(clock=self._clock)
        self.ledger = ledger or get_database()
        self.notifier = notifier or get_notification_service()

        if engine is None:
            if router is None:
                from solarb.trading.jupiter_client import JupiterClient
                router = JupiterClient(clock=self._clock)
            engine = ExecutionEngine(router, self.ledger, self.notifier, clock=self._clock)
        self.engine = engine
        self.router = engine.router

        self.scheduler = ScanScheduler(self.scan_and_trade, clock=self._clock)
        self.monitor = monitor or SwapEventMonitor(self.scheduler.on_signal, clock=self._clock)
        self.sweeper = AutoSweeper(self.engine, clock=self._clock)
        self.reports = ReportScheduler(
            self.ledger, self.notifier, lambda: self.engine.balance, clock=self._clock
        )

        self.tokens: List[str] = self.config.trading.tokens
        self.token_scan_delay = self.config.scan.token_scan_delay_ms / 1000
        self.max_per_scan = self.config.trading.max_opportunities_per_scan

        self._is_running = False
        self._stopped = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._start_time = None

        # Session counters
        self._scans = 0
        self._total_opportunities = 0
        self._executed_trades = 0

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def scan_and_trade(self, trigger: str = "manual") -> List[ExecutionResult]:
        """
        One full pass: evaluate every monitored token, then execute the best
        opportunities found across all of them.
        """
        self._scans += 1
        logger.info("🔍 Scan started", trigger=trigger, tokens=len(self.tokens))

        opportunities: List[Opportunity] = []
        for index, token in enumerate(self.tokens):
            if index > 0 and self.token_scan_delay > 0:
                await self._clock.sleep(self.token_scan_delay)
            try:
                opportunities.extend(await self._scan_token(token))
            except Exception as e:
                logger.error(f"Error scanning {token}: {e}")

        self._total_opportunities += len(opportunities)
        for opportunity in opportunities:
            self._record_opportunity(opportunity, taken=False)

        opportunities.sort(key=lambda o: o.profit_percent, reverse=True)
        results: List[ExecutionResult] = []
        for opportunity in opportunities[:self.max_per_scan]:
            try:
                result = await self.engine.execute(opportunity)
            except Exception as e:
                logger.error(f"Execution error for {opportunity.token_pair}: {e}", exc_info=True)
                try:
                    await self.notifier.notify_error(f"{opportunity.token_pair}: {e}", component="execution")
                except Exception as send_error:
                    logger.warning(f"Notification failed: {send_error}")
                continue
            results.append(result)
            if result.status == ExecutionStatus.COMPLETED:
                self._executed_trades += 1
                await self._send_trade_notification(result)
                self._record_opportunity(opportunity, taken=True)

        logger.info(
            "Scan finished",
            trigger=trigger,
            opportunities=len(opportunities),
            executed=len([r for r in results if r.status == ExecutionStatus.COMPLETED]),
            session_scans=self._scans,
            session_opportunities=self._total_opportunities,
            session_trades=self._executed_trades,
        )
        return results

    async def _scan_token(self, token: str) -> List[Opportunity]:
        prices = await self.aggregator.get_prices(token)
        if len(prices) < 2:
            logger.debug(f"Not enough prices for {token}", points=len(prices))
            return []

        result = self.scanner.evaluate(prices, token)

        report = result.best_spread
        if report is not None:
            trade_logger.log_best_spread(
                token,
                float(report.best_spread_percent),
                float(report.threshold_percent),
                report.classification.value,
                report.buy_venue,
                report.sell_venue,
            )
            if report.classification == SpreadClass.NEAR_MISS:
                try:
                    await self.notifier.notify_near_miss(report)
                except Exception as e:
                    logger.warning(f"Notification failed: {e}")

        for opportunity in result.opportunities:
            trade_logger.log_opportunity_detected(
                opportunity.token_pair,
                opportunity.buy_venue,
                opportunity.sell_venue,
                float(opportunity.profit_percent),
            )
        return result.opportunities

    def _record_opportunity(self, opportunity: Opportunity, taken: bool) -> None:
        try:
            self.ledger.record_opportunity(opportunity, taken=taken)
        except Exception as e:
            logger.error(f"Failed to record opportunity: {e}")

    async def _send_trade_notification(self, result: ExecutionResult) -> None:
        try:
            await self.notifier.notify_trade(result)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

    async def start(self) -> None:
        """Connect everything, seed the balance and run the boot scan."""
        logger.info("🚀 Starting arbitrage bot...")

        await asyncio.gather(
            self.aggregator.connect(),
            self.router.connect(),
            self.notifier.connect(),
        )

        balance = await self.engine.init()

        self._is_running = True
        self._start_time = self._clock.now()

        mode = "DRY RUN" if self.engine.dry_run else "LIVE TRADING"
        logger.info(
            f"Bot started in {mode} mode",
            balance=f"${balance:.2f}",
            pairs=",".join(self.config.trading.pairs),
            min_profit=f"{self.config.trading.min_profit_pct:.2%}",
            max_trade=f"${self.config.risk.max_trade_amount_usd:.2f}",
        )
        try:
            await self.notifier.notify_startup(balance, self.engine.dry_run, self.config.trading.pairs)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

        self.scheduler.start()
        await self.monitor.start()

        if self.config.sweep.enable_sweep:
            self._tasks.append(asyncio.create_task(
                self.sweeper.run_forever(self.config.sweep.sweep_interval_seconds, lambda: self._is_running)
            ))
        self._tasks.append(asyncio.create_task(self._status_loop()))
        self._tasks.append(asyncio.create_task(self.reports.run_forever(lambda: self._is_running)))

        await self.scheduler.trigger_now("boot")

    async def run(self) -> None:
        """Start and block until stop() is called."""
        await self.start()
        await self._stopped.wait()

    async def stop(self) -> None:
        """Stop feeds and loops, let in-flight work settle, close clients."""
        if not self._is_running:
            self._stopped.set()
            return
        logger.info("Stopping bot...")
        self._is_running = False

        await self.monitor.stop()
        await self.scheduler.stop()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        await self.engine.wait_idle()

        await asyncio.gather(
            self.aggregator.disconnect(),
            self.router.disconnect(),
            self.notifier.disconnect(),
        )

        self._log_session_summary()
        logger.info("Bot stopped")
        self._stopped.set()

    async def _status_loop(self) -> None:
        """Periodically log where the bot stands."""
        interval = self.config.scan.status_interval_seconds
        while self._is_running:
            await self._clock.sleep(interval)
            try:
                runtime = self._clock.now() - self._start_time if self._start_time else timedelta()
                engine_stats = self.engine.get_stats()
                scheduler_stats = self.scheduler.get_stats()
                logger.info(
                    "📊 Status Update",
                    runtime=f"{runtime.total_seconds() / 3600:.1f}h",
                    balance=f"${engine_stats['balance']:.2f}",
                    halted=engine_stats.get("halted", False),
                    scans=scheduler_stats["scans_completed"],
                    signals=scheduler_stats["signals_received"],
                    opportunities=self._total_opportunities,
                    trades=self._executed_trades,
                    swap_events=self.monitor.get_stats().get("swap_events", 0),
                )
            except Exception as e:
                logger.error(f"Status logging error: {e}")

    def _log_session_summary(self) -> None:
        if not self._start_time:
            return
        runtime = self._clock.now() - self._start_time
        logger.info(
            "📈 Session Summary",
            runtime=str(runtime),
            scans=self._scans,
            opportunities_found=self._total_opportunities,
            executed_trades=self._executed_trades,
            balance=f"${self.engine.balance:.2f}",
            **self.aggregator.get_stats(),
        )

    def get_stats(self) -> dict:
        return {
            "scans": self._scans,
            "opportunities": self._total_opportunities,
            "executed_trades": self._executed_trades,
            "engine": self.engine.get_stats(),
            "scheduler": self.scheduler.get_stats(),
            "scanner": self.scanner.metrics,
            "sweeper": self.sweeper.get_stats(),
        }
