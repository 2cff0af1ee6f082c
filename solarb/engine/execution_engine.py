"""
Trade execution with live re-quoting and partial-failure safety.

Safety layers (outermost first):
1. Circuit breaker: no trading once the day's losses reach the limit
2. Sizing: hard cap per trade, soft cap on balance, absolute profit floor
3. Gas reserve: never spend the SOL needed for fees
4. Live quotes and dual simulation before any capital moves
5. DRY_RUN: build, sign and simulate but never submit
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Dict, Optional

from solarb.clock import Clock, get_clock
from solarb.config import LAMPORTS_PER_SOL, get_config, get_token_mint
from solarb.engine.risk import RiskManager
from solarb.models import (
    ExecutionResult, ExecutionStatus, Opportunity, Quote, TradeIntent,
)
from solarb.logger import get_logger, trade_logger


logger = get_logger("execution")

HUNDRED = Decimal("100")


@dataclass
class _PreparedTrade:
    """A trade that passed every pre-commitment check."""
    intent: TradeIntent
    buy_quote: Quote
    sell_quote: Quote
    buy_value_usd: Decimal
    sell_value_usd: Decimal
    profit_usd: Decimal
    profit_percent: Decimal
    sol_price: Decimal


class ExecutionEngine:
    """
    Executes one opportunity at a time as a buy leg then a sell leg.

    Owns the running USD balance and, through RiskManager, the circuit
    breaker and per-pair sell failure counters. Every result that moved
    (or in dry run would have moved) capital is written to the ledger.
    """

    def __init__(
        self,
        router,
        ledger,
        notifier,
        risk: Optional[RiskManager] = None,
        clock: Optional[Clock] = None,
        dry_run: Optional[bool] = None,
    ):
        config = get_config()
        self.router = router
        self.ledger = ledger
        self.notifier = notifier
        self._clock = clock or get_clock()
        self.risk = risk or RiskManager(clock=self._clock)
        self.dry_run = config.is_dry_run if dry_run is None else dry_run

        self.base_token = config.trading.base_token
        self.base_mint = config.base_mint
        self.starting_capital = Decimal(str(config.trading.starting_capital))
        self.balance = self.starting_capital

        self.max_trade_usd = Decimal(str(config.risk.max_trade_amount_usd))
        self.balance_fraction = Decimal(str(config.trading.balance_fraction))
        self.min_profit_absolute = Decimal(str(config.trading.min_profit_absolute))
        self.gas_reserve_sol = Decimal(str(config.risk.sol_gas_reserve))
        self.sell_retry_count = config.risk.sell_retry_count
        self.sell_retry_backoff = config.risk.sell_retry_backoff_seconds
        self.alert_quote_diff_usd = Decimal(str(config.risk.alert_quote_diff_usd))

        # Serializes trades and sweeps
        self.lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None

        # Execution metrics
        self._counts: Dict[str, int] = {status.value: 0 for status in ExecutionStatus}

    async def init(self) -> Decimal:
        """
        Seed the running balance.

        On-chain SOL minus the gas reserve when readable, otherwise the last
        ledger snapshot, otherwise the configured starting capital.
        """
        sol_price = await self.router.get_sol_price_usd()
        sol_balance = await self.router.get_sol_balance()

        if sol_price and sol_balance is not None:
            tradeable = max(Decimal("0"), sol_balance - self.gas_reserve_sol)
            self.balance = tradeable * sol_price
            logger.info(
                "Balance seeded from chain",
                sol=f"{sol_balance:.4f}",
                sol_price=f"${sol_price:.2f}",
                tradeable=f"${self.balance:.2f}",
                gas_reserve_sol=str(self.gas_reserve_sol),
            )
        else:
            snapshot = self.ledger.get_current_balance_snapshot()
            self.balance = snapshot.balance_usd if snapshot else self.starting_capital
            logger.warning(
                "Could not read on-chain balance, using recorded balance",
                balance=f"${self.balance:.2f}",
            )
        return self.balance

    def credit_balance(self, amount_usd: Decimal) -> None:
        """Return capital to the running balance (e.g. after a sweep)."""
        self.balance += amount_usd

    async def execute(self, opportunity: Opportunity) -> ExecutionResult:
        """
        Execute an opportunity.

        Returns:
            SKIPPED when a check fails before any capital moves, ABORTED when
            the buy leg fails, PARTIAL_FAILURE when every sell fails after the
            buy, COMPLETED otherwise.
        """
        await self.lock.acquire()
        try:
            prepared = await self._prepare(opportunity)
        except BaseException:
            self.lock.release()
            raise

        if isinstance(prepared, ExecutionResult):
            self.lock.release()
            self._counts[prepared.status.value] += 1
            return prepared

        # From the buy onward the legs run to completion even if the caller
        # is cancelled; the lock stays held until they settle.
        task = asyncio.ensure_future(self._commit(prepared))
        task.add_done_callback(lambda _: self.lock.release())
        self._inflight = task
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait for an execution whose legs are still settling."""
        task = self._inflight
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def _prepare(self, opportunity: Opportunity):
        """Run every pre-commitment check; a result means skip or abort."""
        pair = opportunity.token_pair

        if self.risk.is_halted:
            logger.warning("circuit_breaker_halted", pair=pair, resets_at=self.risk.next_reset_at().isoformat())
            return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="circuit_breaker_halted")

        try:
            intent, reason = self._size_trade(opportunity)
            if intent is None:
                return self._finish(opportunity, ExecutionStatus.SKIPPED, reason=reason)

            sol_price = await self.router.get_sol_price_usd()
            if not sol_price or sol_price <= 0:
                return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="sol_price_unavailable",
                                    amount_usd=intent.amount_usd)

            reason = await self._check_gas_reserve(intent.amount_usd, sol_price)
            if reason:
                return self._finish(opportunity, ExecutionStatus.SKIPPED, reason=reason,
                                    amount_usd=intent.amount_usd)

            return await self._requote(intent, sol_price)

        except Exception as e:
            logger.error(f"Trade preparation failed: {e}", pair=pair, exc_info=True)
            return self._finish(opportunity, ExecutionStatus.ABORTED, reason=f"error: {e}")

    def _size_trade(self, opportunity: Opportunity):
        """Apply the hard cap, balance soft cap and absolute profit floor."""
        amount = min(self.max_trade_usd, self.balance * self.balance_fraction)
        if amount <= 0:
            return None, "insufficient_balance"

        profit_per_dollar = (opportunity.sell_price - opportunity.buy_price) / opportunity.buy_price
        estimated_profit = amount * profit_per_dollar
        if estimated_profit < self.min_profit_absolute:
            logger.info(
                "Estimated profit below floor",
                pair=opportunity.token_pair,
                estimated=f"${estimated_profit:.4f}",
                floor=f"${self.min_profit_absolute}",
            )
            return None, "below_min_profit_absolute"

        return TradeIntent(
            opportunity=opportunity,
            amount_usd=amount,
            estimated_profit_usd=estimated_profit,
        ), None

    async def _check_gas_reserve(self, amount_usd: Decimal, sol_price: Decimal) -> Optional[str]:
        sol_balance = await self.router.get_sol_balance()
        if sol_balance is None:
            return "sol_balance_unavailable"

        required = self.gas_reserve_sol + amount_usd / sol_price
        if sol_balance < required:
            logger.warning(
                "Insufficient SOL for trade plus gas reserve",
                have=f"{sol_balance:.4f}",
                need=f"{required:.4f}",
            )
            return "insufficient_sol"
        return None

    async def _requote(self, intent: TradeIntent, sol_price: Decimal):
        """Re-validate against live quotes, then simulate both legs."""
        opportunity = intent.opportunity
        token = opportunity.token
        token_mint = get_token_mint(token)
        if not token_mint:
            return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="unknown_token",
                                amount_usd=intent.amount_usd)

        buy_lamports = int(intent.amount_usd / sol_price * LAMPORTS_PER_SOL)
        buy_quote = await self.router.get_quote(self.base_mint, token_mint, buy_lamports)
        if not buy_quote:
            return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="no_buy_quote",
                                amount_usd=intent.amount_usd)

        # Sell exactly what the buy is expected to deliver
        sell_quote = await self.router.get_quote(token_mint, self.base_mint, buy_quote.out_amount)
        if not sell_quote:
            return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="no_sell_quote",
                                amount_usd=intent.amount_usd)

        buy_value = Decimal(buy_lamports) / LAMPORTS_PER_SOL * sol_price
        sell_value = Decimal(sell_quote.out_amount) / LAMPORTS_PER_SOL * sol_price
        profit = sell_value - buy_value
        profit_percent = profit / buy_value * HUNDRED if buy_value > 0 else Decimal("0")

        required_percent = self.risk.effective_threshold(opportunity.token_pair) * HUNDRED
        logger.info(
            "Live quote spread",
            pair=opportunity.token_pair,
            buy_usd=f"${buy_value:.4f}",
            sell_usd=f"${sell_value:.4f}",
            profit=f"${profit:.4f}",
            profit_pct=f"{profit_percent:.3f}%",
            required_pct=f"{required_percent:.3f}%",
        )
        if profit <= 0 or profit_percent < required_percent:
            return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="unprofitable_quote",
                                amount_usd=intent.amount_usd, profit_percent=profit_percent)

        # Both legs must simulate before the first one is committed
        buy_ok = await self.router.simulate(buy_quote, f"SIM-BUY {token}")
        sell_ok = await self.router.simulate(sell_quote, f"SIM-SELL {token}")
        if not (buy_ok and sell_ok):
            return self._finish(opportunity, ExecutionStatus.SKIPPED, reason="simulation_failed",
                                amount_usd=intent.amount_usd, profit_percent=profit_percent)

        return _PreparedTrade(
            intent=intent,
            buy_quote=buy_quote,
            sell_quote=sell_quote,
            buy_value_usd=buy_value,
            sell_value_usd=sell_value,
            profit_usd=profit,
            profit_percent=profit_percent,
            sol_price=sol_price,
        )

    async def _commit(self, trade: _PreparedTrade) -> ExecutionResult:
        """Submit the legs and settle the books."""
        opportunity = trade.intent.opportunity
        token = opportunity.token

        realized_profit = trade.profit_usd
        if self.dry_run:
            logger.info("🧪 DRY RUN - skipping on-chain submission", pair=opportunity.token_pair)
            buy_ref, sell_ref, attempts = "dry-run-buy", "dry-run-sell", 1
        else:
            sol_before = await self._wallet_sol()
            try:
                buy_ref = await self.router.submit(trade.buy_quote, f"BUY {token}")
            except Exception as e:
                logger.error(f"Buy submission error: {e}", pair=opportunity.token_pair, exc_info=True)
                buy_ref, reason = None, f"error: {e}"
            else:
                reason = "buy_failed"
            trade_logger.log_leg_submitted(opportunity.token_pair, "buy", buy_ref)
            if not buy_ref:
                logger.error("Buy leg failed, sell leg aborted", pair=opportunity.token_pair)
                result = self._finish(opportunity, ExecutionStatus.ABORTED, reason=reason,
                                      amount_usd=trade.intent.amount_usd,
                                      profit_percent=trade.profit_percent)
                self._counts[result.status.value] += 1
                return result

            sell_ref, attempts = await self._sell_with_retries(trade.sell_quote, opportunity)
            if sell_ref:
                measured = await self._measure_profit(sol_before, trade.sol_price)
                if measured is not None:
                    realized_profit = measured

        if sell_ref:
            buy_value = trade.buy_value_usd
            result = self._finish(
                opportunity, ExecutionStatus.COMPLETED,
                buy_ref=buy_ref, sell_ref=sell_ref,
                realized_profit=realized_profit,
                amount_usd=trade.intent.amount_usd,
                buy_value_usd=buy_value,
                sell_value_usd=buy_value + realized_profit,
                profit_percent=realized_profit / buy_value * HUNDRED if buy_value > 0 else Decimal("0"),
                sell_attempts=attempts,
            )
        else:
            result = self._finish(
                opportunity, ExecutionStatus.PARTIAL_FAILURE,
                buy_ref=buy_ref,
                realized_profit=Decimal("0"),
                amount_usd=trade.intent.amount_usd,
                buy_value_usd=trade.buy_value_usd,
                profit_percent=Decimal("0"),
                sell_attempts=attempts,
                reason="sell_failed",
            )

        self._counts[result.status.value] += 1
        await self._settle(result, trade)
        return result

    async def _sell_with_retries(self, sell_quote: Quote, opportunity: Opportunity):
        """Submit the sell leg with exponential backoff between attempts."""
        max_attempts = 1 + self.sell_retry_count
        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            try:
                sell_ref = await self.router.submit(
                    sell_quote, f"SELL {opportunity.token} (attempt {attempt})"
                )
            except Exception as e:
                # The buy already landed; an error here counts as a failed attempt
                logger.error(f"Sell submission error: {e}", pair=opportunity.token_pair, exc_info=True)
                sell_ref = None
            trade_logger.log_leg_submitted(opportunity.token_pair, "sell", sell_ref, attempt)
            if sell_ref:
                return sell_ref, attempt

            logger.error(f"❌ Sell attempt {attempt}/{max_attempts} failed", pair=opportunity.token_pair)
            if attempt < max_attempts:
                await self._clock.sleep(self.sell_retry_backoff * 2 ** (attempt - 1))

        logger.critical(
            "Sell leg failed after buy completed",
            pair=opportunity.token_pair,
            attempts=max_attempts,
        )
        return None, max_attempts

    async def _wallet_sol(self) -> Optional[Decimal]:
        try:
            return await self.router.get_sol_balance()
        except Exception as e:
            logger.warning(f"Could not read SOL balance: {e}")
            return None

    async def _measure_profit(self, sol_before: Optional[Decimal], sol_price: Decimal) -> Optional[Decimal]:
        """
        Realized profit in USD from the wallet's SOL before the buy and after
        the sell, so fees and fill slippage are included. None if either
        balance is unreadable; the caller then books the quoted profit.
        """
        sol_after = await self._wallet_sol()
        if sol_before is None or sol_after is None:
            logger.warning("Wallet balance unavailable, booking quoted profit")
            return None
        return (sol_after - sol_before) * sol_price

    async def _settle(self, result: ExecutionResult, trade: _PreparedTrade) -> None:
        """Apply a traded result to balance, risk state, alerts and the ledger."""
        pair = result.opportunity.token_pair

        if result.status == ExecutionStatus.PARTIAL_FAILURE:
            # Capital is parked in the intermediate token until swept
            self.balance -= result.amount_usd
            failures = self.risk.record_sell_failure(pair)
            await self._notify(self.notifier.notify_partial_failure(result))
            if failures == self.risk.failure_threshold:
                await self._notify(self.notifier.notify_threshold_raised(
                    pair, failures, self.risk.effective_threshold(pair)
                ))
        else:
            self.balance += result.realized_profit
            if self.risk.record_sell_success(pair):
                await self._notify(self.notifier.notify_threshold_reverted(pair, self.risk.base_threshold))
            if result.realized_profit < 0 and self.risk.record_loss(-result.realized_profit):
                await self._notify(self.notifier.notify_circuit_breaker(
                    self.risk.daily_loss, self.risk.max_daily_loss
                ))
            await self._check_quote_discrepancy(result, trade)

        trade_logger.log_trade_finished(
            pair, result.status.value, float(result.realized_profit), result.reason
        )

        try:
            self.ledger.record_trade(result)
            snapshot = self.ledger.get_current_balance_snapshot()
            self.ledger.update_balance_snapshot(
                balance_usd=self.balance,
                total_trades=(snapshot.total_trades if snapshot else 0) + 1,
                winning_trades=(snapshot.winning_trades if snapshot else 0)
                + (1 if result.realized_profit > 0 else 0),
                total_profit=(snapshot.total_profit if snapshot else Decimal("0"))
                + result.realized_profit,
                timestamp=result.executed_at,
            )
        except Exception as e:
            logger.error(f"Failed to persist trade: {e}", pair=pair, exc_info=True)

        logger.info(
            "Trade settled",
            pair=pair,
            status=result.status.value,
            profit=f"${result.realized_profit:.4f}",
            balance=f"${self.balance:.2f}",
        )

    async def _check_quote_discrepancy(self, result: ExecutionResult, trade: _PreparedTrade) -> None:
        if self.alert_quote_diff_usd <= 0:
            return
        quoted = trade.intent.estimated_profit_usd
        if abs(result.realized_profit - quoted) >= self.alert_quote_diff_usd:
            await self._notify(self.notifier.notify_quote_discrepancy(
                result.opportunity.token_pair, quoted, result.realized_profit, result
            ))

    async def _notify(self, coro: Awaitable[Any]) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

    def _finish(self, opportunity: Opportunity, status: ExecutionStatus, **fields) -> ExecutionResult:
        result = ExecutionResult(
            opportunity=opportunity,
            status=status,
            simulated=self.dry_run,
            executed_at=self._clock.now(),
            **fields,
        )
        if status in (ExecutionStatus.SKIPPED, ExecutionStatus.ABORTED):
            logger.info(
                f"Trade {status.value}",
                pair=opportunity.token_pair,
                reason=result.reason,
            )
        return result

    def get_stats(self) -> Dict:
        return {
            "balance": float(self.balance),
            "dry_run": self.dry_run,
            **{f"{status}_count": count for status, count in self._counts.items()},
            **self.risk.get_stats(),
        }
