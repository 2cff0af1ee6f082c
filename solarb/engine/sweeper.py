"""
Auto-sweep of residual token balances back to SOL.

Partial failures leave tokens stranded in the wallet; the sweeper sells
them once they are worth the fees.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from solarb.clock import Clock, get_clock
from solarb.config import LAMPORTS_PER_SOL, get_config, get_token_symbol
from solarb.models import TokenBalance
from solarb.logger import get_logger


logger = get_logger("sweeper")


class SweepOutcome(Enum):
    BASE = "base"
    UNKNOWN_MINT = "unknown_mint"
    NO_QUOTE = "no_quote"
    DUST = "dust"
    BELOW_CLEANUP = "below_cleanup"
    SIMULATION_FAILED = "simulation_failed"
    DRY_RUN = "dry_run"
    NO_GAS = "no_gas"
    SOLD = "sold"
    FAILED = "failed"
    ERROR = "error"


class AutoSweeper:
    """
    Liquidates non-base token balances through the execution engine's router.

    A sweep holds the engine's trade lock, so it never interleaves with a
    trade that is moving the same tokens.
    """

    def __init__(self, engine, clock: Optional[Clock] = None):
        config = get_config()
        self.engine = engine
        self.router = engine.router
        self.notifier = engine.notifier
        self._clock = clock or get_clock()

        self.base_mint = config.base_mint
        self.base_token = config.trading.base_token
        self.dust_usd = Decimal(str(config.sweep.dust_usd))
        self.cleanup_min_usd = Decimal(str(config.sweep.cleanup_min_usd))
        self.gas_reserve_sol = Decimal(str(config.risk.sol_gas_reserve))

        self._sweeps = 0
        self._tokens_sold = 0

    async def sweep_once(self) -> Dict[str, SweepOutcome]:
        """Inspect every token balance once; returns the outcome per mint."""
        outcomes: Dict[str, SweepOutcome] = {}

        async with self.engine.lock:
            self._sweeps += 1
            balances = await self.router.get_token_balances()
            if not balances:
                return outcomes

            sol_price = await self.router.get_sol_price_usd()
            if not sol_price:
                logger.warning("Sweep skipped, SOL price unavailable")
                return outcomes

            for balance in balances:
                try:
                    outcomes[balance.mint] = await self._sweep_token(balance, sol_price)
                except Exception as e:
                    logger.warning(f"Sweep error for {balance.mint}: {e}")
                    outcomes[balance.mint] = SweepOutcome.ERROR

        return outcomes

    async def _sweep_token(self, balance: TokenBalance, sol_price: Decimal) -> SweepOutcome:
        if balance.mint == self.base_mint:
            return SweepOutcome.BASE

        symbol = get_token_symbol(balance.mint)
        if not symbol:
            logger.info("Sweep: unknown mint, skipping", mint=balance.mint, amount=balance.ui_amount)
            return SweepOutcome.UNKNOWN_MINT

        quote = await self.router.get_quote(balance.mint, self.base_mint, balance.amount_raw)
        if not quote:
            logger.warning(f"Sweep: no sell quote for {symbol}")
            return SweepOutcome.NO_QUOTE

        value_usd = Decimal(quote.out_amount) / LAMPORTS_PER_SOL * sol_price
        if value_usd < self.dust_usd:
            logger.debug(f"Sweep: {symbol} is dust", value=f"${value_usd:.4f}")
            return SweepOutcome.DUST
        if value_usd < self.cleanup_min_usd:
            logger.info(f"Sweep: {symbol} below cleanup floor, deferring", value=f"${value_usd:.4f}")
            return SweepOutcome.BELOW_CLEANUP

        if not await self.router.simulate(quote, f"SIM-SWEEP {symbol}"):
            return SweepOutcome.SIMULATION_FAILED

        if self.engine.dry_run:
            await self._notify(f"🧪 Auto-sell dry run: {symbol} balance ~${value_usd:.2f} would be sold")
            return SweepOutcome.DRY_RUN

        sol_balance = await self.router.get_sol_balance()
        if sol_balance is None or sol_balance < self.gas_reserve_sol:
            logger.warning(f"Sweep aborted for {symbol}: insufficient SOL for fees")
            await self._notify(f"⚠️ Auto-sell aborted for {symbol}: insufficient SOL for fees")
            return SweepOutcome.NO_GAS

        signature = await self.router.submit(quote, f"AUTO-SELL {symbol}")
        if not signature:
            await self._notify(f"❌ Auto-sell failed for {symbol} (~${value_usd:.2f})")
            return SweepOutcome.FAILED

        self._tokens_sold += 1
        self.engine.credit_balance(value_usd)
        pair = f"{symbol}/{self.base_token}"
        self.engine.risk.record_sell_success(pair)
        logger.info(f"Auto-sell success: {symbol}", value=f"${value_usd:.2f}", signature=signature)
        await self._notify(
            f"✅ Auto-sell: sold {symbol} (~${value_usd:.2f}) → https://solscan.io/tx/{signature}"
        )
        return SweepOutcome.SOLD

    async def _notify(self, message: str) -> None:
        try:
            await self.notifier.notify(message)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

    async def run_forever(self, interval_seconds: float, is_running) -> None:
        """Sweep every interval while is_running() is true."""
        while is_running():
            try:
                outcomes = await self.sweep_once()
                if outcomes:
                    logger.debug("Sweep finished", outcomes={m: o.value for m, o in outcomes.items()})
            except Exception as e:
                logger.error(f"Sweep loop error: {e}")
            await self._clock.sleep(interval_seconds)

    def get_stats(self) -> Dict[str, int]:
        return {"sweeps": self._sweeps, "tokens_sold": self._tokens_sold}
