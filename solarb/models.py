"""
Data models for the Solana DEX Arbitrage Bot.
Defines all core data structures used throughout the system.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class SpreadClass(Enum):
    """How the best raw spread of a scan compares to the profit threshold."""
    MET = "met"
    NEAR_MISS = "near_miss"
    FAR = "far"


class ExecutionStatus(Enum):
    """Outcome of one execution attempt."""
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"  # bought, every sell failed
    ABORTED = "aborted"
    SKIPPED = "skipped"


class TxStatus(Enum):
    """Status of a submitted transaction."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class PricePoint:
    """A single venue's price for a token, in SOL per token base unit."""
    venue: str
    price: Decimal
    observed_at: datetime
    # Unknown for direct quote probes
    liquidity_usd: Optional[Decimal] = None
    volume_24h_usd: Optional[Decimal] = None
    source: str = "jupiter"
    pool_address: Optional[str] = None


@dataclass
class Opportunity:
    """A cross-venue spread that clears the profit threshold after slippage."""
    token_pair: str  # e.g. "RAY/SOL"
    buy_venue: str
    sell_venue: str

    # Slippage-adjusted prices
    buy_price: Decimal
    sell_price: Decimal

    profit_percent: Decimal  # percent units, 2.9 means 2.9%
    raw_spread_percent: Decimal = Decimal("0")
    detected_at: Optional[datetime] = None

    def __post_init__(self):
        if self.buy_venue == self.sell_venue:
            raise ValueError(f"buy and sell venue must differ, got {self.buy_venue}")
        if self.buy_price > self.sell_price:
            raise ValueError(
                f"buy price {self.buy_price} exceeds sell price {self.sell_price}"
            )

    @property
    def token(self) -> str:
        return self.token_pair.split("/")[0]

    @property
    def base_token(self) -> str:
        parts = self.token_pair.split("/")
        return parts[1] if len(parts) > 1 else "SOL"


@dataclass
class SpreadReport:
    """The widest raw spread seen for a token, used for threshold tuning."""
    token: str
    best_spread_percent: Decimal
    buy_venue: str
    sell_venue: str
    buy_price: Decimal
    sell_price: Decimal
    threshold_percent: Decimal
    classification: SpreadClass

    @property
    def gap_percent(self) -> Decimal:
        """Percentage points still missing to reach the threshold."""
        return self.threshold_percent - self.best_spread_percent


@dataclass
class ScanResult:
    """Output of evaluating one token's price points."""
    opportunities: List[Opportunity] = field(default_factory=list)
    best_spread: Optional[SpreadReport] = None


@dataclass
class TradeIntent:
    """A sized trade for one opportunity; lives for one execution attempt."""
    opportunity: Opportunity
    amount_usd: Decimal
    estimated_profit_usd: Decimal


@dataclass
class Quote:
    """A swap quote from the router, amounts in base units."""
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float = 0.0
    # Opaque payload handed back to the router to build the swap
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Result of an execution attempt, persisted through the ledger."""
    opportunity: Opportunity
    status: ExecutionStatus

    buy_ref: Optional[str] = None
    sell_ref: Optional[str] = None
    realized_profit: Decimal = Decimal("0")

    amount_usd: Decimal = Decimal("0")
    buy_value_usd: Decimal = Decimal("0")
    sell_value_usd: Decimal = Decimal("0")
    profit_percent: Decimal = Decimal("0")

    sell_attempts: int = 0
    reason: Optional[str] = None
    simulated: bool = False
    executed_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    @property
    def traded(self) -> bool:
        """True if any leg reached the chain (or would have, in dry run)."""
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.PARTIAL_FAILURE)


@dataclass
class RiskState:
    """Process-lifetime risk posture owned by the execution engine."""
    daily_loss: Decimal = Decimal("0")
    daily_loss_reset_at: Optional[datetime] = None
    halted: bool = False
    consecutive_sell_failures: Dict[str, int] = field(default_factory=dict)


@dataclass
class ScanGate:
    """Non-overlap and cooldown state owned by the scan scheduler."""
    last_scan_at: Optional[float] = None  # clock.time() at scan completion
    scan_in_progress: bool = False
    pending_debounce: Optional[Any] = None  # timer handle


@dataclass
class BalanceSnapshot:
    """Running balance and win/loss counters as stored in the ledger."""
    balance_usd: Decimal
    total_trades: int = 0
    winning_trades: int = 0
    total_profit: Decimal = Decimal("0")
    timestamp: Optional[datetime] = None

    @property
    def win_rate(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.winning_trades / self.total_trades


@dataclass
class TokenBalance:
    """An SPL token balance held by the wallet."""
    mint: str
    amount_raw: int
    ui_amount: float
    decimals: int = 0
