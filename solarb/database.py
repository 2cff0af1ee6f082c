"""
Ledger for trade history, balance snapshots and detected opportunities.
Uses SQLite for simplicity and persistence.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, create_engine, func
from sqlalchemy.orm import declarative_base, sessionmaker

from solarb.config import get_config
from solarb.models import BalanceSnapshot, ExecutionResult, ExecutionStatus, Opportunity
from solarb.logger import get_logger


logger = get_logger("database")

Base = declarative_base()


def _to_db_time(moment: Optional[datetime]) -> datetime:
    """SQLite has no timezone support; store naive UTC."""
    if moment is None:
        moment = datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _from_db_time(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None:
        return None
    return moment.replace(tzinfo=timezone.utc)


class TradeTable(Base):
    """One execution attempt that reached the chain (or would have, in dry run)."""

    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, index=True)
    pair = Column(String, index=True)
    buy_exchange = Column(String)
    sell_exchange = Column(String)

    # Leg values in USD, derived from the live quotes
    buy_price = Column(Float)
    sell_price = Column(Float)
    amount = Column(Float)

    profit_usd = Column(Float)
    profit_percent = Column(Float)

    status = Column(String)
    simulated = Column(Boolean, default=False)
    executed = Column(Boolean, default=True)
    notes = Column(Text, nullable=True)


class BalanceTable(Base):
    """Append-only balance snapshots; the latest row is the current balance."""

    __tablename__ = "balance"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, index=True)
    balance_usd = Column(Float)
    total_trades = Column(Integer, default=0)
    winning_trades = Column(Integer, default=0)
    total_profit = Column(Float, default=0.0)


class OpportunityTable(Base):
    """Detected opportunities, taken or not."""

    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, index=True)
    pair = Column(String, index=True)
    buy_exchange = Column(String)
    sell_exchange = Column(String)
    profit_percent = Column(Float)
    price_buy = Column(Float)
    price_sell = Column(Float)
    taken = Column(Boolean, default=False)


class Database:
    """Database manager for the trading bot."""

    def __init__(self, db_path: Optional[Path] = None):
        config = get_config()
        self.db_path = Path(db_path) if db_path else config.database.database_path

        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_url = f"sqlite:///{self.db_path}"
        self.engine = create_engine(db_url, echo=False)
        self.Session = sessionmaker(bind=self.engine)

        Base.metadata.create_all(self.engine)

        logger.info(f"Database initialized at {self.db_path}")

    def close(self) -> None:
        self.engine.dispose()

    # Balance

    def get_current_balance_snapshot(self) -> Optional[BalanceSnapshot]:
        """Latest balance snapshot, or None if nothing has been recorded yet."""
        with self.Session() as session:
            row = session.query(BalanceTable).order_by(BalanceTable.id.desc()).first()
            if row is None:
                return None
            return BalanceSnapshot(
                balance_usd=Decimal(str(row.balance_usd)),
                total_trades=row.total_trades or 0,
                winning_trades=row.winning_trades or 0,
                total_profit=Decimal(str(row.total_profit or 0)),
                timestamp=_from_db_time(row.timestamp),
            )

    def update_balance_snapshot(
        self,
        balance_usd: Decimal,
        total_trades: int,
        winning_trades: int,
        total_profit: Decimal,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Append a new balance snapshot."""
        with self.Session() as session:
            session.add(BalanceTable(
                timestamp=_to_db_time(timestamp),
                balance_usd=float(balance_usd),
                total_trades=total_trades,
                winning_trades=winning_trades,
                total_profit=float(total_profit),
            ))
            session.commit()

    # Trades and opportunities

    def record_trade(self, result: ExecutionResult) -> None:
        """Save an execution result."""
        opp = result.opportunity
        notes = []
        if result.buy_ref:
            notes.append(f"buy_tx={result.buy_ref}")
        if result.sell_ref:
            notes.append(f"sell_tx={result.sell_ref}")
        if result.reason:
            notes.append(f"reason={result.reason}")

        with self.Session() as session:
            session.add(TradeTable(
                timestamp=_to_db_time(result.executed_at),
                pair=opp.token_pair,
                buy_exchange=opp.buy_venue,
                sell_exchange=opp.sell_venue,
                buy_price=float(result.buy_value_usd),
                sell_price=float(result.sell_value_usd),
                amount=float(result.amount_usd),
                profit_usd=float(result.realized_profit),
                profit_percent=float(result.profit_percent),
                status=result.status.value,
                simulated=result.simulated,
                executed=result.traded,
                notes=" ".join(notes) or None,
            ))
            session.commit()

        logger.debug("Trade saved", pair=opp.token_pair, status=result.status.value)

    def record_opportunity(self, opportunity: Opportunity, taken: bool = False) -> None:
        """Save a detected opportunity."""
        with self.Session() as session:
            session.add(OpportunityTable(
                timestamp=_to_db_time(opportunity.detected_at),
                pair=opportunity.token_pair,
                buy_exchange=opportunity.buy_venue,
                sell_exchange=opportunity.sell_venue,
                profit_percent=float(opportunity.profit_percent),
                price_buy=float(opportunity.buy_price),
                price_sell=float(opportunity.sell_price),
                taken=taken,
            ))
            session.commit()

    def get_trades(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        pair: Optional[str] = None,
        limit: int = 100,
    ) -> List[dict]:
        """Get trade history with optional filters, newest first."""
        with self.Session() as session:
            query = session.query(TradeTable)

            if start:
                query = query.filter(TradeTable.timestamp >= _to_db_time(start))
            if end:
                query = query.filter(TradeTable.timestamp < _to_db_time(end))
            if pair:
                query = query.filter(TradeTable.pair == pair)

            query = query.order_by(TradeTable.timestamp.desc(), TradeTable.id.desc()).limit(limit)

            return [
                {
                    "timestamp": _from_db_time(row.timestamp),
                    "pair": row.pair,
                    "buy_exchange": row.buy_exchange,
                    "sell_exchange": row.sell_exchange,
                    "amount": row.amount,
                    "profit_usd": row.profit_usd,
                    "profit_percent": row.profit_percent,
                    "status": row.status,
                    "simulated": row.simulated,
                    "notes": row.notes,
                }
                for row in query.all()
            ]

    def get_opportunities(self, limit: int = 50, taken: Optional[bool] = None) -> List[dict]:
        with self.Session() as session:
            query = session.query(OpportunityTable)
            if taken is not None:
                query = query.filter(OpportunityTable.taken == taken)
            query = query.order_by(OpportunityTable.id.desc()).limit(limit)
            return [
                {
                    "timestamp": _from_db_time(row.timestamp),
                    "pair": row.pair,
                    "buy_exchange": row.buy_exchange,
                    "sell_exchange": row.sell_exchange,
                    "profit_percent": row.profit_percent,
                    "taken": row.taken,
                }
                for row in query.all()
            ]

    # Reporting

    def get_period_stats(self, start: datetime, end: datetime) -> dict:
        """Aggregate trades and opportunities in [start, end)."""
        trades = self.get_trades(start=start, end=end, limit=1_000_000)

        with self.Session() as session:
            opportunities = session.query(func.count(OpportunityTable.id)).filter(
                OpportunityTable.timestamp >= _to_db_time(start),
                OpportunityTable.timestamp < _to_db_time(end),
            ).scalar() or 0

        winning = len([t for t in trades if t["profit_usd"] > 0])
        total_profit = sum(t["profit_usd"] for t in trades)

        pair_stats: Dict[str, Dict] = {}
        for t in trades:
            stats = pair_stats.setdefault(t["pair"], {"count": 0, "profit": 0.0})
            stats["count"] += 1
            stats["profit"] += t["profit_usd"]
        best_pairs = sorted(pair_stats.items(), key=lambda kv: kv[1]["profit"], reverse=True)[:5]

        best_trade = max(trades, key=lambda t: t["profit_percent"]) if trades else None

        return {
            "total_trades": len(trades),
            "winning_trades": winning,
            "win_rate": winning / len(trades) if trades else 0.0,
            "total_profit": total_profit,
            "avg_profit_per_trade": total_profit / len(trades) if trades else 0.0,
            "opportunities": opportunities,
            "best_trade": best_trade,
            "best_pairs": best_pairs,
        }

    def get_daily_stats(self, day: Optional[date] = None) -> dict:
        """Stats for one UTC calendar day (today by default)."""
        if day is None:
            day = datetime.now(timezone.utc).date()
        start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        stats = self.get_period_stats(start, start + timedelta(days=1))
        stats["date"] = day.isoformat()
        return stats

    def get_performance_summary(self, starting_capital: Optional[Decimal] = None) -> dict:
        """Overall performance since the first trade."""
        if starting_capital is None:
            starting_capital = Decimal(str(get_config().trading.starting_capital))

        with self.Session() as session:
            total = session.query(func.count(TradeTable.id)).scalar() or 0
            winning = session.query(func.count(TradeTable.id)).filter(
                TradeTable.profit_usd > 0
            ).scalar() or 0
            total_profit = session.query(func.sum(TradeTable.profit_usd)).scalar() or 0.0
            partial = session.query(func.count(TradeTable.id)).filter(
                TradeTable.status == ExecutionStatus.PARTIAL_FAILURE.value
            ).scalar() or 0

        snapshot = self.get_current_balance_snapshot()
        current = snapshot.balance_usd if snapshot else starting_capital
        return_percent = (
            float((current - starting_capital) / starting_capital * 100) if starting_capital else 0.0
        )

        return {
            "starting_balance": float(starting_capital),
            "current_balance": float(current),
            "return_percent": return_percent,
            "total_trades": total,
            "winning_trades": winning,
            "partial_failures": partial,
            "win_rate": winning / total if total else 0.0,
            "total_profit": float(total_profit),
            "avg_profit_per_trade": float(total_profit) / total if total else 0.0,
        }


# Global database instance
_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db
