"""Trade model - flat persistence row for a multiplier trade."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: str = Field(primary_key=True)  # uuid4
    user_id: str = Field(index=True)
    market_type: str = "fx"
    symbol: str = Field(index=True)  # e.g. "EUR/USD"
    direction: str  # "buy" or "sell"
    direction_int: int  # 1 = long, -1 = short

    investment: float
    multiplier: int
    volume: float  # investment * multiplier
    spread_fraction: float
    spread_cost: float = 0.0

    entry_price: float
    liquidation_price: float
    stop_loss: float | None = None
    take_profit: float | None = None

    mid_price: float
    current_price: float  # exit-side mark
    exit_price: float | None = None

    floating_pnl: float = 0.0
    floating_pnl_pct: float = 0.0
    pnl: float | None = None  # realized, set once at close

    status: str = Field(default="open", index=True)  # "open", "won", "lost", "liquidated", "stopped_out", "take_profit"
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: datetime | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
