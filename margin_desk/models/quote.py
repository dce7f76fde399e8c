"""Quote model - latest mid price per symbol from the price feed."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Quote(SQLModel, table=True):
    __tablename__ = "quote"

    symbol: str = Field(primary_key=True)
    mid_price: float
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
