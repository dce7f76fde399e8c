"""LedgerEntry model - immutable record of every balance change."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class LedgerEntry(SQLModel, table=True):
    __tablename__ = "ledger_entry"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    type: str  # "deposit", "withdrawal", "trade_open", "trade_close"
    amount: float  # signed
    balance_before: float
    balance_after: float
    reference_id: str | None = Field(default=None, index=True)  # trade id
    description: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
