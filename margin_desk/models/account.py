"""Account model - spendable cash balance per user."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Account(SQLModel, table=True):
    __tablename__ = "account"

    user_id: str = Field(primary_key=True)
    balance: float = 0.0
    total_deposited: float = 0.0
    total_withdrawn: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
