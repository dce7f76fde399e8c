"""Pydantic schemas for the trades API.

Schemas check shape only. The spread always comes from the server table,
never from the client. Business rules (positive investment, leverage
bounds, valid prices) are enforced by the margin engine so every caller gets
the same errors.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from margin_desk.exceptions import ValidationError as EngineValidationError
from margin_desk.services.margin_engine import CloseReason, parse_direction


class TradeOpenRequest(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)
    direction: str  # buy/long/up or sell/short/down
    investment: float
    multiplier: float
    mid_price: float
    stop_loss: float | None = None
    take_profit: float | None = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("direction")
    @classmethod
    def _normalize_direction(cls, value: str) -> str:
        try:
            return parse_direction(value).label
        except EngineValidationError as e:
            raise ValueError(str(e)) from None


class TradeCloseRequest(BaseModel):
    mid_price: float | None = None  # None = latest fresh quote
    reason: CloseReason = CloseReason.MANUAL


class TradeLevelsUpdate(BaseModel):
    stop_loss: float | None = None
    take_profit: float | None = None


class TradeRead(BaseModel):
    id: str
    user_id: str
    market_type: str
    symbol: str
    direction: str
    direction_int: int
    investment: float
    multiplier: int
    volume: float
    spread_fraction: float
    spread_cost: float
    entry_price: float
    liquidation_price: float
    stop_loss: float | None
    take_profit: float | None
    mid_price: float
    current_price: float
    exit_price: float | None
    floating_pnl: float
    floating_pnl_pct: float
    pnl: float | None
    status: str
    opened_at: datetime
    closed_at: datetime | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class TradeOpenResponse(BaseModel):
    trade: TradeRead
    new_balance: float
    balance_change: float
    duplicate: bool = False
    message: str


class TradeCloseResponse(BaseModel):
    trade: TradeRead
    new_balance: float
    credit_amount: float
    message: str


class QuoteIn(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)
    mid_price: float

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text
