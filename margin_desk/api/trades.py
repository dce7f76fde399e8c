"""Trades API - open, amend, close and list multiplier trades."""

from fastapi import APIRouter, Depends, Header
from sqlmodel import Session, select

from margin_desk.api.deps import get_current_user_id, http_error
from margin_desk.database import get_session
from margin_desk.engine import trade_desk
from margin_desk.exceptions import MarginDeskError, TradeNotFoundError
from margin_desk.models.trade import Trade
from margin_desk.schemas.trade import (
    TradeCloseRequest,
    TradeCloseResponse,
    TradeLevelsUpdate,
    TradeOpenRequest,
    TradeOpenResponse,
    TradeRead,
)
from margin_desk.utils.constants import CLOSED_ROW_STATUSES, ROW_STATUS_OPEN

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.post("", response_model=TradeOpenResponse, status_code=201)
async def open_trade(
    body: TradeOpenRequest,
    user_id: str = Depends(get_current_user_id),
    idempotency_key: str | None = Header(default=None, alias="X-Idempotency-Key"),
):
    try:
        result = await trade_desk.open_trade(
            user_id=user_id,
            symbol=body.symbol,
            direction=body.direction,
            investment=body.investment,
            multiplier=body.multiplier,
            mid_price=body.mid_price,
            stop_loss=body.stop_loss,
            take_profit=body.take_profit,
            idempotency_key=idempotency_key,
        )
    except MarginDeskError as e:
        raise http_error(e)

    trade = result.trade
    if result.duplicate:
        message = "Trade already processed"
    else:
        message = f"Opened {trade.direction.upper()} {trade.symbol} @ {trade.entry_price:.5f}"
    return TradeOpenResponse(
        trade=TradeRead.model_validate(trade),
        new_balance=result.balance,
        balance_change=result.balance_change,
        duplicate=result.duplicate,
        message=message,
    )


@router.get("", response_model=list[TradeRead])
def list_trades(
    status: str = "all",
    limit: int = 50,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    limit = min(100, max(1, limit))
    offset = max(0, offset)
    stmt = select(Trade).where(Trade.user_id == user_id).order_by(Trade.opened_at.desc())
    if status == "open":
        stmt = stmt.where(Trade.status == ROW_STATUS_OPEN)
    elif status == "closed":
        stmt = stmt.where(Trade.status.in_(CLOSED_ROW_STATUSES))  # type: ignore[attr-defined]
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


@router.get("/{trade_id}", response_model=TradeRead)
def get_trade(
    trade_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    trade = session.get(Trade, trade_id)
    if not trade or trade.user_id != user_id:
        raise http_error(TradeNotFoundError("Trade not found"))
    return trade


@router.patch("/{trade_id}/levels", response_model=TradeRead)
async def update_levels(
    trade_id: str,
    body: TradeLevelsUpdate,
    user_id: str = Depends(get_current_user_id),
):
    """Replace stop-loss / take-profit on an open trade. Null clears a level."""
    try:
        return await trade_desk.update_trade_levels(
            user_id, trade_id, stop_loss=body.stop_loss, take_profit=body.take_profit
        )
    except MarginDeskError as e:
        raise http_error(e)


@router.post("/{trade_id}/close", response_model=TradeCloseResponse)
async def close_trade(
    trade_id: str,
    body: TradeCloseRequest,
    user_id: str = Depends(get_current_user_id),
):
    try:
        result = await trade_desk.close_trade(
            user_id, trade_id, mid_price=body.mid_price, reason=body.reason
        )
    except MarginDeskError as e:
        raise http_error(e)

    trade = result.trade
    return TradeCloseResponse(
        trade=TradeRead.model_validate(trade),
        new_balance=result.balance,
        credit_amount=result.credit_amount,
        message=f"Closed {trade.symbol}: {trade.pnl:+.2f}",
    )
