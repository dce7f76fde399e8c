"""Account API - balance, exposure and ledger history."""

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from margin_desk.api.deps import get_current_user_id
from margin_desk.database import get_session
from margin_desk.models.trade import Trade
from margin_desk.services import ledger
from margin_desk.utils.constants import ROW_STATUS_OPEN

router = APIRouter(prefix="/api/account", tags=["account"])


@router.get("")
def account_summary(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    """Balance plus the value tied up in open trades.

    `balance` excludes the investment of open trades (it was debited at
    open); `equity` is what the account would hold if everything closed at
    the last mark.
    """
    balance = ledger.get_balance(session, user_id)
    open_trades = session.exec(
        select(Trade).where(Trade.user_id == user_id, Trade.status == ROW_STATUS_OPEN)
    ).all()
    margin_used = sum(t.investment for t in open_trades)
    unrealized = sum(t.floating_pnl for t in open_trades)
    return {
        "user_id": user_id,
        "balance": balance,
        "margin_used": margin_used,
        "unrealized_pnl": unrealized,
        "equity": balance + margin_used + unrealized,
        "open_trades": len(open_trades),
    }


@router.get("/ledger")
def ledger_history(
    limit: int = 50,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    limit = min(100, max(1, limit))
    return ledger.list_entries(session, user_id, limit=limit, offset=max(0, offset))
