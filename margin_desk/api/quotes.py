"""Quotes API - price feed ingestion and bid/ask lookup."""

import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from margin_desk.api.deps import get_current_user_id, http_error, require_feed
from margin_desk.database import engine, get_session
from margin_desk.engine import trade_desk
from margin_desk.exceptions import MarginDeskError, StaleOrMissingPriceError
from margin_desk.models.quote import Quote
from margin_desk.schemas.trade import QuoteIn
from margin_desk.services import quotes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quotes", tags=["quotes"], dependencies=[Depends(get_current_user_id)])


@router.post("", dependencies=[Depends(require_feed)])
async def ingest_quote(body: QuoteIn):
    """Store a mid-price tick and apply it to every open trade on the symbol.

    Feed credentials only: the tick can close any user's trades.
    """
    try:
        with Session(engine) as session:
            quote = quotes.upsert_quote(session, body.symbol, body.mid_price)
            session.commit()
            session.refresh(quote)
            view = quotes.describe_quote(quote)
    except MarginDeskError as e:
        raise http_error(e)

    results = await trade_desk.apply_symbol_tick(body.symbol, body.mid_price)
    closed = [
        {"id": r.trade.id, "status": r.trade.status, "pnl": r.trade.pnl}
        for r in results
        if r.closed_reason is not None
    ]
    return {
        "quote": view,
        "marked": sum(1 for r in results if r.closed_reason is None),
        "closed": closed,
    }


@router.get("/{symbol:path}")
def get_quote(symbol: str, session: Session = Depends(get_session)):
    quote = session.get(Quote, symbol.strip().upper())
    if quote is None:
        raise http_error(StaleOrMissingPriceError(f"No price for {symbol}"))
    view = quotes.describe_quote(quote)
    view["fresh"] = quotes.is_fresh(quote)
    return view
