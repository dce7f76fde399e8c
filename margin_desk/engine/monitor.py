"""Mark-to-market sweep.

Called by APScheduler on a fixed interval. For every symbol with open trades
it takes the latest quote, skips it if stale, and pushes it through
trade_desk.apply_symbol_tick, which marks trades and closes triggered ones.
"""

import asyncio
import logging

from sqlmodel import Session, select

from margin_desk.database import engine
from margin_desk.engine import trade_desk
from margin_desk.models.quote import Quote
from margin_desk.models.trade import Trade
from margin_desk.services import quotes
from margin_desk.utils.clock import utcnow
from margin_desk.utils.constants import ROW_STATUS_OPEN

logger = logging.getLogger(__name__)
_cycle_lock = asyncio.Lock()


async def run_mark_cycle() -> dict:
    """Run one sweep, skipping if the previous one is still in flight."""
    if _cycle_lock.locked():
        logger.warning("Skipping overlapping mark cycle")
        return {"skipped": True}

    async with _cycle_lock:
        return await _run_mark_cycle_once()


async def _run_mark_cycle_once() -> dict:
    summary = {"skipped": False, "symbols": 0, "marked": 0, "closed": 0, "stale": 0}

    with Session(engine) as session:
        symbols = session.exec(
            select(Trade.symbol).where(Trade.status == ROW_STATUS_OPEN).distinct()
        ).all()
        book = {q.symbol: q for q in session.exec(select(Quote).where(Quote.symbol.in_(symbols))).all()}  # type: ignore[attr-defined]

    now = utcnow()
    for symbol in symbols:
        summary["symbols"] += 1
        quote = book.get(symbol)
        if not quotes.is_fresh(quote, now):
            summary["stale"] += 1
            age = f"{quotes.quote_age_seconds(quote, now):.0f}s old" if quote else "missing"
            logger.warning(f"[{symbol}] Quote {age}, not marking open trades")
            continue

        results = await trade_desk.apply_symbol_tick(symbol, quote.mid_price)
        for result in results:
            if result.closed_reason is None:
                summary["marked"] += 1
            else:
                summary["closed"] += 1

    if summary["closed"]:
        logger.info(f"Mark cycle closed {summary['closed']} trade(s)")
    return summary
