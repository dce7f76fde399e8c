"""Trade desk - applies engine results to the database and the ledger.

The margin engine is pure; this module is the caller that owns persistence.
Every mutation touching an account (open, tick, close, level change) runs
under that account's lock and re-reads the trade row inside it, so a trade
leaves "open" exactly once and is never revived. A lock lives only while
some call holds or waits on it, so the registry stays as small as the set
of accounts currently trading.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlmodel import Session, select

from margin_desk.config import settings
from margin_desk.database import engine
from margin_desk.exceptions import MarginDeskError, TradeNotFoundError
from margin_desk.models.trade import Trade
from margin_desk.services import ledger, margin_engine, quotes
from margin_desk.services.margin_engine import CloseReason, Mark, Position
from margin_desk.services.trade_rows import position_to_row, row_to_position, update_row
from margin_desk.utils.constants import ROW_STATUS_OPEN

logger = logging.getLogger(__name__)
_account_locks: dict[str, asyncio.Lock] = {}
_account_lock_users: dict[str, int] = {}
_account_locks_guard = asyncio.Lock()

# "<user_id>:<key>" -> (trade_id, expires_at monotonic)
_idempotency: dict[str, tuple[str, float]] = {}
_IDEMPOTENCY_MAX_ENTRIES = 1000


@dataclass
class OpenResult:
    trade: Trade
    balance: float
    balance_change: float
    duplicate: bool = False


@dataclass
class CloseResult:
    trade: Trade
    balance: float
    credit_amount: float


@dataclass
class TickResult:
    trade: Trade
    mark: Mark
    closed_reason: CloseReason | None = None


@asynccontextmanager
async def _account_lock(user_id: str):
    """Hold the account's lock; drop it from the registry once nobody needs it."""
    async with _account_locks_guard:
        lock = _account_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            _account_locks[user_id] = lock
        _account_lock_users[user_id] = _account_lock_users.get(user_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        async with _account_locks_guard:
            remaining = _account_lock_users.pop(user_id, 1) - 1
            if remaining > 0:
                _account_lock_users[user_id] = remaining
            else:
                _account_locks.pop(user_id, None)


def _dedupe_bucket() -> int:
    """Index of the current duplicate-submit window."""
    return int(time.time() // settings.dedupe_window_seconds)


def _auto_idempotency_key(position: Position) -> str:
    # Same user, symbol, stake and side within one window counts as a double submit
    return (
        f"{position.user_id}:auto:{position.symbol}:{position.investment}:"
        f"{position.direction.label}:{_dedupe_bucket()}"
    )


def _check_idempotency(key: str) -> str | None:
    record = _idempotency.get(key)
    if record and time.monotonic() < record[1]:
        return record[0]
    return None


def _remember_idempotency(key: str, trade_id: str):
    now = time.monotonic()
    if len(_idempotency) > _IDEMPOTENCY_MAX_ENTRIES:
        for k in [k for k, (_, expires) in _idempotency.items() if now > expires]:
            del _idempotency[k]
    _idempotency[key] = (trade_id, now + settings.idempotency_ttl_seconds)


def _duplicate_open(user_id: str, key: str) -> OpenResult | None:
    existing_id = _check_idempotency(key)
    if not existing_id:
        return None
    with Session(engine) as session:
        row = _get_owned_row(session, user_id, existing_id)
        balance = ledger.get_balance(session, user_id)
    logger.info(f"[{user_id}] Duplicate open ({key}), returning {existing_id}")
    return OpenResult(trade=row, balance=balance, balance_change=0.0, duplicate=True)


def _get_owned_row(session: Session, user_id: str, trade_id: str) -> Trade:
    row = session.get(Trade, trade_id)
    if row is None or row.user_id != user_id:
        raise TradeNotFoundError(f"Trade {trade_id} not found")
    return row


# ---------------------------------------------------------------------------
# Open
# ---------------------------------------------------------------------------

async def open_trade(
    user_id: str,
    symbol: str,
    direction,
    investment: float,
    multiplier: float,
    mid_price: float,
    stop_loss: float | None = None,
    take_profit: float | None = None,
    spread_fraction: float | None = None,
    idempotency_key: str | None = None,
) -> OpenResult:
    """Price a new trade, debit the investment and persist the row.

    Without an explicit `idempotency_key`, an identical open (same symbol,
    investment and side) inside the dedupe window returns the first trade.
    """
    async with _account_lock(user_id):
        idem_key = f"{user_id}:{idempotency_key}" if idempotency_key else None
        if idem_key:
            duplicate = _duplicate_open(user_id, idem_key)
            if duplicate:
                return duplicate

        position = margin_engine.open_position(
            user_id=user_id,
            symbol=symbol,
            direction=direction,
            investment=investment,
            multiplier=multiplier,
            mid_price=mid_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            spread_fraction=spread_fraction,
            max_multiplier=settings.max_multiplier,
        )

        if idem_key is None:
            idem_key = _auto_idempotency_key(position)
            duplicate = _duplicate_open(user_id, idem_key)
            if duplicate:
                return duplicate

        with Session(engine) as session:
            entry = ledger.debit_for_open(session, position)
            balance, change = entry.balance_after, entry.amount
            row = position_to_row(position, market_type=settings.market_type)
            session.add(row)
            session.commit()
            session.refresh(row)

        _remember_idempotency(idem_key, position.id)

    logger.info(
        f"[{user_id}] Opened {position.direction.label.upper()} {position.symbol} "
        f"x{position.multiplier} ${position.investment:.2f} @ {position.entry_price:.5f} "
        f"(liq {position.liquidation_price:.5f}) id={position.id}"
    )
    return OpenResult(trade=row, balance=balance, balance_change=change)


# ---------------------------------------------------------------------------
# Close
# ---------------------------------------------------------------------------

def _close_row(session: Session, row: Trade, mid_price: float, reason: CloseReason) -> CloseResult:
    """Settle an open row inside the caller's session and lock."""
    closed = margin_engine.close_position(row_to_position(row), mid_price, reason)
    update_row(row, closed)
    entry = ledger.credit_on_close(session, closed)
    balance, credit = entry.balance_after, entry.amount
    session.add(row)
    session.commit()
    session.refresh(row)

    logger.info(
        f"[{row.user_id}] Closed {row.symbol} id={row.id} ({closed.status.value}) "
        f"@ {closed.exit_price:.5f}: PnL={closed.final_pnl:+.2f}"
    )
    return CloseResult(trade=row, balance=balance, credit_amount=credit)


async def close_trade(
    user_id: str,
    trade_id: str,
    mid_price: float | None = None,
    reason=CloseReason.MANUAL,
) -> CloseResult:
    """Close a trade at `mid_price`, or at the latest fresh quote when omitted."""
    close_reason = margin_engine.parse_close_reason(reason)
    async with _account_lock(user_id):
        with Session(engine) as session:
            row = _get_owned_row(session, user_id, trade_id)
            if mid_price is None:
                mid_price = quotes.fresh_mid_price(session, row.symbol)
            return _close_row(session, row, mid_price, close_reason)


# ---------------------------------------------------------------------------
# Ticks and level changes
# ---------------------------------------------------------------------------

async def apply_tick(trade_id: str, mid_price: float) -> TickResult | None:
    """Mark one trade at a new mid and close it if a trigger fired.

    Returns None when the trade is no longer open.
    """
    with Session(engine) as session:
        row = session.get(Trade, trade_id)
        if row is None:
            raise TradeNotFoundError(f"Trade {trade_id} not found")
        user_id = row.user_id

    async with _account_lock(user_id):
        with Session(engine) as session:
            row = session.get(Trade, trade_id)
            if row is None or row.status != ROW_STATUS_OPEN:
                return None

            position = row_to_position(row)
            mark = margin_engine.mark_to_market(position, mid_price)
            reason = mark.trigger
            if reason is not None:
                result = _close_row(session, row, mark.mid_price, reason)
                logger.warning(
                    f"[{user_id}] Auto-closed {row.symbol} id={trade_id}: {reason.value} "
                    f"at mid {mark.mid_price}"
                )
                return TickResult(trade=result.trade, mark=mark, closed_reason=reason)

            update_row(row, margin_engine.apply_mark(position, mark))
            session.add(row)
            session.commit()
            session.refresh(row)
            return TickResult(trade=row, mark=mark)


async def apply_symbol_tick(symbol: str, mid_price: float) -> list[TickResult]:
    """Apply a mid-price tick to every open trade on `symbol`.

    A failure on one trade is logged and does not stop the others.
    """
    with Session(engine) as session:
        trade_ids = session.exec(
            select(Trade.id).where(Trade.symbol == symbol, Trade.status == ROW_STATUS_OPEN)
        ).all()

    results = []
    for trade_id in trade_ids:
        try:
            result = await apply_tick(trade_id, mid_price)
        except MarginDeskError as e:
            logger.error(f"[{symbol}] Tick failed for trade {trade_id}: {e}")
            continue
        except Exception as e:
            logger.error(f"[{symbol}] Unexpected tick error for trade {trade_id}: {e}", exc_info=True)
            continue
        if result is not None:
            results.append(result)
    return results


async def update_trade_levels(
    user_id: str,
    trade_id: str,
    stop_loss: float | None,
    take_profit: float | None,
) -> Trade:
    async with _account_lock(user_id):
        with Session(engine) as session:
            row = _get_owned_row(session, user_id, trade_id)
            amended = margin_engine.update_levels(row_to_position(row), stop_loss, take_profit)
            update_row(row, amended)
            session.add(row)
            session.commit()
            session.refresh(row)

    logger.info(f"[{user_id}] Levels for {trade_id}: SL={stop_loss} TP={take_profit}")
    return row
