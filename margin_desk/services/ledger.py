"""Balance ledger - the only code that writes account balances.

Every change goes through `post_entry`, which records balance before/after in
a LedgerEntry. Functions take the caller's session and never commit, so a
balance change and the trade row it belongs to land in one transaction.
"""

import logging
import math

from sqlmodel import Session, select

from margin_desk.exceptions import InsufficientBalanceError, InvariantViolation, ValidationError
from margin_desk.models.account import Account
from margin_desk.models.ledger_entry import LedgerEntry
from margin_desk.services.margin_engine import (
    Position,
    close_balance_change,
    open_balance_change,
)
from margin_desk.utils.clock import utcnow
from margin_desk.utils.constants import (
    LEDGER_DEPOSIT,
    LEDGER_TRADE_CLOSE,
    LEDGER_TRADE_OPEN,
    LEDGER_WITHDRAWAL,
)

logger = logging.getLogger(__name__)


def get_or_create_account(session: Session, user_id: str) -> Account:
    account = session.get(Account, user_id)
    if account is None:
        account = Account(user_id=user_id)
        session.add(account)
    return account


def get_balance(session: Session, user_id: str) -> float:
    account = session.get(Account, user_id)
    return account.balance if account else 0.0


def post_entry(
    session: Session,
    user_id: str,
    amount: float,
    entry_type: str,
    reference_id: str | None = None,
    description: str = "",
) -> LedgerEntry:
    """Apply a signed amount to the user's balance and record it."""
    account = get_or_create_account(session, user_id)
    before = account.balance
    after = before + amount
    if after < 0:
        raise InsufficientBalanceError(
            f"Insufficient balance. Need: ${-amount:.2f}, Have: ${before:.2f}"
        )

    account.balance = after
    if entry_type == LEDGER_DEPOSIT:
        account.total_deposited += amount
    elif entry_type == LEDGER_WITHDRAWAL:
        account.total_withdrawn += -amount
    account.updated_at = utcnow()
    session.add(account)

    entry = LedgerEntry(
        user_id=user_id,
        type=entry_type,
        amount=amount,
        balance_before=before,
        balance_after=after,
        reference_id=reference_id,
        description=description,
    )
    session.add(entry)
    return entry


def _require_amount(amount: float) -> float:
    value = float(amount)
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("Amount must be positive")
    return value


def deposit(session: Session, user_id: str, amount: float, description: str = "Deposit") -> LedgerEntry:
    value = _require_amount(amount)
    logger.info(f"Deposit ${value:.2f} to {user_id}")
    return post_entry(session, user_id, value, LEDGER_DEPOSIT, description=description)


def withdraw(session: Session, user_id: str, amount: float, description: str = "Withdrawal") -> LedgerEntry:
    value = _require_amount(amount)
    logger.info(f"Withdraw ${value:.2f} from {user_id}")
    return post_entry(session, user_id, -value, LEDGER_WITHDRAWAL, description=description)


def debit_for_open(session: Session, position: Position) -> LedgerEntry:
    """Set the investment aside when a trade opens."""
    return post_entry(
        session,
        position.user_id,
        open_balance_change(position.investment),
        LEDGER_TRADE_OPEN,
        reference_id=position.id,
        description=f"Open {position.direction.label.upper()} {position.symbol} x{position.multiplier}",
    )


def credit_on_close(session: Session, position: Position) -> LedgerEntry:
    """Return investment + realized P/L when a trade closes."""
    if position.is_active or position.final_pnl is None:
        raise InvariantViolation(f"Trade {position.id} is not closed")
    return post_entry(
        session,
        position.user_id,
        close_balance_change(position.investment, position.final_pnl),
        LEDGER_TRADE_CLOSE,
        reference_id=position.id,
        description=f"Close {position.symbol} ({position.status.value}): {position.final_pnl:+.2f}",
    )


def list_entries(session: Session, user_id: str, limit: int = 50, offset: int = 0) -> list[LedgerEntry]:
    stmt = (
        select(LedgerEntry)
        .where(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(session.exec(stmt).all())
