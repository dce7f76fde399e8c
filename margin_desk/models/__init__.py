"""Database models."""

from margin_desk.models.trade import Trade
from margin_desk.models.account import Account
from margin_desk.models.ledger_entry import LedgerEntry
from margin_desk.models.quote import Quote

__all__ = [
    "Trade",
    "Account",
    "LedgerEntry",
    "Quote",
]
