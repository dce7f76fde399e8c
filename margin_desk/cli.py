"""CLI tool for admin operations.

Usage:
    python -m margin_desk.cli deposit <user_id> <amount>
    python -m margin_desk.cli withdraw <user_id> <amount>
    python -m margin_desk.cli issue-token <user_id>
    python -m margin_desk.cli issue-feed-token <name>
"""

import sys

from sqlmodel import Session

from margin_desk.database import engine, create_db_and_tables
from margin_desk.exceptions import MarginDeskError
from margin_desk.services import ledger
from margin_desk.services.auth import create_access_token
from margin_desk.utils.constants import FEED_SCOPE
from margin_desk.utils.logging import setup_logging


def _move_funds(command: str, user_id: str, amount: str):
    """Credit or debit an account through the ledger."""
    create_db_and_tables()
    try:
        value = float(amount)
    except ValueError:
        print(f"Invalid amount: {amount}")
        sys.exit(1)

    post = ledger.deposit if command == "deposit" else ledger.withdraw
    with Session(engine) as session:
        try:
            entry = post(session, user_id, value, description="Admin " + command)
        except MarginDeskError as e:
            print(f"Error: {e}")
            sys.exit(1)
        balance = entry.balance_after
        session.commit()

    print(f"{command.capitalize()} of ${value:.2f} for '{user_id}' done. Balance: ${balance:.2f}")


def issue_token(user_id: str):
    """Print a bearer token for the user."""
    print(create_access_token(subject=user_id))


def issue_feed_token(name: str):
    """Print a bearer token allowed to push prices and run the mark sweep."""
    print(create_access_token(subject=name, scope=FEED_SCOPE))


def main():
    if len(sys.argv) < 3:
        print("Usage: python -m margin_desk.cli <command> <user_id> [amount]")
        print("Commands: deposit, withdraw, issue-token, issue-feed-token")
        sys.exit(1)

    setup_logging()
    command, user_id = sys.argv[1], sys.argv[2]
    if command in ("deposit", "withdraw"):
        if len(sys.argv) < 4:
            print(f"Usage: python -m margin_desk.cli {command} <user_id> <amount>")
            sys.exit(1)
        _move_funds(command, user_id, sys.argv[3])
    elif command == "issue-token":
        issue_token(user_id)
    elif command == "issue-feed-token":
        issue_feed_token(user_id)
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
