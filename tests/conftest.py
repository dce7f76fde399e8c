"""Point the service at a throwaway SQLite file before anything imports it."""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="margin_desk_test_")
os.environ["MD_DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["MD_JWT_SECRET"] = "test-secret"

import pytest  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import margin_desk.models  # noqa: E402,F401
from margin_desk.database import engine  # noqa: E402
from margin_desk.engine import trade_desk  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    """Empty tables and desk caches for every test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    trade_desk._idempotency.clear()
    trade_desk._account_locks.clear()
    trade_desk._account_lock_users.clear()
    yield
