"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from margin_desk.config import settings
from margin_desk.database import create_db_and_tables
from margin_desk.utils.logging import setup_logging
from margin_desk.api import trades, quotes, accounts, system


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    from margin_desk.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler()

    yield

    stop_scheduler()


app = FastAPI(
    title="Margin Desk",
    description="Multiplier trading service: margin P&L engine, ledger and price feed",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(trades.router)
app.include_router(quotes.router)
app.include_router(accounts.router)
app.include_router(system.router)
