"""Shared constants and defaults for pricing and trade rows."""

# Spread as a fraction of mid price (0.00008 == 0.008%).
DEFAULT_SPREADS: dict[str, float] = {
    # majors
    "EUR/USD": 0.00008,
    "GBP/USD": 0.00010,
    "USD/CHF": 0.00012,
    "AUD/USD": 0.00010,
    "USD/CAD": 0.00012,
    "NZD/USD": 0.00012,
    "EUR/GBP": 0.00015,
    # JPY pairs (still a fraction of price)
    "USD/JPY": 0.00010,
    "EUR/JPY": 0.00014,
    "GBP/JPY": 0.00018,
    "CHF/JPY": 0.00018,
    "AUD/JPY": 0.00018,
    "CAD/JPY": 0.00018,
    # crypto
    "BTC/USD": 0.00030,
    "ETH/USD": 0.00040,
    "default": 0.00020,
}

# Spreads above 1% are bad feed data, not a market.
MAX_SPREAD_FRACTION = 0.01

DEFAULT_MAX_MULTIPLIER = 1000

LONG_ALIASES = frozenset({"buy", "long", "up"})
SHORT_ALIASES = frozenset({"sell", "short", "down"})

# Trade row status vocabulary
ROW_STATUS_OPEN = "open"
ROW_STATUS_WON = "won"
ROW_STATUS_LOST = "lost"
ROW_STATUS_LIQUIDATED = "liquidated"
ROW_STATUS_STOPPED_OUT = "stopped_out"
ROW_STATUS_TAKE_PROFIT = "take_profit"

CLOSED_ROW_STATUSES = (
    ROW_STATUS_WON,
    ROW_STATUS_LOST,
    ROW_STATUS_LIQUIDATED,
    ROW_STATUS_STOPPED_OUT,
    ROW_STATUS_TAKE_PROFIT,
)

# Ledger entry types
LEDGER_DEPOSIT = "deposit"
LEDGER_WITHDRAWAL = "withdrawal"
LEDGER_TRADE_OPEN = "trade_open"
LEDGER_TRADE_CLOSE = "trade_close"

# JWT scope for price-feed and operator credentials
FEED_SCOPE = "feed"
