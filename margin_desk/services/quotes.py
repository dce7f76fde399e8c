"""Quote book - latest mid price per symbol as delivered by the price feed."""

import math
from datetime import datetime

from sqlmodel import Session

from margin_desk.config import settings
from margin_desk.exceptions import StaleOrMissingPriceError
from margin_desk.models.quote import Quote
from margin_desk.services.spreads import quote_prices, resolve_spread
from margin_desk.utils.clock import as_utc, utcnow


def upsert_quote(session: Session, symbol: str, mid_price: float, now: datetime | None = None) -> Quote:
    """Store the latest mid for a symbol. Rejects NaN/inf/non-positive prices."""
    mid = float(mid_price)
    if not math.isfinite(mid) or mid <= 0:
        raise StaleOrMissingPriceError(f"Invalid price for {symbol}: {mid_price!r}")

    ts = now or utcnow()
    quote = session.get(Quote, symbol)
    if quote is None:
        quote = Quote(symbol=symbol, mid_price=mid, updated_at=ts)
    else:
        quote.mid_price = mid
        quote.updated_at = ts
    session.add(quote)
    return quote


def quote_age_seconds(quote: Quote, now: datetime | None = None) -> float:
    return ((now or utcnow()) - as_utc(quote.updated_at)).total_seconds()


def is_fresh(quote: Quote | None, now: datetime | None = None, max_age: float | None = None) -> bool:
    if quote is None:
        return False
    limit = settings.quote_max_age_seconds if max_age is None else max_age
    return quote_age_seconds(quote, now) <= limit


def fresh_mid_price(session: Session, symbol: str, now: datetime | None = None) -> float:
    """Latest mid for `symbol`, or StaleOrMissingPriceError if none is recent enough."""
    quote = session.get(Quote, symbol)
    if quote is None:
        raise StaleOrMissingPriceError(f"No price for {symbol}")
    if not is_fresh(quote, now):
        raise StaleOrMissingPriceError(
            f"Price for {symbol} is {quote_age_seconds(quote, now):.0f}s old"
        )
    return quote.mid_price


def describe_quote(quote: Quote) -> dict:
    """Mid plus the bid/ask implied by the symbol's default spread."""
    priced = quote_prices(quote.mid_price, resolve_spread(quote.symbol))
    return {
        "symbol": quote.symbol,
        "mid_price": priced.mid,
        "bid": priced.bid,
        "ask": priced.ask,
        "spread_fraction": priced.spread_fraction,
        "updated_at": as_utc(quote.updated_at).isoformat(),
    }
