"""Bid/ask pricing from a mid price and a per-symbol spread.

Long positions buy at the ask and are marked/closed at the bid; short
positions sell at the bid and are marked/closed at the ask. Marking on the
opposite side means a fresh position starts slightly negative by the spread.
"""

import math
from dataclasses import dataclass

from margin_desk.utils.constants import DEFAULT_SPREADS, MAX_SPREAD_FRACTION


@dataclass(frozen=True)
class SpreadQuote:
    mid: float
    ask: float
    bid: float
    spread_fraction: float

    @property
    def spread_abs(self) -> float:
        return self.ask - self.bid


def resolve_spread(symbol: str, override: float | None = None) -> float:
    """Return the override if given (0.0 included), else the table entry for `symbol`."""
    if override is not None:
        return clamp_spread(override)
    return clamp_spread(DEFAULT_SPREADS.get(symbol, DEFAULT_SPREADS["default"]))


def clamp_spread(spread_fraction: float) -> float:
    """Clamp a spread fraction into [0, MAX_SPREAD_FRACTION]. NaN/inf count as 0."""
    s = float(spread_fraction)
    if not math.isfinite(s) or s < 0:
        return 0.0
    return min(s, MAX_SPREAD_FRACTION)


def quote_prices(mid: float, spread_fraction: float) -> SpreadQuote:
    s = clamp_spread(spread_fraction)
    half = mid * s / 2
    return SpreadQuote(mid=mid, ask=mid + half, bid=mid - half, spread_fraction=s)


def entry_price_for(direction: int, mid: float, spread_fraction: float) -> float:
    """Long enters at the ask, short at the bid."""
    quote = quote_prices(mid, spread_fraction)
    return quote.ask if direction == 1 else quote.bid


def exit_price_for(direction: int, mid: float, spread_fraction: float) -> float:
    """Long marks and exits at the bid, short at the ask."""
    quote = quote_prices(mid, spread_fraction)
    return quote.bid if direction == 1 else quote.ask
