"""Stateless margin P&L engine for multiplier trades.

Model:
    I = investment (cash at risk), M = multiplier (leverage), D = +1 long / -1 short
    P/L               = D * I * M * (P_exit - P_entry) / P_entry, floored at -I
    Liquidation price = P_entry * (1 - D / M)

P_entry is the spread-adjusted open price and P_exit is always the exit side
of the current mid (see spreads.py). All functions are pure computation with
no I/O or database access, and none mutates the position it is given.
Callers that persist positions are responsible for serializing mutations.
"""

import logging
import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum

from margin_desk.exceptions import (
    InvariantViolation,
    StaleOrMissingPriceError,
    ValidationError,
)
from margin_desk.services.spreads import entry_price_for, exit_price_for, resolve_spread
from margin_desk.utils.constants import DEFAULT_MAX_MULTIPLIER, LONG_ALIASES, SHORT_ALIASES

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Direction(IntEnum):
    LONG = 1
    SHORT = -1

    @property
    def label(self) -> str:
        return "buy" if self is Direction.LONG else "sell"


class PositionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    LIQUIDATED = "liquidated"
    STOPPED_OUT = "stopped_out"
    TOOK_PROFIT = "take_profit"


class CloseReason(str, Enum):
    MANUAL = "manual"
    LIQUIDATED = "liquidated"
    STOPPED_OUT = "stopped_out"
    TOOK_PROFIT = "take_profit"


_STATUS_FOR_REASON = {
    CloseReason.MANUAL: PositionStatus.CLOSED,
    CloseReason.LIQUIDATED: PositionStatus.LIQUIDATED,
    CloseReason.STOPPED_OUT: PositionStatus.STOPPED_OUT,
    CloseReason.TOOK_PROFIT: PositionStatus.TOOK_PROFIT,
}


def parse_direction(value) -> Direction:
    """Normalize buy/long/up, sell/short/down or +1/-1 to a Direction."""
    if isinstance(value, Direction):
        return value
    if isinstance(value, int) and not isinstance(value, bool) and value in (1, -1):
        return Direction(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in LONG_ALIASES:
            return Direction.LONG
        if text in SHORT_ALIASES:
            return Direction.SHORT
    raise ValidationError(f"Unknown direction: {value!r}")


def parse_close_reason(value) -> CloseReason:
    if isinstance(value, CloseReason):
        return value
    try:
        return CloseReason(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(r.value for r in CloseReason)
        raise ValidationError(f"Close reason must be one of: {allowed}") from None


# ---------------------------------------------------------------------------
# Position types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Position:
    """A multiplier trade. Updated copies are produced with dataclasses.replace."""
    id: str
    user_id: str
    symbol: str
    direction: Direction
    investment: float
    multiplier: int
    spread_fraction: float
    entry_price: float
    liquidation_price: float
    volume: float  # investment * multiplier
    spread_cost: float  # flat-market loss at open, as a positive number
    mid_price: float
    current_price: float  # exit-side mark
    floating_pnl: float
    floating_pnl_pct: float
    opened_at: datetime
    updated_at: datetime
    stop_loss: float | None = None
    take_profit: float | None = None
    status: PositionStatus = PositionStatus.ACTIVE
    exit_price: float | None = None
    final_pnl: float | None = None
    closed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is PositionStatus.ACTIVE


@dataclass(frozen=True)
class Mark:
    """Floating state of a position at one mid-price tick."""
    mid_price: float
    exit_price: float
    floating_pnl: float
    floating_pnl_pct: float
    should_liquidate: bool
    should_stop_loss: bool
    should_take_profit: bool

    @property
    def trigger(self) -> CloseReason | None:
        """The close reason to act on, by priority Liquidation > StopLoss > TakeProfit."""
        if self.should_liquidate:
            return CloseReason.LIQUIDATED
        if self.should_stop_loss:
            return CloseReason.STOPPED_OUT
        if self.should_take_profit:
            return CloseReason.TOOK_PROFIT
        return None


# ---------------------------------------------------------------------------
# Core math
# ---------------------------------------------------------------------------

def relative_change(entry_price: float, exit_price: float) -> float:
    return (exit_price - entry_price) / entry_price


def raw_pnl(
    direction: int,
    investment: float,
    multiplier: float,
    entry_price: float,
    exit_price: float,
) -> float:
    """D * I * M * relative change, without the loss floor."""
    return direction * investment * multiplier * relative_change(entry_price, exit_price)


def clamp_pnl(pnl: float, investment: float) -> float:
    """Floor P/L at -investment (a position cannot lose more than its stake)."""
    return max(pnl, -investment)


def pnl_percent(pnl: float, investment: float) -> float:
    return pnl / investment * 100


def liquidation_price(direction: int, entry_price: float, multiplier: float) -> float:
    """Price at which P/L == -investment. Long: P*(1 - 1/M), short: P*(1 + 1/M)."""
    return entry_price * (1 - direction / multiplier)


def should_liquidate(floating_pnl: float, investment: float) -> bool:
    return floating_pnl <= -investment


def should_stop_loss(direction: int, exit_price: float, stop_loss: float | None) -> bool:
    if stop_loss is None:
        return False
    return exit_price <= stop_loss if direction == 1 else exit_price >= stop_loss


def should_take_profit(direction: int, exit_price: float, take_profit: float | None) -> bool:
    if take_profit is None:
        return False
    return exit_price >= take_profit if direction == 1 else exit_price <= take_profit


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _as_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _require_price(price) -> float:
    mid = _as_float(price)
    if not math.isfinite(mid) or mid <= 0:
        raise StaleOrMissingPriceError(f"Invalid market price: {price!r}")
    return mid


def _require_active(position: Position, action: str):
    if not position.is_active:
        logger.error(
            f"Refusing to {action} trade {position.id}: status is {position.status.value}"
        )
        raise InvariantViolation(
            f"Cannot {action} trade {position.id}: already {position.status.value}"
        )


def _check_floor(position_id: str, pnl: float, investment: float):
    # NaN fails this comparison too
    if not pnl >= -investment:
        logger.error(f"Trade {position_id}: P/L {pnl} breaches floor -{investment}")
        raise InvariantViolation(f"P/L {pnl} is below -{investment}")


def _validate_level(name: str, value) -> float | None:
    if value is None:
        return None
    level = _as_float(value)
    if not math.isfinite(level) or level <= 0:
        raise ValidationError(f"{name} must be a positive price")
    return level


def _mark_values(position: Position, mid_price) -> tuple[float, float, float]:
    """Return (mid, exit_price, clamped P/L) for a position at a mid price."""
    mid = _require_price(mid_price)
    exit_price = exit_price_for(position.direction, mid, position.spread_fraction)
    pnl = clamp_pnl(
        raw_pnl(
            position.direction,
            position.investment,
            position.multiplier,
            position.entry_price,
            exit_price,
        ),
        position.investment,
    )
    _check_floor(position.id, pnl, position.investment)
    return mid, exit_price, pnl


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def open_position(
    user_id: str,
    symbol: str,
    direction,
    investment: float,
    multiplier: float,
    mid_price: float,
    stop_loss: float | None = None,
    take_profit: float | None = None,
    spread_fraction: float | None = None,
    max_multiplier: int = DEFAULT_MAX_MULTIPLIER,
    position_id: str | None = None,
    now: datetime | None = None,
) -> Position:
    """Price a new position from an open request.

    Raises ValidationError on bad input; nothing is returned in that case.
    The position starts marked at the exit side of the same mid, so its
    floating P/L is the (negative) cost of the spread.
    """
    if not user_id:
        raise ValidationError("Missing user id")
    if not symbol or not symbol.strip():
        raise ValidationError("Missing symbol")

    inv = _as_float(investment)
    if not math.isfinite(inv) or inv <= 0:
        raise ValidationError("Investment must be positive")

    mult = _as_float(multiplier)
    if not math.isfinite(mult) or not mult.is_integer() or mult < 1:
        raise ValidationError("Multiplier must be a whole number of at least 1")
    if mult > max_multiplier:
        raise ValidationError(f"Multiplier must be between 1 and {max_multiplier}")

    mid = _as_float(mid_price)
    if not math.isfinite(mid) or mid <= 0:
        raise ValidationError("Invalid market price")

    sl = _validate_level("Stop loss", stop_loss)
    tp = _validate_level("Take profit", take_profit)

    d = parse_direction(direction)
    m = int(mult)
    symbol = symbol.strip()
    spread = resolve_spread(symbol, spread_fraction)
    entry = entry_price_for(d, mid, spread)
    exit0 = exit_price_for(d, mid, spread)
    trade_id = position_id or str(uuid.uuid4())

    pnl = clamp_pnl(raw_pnl(d, inv, m, entry, exit0), inv)
    _check_floor(trade_id, pnl, inv)

    ts = now or datetime.now(timezone.utc)
    return Position(
        id=trade_id,
        user_id=user_id,
        symbol=symbol,
        direction=d,
        investment=inv,
        multiplier=m,
        spread_fraction=spread,
        entry_price=entry,
        liquidation_price=liquidation_price(d, entry, m),
        volume=inv * m,
        spread_cost=max(0.0, -pnl),
        mid_price=mid,
        current_price=exit0,
        floating_pnl=pnl,
        floating_pnl_pct=pnl_percent(pnl, inv),
        opened_at=ts,
        updated_at=ts,
        stop_loss=sl,
        take_profit=tp,
    )


def mark_to_market(position: Position, new_mid_price: float) -> Mark:
    """Evaluate an Active position at a new mid price.

    Does not change status; the caller decides which trigger (if any) to act
    on, normally via Mark.trigger.
    """
    _require_active(position, "mark")
    mid, exit_price, pnl = _mark_values(position, new_mid_price)
    return Mark(
        mid_price=mid,
        exit_price=exit_price,
        floating_pnl=pnl,
        floating_pnl_pct=pnl_percent(pnl, position.investment),
        should_liquidate=should_liquidate(pnl, position.investment),
        should_stop_loss=should_stop_loss(position.direction, exit_price, position.stop_loss),
        should_take_profit=should_take_profit(position.direction, exit_price, position.take_profit),
    )


def apply_mark(position: Position, mark: Mark, now: datetime | None = None) -> Position:
    """Return a copy of the position carrying the mark fields."""
    _require_active(position, "mark")
    return replace(
        position,
        mid_price=mark.mid_price,
        current_price=mark.exit_price,
        floating_pnl=mark.floating_pnl,
        floating_pnl_pct=mark.floating_pnl_pct,
        updated_at=now or datetime.now(timezone.utc),
    )


def update_levels(
    position: Position,
    stop_loss: float | None,
    take_profit: float | None,
    now: datetime | None = None,
) -> Position:
    """Replace stop-loss / take-profit levels on an Active position. None clears a level."""
    _require_active(position, "amend")
    return replace(
        position,
        stop_loss=_validate_level("Stop loss", stop_loss),
        take_profit=_validate_level("Take profit", take_profit),
        updated_at=now or datetime.now(timezone.utc),
    )


def close_position(
    position: Position,
    mid_price: float,
    reason=CloseReason.MANUAL,
    now: datetime | None = None,
) -> Position:
    """Realize P/L at a closing mid price and move the position to its terminal status."""
    _require_active(position, "close")
    close_reason = parse_close_reason(reason)
    mid, exit_price, pnl = _mark_values(position, mid_price)
    ts = now or datetime.now(timezone.utc)
    return replace(
        position,
        status=_STATUS_FOR_REASON[close_reason],
        mid_price=mid,
        current_price=exit_price,
        exit_price=exit_price,
        final_pnl=pnl,
        floating_pnl=pnl,
        floating_pnl_pct=pnl_percent(pnl, position.investment),
        closed_at=ts,
        updated_at=ts,
    )


# ---------------------------------------------------------------------------
# Balance effects
# ---------------------------------------------------------------------------

def open_balance_change(investment: float) -> float:
    """The investment is set aside when the position opens."""
    return -investment


def close_balance_change(investment: float, final_pnl: float) -> float:
    """The investment comes back together with the realized P/L."""
    return investment + final_pnl


def settle_balance(old_balance: float, investment: float, final_pnl: float) -> float:
    return old_balance + close_balance_change(investment, final_pnl)
