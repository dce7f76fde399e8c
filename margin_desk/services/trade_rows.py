"""Conversion between engine Positions and persisted Trade rows.

This is the only place that knows the row vocabulary: direction is stored as
both a label and an integer, and terminal statuses differ from the engine
enum (a manual close is stored as "won" or "lost"). Numeric fields are copied
as-is so a round trip never loses precision.
"""

from margin_desk.exceptions import InvariantViolation
from margin_desk.models.trade import Trade
from margin_desk.services.margin_engine import Direction, Position, PositionStatus
from margin_desk.utils.clock import as_utc
from margin_desk.utils.constants import (
    ROW_STATUS_LIQUIDATED,
    ROW_STATUS_LOST,
    ROW_STATUS_OPEN,
    ROW_STATUS_STOPPED_OUT,
    ROW_STATUS_TAKE_PROFIT,
    ROW_STATUS_WON,
)

_ROW_STATUS = {
    PositionStatus.ACTIVE: ROW_STATUS_OPEN,
    PositionStatus.LIQUIDATED: ROW_STATUS_LIQUIDATED,
    PositionStatus.STOPPED_OUT: ROW_STATUS_STOPPED_OUT,
    PositionStatus.TOOK_PROFIT: ROW_STATUS_TAKE_PROFIT,
}

_POSITION_STATUS = {
    ROW_STATUS_OPEN: PositionStatus.ACTIVE,
    ROW_STATUS_WON: PositionStatus.CLOSED,
    ROW_STATUS_LOST: PositionStatus.CLOSED,
    ROW_STATUS_LIQUIDATED: PositionStatus.LIQUIDATED,
    ROW_STATUS_STOPPED_OUT: PositionStatus.STOPPED_OUT,
    ROW_STATUS_TAKE_PROFIT: PositionStatus.TOOK_PROFIT,
}

# Fields that can change after the row is first written.
_MUTABLE_FIELDS = (
    "stop_loss",
    "take_profit",
    "mid_price",
    "current_price",
    "exit_price",
    "floating_pnl",
    "floating_pnl_pct",
    "pnl",
    "status",
    "closed_at",
    "updated_at",
)


def row_status(position: Position) -> str:
    if position.status is PositionStatus.CLOSED:
        return ROW_STATUS_WON if (position.final_pnl or 0.0) >= 0 else ROW_STATUS_LOST
    return _ROW_STATUS[position.status]


def _row_fields(position: Position) -> dict:
    return {
        "id": position.id,
        "user_id": position.user_id,
        "symbol": position.symbol,
        "direction": position.direction.label,
        "direction_int": int(position.direction),
        "investment": position.investment,
        "multiplier": position.multiplier,
        "volume": position.volume,
        "spread_fraction": position.spread_fraction,
        "spread_cost": position.spread_cost,
        "entry_price": position.entry_price,
        "liquidation_price": position.liquidation_price,
        "stop_loss": position.stop_loss,
        "take_profit": position.take_profit,
        "mid_price": position.mid_price,
        "current_price": position.current_price,
        "exit_price": position.exit_price,
        "floating_pnl": position.floating_pnl,
        "floating_pnl_pct": position.floating_pnl_pct,
        "pnl": position.final_pnl,
        "status": row_status(position),
        "opened_at": position.opened_at,
        "closed_at": position.closed_at,
        "updated_at": position.updated_at,
    }


def position_to_row(position: Position, market_type: str = "fx") -> Trade:
    """Build a new Trade row for a freshly opened position."""
    return Trade(market_type=market_type, **_row_fields(position))


def update_row(row: Trade, position: Position) -> Trade:
    """Copy the mutable state of `position` onto an existing row."""
    if row.id != position.id:
        raise InvariantViolation(f"Row {row.id} does not belong to trade {position.id}")
    fields = _row_fields(position)
    for name in _MUTABLE_FIELDS:
        setattr(row, name, fields[name])
    return row


def row_to_position(row: Trade) -> Position:
    try:
        status = _POSITION_STATUS[row.status]
    except KeyError:
        raise InvariantViolation(f"Trade {row.id} has unknown status {row.status!r}") from None
    try:
        direction = Direction(row.direction_int)
    except ValueError:
        raise InvariantViolation(
            f"Trade {row.id} has invalid direction {row.direction_int!r}"
        ) from None

    return Position(
        id=row.id,
        user_id=row.user_id,
        symbol=row.symbol,
        direction=direction,
        investment=row.investment,
        multiplier=row.multiplier,
        spread_fraction=row.spread_fraction,
        entry_price=row.entry_price,
        liquidation_price=row.liquidation_price,
        volume=row.volume,
        spread_cost=row.spread_cost,
        mid_price=row.mid_price,
        current_price=row.current_price,
        floating_pnl=row.floating_pnl,
        floating_pnl_pct=row.floating_pnl_pct,
        opened_at=as_utc(row.opened_at),
        updated_at=as_utc(row.updated_at),
        stop_loss=row.stop_loss,
        take_profit=row.take_profit,
        status=status,
        exit_price=row.exit_price,
        final_pnl=row.pnl,
        closed_at=as_utc(row.closed_at),
    )
