"""Error taxonomy for the margin engine and the trade desk."""


class MarginDeskError(Exception):
    """Base class for all expected business failures."""


class ValidationError(MarginDeskError):
    """Open or amend request parameters are invalid."""


class StaleOrMissingPriceError(MarginDeskError):
    """A price is non-finite, non-positive, missing or too old to act on."""


class InvariantViolation(MarginDeskError):
    """An operation would break a position invariant (e.g. mutating a closed trade)."""


class InsufficientBalanceError(MarginDeskError):
    """Account balance does not cover the investment."""


class TradeNotFoundError(MarginDeskError):
    """No trade with that id belongs to the caller."""
