class MarketError(Exception):
    """Base class for every failure raised by the market engine and its ledgers."""


class ValidationError(MarketError, ValueError):
    """Bad outcome index, non-positive amount, malformed condition list or partition."""


class StateError(MarketError):
    """Operation not allowed in the current state (unresolved, re-initialized, disabled)."""


class FixedPointError(MarketError, ArithmeticError):
    """Overflow, underflow, division by zero or a degenerate zero pool balance."""


class ExternalCallError(MarketError):
    """A ledger or collateral token call failed."""


class PositionSpaceError(StateError):
    """Enumerated position count does not match the product of outcome slot counts."""
