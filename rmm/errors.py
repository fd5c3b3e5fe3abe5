"""Engine error classes.

Every failure reported by the engine is an EngineError. The ``kind``
attribute is a stable identifier that the HTTP layer returns to callers.
"""


class EngineError(Exception):
    """Base error for engine operations."""

    kind = "engine_error"


class InsufficientBalance(EngineError):
    """Margin or collateral balance is smaller than the requested amount."""

    kind = "insufficient_balance"


class InsufficientLiquidity(EngineError):
    """Pool or position liquidity is smaller than the requested amount."""

    kind = "insufficient_liquidity"


class InsufficientFloat(EngineError):
    """Lent liquidity available in the pool or position is too small."""

    kind = "insufficient_float"


class TooExpensive(EngineError):
    """Swap input or borrow premium exceeds the caller's bound."""

    kind = "too_expensive"


class CurveBoundExceeded(EngineError):
    """Post-trade reserves would leave the valid domain of the curve."""

    kind = "curve_bound_exceeded"


class InvariantViolation(EngineError):
    """Post-swap invariant regressed beyond the rounding epsilon."""

    kind = "invariant_violation"


class Locked(EngineError):
    """Reentrant call on a pool or account that is already in use."""

    kind = "locked"


class InvalidCalibration(EngineError):
    """Strike, sigma or maturity cannot define a pool."""

    kind = "invalid_calibration"


class MathDomainError(EngineError, ValueError):
    """Input outside the domain of a math function (e.g. negative tau)."""

    kind = "math_domain_error"


class UnknownPool(EngineError):
    """No pool is registered under the given id."""

    kind = "unknown_pool"


class PoolAlreadyExists(EngineError):
    """A pool with the same calibration was already created."""

    kind = "pool_already_exists"


class PoolExpired(EngineError):
    """Swap rejected because the pool reached maturity."""

    kind = "pool_expired"
