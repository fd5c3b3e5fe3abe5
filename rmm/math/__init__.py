"""Mathematical utilities for the replicating market maker.

This package provides:
- fixed_point: 18-decimal arithmetic with explicit rounding, exp and ln
- normal: deterministic standard normal CDF and quantile
- replication: the covered-call trading function and pool invariant
"""

from rmm.math.fixed_point import Rounding
from rmm.math.replication import (
    calculate_invariant,
    inverse_trading_function,
    time_to_maturity,
    trading_function,
)

__all__ = [
    "Rounding",
    "calculate_invariant",
    "inverse_trading_function",
    "time_to_maturity",
    "trading_function",
]
