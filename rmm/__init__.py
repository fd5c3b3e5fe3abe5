"""Replicating market maker core - covered-call AMM in Python."""

from rmm.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from rmm.engine import Engine
from rmm.errors import (
    CurveBoundExceeded,
    EngineError,
    InsufficientBalance,
    InsufficientFloat,
    InsufficientLiquidity,
    InvalidCalibration,
    InvariantViolation,
    Locked,
    TooExpensive,
)
from rmm.ledger import ManualClock, ReserveLedger
from rmm.models import Calibration

__version__ = "0.1.0"
__all__ = [
    "Calibration",
    "DEFAULT_ENGINE_CONFIG",
    "Engine",
    "EngineConfig",
    "ManualClock",
    "ReserveLedger",
    # Errors
    "EngineError",
    "InsufficientBalance",
    "InsufficientLiquidity",
    "InsufficientFloat",
    "TooExpensive",
    "CurveBoundExceeded",
    "InvariantViolation",
    "Locked",
    "InvalidCalibration",
    "__version__",
]
