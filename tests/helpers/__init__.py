"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Accounts, default calibration and timestamps
- factories: Calibration, pool and request body factory functions
"""

from tests.helpers.constants import (
    ALICE,
    BOB,
    CAROL,
    DAY,
    MATURITY,
    SIGMA,
    SPOT,
    START,
    STRIKE,
    YEAR,
)
from tests.helpers.factories import (
    create_pool_payload,
    make_calibration,
    make_pool,
    make_pool_on_curve,
)

__all__ = [
    # Constants
    "ALICE",
    "BOB",
    "CAROL",
    "START",
    "DAY",
    "YEAR",
    "STRIKE",
    "SIGMA",
    "MATURITY",
    "SPOT",
    # Factories
    "create_pool_payload",
    "make_calibration",
    "make_pool",
    "make_pool_on_curve",
]
