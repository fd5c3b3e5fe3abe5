"""Shared test constants: accounts, calibration and time."""

from rmm.constants import ONE, SECONDS_PER_YEAR

# Accounts
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20

# Time
START = 1_700_000_000
DAY = 86_400
YEAR = SECONDS_PER_YEAR

# Default calibration: 1000 strike, 85% vol, one year to maturity
STRIKE = 1_000 * ONE
SIGMA = 8_500
MATURITY = START + YEAR
SPOT = 1_100 * ONE

__all__ = [
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
]
