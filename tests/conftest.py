"""Pytest configuration and fixtures."""

import pytest

from rmm.config import EngineConfig
from rmm.constants import ONE
from rmm.engine import Engine
from rmm.ledger import ManualClock
from tests.helpers.constants import ALICE, MATURITY, SIGMA, SPOT, START, STRIKE

# Liquidity the default test pool is created with
POOL_LIQUIDITY = 10 * ONE


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock starting at START."""
    return ManualClock(START)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def engine(config: EngineConfig, clock: ManualClock) -> Engine:
    """Fresh engine on a manual clock."""
    return Engine(config, clock)


@pytest.fixture
def pool_id(engine: Engine) -> str:
    """Default pool created by ALICE (nonce 0) with POOL_LIQUIDITY, funded from margin."""
    engine.deposit(ALICE, 100 * ONE, 100_000 * ONE)
    pool_id, _, _ = engine.create(
        ALICE, 0, STRIKE, SIGMA, MATURITY, SPOT, POOL_LIQUIDITY, from_margin=True
    )
    return pool_id
