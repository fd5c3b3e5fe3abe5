"""Fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from rmm.api.endpoints import get_engine
from rmm.api.main import app
from rmm.constants import ONE
from rmm.engine import Engine
from tests.helpers import ALICE, create_pool_payload


@pytest.fixture
def client(engine: Engine):
    """Test client serving the manual-clock engine fixture."""
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_pool_id(client) -> str:
    """Pool created over HTTP by ALICE from a funded margin."""
    client.post(
        f"/margins/{ALICE}/deposit",
        json={"deltaRisky": str(100 * ONE), "deltaStable": str(100_000 * ONE)},
    )
    response = client.post("/pools", json=create_pool_payload())
    assert response.status_code == 201
    return response.json()["poolId"]
