"""Unit tests for API error handling."""

from fastapi.testclient import TestClient

from rmm.api.endpoints import get_engine
from rmm.api.main import app, error_status
from rmm.config import EngineConfig
from rmm.constants import ONE
from rmm.engine import Engine
from rmm.errors import (
    CurveBoundExceeded,
    InsufficientBalance,
    Locked,
    PoolAlreadyExists,
    TooExpensive,
    UnknownPool,
)
from rmm.ledger import SystemClock
from tests.helpers import ALICE, BOB, create_pool_payload


class TestErrorStatus:
    """Tests for the error to status mapping."""

    def test_unknown_pool_is_not_found(self):
        assert error_status(UnknownPool("x")) == 404

    def test_conflicts(self):
        assert error_status(Locked("x")) == 409
        assert error_status(PoolAlreadyExists("x")) == 409

    def test_rejections(self):
        for err in (InsufficientBalance("x"), TooExpensive("x"), CurveBoundExceeded("x")):
            assert error_status(err) == 422


class TestEngineErrors:
    """Engine errors become typed JSON bodies."""

    def test_unknown_pool(self, client):
        response = client.get("/pools/0x" + "00" * 32)
        assert response.status_code == 404
        assert response.json()["error"] == "unknown_pool"

    def test_overdraw(self, client):
        response = client.post(
            f"/margins/{ALICE}/withdraw", json={"deltaRisky": "1", "deltaStable": "0"}
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "insufficient_balance"
        assert body["detail"]

    def test_duplicate_pool(self, client, api_pool_id):
        response = client.post("/pools", json=create_pool_payload())
        assert response.status_code == 409
        assert response.json()["error"] == "pool_already_exists"

    def test_swap_limit(self, client, api_pool_id):
        client.post(f"/margins/{BOB}/deposit", json={"deltaRisky": str(ONE), "deltaStable": "0"})
        response = client.post(
            f"/pools/{api_pool_id}/swap",
            json={
                "owner": BOB,
                "riskyForStable": True,
                "amount": str(100 * ONE),
                "limit": "1",
            },
        )
        assert response.status_code == 422
        assert response.json()["error"] == "too_expensive"

    def test_unfunded_create(self, client):
        response = client.post("/pools", json=create_pool_payload())
        assert response.status_code == 422
        assert response.json()["error"] == "insufficient_balance"


class TestRequestValidation:
    """Malformed requests are rejected before reaching the engine."""

    def test_negative_amount(self, client):
        response = client.post(
            f"/margins/{ALICE}/deposit", json={"deltaRisky": "-1", "deltaStable": "0"}
        )
        assert response.status_code == 422
        assert "error" not in response.json()

    def test_non_numeric_amount(self, client):
        response = client.post(
            f"/margins/{ALICE}/deposit", json={"deltaRisky": "lots", "deltaStable": "0"}
        )
        assert response.status_code == 422

    def test_bad_owner_address(self, client):
        response = client.post("/pools", json=create_pool_payload(owner="alice"))
        assert response.status_code == 422

    def test_zero_sigma(self, client):
        response = client.post("/pools", json=create_pool_payload(sigma=0))
        assert response.status_code == 422


class TestStepErrors:
    """Stepping a wall-clock engine is a conflict."""

    def test_system_clock(self):
        app.dependency_overrides[get_engine] = lambda: Engine(EngineConfig(), SystemClock())
        try:
            response = TestClient(app).post("/time/step", json={"seconds": 1})
            assert response.status_code == 409
        finally:
            app.dependency_overrides.clear()
