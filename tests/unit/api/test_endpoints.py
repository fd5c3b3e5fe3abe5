"""Tests for the engine HTTP endpoints."""

from rmm.constants import ONE
from tests.helpers import (
    ALICE,
    BOB,
    DAY,
    MATURITY,
    SIGMA,
    START,
    STRIKE,
    create_pool_payload,
)


def deposit(client, owner: str, risky: int, stable: int):
    return client.post(
        f"/margins/{owner}/deposit",
        json={"deltaRisky": str(risky), "deltaStable": str(stable)},
    )


class TestMarginEndpoints:
    """Tests for /margins."""

    def test_deposit_and_read(self, client):
        response = deposit(client, ALICE, ONE, 2 * ONE)
        assert response.status_code == 200
        assert response.json() == {
            "owner": ALICE,
            "balanceRisky": str(ONE),
            "balanceStable": str(2 * ONE),
        }
        assert client.get(f"/margins/{ALICE}").json()["balanceRisky"] == str(ONE)

    def test_owner_is_normalized(self, client):
        """Checksummed and lowercase paths address the same account."""
        deposit(client, ALICE.upper().replace("0X", "0x"), ONE, 0)
        assert client.get(f"/margins/{ALICE}").json()["balanceRisky"] == str(ONE)

    def test_withdraw(self, client):
        deposit(client, ALICE, ONE, ONE)
        response = client.post(
            f"/margins/{ALICE}/withdraw", json={"deltaRisky": str(ONE), "deltaStable": "0"}
        )
        assert response.status_code == 200
        assert response.json()["balanceRisky"] == "0"

    def test_accepts_integer_amounts(self, client):
        response = client.post(
            f"/margins/{ALICE}/deposit", json={"deltaRisky": 5, "deltaStable": 0}
        )
        assert response.json()["balanceRisky"] == "5"


class TestPoolEndpoints:
    """Tests for /pools."""

    def test_create(self, client, engine):
        deposit(client, ALICE, 100 * ONE, 100_000 * ONE)
        response = client.post("/pools", json=create_pool_payload())
        assert response.status_code == 201
        data = response.json()
        assert data["poolId"] == engine.pool_id_for(STRIKE, SIGMA, MATURITY)
        assert int(data["deltaRisky"]) > 0
        assert int(data["deltaStable"]) > 0

    def test_get_pool(self, client, api_pool_id):
        data = client.get(f"/pools/{api_pool_id}").json()
        assert data["poolId"] == api_pool_id
        assert data["calibration"] == {
            "strike": str(STRIKE),
            "sigma": SIGMA,
            "maturity": MATURITY,
        }
        assert data["reserve"]["liquidity"] == str(10 * ONE)
        assert data["reserve"]["float"] == "0"
        assert data["reserve"]["lastTimestamp"] == START
        assert data["invariant"] == "0"

    def test_pool_id_case_insensitive(self, client, api_pool_id):
        response = client.get(f"/pools/{api_pool_id.upper().replace('0X', '0x')}")
        assert response.status_code == 200

    def test_quote(self, client, api_pool_id):
        response = client.post(
            f"/pools/{api_pool_id}/quote",
            json={"riskyForStable": True, "amount": str(100 * ONE)},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["deltaOut"] == str(100 * ONE)
        assert data["fee"] == "0"
        assert int(data["deltaIn"]) > 0
        assert "reserveRisky" in data["postReserve"]

    def test_swap_exact_out(self, client, api_pool_id):
        deposit(client, BOB, ONE, 0)
        response = client.post(
            f"/pools/{api_pool_id}/swap",
            json={"owner": BOB, "riskyForStable": True, "amount": str(100 * ONE)},
        )
        assert response.status_code == 200
        delta_in = int(response.json()["deltaIn"])
        margin = client.get(f"/margins/{BOB}").json()
        assert margin["balanceRisky"] == str(ONE - delta_in)
        assert margin["balanceStable"] == str(100 * ONE)

    def test_swap_exact_in(self, client, api_pool_id):
        deposit(client, BOB, 0, 1_000 * ONE)
        response = client.post(
            f"/pools/{api_pool_id}/swap",
            json={
                "owner": BOB,
                "riskyForStable": False,
                "amount": str(500 * ONE),
                "exactIn": True,
            },
        )
        assert response.status_code == 200
        assert response.json()["deltaIn"] == str(500 * ONE)
        margin = client.get(f"/margins/{BOB}").json()
        assert margin["balanceStable"] == str(500 * ONE)
        assert margin["balanceRisky"] == response.json()["deltaOut"]

    def test_allocate_and_remove(self, client, api_pool_id):
        deposit(client, BOB, 10 * ONE, 10_000 * ONE)
        body = {"owner": BOB, "nonce": 0, "deltaLiquidity": str(ONE)}
        allocated = client.post(f"/pools/{api_pool_id}/allocate", json=body)
        assert allocated.status_code == 200
        position = client.get(f"/positions/{BOB}/0/{api_pool_id}").json()
        assert position["liquidity"] == str(ONE)

        removed = client.post(f"/pools/{api_pool_id}/remove", json=body)
        assert removed.status_code == 200
        assert int(allocated.json()["deltaRisky"]) - int(removed.json()["deltaRisky"]) <= 1

    def test_lend_borrow_repay_claim(self, client, api_pool_id):
        lend = {"owner": ALICE, "nonce": 0, "deltaLiquidity": str(5 * ONE)}
        assert client.post(f"/pools/{api_pool_id}/lend", json=lend).status_code == 200

        deposit(client, BOB, 10 * ONE, 10_000 * ONE)
        borrowed = client.post(
            f"/pools/{api_pool_id}/borrow",
            json={"recipient": BOB, "owner": BOB, "nonce": 0, "deltaLiquidity": str(ONE)},
        )
        assert borrowed.status_code == 200
        assert borrowed.json()["fee"] == str(15 * 10**14)
        position = client.get(f"/positions/{BOB}/0/{api_pool_id}").json()
        assert position["debt"] == str(ONE)

        repaid = client.post(
            f"/pools/{api_pool_id}/repay",
            json={"owner": BOB, "nonce": 0, "deltaLiquidity": str(ONE)},
        )
        assert repaid.status_code == 200
        assert repaid.json()["releasedRisky"] == str(ONE)

        claimed = client.post(f"/pools/{api_pool_id}/claim", json=lend)
        assert claimed.status_code == 200
        assert int(claimed.json()["deltaRisky"]) > 0


class TestTimeEndpoint:
    """Tests for /time/step."""

    def test_step(self, client):
        response = client.post("/time/step", json={"seconds": DAY})
        assert response.status_code == 200
        assert response.json() == {"now": START + DAY}

    def test_invariant_after_step(self, client, api_pool_id):
        client.post("/time/step", json={"seconds": 30 * DAY})
        assert int(client.get(f"/pools/{api_pool_id}").json()["invariant"]) < 0
