"""Tests for Calibration validation and pool id derivation."""

import pytest
from eth_utils import keccak

from rmm.constants import DEFAULT_ENGINE_ADDRESS, MAX_SIGMA
from rmm.errors import InvalidCalibration
from rmm.models.calibration import Calibration, compute_pool_id
from tests.helpers import MATURITY, SIGMA, STRIKE, make_calibration


class TestCalibration:
    """Tests for Calibration construction."""

    def test_valid(self):
        cal = make_calibration()
        assert (cal.strike, cal.sigma, cal.maturity) == (STRIKE, SIGMA, MATURITY)

    def test_frozen(self):
        """Calibrations are immutable once created."""
        cal = make_calibration()
        with pytest.raises(AttributeError):
            cal.strike = 1  # type: ignore[misc]

    @pytest.mark.parametrize("strike", [0, -1, 2**128])
    def test_invalid_strike(self, strike):
        with pytest.raises(InvalidCalibration):
            Calibration(strike, SIGMA, MATURITY)

    @pytest.mark.parametrize("sigma", [0, -1, MAX_SIGMA + 1])
    def test_invalid_sigma(self, sigma):
        with pytest.raises(InvalidCalibration):
            Calibration(STRIKE, sigma, MATURITY)

    @pytest.mark.parametrize("maturity", [0, 2**32])
    def test_invalid_maturity(self, maturity):
        with pytest.raises(InvalidCalibration):
            Calibration(STRIKE, SIGMA, maturity)

    def test_is_expired(self):
        """A pool is expired from its maturity second onwards."""
        cal = make_calibration()
        assert not cal.is_expired(MATURITY - 1)
        assert cal.is_expired(MATURITY)
        assert cal.is_expired(MATURITY + 1)


class TestComputePoolId:
    """Tests for compute_pool_id."""

    def test_packed_layout(self):
        """The id hashes engine (20 bytes), strike (16), sigma (4) and maturity (4)."""
        cal = make_calibration()
        packed = (
            bytes.fromhex(DEFAULT_ENGINE_ADDRESS[2:])
            + STRIKE.to_bytes(16, "big")
            + SIGMA.to_bytes(4, "big")
            + MATURITY.to_bytes(4, "big")
        )
        assert compute_pool_id(DEFAULT_ENGINE_ADDRESS, cal) == "0x" + keccak(packed).hex()

    def test_format(self):
        pool_id = compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration())
        assert pool_id.startswith("0x")
        assert len(pool_id) == 66
        assert pool_id == pool_id.lower()

    def test_deterministic(self):
        """Equal inputs always give the same id."""
        a = compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration())
        b = compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration())
        assert a == b

    def test_each_parameter_changes_the_id(self):
        base = compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration())
        assert compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration(strike=STRIKE + 1)) != base
        assert compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration(sigma=SIGMA + 1)) != base
        assert (
            compute_pool_id(DEFAULT_ENGINE_ADDRESS, make_calibration(maturity=MATURITY + 1))
            != base
        )

    def test_engine_address_changes_the_id(self):
        other = "0x" + "42" * 20
        cal = make_calibration()
        assert compute_pool_id(other, cal) != compute_pool_id(DEFAULT_ENGINE_ADDRESS, cal)

    def test_address_case_insensitive(self):
        """Checksummed and lowercase engine addresses give the same id."""
        cal = make_calibration()
        lower = "0x" + "ab" * 20
        assert compute_pool_id(lower.upper().replace("0X", "0x"), cal) == compute_pool_id(
            lower, cal
        )

    def test_invalid_address(self):
        """A malformed engine address is rejected before hashing."""
        with pytest.raises(ValueError):
            compute_pool_id("0x1234", make_calibration())
