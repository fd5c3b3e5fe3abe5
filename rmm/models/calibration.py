"""Pool calibration and pool id derivation."""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi.packed import encode_packed
from eth_utils import keccak

from rmm.constants import MAX_SIGMA, UINT32_MAX, UINT128_MAX
from rmm.errors import InvalidCalibration
from rmm.models.types import is_valid_address, normalize_address


@dataclass(frozen=True)
class Calibration:
    """Immutable parameters of the covered call a pool replicates.

    Attributes:
        strike: Strike price in stable per risky (wad)
        sigma: Implied volatility, 10_000 == 100%
        maturity: Expiry as a unix timestamp in seconds
    """

    strike: int
    sigma: int
    maturity: int

    def __post_init__(self) -> None:
        if not 0 < self.strike <= UINT128_MAX:
            raise InvalidCalibration(f"Strike must be in (0, 2^128): {self.strike}")
        if not 0 < self.sigma <= MAX_SIGMA:
            raise InvalidCalibration(f"Sigma must be in (0, {MAX_SIGMA}]: {self.sigma}")
        if not 0 < self.maturity <= UINT32_MAX:
            raise InvalidCalibration(f"Maturity must be in (0, 2^32): {self.maturity}")

    def is_expired(self, timestamp: int) -> bool:
        """True once the timestamp reaches maturity."""
        return timestamp >= self.maturity


def compute_pool_id(engine_address: str, calibration: Calibration) -> str:
    """Derive the pool id from the engine identity and calibration.

    keccak256(abi.encodePacked(engine, uint128 strike, uint32 sigma, uint32 maturity))

    Args:
        engine_address: Engine identity as a 0x-prefixed address
        calibration: Pool calibration

    Returns:
        Pool id as a lowercase 0x-prefixed 32-byte hex string

    Raises:
        ValueError: If the engine address is not a 20-byte hex address
    """
    engine = normalize_address(engine_address)
    if not is_valid_address(engine):
        raise ValueError(f"Invalid address: {engine_address}")
    packed = encode_packed(
        ["address", "uint128", "uint32", "uint32"],
        [
            engine,
            calibration.strike,
            calibration.sigma,
            calibration.maturity,
        ],
    )
    return "0x" + keccak(packed).hex()
