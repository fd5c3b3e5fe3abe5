"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from rmm.constants import (
    BPS,
    DEFAULT_BORROW_FEE_BPS,
    DEFAULT_ENGINE_ADDRESS,
    DEFAULT_SWAP_FEE_BPS,
    INVARIANT_EPSILON,
    MIN_LIQUIDITY,
)
from rmm.models.types import is_valid_address, normalize_address

_TRUTHY = ("true", "1", "yes")


@dataclass(frozen=True)
class EngineConfig:
    """Centralized configuration for an engine instance.

    Attributes:
        engine_address: Identity hashed into every pool id
        borrow_fee_bps: Fee charged on borrowed liquidity, in basis points
            of the borrowed amount (default: 15 = 0.15%)
        swap_fee_bps: Fee charged on swap input, in basis points of the
            total input (default: 0)
        min_liquidity: Liquidity locked forever at pool creation
        invariant_epsilon: Invariant magnitude treated as rounding noise
        reject_expired_swaps: If True, swaps at or after maturity fail with
            PoolExpired. If False, tau clamps to zero and swaps trade on the
            boundary curve.
    """

    engine_address: str = DEFAULT_ENGINE_ADDRESS
    borrow_fee_bps: int = DEFAULT_BORROW_FEE_BPS
    swap_fee_bps: int = DEFAULT_SWAP_FEE_BPS
    min_liquidity: int = MIN_LIQUIDITY
    invariant_epsilon: int = INVARIANT_EPSILON

    # Behavior flags
    reject_expired_swaps: bool = False

    def __post_init__(self) -> None:
        if not is_valid_address(normalize_address(self.engine_address)):
            raise ValueError(f"Invalid engine address: {self.engine_address}")
        object.__setattr__(self, "engine_address", normalize_address(self.engine_address))
        if not 0 <= self.borrow_fee_bps < BPS:
            raise ValueError(f"borrow_fee_bps must be in [0, {BPS}): {self.borrow_fee_bps}")
        if not 0 <= self.swap_fee_bps < BPS:
            raise ValueError(f"swap_fee_bps must be in [0, {BPS}): {self.swap_fee_bps}")
        if self.min_liquidity < 0:
            raise ValueError(f"min_liquidity must be non-negative: {self.min_liquidity}")
        if self.invariant_epsilon < 0:
            raise ValueError(f"invariant_epsilon must be non-negative: {self.invariant_epsilon}")

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from RMM_* environment variables.

        - RMM_ENGINE_ADDRESS
        - RMM_BORROW_FEE_BPS
        - RMM_SWAP_FEE_BPS
        - RMM_MIN_LIQUIDITY
        - RMM_INVARIANT_EPSILON
        - RMM_REJECT_EXPIRED_SWAPS (true/1/yes)

        Unset variables keep their defaults.
        """
        return cls(
            engine_address=os.environ.get("RMM_ENGINE_ADDRESS", DEFAULT_ENGINE_ADDRESS),
            borrow_fee_bps=int(os.environ.get("RMM_BORROW_FEE_BPS", str(DEFAULT_BORROW_FEE_BPS))),
            swap_fee_bps=int(os.environ.get("RMM_SWAP_FEE_BPS", str(DEFAULT_SWAP_FEE_BPS))),
            min_liquidity=int(os.environ.get("RMM_MIN_LIQUIDITY", str(MIN_LIQUIDITY))),
            invariant_epsilon=int(os.environ.get("RMM_INVARIANT_EPSILON", str(INVARIANT_EPSILON))),
            reject_expired_swaps=os.environ.get("RMM_REJECT_EXPIRED_SWAPS", "false").lower()
            in _TRUTHY,
        )


# Default configuration instance
DEFAULT_ENGINE_CONFIG = EngineConfig()
