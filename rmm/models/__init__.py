"""Data model for pools, positions and margin accounts."""

from rmm.models.calibration import Calibration, compute_pool_id
from rmm.models.state import Margin, Pool, Position, Reserve
from rmm.models.types import Address, PoolId, Uint256

__all__ = [
    # Types
    "Address",
    "PoolId",
    "Uint256",
    # Calibration
    "Calibration",
    "compute_pool_id",
    # Records
    "Margin",
    "Pool",
    "Position",
    "Reserve",
]
