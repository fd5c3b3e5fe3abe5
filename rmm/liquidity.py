"""Proportional liquidity provisioning.

Adding or removing liquidity moves both reserves in proportion to the
current reserve ratios, so the pool stays on the same curve. Amounts paid
in are rounded up, amounts paid out are rounded down.
"""

from __future__ import annotations

from rmm.errors import InsufficientLiquidity
from rmm.math.fixed_point import Rounding, mul_div
from rmm.math.replication import calculate_invariant
from rmm.models.state import Pool


def liquidity_composition(
    delta_liquidity: int, pool: Pool, *, rounding: Rounding
) -> tuple[int, int]:
    """Risky and stable amounts backing ``delta_liquidity`` at current ratios.

    Raises:
        InsufficientLiquidity: If the pool has no liquidity to price against
    """
    reserve = pool.reserve
    if reserve.liquidity == 0:
        raise InsufficientLiquidity(f"Pool {pool.pool_id} has no liquidity")
    delta_risky = mul_div(
        delta_liquidity, reserve.reserve_risky, reserve.liquidity, rounding=rounding
    )
    delta_stable = mul_div(
        delta_liquidity, reserve.reserve_stable, reserve.liquidity, rounding=rounding
    )
    return delta_risky, delta_stable


def add_both(delta_liquidity: int, pool: Pool) -> tuple[int, int, Pool, int]:
    """Price and apply an allocation of ``delta_liquidity``.

    Returns:
        (delta_risky, delta_stable, post_pool, post_invariant); the input
        pool is not mutated
    """
    if delta_liquidity < 0:
        raise ValueError(f"delta_liquidity must be non-negative, got {delta_liquidity}")
    delta_risky, delta_stable = liquidity_composition(delta_liquidity, pool, rounding=Rounding.UP)
    post_pool = pool.copy()
    post_pool.reserve.allocate(delta_risky, delta_stable, delta_liquidity)
    return delta_risky, delta_stable, post_pool, calculate_invariant(post_pool)


def remove_both(delta_liquidity: int, pool: Pool) -> tuple[int, int, Pool, int]:
    """Price and apply a removal of ``delta_liquidity``.

    Raises:
        InsufficientLiquidity: If delta_liquidity exceeds the pool liquidity
    """
    if delta_liquidity < 0:
        raise ValueError(f"delta_liquidity must be non-negative, got {delta_liquidity}")
    if delta_liquidity > pool.reserve.liquidity:
        raise InsufficientLiquidity(
            f"Cannot remove {delta_liquidity} of {pool.reserve.liquidity} liquidity"
        )
    delta_risky, delta_stable = liquidity_composition(
        delta_liquidity, pool, rounding=Rounding.DOWN
    )
    post_pool = pool.copy()
    post_pool.reserve.remove(delta_risky, delta_stable, delta_liquidity)
    return delta_risky, delta_stable, post_pool, calculate_invariant(post_pool)
