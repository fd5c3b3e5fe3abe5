"""Swap solver for the covered-call curve.

Swaps move the pool along ``stable = trading_function(risky) + invariant``,
where the invariant is the pool's value before the trade. Curve positions
that price the caller's input are rounded up and outputs are rounded down,
so rounding never lets a caller take more than the curve allows.

Direction:
    risky_for_stable=True: caller pays risky, receives stable
    risky_for_stable=False: caller pays stable, receives risky

A swap fee, in basis points of the total input, is taken from the input
side before it reaches the curve. It is reported separately and never
enters the reserves.

All functions are pure: the input pool is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from rmm.constants import BPS
from rmm.errors import CurveBoundExceeded, TooExpensive
from rmm.math.fixed_point import Rounding, mul_wad
from rmm.math.replication import (
    calculate_invariant,
    inverse_trading_function,
    time_to_maturity,
    trading_function,
)
from rmm.models.state import Pool
from rmm.safe_int import ceiling_div

logger = structlog.get_logger()


@dataclass(frozen=True)
class SwapQuote:
    """Result of solving a swap against a pool.

    Attributes:
        delta_in: Amount the caller pays, fee included
        delta_out: Amount the pool pays to the caller
        post_pool: Copy of the pool with the swap applied
        post_invariant: Invariant of post_pool
        fee: Part of delta_in kept as a swap fee
    """

    delta_in: int
    delta_out: int
    post_pool: Pool
    post_invariant: int
    fee: int = 0

    @property
    def curve_in(self) -> int:
        """Input that reaches the reserves."""
        return self.delta_in - self.fee


def _on_curve_stable(pool: Pool, risky: int) -> int:
    cal = pool.calibration
    tau = time_to_maturity(cal, pool.reserve.last_timestamp)
    return trading_function(
        risky, pool.reserve.liquidity, cal.strike, cal.sigma, tau, rounding=Rounding.UP
    )


def _on_curve_risky(pool: Pool, stable: int) -> int:
    if stable < 0:
        raise CurveBoundExceeded(f"Stable reserve {stable} below the curve's domain")
    cal = pool.calibration
    tau = time_to_maturity(cal, pool.reserve.last_timestamp)
    return inverse_trading_function(
        stable, pool.reserve.liquidity, cal.strike, cal.sigma, tau, rounding=Rounding.UP
    )


def _stable_cap(pool: Pool) -> int:
    return mul_wad(pool.calibration.strike, pool.reserve.liquidity, rounding=Rounding.DOWN)


def _fee_for_curve_input(curve_in: int, fee_bps: int) -> int:
    """Fee making up at least fee_bps of the total input ``curve_in + fee``."""
    if fee_bps == 0:
        return 0
    return ceiling_div(curve_in * BPS, BPS - fee_bps) - curve_in


def _settle(
    pool: Pool, risky_for_stable: bool, delta_in: int, delta_out: int, fee: int = 0
) -> SwapQuote:
    """Apply the trade to a copy of the pool and check the curve bounds."""
    reserve = pool.reserve
    if risky_for_stable:
        if delta_out > reserve.reserve_stable:
            raise CurveBoundExceeded(
                f"Stable out {delta_out} exceeds reserve {reserve.reserve_stable}"
            )
        if reserve.reserve_risky + delta_in > reserve.liquidity:
            raise CurveBoundExceeded(
                f"Risky reserve would exceed liquidity {reserve.liquidity}"
            )
    else:
        if delta_out > reserve.reserve_risky:
            raise CurveBoundExceeded(
                f"Risky out {delta_out} exceeds reserve {reserve.reserve_risky}"
            )
        if reserve.reserve_stable + delta_in > _stable_cap(pool):
            raise CurveBoundExceeded(
                f"Stable reserve would exceed strike * liquidity {_stable_cap(pool)}"
            )

    post_pool = pool.copy()
    post_pool.reserve.swap(risky_for_stable, delta_in, delta_out)
    return SwapQuote(
        delta_in=delta_in + fee,
        delta_out=delta_out,
        post_pool=post_pool,
        post_invariant=calculate_invariant(post_pool),
        fee=fee,
    )


def get_delta_in(
    delta_out: int,
    risky_for_stable: bool,
    prior_invariant: int,
    pool: Pool,
    *,
    delta_in_max: int | None = None,
    fee_bps: int = 0,
) -> SwapQuote:
    """Solve for the input needed to receive exactly ``delta_out``.

    Args:
        delta_out: Desired output amount
        risky_for_stable: Swap direction
        prior_invariant: Pool invariant before the trade
        pool: Pool to trade against (not mutated)
        delta_in_max: Optional upper bound on the input, fee included
        fee_bps: Swap fee in basis points of the total input

    Returns:
        SwapQuote with the required input and its fee

    Raises:
        CurveBoundExceeded: If the output cannot be reached on the curve
        TooExpensive: If the input exceeds delta_in_max
    """
    if delta_out < 0:
        raise ValueError(f"delta_out must be non-negative, got {delta_out}")
    if delta_out == 0:
        return SwapQuote(0, 0, pool.copy(), prior_invariant)

    reserve = pool.reserve
    if risky_for_stable:
        if delta_out > reserve.reserve_stable:
            raise CurveBoundExceeded(
                f"Stable out {delta_out} exceeds reserve {reserve.reserve_stable}"
            )
        post_stable = reserve.reserve_stable - delta_out
        post_risky = _on_curve_risky(pool, post_stable - prior_invariant)
        delta_in = max(post_risky - reserve.reserve_risky, 1)
    else:
        if delta_out > reserve.reserve_risky:
            raise CurveBoundExceeded(
                f"Risky out {delta_out} exceeds reserve {reserve.reserve_risky}"
            )
        post_risky = reserve.reserve_risky - delta_out
        post_stable = _on_curve_stable(pool, post_risky) + prior_invariant
        delta_in = max(post_stable - reserve.reserve_stable, 1)

    fee = _fee_for_curve_input(delta_in, fee_bps)
    if delta_in_max is not None and delta_in + fee > delta_in_max:
        logger.debug(
            "swap_too_expensive",
            pool_id=pool.pool_id,
            delta_in=delta_in + fee,
            delta_in_max=delta_in_max,
        )
        raise TooExpensive(f"Input {delta_in + fee} exceeds maximum {delta_in_max}")

    return _settle(pool, risky_for_stable, delta_in, delta_out, fee)


def get_delta_out(
    delta_in: int,
    risky_for_stable: bool,
    prior_invariant: int,
    pool: Pool,
    *,
    delta_out_min: int | None = None,
    fee_bps: int = 0,
) -> SwapQuote:
    """Solve for the output received for exactly ``delta_in``, fee included.

    Raises:
        CurveBoundExceeded: If the input pushes a reserve past its bound
        TooExpensive: If the output is below delta_out_min
    """
    if delta_in < 0:
        raise ValueError(f"delta_in must be non-negative, got {delta_in}")
    if delta_in == 0:
        return SwapQuote(0, 0, pool.copy(), prior_invariant)

    fee = ceiling_div(delta_in * fee_bps, BPS)
    curve_in = delta_in - fee
    reserve = pool.reserve
    if risky_for_stable:
        post_risky = reserve.reserve_risky + curve_in
        if post_risky > reserve.liquidity:
            raise CurveBoundExceeded(
                f"Risky reserve {post_risky} would exceed liquidity {reserve.liquidity}"
            )
        post_stable = _on_curve_stable(pool, post_risky) + prior_invariant
        delta_out = max(reserve.reserve_stable - post_stable, 0)
    else:
        post_stable = reserve.reserve_stable + curve_in
        if post_stable > _stable_cap(pool):
            raise CurveBoundExceeded(
                f"Stable reserve {post_stable} would exceed strike * liquidity"
            )
        post_risky = _on_curve_risky(pool, post_stable - prior_invariant)
        delta_out = max(reserve.reserve_risky - post_risky, 0)

    if delta_out_min is not None and delta_out < delta_out_min:
        logger.debug(
            "swap_too_expensive",
            pool_id=pool.pool_id,
            delta_out=delta_out,
            delta_out_min=delta_out_min,
        )
        raise TooExpensive(f"Output {delta_out} below minimum {delta_out_min}")

    return _settle(pool, risky_for_stable, curve_in, delta_out, fee)
