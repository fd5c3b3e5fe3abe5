"""Covered-call replication curve.

A pool holding ``liquidity`` units replicates a covered call with strike K,
volatility σ and time-to-maturity τ when its reserves satisfy

    reserve_stable = K · Φ(Φ⁻¹(1 − reserve_risky / L) − σ√τ) · L

The invariant of a pool is how far its stable reserve sits above that curve.
Swaps move along ``stable = trading_function(risky) + invariant``.

Units:
    - reserves, liquidity, strike: wad (10^18)
    - sigma: PERCENTAGE scale (10_000 == 100%)
    - tau: seconds, converted to years with SECONDS_PER_YEAR
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rmm.constants import INVARIANT_EPSILON, ONE, PERCENTAGE, SECONDS_PER_YEAR
from rmm.errors import CurveBoundExceeded, InvalidCalibration, MathDomainError
from rmm.math.fixed_point import (
    Rounding,
    _div_trunc,
    div_wad,
    ln,
    mul_div,
    mul_wad,
    sqrt_wad,
)
from rmm.math.normal import std_normal_cdf, std_normal_icdf

if TYPE_CHECKING:
    from rmm.models.calibration import Calibration
    from rmm.models.state import Pool


def _opposite(rounding: Rounding) -> Rounding:
    return Rounding.DOWN if rounding is Rounding.UP else Rounding.UP


def sigma_wad(sigma: int) -> int:
    """Convert a PERCENTAGE-scaled sigma to a wad."""
    return sigma * ONE // PERCENTAGE


def tau_years(tau: int) -> int:
    """Convert seconds to years as a wad."""
    return tau * ONE // SECONDS_PER_YEAR


def sigma_sqrt_tau(sigma: int, tau: int) -> int:
    """σ√τ as a wad, rounded down.

    Raises:
        MathDomainError: If tau is negative
    """
    if tau < 0:
        raise MathDomainError(f"Negative time to maturity: {tau}")
    return sigma_wad(sigma) * sqrt_wad(tau_years(tau)) // ONE


def time_to_maturity(calibration: Calibration, timestamp: int) -> int:
    """Seconds remaining until maturity, clamped to zero once expired."""
    return max(0, calibration.maturity - timestamp)


def trading_function(
    reserve_risky: int,
    liquidity: int,
    strike: int,
    sigma: int,
    tau: int,
    *,
    rounding: Rounding,
) -> int:
    """Stable reserve that puts a pool exactly on the curve.

    Args:
        reserve_risky: Risky reserve (wad)
        liquidity: Pool liquidity (wad)
        strike: Strike price K (wad)
        sigma: Volatility (PERCENTAGE scale)
        tau: Seconds to maturity
        rounding: Direction of the returned stable amount. The risky
            fraction is rounded the opposite way so both steps push the
            result in the same direction.

    Returns:
        Stable reserve (wad)

    Raises:
        CurveBoundExceeded: If reserve_risky > liquidity
        MathDomainError: If tau is negative
    """
    vol = sigma_sqrt_tau(sigma, tau)
    if liquidity == 0:
        return 0
    if reserve_risky < 0 or reserve_risky > liquidity:
        raise CurveBoundExceeded(f"Risky reserve {reserve_risky} outside [0, {liquidity}]")

    ratio = div_wad(reserve_risky, liquidity, rounding=_opposite(rounding))
    if ratio >= ONE:
        return 0
    if ratio == 0:
        return mul_wad(strike, liquidity, rounding=rounding)

    cdf = std_normal_cdf(std_normal_icdf(ONE - ratio) - vol)
    return mul_div(mul_wad(strike, cdf, rounding=rounding), liquidity, ONE, rounding=rounding)


def inverse_trading_function(
    reserve_stable: int,
    liquidity: int,
    strike: int,
    sigma: int,
    tau: int,
    *,
    rounding: Rounding,
) -> int:
    """Risky reserve that puts a pool exactly on the curve.

    Computes L · (1 − Φ(Φ⁻¹(R2 / (K·L)) + σ√τ)).

    Raises:
        CurveBoundExceeded: If reserve_stable > strike * liquidity
        MathDomainError: If tau is negative
    """
    vol = sigma_sqrt_tau(sigma, tau)
    if liquidity == 0:
        return 0
    stable_cap = mul_wad(strike, liquidity, rounding=Rounding.DOWN)
    if reserve_stable < 0 or reserve_stable > stable_cap:
        raise CurveBoundExceeded(f"Stable reserve {reserve_stable} outside [0, {stable_cap}]")

    ratio = div_wad(reserve_stable, stable_cap, rounding=_opposite(rounding))
    if ratio >= ONE:
        return 0
    if ratio == 0:
        return liquidity

    cdf = std_normal_cdf(std_normal_icdf(ratio) + vol)
    return mul_wad(liquidity, ONE - cdf, rounding=rounding)


def calculate_invariant(pool: Pool, *, epsilon: int = INVARIANT_EPSILON) -> int:
    """Signed distance of the stable reserve above the curve.

    The curve is evaluated at the pool's last accrued timestamp, and rounded
    up so the invariant itself rounds down. Magnitudes below ``epsilon`` are
    reported as zero.
    """
    calibration = pool.calibration
    reserve = pool.reserve
    tau = time_to_maturity(calibration, reserve.last_timestamp)
    on_curve = trading_function(
        reserve.reserve_risky,
        reserve.liquidity,
        calibration.strike,
        calibration.sigma,
        tau,
        rounding=Rounding.UP,
    )
    invariant = reserve.reserve_stable - on_curve
    if abs(invariant) < epsilon:
        return 0
    return invariant


def call_delta(calibration: Calibration, spot: int, tau: int) -> int:
    """Black-Scholes call delta Φ(d1) at the given spot price.

    d1 = (ln(S/K) + σ²τ/2) / (σ√τ)

    Raises:
        InvalidCalibration: If σ√τ is zero (pool at or past maturity)
        MathDomainError: If spot is not positive
    """
    if spot <= 0:
        raise MathDomainError(f"Spot price must be positive: {spot}")
    vol = sigma_sqrt_tau(calibration.sigma, tau)
    if vol == 0:
        raise InvalidCalibration("Call delta is undefined without time value")

    sig = sigma_wad(calibration.sigma)
    log_moneyness = ln(div_wad(spot, calibration.strike, rounding=Rounding.DOWN))
    drift = sig * sig // ONE * tau_years(tau) // ONE // 2
    d1 = _div_trunc((log_moneyness + drift) * ONE, vol)
    return std_normal_cdf(d1)
