"""Lending and borrowing of pool liquidity.

Lenders mark part of their position's liquidity as float. Borrowers take
float out of the pool: the reserves backing it are removed and held, with
the borrower's premium, as collateral until the debt is repaid.

Accounting per borrowed liquidity unit:
    - the pool removes the reserves backing it, (Δrisky, Δstable)
    - the position escrows ΔL risky and Δstable stable; the borrower funds
      the risky shortfall ΔL − Δrisky plus the borrow fee (the premium)
    - the fee grows the pool's fee accumulators, and lenders collect it pro
      rata to their float when they next lend or claim; their combined share
      never exceeds the fee paid

These functions mutate the staged records they are given and return the
token amounts the engine has to settle with the caller.
"""

from __future__ import annotations

from dataclasses import dataclass

from rmm.constants import BPS, ONE
from rmm.errors import InsufficientFloat, InsufficientLiquidity
from rmm.liquidity import liquidity_composition
from rmm.math.fixed_point import Rounding
from rmm.models.state import Pool, Position
from rmm.safe_int import ceiling_div, wrapping_sub


@dataclass(frozen=True)
class BorrowTerms:
    """Amounts of a borrow.

    Attributes:
        delta_risky: Risky removed from the reserves
        delta_stable: Stable removed from the reserves
        fee: Borrow fee in risky
        premium: Risky the borrower pays: ΔL − delta_risky + fee
    """

    delta_risky: int
    delta_stable: int
    fee: int
    premium: int


@dataclass(frozen=True)
class RepayTerms:
    """Amounts of a repayment.

    Attributes:
        released_risky: Escrowed risky released by the repayment
        released_stable: Escrowed stable released by the repayment
        delta_risky: Risky allocated back into the reserves
        delta_stable: Stable allocated back into the reserves
    """

    released_risky: int
    released_stable: int
    delta_risky: int
    delta_stable: int

    @property
    def net_risky(self) -> int:
        """Risky owed to the payer (negative: owed by the payer)."""
        return self.released_risky - self.delta_risky

    @property
    def net_stable(self) -> int:
        return self.released_stable - self.delta_stable


def lent_liquidity(pool: Pool) -> int:
    """Liquidity lent by all positions: unborrowed float plus outstanding debt.

    Each borrowed unit escrows exactly one risky, so the risky collateral
    equals the outstanding debt.
    """
    return pool.reserve.float_liquidity + pool.reserve.collateral_risky


def credit_fee(pool: Pool, fee_risky: int, fee_stable: int) -> None:
    """Grow the fee accumulators by at most ``fee / lent`` per liquidity unit.

    Lenders collect on their whole float, including the part that is borrowed,
    while the accumulators are per unit of active liquidity. The fee is scaled
    by active / lent liquidity so the lenders' combined share never exceeds it.
    Nothing is credited while no liquidity is lent.
    """
    lent = lent_liquidity(pool)
    if lent == 0:
        return
    liquidity = pool.reserve.liquidity
    pool.reserve.add_fee(fee_risky * liquidity // lent, fee_stable * liquidity // lent)


def settle_fees(pool: Pool, position: Position) -> tuple[int, int]:
    """Collect the position's fee share since its last checkpoint.

    Fee growth accumulators wrap, so the growth is taken modulo their width.

    Returns:
        (fee_risky, fee_stable) owed to the position owner
    """
    reserve = pool.reserve
    growth_risky = wrapping_sub(reserve.fee_growth_risky, position.fee_growth_risky_last)
    growth_stable = wrapping_sub(reserve.fee_growth_stable, position.fee_growth_stable_last)
    fee_risky = position.float_liquidity * growth_risky // ONE
    fee_stable = position.float_liquidity * growth_stable // ONE
    position.fee_growth_risky_last = reserve.fee_growth_risky
    position.fee_growth_stable_last = reserve.fee_growth_stable
    return fee_risky, fee_stable


def lend(pool: Pool, position: Position, delta_liquidity: int) -> tuple[int, int]:
    """Lend part of the position's liquidity to the pool's float.

    Returns:
        Fees settled before the float changed

    Raises:
        InsufficientLiquidity: If the position lacks un-lent liquidity
    """
    fees = settle_fees(pool, position)
    if delta_liquidity > position.unlent_liquidity:
        raise InsufficientLiquidity(
            f"Cannot lend {delta_liquidity}, position has {position.unlent_liquidity} un-lent"
        )
    pool.reserve.add_float(delta_liquidity)
    position.float_liquidity += delta_liquidity
    return fees


def claim(pool: Pool, position: Position, delta_liquidity: int) -> tuple[int, int]:
    """Take lent liquidity back out of the float and collect fees.

    Returns:
        Fees owed to the position owner

    Raises:
        InsufficientFloat: If the position lent less than delta_liquidity, or
            the pool's unborrowed float is smaller
    """
    fees = settle_fees(pool, position)
    if delta_liquidity > position.float_liquidity:
        raise InsufficientFloat(
            f"Cannot claim {delta_liquidity}, position lent {position.float_liquidity}"
        )
    pool.reserve.remove_float(delta_liquidity)
    position.float_liquidity -= delta_liquidity
    return fees


def borrow_terms(pool: Pool, delta_liquidity: int, fee_bps: int) -> BorrowTerms:
    """Price a borrow of ``delta_liquidity`` without mutating anything.

    Raises:
        InsufficientFloat: If the pool's float is smaller than delta_liquidity
    """
    if delta_liquidity > pool.reserve.float_liquidity:
        raise InsufficientFloat(
            f"Cannot borrow {delta_liquidity}, pool float is {pool.reserve.float_liquidity}"
        )
    delta_risky, delta_stable = liquidity_composition(
        delta_liquidity, pool, rounding=Rounding.DOWN
    )
    fee = ceiling_div(delta_liquidity * fee_bps, BPS)
    return BorrowTerms(
        delta_risky=delta_risky,
        delta_stable=delta_stable,
        fee=fee,
        premium=delta_liquidity - delta_risky + fee,
    )


def borrow(pool: Pool, position: Position, delta_liquidity: int, terms: BorrowTerms) -> None:
    """Move borrowed float out of the pool and into the position's escrow."""
    reserve = pool.reserve
    reserve.borrow_float(delta_liquidity, delta_liquidity, terms.delta_stable)
    reserve.remove(terms.delta_risky, terms.delta_stable, delta_liquidity)
    credit_fee(pool, terms.fee, 0)
    position.debt += delta_liquidity
    position.margin_risky += delta_liquidity
    position.margin_stable += terms.delta_stable


def repay(pool: Pool, position: Position, delta_liquidity: int) -> RepayTerms:
    """Repay part or all of the position's debt.

    Releases the matching share of the escrow and allocates the reserve
    composition of ``delta_liquidity`` at current ratios back into the pool.

    Raises:
        InsufficientLiquidity: If delta_liquidity exceeds the debt
    """
    if delta_liquidity > position.debt:
        raise InsufficientLiquidity(
            f"Cannot repay {delta_liquidity}, position debt is {position.debt}"
        )
    if delta_liquidity == position.debt:
        released_risky = position.margin_risky
        released_stable = position.margin_stable
    else:
        released_risky = position.margin_risky * delta_liquidity // position.debt
        released_stable = position.margin_stable * delta_liquidity // position.debt

    delta_risky, delta_stable = liquidity_composition(delta_liquidity, pool, rounding=Rounding.UP)
    reserve = pool.reserve
    reserve.allocate(delta_risky, delta_stable, delta_liquidity)
    reserve.repay_float(delta_liquidity, released_risky, released_stable)

    position.debt -= delta_liquidity
    position.margin_risky -= released_risky
    position.margin_stable -= released_stable
    return RepayTerms(
        released_risky=released_risky,
        released_stable=released_stable,
        delta_risky=delta_risky,
        delta_stable=delta_stable,
    )
