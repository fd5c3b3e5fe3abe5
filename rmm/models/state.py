"""Mutable engine records: pool reserves, positions and margin accounts.

Each record validates a transition completely before writing any field, so
a failed call leaves the record exactly as it was. The ledger additionally
applies every transition to a staged copy and commits only on success.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from rmm.constants import ONE
from rmm.errors import (
    EngineError,
    InsufficientBalance,
    InsufficientFloat,
    InsufficientLiquidity,
)
from rmm.models.calibration import Calibration
from rmm.safe_int import Underflow, checked_sub, wrapping_add


def _require_non_negative(**amounts: int) -> None:
    for name, amount in amounts.items():
        if amount < 0:
            raise ValueError(f"{name} must be non-negative, got {amount}")


def _debit(balance: int, amount: int, error: type[EngineError], what: str) -> int:
    """Subtract amount from balance, mapping underflow to an engine error."""
    try:
        return checked_sub(balance, amount)
    except Underflow as err:
        raise error(f"{what}: requested {amount}, available {balance}") from err


@dataclass
class Reserve:
    """Per-pool reserve state.

    Attributes:
        reserve_risky: Risky tokens backing active liquidity
        reserve_stable: Stable tokens backing active liquidity
        liquidity: Total liquidity units
        float_liquidity: Liquidity lent out and available to borrowers
        collateral_risky: Risky collateral held against borrowed float
        collateral_stable: Stable collateral held against borrowed float
        last_timestamp: Time of the last accrual (unix seconds)
        fee_growth_risky: Risky fees per liquidity unit, wrapping
        fee_growth_stable: Stable fees per liquidity unit, wrapping
        cumulative_risky: Time-weighted risky reserve, wrapping
        cumulative_stable: Time-weighted stable reserve, wrapping
        cumulative_liquidity: Time-weighted liquidity, wrapping
    """

    reserve_risky: int = 0
    reserve_stable: int = 0
    liquidity: int = 0
    float_liquidity: int = 0
    collateral_risky: int = 0
    collateral_stable: int = 0
    last_timestamp: int = 0
    fee_growth_risky: int = 0
    fee_growth_stable: int = 0
    cumulative_risky: int = 0
    cumulative_stable: int = 0
    cumulative_liquidity: int = 0

    def copy(self) -> Reserve:
        return replace(self)

    def accrue(self, timestamp: int) -> None:
        """Add reserve * elapsed seconds to the cumulative accumulators.

        A timestamp at or before last_timestamp is a no-op.
        """
        elapsed = timestamp - self.last_timestamp
        if elapsed <= 0:
            return
        self.cumulative_risky = wrapping_add(self.cumulative_risky, self.reserve_risky * elapsed)
        self.cumulative_stable = wrapping_add(self.cumulative_stable, self.reserve_stable * elapsed)
        self.cumulative_liquidity = wrapping_add(self.cumulative_liquidity, self.liquidity * elapsed)
        self.last_timestamp = timestamp

    def swap(self, risky_for_stable: bool, delta_in: int, delta_out: int) -> None:
        """Add delta_in to the input reserve and take delta_out from the other."""
        _require_non_negative(delta_in=delta_in, delta_out=delta_out)
        if risky_for_stable:
            stable = _debit(self.reserve_stable, delta_out, InsufficientLiquidity, "Stable reserve")
            self.reserve_risky += delta_in
            self.reserve_stable = stable
        else:
            risky = _debit(self.reserve_risky, delta_out, InsufficientLiquidity, "Risky reserve")
            self.reserve_stable += delta_in
            self.reserve_risky = risky

    def allocate(self, delta_risky: int, delta_stable: int, delta_liquidity: int) -> None:
        _require_non_negative(
            delta_risky=delta_risky, delta_stable=delta_stable, delta_liquidity=delta_liquidity
        )
        self.reserve_risky += delta_risky
        self.reserve_stable += delta_stable
        self.liquidity += delta_liquidity

    def remove(self, delta_risky: int, delta_stable: int, delta_liquidity: int) -> None:
        """Take reserves and liquidity out of the pool.

        Raises:
            InsufficientLiquidity: If any amount exceeds what the pool holds,
                or the remaining liquidity would not cover the lent float
        """
        _require_non_negative(
            delta_risky=delta_risky, delta_stable=delta_stable, delta_liquidity=delta_liquidity
        )
        risky = _debit(self.reserve_risky, delta_risky, InsufficientLiquidity, "Risky reserve")
        stable = _debit(self.reserve_stable, delta_stable, InsufficientLiquidity, "Stable reserve")
        liquidity = _debit(self.liquidity, delta_liquidity, InsufficientLiquidity, "Liquidity")
        if liquidity < self.float_liquidity:
            raise InsufficientLiquidity(
                f"Remaining liquidity {liquidity} below lent float {self.float_liquidity}"
            )
        self.reserve_risky = risky
        self.reserve_stable = stable
        self.liquidity = liquidity

    def add_float(self, delta_liquidity: int) -> None:
        _require_non_negative(delta_liquidity=delta_liquidity)
        float_liquidity = self.float_liquidity + delta_liquidity
        if float_liquidity > self.liquidity:
            raise InsufficientLiquidity(
                f"Float {float_liquidity} would exceed liquidity {self.liquidity}"
            )
        self.float_liquidity = float_liquidity

    def remove_float(self, delta_liquidity: int) -> None:
        _require_non_negative(delta_liquidity=delta_liquidity)
        self.float_liquidity = _debit(
            self.float_liquidity, delta_liquidity, InsufficientFloat, "Float"
        )

    def borrow_float(self, delta_liquidity: int, delta_risky: int, delta_stable: int) -> None:
        """Take liquidity out of float and record the collateral held for it."""
        _require_non_negative(
            delta_liquidity=delta_liquidity, delta_risky=delta_risky, delta_stable=delta_stable
        )
        self.float_liquidity = _debit(
            self.float_liquidity, delta_liquidity, InsufficientFloat, "Float"
        )
        self.collateral_risky += delta_risky
        self.collateral_stable += delta_stable

    def repay_float(self, delta_liquidity: int, delta_risky: int, delta_stable: int) -> None:
        """Exact inverse of borrow_float."""
        _require_non_negative(
            delta_liquidity=delta_liquidity, delta_risky=delta_risky, delta_stable=delta_stable
        )
        risky = _debit(self.collateral_risky, delta_risky, InsufficientBalance, "Risky collateral")
        stable = _debit(
            self.collateral_stable, delta_stable, InsufficientBalance, "Stable collateral"
        )
        float_liquidity = self.float_liquidity + delta_liquidity
        if float_liquidity > self.liquidity:
            raise InsufficientLiquidity(
                f"Float {float_liquidity} would exceed liquidity {self.liquidity}"
            )
        self.collateral_risky = risky
        self.collateral_stable = stable
        self.float_liquidity = float_liquidity

    def add_fee(self, delta_risky: int, delta_stable: int) -> None:
        """Grow the per-liquidity fee accumulators. No-op without liquidity."""
        _require_non_negative(delta_risky=delta_risky, delta_stable=delta_stable)
        if self.liquidity == 0:
            return
        self.fee_growth_risky = wrapping_add(
            self.fee_growth_risky, delta_risky * ONE // self.liquidity
        )
        self.fee_growth_stable = wrapping_add(
            self.fee_growth_stable, delta_stable * ONE // self.liquidity
        )


@dataclass
class Pool:
    """A calibration together with its reserve."""

    pool_id: str
    calibration: Calibration
    reserve: Reserve = field(default_factory=Reserve)
    locked: bool = False

    @property
    def lock_key(self) -> tuple[str, ...]:
        return ("pool", self.pool_id)

    def copy(self) -> Pool:
        return replace(self, reserve=self.reserve.copy())


@dataclass
class Position:
    """Liquidity, lending and debt of one (owner, nonce) pair in one pool.

    Attributes:
        margin_risky: Risky collateral escrowed for outstanding debt
        margin_stable: Stable collateral escrowed for outstanding debt
        liquidity: Liquidity units owned
        float_liquidity: Part of liquidity currently lent to the pool
        debt: Borrowed liquidity not yet repaid
        fee_growth_risky_last: Pool fee growth at the last fee settlement
        fee_growth_stable_last: Pool fee growth at the last fee settlement
    """

    owner: str
    nonce: int
    pool_id: str
    margin_risky: int = 0
    margin_stable: int = 0
    liquidity: int = 0
    float_liquidity: int = 0
    debt: int = 0
    fee_growth_risky_last: int = 0
    fee_growth_stable_last: int = 0
    locked: bool = False

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.owner, self.nonce, self.pool_id)

    @property
    def lock_key(self) -> tuple[str | int, ...]:
        return ("position", *self.key)

    @property
    def unlent_liquidity(self) -> int:
        return self.liquidity - self.float_liquidity

    def copy(self) -> Position:
        return replace(self)


@dataclass
class Margin:
    """Pool-independent balances used to fund engine operations."""

    owner: str
    balance_risky: int = 0
    balance_stable: int = 0
    locked: bool = False

    @property
    def lock_key(self) -> tuple[str, ...]:
        return ("margin", self.owner)

    def copy(self) -> Margin:
        return replace(self)

    def deposit(self, delta_risky: int, delta_stable: int) -> None:
        _require_non_negative(delta_risky=delta_risky, delta_stable=delta_stable)
        self.balance_risky += delta_risky
        self.balance_stable += delta_stable

    def withdraw(self, delta_risky: int, delta_stable: int) -> None:
        """Debit both balances.

        Raises:
            InsufficientBalance: If either amount exceeds the balance
        """
        _require_non_negative(delta_risky=delta_risky, delta_stable=delta_stable)
        risky = _debit(self.balance_risky, delta_risky, InsufficientBalance, "Risky margin")
        stable = _debit(self.balance_stable, delta_stable, InsufficientBalance, "Stable margin")
        self.balance_risky = risky
        self.balance_stable = stable
