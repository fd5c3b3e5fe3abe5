"""Reserve ledger: the explicit store of pools, positions and margins.

The ledger owns every record. Callers never mutate stored records
directly: they stage a copy, apply transitions to it and commit it back,
so a failure anywhere leaves the store untouched.

Per-pool transitions keyed by pool id (``accrue``, ``apply_swap``,
``allocate``, ...) are provided for single-step use; the engine composes
multi-record operations from ``stage_*`` and ``commit_*``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import fields
from typing import Protocol, TypeVar

import structlog

from rmm.constants import INVARIANT_EPSILON
from rmm.errors import InvariantViolation, Locked, PoolAlreadyExists, UnknownPool
from rmm.math.replication import calculate_invariant
from rmm.models.calibration import Calibration
from rmm.models.state import Margin, Pool, Position, Reserve

logger = structlog.get_logger()

PositionKey = tuple[str, int, str]

_Record = TypeVar("_Record", Pool, Position, Margin)


class Clock(Protocol):
    """Source of the current time in unix seconds."""

    def now(self) -> int: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when stepped. Used by tests and simulations."""

    def __init__(self, start: int = 0) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError(f"Cannot step time backwards: {seconds}")
        self._now += seconds


def apply_swap(
    pool: Pool,
    risky_for_stable: bool,
    delta_in: int,
    delta_out: int,
    *,
    epsilon: int = INVARIANT_EPSILON,
) -> int:
    """Apply a swap to the pool's reserve in place and verify the invariant.

    Args:
        pool: Pool to mutate (a staged copy)
        risky_for_stable: True when risky is paid in and stable paid out
        delta_in: Amount added to the input reserve
        delta_out: Amount taken from the output reserve
        epsilon: Allowed invariant regression

    Returns:
        The post-swap invariant

    Raises:
        InvariantViolation: If the invariant fell by more than epsilon. The
            reserve is left unchanged.
    """
    prior = calculate_invariant(pool, epsilon=epsilon)
    staged = pool.reserve.copy()
    staged.swap(risky_for_stable, delta_in, delta_out)
    post = calculate_invariant(Pool(pool.pool_id, pool.calibration, staged), epsilon=epsilon)
    if post < prior - epsilon:
        raise InvariantViolation(f"Invariant fell from {prior} to {post}")
    pool.reserve = staged
    return post


def _copy_into(target: _Record, source: _Record) -> None:
    """Copy every field except the lock flag."""
    for f in fields(source):
        if f.name != "locked":
            setattr(target, f.name, getattr(source, f.name))


class ReserveLedger:
    """Store of all engine records, keyed by pool id, position key and owner.

    Attributes:
        clock: Source of the timestamp used by accrual
        invariant_epsilon: Allowed invariant regression on swaps
        pools: Pools by pool id
        positions: Positions by (owner, nonce, pool_id)
        margins: Margin accounts by owner
    """

    def __init__(
        self, clock: Clock | None = None, *, invariant_epsilon: int = INVARIANT_EPSILON
    ) -> None:
        self.clock: Clock = clock if clock is not None else SystemClock()
        self.invariant_epsilon = invariant_epsilon
        self.pools: dict[str, Pool] = {}
        self.positions: dict[PositionKey, Position] = {}
        self.margins: dict[str, Margin] = {}

    # --- Time ---

    def now(self) -> int:
        return self.clock.now()

    def step(self, seconds: int) -> int:
        """Advance the ledger clock.

        Accumulators are not touched here; the next ``accrue`` picks up the
        elapsed time.

        Returns:
            The new current time

        Raises:
            TypeError: If the clock cannot be stepped
        """
        if not isinstance(self.clock, ManualClock):
            raise TypeError(f"{type(self.clock).__name__} cannot be stepped")
        self.clock.advance(seconds)
        logger.debug("clock_stepped", seconds=seconds, now=self.clock.now())
        return self.clock.now()

    # --- Lookup ---

    def pool(self, pool_id: str) -> Pool:
        """Return the stored pool.

        Raises:
            UnknownPool: If no pool has this id
        """
        try:
            return self.pools[pool_id]
        except KeyError:
            raise UnknownPool(f"Unknown pool: {pool_id}") from None

    def fetch_position(self, owner: str, nonce: int, pool_id: str) -> Position:
        """Return the stored position, or a fresh one that is not yet stored."""
        position = self.positions.get((owner, nonce, pool_id))
        if position is None:
            position = Position(owner=owner, nonce=nonce, pool_id=pool_id)
        return position

    def fetch_margin(self, owner: str) -> Margin:
        """Return the stored margin account, or a fresh one that is not yet stored."""
        margin = self.margins.get(owner)
        if margin is None:
            margin = Margin(owner=owner)
        return margin

    # --- Staging ---

    def stage_pool(self, pool_id: str) -> Pool:
        return self.pool(pool_id).copy()

    def add_pool(self, pool: Pool) -> None:
        """Register a new pool.

        Raises:
            PoolAlreadyExists: If the pool id is taken
        """
        if pool.pool_id in self.pools:
            raise PoolAlreadyExists(f"Pool already exists: {pool.pool_id}")
        self.pools[pool.pool_id] = pool

    def commit_pool(self, held: Pool, staged: Pool) -> None:
        _copy_into(held, staged)
        held.reserve = staged.reserve.copy()
        self.pools.setdefault(held.pool_id, held)

    def commit_position(self, held: Position, staged: Position) -> None:
        _copy_into(held, staged)
        self.positions.setdefault(held.key, held)

    def commit_margin(self, held: Margin, staged: Margin) -> None:
        _copy_into(held, staged)
        self.margins.setdefault(held.owner, held)

    # --- Per-pool transitions ---

    def _unlocked_pool(self, pool_id: str) -> Pool:
        """Return the stored pool for a direct transition.

        Raises:
            Locked: If an engine operation holds the pool
        """
        pool = self.pool(pool_id)
        if pool.locked:
            logger.debug("reentrant_call_rejected", lock_key=pool.lock_key)
            raise Locked(f"pool {pool_id} is locked by an operation in progress")
        return pool

    def _transition(self, pool_id: str, mutate: Callable[[Reserve], None]) -> Reserve:
        pool = self._unlocked_pool(pool_id)
        staged = pool.reserve.copy()
        mutate(staged)
        pool.reserve = staged
        return staged.copy()

    def accrue(self, pool_id: str) -> Reserve:
        """Accrue the pool's cumulative accumulators up to now."""
        now = self.now()
        return self._transition(pool_id, lambda r: r.accrue(now))

    def apply_swap(
        self, pool_id: str, risky_for_stable: bool, delta_in: int, delta_out: int
    ) -> Reserve:
        """Apply a swap to the stored pool, rejecting invariant regressions."""
        pool = self._unlocked_pool(pool_id)
        staged = pool.copy()
        apply_swap(staged, risky_for_stable, delta_in, delta_out, epsilon=self.invariant_epsilon)
        pool.reserve = staged.reserve
        return staged.reserve.copy()

    def allocate(
        self, pool_id: str, delta_risky: int, delta_stable: int, delta_liquidity: int
    ) -> Reserve:
        return self._transition(
            pool_id, lambda r: r.allocate(delta_risky, delta_stable, delta_liquidity)
        )

    def remove(
        self, pool_id: str, delta_risky: int, delta_stable: int, delta_liquidity: int
    ) -> Reserve:
        return self._transition(
            pool_id, lambda r: r.remove(delta_risky, delta_stable, delta_liquidity)
        )

    def add_float(self, pool_id: str, delta_liquidity: int) -> Reserve:
        return self._transition(pool_id, lambda r: r.add_float(delta_liquidity))

    def remove_float(self, pool_id: str, delta_liquidity: int) -> Reserve:
        return self._transition(pool_id, lambda r: r.remove_float(delta_liquidity))

    def borrow_float(
        self, pool_id: str, delta_liquidity: int, delta_risky: int, delta_stable: int
    ) -> Reserve:
        return self._transition(
            pool_id, lambda r: r.borrow_float(delta_liquidity, delta_risky, delta_stable)
        )

    def repay_float(
        self, pool_id: str, delta_liquidity: int, delta_risky: int, delta_stable: int
    ) -> Reserve:
        return self._transition(
            pool_id, lambda r: r.repay_float(delta_liquidity, delta_risky, delta_stable)
        )

    def add_fee(self, pool_id: str, delta_risky: int, delta_stable: int) -> Reserve:
        return self._transition(pool_id, lambda r: r.add_fee(delta_risky, delta_stable))

    # --- Read accessors ---

    def get_reserve(self, pool_id: str) -> Reserve:
        return self.pool(pool_id).reserve.copy()

    def get_calibration(self, pool_id: str) -> Calibration:
        return self.pool(pool_id).calibration

    def get_position(self, owner: str, nonce: int, pool_id: str) -> Position:
        return self.fetch_position(owner, nonce, pool_id).copy()

    def get_margin(self, owner: str) -> Margin:
        return self.fetch_margin(owner).copy()
