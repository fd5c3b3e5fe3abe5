"""Tests for the reserve ledger, its clock and invariant-checked swaps."""

import pytest

from rmm.constants import ONE
from rmm.errors import (
    InsufficientFloat,
    InsufficientLiquidity,
    InvariantViolation,
    Locked,
    PoolAlreadyExists,
    UnknownPool,
)
from rmm.ledger import ManualClock, ReserveLedger, SystemClock, apply_swap
from rmm.math.replication import calculate_invariant
from rmm.models.state import Margin, Position
from rmm.swap import get_delta_in
from tests.helpers import ALICE, DAY, START, make_pool, make_pool_on_curve


@pytest.fixture
def ledger() -> ReserveLedger:
    return ReserveLedger(ManualClock(START))


@pytest.fixture
def stored_pool(ledger):
    pool = make_pool_on_curve(liquidity=10 * ONE)
    ledger.add_pool(pool)
    return pool


class TestClocks:
    """Tests for ManualClock and stepping."""

    def test_manual_clock_advances(self):
        clock = ManualClock(100)
        clock.advance(5)
        assert clock.now() == 105

    def test_manual_clock_rejects_backwards(self):
        with pytest.raises(ValueError):
            ManualClock(100).advance(-1)

    def test_step_returns_new_time(self, ledger):
        assert ledger.step(DAY) == START + DAY
        assert ledger.now() == START + DAY

    def test_step_does_not_accrue(self, ledger, stored_pool):
        """Accumulators only move when the pool is next accrued."""
        ledger.step(DAY)
        assert ledger.get_reserve(stored_pool.pool_id).cumulative_risky == 0
        reserve = ledger.accrue(stored_pool.pool_id)
        assert reserve.cumulative_risky == stored_pool.reserve.reserve_risky * DAY
        assert reserve.last_timestamp == START + DAY

    def test_system_clock_cannot_step(self):
        with pytest.raises(TypeError):
            ReserveLedger(SystemClock()).step(1)

    def test_default_clock_is_system_time(self):
        assert isinstance(ReserveLedger().clock, SystemClock)


class TestPools:
    """Tests for pool registration and lookup."""

    def test_unknown_pool(self, ledger):
        with pytest.raises(UnknownPool):
            ledger.get_reserve("0x" + "00" * 32)

    def test_duplicate_pool(self, ledger, stored_pool):
        with pytest.raises(PoolAlreadyExists):
            ledger.add_pool(make_pool_on_curve(liquidity=10 * ONE))

    def test_reads_return_copies(self, ledger, stored_pool):
        """Mutating a returned reserve does not touch the store."""
        reserve = ledger.get_reserve(stored_pool.pool_id)
        reserve.reserve_risky = 0
        assert ledger.get_reserve(stored_pool.pool_id).reserve_risky > 0

    def test_get_calibration(self, ledger, stored_pool):
        assert ledger.get_calibration(stored_pool.pool_id) == stored_pool.calibration

    def test_missing_position_and_margin_read_as_zero(self, ledger, stored_pool):
        position = ledger.get_position(ALICE, 0, stored_pool.pool_id)
        assert (position.liquidity, position.debt) == (0, 0)
        assert ledger.get_margin(ALICE).balance_risky == 0
        assert ledger.positions == {}
        assert ledger.margins == {}


class TestCommit:
    """Tests for staging and committing records."""

    def test_commit_registers_new_records(self, ledger):
        held = ledger.fetch_margin(ALICE)
        staged = held.copy()
        staged.deposit(ONE, 0)
        ledger.commit_margin(held, staged)
        assert ledger.get_margin(ALICE).balance_risky == ONE

    def test_commit_keeps_lock_flag(self, ledger, stored_pool):
        """Committing a staged copy never changes the held record's lock."""
        position = Position(ALICE, 0, stored_pool.pool_id)
        staged = position.copy()
        staged.liquidity = ONE
        staged.locked = True
        ledger.commit_position(position, staged)
        stored = ledger.positions[position.key]
        assert stored.liquidity == ONE
        assert stored.locked is False

    def test_commit_pool_copies_reserve(self, ledger, stored_pool):
        staged = stored_pool.copy()
        staged.reserve.reserve_stable += 1
        ledger.commit_pool(stored_pool, staged)
        staged.reserve.reserve_stable += 1
        assert ledger.get_reserve(stored_pool.pool_id).reserve_stable == (
            make_pool_on_curve(liquidity=10 * ONE).reserve.reserve_stable + 1
        )

    def test_fetch_margin_is_unstored(self, ledger):
        assert ledger.fetch_margin(ALICE) == Margin(ALICE)
        assert ALICE not in ledger.margins


class TestTransitions:
    """Tests for per-pool transitions keyed by pool id."""

    def test_allocate_and_remove(self, ledger, stored_pool):
        before = ledger.get_reserve(stored_pool.pool_id)
        ledger.allocate(stored_pool.pool_id, ONE, 100 * ONE, ONE)
        reserve = ledger.remove(stored_pool.pool_id, ONE, 100 * ONE, ONE)
        assert reserve == before

    def test_failed_transition_leaves_store(self, ledger, stored_pool):
        before = ledger.get_reserve(stored_pool.pool_id)
        with pytest.raises(InsufficientLiquidity):
            ledger.remove(stored_pool.pool_id, 0, 0, 11 * ONE)
        with pytest.raises(InsufficientFloat):
            ledger.remove_float(stored_pool.pool_id, 1)
        assert ledger.get_reserve(stored_pool.pool_id) == before

    def test_float_round_trip(self, ledger, stored_pool):
        pool_id = stored_pool.pool_id
        ledger.add_float(pool_id, 4 * ONE)
        ledger.borrow_float(pool_id, ONE, ONE, 10 * ONE)
        reserve = ledger.repay_float(pool_id, ONE, ONE, 10 * ONE)
        assert reserve.float_liquidity == 4 * ONE
        assert reserve.collateral_risky == 0
        reserve = ledger.remove_float(pool_id, 4 * ONE)
        assert reserve.float_liquidity == 0

    def test_add_fee(self, ledger, stored_pool):
        reserve = ledger.add_fee(stored_pool.pool_id, 10 * ONE, 0)
        assert reserve.fee_growth_risky == ONE

    def test_locked_pool_rejects_transitions(self, ledger, stored_pool):
        """A pool held by an operation in flight cannot be changed directly."""
        pool_id = stored_pool.pool_id
        ledger.add_float(pool_id, ONE)
        before = ledger.get_reserve(pool_id)
        stored_pool.locked = True
        with pytest.raises(Locked):
            ledger.remove_float(pool_id, ONE)
        with pytest.raises(Locked):
            ledger.allocate(pool_id, ONE, 100 * ONE, ONE)
        with pytest.raises(Locked):
            ledger.apply_swap(pool_id, True, ONE // 10, 0)
        assert ledger.get_reserve(pool_id) == before


class TestApplySwap:
    """Tests for invariant-checked swaps."""

    def test_valid_swap_applies(self, ledger, stored_pool):
        """A solved trade passes the invariant check and updates the store."""
        quote = get_delta_in(100 * ONE, True, 0, stored_pool)
        reserve = ledger.apply_swap(stored_pool.pool_id, True, quote.delta_in, quote.delta_out)
        assert reserve == quote.post_pool.reserve

    def test_underpaid_swap_rejected(self, ledger, stored_pool):
        """Taking stable out without paying risky in lowers the invariant."""
        before = ledger.get_reserve(stored_pool.pool_id)
        with pytest.raises(InvariantViolation):
            ledger.apply_swap(stored_pool.pool_id, True, 1, 100 * ONE)
        assert ledger.get_reserve(stored_pool.pool_id) == before

    def test_overpaid_swap_raises_invariant(self):
        """Paying more than required leaves a positive invariant."""
        pool = make_pool_on_curve(liquidity=10 * ONE)
        post = apply_swap(pool, False, 100 * ONE, 0)
        assert post > 0
        assert post == calculate_invariant(pool)

    def test_failed_swap_leaves_pool_untouched(self):
        pool = make_pool(reserve_risky=ONE // 2, reserve_stable=500 * ONE)
        before = pool.reserve.copy()
        with pytest.raises(InsufficientLiquidity):
            apply_swap(pool, True, ONE, 600 * ONE)
        assert pool.reserve == before
