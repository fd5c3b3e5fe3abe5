"""Tests for proportional liquidity provisioning."""

import pytest

from rmm.constants import ONE
from rmm.errors import InsufficientLiquidity
from rmm.liquidity import add_both, liquidity_composition, remove_both
from rmm.math.fixed_point import Rounding
from tests.helpers import make_pool, make_pool_on_curve


class TestLiquidityComposition:
    """Tests for liquidity_composition."""

    def test_proportional(self):
        """0.1 liquidity of (0.5, 500, 1) is backed by (0.05, 50)."""
        pool = make_pool()
        assert liquidity_composition(ONE // 10, pool, rounding=Rounding.DOWN) == (
            ONE // 20,
            50 * ONE,
        )

    def test_rounding(self):
        """Inflows round up and outflows round down."""
        pool = make_pool(reserve_risky=1, reserve_stable=1, liquidity=3)
        assert liquidity_composition(1, pool, rounding=Rounding.UP) == (1, 1)
        assert liquidity_composition(1, pool, rounding=Rounding.DOWN) == (0, 0)

    def test_empty_pool(self):
        pool = make_pool(reserve_risky=0, reserve_stable=0, liquidity=0)
        with pytest.raises(InsufficientLiquidity):
            liquidity_composition(ONE, pool, rounding=Rounding.UP)


class TestAddRemove:
    """Tests for add_both and remove_both."""

    def test_add_then_remove_restores(self):
        """Adding then removing 0.1 liquidity restores the reserve exactly."""
        pool = make_pool()
        delta_risky, delta_stable, post, _ = add_both(ONE // 10, pool)
        assert (delta_risky, delta_stable) == (ONE // 20, 50 * ONE)
        assert post.reserve.liquidity == 11 * ONE // 10

        removed_risky, removed_stable, restored, _ = remove_both(ONE // 10, post)
        assert (removed_risky, removed_stable) == (delta_risky, delta_stable)
        assert restored.reserve == pool.reserve

    def test_input_pool_not_mutated(self):
        pool = make_pool()
        before = pool.reserve.copy()
        add_both(ONE, pool)
        remove_both(ONE // 2, pool)
        assert pool.reserve == before

    @pytest.mark.parametrize("delta", [1, ONE // 3, ONE, 7 * ONE])
    def test_invariant_preserved(self, delta):
        """Proportional changes keep an on-curve pool on the curve."""
        pool = make_pool_on_curve(liquidity=10 * ONE)
        _, _, added, invariant_after_add = add_both(delta, pool)
        assert invariant_after_add == 0
        _, _, _, invariant_after_remove = remove_both(delta, added)
        assert invariant_after_remove == 0

    def test_remove_more_than_liquidity(self):
        pool = make_pool()
        with pytest.raises(InsufficientLiquidity):
            remove_both(ONE + 1, pool)

    def test_remove_everything(self):
        pool = make_pool()
        delta_risky, delta_stable, post, _ = remove_both(ONE, pool)
        assert (delta_risky, delta_stable) == (ONE // 2, 500 * ONE)
        assert post.reserve.liquidity == 0

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            add_both(-1, make_pool())
        with pytest.raises(ValueError):
            remove_both(-1, make_pool())
