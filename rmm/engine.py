"""Engine: the public operation set of the replicating market maker.

Every mutating operation follows the same shape:

1. Look up the pool, position and margin records it touches.
2. Hold them with the reentrancy guard (nested calls fail with Locked).
3. Stage copies, accrue the pool to the current time and apply the
   transition to the copies.
4. Settle tokens with the caller: amounts owed are taken from margin
   (``from_margin=True``) or requested through ``callback(risky, stable)``;
   amounts paid out are credited to margin.
5. Commit the staged copies. Any exception before this point, including
   one raised by the callback, leaves the ledger untouched.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import structlog

from rmm.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from rmm.constants import ONE
from rmm.errors import (
    InsufficientBalance,
    InsufficientLiquidity,
    InvalidCalibration,
    PoolAlreadyExists,
    PoolExpired,
    TooExpensive,
)
from rmm.guard import ReentrancyGuard
from rmm.ledger import Clock, ManualClock, ReserveLedger, apply_swap
from rmm.lending import BorrowTerms, RepayTerms, borrow_terms, credit_fee
from rmm.lending import borrow as borrow_float
from rmm.lending import claim as claim_float
from rmm.lending import lend as lend_float
from rmm.lending import repay as repay_float
from rmm.liquidity import add_both, remove_both
from rmm.math.fixed_point import Rounding, mul_wad
from rmm.math.replication import calculate_invariant, call_delta, trading_function
from rmm.models.calibration import Calibration, compute_pool_id
from rmm.models.state import Margin, Pool, Position, Reserve
from rmm.swap import SwapQuote, get_delta_in, get_delta_out

logger = structlog.get_logger()

# Called with the (risky, stable) amounts the caller owes the engine
Callback = Callable[[int, int], None]


@dataclass
class _Transaction:
    """Staged copies of the records an operation touches."""

    pool: Pool | None = None
    position: Position | None = None
    margin: Margin | None = None


class Engine:
    """Covered-call replicating market maker.

    Args:
        config: Engine configuration (identity, fees, behaviour flags)
        clock: Time source; defaults to wall-clock time

    Attributes:
        ledger: Store of all pools, positions and margins
        guard: Reentrancy guard shared by every operation
    """

    def __init__(
        self, config: EngineConfig = DEFAULT_ENGINE_CONFIG, clock: Clock | None = None
    ) -> None:
        self.config = config
        self.ledger = ReserveLedger(clock, invariant_epsilon=config.invariant_epsilon)
        self.guard = ReentrancyGuard()

    @property
    def address(self) -> str:
        return self.config.engine_address

    def now(self) -> int:
        return self.ledger.now()

    def step(self, seconds: int) -> int:
        """Advance a manual clock by ``seconds``. Returns the new time."""
        return self.ledger.step(seconds)

    # =========================================================================
    # Plumbing
    # =========================================================================

    @contextmanager
    def _transaction(
        self,
        pool: Pool | None = None,
        position: Position | None = None,
        margin: Margin | None = None,
    ) -> Iterator[_Transaction]:
        records = [r for r in (pool, position, margin) if r is not None]
        with self.guard.hold(*records):
            tx = _Transaction(
                pool=pool.copy() if pool is not None else None,
                position=position.copy() if position is not None else None,
                margin=margin.copy() if margin is not None else None,
            )
            if tx.pool is not None:
                tx.pool.reserve.accrue(self.now())

            yield tx

            if pool is not None and tx.pool is not None:
                self.ledger.commit_pool(pool, tx.pool)
            if position is not None and tx.position is not None:
                self.ledger.commit_position(position, tx.position)
            if margin is not None and tx.margin is not None:
                self.ledger.commit_margin(margin, tx.margin)

    def _collect(
        self,
        margin: Margin,
        risky: int,
        stable: int,
        from_margin: bool,
        callback: Callback | None,
    ) -> None:
        """Take amounts owed by the caller from margin or through the callback."""
        if risky == 0 and stable == 0:
            return
        if from_margin:
            margin.withdraw(risky, stable)
        elif callback is not None:
            callback(risky, stable)
        else:
            raise InsufficientBalance(
                f"Owes {risky} risky and {stable} stable with no margin debit or callback"
            )

    def _invariant(self, pool: Pool) -> int:
        return calculate_invariant(pool, epsilon=self.config.invariant_epsilon)

    def _check_expiry(self, pool: Pool) -> None:
        if self.config.reject_expired_swaps and pool.calibration.is_expired(self.now()):
            raise PoolExpired(f"Pool {pool.pool_id} expired at {pool.calibration.maturity}")

    # =========================================================================
    # Pool creation
    # =========================================================================

    def pool_id_for(self, strike: int, sigma: int, maturity: int) -> str:
        return compute_pool_id(self.address, Calibration(strike, sigma, maturity))

    def create(
        self,
        owner: str,
        nonce: int,
        strike: int,
        sigma: int,
        maturity: int,
        spot: int,
        delta_liquidity: int,
        *,
        from_margin: bool = False,
        callback: Callback | None = None,
    ) -> tuple[str, int, int]:
        """Create a pool initialised at ``spot``.

        Reserves per unit of liquidity are ``1 − call_delta(spot)`` risky and
        the matching point on the curve in stable. ``min_liquidity`` units are
        locked forever; the creator's position receives the rest.

        Returns:
            (pool_id, delta_risky, delta_stable) paid by the creator

        Raises:
            InvalidCalibration: Bad parameters, maturity not in the future, or
                a spot price so far from the strike that a reserve is empty
            InsufficientLiquidity: If delta_liquidity <= min_liquidity
            PoolAlreadyExists: If the calibration is already in use
        """
        calibration = Calibration(strike, sigma, maturity)
        now = self.now()
        if maturity <= now:
            raise InvalidCalibration(f"Maturity {maturity} is not after current time {now}")
        if delta_liquidity <= self.config.min_liquidity:
            raise InsufficientLiquidity(
                f"Initial liquidity must exceed {self.config.min_liquidity}: {delta_liquidity}"
            )

        pool_id = compute_pool_id(self.address, calibration)
        if pool_id in self.ledger.pools:
            raise PoolAlreadyExists(f"Pool already exists: {pool_id}")

        tau = maturity - now
        risky_per_liquidity = ONE - call_delta(calibration, spot, tau)
        if not 0 < risky_per_liquidity < ONE:
            raise InvalidCalibration(f"Spot {spot} leaves an empty reserve")
        stable_per_liquidity = trading_function(
            risky_per_liquidity, ONE, strike, sigma, tau, rounding=Rounding.UP
        )
        if stable_per_liquidity <= 0:
            raise InvalidCalibration(f"Spot {spot} leaves an empty reserve")

        delta_risky = mul_wad(risky_per_liquidity, delta_liquidity, rounding=Rounding.UP)
        delta_stable = mul_wad(stable_per_liquidity, delta_liquidity, rounding=Rounding.UP)

        pool = Pool(pool_id, calibration, Reserve(last_timestamp=now))
        position = self.ledger.fetch_position(owner, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            tx.pool.reserve.allocate(delta_risky, delta_stable, delta_liquidity)
            tx.position.liquidity += delta_liquidity - self.config.min_liquidity
            self._collect(tx.margin, delta_risky, delta_stable, from_margin, callback)

        logger.info(
            "pool_created",
            pool_id=pool_id,
            strike=strike,
            sigma=sigma,
            maturity=maturity,
            spot=spot,
            delta_liquidity=delta_liquidity,
            delta_risky=delta_risky,
            delta_stable=delta_stable,
        )
        return pool_id, delta_risky, delta_stable

    # =========================================================================
    # Margin
    # =========================================================================

    def deposit(
        self,
        owner: str,
        delta_risky: int,
        delta_stable: int,
        *,
        callback: Callback | None = None,
    ) -> Margin:
        """Credit the owner's margin; the callback is asked for the tokens."""
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(margin=margin) as tx:
            tx.margin.deposit(delta_risky, delta_stable)
            if callback is not None:
                callback(delta_risky, delta_stable)

        logger.info("margin_deposited", owner=owner, risky=delta_risky, stable=delta_stable)
        return margin.copy()

    def withdraw(self, owner: str, delta_risky: int, delta_stable: int) -> Margin:
        """Debit the owner's margin.

        Raises:
            InsufficientBalance: If either amount exceeds the balance
        """
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(margin=margin) as tx:
            tx.margin.withdraw(delta_risky, delta_stable)

        logger.info("margin_withdrawn", owner=owner, risky=delta_risky, stable=delta_stable)
        return margin.copy()

    # =========================================================================
    # Liquidity
    # =========================================================================

    def allocate(
        self,
        pool_id: str,
        owner: str,
        nonce: int,
        delta_liquidity: int,
        *,
        from_margin: bool = False,
        callback: Callback | None = None,
    ) -> tuple[int, int]:
        """Add liquidity at current reserve ratios.

        Returns:
            (delta_risky, delta_stable) paid in
        """
        pool = self.ledger.pool(pool_id)
        position = self.ledger.fetch_position(owner, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            delta_risky, delta_stable, tx.pool, _ = add_both(delta_liquidity, tx.pool)
            tx.position.liquidity += delta_liquidity
            self._collect(tx.margin, delta_risky, delta_stable, from_margin, callback)

        logger.info(
            "liquidity_allocated",
            pool_id=pool_id,
            owner=owner,
            nonce=nonce,
            delta_liquidity=delta_liquidity,
            delta_risky=delta_risky,
            delta_stable=delta_stable,
        )
        return delta_risky, delta_stable

    def remove(self, pool_id: str, owner: str, nonce: int, delta_liquidity: int) -> tuple[int, int]:
        """Remove un-lent liquidity; proceeds are credited to margin.

        Raises:
            InsufficientLiquidity: If the position's un-lent liquidity is smaller
        """
        pool = self.ledger.pool(pool_id)
        position = self.ledger.fetch_position(owner, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            if delta_liquidity > tx.position.unlent_liquidity:
                raise InsufficientLiquidity(
                    f"Cannot remove {delta_liquidity}, position has "
                    f"{tx.position.unlent_liquidity} un-lent"
                )
            delta_risky, delta_stable, tx.pool, _ = remove_both(delta_liquidity, tx.pool)
            tx.position.liquidity -= delta_liquidity
            tx.margin.deposit(delta_risky, delta_stable)

        logger.info(
            "liquidity_removed",
            pool_id=pool_id,
            owner=owner,
            nonce=nonce,
            delta_liquidity=delta_liquidity,
            delta_risky=delta_risky,
            delta_stable=delta_stable,
        )
        return delta_risky, delta_stable

    # =========================================================================
    # Swaps
    # =========================================================================

    def quote(
        self, pool_id: str, risky_for_stable: bool, amount: int, *, exact_in: bool = False
    ) -> SwapQuote:
        """Solve a swap at the current time without executing it."""
        pool = self.ledger.stage_pool(pool_id)
        pool.reserve.accrue(self.now())
        self._check_expiry(pool)
        prior = self._invariant(pool)
        fee_bps = self.config.swap_fee_bps
        if exact_in:
            return get_delta_out(amount, risky_for_stable, prior, pool, fee_bps=fee_bps)
        return get_delta_in(amount, risky_for_stable, prior, pool, fee_bps=fee_bps)

    def _execute_swap(
        self,
        pool_id: str,
        owner: str,
        risky_for_stable: bool,
        solve: Callable[[int, Pool], SwapQuote],
        from_margin: bool,
        callback: Callback | None,
    ) -> SwapQuote:
        pool = self.ledger.pool(pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool=pool, margin=margin) as tx:
            self._check_expiry(tx.pool)
            quote = solve(self._invariant(tx.pool), tx.pool)
            apply_swap(
                tx.pool,
                risky_for_stable,
                quote.curve_in,
                quote.delta_out,
                epsilon=self.config.invariant_epsilon,
            )
            if risky_for_stable:
                credit_fee(tx.pool, quote.fee, 0)
                self._collect(tx.margin, quote.delta_in, 0, from_margin, callback)
                tx.margin.deposit(0, quote.delta_out)
            else:
                credit_fee(tx.pool, 0, quote.fee)
                self._collect(tx.margin, 0, quote.delta_in, from_margin, callback)
                tx.margin.deposit(quote.delta_out, 0)

        logger.info(
            "swap_executed",
            pool_id=pool_id,
            owner=owner,
            risky_for_stable=risky_for_stable,
            delta_in=quote.delta_in,
            delta_out=quote.delta_out,
            fee=quote.fee,
            post_invariant=quote.post_invariant,
        )
        return quote

    def swap(
        self,
        pool_id: str,
        owner: str,
        risky_for_stable: bool,
        delta_out: int,
        *,
        delta_in_max: int | None = None,
        from_margin: bool = False,
        callback: Callback | None = None,
    ) -> SwapQuote:
        """Swap for exactly ``delta_out``; the output is credited to margin.

        Raises:
            TooExpensive: If the required input exceeds delta_in_max
            CurveBoundExceeded: If the output cannot be reached on the curve
            InvariantViolation: If the trade would lower the invariant
            PoolExpired: If expired swaps are rejected and the pool matured
        """
        return self._execute_swap(
            pool_id,
            owner,
            risky_for_stable,
            lambda invariant, pool: get_delta_in(
                delta_out,
                risky_for_stable,
                invariant,
                pool,
                delta_in_max=delta_in_max,
                fee_bps=self.config.swap_fee_bps,
            ),
            from_margin,
            callback,
        )

    def swap_exact_in(
        self,
        pool_id: str,
        owner: str,
        risky_for_stable: bool,
        delta_in: int,
        *,
        delta_out_min: int | None = None,
        from_margin: bool = False,
        callback: Callback | None = None,
    ) -> SwapQuote:
        """Swap exactly ``delta_in``; the output is credited to margin.

        Raises:
            TooExpensive: If the output is below delta_out_min
        """
        return self._execute_swap(
            pool_id,
            owner,
            risky_for_stable,
            lambda invariant, pool: get_delta_out(
                delta_in,
                risky_for_stable,
                invariant,
                pool,
                delta_out_min=delta_out_min,
                fee_bps=self.config.swap_fee_bps,
            ),
            from_margin,
            callback,
        )

    # =========================================================================
    # Lending
    # =========================================================================

    def lend(self, pool_id: str, owner: str, nonce: int, delta_liquidity: int) -> tuple[int, int]:
        """Lend position liquidity to the pool's float.

        Returns:
            Fees settled to margin before lending
        """
        pool = self.ledger.pool(pool_id)
        position = self.ledger.fetch_position(owner, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            fees = lend_float(tx.pool, tx.position, delta_liquidity)
            tx.margin.deposit(*fees)

        logger.info(
            "liquidity_lent",
            pool_id=pool_id,
            owner=owner,
            nonce=nonce,
            delta_liquidity=delta_liquidity,
            fee_risky=fees[0],
            fee_stable=fees[1],
        )
        return fees

    def claim(self, pool_id: str, owner: str, nonce: int, delta_liquidity: int) -> tuple[int, int]:
        """Take lent liquidity back from the float and collect fees to margin.

        Returns:
            Fees credited to margin
        """
        pool = self.ledger.pool(pool_id)
        position = self.ledger.fetch_position(owner, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            fees = claim_float(tx.pool, tx.position, delta_liquidity)
            tx.margin.deposit(*fees)

        logger.info(
            "liquidity_claimed",
            pool_id=pool_id,
            owner=owner,
            nonce=nonce,
            delta_liquidity=delta_liquidity,
            fee_risky=fees[0],
            fee_stable=fees[1],
        )
        return fees

    def borrow(
        self,
        pool_id: str,
        recipient: str,
        owner: str,
        nonce: int,
        delta_liquidity: int,
        *,
        max_premium: int | None = None,
        from_margin: bool = False,
        callback: Callback | None = None,
    ) -> BorrowTerms:
        """Borrow float into the recipient's position; ``owner`` pays the premium.

        Raises:
            InsufficientFloat: If the pool's float is smaller than delta_liquidity
            TooExpensive: If the premium exceeds max_premium
        """
        pool = self.ledger.pool(pool_id)
        position = self.ledger.fetch_position(recipient, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            terms = borrow_terms(tx.pool, delta_liquidity, self.config.borrow_fee_bps)
            if max_premium is not None and terms.premium > max_premium:
                logger.debug(
                    "borrow_too_expensive",
                    pool_id=pool_id,
                    premium=terms.premium,
                    max_premium=max_premium,
                )
                raise TooExpensive(f"Premium {terms.premium} exceeds maximum {max_premium}")
            borrow_float(tx.pool, tx.position, delta_liquidity, terms)
            self._collect(tx.margin, terms.premium, 0, from_margin, callback)

        logger.info(
            "liquidity_borrowed",
            pool_id=pool_id,
            recipient=recipient,
            owner=owner,
            nonce=nonce,
            delta_liquidity=delta_liquidity,
            premium=terms.premium,
            fee=terms.fee,
        )
        return terms

    def repay(
        self,
        pool_id: str,
        owner: str,
        nonce: int,
        delta_liquidity: int,
        *,
        from_margin: bool = False,
        callback: Callback | None = None,
    ) -> RepayTerms:
        """Repay debt; released escrow minus the re-allocated reserves settles with margin.

        Raises:
            InsufficientLiquidity: If delta_liquidity exceeds the debt
        """
        pool = self.ledger.pool(pool_id)
        position = self.ledger.fetch_position(owner, nonce, pool_id)
        margin = self.ledger.fetch_margin(owner)
        with self._transaction(pool, position, margin) as tx:
            terms = repay_float(tx.pool, tx.position, delta_liquidity)
            self._collect(
                tx.margin,
                max(-terms.net_risky, 0),
                max(-terms.net_stable, 0),
                from_margin,
                callback,
            )
            tx.margin.deposit(max(terms.net_risky, 0), max(terms.net_stable, 0))

        logger.info(
            "liquidity_repaid",
            pool_id=pool_id,
            owner=owner,
            nonce=nonce,
            delta_liquidity=delta_liquidity,
            net_risky=terms.net_risky,
            net_stable=terms.net_stable,
        )
        return terms

    # =========================================================================
    # Read accessors
    # =========================================================================

    def get_pool(self, pool_id: str) -> Pool:
        return self.ledger.stage_pool(pool_id)

    def get_reserve(self, pool_id: str) -> Reserve:
        return self.ledger.get_reserve(pool_id)

    def get_calibration(self, pool_id: str) -> Calibration:
        return self.ledger.get_calibration(pool_id)

    def get_position(self, owner: str, nonce: int, pool_id: str) -> Position:
        return self.ledger.get_position(owner, nonce, pool_id)

    def get_margin(self, owner: str) -> Margin:
        return self.ledger.get_margin(owner)

    def invariant_of(self, pool_id: str) -> int:
        """Pool invariant evaluated at the current time."""
        pool = self.ledger.stage_pool(pool_id)
        pool.reserve.accrue(self.now())
        return self._invariant(pool)


def _create_default_engine() -> Engine:
    """Create the service engine from RMM_* environment variables.

    RMM_MANUAL_CLOCK=true starts a manual clock at the current wall-clock
    time, so time only moves through ``Engine.step``.

    Returns:
        Configured Engine instance
    """
    config = EngineConfig.from_env()
    if os.environ.get("RMM_MANUAL_CLOCK", "false").lower() in ("true", "1", "yes"):
        logger.info("manual_clock_enabled", engine_address=config.engine_address)
        return Engine(config, ManualClock(int(time.time())))
    logger.info("system_clock_enabled", engine_address=config.engine_address)
    return Engine(config)


_default_engine: Engine | None = None


def get_default_engine() -> Engine:
    """Return the process-wide service engine, creating it on first use."""
    global _default_engine
    if _default_engine is None:
        _default_engine = _create_default_engine()
    return _default_engine
