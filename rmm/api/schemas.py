"""Pydantic models for the engine HTTP API.

Amounts travel as uint256 decimal strings; field names are camelCase on the
wire and snake_case in Python.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from rmm.lending import BorrowTerms, RepayTerms
from rmm.models.calibration import Calibration
from rmm.models.state import Margin, Position, Reserve
from rmm.models.types import Address, PoolId, SignedInt, Uint256
from rmm.swap import SwapQuote

_CAMEL = {"populate_by_name": True}


# =============================================================================
# Requests
# =============================================================================


class CreatePoolRequest(BaseModel):
    """Create a pool funded from the owner's margin."""

    owner: Address
    nonce: int = Field(ge=0)
    strike: Uint256 = Field(description="Strike price (wad)")
    sigma: int = Field(gt=0, description="Implied volatility, 10000 == 100%")
    maturity: int = Field(gt=0, description="Expiry as unix seconds")
    spot: Uint256 = Field(description="Reference spot price (wad)")
    delta_liquidity: Uint256 = Field(alias="deltaLiquidity")

    model_config = _CAMEL


class MarginRequest(BaseModel):
    """Deposit to or withdraw from a margin account."""

    delta_risky: Uint256 = Field(alias="deltaRisky")
    delta_stable: Uint256 = Field(alias="deltaStable")

    model_config = _CAMEL


class LiquidityRequest(BaseModel):
    """Allocate, remove, lend, claim or repay liquidity of a position."""

    owner: Address
    nonce: int = Field(ge=0)
    delta_liquidity: Uint256 = Field(alias="deltaLiquidity")

    model_config = _CAMEL


class BorrowRequest(BaseModel):
    """Borrow float into the recipient's position; owner pays the premium."""

    recipient: Address
    owner: Address
    nonce: int = Field(ge=0)
    delta_liquidity: Uint256 = Field(alias="deltaLiquidity")
    max_premium: Uint256 | None = Field(default=None, alias="maxPremium")

    model_config = _CAMEL


class QuoteRequest(BaseModel):
    """Price a swap. ``exactIn`` selects whether amount is the input or output."""

    risky_for_stable: bool = Field(alias="riskyForStable")
    amount: Uint256
    exact_in: bool = Field(default=False, alias="exactIn")

    model_config = _CAMEL


class SwapRequest(QuoteRequest):
    """Execute a swap paid from the owner's margin."""

    owner: Address
    limit: Uint256 | None = Field(
        default=None,
        description="Max input for exact-output swaps, min output for exact-input swaps",
    )


class StepRequest(BaseModel):
    seconds: int = Field(ge=0)


# =============================================================================
# Responses
# =============================================================================


class CalibrationModel(BaseModel):
    strike: Uint256
    sigma: int
    maturity: int

    @classmethod
    def from_calibration(cls, calibration: Calibration) -> CalibrationModel:
        return cls(
            strike=str(calibration.strike),
            sigma=calibration.sigma,
            maturity=calibration.maturity,
        )


class ReserveModel(BaseModel):
    reserve_risky: Uint256 = Field(alias="reserveRisky")
    reserve_stable: Uint256 = Field(alias="reserveStable")
    liquidity: Uint256
    float_liquidity: Uint256 = Field(alias="float")
    collateral_risky: Uint256 = Field(alias="collateralRisky")
    collateral_stable: Uint256 = Field(alias="collateralStable")
    last_timestamp: int = Field(alias="lastTimestamp")
    fee_growth_risky: Uint256 = Field(alias="feeGrowthRisky")
    fee_growth_stable: Uint256 = Field(alias="feeGrowthStable")
    cumulative_risky: Uint256 = Field(alias="cumulativeRisky")
    cumulative_stable: Uint256 = Field(alias="cumulativeStable")
    cumulative_liquidity: Uint256 = Field(alias="cumulativeLiquidity")

    model_config = _CAMEL

    @classmethod
    def from_reserve(cls, reserve: Reserve) -> ReserveModel:
        return cls(
            reserve_risky=str(reserve.reserve_risky),
            reserve_stable=str(reserve.reserve_stable),
            liquidity=str(reserve.liquidity),
            float_liquidity=str(reserve.float_liquidity),
            collateral_risky=str(reserve.collateral_risky),
            collateral_stable=str(reserve.collateral_stable),
            last_timestamp=reserve.last_timestamp,
            fee_growth_risky=str(reserve.fee_growth_risky),
            fee_growth_stable=str(reserve.fee_growth_stable),
            cumulative_risky=str(reserve.cumulative_risky),
            cumulative_stable=str(reserve.cumulative_stable),
            cumulative_liquidity=str(reserve.cumulative_liquidity),
        )


class PoolResponse(BaseModel):
    pool_id: PoolId = Field(alias="poolId")
    calibration: CalibrationModel
    reserve: ReserveModel
    invariant: SignedInt

    model_config = _CAMEL


class CreatePoolResponse(BaseModel):
    pool_id: PoolId = Field(alias="poolId")
    delta_risky: Uint256 = Field(alias="deltaRisky")
    delta_stable: Uint256 = Field(alias="deltaStable")

    model_config = _CAMEL


class AmountsResponse(BaseModel):
    """Risky and stable amounts moved by an operation."""

    delta_risky: Uint256 = Field(alias="deltaRisky")
    delta_stable: Uint256 = Field(alias="deltaStable")

    model_config = _CAMEL

    @classmethod
    def from_amounts(cls, amounts: tuple[int, int]) -> AmountsResponse:
        return cls(delta_risky=str(amounts[0]), delta_stable=str(amounts[1]))


class QuoteResponse(BaseModel):
    delta_in: Uint256 = Field(alias="deltaIn")
    delta_out: Uint256 = Field(alias="deltaOut")
    fee: Uint256
    post_reserve: ReserveModel = Field(alias="postReserve")
    post_invariant: SignedInt = Field(alias="postInvariant")

    model_config = _CAMEL

    @classmethod
    def from_quote(cls, quote: SwapQuote) -> QuoteResponse:
        return cls(
            delta_in=str(quote.delta_in),
            delta_out=str(quote.delta_out),
            fee=str(quote.fee),
            post_reserve=ReserveModel.from_reserve(quote.post_pool.reserve),
            post_invariant=str(quote.post_invariant),
        )


class BorrowResponse(BaseModel):
    delta_risky: Uint256 = Field(alias="deltaRisky")
    delta_stable: Uint256 = Field(alias="deltaStable")
    fee: Uint256
    premium: Uint256

    model_config = _CAMEL

    @classmethod
    def from_terms(cls, terms: BorrowTerms) -> BorrowResponse:
        return cls(
            delta_risky=str(terms.delta_risky),
            delta_stable=str(terms.delta_stable),
            fee=str(terms.fee),
            premium=str(terms.premium),
        )


class RepayResponse(BaseModel):
    released_risky: Uint256 = Field(alias="releasedRisky")
    released_stable: Uint256 = Field(alias="releasedStable")
    delta_risky: Uint256 = Field(alias="deltaRisky")
    delta_stable: Uint256 = Field(alias="deltaStable")

    model_config = _CAMEL

    @classmethod
    def from_terms(cls, terms: RepayTerms) -> RepayResponse:
        return cls(
            released_risky=str(terms.released_risky),
            released_stable=str(terms.released_stable),
            delta_risky=str(terms.delta_risky),
            delta_stable=str(terms.delta_stable),
        )


class MarginResponse(BaseModel):
    owner: str
    balance_risky: Uint256 = Field(alias="balanceRisky")
    balance_stable: Uint256 = Field(alias="balanceStable")

    model_config = _CAMEL

    @classmethod
    def from_margin(cls, margin: Margin) -> MarginResponse:
        return cls(
            owner=margin.owner,
            balance_risky=str(margin.balance_risky),
            balance_stable=str(margin.balance_stable),
        )


class PositionResponse(BaseModel):
    owner: str
    nonce: int
    pool_id: str = Field(alias="poolId")
    margin_risky: Uint256 = Field(alias="marginRisky")
    margin_stable: Uint256 = Field(alias="marginStable")
    liquidity: Uint256
    float_liquidity: Uint256 = Field(alias="float")
    debt: Uint256

    model_config = _CAMEL

    @classmethod
    def from_position(cls, position: Position) -> PositionResponse:
        return cls(
            owner=position.owner,
            nonce=position.nonce,
            pool_id=position.pool_id,
            margin_risky=str(position.margin_risky),
            margin_stable=str(position.margin_stable),
            liquidity=str(position.liquidity),
            float_liquidity=str(position.float_liquidity),
            debt=str(position.debt),
        )


class ErrorResponse(BaseModel):
    error: str
    detail: str
