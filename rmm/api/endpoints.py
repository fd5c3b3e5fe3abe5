"""API endpoints for the engine.

Token settlement over HTTP always goes through margin: deposits credit the
margin directly, every other operation pays from and is paid into it.
Handlers are ``async`` so they run one at a time on the event loop, which
serializes access to the engine.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException

from rmm.api.schemas import (
    AmountsResponse,
    BorrowRequest,
    BorrowResponse,
    CalibrationModel,
    CreatePoolRequest,
    CreatePoolResponse,
    LiquidityRequest,
    MarginRequest,
    MarginResponse,
    PoolResponse,
    PositionResponse,
    QuoteRequest,
    QuoteResponse,
    RepayResponse,
    ReserveModel,
    StepRequest,
    SwapRequest,
)
from rmm.engine import Engine, get_default_engine
from rmm.models.types import normalize_address

logger = structlog.get_logger()

router = APIRouter()


def get_engine() -> Engine:
    """Dependency provider for the engine instance.

    Override this in tests to inject a fresh engine:
        app.dependency_overrides[get_engine] = lambda: engine

    Returns:
        The engine that serves requests.
    """
    return get_default_engine()


def _pool_response(engine: Engine, pool_id: str) -> PoolResponse:
    return PoolResponse(
        pool_id=pool_id,
        calibration=CalibrationModel.from_calibration(engine.get_calibration(pool_id)),
        reserve=ReserveModel.from_reserve(engine.get_reserve(pool_id)),
        invariant=str(engine.invariant_of(pool_id)),
    )


# =============================================================================
# Pools
# =============================================================================


@router.post("/pools", status_code=201)
async def create_pool(
    request: CreatePoolRequest, engine: Engine = Depends(get_engine)
) -> CreatePoolResponse:
    """Create a pool, paying the initial reserves from the owner's margin."""
    pool_id, delta_risky, delta_stable = engine.create(
        normalize_address(request.owner),
        request.nonce,
        int(request.strike),
        request.sigma,
        request.maturity,
        int(request.spot),
        int(request.delta_liquidity),
        from_margin=True,
    )
    return CreatePoolResponse(
        pool_id=pool_id, delta_risky=str(delta_risky), delta_stable=str(delta_stable)
    )


@router.get("/pools/{pool_id}")
async def get_pool(pool_id: str, engine: Engine = Depends(get_engine)) -> PoolResponse:
    """Calibration, reserve and current invariant of a pool."""
    return _pool_response(engine, pool_id.lower())


@router.post("/pools/{pool_id}/quote")
async def quote(
    pool_id: str, request: QuoteRequest, engine: Engine = Depends(get_engine)
) -> QuoteResponse:
    """Price a swap without executing it."""
    result = engine.quote(
        pool_id.lower(), request.risky_for_stable, int(request.amount), exact_in=request.exact_in
    )
    return QuoteResponse.from_quote(result)


@router.post("/pools/{pool_id}/swap")
async def swap(
    pool_id: str, request: SwapRequest, engine: Engine = Depends(get_engine)
) -> QuoteResponse:
    """Execute a swap paid from margin; the output is credited to margin."""
    owner = normalize_address(request.owner)
    limit = int(request.limit) if request.limit is not None else None
    if request.exact_in:
        result = engine.swap_exact_in(
            pool_id.lower(),
            owner,
            request.risky_for_stable,
            int(request.amount),
            delta_out_min=limit,
            from_margin=True,
        )
    else:
        result = engine.swap(
            pool_id.lower(),
            owner,
            request.risky_for_stable,
            int(request.amount),
            delta_in_max=limit,
            from_margin=True,
        )
    return QuoteResponse.from_quote(result)


@router.post("/pools/{pool_id}/allocate")
async def allocate(
    pool_id: str, request: LiquidityRequest, engine: Engine = Depends(get_engine)
) -> AmountsResponse:
    amounts = engine.allocate(
        pool_id.lower(),
        normalize_address(request.owner),
        request.nonce,
        int(request.delta_liquidity),
        from_margin=True,
    )
    return AmountsResponse.from_amounts(amounts)


@router.post("/pools/{pool_id}/remove")
async def remove(
    pool_id: str, request: LiquidityRequest, engine: Engine = Depends(get_engine)
) -> AmountsResponse:
    amounts = engine.remove(
        pool_id.lower(),
        normalize_address(request.owner),
        request.nonce,
        int(request.delta_liquidity),
    )
    return AmountsResponse.from_amounts(amounts)


@router.post("/pools/{pool_id}/lend")
async def lend(
    pool_id: str, request: LiquidityRequest, engine: Engine = Depends(get_engine)
) -> AmountsResponse:
    """Lend position liquidity; returns the fees settled to margin."""
    fees = engine.lend(
        pool_id.lower(),
        normalize_address(request.owner),
        request.nonce,
        int(request.delta_liquidity),
    )
    return AmountsResponse.from_amounts(fees)


@router.post("/pools/{pool_id}/claim")
async def claim(
    pool_id: str, request: LiquidityRequest, engine: Engine = Depends(get_engine)
) -> AmountsResponse:
    """Claim lent liquidity back; returns the fees credited to margin."""
    fees = engine.claim(
        pool_id.lower(),
        normalize_address(request.owner),
        request.nonce,
        int(request.delta_liquidity),
    )
    return AmountsResponse.from_amounts(fees)


@router.post("/pools/{pool_id}/borrow")
async def borrow(
    pool_id: str, request: BorrowRequest, engine: Engine = Depends(get_engine)
) -> BorrowResponse:
    terms = engine.borrow(
        pool_id.lower(),
        normalize_address(request.recipient),
        normalize_address(request.owner),
        request.nonce,
        int(request.delta_liquidity),
        max_premium=int(request.max_premium) if request.max_premium is not None else None,
        from_margin=True,
    )
    return BorrowResponse.from_terms(terms)


@router.post("/pools/{pool_id}/repay")
async def repay(
    pool_id: str, request: LiquidityRequest, engine: Engine = Depends(get_engine)
) -> RepayResponse:
    terms = engine.repay(
        pool_id.lower(),
        normalize_address(request.owner),
        request.nonce,
        int(request.delta_liquidity),
        from_margin=True,
    )
    return RepayResponse.from_terms(terms)


# =============================================================================
# Accounts
# =============================================================================


@router.get("/margins/{owner}")
async def get_margin(owner: str, engine: Engine = Depends(get_engine)) -> MarginResponse:
    return MarginResponse.from_margin(engine.get_margin(normalize_address(owner)))


@router.post("/margins/{owner}/deposit")
async def deposit(
    owner: str, request: MarginRequest, engine: Engine = Depends(get_engine)
) -> MarginResponse:
    margin = engine.deposit(
        normalize_address(owner), int(request.delta_risky), int(request.delta_stable)
    )
    return MarginResponse.from_margin(margin)


@router.post("/margins/{owner}/withdraw")
async def withdraw(
    owner: str, request: MarginRequest, engine: Engine = Depends(get_engine)
) -> MarginResponse:
    margin = engine.withdraw(
        normalize_address(owner), int(request.delta_risky), int(request.delta_stable)
    )
    return MarginResponse.from_margin(margin)


@router.get("/positions/{owner}/{nonce}/{pool_id}")
async def get_position(
    owner: str, nonce: int, pool_id: str, engine: Engine = Depends(get_engine)
) -> PositionResponse:
    position = engine.get_position(normalize_address(owner), nonce, pool_id.lower())
    return PositionResponse.from_position(position)


# =============================================================================
# Time
# =============================================================================


@router.post("/time/step")
async def step(request: StepRequest, engine: Engine = Depends(get_engine)) -> dict[str, int]:
    """Advance the engine clock (manual clock only)."""
    try:
        now = engine.step(request.seconds)
    except TypeError as err:
        logger.warning("clock_step_rejected", reason=str(err))
        raise HTTPException(status_code=409, detail=str(err)) from err
    return {"now": now}
