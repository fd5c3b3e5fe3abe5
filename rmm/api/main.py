"""FastAPI application serving a replicating market maker engine.

Note: Authentication and rate limiting are not implemented at the
application level. They belong to the infrastructure layer in front of it.
"""

import logging
import os

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rmm import __version__
from rmm.api.endpoints import router
from rmm.errors import EngineError, Locked, PoolAlreadyExists, UnknownPool

# Configuration from environment variables with sensible defaults
HOST = os.environ.get("RMM_HOST", "0.0.0.0")
PORT = int(os.environ.get("RMM_PORT", "8000"))
DEBUG = os.environ.get("RMM_DEBUG", "false").lower() in ("true", "1", "yes")
LOG_LEVEL = os.environ.get("RMM_LOG_LEVEL", "info")

# Maximum request body size (64 KB; requests are small JSON objects)
MAX_REQUEST_SIZE = 64 * 1024

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    ),
)

logger = structlog.get_logger()

app = FastAPI(
    title="Replicating Market Maker",
    description="Covered-call replicating AMM: pools, swaps, liquidity and lending",
    version=__version__,
)


def error_status(err: EngineError) -> int:
    """HTTP status for an engine error."""
    if isinstance(err, UnknownPool):
        return 404
    if isinstance(err, Locked | PoolAlreadyExists):
        return 409
    return 422


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, err: EngineError) -> JSONResponse:
    """Map engine errors to a typed JSON body."""
    status = error_status(err)
    logger.warning(
        "request_rejected",
        path=request.url.path,
        error=err.kind,
        detail=str(err),
        status=status,
    )
    return JSONResponse(status_code=status, content={"error": err.kind, "detail": str(err)})


@app.middleware("http")
async def limit_request_size(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests with body larger than MAX_REQUEST_SIZE."""
    content_length = request.headers.get("content-length")
    if content_length and int(content_length) > MAX_REQUEST_SIZE:
        return JSONResponse(status_code=413, content={"detail": "Request too large"})
    return await call_next(request)


app.include_router(router)


@app.get("/health")
async def health() -> dict[str, object]:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


def run() -> None:
    """Run the engine API server.

    Configuration via environment variables:
    - RMM_HOST: Host to bind to (default: 0.0.0.0)
    - RMM_PORT: Port to bind to (default: 8000)
    - RMM_DEBUG: Enable debug/reload mode (default: false)
    - RMM_LOG_LEVEL: Minimum log level (default: info)
    - RMM_MANUAL_CLOCK and the EngineConfig variables (see rmm.config)
    """
    uvicorn.run(
        "rmm.api.main:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
    )


if __name__ == "__main__":
    run()
