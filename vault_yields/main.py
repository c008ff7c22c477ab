"""FastAPI application entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vault_yields import __version__
from vault_yields.api.v1 import router as api_router
from vault_yields.core.config import get_settings
from vault_yields.core.logging import configure_logging
from vault_yields.core.scheduler import YieldScheduler
from vault_yields.schemas.common import ErrorResponse
from vault_yields.services.data import DefiLlamaClient
from vault_yields.services.delivery import YieldBroadcaster
from vault_yields.services.engine import (
    UnknownChainError,
    UnknownVaultError,
    YieldEngine,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger.info("Starting Vault Yields API", version=__version__, environment=settings.environment)

    feed = DefiLlamaClient(settings=settings)
    engine = YieldEngine(feed, settings=settings)
    broadcaster = YieldBroadcaster(engine)
    scheduler = YieldScheduler(engine.refresh_pools, broadcaster.broadcast, settings=settings)

    app.state.feed = feed
    app.state.engine = engine
    app.state.broadcaster = broadcaster
    app.state.scheduler = scheduler

    # Initial fetch so the first queries have pools; failure leaves an empty universe
    await scheduler.run_pool_refresh()
    scheduler.start()

    yield

    logger.info("Shutting down...")
    scheduler.stop()
    await broadcaster.close_all()
    logger.info("Cleanup complete")


async def unknown_chain_handler(request: Request, exc: UnknownChainError) -> JSONResponse:
    body = ErrorResponse(error=str(exc), valid_chains=exc.valid_keys)
    return JSONResponse(status_code=400, content=body.model_dump(mode="json", exclude_none=True))


async def unknown_vault_handler(request: Request, exc: UnknownVaultError) -> JSONResponse:
    body = ErrorResponse(error=str(exc), detail=f"Valid vaults: {', '.join(exc.valid_ids)}")
    return JSONResponse(status_code=404, content=body.model_dump(mode="json", exclude_none=True))


def create_app() -> FastAPI:
    """Build the FastAPI app; services are attached to ``app.state`` in the lifespan."""
    settings = get_settings()

    app = FastAPI(
        title="Vault Yields API",
        description="Stablecoin vault yield engine: strategy selection, allocation and realized APY",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(UnknownChainError, unknown_chain_handler)
    app.add_exception_handler(UnknownVaultError, unknown_vault_handler)

    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Vault Yields API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/v1/health",
            "websocket": "/api/v1/ws",
        }

    return app


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "vault_yields.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.backend_port,
        reload=settings.debug,
    )
