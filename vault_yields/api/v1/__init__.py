"""API v1 router."""

from fastapi import APIRouter

from vault_yields.api.v1 import health, rebalance, strategies, vaults, ws, yields

router = APIRouter(prefix="/api/v1")

router.include_router(health.router, tags=["Health"])
router.include_router(yields.router, prefix="/yields", tags=["Yields"])
router.include_router(strategies.router, prefix="/strategies", tags=["Strategies"])
router.include_router(rebalance.router, prefix="/rebalance", tags=["Rebalance"])
router.include_router(vaults.router, prefix="/vaults", tags=["Vaults"])
router.include_router(ws.router, tags=["Push"])
