"""Vault yield endpoints."""

from typing import List

from fastapi import APIRouter, Depends

from vault_yields.api.deps import get_yield_engine
from vault_yields.schemas.yields import VaultYieldResponse
from vault_yields.services.engine import YieldEngine

router = APIRouter()


@router.get("", response_model=List[VaultYieldResponse])
async def list_vault_yields(
    engine: YieldEngine = Depends(get_yield_engine),
) -> List[VaultYieldResponse]:
    """Model and realized yield for every vault."""
    yields = await engine.get_all_vault_yields()
    return [VaultYieldResponse.from_vault_yield(y) for y in yields]


@router.get("/{chain}", response_model=VaultYieldResponse)
async def get_vault_yield(
    chain: str,
    engine: YieldEngine = Depends(get_yield_engine),
) -> VaultYieldResponse:
    vault_yield = await engine.get_vault_yield_for_chain(chain)
    return VaultYieldResponse.from_vault_yield(vault_yield)
