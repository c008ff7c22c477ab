"""Top strategy endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query

from vault_yields.api.deps import get_yield_engine
from vault_yields.schemas.yields import StrategyResponse
from vault_yields.services.engine import YieldEngine

router = APIRouter()


@router.get("/{chain}", response_model=List[StrategyResponse])
async def get_top_strategies(
    chain: str,
    limit: int = Query(default=10, ge=1, le=100),
    engine: YieldEngine = Depends(get_yield_engine),
) -> List[StrategyResponse]:
    """Eligible strategies on a chain by 30d mean APY, highest first."""
    strategies = await engine.top_strategies(chain, limit)
    return [StrategyResponse.from_strategy(s) for s in strategies]
