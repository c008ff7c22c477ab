"""Rebalance endpoints.

Recommendations and deltas are advisory: execution happens in a separate
service that consumes them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from vault_yields.api.deps import get_yield_engine
from vault_yields.schemas.rebalance import (
    AllocationDeltaItem,
    DeltasRequest,
    DeltasResponse,
    RebalanceSignalResponse,
    RecommendationResponse,
)
from vault_yields.services.engine import YieldEngine

router = APIRouter()


@router.get("/{chain}", response_model=RecommendationResponse)
async def get_rebalance_recommendations(
    chain: str,
    tvl: Optional[float] = Query(default=None, gt=0, description="Current vault value in USD"),
    engine: YieldEngine = Depends(get_yield_engine),
) -> RecommendationResponse:
    result = await engine.rebalance_recommendations(chain, tvl)
    return RecommendationResponse.from_recommendations(result)


@router.get("/{chain}/signal", response_model=RebalanceSignalResponse)
async def get_rebalance_signal(
    chain: str,
    threshold: Optional[float] = Query(default=None, ge=0, description="APY gap in percentage points"),
    engine: YieldEngine = Depends(get_yield_engine),
) -> RebalanceSignalResponse:
    """Compare the vault's model APY with its realized APY."""
    vault_yield = await engine.get_vault_yield_for_chain(chain)
    signal = engine.rebalance_signal(vault_yield.vault_id, threshold)
    return RebalanceSignalResponse.from_signal(signal)


@router.post("/{chain}/deltas", response_model=DeltasResponse)
async def get_allocation_deltas(
    chain: str,
    body: DeltasRequest,
    engine: YieldEngine = Depends(get_yield_engine),
) -> DeltasResponse:
    """Moves needed to reach the vault's current plan from the given allocations."""
    vault = engine.vault_for_chain(chain)
    deltas = await engine.allocation_deltas(chain, body.current_allocations)

    return DeltasResponse(
        chain=chain,
        vault_id=vault.vault_id,
        deltas=[AllocationDeltaItem.from_delta(d) for d in deltas],
        total_to_allocate=sum(d.delta for d in deltas if d.action == "allocate"),
        total_to_withdraw=sum(-d.delta for d in deltas if d.action == "withdraw"),
    )
