"""Vault state ingestion, fed by the on-chain deposit/redeem event path."""

from fastapi import APIRouter, Depends

from vault_yields.api.deps import get_yield_engine
from vault_yields.schemas.vault import SnapshotRequest, SnapshotResponse
from vault_yields.services.engine import YieldEngine

router = APIRouter()


@router.post("/{vault_id}/snapshot", response_model=SnapshotResponse)
async def record_vault_snapshot(
    vault_id: str,
    body: SnapshotRequest,
    engine: YieldEngine = Depends(get_yield_engine),
) -> SnapshotResponse:
    snapshot = engine.update_vault_state(
        vault_id,
        body.total_assets,
        body.total_shares,
        observed_at=body.observed_at,
    )
    return SnapshotResponse.from_snapshot(vault_id, snapshot)
