"""Vault snapshot ingestion schemas."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from vault_yields.services.vault import VaultSnapshot


class SnapshotRequest(BaseModel):
    """On-chain vault totals in base units (6 decimals for USDC/USDT)."""
    total_assets: int = Field(ge=0)
    total_shares: int = Field(ge=0)
    observed_at: Optional[float] = Field(default=None, description="Unix seconds; defaults to now")


class SnapshotResponse(BaseModel):
    vault_id: str
    total_assets: int
    total_shares: int
    price_per_share: float
    total_value: float
    observed_at: datetime

    @classmethod
    def from_snapshot(cls, vault_id: str, snapshot: VaultSnapshot) -> "SnapshotResponse":
        return cls(
            vault_id=vault_id,
            total_assets=snapshot.total_assets,
            total_shares=snapshot.total_shares,
            price_per_share=snapshot.price_per_share,
            total_value=float(snapshot.total_value),
            observed_at=datetime.fromtimestamp(snapshot.observed_at, tz=timezone.utc),
        )
