"""Pydantic schemas for API request/response validation."""

from vault_yields.schemas.common import (
    ErrorResponse,
    FeedStatus,
    HealthResponse,
    JobStatus,
    SchedulerStatus,
)
from vault_yields.schemas.rebalance import (
    AllocationDeltaItem,
    DeltasRequest,
    DeltasResponse,
    RebalanceSignalResponse,
    RecommendationItem,
    RecommendationResponse,
)
from vault_yields.schemas.vault import SnapshotRequest, SnapshotResponse
from vault_yields.schemas.yields import (
    StrategyResponse,
    VaultYieldResponse,
    YieldUpdateMessage,
)

__all__ = [
    "AllocationDeltaItem",
    "DeltasRequest",
    "DeltasResponse",
    "ErrorResponse",
    "FeedStatus",
    "HealthResponse",
    "JobStatus",
    "RebalanceSignalResponse",
    "RecommendationItem",
    "RecommendationResponse",
    "SchedulerStatus",
    "SnapshotRequest",
    "SnapshotResponse",
    "StrategyResponse",
    "VaultYieldResponse",
    "YieldUpdateMessage",
]
