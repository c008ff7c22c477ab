"""Rebalance recommendation, signal and delta schemas."""

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

from vault_yields.services.engine import (
    AllocationDelta,
    RebalanceSignal,
    RecommendationSet,
)


class RecommendationItem(BaseModel):
    strategy_id: str
    protocol: str
    target_apy: float
    target_allocation: float
    target_weight: float


class RecommendationResponse(BaseModel):
    """Target allocation for a chain's top strategies."""
    chain: str
    timestamp: datetime
    total_tvl: float
    recommendations: List[RecommendationItem]

    @classmethod
    def from_recommendations(cls, result: RecommendationSet) -> "RecommendationResponse":
        return cls(
            chain=result.chain,
            timestamp=result.timestamp,
            total_tvl=result.total_tvl,
            recommendations=[
                RecommendationItem(
                    strategy_id=r.strategy_id,
                    protocol=r.protocol,
                    target_apy=r.target_apy,
                    target_allocation=r.target_allocation,
                    target_weight=r.target_weight,
                )
                for r in result.recommendations
            ],
        )


class RebalanceSignalResponse(BaseModel):
    """Whether model and realized APY have drifted apart."""
    vault_id: str
    model_apy: float
    realized_apy: float
    threshold: float
    rebalance_needed: bool

    @classmethod
    def from_signal(cls, signal: RebalanceSignal) -> "RebalanceSignalResponse":
        return cls(
            vault_id=signal.vault_id,
            model_apy=signal.model_apy,
            realized_apy=signal.realized_apy,
            threshold=signal.threshold,
            rebalance_needed=signal.rebalance_needed,
        )


class DeltasRequest(BaseModel):
    """Current USD allocation per strategy id."""
    current_allocations: Dict[str, float] = Field(default_factory=dict)

    @field_validator("current_allocations")
    @classmethod
    def non_negative(cls, v: Dict[str, float]) -> Dict[str, float]:
        for strategy_id, amount in v.items():
            if amount < 0:
                raise ValueError(f"allocation for {strategy_id!r} must be non-negative")
        return v


class AllocationDeltaItem(BaseModel):
    strategy_id: str
    protocol: str
    current_allocation: float
    target_allocation: float
    delta: float
    action: str

    @classmethod
    def from_delta(cls, delta: AllocationDelta) -> "AllocationDeltaItem":
        return cls(
            strategy_id=delta.strategy_id,
            protocol=delta.protocol,
            current_allocation=delta.current_allocation,
            target_allocation=delta.target_allocation,
            delta=delta.delta,
            action=delta.action,
        )


class DeltasResponse(BaseModel):
    chain: str
    vault_id: str
    deltas: List[AllocationDeltaItem]
    total_to_allocate: float = 0.0
    total_to_withdraw: float = 0.0
