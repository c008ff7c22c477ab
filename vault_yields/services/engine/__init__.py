"""Yield engine orchestrator."""

from vault_yields.services.engine.yield_engine import (
    AllocationDelta,
    PoolSource,
    RebalanceRecommendation,
    RebalanceSignal,
    RecommendationSet,
    UnknownChainError,
    UnknownVaultError,
    VaultYield,
    YieldEngine,
)

__all__ = [
    "AllocationDelta",
    "PoolSource",
    "RebalanceRecommendation",
    "RebalanceSignal",
    "RecommendationSet",
    "UnknownChainError",
    "UnknownVaultError",
    "VaultYield",
    "YieldEngine",
]
