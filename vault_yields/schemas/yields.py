"""Vault yield and strategy schemas."""

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field

from vault_yields.services.engine import VaultYield
from vault_yields.services.strategy import Strategy


class StrategyResponse(BaseModel):
    """One strategy with its allocation."""
    id: str
    chain: str
    protocol: str
    pool_id: str
    asset: str
    apy_base: float
    apy_reward: float
    apy_gross: float
    apy_net: float
    apy_mean_30d: float
    tvl: float
    allocated: float = 0.0
    weight: float = 0.0
    selected: bool = False

    @classmethod
    def from_strategy(cls, strategy: Strategy, selected: bool = False) -> "StrategyResponse":
        return cls(
            id=strategy.id,
            chain=strategy.chain,
            protocol=strategy.protocol,
            pool_id=strategy.pool_id,
            asset=strategy.asset,
            apy_base=strategy.apy_base,
            apy_reward=strategy.apy_reward,
            apy_gross=strategy.apy_gross,
            apy_net=strategy.apy_net,
            apy_mean_30d=strategy.apy_mean_30d,
            tvl=strategy.tvl,
            allocated=strategy.allocated,
            weight=strategy.weight,
            selected=selected,
        )


class VaultYieldResponse(BaseModel):
    """Model and realized yield for one vault."""
    vault_id: str
    chain: str
    asset: str
    policy: str
    chain_scope: List[str]
    model_apy: float
    realized_apy: float
    total_tvl: float
    total_allocated: float
    strategies: List[StrategyResponse] = Field(default_factory=list)
    last_update: datetime

    @classmethod
    def from_vault_yield(cls, vault_yield: VaultYield) -> "VaultYieldResponse":
        plan = vault_yield.plan
        return cls(
            vault_id=vault_yield.vault_id,
            chain=vault_yield.chain,
            asset=vault_yield.asset,
            policy=plan.policy.value,
            chain_scope=list(plan.chain_scope),
            model_apy=vault_yield.model_apy,
            realized_apy=vault_yield.realized_apy,
            total_tvl=vault_yield.total_tvl,
            total_allocated=vault_yield.total_allocated,
            strategies=[
                StrategyResponse.from_strategy(s, selected=s.id in plan.selected_ids)
                for s in plan.strategies
            ],
            last_update=vault_yield.last_update,
        )


class YieldUpdateMessage(BaseModel):
    """Push message sent to websocket subscribers."""
    type: Literal["yield_update"] = "yield_update"
    timestamp: datetime
    data: List[VaultYieldResponse]
