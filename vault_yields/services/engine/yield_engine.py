"""Yield engine orchestrator.

Main entry point for vault yield computation. Coordinates:
- Pool feed (shared, cached universe of pools)
- Pool filter and strategy ranking per chain
- Selection policy per vault
- Weight allocation
- Realized yield from vault share-price observations

Each vault's result is cached for a freshness window. Vaults compute
independently: a failure in one vault's pipeline is logged and that vault
falls back to its last good result without affecting the others.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import structlog

from vault_yields.core.cache import Clock, MemoryCache
from vault_yields.core.config import Settings, get_settings
from vault_yields.core.metrics import MetricsCollector, get_metrics
from vault_yields.core.registry import (
    CHAIN_CONFIGS,
    VAULTS,
    AllocationPolicy,
    VaultConfig,
)
from vault_yields.services.data.response_models import RawPool
from vault_yields.services.strategy.allocator import allocate
from vault_yields.services.strategy.models import AllocationPlan, Selection, Strategy
from vault_yields.services.strategy.pool_filter import filter_pools
from vault_yields.services.strategy.selector import (
    rank_strategies,
    select_by_coverage,
    select_primary,
)
from vault_yields.services.vault.state_tracker import (
    VaultSnapshot,
    VaultStateTracker,
    realized_apy_from_history,
)

logger = structlog.get_logger()


class PoolSource(Protocol):
    """Anything that can hand out the current pool universe."""

    async def fetch_pools(self, force: bool = False) -> List[RawPool]:
        ...


class UnknownChainError(ValueError):
    """Chain key is not served by any vault."""

    def __init__(self, chain_key: str, valid_keys: Sequence[str]):
        self.chain_key = chain_key
        self.valid_keys = list(valid_keys)
        super().__init__(
            f"Invalid chain {chain_key!r}. Must be one of: {', '.join(self.valid_keys)}"
        )


class UnknownVaultError(ValueError):
    """Vault id is not in the registry."""

    def __init__(self, vault_id: str, valid_ids: Sequence[str]):
        self.vault_id = vault_id
        self.valid_ids = list(valid_ids)
        super().__init__(
            f"Unknown vault {vault_id!r}. Must be one of: {', '.join(self.valid_ids)}"
        )


@dataclass(frozen=True)
class VaultYield:
    """Merged model and realized view of one vault, served to callers."""
    vault_id: str
    chain: str
    asset: str
    model_apy: float
    realized_apy: float
    total_tvl: float
    plan: AllocationPlan
    last_update: datetime

    @property
    def strategies(self):
        return self.plan.strategies

    @property
    def total_allocated(self) -> float:
        return self.plan.total_allocated


@dataclass(frozen=True)
class RebalanceRecommendation:
    """Target for one strategy."""
    strategy_id: str
    protocol: str
    target_apy: float
    target_allocation: float
    target_weight: float


@dataclass(frozen=True)
class RecommendationSet:
    chain: str
    timestamp: datetime
    total_tvl: float
    recommendations: List[RebalanceRecommendation] = field(default_factory=list)


@dataclass(frozen=True)
class RebalanceSignal:
    """Model vs realized APY comparison for one vault."""
    vault_id: str
    model_apy: float
    realized_apy: float
    threshold: float
    rebalance_needed: bool

    @property
    def apy_gap(self) -> float:
        return abs(self.model_apy - self.realized_apy)


@dataclass(frozen=True)
class AllocationDelta:
    """Difference between current and target allocation for one strategy."""
    strategy_id: str
    protocol: str
    current_allocation: float
    target_allocation: float
    delta: float
    action: str  # allocate, withdraw, hold


class YieldEngine:
    """Computes, caches and serves per-vault yields."""

    def __init__(
        self,
        feed: PoolSource,
        tracker: Optional[VaultStateTracker] = None,
        settings: Optional[Settings] = None,
        vaults: Optional[Mapping[str, VaultConfig]] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Clock = time.time,
    ):
        self.feed = feed
        self.settings = settings or get_settings()
        self.tracker = tracker or VaultStateTracker(clock=clock)
        self.vaults: Dict[str, VaultConfig] = dict(vaults if vaults is not None else VAULTS)
        self.vault_by_chain: Dict[str, VaultConfig] = {v.chain_key: v for v in self.vaults.values()}
        self._metrics = metrics or get_metrics()
        self._cache: MemoryCache[VaultYield] = MemoryCache(
            ttl_seconds=self.settings.vault_yield_ttl_seconds,
            namespace="vault_yield",
            clock=clock,
        )
        # Per-vault locks: vaults never wait on each other
        self._locks: Dict[str, asyncio.Lock] = {}

    # ==================== Lookups ====================

    @property
    def chain_keys(self) -> List[str]:
        return list(self.vault_by_chain)

    def vault_for_chain(self, chain_key: str) -> VaultConfig:
        vault = self.vault_by_chain.get(chain_key)
        if vault is None:
            raise UnknownChainError(chain_key, self.chain_keys)
        return vault

    def get_vault(self, vault_id: str) -> VaultConfig:
        vault = self.vaults.get(vault_id)
        if vault is None:
            raise UnknownVaultError(vault_id, list(self.vaults))
        return vault

    def _lock_for(self, vault_id: str) -> asyncio.Lock:
        lock = self._locks.get(vault_id)
        if lock is None:
            lock = self._locks[vault_id] = asyncio.Lock()
        return lock

    # ==================== Candidates ====================

    def candidates_for_chain(
        self,
        pools: Sequence[RawPool],
        chain_key: str,
        limit: Optional[int] = None,
    ) -> List[Strategy]:
        """Eligible pools on a chain as strategies, ranked by 30d mean APY."""
        chain = CHAIN_CONFIGS.get(chain_key)
        if chain is None:
            return []
        eligible = filter_pools(pools, chain, self.settings.min_tvl_usd)
        strategies = [
            Strategy.from_pool(p, chain_key, self.settings.platform_fee_bps)
            for p in eligible
        ]
        return rank_strategies(strategies, self.settings.min_mean_apy_30d, limit)

    def _select(self, vault: VaultConfig, candidates: Sequence[Strategy]) -> Selection:
        settings = self.settings
        if vault.policy == AllocationPolicy.PRIMARY:
            return select_primary(
                candidates,
                preferred_count=settings.preferred_strategy_count,
                other_count=settings.other_strategy_count,
                min_mean_apy=settings.min_mean_apy_30d,
            )
        return select_by_coverage(
            candidates,
            coverage_target=settings.coverage_target,
            max_count=settings.max_strategies,
            min_mean_apy=settings.min_mean_apy_30d,
        )

    # ==================== Vault Yields ====================

    async def get_vault_yield(self, vault_id: str) -> VaultYield:
        """Cached yield for a vault, recomputed once the freshness window lapses.

        Raises:
            UnknownVaultError: If the vault id is not registered
        """
        vault = self.get_vault(vault_id)

        cached = self._cache.get_fresh(vault_id)
        if cached is not None:
            await self._record_cache(hit=True)
            return cached

        async with self._lock_for(vault_id):
            # Another caller may have refreshed while we waited
            cached = self._cache.get_fresh(vault_id)
            if cached is not None:
                await self._record_cache(hit=True)
                return cached
            await self._record_cache(hit=False)

            try:
                result = await self._compute_vault_yield(vault)
            except Exception as e:
                stale = self._cache.get_stale(vault_id)
                logger.error(
                    "Vault yield computation failed",
                    vault_id=vault_id,
                    error=str(e),
                    serving_stale=stale is not None,
                    exc_info=True,
                )
                if stale is not None:
                    if self.settings.enable_cache_metrics:
                        await self._metrics.record_stale_served("vault_yield")
                    return stale
                return self._empty_vault_yield(vault)

            self._cache.set(vault_id, result)
            if self.settings.enable_cache_metrics:
                await self._metrics.record_cache_set("vault_yield")
            return result

    async def _compute_vault_yield(self, vault: VaultConfig) -> VaultYield:
        pools = await self.feed.fetch_pools()
        # One read: the plan's vault value and realized APY come from the same pair
        history = self.tracker.history(vault.vault_id)

        candidates: List[Strategy] = []
        for chain_key in vault.chain_scope:
            candidates.extend(
                self.candidates_for_chain(pools, chain_key, self.settings.max_candidates_per_chain)
            )

        total_value = (
            float(history.latest.total_value)
            if history is not None
            else self.settings.default_vault_tvl_usd
        )

        selection = self._select(vault, candidates)
        plan = allocate(
            candidates,
            selection,
            total_value,
            vault_id=vault.vault_id,
            chain_scope=vault.chain_scope,
            preferred_target=self.settings.preferred_target_weight,
            other_target=self.settings.other_target_weight,
        )
        realized = realized_apy_from_history(history)

        result = VaultYield(
            vault_id=vault.vault_id,
            chain=vault.chain_key,
            asset=vault.asset,
            model_apy=plan.model_apy,
            realized_apy=realized,
            total_tvl=total_value,
            plan=plan,
            last_update=datetime.fromtimestamp(self._cache.now(), tz=timezone.utc),
        )
        logger.info(
            "Vault yield computed",
            vault_id=vault.vault_id,
            candidates=len(candidates),
            selected=len(selection),
            model_apy=round(result.model_apy, 4),
            realized_apy=round(result.realized_apy, 4),
        )
        return result

    def _empty_vault_yield(self, vault: VaultConfig) -> VaultYield:
        """Valid, empty result for a vault that has never computed successfully."""
        snapshot = self.tracker.get(vault.vault_id)
        total_value = (
            float(snapshot.total_value) if snapshot is not None
            else self.settings.default_vault_tvl_usd
        )
        plan = AllocationPlan(
            vault_id=vault.vault_id,
            policy=vault.policy,
            chain_scope=vault.chain_scope,
            total_value=total_value,
        )
        return VaultYield(
            vault_id=vault.vault_id,
            chain=vault.chain_key,
            asset=vault.asset,
            model_apy=0.0,
            realized_apy=0.0,
            total_tvl=total_value,
            plan=plan,
            last_update=datetime.fromtimestamp(self._cache.now(), tz=timezone.utc),
        )

    async def get_vault_yield_for_chain(self, chain_key: str) -> VaultYield:
        vault = self.vault_for_chain(chain_key)
        return await self.get_vault_yield(vault.vault_id)

    async def get_all_vault_yields(self) -> List[VaultYield]:
        """Yields for every registered vault, computed concurrently."""
        return list(
            await asyncio.gather(*(self.get_vault_yield(v) for v in self.vaults))
        )

    # ==================== Strategies & Recommendations ====================

    async def top_strategies(self, chain_key: str, limit: Optional[int] = None) -> List[Strategy]:
        """Highest 30d mean APY strategies on a chain.

        Raises:
            UnknownChainError: If the chain key is not served
        """
        self.vault_for_chain(chain_key)
        limit = limit or self.settings.default_top_strategies_limit
        pools = await self.feed.fetch_pools()
        return self.candidates_for_chain(pools, chain_key, limit)

    async def rebalance_recommendations(
        self,
        chain_key: str,
        total_value: Optional[float] = None,
    ) -> RecommendationSet:
        """Coverage-weighted targets over a chain's top strategies.

        Raises:
            UnknownChainError: If the chain key is not served
        """
        total_value = total_value or self.settings.default_recommendation_tvl_usd
        candidates = await self.top_strategies(chain_key, self.settings.recommendation_candidates)
        selection = select_by_coverage(
            candidates,
            coverage_target=self.settings.coverage_target,
            max_count=self.settings.max_strategies,
            min_mean_apy=self.settings.min_mean_apy_30d,
        )
        plan = allocate(candidates, selection, total_value, chain_scope=(chain_key,))

        return RecommendationSet(
            chain=chain_key,
            timestamp=datetime.fromtimestamp(self._cache.now(), tz=timezone.utc),
            total_tvl=total_value,
            recommendations=[
                RebalanceRecommendation(
                    strategy_id=s.id,
                    protocol=s.protocol,
                    target_apy=s.apy_net,
                    target_allocation=s.allocated,
                    target_weight=s.weight,
                )
                for s in plan.strategies
            ],
        )

    async def allocation_deltas(
        self,
        chain_key: str,
        current_allocations: Mapping[str, float],
    ) -> List[AllocationDelta]:
        """Per-strategy moves from current allocations to the vault's plan.

        Moves smaller than ``min_rebalance_delta_usd`` are reported as ``hold``.
        Strategies held but no longer in the plan get a full withdrawal.
        """
        vault_yield = await self.get_vault_yield_for_chain(chain_key)
        min_delta = self.settings.min_rebalance_delta_usd

        targets = {s.id: s for s in vault_yield.plan.strategies}
        ids = [s.id for s in vault_yield.plan.strategies if s.allocated > 0 or s.id in current_allocations]
        ids += [sid for sid in current_allocations if sid not in targets]

        deltas: List[AllocationDelta] = []
        for sid in ids:
            strategy = targets.get(sid)
            target = strategy.allocated if strategy is not None else 0.0
            current = float(current_allocations.get(sid, 0.0))
            delta = target - current
            if abs(delta) < min_delta:
                action = "hold"
            elif delta > 0:
                action = "allocate"
            else:
                action = "withdraw"
            deltas.append(
                AllocationDelta(
                    strategy_id=sid,
                    protocol=strategy.protocol if strategy is not None else "",
                    current_allocation=current,
                    target_allocation=target,
                    delta=delta,
                    action=action,
                )
            )
        return deltas

    # ==================== Rebalance Decision ====================

    def rebalance_signal(self, vault_id: str, threshold: Optional[float] = None) -> RebalanceSignal:
        """Compare model and realized APY of the last computed result."""
        self.get_vault(vault_id)
        threshold = self.settings.rebalance_apy_threshold if threshold is None else threshold
        vault_yield = self._cache.get_stale(vault_id)
        if vault_yield is None:
            return RebalanceSignal(vault_id, 0.0, 0.0, threshold, False)

        signal = RebalanceSignal(
            vault_id=vault_id,
            model_apy=vault_yield.model_apy,
            realized_apy=vault_yield.realized_apy,
            threshold=threshold,
            rebalance_needed=abs(vault_yield.model_apy - vault_yield.realized_apy) > threshold,
        )
        if signal.rebalance_needed:
            logger.info(
                "Rebalance needed",
                vault_id=vault_id,
                model_apy=round(signal.model_apy, 4),
                realized_apy=round(signal.realized_apy, 4),
                diff=round(signal.apy_gap, 4),
            )
        return signal

    def trigger_rebalance_if_needed(self, vault_id: str, threshold: Optional[float] = None) -> bool:
        """True iff |model APY - realized APY| exceeds the threshold."""
        return self.rebalance_signal(vault_id, threshold).rebalance_needed

    # ==================== Vault State & Refresh ====================

    def update_vault_state(
        self,
        vault_id: str,
        total_assets: int,
        total_shares: int,
        observed_at: Optional[float] = None,
    ) -> VaultSnapshot:
        """Record an on-chain observation reported by the indexing path.

        Raises:
            UnknownVaultError: If the vault id is not registered
        """
        vault = self.get_vault(vault_id)
        return self.tracker.update(
            vault_id,
            total_assets,
            total_shares,
            observed_at=observed_at,
            decimals=vault.decimals,
        )

    async def refresh_pools(self) -> int:
        """Force a feed refresh; returns the number of pools now available."""
        pools = await self.feed.fetch_pools(force=True)
        logger.info("Pool refresh completed", pools=len(pools))
        return len(pools)

    def cached_vault_yield(self, vault_id: str) -> Optional[VaultYield]:
        return self._cache.get_stale(vault_id)

    async def _record_cache(self, hit: bool) -> None:
        if not self.settings.enable_cache_metrics:
            return
        if hit:
            await self._metrics.record_cache_hit("vault_yield")
        else:
            await self._metrics.record_cache_miss("vault_yield")
