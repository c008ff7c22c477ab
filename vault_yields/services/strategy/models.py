"""Strategy, selection and allocation plan value types.

APY figures are percentages (8.0 means 8%), as DefiLlama reports them.
"""

from dataclasses import dataclass, field, replace
from typing import Tuple

from vault_yields.core.registry import AllocationPolicy, is_preferred_protocol
from vault_yields.services.data.response_models import RawPool

BPS_DENOMINATOR = 10_000


def net_apy(gross_apy: float, fee_bps: int) -> float:
    """Gross APY less the platform fee, ``gross * (1 - fee_bps / 10000)``."""
    return gross_apy * (1 - fee_bps / BPS_DENOMINATOR)


def ranking_apy(pool: RawPool) -> float:
    """APY used to rank, select and weight strategies.

    Precedence: 30-day mean APY, then base APY, then 0. A figure of exactly 0
    counts as missing, since upstream reports 0 for pools without history.
    """
    return pool.apy_mean_30d or pool.apy_base or 0.0


@dataclass(frozen=True)
class Strategy:
    """A vetted, investable pool scoped to one vault."""
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

    @classmethod
    def from_pool(cls, pool: RawPool, chain_key: str, fee_bps: int) -> "Strategy":
        return cls(
            id=pool.pool,
            chain=chain_key,
            protocol=pool.project,
            pool_id=pool.pool,
            asset=pool.symbol,
            apy_base=pool.apy_base,
            apy_reward=pool.apy_reward,
            apy_gross=pool.apy,
            apy_net=net_apy(pool.apy, fee_bps),
            apy_mean_30d=ranking_apy(pool),
            tvl=pool.tvl_usd,
        )

    @property
    def is_preferred(self) -> bool:
        return is_preferred_protocol(self.protocol)

    def with_allocation(self, weight: float, total_value: float) -> "Strategy":
        return replace(self, weight=weight, allocated=weight * total_value)


def yield_apy(strategy: Strategy) -> float:
    """APY a strategy contributes to the model APY.

    Precedence: net APY, then base APY, then 0.
    """
    return strategy.apy_net or strategy.apy_base or 0.0


@dataclass(frozen=True)
class Selection:
    """Strategies chosen for a vault, split by group.

    Coverage-policy selections put everything in ``preferred`` and leave
    ``backfill`` empty, since that policy has no group split.
    """
    policy: AllocationPolicy
    preferred: Tuple[Strategy, ...] = ()
    backfill: Tuple[Strategy, ...] = ()

    @property
    def selected(self) -> Tuple[Strategy, ...]:
        return self.preferred + self.backfill

    @property
    def selected_ids(self) -> frozenset:
        return frozenset(s.id for s in self.selected)

    def __len__(self) -> int:
        return len(self.preferred) + len(self.backfill)


@dataclass(frozen=True)
class AllocationPlan:
    """Selector + allocator output for one vault at one point in time.

    ``strategies`` holds every candidate; unselected ones carry weight 0.
    """
    vault_id: str
    policy: AllocationPolicy
    chain_scope: Tuple[str, ...]
    total_value: float
    strategies: Tuple[Strategy, ...] = field(default_factory=tuple)
    selected_ids: frozenset = field(default_factory=frozenset)

    @property
    def selected(self) -> Tuple[Strategy, ...]:
        return tuple(s for s in self.strategies if s.id in self.selected_ids)

    @property
    def total_weight(self) -> float:
        return sum(s.weight for s in self.strategies)

    @property
    def total_allocated(self) -> float:
        return sum(s.allocated for s in self.strategies)

    @property
    def model_apy(self) -> float:
        """Weighted average yield implied by the plan."""
        return sum(s.weight * yield_apy(s) for s in self.strategies)
