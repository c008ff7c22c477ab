"""Strategy pipeline for stablecoin vaults.

- Pool filter with hard excludes per chain
- Selection policies (primary preferred-protocol, single-chain coverage)
- APY-proportional weight allocation

Every stage is a pure function over immutable inputs.
"""

from vault_yields.services.strategy.models import (
    AllocationPlan,
    Selection,
    Strategy,
    net_apy,
    ranking_apy,
    yield_apy,
)
from vault_yields.services.strategy.pool_filter import (
    PoolEligibility,
    check_pool,
    filter_pools,
    is_eligible,
    is_stable_pair,
)
from vault_yields.services.strategy.selector import (
    base_asset,
    rank_strategies,
    select_by_coverage,
    select_primary,
)
from vault_yields.services.strategy.allocator import (
    allocate,
    compute_weights,
    group_budgets,
)

__all__ = [
    # Models
    "AllocationPlan",
    "Selection",
    "Strategy",
    "net_apy",
    "ranking_apy",
    "yield_apy",
    # Filter
    "PoolEligibility",
    "check_pool",
    "filter_pools",
    "is_eligible",
    "is_stable_pair",
    # Selection
    "base_asset",
    "rank_strategies",
    "select_by_coverage",
    "select_primary",
    # Allocation
    "allocate",
    "compute_weights",
    "group_budgets",
]
