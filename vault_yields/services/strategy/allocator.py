"""Weight allocator for turning a selection into target amounts.

Weights are proportional to 30d mean APY:
- COVERAGE selections: across all selected strategies
- PRIMARY selections: within each group (preferred / backfill), scaled by the
  group's target fraction of the budget

A group with no APY mass gets no weight and its budget moves to the other
group, so a plan with any weighted strategy always sums to 1.
"""

import math
from collections import defaultdict
from typing import Dict, Sequence, Tuple

import structlog

from vault_yields.core.registry import AllocationPolicy
from vault_yields.services.strategy.models import AllocationPlan, Selection, Strategy

logger = structlog.get_logger()

DEFAULT_PREFERRED_TARGET = 1.0
DEFAULT_OTHER_TARGET = 0.0


def proportional_weights(strategies: Sequence[Strategy], budget: float = 1.0) -> Dict[str, float]:
    """Split ``budget`` across strategies by 30d mean APY."""
    total = sum(s.apy_mean_30d for s in strategies)
    if not math.isfinite(total) or total <= 0:
        return {s.id: 0.0 for s in strategies}
    return {s.id: budget * s.apy_mean_30d / total for s in strategies}


def group_budgets(
    preferred_total_apy: float,
    other_total_apy: float,
    preferred_target: float = DEFAULT_PREFERRED_TARGET,
    other_target: float = DEFAULT_OTHER_TARGET,
) -> Tuple[float, float]:
    """Budget fractions for the preferred and backfill groups.

    Configured targets apply when both groups carry APY mass. When only one
    does, it takes the whole budget; when neither does, both get 0.
    """
    preferred_active = preferred_total_apy > 0
    other_active = other_total_apy > 0
    if preferred_active and other_active:
        return preferred_target, other_target
    if preferred_active:
        return 1.0, 0.0
    if other_active:
        return 0.0, 1.0
    return 0.0, 0.0


def compute_weights(
    selection: Selection,
    preferred_target: float = DEFAULT_PREFERRED_TARGET,
    other_target: float = DEFAULT_OTHER_TARGET,
) -> Dict[str, float]:
    """Weight per selected strategy id."""
    if selection.policy == AllocationPolicy.COVERAGE:
        return proportional_weights(selection.selected)

    preferred_budget, other_budget = group_budgets(
        sum(s.apy_mean_30d for s in selection.preferred),
        sum(s.apy_mean_30d for s in selection.backfill),
        preferred_target,
        other_target,
    )
    weights = proportional_weights(selection.preferred, preferred_budget)
    weights.update(proportional_weights(selection.backfill, other_budget))
    return weights


def allocate(
    candidates: Sequence[Strategy],
    selection: Selection,
    total_value: float,
    vault_id: str = "",
    chain_scope: Tuple[str, ...] = (),
    preferred_target: float = DEFAULT_PREFERRED_TARGET,
    other_target: float = DEFAULT_OTHER_TARGET,
) -> AllocationPlan:
    """Build the allocation plan for a vault.

    Args:
        candidates: Every strategy considered; unselected ones keep weight 0
        selection: Output of one of the selector policies
        total_value: Vault value in USD
        vault_id: Vault the plan is for
        chain_scope: Chains the candidates were drawn from
        preferred_target: PRIMARY budget for the preferred group
        other_target: PRIMARY budget for the backfill group

    Returns:
        AllocationPlan with weight and allocated amount on every candidate
    """
    weights = compute_weights(selection, preferred_target, other_target)

    strategies = tuple(
        s.with_allocation(weights.get(s.id, 0.0), total_value)
        for s in candidates
    )
    # Selected strategies missing from the candidate list still belong in the plan
    known = {s.id for s in candidates}
    strategies += tuple(
        s.with_allocation(weights.get(s.id, 0.0), total_value)
        for s in selection.selected
        if s.id not in known
    )

    plan = AllocationPlan(
        vault_id=vault_id,
        policy=selection.policy,
        chain_scope=tuple(chain_scope),
        total_value=total_value,
        strategies=strategies,
        selected_ids=selection.selected_ids,
    )

    protocol_weights: Dict[str, float] = defaultdict(float)
    for s in plan.strategies:
        protocol_weights[s.protocol] += s.weight
    top = sorted(protocol_weights.items(), key=lambda kv: kv[1], reverse=True)[:5]
    logger.info(
        "Allocation computed",
        vault_id=vault_id,
        selected=len(selection),
        total_weight=round(plan.total_weight, 6),
        top_protocols={p: round(w, 4) for p, w in top if w > 0},
    )
    return plan
