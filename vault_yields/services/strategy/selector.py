"""Strategy selection policies.

Two policies turn a ranked candidate list into a vault's selection:

PRIMARY (multi-chain vault)
    Capital is restricted to preferred blue-chip protocols regardless of where
    the highest yield sits. Up to N preferred strategies, at most one per
    (protocol, base asset, chain). Empty preferred slots are backfilled from
    other protocols, at most one strategy per protocol.

COVERAGE (single-chain vault)
    Greedy by 30d mean APY until the selection holds the coverage target share
    of the total available APY, or the maximum count is reached.

All functions are pure: they take candidate sequences and return a new
``Selection`` without touching their input.
"""

import re
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from vault_yields.core.registry import AllocationPolicy
from vault_yields.services.strategy.models import Selection, Strategy

logger = structlog.get_logger()

DEFAULT_MIN_MEAN_APY = 5.0
DEFAULT_PREFERRED_COUNT = 10
DEFAULT_OTHER_COUNT = 0
DEFAULT_COVERAGE_TARGET = 0.90
DEFAULT_MAX_STRATEGIES = 20

_BRIDGED_SUFFIX = re.compile(r"\.(E|ET)$")
_TRAILING_ZERO = re.compile(r"0$")


def base_asset(symbol: str) -> str:
    """Strip pair and bridge decoration: ``USDT0-USDC`` -> ``USDT``, ``USDC.E`` -> ``USDC``."""
    first = symbol.upper().split("-")[0].strip()
    return _TRAILING_ZERO.sub("", _BRIDGED_SUFFIX.sub("", first))


def above_floor(strategies: Iterable[Strategy], min_mean_apy: float) -> List[Strategy]:
    return [s for s in strategies if s.apy_mean_30d >= min_mean_apy]


def sort_by_mean_apy(strategies: Iterable[Strategy]) -> List[Strategy]:
    """Descending 30d mean APY; ties keep input order."""
    return sorted(strategies, key=lambda s: s.apy_mean_30d, reverse=True)


def rank_strategies(
    strategies: Iterable[Strategy],
    min_mean_apy: float = DEFAULT_MIN_MEAN_APY,
    limit: Optional[int] = None,
) -> List[Strategy]:
    """Drop strategies under the floor, sort, and truncate."""
    ranked = sort_by_mean_apy(above_floor(strategies, min_mean_apy))
    return ranked if limit is None else ranked[:limit]


def select_primary(
    strategies: Sequence[Strategy],
    preferred_count: int = DEFAULT_PREFERRED_COUNT,
    other_count: int = DEFAULT_OTHER_COUNT,
    min_mean_apy: float = DEFAULT_MIN_MEAN_APY,
) -> Selection:
    """Preferred-protocol selection with backfill for the primary vault."""
    ranked = rank_strategies(strategies, min_mean_apy)
    preferred_pool = [s for s in ranked if s.is_preferred]
    other_pool = [s for s in ranked if not s.is_preferred]

    preferred: List[Strategy] = []
    used_keys: Set[Tuple[str, str, str]] = set()
    for strategy in preferred_pool:
        if len(preferred) >= preferred_count:
            break
        key = (strategy.protocol, base_asset(strategy.asset), strategy.chain)
        if key in used_keys:
            continue
        preferred.append(strategy)
        used_keys.add(key)

    # Empty preferred slots roll over to the other group
    other_needed = other_count + (preferred_count - len(preferred))

    backfill: List[Strategy] = []
    used_protocols: Set[str] = set()
    for strategy in other_pool:
        if len(backfill) >= other_needed:
            break
        if strategy.protocol in used_protocols:
            continue
        backfill.append(strategy)
        used_protocols.add(strategy.protocol)

    logger.info(
        "Primary selection completed",
        preferred=len(preferred),
        backfill=len(backfill),
        candidates=len(ranked),
    )
    return Selection(
        policy=AllocationPolicy.PRIMARY,
        preferred=tuple(preferred),
        backfill=tuple(backfill),
    )


def select_by_coverage(
    strategies: Sequence[Strategy],
    coverage_target: float = DEFAULT_COVERAGE_TARGET,
    max_count: int = DEFAULT_MAX_STRATEGIES,
    min_mean_apy: float = DEFAULT_MIN_MEAN_APY,
) -> Selection:
    """Greedy selection until the coverage target or the count cap is hit."""
    ranked = rank_strategies(strategies, min_mean_apy)
    total_available = sum(s.apy_mean_30d for s in ranked)

    selected: List[Strategy] = []
    accumulated = 0.0
    for strategy in ranked:
        if len(selected) >= max_count:
            break
        selected.append(strategy)
        accumulated += strategy.apy_mean_30d
        if total_available > 0 and accumulated / total_available >= coverage_target:
            break

    logger.info(
        "Coverage selection completed",
        selected=len(selected),
        candidates=len(ranked),
        coverage=round(accumulated / total_available, 4) if total_available > 0 else 0.0,
    )
    return Selection(policy=AllocationPolicy.COVERAGE, preferred=tuple(selected))
