"""Pool filter for the investable stablecoin universe.

Implements hard excludes per chain:
- Chain name does not contain the chain's filter string
- Symbol contains none of the chain's asset tickers
- Upstream does not flag the pool as a stablecoin pool
- Symbol is not made purely of whitelisted stablecoins (mislabelled LPs)
- APY not positive
- TVL below the liquidity floor

Every function here is pure; a failing pool is a non-match, never an error.
"""

from dataclasses import dataclass
from typing import Iterable, List

from vault_yields.core.registry import (
    EXCLUDED_TOKENS,
    STABLECOIN_SUFFIXES,
    STABLECOINS,
    ChainConfig,
)
from vault_yields.services.data.response_models import RawPool

DEFAULT_MIN_TVL_USD = 200_000.0


@dataclass(frozen=True)
class PoolEligibility:
    """Result of the eligibility check for one pool on one chain."""
    pool_id: str
    chain_key: str
    reasons: tuple

    @property
    def is_eligible(self) -> bool:
        return not self.reasons


def is_exact_stablecoin(token: str) -> bool:
    """Exact whitelist match, allowing bridged suffixes like USDC.E or USDCET."""
    if token in STABLECOINS:
        return True
    for suffix in STABLECOIN_SUFFIXES:
        if token.endswith(suffix) and token[: -len(suffix)] in STABLECOINS:
            return True
    return False


def is_stable_pair(symbol: str) -> bool:
    """True if the symbol is a stablecoin or an LP made only of stablecoins."""
    upper = symbol.upper().strip()
    if not upper:
        return False

    if any(excluded in upper for excluded in EXCLUDED_TOKENS):
        return False

    if "-" in upper:
        return all(is_exact_stablecoin(token.strip()) for token in upper.split("-"))

    return is_exact_stablecoin(upper)


def matches_chain(pool: RawPool, chain: ChainConfig) -> bool:
    return chain.chain_filter.lower() in pool.chain.lower()


def matches_asset(pool: RawPool, chain: ChainConfig) -> bool:
    symbol = pool.symbol.upper()
    return any(asset.upper() in symbol for asset in chain.assets)


def check_pool(
    pool: RawPool,
    chain: ChainConfig,
    min_tvl_usd: float = DEFAULT_MIN_TVL_USD,
) -> PoolEligibility:
    """Check a pool against every exclusion rule and collect the failures."""
    reasons = []

    if not matches_chain(pool, chain):
        reasons.append(f"Chain {pool.chain!r} does not match {chain.chain_filter!r}")

    if not matches_asset(pool, chain):
        reasons.append(f"Symbol {pool.symbol!r} has none of {', '.join(chain.assets)}")

    if pool.stablecoin is not True:
        reasons.append("Not flagged as a stablecoin pool")

    if not is_stable_pair(pool.symbol):
        reasons.append(f"Symbol {pool.symbol!r} is not a pure stablecoin pair")

    if not pool.apy > 0:
        reasons.append(f"APY not positive: {pool.apy}")

    if not pool.tvl_usd >= min_tvl_usd:
        reasons.append(f"TVL too low: ${pool.tvl_usd:,.0f} < ${min_tvl_usd:,.0f}")

    return PoolEligibility(pool_id=pool.pool, chain_key=chain.key, reasons=tuple(reasons))


def is_eligible(
    pool: RawPool,
    chain: ChainConfig,
    min_tvl_usd: float = DEFAULT_MIN_TVL_USD,
) -> bool:
    return check_pool(pool, chain, min_tvl_usd).is_eligible


def filter_pools(
    pools: Iterable[RawPool],
    chain: ChainConfig,
    min_tvl_usd: float = DEFAULT_MIN_TVL_USD,
) -> List[RawPool]:
    """Eligible pools for a chain, in input order."""
    return [p for p in pools if is_eligible(p, chain, min_tvl_usd)]
