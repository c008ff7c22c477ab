"""Pytest configuration and fixtures for vault yields tests."""

import os
from typing import Any, Dict, List

import pytest

# Keep test runs independent of a developer's .env or shell
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DEFILLAMA_POOLS_URL", "https://yields.test/pools")


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFeed:
    """In-memory pool source with call counting and optional failure."""

    def __init__(self, pools=None):
        self.pools = list(pools or [])
        self.calls = 0
        self.force_calls = 0
        self.error = None

    async def fetch_pools(self, force: bool = False):
        self.calls += 1
        if force:
            self.force_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.pools)


def pool_record(
    pool: str = "pool-1",
    chain: str = "Ethereum",
    project: str = "aave-v3",
    symbol: str = "USDT",
    tvl_usd: float = 1_000_000.0,
    apy: float = 8.0,
    apy_base: float = 8.0,
    apy_reward: float = 0.0,
    apy_mean_30d: float = 8.0,
    stablecoin: bool = True,
) -> Dict[str, Any]:
    """Upstream-shaped (camelCase) pool record."""
    return {
        "pool": pool,
        "chain": chain,
        "project": project,
        "symbol": symbol,
        "tvlUsd": tvl_usd,
        "apy": apy,
        "apyBase": apy_base,
        "apyReward": apy_reward,
        "apyMean30d": apy_mean_30d,
        "stablecoin": stablecoin,
    }


@pytest.fixture
def make_record():
    return pool_record


@pytest.fixture
def make_pool():
    """Factory for validated RawPool instances."""
    from vault_yields.services.data.response_models import RawPool

    def _make(**kwargs) -> RawPool:
        return RawPool.model_validate(pool_record(**kwargs))

    return _make


@pytest.fixture
def make_strategy(make_pool):
    """Factory for strategies built from pools."""
    from vault_yields.services.strategy import Strategy

    def _make(chain_key: str = "ethereum", fee_bps: int = 10, **kwargs):
        return Strategy.from_pool(make_pool(**kwargs), chain_key, fee_bps)

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def feed_factory():
    return FakeFeed


@pytest.fixture
def settings():
    """Settings with test-friendly timing; other fields keep their defaults."""
    from vault_yields.core.config import Settings

    return Settings(
        feed_timeout_seconds=0.5,
        feed_max_retries=0,
        feed_initial_backoff_seconds=0.0,
        feed_max_backoff_seconds=0.0,
        pool_cache_ttl_seconds=300,
        vault_yield_ttl_seconds=60,
    )


@pytest.fixture
def metrics():
    """Fresh collector so tests never share counters."""
    from vault_yields.core.metrics import MetricsCollector

    return MetricsCollector()


@pytest.fixture
def engine_factory(settings, metrics, clock):
    """Build a YieldEngine over the given pools or feed."""
    from vault_yields.services.engine import YieldEngine
    from vault_yields.services.vault import VaultStateTracker

    def _make(pools: List = None, feed=None, **overrides):
        feed = feed if feed is not None else FakeFeed(pools)
        engine_settings = settings.model_copy(update=overrides) if overrides else settings
        return YieldEngine(
            feed,
            tracker=VaultStateTracker(clock=clock),
            settings=engine_settings,
            metrics=metrics,
            clock=clock,
        )

    return _make
