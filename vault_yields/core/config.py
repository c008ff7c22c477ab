"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    backend_port: int = Field(default=3001)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="'console' or 'json'")

    # Upstream pool feed
    defillama_pools_url: str = Field(
        default="https://yields.llama.fi/pools",
        description="DefiLlama yields endpoint"
    )
    feed_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on one feed fetch, retries included"
    )
    feed_max_retries: int = Field(default=2, ge=0)
    feed_initial_backoff_seconds: float = Field(default=0.5, ge=0)
    feed_backoff_multiplier: float = Field(default=2.0, ge=1)
    feed_max_backoff_seconds: float = Field(default=4.0, ge=0)

    # Cache freshness windows
    pool_cache_ttl_seconds: float = Field(default=300.0, ge=0)
    vault_yield_ttl_seconds: float = Field(default=60.0, ge=0)

    # Scheduler intervals
    pool_refresh_minutes: int = Field(default=10, ge=1)
    broadcast_interval_seconds: int = Field(default=30, ge=1)

    # Pool filter
    min_tvl_usd: float = Field(
        default=200_000.0,
        ge=0,
        description="Minimum pool liquidity in USD"
    )

    # Strategy selection
    min_mean_apy_30d: float = Field(
        default=5.0,
        description="Discard strategies whose 30d mean APY (percent) is below this"
    )
    platform_fee_bps: int = Field(default=10, ge=0, le=10_000)
    max_candidates_per_chain: int = Field(default=100, ge=1)
    preferred_strategy_count: int = Field(default=10, ge=0)
    other_strategy_count: int = Field(default=0, ge=0)
    coverage_target: float = Field(default=0.90, gt=0, le=1)
    max_strategies: int = Field(default=20, ge=1)

    # Weight allocation (primary vault group split)
    preferred_target_weight: float = Field(default=1.0, ge=0, le=1)
    other_target_weight: float = Field(default=0.0, ge=0, le=1)

    # Vault defaults and rebalance
    default_vault_tvl_usd: float = Field(
        default=10_000_000.0,
        ge=0,
        description="Vault value assumed before any on-chain snapshot arrives"
    )
    rebalance_apy_threshold: float = Field(
        default=1.0,
        ge=0,
        description="Model vs realized APY gap (percentage points) that signals a rebalance"
    )
    min_rebalance_delta_usd: float = Field(default=1_000.0, ge=0)

    # Query defaults
    default_top_strategies_limit: int = Field(default=10, ge=1)
    recommendation_candidates: int = Field(default=5, ge=1)
    default_recommendation_tvl_usd: float = Field(default=1_000_000.0, gt=0)

    # Observability
    enable_api_metrics: bool = Field(default=True)
    enable_cache_metrics: bool = Field(default=True)
    stale_data_threshold_minutes: int = Field(default=30, ge=1)

    @model_validator(mode="after")
    def _check_group_split(self) -> "Settings":
        total = self.preferred_target_weight + self.other_target_weight
        if abs(total - 1.0) > 1e-9:
            raise ValueError(
                "preferred_target_weight + other_target_weight must equal 1.0, "
                f"got {total}"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
