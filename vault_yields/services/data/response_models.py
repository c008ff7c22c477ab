"""Pydantic models for DefiLlama yields API records.

They don't capture every field - just the ones the engine uses. Optional
numeric fields arrive as null or go missing on thin pools; they default to 0.
Infinity and NaN are rejected, which drops the record.
"""

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _zero_if_missing(value: Any) -> Any:
    return 0.0 if value is None else value


class RawPool(BaseModel):
    """One upstream-reported pool. Never mutated after ingestion."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", allow_inf_nan=False,
    )

    pool: str = Field(min_length=1, description="DefiLlama pool id")
    chain: str
    project: str
    symbol: str
    tvl_usd: float = Field(default=0.0, alias="tvlUsd")
    apy_base: float = Field(default=0.0, alias="apyBase")
    apy_reward: float = Field(default=0.0, alias="apyReward")
    apy: float = 0.0
    apy_mean_30d: float = Field(default=0.0, alias="apyMean30d")
    stablecoin: bool = False

    @field_validator(
        "tvl_usd", "apy_base", "apy_reward", "apy", "apy_mean_30d",
        mode="before",
    )
    @classmethod
    def _default_numbers(cls, value: Any) -> Any:
        return _zero_if_missing(value)

    @field_validator("stablecoin", mode="before")
    @classmethod
    def _default_flag(cls, value: Any) -> Any:
        return False if value is None else value


class PoolsEnvelope(BaseModel):
    """Top-level ``{"status": ..., "data": [...]}`` response."""

    model_config = ConfigDict(extra="ignore")

    status: str = "success"
    data: List[Any] = Field(default_factory=list)
