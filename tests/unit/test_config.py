"""Tests for settings validation and the static registry."""

import pytest
from pydantic import ValidationError

from vault_yields.core.config import Settings
from vault_yields.core.registry import (
    CHAIN_CONFIGS,
    VAULTS,
    AllocationPolicy,
    is_preferred_protocol,
)


class TestSettings:

    def test_defaults(self):
        settings = Settings()
        assert settings.min_tvl_usd == 200_000
        assert settings.min_mean_apy_30d == 5.0
        assert settings.platform_fee_bps == 10
        assert settings.preferred_strategy_count == 10
        assert settings.coverage_target == 0.9
        assert settings.vault_yield_ttl_seconds == 60
        assert settings.pool_refresh_minutes == 10
        assert settings.broadcast_interval_seconds == 30

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MIN_TVL_USD", "500000")
        assert Settings().min_tvl_usd == 500_000

    def test_group_split_must_sum_to_one(self):
        Settings(preferred_target_weight=0.8, other_target_weight=0.2)
        with pytest.raises(ValidationError):
            Settings(preferred_target_weight=0.8, other_target_weight=0.1)

    @pytest.mark.parametrize("field,value", [
        ("coverage_target", 0.0),
        ("coverage_target", 1.5),
        ("preferred_strategy_count", -1),
        ("feed_timeout_seconds", 0),
    ])
    def test_rejects_invalid(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})


class TestRegistry:

    def test_every_vault_chain_is_configured(self):
        for vault in VAULTS.values():
            assert vault.chain_key in CHAIN_CONFIGS
            assert all(c in CHAIN_CONFIGS for c in vault.chain_scope)

    def test_one_vault_per_chain(self):
        chain_keys = [v.chain_key for v in VAULTS.values()]
        assert len(set(chain_keys)) == len(VAULTS)
        assert set(chain_keys) == set(CHAIN_CONFIGS)

    def test_policies(self):
        assert VAULTS["ethereum-usdt"].policy == AllocationPolicy.PRIMARY
        assert VAULTS["solana-usdc"].policy == AllocationPolicy.COVERAGE
        assert VAULTS["solana-usdc"].chain_scope == ("solana",)

    @pytest.mark.parametrize("protocol,expected", [
        ("aave-v3", True),
        ("curve-dex", True),
        ("Pendle", True),
        ("morpho-blue", False),
        ("aave-v2", False),
    ])
    def test_preferred_protocols(self, protocol, expected):
        assert is_preferred_protocol(protocol) is expected
