"""Tests for the metrics collector and trust pack."""

import pytest


class TestMetricsCollector:

    @pytest.mark.asyncio
    async def test_api_call_counters(self, metrics):
        await metrics.record_api_call("/pools", 120.0, success=True, status_code=200)
        await metrics.record_api_call("/pools", 80.0, success=False, status_code=429, error_message="slow down")
        await metrics.record_api_call("/pools", 10_000.0, success=False, error_message="deadline", timed_out=True)

        m = metrics.get_api_metrics()["/pools"]
        assert m["call_count"] == 3
        assert m["success_count"] == 1
        assert m["rate_limit_count"] == 1
        assert m["timeout_count"] == 1
        assert m["last_error"] == "deadline"

    @pytest.mark.asyncio
    async def test_cache_counters(self, metrics):
        await metrics.record_cache_hit("vault_yield")
        await metrics.record_cache_hit("vault_yield")
        await metrics.record_cache_miss("vault_yield")
        await metrics.record_stale_served("pools")

        cache = metrics.get_cache_metrics()
        assert cache["vault_yield"]["hit_rate"] == pytest.approx(2 / 3, abs=1e-4)
        assert cache["pools"]["stale_served_count"] == 1

    @pytest.mark.asyncio
    async def test_refresh_status(self, metrics):
        await metrics.record_refresh_success("defillama_pools", 1234)
        status = metrics.get_refresh_status()["defillama_pools"]
        assert status["record_count"] == 1234
        assert status["is_stale"] is False

    @pytest.mark.asyncio
    async def test_trust_pack_health(self, metrics):
        pack = metrics.get_trust_pack()
        assert pack["overall_health"]["status"] == "healthy"

        await metrics.record_refresh_failure("defillama_pools", "upstream down")
        await metrics.record_stale_served("pools")
        pack = metrics.get_trust_pack()

        assert pack["overall_health"]["status"] == "degraded"
        assert pack["recent_errors"] == []
        assert "defillama_pools" in pack["refresh"]

    @pytest.mark.asyncio
    async def test_reset(self, metrics):
        await metrics.record_cache_hit("pools")
        await metrics.reset()
        assert metrics.get_cache_metrics() == {}

    def test_singleton(self):
        from vault_yields.core.metrics import get_metrics

        assert get_metrics() is get_metrics()
