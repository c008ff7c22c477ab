"""Integration tests for the vault yield API.

Runs the real FastAPI app and routes over ASGITransport. The upstream feed is
a DefiLlamaClient on an httpx.MockTransport, so nothing leaves the process.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from vault_yields.api.deps import get_broadcaster, get_feed, get_scheduler, get_yield_engine
from vault_yields.services.data import DefiLlamaClient
from vault_yields.services.delivery import YieldBroadcaster


@pytest.fixture
def upstream_records(make_record):
    return [
        make_record(pool="eth-aave", chain="Ethereum", project="aave-v3", symbol="USDT",
                    apy=6.0, apy_mean_30d=6.0),
        make_record(pool="eth-morpho", chain="Ethereum", project="morpho-blue", symbol="USDC",
                    apy=20.0, apy_mean_30d=20.0),
        make_record(pool="sol-kamino", chain="Solana", project="kamino-lend", symbol="USDC",
                    apy=8.0, apy_mean_30d=8.0),
        make_record(pool="eth-volatile", chain="Ethereum", project="uniswap-v3", symbol="USDC-WETH",
                    apy=30.0, apy_mean_30d=30.0),
    ]


@pytest.fixture
def test_app(upstream_records, settings, metrics, clock, engine_factory):
    """App with services attached to state and dependencies overridden."""
    from vault_yields.main import create_app

    async def upstream(request):
        body = json.dumps({"status": "success", "data": upstream_records})
        return httpx.Response(200, content=body, headers={"Content-Type": "application/json"})

    feed = DefiLlamaClient(
        settings=settings, metrics=metrics,
        transport=httpx.MockTransport(upstream), clock=clock,
    )
    engine = engine_factory(feed=feed)
    broadcaster = YieldBroadcaster(engine)

    app = create_app()
    app.state.feed = feed
    app.state.engine = engine
    app.state.broadcaster = broadcaster
    app.dependency_overrides[get_feed] = lambda: feed
    app.dependency_overrides[get_yield_engine] = lambda: engine
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_scheduler] = lambda: None
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac


class TestYieldEndpoints:

    @pytest.mark.asyncio
    async def test_list_yields(self, client):
        response = await client.get("/api/v1/yields")
        assert response.status_code == 200

        data = response.json()
        assert [v["vault_id"] for v in data] == [
            "ethereum-usdt", "solana-usdc", "bsc-usdt",
            "arbitrum-bridge", "base-bridge", "plasma-bridge",
        ]

    @pytest.mark.asyncio
    async def test_yield_by_chain(self, client):
        response = await client.get("/api/v1/yields/solana")
        assert response.status_code == 200

        data = response.json()
        assert data["vault_id"] == "solana-usdc"
        assert data["policy"] == "coverage"
        assert data["total_tvl"] == 10_000_000
        (strategy,) = data["strategies"]
        assert strategy["id"] == "sol-kamino"
        assert strategy["selected"] is True
        assert strategy["weight"] == pytest.approx(1.0)
        assert data["model_apy"] == pytest.approx(8.0 * 0.999)

    @pytest.mark.asyncio
    async def test_primary_vault_excludes_volatile_pair(self, client):
        data = (await client.get("/api/v1/yields/ethereum")).json()
        ids = {s["id"] for s in data["strategies"]}
        assert ids == {"eth-aave", "eth-morpho"}

    @pytest.mark.asyncio
    async def test_overflowing_upstream_apy_is_dropped(self, client, upstream_records, make_record):
        upstream_records.append(
            make_record(pool="sol-drift", chain="Solana", project="drift", symbol="USDC",
                        apy=8.0, apy_mean_30d=float("inf"))
        )

        data = (await client.get("/api/v1/yields/solana")).json()

        assert [s["id"] for s in data["strategies"]] == ["sol-kamino"]
        assert data["strategies"][0]["weight"] == pytest.approx(1.0)
        assert data["model_apy"] == pytest.approx(7.992)
        assert data["total_allocated"] == pytest.approx(10_000_000)

    @pytest.mark.asyncio
    async def test_unknown_chain_lists_valid_chains(self, client):
        response = await client.get("/api/v1/yields/polygon")
        assert response.status_code == 400

        body = response.json()
        assert "polygon" in body["error"]
        assert set(body["valid_chains"]) == {"ethereum", "solana", "bsc", "arbitrum", "base", "plasma"}


class TestStrategyEndpoints:

    @pytest.mark.asyncio
    async def test_top_strategies(self, client):
        response = await client.get("/api/v1/strategies/ethereum")
        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == ["eth-morpho", "eth-aave"]

    @pytest.mark.asyncio
    async def test_limit(self, client):
        response = await client.get("/api/v1/strategies/ethereum", params={"limit": 1})
        assert [s["id"] for s in response.json()] == ["eth-morpho"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 101, "ten"])
    async def test_invalid_limit(self, client, limit):
        response = await client.get("/api/v1/strategies/ethereum", params={"limit": limit})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_chain(self, client):
        response = await client.get("/api/v1/strategies/avalanche")
        assert response.status_code == 400


class TestRebalanceEndpoints:

    @pytest.mark.asyncio
    async def test_recommendations(self, client):
        response = await client.get("/api/v1/rebalance/ethereum", params={"tvl": 500_000})
        assert response.status_code == 200

        data = response.json()
        assert data["total_tvl"] == 500_000
        allocations = {r["strategy_id"]: r["target_allocation"] for r in data["recommendations"]}
        assert sum(allocations.values()) == pytest.approx(500_000)
        # Coverage weighting over 20% and 6%
        assert allocations["eth-morpho"] == pytest.approx(500_000 * 20 / 26)

    @pytest.mark.asyncio
    async def test_recommendations_default_tvl(self, client):
        data = (await client.get("/api/v1/rebalance/solana")).json()
        assert data["total_tvl"] == 1_000_000

    @pytest.mark.asyncio
    async def test_recommendations_reject_non_positive_tvl(self, client):
        response = await client.get("/api/v1/rebalance/ethereum", params={"tvl": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_signal(self, client):
        response = await client.get("/api/v1/rebalance/solana/signal")
        assert response.status_code == 200

        data = response.json()
        assert data["vault_id"] == "solana-usdc"
        assert data["realized_apy"] == 0.0
        assert data["rebalance_needed"] is True

        data = (await client.get("/api/v1/rebalance/solana/signal", params={"threshold": 50})).json()
        assert data["rebalance_needed"] is False

    @pytest.mark.asyncio
    async def test_deltas(self, client):
        response = await client.post(
            "/api/v1/rebalance/ethereum/deltas",
            json={"current_allocations": {"eth-aave": 4_000_000, "old-pool": 250}},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["vault_id"] == "ethereum-usdt"
        actions = {d["strategy_id"]: d["action"] for d in data["deltas"]}
        assert actions == {"eth-aave": "allocate", "old-pool": "hold"}
        assert data["total_to_allocate"] == pytest.approx(6_000_000)

    @pytest.mark.asyncio
    async def test_deltas_reject_negative(self, client):
        response = await client.post(
            "/api/v1/rebalance/ethereum/deltas",
            json={"current_allocations": {"eth-aave": -1}},
        )
        assert response.status_code == 422


class TestVaultEndpoints:

    @pytest.mark.asyncio
    async def test_snapshot_feeds_realized_apy(self, client, clock):
        first = await client.post(
            "/api/v1/vaults/solana-usdc/snapshot",
            json={"total_assets": 2_000_000_000_000, "total_shares": 2_000_000_000_000},
        )
        assert first.status_code == 200
        assert first.json()["price_per_share"] == 1.0
        assert first.json()["total_value"] == 2_000_000

        clock.advance(86_400)
        await client.post(
            "/api/v1/vaults/solana-usdc/snapshot",
            json={"total_assets": 2_000_020_000_000, "total_shares": 2_000_000_000_000},
        )

        data = (await client.get("/api/v1/yields/solana")).json()
        assert data["realized_apy"] == pytest.approx(0.365, rel=1e-4)
        assert data["total_tvl"] == pytest.approx(2_000_020)

    @pytest.mark.asyncio
    async def test_unknown_vault(self, client):
        response = await client.post(
            "/api/v1/vaults/nope/snapshot",
            json={"total_assets": 1, "total_shares": 1},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_negative_totals(self, client):
        response = await client.post(
            "/api/v1/vaults/solana-usdc/snapshot",
            json={"total_assets": -1, "total_shares": 1},
        )
        assert response.status_code == 422


class TestHealthEndpoints:

    @pytest.mark.asyncio
    async def test_health_before_first_fetch(self, client):
        data = (await client.get("/api/v1/health")).json()
        assert data["status"] == "unhealthy"
        assert data["feed"]["has_data"] is False
        assert data["scheduler"] is None

    @pytest.mark.asyncio
    async def test_health_after_fetch(self, client):
        await client.get("/api/v1/yields")
        data = (await client.get("/api/v1/health")).json()

        assert data["status"] == "healthy"
        assert data["feed"]["pool_count"] == 4
        assert data["data_stale"] is False

    @pytest.mark.asyncio
    async def test_trust_pack(self, client):
        response = await client.get("/api/v1/trust-pack")
        assert response.status_code == 200

        data = response.json()
        assert "overall_health" in data
        assert data["feature_flags"]["enable_api_metrics"] is True
        assert data["feed"]["has_data"] is False

    @pytest.mark.asyncio
    async def test_root(self, client):
        data = (await client.get("/")).json()
        assert data["health"] == "/api/v1/health"


class TestWebsocket:

    def test_receives_update_on_connect(self, test_app):
        client = TestClient(test_app)
        with client.websocket_connect("/api/v1/ws") as ws:
            message = ws.receive_json()

        assert message["type"] == "yield_update"
        assert len(message["data"]) == 6
        assert "timestamp" in message
