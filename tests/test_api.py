from __future__ import annotations

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from pool_aggregator.main import app, get_aggregator, get_pool_cache
from pool_aggregator.models import AggregationResult, PoolStats
from pool_aggregator.services.cache import PoolCache


def _stats(pool_id: str, pair: str, apr: float) -> PoolStats:
    token0, token1 = pair.split("/")
    return PoolStats(
        id=pool_id,
        pair=pair,
        dex="uniswap",
        version="V3",
        chain="ethereum",
        token0=token0,
        token1=token1,
        tvl_usd=2_000_000.0,
        volume_24h_usd=400_000.0,
        fee_tier=0.003,
        source_tag="subgraph:uniswap:v3:ethereum",
        fees_24h_usd=1_200.0,
        fee_apr=apr,
        apr=apr,
        total_apr=apr,
    )


class FakeAggregator:
    def __init__(self, pools: Optional[List[PoolStats]] = None):
        self.pools = pools if pools is not None else [
            _stats("uniswap:ethereum:0x2", "WBTC/WETH", 21.9),
            _stats("uniswap:ethereum:0x1", "WETH/USDC", 8.4),
        ]
        self.calls = []

    async def aggregate(self, dex: str = "all", chain: Optional[str] = None) -> AggregationResult:
        self.calls.append((dex, chain))
        return AggregationResult(
            dex=dex,
            chain=chain,
            source="primary",
            timestamp="2026-01-01T00:00:00+00:00",
            pools=list(self.pools),
        )


@pytest.fixture
def aggregator():
    return FakeAggregator()


@pytest.fixture
def client(aggregator):
    cache = PoolCache()
    app.dependency_overrides[get_pool_cache] = lambda: cache
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_pools_response_shape(client):
    r = client.get("/api/pools/uniswap")
    assert r.status_code == 200
    body = r.json()

    assert body["success"] is True
    assert body["count"] == 2
    assert body["cached"] is False
    assert body["source"] == "primary"
    assert body["dex"] == "uniswap"
    assert body["chain"] is None
    assert body["errors"] == []
    first = body["data"][0]
    assert first["pair"] == "WBTC/WETH"
    for field in ("id", "dex", "chain", "token0", "token1", "tvl_usd", "volume_24h_usd", "fee_tier", "fee_apr", "apr"):
        assert field in first


def test_second_request_is_served_from_cache(client, aggregator):
    first = client.get("/api/pools/uniswap").json()
    second = client.get("/api/pools/uniswap").json()

    assert aggregator.calls == [("uniswap", None)]
    assert second["cached"] is True
    first.pop("cached")
    second.pop("cached")
    assert first == second


def test_dex_and_chain_aliases_share_a_cache_entry(client, aggregator):
    client.get("/api/pools/PancakeSwap-v3", params={"chain": "Binance"})
    again = client.get("/api/pools/pancakeswap", params={"chain": "bsc"}).json()

    assert aggregator.calls == [("pancakeswap", "bsc")]
    assert again["cached"] is True


def test_chain_all_means_no_chain_filter(client, aggregator):
    client.get("/api/pools/ALL", params={"chain": "all"})
    assert aggregator.calls == [("all", None)]


def test_empty_result_is_returned_but_not_cached(client, aggregator):
    aggregator.pools = []

    first = client.get("/api/pools/curve").json()
    second = client.get("/api/pools/curve").json()

    assert first["count"] == 0
    assert first["data"] == []
    assert second["cached"] is False
    assert len(aggregator.calls) == 2


def test_health_reports_cache_stats(client):
    client.get("/api/pools/uniswap")
    client.get("/api/pools/uniswap")

    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["cache"] == {"keys": 1, "hits": 1, "misses": 1}
    assert body["timestamp"]


def test_clear_cache_forces_recompute(client, aggregator):
    client.get("/api/pools/uniswap")
    client.get("/api/pools/all")

    r = client.post("/api/cache/clear")
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Cache cleared", "cleared": 2}

    assert client.get("/api/pools/uniswap").json()["cached"] is False
    assert len(aggregator.calls) == 3


def test_unknown_path_lists_available_endpoints(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    body = r.json()
    assert body["error"] == "Not Found"
    assert "/api/health" in body["availableEndpoints"]
    assert "/api/cache/clear (POST)" in body["availableEndpoints"]


def test_wrong_method_gets_the_same_not_found_body(client):
    r = client.get("/api/cache/clear")
    assert r.status_code == 404
    assert "availableEndpoints" in r.json()


@pytest.mark.parametrize("path", ["/api/pools/un$wap", "/api/pools/uniswap?chain=" + "x" * 40])
def test_malformed_filters_are_rejected(client, aggregator, path):
    r = client.get(path)
    assert r.status_code == 422
    assert aggregator.calls == []


def test_cors_headers_present(client):
    r = client.get("/api/health", headers={"Origin": "https://app.example"})
    assert r.headers.get("access-control-allow-origin") == "*"
