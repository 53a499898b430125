from __future__ import annotations

from typing import Any, Dict, List

import pytest

from pool_aggregator.config import Settings
from pool_aggregator.sources import SourceDescriptor


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        GRAPHQL_BACKOFF_SECONDS=0,
        GRAPHQL_TIMEOUT_SECONDS=1,
        GRAPHQL_DEADLINE_SECONDS=2,
        REST_TIMEOUT_SECONDS=2,
        MAX_POOLS=500,
        SYNTHETIC_POOL_COUNT=5,
    )


@pytest.fixture
def subgraph_descriptor():
    def _make(dex: str = "uniswap", version: str = "V3", chain: str = "ethereum", min_tvl_usd: float = 0.0) -> SourceDescriptor:
        key = f"{dex}:{version.lower()}:{chain}"
        return SourceDescriptor(
            name=f"subgraph:{key}",
            kind="graphql",
            url=f"https://subgraph.test/{key}",
            timeout=1,
            deadline=2,
            min_tvl_usd=min_tvl_usd,
            dex=dex,
            version=version,
            chain=chain,
        )

    return _make


@pytest.fixture
def llama_source() -> SourceDescriptor:
    return SourceDescriptor(
        name="defillama",
        kind="rest",
        url="https://llama.test/pools",
        timeout=2,
        deadline=2,
        min_tvl_usd=10_000,
    )


@pytest.fixture
def v3_row():
    def _make(address: str, token0: str, token1: str, tvl: float, volume: float | None = None, fee_tier: str = "3000") -> Dict[str, Any]:
        day: List[Dict[str, Any]] = [] if volume is None else [{"volumeUSD": str(volume), "feesUSD": "0", "tvlUSD": str(tvl)}]
        return {
            "id": address,
            "token0": {"symbol": token0},
            "token1": {"symbol": token1},
            "totalValueLockedUSD": str(tvl),
            "feeTier": fee_tier,
            "poolDayData": day,
        }

    return _make


@pytest.fixture
def llama_row():
    def _make(symbol: str, project: str, tvl: float, apy: float = 0.0, chain: str = "Ethereum", **extra: Any) -> Dict[str, Any]:
        row = {
            "pool": f"{project}-{chain}-{symbol}".lower(),
            "chain": chain,
            "project": project,
            "symbol": symbol,
            "tvlUsd": tvl,
            "apy": apy,
        }
        row.update(extra)
        return row

    return _make
