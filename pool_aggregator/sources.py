from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from pool_aggregator.clients.defillama import fetch_llama_pools
from pool_aggregator.clients.subgraph import fetch_subgraph_pools
from pool_aggregator.config import Settings
from pool_aggregator.http import HttpClient

logger = logging.getLogger(__name__)

SourceKind = Literal["graphql", "rest"]

HOSTED = "https://api.thegraph.com/subgraphs/name"

# (dex, version, chain, default endpoint, min TVL floor in USD)
SUBGRAPH_ENDPOINTS: List[Tuple[str, str, str, str, float]] = [
    ("pancakeswap", "V3", "bsc", f"{HOSTED}/pancakeswap/exchange-v3-bsc", 50_000),
    ("pancakeswap", "V3", "ethereum", f"{HOSTED}/pancakeswap/exchange-v3-eth", 50_000),
    ("pancakeswap", "V2", "bsc", f"{HOSTED}/pancakeswap/exchange-v2", 50_000),
    ("uniswap", "V3", "ethereum", f"{HOSTED}/uniswap/uniswap-v3", 100_000),
    ("uniswap", "V3", "arbitrum", f"{HOSTED}/ianlapham/uniswap-arbitrum-one", 100_000),
    ("uniswap", "V3", "polygon", f"{HOSTED}/ianlapham/uniswap-v3-polygon", 100_000),
    ("uniswap", "V2", "ethereum", f"{HOSTED}/uniswap/uniswap-v2", 100_000),
    ("sushiswap", "V2", "ethereum", f"{HOSTED}/sushiswap/exchange", 100_000),
    ("sushiswap", "V2", "polygon", f"{HOSTED}/sushiswap/matic-exchange", 100_000),
]


@dataclass(frozen=True)
class SourceDescriptor:
    name: str
    kind: SourceKind
    url: str
    timeout: float
    deadline: float
    min_tvl_usd: float = 0.0
    dex: Optional[str] = None
    version: Optional[str] = None
    chain: Optional[str] = None


class SourceError(Exception):
    """One upstream call failed. Carried as a value, never raised past the fan-out."""

    def __init__(self, source: str, cause: BaseException):
        self.source = source
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"{source}: {detail}")


@dataclass
class SourceResult:
    descriptor: SourceDescriptor
    records: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[SourceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def subgraph_key(dex: str, version: str, chain: str) -> str:
    return f"{dex}:{version.lower()}:{chain}"


def build_registry(settings: Settings) -> List[SourceDescriptor]:
    """All known subgraph sources, with URL overrides and gateway ids applied."""
    out: List[SourceDescriptor] = []
    for dex, version, chain, default_url, floor in SUBGRAPH_ENDPOINTS:
        key = subgraph_key(dex, version, chain)
        url = settings.SUBGRAPH_URLS.get(key) or settings.subgraph_gateway_url(key) or default_url
        out.append(
            SourceDescriptor(
                name=f"subgraph:{key}",
                kind="graphql",
                url=url,
                timeout=settings.GRAPHQL_TIMEOUT_SECONDS,
                deadline=settings.GRAPHQL_DEADLINE_SECONDS,
                min_tvl_usd=floor,
                dex=dex,
                version=version,
                chain=chain,
            )
        )
    return out


def llama_descriptor(settings: Settings) -> SourceDescriptor:
    return SourceDescriptor(
        name="defillama",
        kind="rest",
        url=settings.DEFILLAMA_POOLS_URL,
        timeout=settings.REST_TIMEOUT_SECONDS,
        deadline=settings.REST_TIMEOUT_SECONDS,
        min_tvl_usd=settings.DEFILLAMA_MIN_TVL_USD,
    )


def select_sources(registry: List[SourceDescriptor], dex: str, chain: Optional[str] = None) -> List[SourceDescriptor]:
    selected = [d for d in registry if dex == "all" or d.dex == dex]
    if chain and chain != "all":
        selected = [d for d in selected if d.chain == chain]
    return selected


async def _fetch_records(http: HttpClient, descriptor: SourceDescriptor, settings: Settings) -> List[Dict[str, Any]]:
    if descriptor.kind == "graphql":
        return await fetch_subgraph_pools(
            http,
            descriptor.url,
            descriptor.version or "V2",
            min_tvl_usd=descriptor.min_tvl_usd,
            first=settings.GRAPHQL_PAGE_SIZE,
            attempts=settings.GRAPHQL_MAX_ATTEMPTS,
            backoff=settings.GRAPHQL_BACKOFF_SECONDS,
            timeout=descriptor.timeout,
        )
    return await fetch_llama_pools(http, descriptor.url, timeout=descriptor.timeout)


async def fetch_source(http: HttpClient, descriptor: SourceDescriptor, settings: Settings) -> SourceResult:
    """Fetch one source within its deadline; any failure becomes ``SourceResult.error``."""
    try:
        records = await asyncio.wait_for(_fetch_records(http, descriptor, settings), timeout=descriptor.deadline)
    except Exception as e:
        err = SourceError(descriptor.name, e)
        logger.warning(f"Source fetch failed: {err}")
        return SourceResult(descriptor, error=err)
    logger.debug(f"Source {descriptor.name} returned {len(records)} records")
    return SourceResult(descriptor, records)
