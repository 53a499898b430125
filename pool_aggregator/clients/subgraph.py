from __future__ import annotations

import logging
from typing import Any, Dict, List

from pool_aggregator.clients.graphql import graphql_query
from pool_aggregator.http import HttpClient

logger = logging.getLogger(__name__)


V3_POOLS_QUERY = """
query TopPools($first: Int!, $minTvl: BigDecimal!) {
  pools(first: $first, orderBy: totalValueLockedUSD, orderDirection: desc, where: { totalValueLockedUSD_gt: $minTvl }) {
    id
    token0 { symbol }
    token1 { symbol }
    totalValueLockedUSD
    feeTier
    poolDayData(first: 1, orderBy: date, orderDirection: desc) {
      volumeUSD
      feesUSD
      tvlUSD
    }
  }
}
"""

V2_PAIRS_QUERY = """
query TopPairs($first: Int!, $minTvl: BigDecimal!) {
  pairs(first: $first, orderBy: reserveUSD, orderDirection: desc, where: { reserveUSD_gt: $minTvl }) {
    id
    token0 { symbol }
    token1 { symbol }
    reserveUSD
    pairDayDatas(first: 1, orderBy: date, orderDirection: desc) {
      dailyVolumeUSD
      reserveUSD
    }
  }
}
"""

# version -> (query, top-level collection in the response)
QUERIES = {
    "V3": (V3_POOLS_QUERY, "pools"),
    "V2": (V2_PAIRS_QUERY, "pairs"),
}


async def fetch_subgraph_pools(
    http: HttpClient,
    url: str,
    version: str,
    *,
    min_tvl_usd: float,
    first: int = 100,
    attempts: int = 3,
    backoff: float = 1.0,
    timeout: float | None = None,
) -> List[Dict[str, Any]]:
    """Fetch the top pools (V3) or pairs (V2) of one subgraph, largest TVL first.

    Returns the raw subgraph rows; field names differ per version and are
    left for the normalizer.
    """
    try:
        query, collection = QUERIES[version]
    except KeyError:
        raise ValueError(f"no subgraph query for version {version!r}") from None

    variables = {"first": first, "minTvl": str(int(min_tvl_usd))}
    data = await graphql_query(
        http, url, query, variables, attempts=attempts, backoff=backoff, timeout=timeout, expect=collection
    )
    rows = data[collection]
    logger.debug(f"Subgraph {url} returned {len(rows)} {collection}")
    return rows
