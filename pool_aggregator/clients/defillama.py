from __future__ import annotations

import logging
from typing import Any, Dict, List

from pool_aggregator.http import HttpClient

logger = logging.getLogger(__name__)


async def fetch_llama_pools(http: HttpClient, url: str, timeout: float | None = None) -> List[Dict[str, Any]]:
    """Fetch the full, unfiltered DefiLlama Yields listing.

    Docs: https://yields.llama.fi/pools

    The listing holds every pool on every chain (10k+ rows), so it is fetched
    once without retries and filtered by the caller.
    """
    resp = await http.get(url, timeout=timeout)
    data = resp.json()
    pools = data.get("data") if isinstance(data, dict) else None
    if not isinstance(pools, list):
        raise ValueError(f"unexpected DefiLlama payload from {url}")
    logger.debug(f"DefiLlama returned {len(pools)} pools")
    return pools
