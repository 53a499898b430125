from __future__ import annotations

import random
from typing import Dict, List, Optional, Tuple

from pool_aggregator.models import PoolRecord
from pool_aggregator.services.normalizer import fee_tier_for

SYNTHETIC_TAG = "synthetic"

SAMPLE_PAIRS: Dict[str, List[Tuple[str, str]]] = {
    "pancakeswap": [("CAKE", "WBNB"), ("WBNB", "BUSD"), ("ETH", "WBNB"), ("BTCB", "WBNB"), ("USDT", "WBNB"), ("USDT", "BUSD")],
    "uniswap": [("WETH", "USDC"), ("WBTC", "WETH"), ("WETH", "USDT"), ("USDC", "USDT"), ("DAI", "USDC"), ("UNI", "WETH")],
    "sushiswap": [("WETH", "USDC"), ("SUSHI", "WETH"), ("WETH", "DAI"), ("WBTC", "WETH")],
}
GENERIC_PAIRS: List[Tuple[str, str]] = [("WETH", "USDC"), ("WBTC", "WETH"), ("USDC", "USDT")]
HOME_CHAINS: Dict[str, str] = {"pancakeswap": "bsc"}


def generate_sample_pools(dex: str, chain: Optional[str], count: int, rng: random.Random) -> List[PoolRecord]:
    """Placeholder pools with a fixed layout and random TVL/volume, tagged ``synthetic``."""
    dexes = sorted(SAMPLE_PAIRS) if dex == "all" else [dex]
    out: List[PoolRecord] = []
    for i in range(count):
        name = dexes[i % len(dexes)]
        pairs = SAMPLE_PAIRS.get(name, GENERIC_PAIRS)
        token0, token1 = pairs[(i // len(dexes)) % len(pairs)]
        version = "V3" if i % 2 == 0 else "V2"
        pool_chain = chain if chain and chain != "all" else HOME_CHAINS.get(name, "ethereum")
        tvl = round(rng.uniform(100_000, 50_000_000), 2)
        out.append(
            PoolRecord(
                id=f"{SYNTHETIC_TAG}:{name}:{pool_chain}:{i}",
                pair=f"{token0}/{token1}",
                dex=name,
                version=version,
                chain=pool_chain,
                token0=token0,
                token1=token1,
                tvl_usd=tvl,
                volume_24h_usd=round(tvl * rng.uniform(0.01, 0.5), 2),
                volume_source="reported",
                fee_tier=fee_tier_for(name, version),
                source_tag=SYNTHETIC_TAG,
            )
        )
    return out
