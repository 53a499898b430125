from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from pool_aggregator.models import PoolRecord, Version, VolumeSource
from pool_aggregator.sources import SourceDescriptor

logger = logging.getLogger(__name__)


# First match wins; order matters where one pattern contains another.
DEX_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("pancake", "pancakeswap"),
    ("uniswap", "uniswap"),
    ("sushi", "sushiswap"),
    ("curve", "curve"),
    ("balancer", "balancer"),
    ("aerodrome", "aerodrome"),
    ("velodrome", "velodrome"),
    ("camelot", "camelot"),
    ("trader-joe", "traderjoe"),
    ("traderjoe", "traderjoe"),
    ("joe-", "traderjoe"),
    ("quickswap", "quickswap"),
    ("biswap", "biswap"),
    ("thena", "thena"),
    ("kyber", "kyberswap"),
    ("orca", "orca"),
    ("raydium", "raydium"),
    ("maverick", "maverick"),
)

VERSION_PATTERNS: Tuple[Tuple[str, Version], ...] = (
    ("v3", "V3"),
    ("v2", "V2"),
    ("v1", "V1"),
)

CHAIN_ALIASES: Dict[str, str] = {
    "bsc": "bsc",
    "binance": "bsc",
    "bnb": "bsc",
    "bnb chain": "bsc",
    "bnb smart chain": "bsc",
    "ethereum": "ethereum",
    "eth": "ethereum",
    "mainnet": "ethereum",
    "arbitrum": "arbitrum",
    "arbitrum one": "arbitrum",
    "arb": "arbitrum",
    "polygon": "polygon",
    "matic": "polygon",
    "optimism": "optimism",
    "op mainnet": "optimism",
    "base": "base",
    "avalanche": "avalanche",
    "avax": "avalanche",
    "fantom": "fantom",
    "solana": "solana",
}

# (dex, version) first, then (dex, None)
FEE_TIERS: Dict[Tuple[str, Optional[str]], float] = {
    ("pancakeswap", "V2"): 0.0025,
    ("pancakeswap", "V3"): 0.0025,
    ("uniswap", "V1"): 0.003,
    ("uniswap", "V2"): 0.003,
    ("uniswap", "V3"): 0.003,
    ("sushiswap", None): 0.003,
    ("curve", None): 0.0004,
    ("balancer", None): 0.002,
    ("biswap", None): 0.002,
    ("quickswap", None): 0.003,
    ("traderjoe", None): 0.003,
    ("camelot", None): 0.003,
    ("aerodrome", None): 0.003,
    ("velodrome", None): 0.003,
    ("thena", None): 0.002,
    ("orca", None): 0.003,
    ("raydium", None): 0.0025,
}
DEFAULT_FEE_TIER = 0.003

_SYMBOL_DELIMITERS = re.compile(r"[-/]")
_VERSION_SUFFIX = re.compile(r"[-_ ]?v\d+$")


class RecordRejected(ValueError):
    """A raw record is unusable (no TVL, no symbol, degenerate pair ...)."""


def canonical_dex(project: Optional[str]) -> str:
    name = str(project or "").strip().lower()
    if not name:
        return "unknown"
    for pattern, canonical in DEX_ALIASES:
        if pattern in name:
            return canonical
    return _VERSION_SUFFIX.sub("", name).replace(" ", "-") or name


def infer_version(project: Optional[str]) -> Version:
    name = str(project or "").lower()
    for pattern, version in VERSION_PATTERNS:
        if pattern in name:
            return version
    return "V2"


def canonical_chain(chain: Optional[str]) -> str:
    name = str(chain or "").strip().lower()
    return CHAIN_ALIASES.get(name, name)


def fee_tier_for(dex: str, version: Optional[str]) -> float:
    if (dex, version) in FEE_TIERS:
        return FEE_TIERS[(dex, version)]
    return FEE_TIERS.get((dex, None), DEFAULT_FEE_TIER)


def split_symbol(symbol: Optional[str]) -> List[str]:
    """``"WETH-USDT"`` and ``"WETH/USDT"`` -> ``["WETH", "USDT"]``; no delimiter -> one part."""
    return [part.strip() for part in _SYMBOL_DELIMITERS.split(str(symbol or "")) if part.strip()]


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(out):
        return None
    return out


def _first(rows: Any) -> Dict[str, Any]:
    if isinstance(rows, list) and rows and isinstance(rows[0], dict):
        return rows[0]
    return {}


def _symbol(token: Any) -> str:
    if isinstance(token, dict):
        return str(token.get("symbol") or "").strip()
    return ""


class Normalizer:
    """Turns provider-shaped rows into canonical ``PoolRecord``s.

    ``volume_tvl_ratio`` is the share of TVL assumed to trade per day when a
    source reports neither a 24h nor a 7d volume.
    """

    def __init__(self, volume_tvl_ratio: float = 0.05):
        self.volume_tvl_ratio = volume_tvl_ratio

    def normalize(self, raw: Dict[str, Any], descriptor: SourceDescriptor) -> PoolRecord:
        if not isinstance(raw, dict):
            raise RecordRejected("record is not an object")
        if descriptor.kind == "rest":
            return self.from_llama(raw, descriptor)
        if descriptor.version == "V3":
            return self.from_v3_pool(raw, descriptor)
        return self.from_v2_pair(raw, descriptor)

    def normalize_batch(self, rows: List[Dict[str, Any]], descriptor: SourceDescriptor) -> List[PoolRecord]:
        out: List[PoolRecord] = []
        rejected = 0
        for raw in rows:
            try:
                out.append(self.normalize(raw, descriptor))
            except RecordRejected as e:
                rejected += 1
                logger.debug(f"Dropped record from {descriptor.name}: {e}")
        if rejected:
            logger.debug(f"{descriptor.name}: kept {len(out)}, dropped {rejected}")
        return out

    def estimate_volume(
        self, reported: Optional[float], weekly: Optional[float], tvl: float
    ) -> Tuple[float, VolumeSource]:
        if reported is not None and reported >= 0:
            return reported, "reported"
        if weekly is not None and weekly >= 0:
            return weekly / 7.0, "weekly_average"
        return tvl * self.volume_tvl_ratio, "tvl_estimate"

    def from_v3_pool(self, raw: Dict[str, Any], descriptor: SourceDescriptor) -> PoolRecord:
        day = _first(raw.get("poolDayData"))
        fee_raw = to_float(raw.get("feeTier"))
        return self._build(
            descriptor,
            address=raw.get("id"),
            parts=[_symbol(raw.get("token0")), _symbol(raw.get("token1"))],
            dex=descriptor.dex or "unknown",
            version="V3",
            chain=descriptor.chain or "ethereum",
            tvl=to_float(raw.get("totalValueLockedUSD")),
            reported_volume=to_float(day.get("volumeUSD")),
            fee_tier=fee_raw / 1_000_000 if fee_raw and fee_raw > 0 else None,
        )

    def from_v2_pair(self, raw: Dict[str, Any], descriptor: SourceDescriptor) -> PoolRecord:
        day = _first(raw.get("pairDayDatas"))
        return self._build(
            descriptor,
            address=raw.get("id"),
            parts=[_symbol(raw.get("token0")), _symbol(raw.get("token1"))],
            dex=descriptor.dex or "unknown",
            version=descriptor.version or "V2",
            chain=descriptor.chain or "ethereum",
            tvl=to_float(raw.get("reserveUSD")),
            reported_volume=to_float(day.get("dailyVolumeUSD")),
        )

    def from_llama(self, raw: Dict[str, Any], descriptor: SourceDescriptor) -> PoolRecord:
        project = raw.get("project")
        return self._build(
            descriptor,
            address=raw.get("pool"),
            parts=split_symbol(raw.get("symbol")),
            dex=canonical_dex(project),
            version=infer_version(project),
            chain=canonical_chain(raw.get("chain") or "ethereum"),
            tvl=to_float(raw.get("tvlUsd")),
            reported_volume=to_float(raw.get("volumeUsd1d")),
            weekly_volume=to_float(raw.get("volumeUsd7d")),
            apy=to_float(raw.get("apy")),
            apy_base=to_float(raw.get("apyBase")),
            apy_reward=to_float(raw.get("apyReward")),
        )

    def _build(
        self,
        descriptor: SourceDescriptor,
        *,
        address: Any,
        parts: List[str],
        dex: str,
        version: Version,
        chain: str,
        tvl: Optional[float],
        reported_volume: Optional[float] = None,
        weekly_volume: Optional[float] = None,
        fee_tier: Optional[float] = None,
        apy: Optional[float] = None,
        apy_base: Optional[float] = None,
        apy_reward: Optional[float] = None,
    ) -> PoolRecord:
        if tvl is None or tvl <= 0:
            raise RecordRejected("missing or non-positive TVL")
        if tvl < descriptor.min_tvl_usd:
            raise RecordRejected(f"TVL {tvl:.0f} below floor {descriptor.min_tvl_usd:.0f}")
        parts = [p for p in parts if p]
        if not parts:
            raise RecordRejected("no usable symbol")
        token0 = parts[0]
        token1 = parts[1] if len(parts) > 1 else ""
        if token1 and token0.upper() == token1.upper():
            raise RecordRejected(f"degenerate pair {token0}/{token1}")

        volume, volume_source = self.estimate_volume(reported_volume, weekly_volume, tvl)
        pool_id = f"{dex}:{chain}:{address}" if address else f"{dex}:{chain}:{'-'.join(parts)}"
        return PoolRecord(
            id=pool_id,
            pair="/".join(parts),
            dex=dex,
            version=version,
            chain=chain,
            token0=token0,
            token1=token1,
            tvl_usd=tvl,
            volume_24h_usd=volume,
            volume_source=volume_source,
            fee_tier=fee_tier if fee_tier is not None else fee_tier_for(dex, version),
            apy=max(apy or 0.0, 0.0),
            apy_base=max(apy_base or 0.0, 0.0),
            apy_reward=max(apy_reward or 0.0, 0.0),
            source_tag=descriptor.name,
        )
