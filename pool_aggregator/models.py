from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field


Version = Literal["V1", "V2", "V3"]
VolumeSource = Literal["reported", "weekly_average", "tvl_estimate"]
ResultSource = Literal["primary", "fallback", "synthetic"]


class PoolRecord(BaseModel):
    id: str = Field(..., description="Unique within a source (dex:chain:address, or synthesized from the pair)")
    pair: str = Field(..., description="TOKEN0/TOKEN1")
    dex: str
    version: Version = "V2"
    chain: str
    token0: str
    token1: str = ""
    tvl_usd: float = Field(..., ge=0.0)
    volume_24h_usd: float = Field(default=0.0, ge=0.0)
    volume_source: VolumeSource = Field(default="reported", description="How volume_24h_usd was obtained")
    fee_tier: float = Field(..., ge=0.0, description="Fee as a fraction of trade value, e.g. 0.003")
    apy: float = Field(default=0.0, description="Provider-reported total APY in %")
    apy_base: float = 0.0
    apy_reward: float = 0.0
    source_tag: str = Field(..., description="Upstream provider that produced the record")


class PoolStats(PoolRecord):
    fees_24h_usd: float
    fee_apr: float = Field(..., description="Annualized fee return in %")
    apr: float = Field(..., description="Provider APY when positive, else fee_apr")
    total_apr: float


class SourceFailure(BaseModel):
    source: str
    error: str


class AggregationResult(BaseModel):
    dex: str
    chain: Optional[str] = None
    source: ResultSource
    cached: bool = False
    timestamp: str
    pools: List[PoolStats] = Field(default_factory=list)
    errors: List[SourceFailure] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.pools)

    @property
    def cacheable(self) -> bool:
        # Synthetic data stands in for an outage and must not pin it for a TTL
        return bool(self.pools) and self.source != "synthetic"


class PoolsResponse(BaseModel):
    success: bool = True
    data: List[PoolStats]
    count: int
    cached: bool
    source: ResultSource
    timestamp: str
    dex: str
    chain: Optional[str] = None
    errors: List[SourceFailure] = Field(default_factory=list)


class CacheStats(BaseModel):
    keys: int
    hits: int
    misses: int


class HealthResponse(BaseModel):
    status: str = "healthy"
    cache: CacheStats
    timestamp: str


class ClearCacheResponse(BaseModel):
    success: bool = True
    message: str = "Cache cleared"
    cleared: int
