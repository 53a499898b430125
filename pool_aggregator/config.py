from __future__ import annotations

from functools import lru_cache
from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Runtime
    ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # Cache / result shaping
    CACHE_TTL_SECONDS: int = Field(default=300, ge=1)
    MAX_POOLS: int = Field(default=500, ge=1)
    WARMUP_ON_STARTUP: bool = Field(default=False)

    # Share of TVL assumed to trade per day when a source reports no volume
    VOLUME_TVL_RATIO: float = Field(default=0.05, ge=0.0)

    # Subgraph (GraphQL) sources
    # Per-attempt timeout; all attempts plus backoffs fit inside the deadline
    GRAPHQL_TIMEOUT_SECONDS: float = Field(default=9.0, gt=0)
    GRAPHQL_DEADLINE_SECONDS: float = Field(default=30.0, gt=0)
    GRAPHQL_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    GRAPHQL_BACKOFF_SECONDS: float = Field(default=1.0, ge=0)
    GRAPHQL_PAGE_SIZE: int = Field(default=100, ge=1, le=1000)

    # The Graph gateway; keys look like "uniswap:v3:ethereum"
    THEGRAPH_API_KEY: str | None = None
    THEGRAPH_GATEWAY_BASE: str = Field(default="https://gateway.thegraph.com/api")
    SUBGRAPH_IDS: Dict[str, str] = Field(default_factory=dict)
    SUBGRAPH_URLS: Dict[str, str] = Field(default_factory=dict)

    # DefiLlama yields (fallback + enrichment)
    DEFILLAMA_POOLS_URL: str = Field(default="https://yields.llama.fi/pools")
    DEFILLAMA_MIN_TVL_USD: float = Field(default=10_000.0, ge=0)
    REST_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    ENABLE_ENRICHMENT: bool = Field(default=True)

    # Placeholder data served when every real source is down
    SYNTHETIC_POOL_COUNT: int = Field(default=20, ge=1)

    # Observability
    LOKI_URL: str | None = None

    def subgraph_gateway_url(self, key: str) -> str | None:
        sid = self.SUBGRAPH_IDS.get(key)
        if not (self.THEGRAPH_API_KEY and sid):
            return None
        return f"{self.THEGRAPH_GATEWAY_BASE.rstrip('/')}/{self.THEGRAPH_API_KEY}/subgraphs/id/{sid}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
