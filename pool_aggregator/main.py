from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Path, Query, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pool_aggregator.config import get_settings
from pool_aggregator.http import HttpClient
from pool_aggregator.models import ClearCacheResponse, HealthResponse, PoolsResponse
from pool_aggregator.services.aggregator import Aggregator
from pool_aggregator.services.cache import PoolCache, cache_key
from pool_aggregator.services.normalizer import canonical_chain, canonical_dex
from pool_aggregator.utils.logging import setup_logging
from pool_aggregator.utils.loki import loki_log

app = FastAPI(title="Liquidity Pool Aggregator", version="1.0.0")

logger = logging.getLogger(__name__)

SETTINGS = get_settings()

NAME_PATTERN = r"^[A-Za-z0-9 _-]+$"

AVAILABLE_ENDPOINTS = [
    "/api/health",
    "/api/pools/all",
    "/api/pools/pancakeswap",
    "/api/pools/uniswap",
    "/api/pools/sushiswap",
    "/api/pools/{dex}?chain={chain}",
    "/api/cache/clear (POST)",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_pool_cache(request: Request) -> PoolCache:
    return request.app.state.cache


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


@app.middleware("http")
async def _request_logger(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
    http = getattr(request.app.state, "http", None)
    if http is not None:
        await loki_log(
            http,
            SETTINGS,
            "INFO",
            "request",
            extra={
                "path": str(request.url.path),
                "method": request.method,
                "status": response.status_code,
                "elapsed_ms": round(elapsed_ms, 1),
                "client_ip": request.client.host if request.client else None,
            },
        )
    return response


@app.exception_handler(StarletteHTTPException)
async def _not_found(request: Request, exc: StarletteHTTPException):
    # Unknown paths and wrong methods both answer with the endpoint list
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content={"error": "Not Found", "availableEndpoints": AVAILABLE_ENDPOINTS},
        )
    return await http_exception_handler(request, exc)


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    app.state.http = HttpClient(timeout=settings.GRAPHQL_TIMEOUT_SECONDS)
    app.state.cache = PoolCache()
    app.state.aggregator = Aggregator(app.state.http, settings)
    logger.info(
        f"Pool aggregator ready: {len(app.state.aggregator.registry)} subgraph sources, "
        f"ttl={settings.CACHE_TTL_SECONDS}s, max_pools={settings.MAX_POOLS}"
    )

    if settings.WARMUP_ON_STARTUP:
        # Background task; startup does not wait for upstreams
        async def _warmup():
            try:
                result = await app.state.cache.get_or_compute(
                    cache_key("all", None),
                    settings.CACHE_TTL_SECONDS,
                    lambda: app.state.aggregator.aggregate("all", None),
                )
                logger.info(f"Warm-up done, pools: {result.count} via {result.source}")
            except Exception as e:
                logger.warning(f"Initial warm-up failed: {e}")

        app.state.warmup = asyncio.create_task(_warmup())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    warmup = getattr(app.state, "warmup", None)
    if warmup is not None and not warmup.done():
        warmup.cancel()
    if getattr(app.state, "http", None):
        await app.state.http.aclose()


@app.get("/api/pools/{dex}", response_model=PoolsResponse)
async def get_pools(
    dex: str = Path(..., pattern=NAME_PATTERN, max_length=64),
    chain: Optional[str] = Query(None, pattern=NAME_PATTERN, max_length=32),
    cache: PoolCache = Depends(get_pool_cache),
    aggregator: Aggregator = Depends(get_aggregator),
):
    dex_filter = "all" if dex.lower() == "all" else canonical_dex(dex)
    chain_filter = canonical_chain(chain) if chain and chain.lower() != "all" else None

    result = await cache.get_or_compute(
        cache_key(dex_filter, chain_filter),
        get_settings().CACHE_TTL_SECONDS,
        lambda: aggregator.aggregate(dex_filter, chain_filter),
    )
    return PoolsResponse(
        success=True,
        data=result.pools,
        count=result.count,
        cached=result.cached,
        source=result.source,
        timestamp=result.timestamp,
        dex=result.dex,
        chain=result.chain,
        errors=result.errors,
    )


@app.get("/api/health", response_model=HealthResponse)
async def health(cache: PoolCache = Depends(get_pool_cache)):
    return HealthResponse(cache=cache.stats(), timestamp=_utcnow_iso())


@app.post("/api/cache/clear", response_model=ClearCacheResponse)
async def clear_cache(cache: PoolCache = Depends(get_pool_cache)):
    cleared = cache.clear()
    return ClearCacheResponse(cleared=cleared)
