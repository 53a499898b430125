from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from pool_aggregator.config import Settings, get_settings
from pool_aggregator.http import HttpClient
from pool_aggregator.models import AggregationResult, PoolRecord, PoolStats, ResultSource, SourceFailure
from pool_aggregator.services.metrics import compute_metrics, current_apr
from pool_aggregator.services.normalizer import Normalizer
from pool_aggregator.services.synthetic import generate_sample_pools
from pool_aggregator.sources import (
    SourceDescriptor,
    SourceResult,
    build_registry,
    fetch_source,
    llama_descriptor,
    select_sources,
)

logger = logging.getLogger(__name__)

FetchFn = Callable[[HttpClient, SourceDescriptor, Settings], Awaitable[SourceResult]]


@dataclass
class StrategyOutcome:
    source: ResultSource
    pools: List[PoolRecord]


@dataclass
class _Run:
    """Per-call scratch state shared by the fallback strategies."""

    dex: str
    chain: Optional[str]
    results: List[SourceResult] = field(default_factory=list)
    llama: Optional[SourceResult] = None
    llama_records: Optional[List[PoolRecord]] = None


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def merge_records(records: List[PoolRecord]) -> List[PoolRecord]:
    """Deduplicate by id, keeping the record with the higher apr (first one on ties)."""
    merged: Dict[str, PoolRecord] = {}
    for rec in records:
        prev = merged.get(rec.id)
        if prev is None or current_apr(rec) > current_apr(prev):
            merged[rec.id] = rec
    return list(merged.values())


def enrich_records(pools: List[PoolRecord], enrichment: List[PoolRecord]) -> List[PoolRecord]:
    """Raise each pool's yield to the enrichment figure when that one is higher.

    Pools are matched on (pair, dex) first and (token0, token1, dex) second.
    """
    by_pair: Dict[Tuple[str, str], float] = {}
    by_tokens: Dict[Tuple[str, str, str], float] = {}
    for rec in enrichment:
        if rec.apy <= 0:
            continue
        k1 = (rec.pair.upper(), rec.dex)
        by_pair[k1] = max(by_pair.get(k1, 0.0), rec.apy)
        if rec.token1:
            k2 = (rec.token0.upper(), rec.token1.upper(), rec.dex)
            by_tokens[k2] = max(by_tokens.get(k2, 0.0), rec.apy)

    out: List[PoolRecord] = []
    matched = 0
    for pool in pools:
        best = by_pair.get((pool.pair.upper(), pool.dex))
        if best is None:
            best = by_tokens.get((pool.token0.upper(), pool.token1.upper(), pool.dex))
        if best is not None and best > current_apr(pool):
            pool = pool.model_copy(update={"apy": best})
            matched += 1
        out.append(pool)
    logger.debug(f"Enrichment raised apr on {matched}/{len(pools)} pools")
    return out


def rank(pools: List[PoolRecord], limit: int) -> List[PoolStats]:
    stats = [compute_metrics(p) for p in pools]
    # sorted() is stable, so equal aprs keep merge order
    stats = sorted(stats, key=lambda s: s.apr, reverse=True)
    return stats[:limit]


class Aggregator:
    def __init__(
        self,
        http: HttpClient,
        settings: Settings | None = None,
        *,
        registry: List[SourceDescriptor] | None = None,
        normalizer: Normalizer | None = None,
        fetch: FetchFn = fetch_source,
        rng: random.Random | None = None,
    ):
        self.http = http
        self.settings = settings or get_settings()
        self.registry = registry if registry is not None else build_registry(self.settings)
        self.llama = llama_descriptor(self.settings)
        self.normalizer = normalizer or Normalizer(self.settings.VOLUME_TVL_RATIO)
        self._fetch = fetch
        self._rng = rng or random.Random()

    async def aggregate(self, dex: str = "all", chain: Optional[str] = None) -> AggregationResult:
        """Primary fan-out, then DefiLlama alone, then synthetic data; first non-empty wins."""
        dex = (dex or "all").lower()
        chain = chain.lower() if chain and chain.lower() != "all" else None
        run = _Run(dex=dex, chain=chain)
        strategies = (self._primary, self._llama_only, self._synthetic)

        outcome = StrategyOutcome("synthetic", [])
        for strategy in strategies:
            try:
                outcome = await strategy(run)
            except Exception as e:
                logger.exception(f"Aggregation strategy {strategy.__name__} failed: {e}")
                continue
            if outcome.pools:
                break
            logger.warning(f"No usable pools from {outcome.source} strategy (dex={dex} chain={chain})")

        pools = rank(outcome.pools, self.settings.MAX_POOLS)
        errors = [SourceFailure(source=r.descriptor.name, error=str(r.error)) for r in run.results if not r.ok]
        logger.info(
            f"Aggregated {len(pools)} pools for dex={dex} chain={chain or 'all'} "
            f"via {outcome.source} ({len(errors)} failed sources)"
        )
        return AggregationResult(
            dex=dex,
            chain=chain,
            source=outcome.source,
            timestamp=_utcnow_iso(),
            pools=pools,
            errors=errors,
        )

    async def _primary(self, run: _Run) -> StrategyOutcome:
        selected = select_sources(self.registry, run.dex, run.chain)
        if not selected:
            return StrategyOutcome("primary", [])

        tasks = [self._fetch(self.http, d, self.settings) for d in selected]
        enrich = self.settings.ENABLE_ENRICHMENT
        if enrich:
            tasks.append(self._fetch(self.http, self.llama, self.settings))
        # gather keeps task order, so the merge below is independent of timing
        results = list(await asyncio.gather(*tasks))
        if enrich:
            run.llama = results.pop()
        run.results.extend(results)
        if run.llama is not None:
            run.results.append(run.llama)

        records: List[PoolRecord] = []
        for res in results:
            if res.ok:
                records.extend(self.normalizer.normalize_batch(res.records, res.descriptor))
        pools = merge_records(records)
        if pools and enrich:
            pools = enrich_records(pools, self._llama_records(run))
        return StrategyOutcome("primary", pools)

    async def _llama_only(self, run: _Run) -> StrategyOutcome:
        if run.llama is None:
            run.llama = await self._fetch(self.http, self.llama, self.settings)
            run.results.append(run.llama)
        pools = [
            r
            for r in self._llama_records(run)
            if (run.dex == "all" or r.dex == run.dex) and (run.chain is None or r.chain == run.chain)
        ]
        return StrategyOutcome("fallback", merge_records(pools))

    async def _synthetic(self, run: _Run) -> StrategyOutcome:
        logger.warning(f"All sources empty for dex={run.dex} chain={run.chain}; serving synthetic pools")
        pools = generate_sample_pools(run.dex, run.chain, self.settings.SYNTHETIC_POOL_COUNT, self._rng)
        return StrategyOutcome("synthetic", pools)

    def _llama_records(self, run: _Run) -> List[PoolRecord]:
        if run.llama_records is None:
            if run.llama is None or not run.llama.ok:
                run.llama_records = []
            else:
                run.llama_records = self.normalizer.normalize_batch(run.llama.records, run.llama.descriptor)
        return run.llama_records
