from __future__ import annotations

import math

from pool_aggregator.models import PoolRecord, PoolStats

DAYS_PER_YEAR = 365


def _finite(value: float) -> float:
    return value if math.isfinite(value) and value > 0 else 0.0


def fee_apr(fees_24h_usd: float, tvl_usd: float) -> float:
    """Annualized fee return in %; 0 when there is no TVL to divide by."""
    if tvl_usd <= 0:
        return 0.0
    return _finite(fees_24h_usd * DAYS_PER_YEAR / tvl_usd * 100.0)


def reconciled_apr(provider_apy: float, computed_fee_apr: float) -> float:
    provider_apy = _finite(provider_apy)
    return provider_apy if provider_apy > 0 else computed_fee_apr


def compute_metrics(record: PoolRecord) -> PoolStats:
    fees = _finite(record.volume_24h_usd) * _finite(record.fee_tier)
    computed = fee_apr(fees, record.tvl_usd)
    apr = reconciled_apr(record.apy, computed)
    return PoolStats(
        **record.model_dump(),
        fees_24h_usd=fees,
        fee_apr=computed,
        apr=apr,
        total_apr=apr + _finite(record.apy_reward),
    )


def current_apr(record: PoolRecord) -> float:
    """The ``apr`` the record would get today, without building ``PoolStats``."""
    fees = _finite(record.volume_24h_usd) * _finite(record.fee_tier)
    return reconciled_apr(record.apy, fee_apr(fees, record.tvl_usd))
