from __future__ import annotations

import math

import pytest

from pool_aggregator.models import PoolRecord
from pool_aggregator.services.metrics import compute_metrics, current_apr, fee_apr, reconciled_apr


def _record(**overrides) -> PoolRecord:
    base = dict(
        id="uniswap:ethereum:0x1",
        pair="WETH/USDC",
        dex="uniswap",
        version="V3",
        chain="ethereum",
        token0="WETH",
        token1="USDC",
        tvl_usd=1_000_000.0,
        volume_24h_usd=500_000.0,
        fee_tier=0.003,
        source_tag="subgraph:uniswap:v3:ethereum",
    )
    base.update(overrides)
    return PoolRecord(**base)


def test_fee_metrics_from_volume_and_fee_tier():
    stats = compute_metrics(_record())

    assert stats.fees_24h_usd == pytest.approx(1_500.0)
    assert stats.fee_apr == pytest.approx(54.75)
    assert stats.apr == pytest.approx(54.75)
    assert stats.total_apr == pytest.approx(54.75)


def test_provider_apy_takes_precedence_when_positive():
    stats = compute_metrics(_record(apy=12.5, apy_reward=4.0))

    assert stats.fee_apr == pytest.approx(54.75)
    assert stats.apr == 12.5
    assert stats.total_apr == pytest.approx(16.5)


def test_zero_provider_apy_falls_back_to_fee_apr():
    assert reconciled_apr(0.0, 7.0) == 7.0
    assert reconciled_apr(-3.0, 7.0) == 7.0
    assert reconciled_apr(float("nan"), 7.0) == 7.0


def test_zero_tvl_never_divides():
    assert fee_apr(1_000.0, 0.0) == 0.0
    stats = compute_metrics(_record(tvl_usd=0.0))
    assert stats.fee_apr == 0.0
    assert stats.apr == 0.0
    assert math.isfinite(stats.total_apr)


def test_fee_apr_is_finite_and_non_negative():
    assert fee_apr(float("inf"), 1.0) == 0.0
    assert fee_apr(-50.0, 1_000.0) == 0.0
    assert fee_apr(1e300, 1e-10) == 0.0


def test_current_apr_matches_compute_metrics():
    record = _record(apy=3.0)
    assert current_apr(record) == compute_metrics(record).apr
    record = _record(volume_24h_usd=0.0)
    assert current_apr(record) == 0.0


def test_compute_metrics_is_deterministic():
    record = _record(apy_reward=1.25)
    assert compute_metrics(record) == compute_metrics(record)
