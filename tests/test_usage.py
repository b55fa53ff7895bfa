"""Tests for usage estimation."""

import pytest

from docchat.config import UsagePricing
from docchat.usage import InMemoryUsageRecorder, build_usage_record, estimate_cost, estimate_tokens


def test_estimate_tokens_rounds_up():
    assert estimate_tokens(0) == 0
    assert estimate_tokens(1) == 1
    assert estimate_tokens(8) == 2
    assert estimate_tokens(9) == 3


def test_estimate_cost():
    assert estimate_cost(1000) == pytest.approx(0.000605)
    assert estimate_cost(1000, pricing=UsagePricing(infrastructure_overhead=1.0)) == pytest.approx(0.00055)


def test_build_usage_record():
    record = build_usage_record("user-1", "s1", "req-1", 400, 40, 80)

    assert record.prompt_tokens == 110
    assert record.completion_tokens == 20
    assert record.total_tokens == 130
    assert record.estimated_cost_usd == estimate_cost(130)


@pytest.mark.asyncio
async def test_recorder_totals_by_user():
    recorder = InMemoryUsageRecorder()
    await recorder.record(build_usage_record("user-1", "s1", "r1", 400, 40, 80))
    await recorder.record(build_usage_record("user-1", "s1", "r2", 400, 40, 80))
    await recorder.record(build_usage_record("user-2", "s2", "r3", 400, 40, 80))

    assert recorder.total_cost("user-1") == pytest.approx(2 * estimate_cost(130))
