"""Tests for credit debits and the ledger."""

from __future__ import annotations

import asyncio

import pytest


async def test_debit_without_balance_row_fails(credit_meter) -> None:
    result = await credit_meter.debit("team-1", 5, "skill_debit")

    assert result.success is False
    assert result.balance == 0
    assert await credit_meter.list_transactions("team-1") == []


async def test_debit_and_ledger_stay_consistent(credit_meter) -> None:
    assert await credit_meter.add_credits("team-1", 100, "starter_credits") == 100

    result = await credit_meter.debit("team-1", 30, "heartbeat_debit", "LLM: llama-3.3-70b (iteration 1)")

    assert result.success is True
    assert result.balance == 70
    assert await credit_meter.get_balance("team-1") == 70
    assert await credit_meter.ledger_total("team-1") == 70

    latest = (await credit_meter.list_transactions("team-1"))[0]
    assert latest.amount == -30
    assert latest.balance_after == 70
    assert latest.type == "heartbeat_debit"


async def test_insufficient_balance_writes_nothing(credit_meter) -> None:
    await credit_meter.add_credits("team-1", 10)

    result = await credit_meter.debit("team-1", 11, "media_debit")

    assert result.success is False
    assert result.balance == 10
    assert len(await credit_meter.list_transactions("team-1")) == 1


async def test_concurrent_debits_never_overdraw(credit_meter) -> None:
    await credit_meter.add_credits("team-1", 50)

    results = await asyncio.gather(*(credit_meter.debit("team-1", 10, "skill_debit") for _ in range(8)))

    assert sum(r.success for r in results) == 5
    assert await credit_meter.get_balance("team-1") == 0
    assert await credit_meter.ledger_total("team-1") == 0
    assert credit_meter._locks == {}


async def test_non_positive_amounts_rejected(credit_meter) -> None:
    with pytest.raises(ValueError):
        await credit_meter.debit("team-1", 0, "skill_debit")
    with pytest.raises(ValueError):
        await credit_meter.add_credits("team-1", -5)


async def test_cost_catalog_defaults(credit_meter) -> None:
    assert await credit_meter.get_model_cost("kling-3.0") == 0
    assert await credit_meter.get_skill_cost("web_search", default=2) == 2

    await credit_meter.set_model_cost("kling-3.0", 120)
    await credit_meter.set_skill_cost("web_search", 1)

    assert await credit_meter.get_model_cost("kling-3.0") == 120
    assert await credit_meter.get_skill_cost("web_search", default=2) == 1
