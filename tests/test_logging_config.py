"""Tests for structured logging context."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
import structlog

from marketplace_escrow.logging_config import stringify_money_and_ids

CLIENT = "client-1"


class TestStringifyProcessor:
    def test_money_and_ids_become_strings(self) -> None:
        escrow_id = uuid.uuid4()
        event = stringify_money_and_ids(
            None,
            "info",
            {"event": "ledger.funds_released", "payout": Decimal("85.00"), "escrow_id": escrow_id},
        )
        assert event == {
            "event": "ledger.funds_released",
            "payout": "85.00",
            "escrow_id": str(escrow_id),
        }

    def test_other_values_untouched(self) -> None:
        event = stringify_money_and_ids(None, "info", {"attempt": 2, "approved": True})
        assert event == {"attempt": 2, "approved": True}


class TestEngagementContext:
    @pytest.mark.asyncio
    async def test_bound_during_unit_of_work(
        self, service, processor, quoted_engagement, monkeypatch
    ) -> None:
        engagement_id = await quoted_engagement()
        seen: dict = {}
        original = processor.create_hold

        async def recording_create_hold(*args, **kwargs):
            seen.update(structlog.contextvars.get_contextvars())
            return await original(*args, **kwargs)

        monkeypatch.setattr(processor, "create_hold", recording_create_hold)
        await service.accept_price(engagement_id, CLIENT)

        assert seen["engagement_id"] == str(engagement_id)
        assert "engagement_id" not in structlog.contextvars.get_contextvars()
