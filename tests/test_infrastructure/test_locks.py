"""Tests for per-engagement locking."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from marketplace_escrow.domain.exceptions import EngagementBusyError
from marketplace_escrow.infrastructure.locks import EngagementLocks


class TestEngagementLocks:
    @pytest.mark.asyncio
    async def test_same_engagement_is_serialized(self) -> None:
        locks = EngagementLocks(wait_seconds=2.0)
        engagement_id = uuid.uuid4()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold(engagement_id):
                order.append(f"{name}:start")
                await asyncio.sleep(0.01)
                order.append(f"{name}:end")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a:start", "a:end", "b:start", "b:end"]

    @pytest.mark.asyncio
    async def test_different_engagements_do_not_block(self) -> None:
        locks = EngagementLocks(wait_seconds=0.05)
        async with locks.hold(uuid.uuid4()):
            async with locks.hold(uuid.uuid4()):
                pass

    @pytest.mark.asyncio
    async def test_busy_after_wait(self) -> None:
        locks = EngagementLocks(wait_seconds=0.05)
        engagement_id = uuid.uuid4()

        async with locks.hold(engagement_id):
            with pytest.raises(EngagementBusyError):
                async with locks.hold(engagement_id):
                    pass

    @pytest.mark.asyncio
    async def test_entries_cleaned_up(self) -> None:
        locks = EngagementLocks()
        async with locks.hold("eng-1"):
            pass
        assert locks._locks == {}
        assert locks._waiters == {}

    @pytest.mark.asyncio
    async def test_released_on_error(self) -> None:
        locks = EngagementLocks(wait_seconds=0.05)
        with pytest.raises(RuntimeError):
            async with locks.hold("eng-1"):
                raise RuntimeError("boom")
        async with locks.hold("eng-1"):
            pass

    def test_local_only_without_redis(self) -> None:
        assert EngagementLocks().distributed is False
