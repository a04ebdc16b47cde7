"""Tests for the approval gate sequence service."""

from __future__ import annotations

import uuid

import pytest

from marketplace_escrow.domain.enums import ApprovalGate, GateState
from marketplace_escrow.domain.exceptions import NotFoundError, OutOfOrderApprovalError
from marketplace_escrow.services.approval_service import ApprovalService

CLIENT = "client-1"
PROVIDER = "provider-1"


class TestGateSequence:
    @pytest.mark.asyncio
    async def test_complete_only_after_all_three_gates(
        self, session, service, quoted_engagement
    ) -> None:
        approvals = ApprovalService(session)
        engagement_id = await quoted_engagement()
        assert await approvals.is_complete(engagement_id) is False

        await service.accept_price(engagement_id, CLIENT)
        await service.approve_task_review(engagement_id, PROVIDER)
        assert await approvals.is_complete(engagement_id) is False
        assert await approvals.next_pending(engagement_id) == ApprovalGate.CUSTOMER_DETAILS_RELEASED

        await service.release_customer_details(engagement_id, CLIENT)
        assert await approvals.is_complete(engagement_id) is True
        assert await approvals.next_pending(engagement_id) is None

    @pytest.mark.asyncio
    async def test_gates_in_clearing_order(self, session, service, quoted_engagement) -> None:
        approvals = ApprovalService(session)
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)

        gates = await approvals.gates(engagement_id)
        assert [g.gate for g in gates] == [
            "PRICE_ACCEPTED",
            "TASK_REVIEWED",
            "CUSTOMER_DETAILS_RELEASED",
        ]
        assert [g.state for g in gates] == [
            GateState.CLEARED.value,
            GateState.PENDING.value,
            GateState.PENDING.value,
        ]
        assert gates[0].cleared_by == CLIENT

    @pytest.mark.asyncio
    async def test_clear_out_of_order(self, session, quoted_engagement) -> None:
        approvals = ApprovalService(session)
        engagement_id = await quoted_engagement()

        with pytest.raises(OutOfOrderApprovalError):
            await approvals.clear(engagement_id, ApprovalGate.TASK_REVIEWED, PROVIDER)
        assert await approvals.next_pending(engagement_id) == ApprovalGate.PRICE_ACCEPTED

    @pytest.mark.asyncio
    async def test_unknown_engagement(self, session) -> None:
        with pytest.raises(NotFoundError):
            await ApprovalService(session).is_complete(uuid.uuid4())
