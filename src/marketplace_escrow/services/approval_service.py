"""Approval Service: the ordered gate sequence of an engagement.

Gates are cleared strictly in GATE_ORDER and never reopen. Clearing the last
gate releases the client's location and contact details to the provider.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from marketplace_escrow.domain.approval_gates import (
    GATE_ORDER,
    check_can_clear,
    first_pending_gate,
    is_sequence_complete,
    not_yet_reason,
)
from marketplace_escrow.domain.enums import ApprovalGate, GateState, NotificationKind
from marketplace_escrow.domain.exceptions import ApprovalRequiredError, NotFoundError
from marketplace_escrow.infrastructure.database.orm_models import ApprovalGateRecord
from marketplace_escrow.infrastructure.database.repositories import EngagementRepository
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from marketplace_escrow.infrastructure.database.orm_models import Engagement
    from marketplace_escrow.services.notifications import NotificationOutbox

logger = get_logger(__name__)


def gate_states(engagement: Engagement) -> dict[ApprovalGate, GateState]:
    return {ApprovalGate(g.gate): GateState(g.state) for g in engagement.gates}


class ApprovalService:
    """Clears and inspects approval gates."""

    def __init__(self, session: AsyncSession, outbox: NotificationOutbox | None = None) -> None:
        self._session = session
        self._outbox = outbox
        self._engagement_repo = EngagementRepository(session)

    @staticmethod
    def initial_gates() -> list[ApprovalGateRecord]:
        """Fresh, all-pending gate rows for a new engagement."""
        return [
            ApprovalGateRecord(gate=gate.value, position=i, state=GateState.PENDING.value)
            for i, gate in enumerate(GATE_ORDER)
        ]

    async def clear(
        self, engagement_id: uuid.UUID, gate: ApprovalGate, actor_id: str
    ) -> ApprovalGateRecord:
        """Clear ``gate`` if it is the next pending one.

        Raises:
            OutOfOrderApprovalError: If an earlier gate is still pending or
                ``gate`` was already cleared.
        """
        engagement = await self._get_engagement_or_raise(engagement_id)
        check_can_clear(gate_states(engagement), gate)

        record = next(g for g in engagement.gates if g.gate == gate.value)
        record.state = GateState.CLEARED.value
        record.cleared_by = actor_id
        record.cleared_at = datetime.now(UTC)
        await self._session.flush()

        if gate == ApprovalGate.CUSTOMER_DETAILS_RELEASED and self._outbox is not None:
            self._outbox.queue(
                engagement.provider_id,
                NotificationKind.CUSTOMER_DETAILS_RELEASED,
                {
                    "engagement_id": str(engagement.id),
                    "title": engagement.title,
                    "location": engagement.location,
                    "contact_details": engagement.contact_details,
                },
            )

        logger.info(
            "approval.gate_cleared",
            engagement_id=str(engagement_id),
            gate=gate.value,
            actor=actor_id,
        )
        return record

    async def is_complete(self, engagement_id: uuid.UUID) -> bool:
        engagement = await self._get_engagement_or_raise(engagement_id)
        return is_sequence_complete(gate_states(engagement))

    async def next_pending(self, engagement_id: uuid.UUID) -> ApprovalGate | None:
        engagement = await self._get_engagement_or_raise(engagement_id)
        return first_pending_gate(gate_states(engagement))

    async def gates(self, engagement_id: uuid.UUID) -> list[ApprovalGateRecord]:
        """The engagement's gates in clearing order."""
        engagement = await self._get_engagement_or_raise(engagement_id)
        return sorted(engagement.gates, key=lambda g: g.position)

    def customer_details(self, engagement: Engagement) -> dict:
        """Location and contact details, once the final gate is cleared."""
        pending = first_pending_gate(gate_states(engagement))
        if pending is not None:
            raise ApprovalRequiredError(
                f"Customer details are not available: {not_yet_reason(pending)}"
            )
        return {
            "location": engagement.location,
            "contact_details": engagement.contact_details,
        }

    async def _get_engagement_or_raise(self, engagement_id: uuid.UUID) -> Engagement:
        engagement = await self._engagement_repo.get_by_id(engagement_id)
        if engagement is None:
            raise NotFoundError("Engagement", str(engagement_id))
        return engagement
