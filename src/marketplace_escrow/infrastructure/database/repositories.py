"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (the engagement unit of work commits).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from marketplace_escrow.domain.enums import EngagementStatus, EscrowStatus, QuoteStatus
from marketplace_escrow.infrastructure.database.orm_models import (
    Engagement,
    EngagementEvent,
    EscrowPayment,
    PayoutAccount,
    Quote,
    WorkSubmission,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from marketplace_escrow.domain.enums import EventType


class EngagementRepository:
    """Data access for engagements."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, engagement: Engagement) -> Engagement:
        self._session.add(engagement)
        await self._session.flush()
        return engagement

    async def get_by_id(self, engagement_id: uuid.UUID, fresh: bool = False) -> Engagement | None:
        """Fetch an engagement; ``fresh`` overwrites whatever the session holds."""
        query = select(Engagement).where(Engagement.id == engagement_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def get_for_update(self, engagement_id: uuid.UUID) -> Engagement | None:
        """Fetch a fresh copy of the row and lock it until the transaction ends."""
        result = await self._session.execute(
            select(Engagement)
            .where(Engagement.id == engagement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_status(
        self,
        engagement: Engagement,
        new_status: EngagementStatus,
        timestamp_field: str | None = None,
    ) -> Engagement:
        """Update the status (call AFTER state machine validation)."""
        now = datetime.now(UTC)
        engagement.status = new_status.value
        if timestamp_field:
            setattr(engagement, timestamp_field, now)
        engagement.updated_at = now
        await self._session.flush()
        return engagement


class QuoteRepository:
    """Data access for quotes."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, quote: Quote) -> Quote:
        self._session.add(quote)
        await self._session.flush()
        return quote

    async def get_by_id(self, quote_id: uuid.UUID) -> Quote | None:
        result = await self._session.execute(
            select(Quote).where(Quote.id == quote_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[Quote]:
        """All quotes for an engagement, newest first."""
        result = await self._session.execute(
            select(Quote)
            .where(Quote.engagement_id == engagement_id)
            .order_by(Quote.submitted_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_pending(self, engagement_id: uuid.UUID) -> list[Quote]:
        """Open quotes for an engagement, newest first."""
        return [
            q
            for q in await self.get_by_engagement(engagement_id)
            if q.status == QuoteStatus.PENDING.value
        ]

    async def set_status(self, quote: Quote, status: QuoteStatus) -> Quote:
        quote.status = status.value
        quote.decided_at = datetime.now(UTC)
        await self._session.flush()
        return quote


class EscrowRepository:
    """Data access for escrow payments."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, escrow: EscrowPayment) -> EscrowPayment:
        self._session.add(escrow)
        await self._session.flush()
        return escrow

    async def get_by_id(self, escrow_id: uuid.UUID) -> EscrowPayment | None:
        result = await self._session.execute(
            select(EscrowPayment)
            .where(EscrowPayment.id == escrow_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[EscrowPayment]:
        """Every escrow ever opened for an engagement, newest first."""
        result = await self._session.execute(
            select(EscrowPayment)
            .where(EscrowPayment.engagement_id == engagement_id)
            .order_by(EscrowPayment.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_live(self, engagement_id: uuid.UUID) -> EscrowPayment | None:
        """The escrow currently in custody for an engagement, if any."""
        for escrow in await self.get_by_engagement(engagement_id):
            if EscrowStatus(escrow.status).is_live:
                return escrow
        return None

    async def get_current(self, engagement_id: uuid.UUID) -> EscrowPayment | None:
        """The live escrow, or failing that the most recent one."""
        escrows = await self.get_by_engagement(engagement_id)
        for escrow in escrows:
            if EscrowStatus(escrow.status).is_live:
                return escrow
        return escrows[0] if escrows else None

    async def update_status(
        self,
        escrow: EscrowPayment,
        new_status: EscrowStatus,
        timestamp_field: str | None = None,
    ) -> EscrowPayment:
        now = datetime.now(UTC)
        escrow.status = new_status.value
        if timestamp_field:
            setattr(escrow, timestamp_field, now)
        escrow.updated_at = now
        await self._session.flush()
        return escrow

    async def count_awaiting_approval(self) -> int:
        """Held escrows whose engagement has work waiting for an approver."""
        result = await self._session.execute(
            select(func.count())
            .select_from(EscrowPayment)
            .join(Engagement, Engagement.id == EscrowPayment.engagement_id)
            .where(
                EscrowPayment.status == EscrowStatus.HELD.value,
                Engagement.status.in_(
                    [EngagementStatus.WORK_SUBMITTED.value, EngagementStatus.DISPUTED.value]
                ),
            )
        )
        return int(result.scalar_one())

    async def count_approved_since(self, since: datetime) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(EscrowPayment)
            .where(EscrowPayment.approved_at >= since)
        )
        return int(result.scalar_one())

    async def get_released(self, since: datetime | None = None) -> list[EscrowPayment]:
        query = select(EscrowPayment).where(
            EscrowPayment.status == EscrowStatus.RELEASED.value
        )
        if since is not None:
            query = query.where(EscrowPayment.released_at >= since)
        result = await self._session.execute(query)
        return list(result.scalars().all())


class SubmissionRepository:
    """Data access for work submissions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, submission: WorkSubmission) -> WorkSubmission:
        self._session.add(submission)
        await self._session.flush()
        return submission

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[WorkSubmission]:
        """All submissions for an engagement, newest attempt first."""
        result = await self._session.execute(
            select(WorkSubmission)
            .where(WorkSubmission.engagement_id == engagement_id)
            .order_by(WorkSubmission.attempt.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_latest(self, engagement_id: uuid.UUID) -> WorkSubmission | None:
        submissions = await self.get_by_engagement(engagement_id)
        return submissions[0] if submissions else None


class PayoutAccountRepository:
    """Data access for provider payout accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, account: PayoutAccount) -> PayoutAccount:
        self._session.add(account)
        await self._session.flush()
        return account

    async def get_by_id(self, account_id: uuid.UUID) -> PayoutAccount | None:
        result = await self._session.execute(
            select(PayoutAccount)
            .where(PayoutAccount.id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_provider(self, provider_id: str) -> list[PayoutAccount]:
        """All accounts a provider has registered, newest first."""
        result = await self._session.execute(
            select(PayoutAccount)
            .where(PayoutAccount.provider_id == provider_id)
            .order_by(PayoutAccount.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def save(self, account: PayoutAccount) -> PayoutAccount:
        account.updated_at = datetime.now(UTC)
        await self._session.flush()
        return account


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        engagement_id: uuid.UUID,
        event_type: EventType,
        old_status: EngagementStatus | None,
        new_status: EngagementStatus,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> EngagementEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        result = await self._session.execute(
            select(func.count())
            .select_from(EngagementEvent)
            .where(EngagementEvent.engagement_id == engagement_id)
        )
        evt = EngagementEvent(
            engagement_id=engagement_id,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            metadata_json=metadata,
            sequence=int(result.scalar_one()) + 1,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[EngagementEvent]:
        """All events for an engagement in the order they happened."""
        result = await self._session.execute(
            select(EngagementEvent)
            .where(EngagementEvent.engagement_id == engagement_id)
            .order_by(EngagementEvent.sequence.asc())
        )
        return list(result.scalars().all())
