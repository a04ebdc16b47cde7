"""Engagement Service: core business logic for the engagement lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Approval gates, ledger, submissions (sub-services)
    - Repositories (data access)
    - Event log (audit trail)
    - Notification outbox (dispatched after commit)

Both REST routes and tests call into this service, so every business rule
lives in one place.

Every engagement-scoped operation runs as one unit of work: take the
engagement lock, load the row FOR UPDATE with a fresh read, apply the
transition, commit. Any error rolls the whole operation back. The single
exception is approve_work: when the payout transfer fails after approval,
the approval is kept and the release can be retried.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from statemachine.exceptions import TransitionNotAllowed

from marketplace_escrow.config import Settings, get_settings
from marketplace_escrow.domain.approval_gates import check_can_clear
from marketplace_escrow.domain.enums import (
    ApprovalGate,
    EngagementStatus,
    EscrowStatus,
    EventType,
    NotificationKind,
    QuoteStatus,
    ReviewOutcome,
)
from marketplace_escrow.domain.exceptions import (
    ActorNotPermittedError,
    ApprovalRequiredError,
    InvalidAmountError,
    InvalidTransitionError,
    NotFoundError,
    PayoutAccountNotReadyError,
    ProcessorError,
)
from marketplace_escrow.domain.inputs import QuoteTerms, require_reason, validate_evidence
from marketplace_escrow.domain.money import to_money
from marketplace_escrow.domain.state_machine import EngagementStateMachine
from marketplace_escrow.infrastructure.database.orm_models import Engagement, Quote
from marketplace_escrow.infrastructure.database.repositories import (
    EngagementRepository,
    EscrowRepository,
    EventRepository,
    QuoteRepository,
)
from marketplace_escrow.infrastructure.locks import get_engagement_locks
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.services.approval_service import ApprovalService, gate_states
from marketplace_escrow.services.ledger_service import LedgerService
from marketplace_escrow.services.notifications import NotificationOutbox
from marketplace_escrow.services.submission_service import SubmissionService

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncIterator, Sequence
    from decimal import Decimal

    from sqlalchemy.ext.asyncio import AsyncSession

    from marketplace_escrow.domain.capabilities import (
        ApproverDirectory,
        EvidenceStore,
        Notifier,
        PaymentProcessor,
    )
    from marketplace_escrow.domain.inputs import EvidenceItem
    from marketplace_escrow.infrastructure.database.orm_models import (
        EngagementEvent,
        EscrowPayment,
        WorkSubmission,
    )
    from marketplace_escrow.infrastructure.locks import EngagementLocks

logger = get_logger(__name__)


class EngagementService:
    """Drives an engagement from request to closure."""

    def __init__(
        self,
        session: AsyncSession,
        processor: PaymentProcessor,
        notifier: Notifier,
        approvers: ApproverDirectory,
        evidence_store: EvidenceStore | None = None,
        locks: EngagementLocks | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._processor = processor
        self._approvers = approvers
        self._settings = settings or get_settings()
        self._locks = locks or get_engagement_locks()
        self._outbox = NotificationOutbox(notifier)

        self._engagement_repo = EngagementRepository(session)
        self._quote_repo = QuoteRepository(session)
        self._escrow_repo = EscrowRepository(session)
        self._event_repo = EventRepository(session)

        self._ledger = LedgerService(session, processor, self._settings)
        self._approvals = ApprovalService(session, self._outbox)
        self._submissions = SubmissionService(session, evidence_store)

    @property
    def ledger(self) -> LedgerService:
        return self._ledger

    @property
    def submissions(self) -> SubmissionService:
        return self._submissions

    # ------------------------------------------------------------------
    # Creation & quoting
    # ------------------------------------------------------------------

    async def create_engagement(
        self,
        client_id: str,
        title: str,
        description: str,
        category: str | None = None,
        budget: Decimal | str | None = None,
        location: str | None = None,
        contact_details: dict | None = None,
    ) -> Engagement:
        """Create a new engagement in REQUESTED with all gates pending."""
        budget_value = to_money(budget) if budget is not None else None
        if budget_value is not None and budget_value <= 0:
            raise InvalidAmountError(budget, "budget must be greater than zero")
        engagement = Engagement(
            client_id=client_id,
            title=title,
            description=description,
            category=category,
            budget=budget_value,
            location=location,
            contact_details=contact_details,
            status=EngagementStatus.REQUESTED.value,
            rejection_count=0,
            max_rejections=self._settings.max_work_rejections,
            gates=ApprovalService.initial_gates(),
        )
        try:
            engagement = await self._engagement_repo.create(engagement)
            await self._event_repo.record(
                engagement_id=engagement.id,
                event_type=EventType.ENGAGEMENT_CREATED,
                old_status=None,
                new_status=EngagementStatus.REQUESTED,
                actor=client_id,
                metadata={"title": title, "category": category},
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("engagement.created", engagement_id=str(engagement.id), client_id=client_id)
        return engagement

    async def submit_quote(
        self,
        engagement_id: uuid.UUID,
        provider_id: str,
        amount: Decimal | int | str,
        estimated_hours: int,
        proposal: str,
        tools_provided: str | None = None,
        additional_services: str | None = None,
    ) -> Quote:
        """Record a provider's bid (REQUESTED|QUOTED -> QUOTED)."""
        terms = QuoteTerms.build(
            amount, estimated_hours, proposal, tools_provided, additional_services
        )

        async with self._unit_of_work(engagement_id) as engagement:
            if provider_id == engagement.client_id:
                raise ActorNotPermittedError(provider_id, "quote on their own request")
            old_status = EngagementStatus(engagement.status)
            self._fire_transition(engagement, "submit_quote")

            for previous in await self._quote_repo.get_pending(engagement.id):
                if previous.provider_id == provider_id:
                    await self._quote_repo.set_status(previous, QuoteStatus.SUPERSEDED)

            quote = await self._quote_repo.create(
                Quote(
                    engagement_id=engagement.id,
                    provider_id=provider_id,
                    amount=terms.amount,
                    estimated_hours=terms.estimated_hours,
                    proposal=terms.proposal,
                    tools_provided=terms.tools_provided,
                    additional_services=terms.additional_services,
                    status=QuoteStatus.PENDING.value,
                )
            )
            await self._transition(
                engagement,
                EngagementStatus.QUOTED,
                EventType.QUOTE_SUBMITTED,
                actor=provider_id,
                timestamp_field="quoted_at" if old_status == EngagementStatus.REQUESTED else None,
                metadata={"quote_id": str(quote.id), "amount": str(terms.amount)},
            )
            self._outbox.queue(
                engagement.client_id,
                NotificationKind.QUOTE_RECEIVED,
                {
                    "engagement_id": str(engagement.id),
                    "quote_id": str(quote.id),
                    "provider_id": provider_id,
                    "amount": str(terms.amount),
                },
            )

        logger.info(
            "engagement.quote_submitted",
            engagement_id=str(engagement_id),
            provider_id=provider_id,
            amount=str(terms.amount),
        )
        return quote

    # ------------------------------------------------------------------
    # Approval gates
    # ------------------------------------------------------------------

    async def accept_price(
        self,
        engagement_id: uuid.UUID,
        client_id: str,
        quote_id: uuid.UUID | None = None,
    ) -> EscrowPayment:
        """Client accepts a quote: assigns the provider and secures the funds."""
        async with self._unit_of_work(engagement_id) as engagement:
            self._require_client(engagement, client_id, "accept a price")
            self._check_gate(engagement, ApprovalGate.PRICE_ACCEPTED, "accept_price")
            quote = await self._select_quote(engagement, quote_id)
            self._fire_transition(engagement, "accept_price")

            engagement.provider_id = quote.provider_id
            engagement.agreed_price = quote.amount
            await self._quote_repo.set_status(quote, QuoteStatus.ACCEPTED)
            for other in await self._quote_repo.get_pending(engagement.id):
                await self._quote_repo.set_status(other, QuoteStatus.DECLINED)
            await self._session.flush()

            breakdown = self._ledger.breakdown(quote.amount, engagement.category)
            escrow = await self._ledger.open_escrow(engagement.id, breakdown)
            if self._settings.auto_confirm_holds:
                await self._confirm_or_reverse(escrow)

            await self._approvals.clear(engagement.id, ApprovalGate.PRICE_ACCEPTED, client_id)
            await self._transition(
                engagement,
                EngagementStatus.PRICE_ACCEPTED,
                EventType.PRICE_ACCEPTED,
                actor=client_id,
                timestamp_field="price_accepted_at",
                metadata={
                    "quote_id": str(quote.id),
                    "escrow_id": str(escrow.id),
                    **breakdown.to_dict(),
                },
            )
            if escrow.status == EscrowStatus.HELD.value:
                await self._record_payment_held(engagement, escrow, client_id)
            self._outbox.queue(
                engagement.provider_id,
                NotificationKind.QUOTE_ACCEPTED,
                {
                    "engagement_id": str(engagement.id),
                    "quote_id": str(quote.id),
                    "payout_amount": str(breakdown.payout_amount),
                },
            )

        logger.info(
            "engagement.price_accepted",
            engagement_id=str(engagement_id),
            provider_id=quote.provider_id,
            total=str(breakdown.total_amount),
        )
        return escrow

    async def confirm_payment(self, engagement_id: uuid.UUID, client_id: str) -> EscrowPayment:
        """Confirm a pending hold (when holds are not auto-confirmed)."""
        async with self._unit_of_work(engagement_id) as engagement:
            self._require_client(engagement, client_id, "confirm the payment")
            escrow = await self._escrow_repo.get_live(engagement.id)
            if escrow is None:
                raise ApprovalRequiredError(
                    "No payment has been started: price has not been accepted yet"
                )
            escrow = await self._ledger.confirm_hold(escrow.id)
            await self._record_payment_held(engagement, escrow, client_id)

        logger.info("engagement.payment_confirmed", engagement_id=str(engagement_id))
        return escrow

    async def approve_task_review(self, engagement_id: uuid.UUID, provider_id: str) -> Engagement:
        """Assigned provider confirms the scope (PRICE_ACCEPTED -> UNDER_REVIEW)."""
        async with self._unit_of_work(engagement_id) as engagement:
            # No provider is assigned until the price gate clears
            self._check_gate(engagement, ApprovalGate.TASK_REVIEWED, "review_task")
            self._require_provider(engagement, provider_id, "review this task")
            self._fire_transition(engagement, "review_task")

            await self._approvals.clear(engagement.id, ApprovalGate.TASK_REVIEWED, provider_id)
            await self._transition(
                engagement,
                EngagementStatus.UNDER_REVIEW,
                EventType.TASK_REVIEWED,
                actor=provider_id,
                timestamp_field="reviewed_at",
            )
            self._outbox.queue(
                engagement.client_id,
                NotificationKind.TASK_REVIEWED,
                {"engagement_id": str(engagement.id), "provider_id": provider_id},
            )

        logger.info("engagement.task_reviewed", engagement_id=str(engagement_id))
        return engagement

    async def release_customer_details(
        self, engagement_id: uuid.UUID, client_id: str
    ) -> Engagement:
        """Client releases location and contact (UNDER_REVIEW -> DETAILS_RELEASED)."""
        async with self._unit_of_work(engagement_id) as engagement:
            self._require_client(engagement, client_id, "release customer details")
            self._check_gate(engagement, ApprovalGate.CUSTOMER_DETAILS_RELEASED, "release_details")
            self._fire_transition(engagement, "release_details")

            await self._approvals.clear(
                engagement.id, ApprovalGate.CUSTOMER_DETAILS_RELEASED, client_id
            )
            await self._transition(
                engagement,
                EngagementStatus.DETAILS_RELEASED,
                EventType.CUSTOMER_DETAILS_RELEASED,
                actor=client_id,
                timestamp_field="details_released_at",
            )

        logger.info("engagement.details_released", engagement_id=str(engagement_id))
        return engagement

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    async def begin_work(self, engagement_id: uuid.UUID, provider_id: str) -> Engagement:
        """Provider starts the job (DETAILS_RELEASED -> IN_PROGRESS)."""
        async with self._unit_of_work(engagement_id) as engagement:
            self._require_provider(engagement, provider_id, "start work on this engagement")
            self._fire_transition(engagement, "begin_work")
            escrow = await self._escrow_repo.get_live(engagement.id)
            if escrow is None or escrow.status != EscrowStatus.HELD.value:
                raise ApprovalRequiredError(
                    "Cannot start work: payment has not been secured in escrow yet"
                )

            await self._transition(
                engagement,
                EngagementStatus.IN_PROGRESS,
                EventType.WORK_STARTED,
                actor=provider_id,
                timestamp_field="work_started_at",
            )
            self._outbox.queue(
                engagement.client_id,
                NotificationKind.WORK_STARTED,
                {"engagement_id": str(engagement.id), "provider_id": provider_id},
            )

        logger.info("engagement.work_started", engagement_id=str(engagement_id))
        return engagement

    async def submit_work(
        self,
        engagement_id: uuid.UUID,
        provider_id: str,
        evidence: Sequence[EvidenceItem],
        summary: str = "",
    ) -> WorkSubmission:
        """Provider claims completion with evidence (IN_PROGRESS -> WORK_SUBMITTED)."""
        validate_evidence(evidence)

        async with self._unit_of_work(engagement_id) as engagement:
            self._require_provider(engagement, provider_id, "submit work for this engagement")
            self._fire_transition(engagement, "submit_work")
            escrow = await self._require_live_escrow(engagement)

            submission = await self._submissions.create(
                engagement.id, escrow.id, provider_id, evidence, summary
            )
            await self._transition(
                engagement,
                EngagementStatus.WORK_SUBMITTED,
                EventType.WORK_SUBMITTED,
                actor=provider_id,
                timestamp_field="work_submitted_at",
                metadata={
                    "submission_id": str(submission.id),
                    "attempt": submission.attempt,
                    "evidence_count": len(evidence),
                },
            )
            for approver_id in self._approvers.list_payment_approvers():
                self._outbox.queue(
                    approver_id,
                    NotificationKind.WORK_SUBMITTED,
                    {
                        "engagement_id": str(engagement.id),
                        "submission_id": str(submission.id),
                        "payout_amount": str(escrow.payout_amount),
                    },
                )

        logger.info(
            "engagement.work_submitted",
            engagement_id=str(engagement_id),
            submission_id=str(submission.id),
            attempt=submission.attempt,
        )
        return submission

    async def approve_work(self, engagement_id: uuid.UUID, approver_id: str) -> Decimal:
        """Payment approver approves the work and releases the funds.

        Returns the provider payout. If the transfer fails the approval is
        still committed (engagement and escrow stay APPROVED) and the error is
        raised; calling again retries the release. On an engagement that is
        already RELEASED the payout is returned without a second transfer.
        """
        release_error: PayoutAccountNotReadyError | ProcessorError | None = None

        async with self._unit_of_work(engagement_id) as engagement:
            self._require_approver(engagement, approver_id, "approve payments")

            if engagement.status == EngagementStatus.RELEASED.value:
                escrow = await self._escrow_repo.get_current(engagement.id)
                payout = await self._ledger.release(escrow.id)
            else:
                if engagement.status != EngagementStatus.APPROVED.value:
                    self._fire_transition(engagement, "approve_work")
                    escrow = await self._require_live_escrow(engagement)
                    await self._ledger.mark_approved(escrow.id, approver_id)
                    submission = await self._submissions.latest(engagement.id)
                    if submission is not None and submission.outcome == ReviewOutcome.PENDING.value:
                        await self._submissions.mark_reviewed(submission, True, approver_id)
                    await self._transition(
                        engagement,
                        EngagementStatus.APPROVED,
                        EventType.WORK_APPROVED,
                        actor=approver_id,
                        timestamp_field="approved_at",
                        metadata={"escrow_id": str(escrow.id)},
                    )
                else:
                    escrow = await self._require_live_escrow(engagement)

                self._fire_transition(engagement, "release_funds")
                try:
                    payout = await self._ledger.release(escrow.id)
                except (PayoutAccountNotReadyError, ProcessorError) as exc:
                    logger.warning(
                        "engagement.release_failed",
                        engagement_id=str(engagement_id),
                        code=exc.code,
                        error=exc.message,
                    )
                    release_error = exc
                else:
                    await self._transition(
                        engagement,
                        EngagementStatus.RELEASED,
                        EventType.FUNDS_RELEASED,
                        actor=approver_id,
                        timestamp_field="released_at",
                        metadata={
                            "escrow_id": str(escrow.id),
                            "payout_amount": str(payout),
                            "transfer_ref": escrow.transfer_ref,
                        },
                    )
                    self._outbox.queue(
                        engagement.provider_id,
                        NotificationKind.PAYMENT_RELEASED,
                        {"engagement_id": str(engagement.id), "payout_amount": str(payout)},
                    )
                    self._outbox.queue(
                        engagement.client_id,
                        NotificationKind.PAYMENT_RELEASED,
                        {"engagement_id": str(engagement.id), "amount": str(escrow.total_amount)},
                    )

        if release_error is not None:
            raise release_error

        logger.info(
            "engagement.work_approved",
            engagement_id=str(engagement_id),
            approver=approver_id,
            payout=str(payout),
        )
        return payout

    async def reject_work(
        self, engagement_id: uuid.UUID, approver_id: str, reason: str
    ) -> Engagement:
        """Send the work back (-> IN_PROGRESS), or dispute it once the cap is hit."""
        reason = require_reason(reason, "reject work")

        async with self._unit_of_work(engagement_id) as engagement:
            self._require_approver(engagement, approver_id, "review work")
            rejections = engagement.rejection_count + 1
            limit_reached = rejections >= engagement.max_rejections
            self._fire_transition(
                engagement, "escalate_rejection" if limit_reached else "reject_work"
            )

            submission = await self._submissions.latest(engagement.id)
            if submission is not None:
                await self._submissions.mark_reviewed(submission, False, approver_id, reason)
            engagement.rejection_count = rejections

            metadata = {
                "reason": reason,
                "rejection_count": rejections,
                "max_rejections": engagement.max_rejections,
            }
            if limit_reached:
                await self._transition(
                    engagement,
                    EngagementStatus.DISPUTED,
                    EventType.REJECTION_LIMIT_REACHED,
                    actor=approver_id,
                    timestamp_field="disputed_at",
                    metadata=metadata,
                )
                for user_id in (engagement.client_id, engagement.provider_id):
                    self._outbox.queue(
                        user_id,
                        NotificationKind.DISPUTE_RAISED,
                        {"engagement_id": str(engagement.id), "reason": reason},
                    )
            else:
                await self._transition(
                    engagement,
                    EngagementStatus.IN_PROGRESS,
                    EventType.WORK_REJECTED,
                    actor=approver_id,
                    metadata=metadata,
                )
                self._outbox.queue(
                    engagement.provider_id,
                    NotificationKind.WORK_REJECTED,
                    {
                        "engagement_id": str(engagement.id),
                        "reason": reason,
                        "rejections_left": engagement.max_rejections - rejections,
                    },
                )

        logger.info(
            "engagement.work_rejected",
            engagement_id=str(engagement_id),
            rejection_count=rejections,
            disputed=limit_reached,
        )
        return engagement

    # ------------------------------------------------------------------
    # Disputes, refunds, cancellation, closure
    # ------------------------------------------------------------------

    async def dispute(self, engagement_id: uuid.UUID, actor_id: str, reason: str) -> Engagement:
        """Raise a dispute. No money moves."""
        reason = require_reason(reason, "raise a dispute")

        async with self._unit_of_work(engagement_id) as engagement:
            parties = {engagement.client_id, engagement.provider_id}
            if actor_id not in parties and not self._is_independent_approver(engagement, actor_id):
                raise ActorNotPermittedError(actor_id, "dispute this engagement")
            self._fire_transition(engagement, "raise_dispute")

            await self._transition(
                engagement,
                EngagementStatus.DISPUTED,
                EventType.DISPUTE_RAISED,
                actor=actor_id,
                timestamp_field="disputed_at",
                metadata={"reason": reason},
            )
            for user_id in parties - {actor_id}:
                self._outbox.queue(
                    user_id,
                    NotificationKind.DISPUTE_RAISED,
                    {"engagement_id": str(engagement.id), "reason": reason, "raised_by": actor_id},
                )

        logger.info("engagement.dispute_raised", engagement_id=str(engagement_id), by=actor_id)
        return engagement

    async def refund(
        self, engagement_id: uuid.UUID, approver_id: str, reason: str
    ) -> EscrowPayment:
        """Return the held funds to the client (-> REFUNDED)."""
        reason = require_reason(reason, "refund a payment")

        async with self._unit_of_work(engagement_id) as engagement:
            self._require_approver(engagement, approver_id, "refund payments")
            self._fire_transition(engagement, "refund")
            escrow = await self._require_live_escrow(engagement)

            escrow = await self._ledger.refund(escrow.id, reason)
            await self._transition(
                engagement,
                EngagementStatus.REFUNDED,
                EventType.FUNDS_REFUNDED,
                actor=approver_id,
                timestamp_field="refunded_at",
                metadata={
                    "escrow_id": str(escrow.id),
                    "amount": str(escrow.total_amount),
                    "reason": reason,
                },
            )
            for user_id in (engagement.client_id, engagement.provider_id):
                self._outbox.queue(
                    user_id,
                    NotificationKind.PAYMENT_REFUNDED,
                    {"engagement_id": str(engagement.id), "reason": reason},
                )

        logger.info("engagement.refunded", engagement_id=str(engagement_id), by=approver_id)
        return escrow

    async def cancel(self, engagement_id: uuid.UUID, client_id: str, reason: str) -> Engagement:
        """Client withdraws before work starts; any held funds go back."""
        reason = require_reason(reason, "cancel an engagement")

        async with self._unit_of_work(engagement_id) as engagement:
            self._require_client(engagement, client_id, "cancel this engagement")
            self._fire_transition(engagement, "cancel")

            escrow = await self._escrow_repo.get_live(engagement.id)
            if escrow is not None and escrow.status == EscrowStatus.HELD.value:
                await self._ledger.refund(escrow.id, reason)
            elif escrow is not None and escrow.status == EscrowStatus.PENDING.value:
                await self._ledger.void(escrow.id, reason)

            quoters = set()
            for quote in await self._quote_repo.get_pending(engagement.id):
                quoters.add(quote.provider_id)
                await self._quote_repo.set_status(quote, QuoteStatus.DECLINED)

            await self._transition(
                engagement,
                EngagementStatus.CANCELLED,
                EventType.ENGAGEMENT_CANCELLED,
                actor=client_id,
                timestamp_field="cancelled_at",
                metadata={"reason": reason, "escrow_id": str(escrow.id) if escrow else None},
            )
            if engagement.provider_id:
                quoters.add(engagement.provider_id)
            for user_id in sorted(quoters):
                self._outbox.queue(
                    user_id,
                    NotificationKind.ENGAGEMENT_CANCELLED,
                    {"engagement_id": str(engagement.id), "reason": reason},
                )

        logger.info("engagement.cancelled", engagement_id=str(engagement_id))
        return engagement

    async def close(self, engagement_id: uuid.UUID, actor_id: str = "SYSTEM") -> Engagement:
        """Archive a settled engagement (RELEASED|REFUNDED -> CLOSED)."""
        async with self._unit_of_work(engagement_id) as engagement:
            self._fire_transition(engagement, "close")
            await self._transition(
                engagement,
                EngagementStatus.CLOSED,
                EventType.ENGAGEMENT_CLOSED,
                actor=actor_id,
                timestamp_field="closed_at",
            )

        logger.info("engagement.closed", engagement_id=str(engagement_id))
        return engagement

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_engagement(self, engagement_id: uuid.UUID) -> Engagement:
        """Get an engagement or raise."""
        engagement = await self._engagement_repo.get_by_id(engagement_id, fresh=True)
        if engagement is None:
            raise NotFoundError("Engagement", str(engagement_id))
        return engagement

    async def get_status(self, engagement_id: uuid.UUID) -> dict:
        """Get engagement status with allowed events, gates and escrow state."""
        engagement = await self.get_engagement(engagement_id)
        escrow = await self._escrow_repo.get_current(engagement.id)
        gates = await self._approvals.gates(engagement.id)
        sm = EngagementStateMachine(current_status=engagement.status)
        return {
            "engagement_id": str(engagement.id),
            "status": engagement.status,
            "allowed_events": sm.get_allowed_events(),
            "provider_id": engagement.provider_id,
            "agreed_price": engagement.agreed_price,
            "gates": [
                {
                    "gate": g.gate,
                    "state": g.state,
                    "cleared_by": g.cleared_by,
                    "cleared_at": g.cleared_at,
                }
                for g in gates
            ],
            "gates_complete": await self._approvals.is_complete(engagement.id),
            "escrow_id": str(escrow.id) if escrow else None,
            "escrow_status": escrow.status if escrow else None,
            "rejection_count": engagement.rejection_count,
            "max_rejections": engagement.max_rejections,
        }

    async def get_events(self, engagement_id: uuid.UUID) -> list[EngagementEvent]:
        """Get audit trail."""
        await self.get_engagement(engagement_id)
        return await self._event_repo.get_by_engagement(engagement_id)

    async def get_quotes(self, engagement_id: uuid.UUID) -> list[Quote]:
        await self.get_engagement(engagement_id)
        return await self._quote_repo.get_by_engagement(engagement_id)

    async def get_submissions(self, engagement_id: uuid.UUID) -> list[WorkSubmission]:
        await self.get_engagement(engagement_id)
        return await self._submissions.list_for_engagement(engagement_id)

    async def get_escrow(self, engagement_id: uuid.UUID) -> EscrowPayment:
        await self.get_engagement(engagement_id)
        escrow = await self._escrow_repo.get_current(engagement_id)
        if escrow is None:
            raise NotFoundError("Escrow payment for engagement", str(engagement_id))
        return escrow

    async def get_customer_details(self, engagement_id: uuid.UUID, actor_id: str) -> dict:
        """Location and contact; the provider only sees them after the last gate."""
        engagement = await self.get_engagement(engagement_id)
        if actor_id == engagement.client_id:
            return {
                "location": engagement.location,
                "contact_details": engagement.contact_details,
            }
        if engagement.provider_id is None or actor_id != engagement.provider_id:
            raise ActorNotPermittedError(actor_id, "view customer details")
        return self._approvals.customer_details(engagement)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self, engagement_id: uuid.UUID) -> AsyncIterator[Engagement]:
        """Lock, load fresh, yield, commit. Notifications go out after the lock is released."""
        with structlog.contextvars.bound_contextvars(engagement_id=str(engagement_id)):
            async with self._locks.hold(engagement_id):
                try:
                    engagement = await self._engagement_repo.get_for_update(engagement_id)
                    if engagement is None:
                        raise NotFoundError("Engagement", str(engagement_id))
                    yield engagement
                    await self._session.commit()
                except Exception:
                    await self._session.rollback()
                    self._outbox.clear()
                    raise
            await self._outbox.dispatch()

    async def _transition(
        self,
        engagement: Engagement,
        new_status: EngagementStatus,
        event_type: EventType,
        actor: str,
        timestamp_field: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        """Persist a validated status change and its audit event."""
        old_status = EngagementStatus(engagement.status)
        await self._engagement_repo.update_status(engagement, new_status, timestamp_field)
        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata=metadata,
        )

    async def _record_payment_held(
        self, engagement: Engagement, escrow: EscrowPayment, actor: str
    ) -> None:
        status = EngagementStatus(engagement.status)
        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.PAYMENT_HELD,
            old_status=status,
            new_status=status,
            actor=actor,
            metadata={
                "escrow_id": str(escrow.id),
                "processor_ref": escrow.processor_ref,
                "total_amount": str(escrow.total_amount),
            },
        )

    async def _confirm_or_reverse(self, escrow: EscrowPayment) -> None:
        """Confirm a fresh hold; if that fails, let go of it before re-raising."""
        try:
            await self._ledger.confirm_hold(escrow.id)
        except ProcessorError:
            try:
                await self._processor.reverse_hold(escrow.processor_ref)
            except ProcessorError as reverse_exc:
                logger.error(
                    "engagement.hold_reverse_failed",
                    processor_ref=escrow.processor_ref,
                    error=reverse_exc.message,
                )
            raise

    async def _select_quote(self, engagement: Engagement, quote_id: uuid.UUID | None) -> Quote:
        if quote_id is None:
            pending = await self._quote_repo.get_pending(engagement.id)
            if not pending:
                raise NotFoundError("Pending quote for engagement", str(engagement.id))
            return pending[0]
        quote = await self._quote_repo.get_by_id(quote_id)
        if quote is None or quote.engagement_id != engagement.id:
            raise NotFoundError("Quote", str(quote_id))
        if quote.status != QuoteStatus.PENDING.value:
            raise InvalidTransitionError("quote", quote.status, "accept_price")
        return quote

    async def _require_live_escrow(self, engagement: Engagement) -> EscrowPayment:
        escrow = await self._escrow_repo.get_live(engagement.id)
        if escrow is None:
            raise ApprovalRequiredError("No payment is held in escrow for this engagement")
        return escrow

    def _check_gate(self, engagement: Engagement, gate: ApprovalGate, attempted: str) -> None:
        if EngagementStatus(engagement.status).is_finalized:
            raise InvalidTransitionError("engagement", engagement.status, attempted)
        check_can_clear(gate_states(engagement), gate)

    def _require_client(self, engagement: Engagement, actor_id: str, action: str) -> None:
        if actor_id != engagement.client_id:
            raise ActorNotPermittedError(actor_id, action)

    def _require_provider(self, engagement: Engagement, actor_id: str, action: str) -> None:
        if engagement.provider_id is None or actor_id != engagement.provider_id:
            raise ActorNotPermittedError(actor_id, action)

    def _is_independent_approver(self, engagement: Engagement, actor_id: str) -> bool:
        return self._approvers.is_payment_approver(actor_id) and actor_id not in (
            engagement.client_id,
            engagement.provider_id,
        )

    def _require_approver(self, engagement: Engagement, actor_id: str, action: str) -> None:
        if not self._is_independent_approver(engagement, actor_id):
            raise ActorNotPermittedError(actor_id, action)

    def _fire_transition(self, engagement: Engagement, event_name: str) -> None:
        """Validate and fire a state machine transition.

        Raises InvalidTransitionError if the transition is illegal.
        """
        sm = EngagementStateMachine(current_status=engagement.status)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidTransitionError("engagement", engagement.status, event_name)
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidTransitionError("engagement", engagement.status, event_name) from err

