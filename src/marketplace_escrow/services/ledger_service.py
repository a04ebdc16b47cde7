"""Ledger Service: custody of client funds.

Coordinates between:
    - Escrow state machine (transition guard)
    - Payment processor (hold, confirm, transfer, reverse)
    - Payout account registry (release destination)

Every transition is validated BEFORE the processor is called, so a request
that would be rejected never reaches the network. Processor failures
propagate as ProcessorError and leave the escrow row untouched.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from marketplace_escrow.config import Settings, get_settings
from marketplace_escrow.domain.approval_gates import not_yet_reason
from marketplace_escrow.domain.enums import EscrowStatus
from marketplace_escrow.domain.exceptions import (
    ApprovalRequiredError,
    InvalidTransitionError,
    NotFoundError,
)
from marketplace_escrow.domain.money import FeeSchedule, PaymentBreakdown, compute_breakdown
from marketplace_escrow.domain.state_machine import EscrowStateMachine
from marketplace_escrow.infrastructure.database.orm_models import EscrowPayment
from marketplace_escrow.infrastructure.database.repositories import (
    EngagementRepository,
    EscrowRepository,
)
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.services.approval_service import ApprovalService
from marketplace_escrow.services.payout_service import PayoutService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from marketplace_escrow.domain.capabilities import PaymentProcessor

logger = get_logger(__name__)


class LedgerService:
    """Opens, confirms, approves, releases and refunds escrow payments."""

    def __init__(
        self,
        session: AsyncSession,
        processor: PaymentProcessor,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._processor = processor
        self._settings = settings or get_settings()
        self._escrow_repo = EscrowRepository(session)
        self._engagement_repo = EngagementRepository(session)
        self._payouts = PayoutService(session)
        self._approvals = ApprovalService(session)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def fee_schedule(self, category: str | None = None) -> FeeSchedule:
        return FeeSchedule.for_category(
            platform_fee_rate=self._settings.platform_fee_rate,
            tax_rate=self._settings.tax_rate,
            overrides=self._settings.fee_overrides,
            category=category,
        )

    def breakdown(
        self, base_amount: Decimal | int | str, category: str | None = None
    ) -> PaymentBreakdown:
        return compute_breakdown(base_amount, self.fee_schedule(category))

    # ------------------------------------------------------------------
    # Custody
    # ------------------------------------------------------------------

    async def open_escrow(
        self, engagement_id: uuid.UUID, breakdown: PaymentBreakdown
    ) -> EscrowPayment:
        """Ask the processor to hold the client's total and record a PENDING escrow."""
        engagement = await self._engagement_repo.get_by_id(engagement_id)
        if engagement is None:
            raise NotFoundError("Engagement", str(engagement_id))
        if engagement.provider_id is None:
            raise ApprovalRequiredError("Cannot open escrow: no provider has been assigned yet")

        previous = await self._escrow_repo.get_by_engagement(engagement_id)
        for escrow in previous:
            if EscrowStatus(escrow.status).is_live:
                raise InvalidTransitionError("escrow", escrow.status, "open_escrow")

        hold = await self._processor.create_hold(
            total_amount=breakdown.total_amount,
            currency=self._settings.currency,
            metadata={
                "engagement_id": str(engagement_id),
                "client_id": engagement.client_id,
                "provider_id": engagement.provider_id,
                **breakdown.to_dict(),
            },
            idempotency_key=f"hold:{engagement_id}:{len(previous) + 1}",
        )

        escrow = EscrowPayment(
            engagement_id=engagement_id,
            client_id=engagement.client_id,
            provider_id=engagement.provider_id,
            currency=self._settings.currency,
            amount=breakdown.amount,
            platform_fee=breakdown.platform_fee,
            tax=breakdown.tax,
            total_amount=breakdown.total_amount,
            payout_amount=breakdown.payout_amount,
            processor_ref=hold.processor_ref,
            client_secret=hold.client_secret,
            status=EscrowStatus.PENDING.value,
        )
        escrow = await self._escrow_repo.create(escrow)

        logger.info(
            "ledger.escrow_opened",
            escrow_id=str(escrow.id),
            engagement_id=str(engagement_id),
            total=str(breakdown.total_amount),
            processor_ref=hold.processor_ref,
        )
        return escrow

    async def mark_held(
        self, escrow_id: uuid.UUID, processor_ref: str | None = None
    ) -> EscrowPayment:
        """Record that the processor confirmed the hold (PENDING -> HELD)."""
        escrow = await self._get_or_raise(escrow_id)
        self._fire_transition(escrow, "hold_confirmed")
        if processor_ref:
            escrow.processor_ref = processor_ref
        await self._escrow_repo.update_status(escrow, EscrowStatus.HELD, "held_at")
        logger.info("ledger.escrow_held", escrow_id=str(escrow_id))
        return escrow

    async def confirm_hold(self, escrow_id: uuid.UUID) -> EscrowPayment:
        """Confirm the hold with the processor, then mark it held."""
        escrow = await self._get_or_raise(escrow_id)
        self._fire_transition(escrow, "hold_confirmed")
        await self._processor.confirm_hold(escrow.processor_ref)
        return await self.mark_held(escrow_id)

    async def mark_approved(self, escrow_id: uuid.UUID, approver_id: str) -> EscrowPayment:
        """Record the payment approver's decision (HELD -> APPROVED).

        Raises:
            ApprovalRequiredError: If the engagement's gates are not all cleared.
        """
        escrow = await self._get_or_raise(escrow_id)
        if not await self._approvals.is_complete(escrow.engagement_id):
            pending = await self._approvals.next_pending(escrow.engagement_id)
            raise ApprovalRequiredError(
                f"Cannot approve payment: {not_yet_reason(pending)}"
            )

        self._fire_transition(escrow, "approve")
        escrow.approved_by = approver_id
        await self._escrow_repo.update_status(escrow, EscrowStatus.APPROVED, "approved_at")
        logger.info("ledger.escrow_approved", escrow_id=str(escrow_id), approver=approver_id)
        return escrow

    async def release(self, escrow_id: uuid.UUID) -> Decimal:
        """Transfer the payout to the provider (APPROVED -> RELEASED).

        Calling this on an already released escrow returns the same payout
        amount and does not transfer again.
        """
        escrow = await self._get_or_raise(escrow_id)
        if escrow.status == EscrowStatus.RELEASED.value:
            return escrow.payout_amount

        self._fire_transition(escrow, "release")
        account = await self._payouts.require_ready(escrow.provider_id)

        transfer_ref = await self._processor.transfer_payout(
            payout_account_ref=account.external_ref,
            payout_amount=escrow.payout_amount,
            currency=escrow.currency,
            idempotency_key=f"payout:{escrow.id}",
        )
        escrow.transfer_ref = transfer_ref
        await self._escrow_repo.update_status(escrow, EscrowStatus.RELEASED, "released_at")

        logger.info(
            "ledger.funds_released",
            escrow_id=str(escrow_id),
            payout=str(escrow.payout_amount),
            transfer_ref=transfer_ref,
        )
        return escrow.payout_amount

    async def refund(self, escrow_id: uuid.UUID, reason: str) -> EscrowPayment:
        """Reverse the hold and return the funds (HELD|APPROVED -> REFUNDED)."""
        escrow = await self._get_or_raise(escrow_id)
        self._fire_transition(escrow, "refund")

        await self._processor.reverse_hold(escrow.processor_ref)
        escrow.refund_reason = reason
        await self._escrow_repo.update_status(escrow, EscrowStatus.REFUNDED, "refunded_at")

        logger.info("ledger.funds_refunded", escrow_id=str(escrow_id), reason=reason)
        return escrow

    async def void(self, escrow_id: uuid.UUID, reason: str) -> EscrowPayment:
        """Cancel a hold that was never confirmed (PENDING -> FAILED)."""
        escrow = await self._get_or_raise(escrow_id)
        self._fire_transition(escrow, "void")

        await self._processor.reverse_hold(escrow.processor_ref)
        escrow.refund_reason = reason
        await self._escrow_repo.update_status(escrow, EscrowStatus.FAILED)

        logger.info("ledger.escrow_voided", escrow_id=str(escrow_id), reason=reason)
        return escrow

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_id: uuid.UUID) -> EscrowPayment:
        return await self._get_or_raise(escrow_id)

    async def payment_stats(self, now: datetime | None = None) -> dict:
        """Figures for the payment approver dashboard."""
        now = now or datetime.now(UTC)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)

        released = await self._escrow_repo.get_released()
        released_this_month = await self._escrow_repo.get_released(since=start_of_month)
        return {
            "pending": await self._escrow_repo.count_awaiting_approval(),
            "approved_today": await self._escrow_repo.count_approved_since(start_of_day),
            "total_released": sum((e.payout_amount for e in released), Decimal("0.00")),
            "released_this_month": len(released_this_month),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_or_raise(self, escrow_id: uuid.UUID) -> EscrowPayment:
        escrow = await self._escrow_repo.get_by_id(escrow_id)
        if escrow is None:
            raise NotFoundError("Escrow payment", str(escrow_id))
        return escrow

    def _fire_transition(self, escrow: EscrowPayment, event_name: str) -> None:
        """Validate an escrow transition; raises InvalidTransitionError if illegal."""
        sm = EscrowStateMachine(current_status=escrow.status)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidTransitionError("escrow", escrow.status, event_name)
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidTransitionError("escrow", escrow.status, event_name) from err
