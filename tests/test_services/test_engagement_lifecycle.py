"""Service-level tests for the engagement lifecycle.

Runs the real EngagementService against in-memory SQLite with the simulated
payment processor, covering the gated happy path, payout readiness, evidence
rules, rejection and dispute handling, and the refund/approve race.
"""

from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal

import pytest

from marketplace_escrow.domain.enums import (
    EngagementStatus,
    EscrowStatus,
    EventType,
    NotificationKind,
    QuoteStatus,
)
from marketplace_escrow.domain.exceptions import (
    ActorNotPermittedError,
    ApprovalRequiredError,
    EvidenceRequiredError,
    EvidenceStorageUnavailableError,
    InvalidAmountError,
    InvalidEvidenceError,
    InvalidTransitionError,
    NotFoundError,
    OutOfOrderApprovalError,
    PayoutAccountNotReadyError,
    ProcessorError,
    ReasonRequiredError,
)
from marketplace_escrow.domain.inputs import EvidenceItem

CLIENT = "client-1"
PROVIDER = "provider-1"
OTHER_PROVIDER = "provider-2"
APPROVER = "approver-1"
SECOND_APPROVER = "approver-2"
PROPOSAL = "Replace the leaking kitchen faucet and reseal the sink basin"


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_lifecycle_releases_payout(
        self, service, processor, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()

        payout = await service.approve_work(engagement_id, APPROVER)

        assert payout == Decimal("85.00")
        escrow = await service.get_escrow(engagement_id)
        assert escrow.status == EscrowStatus.RELEASED
        assert escrow.total_amount == Decimal("123.00")
        assert escrow.transfer_ref == "tr_0001"
        assert len(processor.transfers) == 1
        assert processor.transfers[0].payout_amount == Decimal("85.00")

        engagement = await service.get_engagement(engagement_id)
        assert engagement.status == EngagementStatus.RELEASED
        assert engagement.released_at is not None

    @pytest.mark.asyncio
    async def test_audit_trail_in_order(
        self, service, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()
        await service.approve_work(engagement_id, APPROVER)

        events = await service.get_events(engagement_id)
        assert [e.event_type for e in events] == [
            EventType.ENGAGEMENT_CREATED,
            EventType.QUOTE_SUBMITTED,
            EventType.PRICE_ACCEPTED,
            EventType.PAYMENT_HELD,
            EventType.TASK_REVIEWED,
            EventType.CUSTOMER_DETAILS_RELEASED,
            EventType.WORK_STARTED,
            EventType.WORK_SUBMITTED,
            EventType.WORK_APPROVED,
            EventType.FUNDS_RELEASED,
        ]
        assert [e.sequence for e in events] == list(range(1, 11))
        assert events[-1].actor == APPROVER
        assert events[-1].metadata_json["payout_amount"] == "85.00"

    @pytest.mark.asyncio
    async def test_close_after_release(
        self, service, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()
        await service.approve_work(engagement_id, APPROVER)

        engagement = await service.close(engagement_id)
        assert engagement.status == EngagementStatus.CLOSED

    @pytest.mark.asyncio
    async def test_status_snapshot(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)

        status = await service.get_status(engagement_id)
        assert status["status"] == "PRICE_ACCEPTED"
        assert status["provider_id"] == PROVIDER
        assert status["escrow_status"] == "HELD"
        assert "review_task" in status["allowed_events"]
        assert [g["state"] for g in status["gates"]] == ["CLEARED", "PENDING", "PENDING"]
        assert status["gates_complete"] is False


class TestCreateAndQuote:
    @pytest.mark.asyncio
    async def test_create_engagement(self, service) -> None:
        engagement = await service.create_engagement(
            client_id=CLIENT, title="Mount a TV", description="65 inch on drywall"
        )
        assert engagement.status == EngagementStatus.REQUESTED
        assert engagement.max_rejections == 3
        assert len(engagement.gates) == 3

    @pytest.mark.asyncio
    async def test_negative_budget_rejected(self, service) -> None:
        with pytest.raises(InvalidAmountError):
            await service.create_engagement(
                client_id=CLIENT, title="Mount a TV", description="65 inch", budget="-10"
            )

    @pytest.mark.asyncio
    async def test_client_cannot_quote_own_request(self, service) -> None:
        engagement = await service.create_engagement(
            client_id=CLIENT, title="Mount a TV", description="65 inch on drywall"
        )
        engagement_id = engagement.id
        with pytest.raises(ActorNotPermittedError):
            await service.submit_quote(engagement_id, CLIENT, "50", 1, PROPOSAL)
        assert (await service.get_engagement(engagement_id)).status == EngagementStatus.REQUESTED

    @pytest.mark.asyncio
    async def test_requote_supersedes_previous(self, service, notifier, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.submit_quote(engagement_id, PROVIDER, "90.00", 2, PROPOSAL)

        quotes = await service.get_quotes(engagement_id)
        statuses = sorted(q.status for q in quotes)
        assert statuses == [QuoteStatus.PENDING, QuoteStatus.SUPERSEDED]
        assert notifier.kinds().count(NotificationKind.QUOTE_RECEIVED) == 2

    @pytest.mark.asyncio
    async def test_accept_specific_quote_declines_others(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        other = await service.submit_quote(engagement_id, OTHER_PROVIDER, "120.00", 3, PROPOSAL)

        escrow = await service.accept_price(engagement_id, CLIENT, quote_id=other.id)

        assert escrow.total_amount == Decimal("147.60")
        engagement = await service.get_engagement(engagement_id)
        assert engagement.provider_id == OTHER_PROVIDER
        assert engagement.agreed_price == Decimal("120.00")
        by_provider = {q.provider_id: q.status for q in await service.get_quotes(engagement_id)}
        assert by_provider == {PROVIDER: QuoteStatus.DECLINED, OTHER_PROVIDER: QuoteStatus.ACCEPTED}

    @pytest.mark.asyncio
    async def test_accept_without_quotes(self, service) -> None:
        engagement = await service.create_engagement(
            client_id=CLIENT, title="Mount a TV", description="65 inch on drywall"
        )
        with pytest.raises(NotFoundError):
            await service.accept_price(engagement.id, CLIENT)

    @pytest.mark.asyncio
    async def test_no_quotes_after_price_accepted(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)
        with pytest.raises(InvalidTransitionError):
            await service.submit_quote(engagement_id, OTHER_PROVIDER, "70.00", 1, PROPOSAL)

    @pytest.mark.asyncio
    async def test_unknown_engagement(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.submit_quote(uuid.uuid4(), PROVIDER, "70.00", 1, PROPOSAL)


class TestApprovalGates:
    @pytest.mark.asyncio
    async def test_review_before_price_is_out_of_order(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        with pytest.raises(OutOfOrderApprovalError):
            await service.approve_task_review(engagement_id, PROVIDER)
        assert (await service.get_engagement(engagement_id)).status == EngagementStatus.QUOTED

    @pytest.mark.asyncio
    async def test_details_before_review_is_out_of_order(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)

        with pytest.raises(OutOfOrderApprovalError):
            await service.release_customer_details(engagement_id, CLIENT)
        engagement = await service.get_engagement(engagement_id)
        assert engagement.status == EngagementStatus.PRICE_ACCEPTED

    @pytest.mark.asyncio
    async def test_price_cannot_be_accepted_twice(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)
        with pytest.raises(OutOfOrderApprovalError):
            await service.accept_price(engagement_id, CLIENT)

    @pytest.mark.asyncio
    async def test_only_client_accepts_price(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        with pytest.raises(ActorNotPermittedError):
            await service.accept_price(engagement_id, PROVIDER)

    @pytest.mark.asyncio
    async def test_only_assigned_provider_reviews(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)
        with pytest.raises(ActorNotPermittedError):
            await service.approve_task_review(engagement_id, OTHER_PROVIDER)

    @pytest.mark.asyncio
    async def test_customer_details_hidden_until_released(
        self, service, notifier, quoted_engagement
    ) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)
        await service.approve_task_review(engagement_id, PROVIDER)

        with pytest.raises(ApprovalRequiredError):
            await service.get_customer_details(engagement_id, PROVIDER)

        await service.release_customer_details(engagement_id, CLIENT)
        details = await service.get_customer_details(engagement_id, PROVIDER)
        assert details["location"] == "12 Elm Street, Springfield"
        assert details["contact_details"] == {"phone": "555-0100"}

        sent = [
            n for n in notifier.for_user(PROVIDER)
            if n.event_kind == NotificationKind.CUSTOMER_DETAILS_RELEASED
        ]
        assert len(sent) == 1
        assert sent[0].payload["location"] == "12 Elm Street, Springfield"

    @pytest.mark.asyncio
    async def test_strangers_never_see_customer_details(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        assert (await service.get_customer_details(engagement_id, CLIENT))["location"]
        with pytest.raises(ActorNotPermittedError):
            await service.get_customer_details(engagement_id, "someone-else")


class TestWork:
    @pytest.mark.asyncio
    async def test_empty_evidence_rejected(self, service, engagement_in_progress) -> None:
        engagement_id = await engagement_in_progress()
        with pytest.raises(EvidenceRequiredError):
            await service.submit_work(engagement_id, PROVIDER, [])
        engagement = await service.get_engagement(engagement_id)
        assert engagement.status == EngagementStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_submission_keeps_evidence(
        self, service, notifier, engagement_in_progress, evidence
    ) -> None:
        engagement_id = await engagement_in_progress()
        await service.submit_work(engagement_id, PROVIDER, evidence, summary="Done")

        [submission] = await service.get_submissions(engagement_id)
        assert submission.attempt == 1
        assert submission.evidence[0].reference == "memory://evidence/after.jpg"
        approver_kinds = {n.user_id for n in notifier.sent if n.event_kind == "work_submitted"}
        assert approver_kinds == {APPROVER, SECOND_APPROVER}

    @pytest.mark.asyncio
    async def test_uploaded_evidence(self, service, engagement_in_progress) -> None:
        engagement_id = await engagement_in_progress()
        item = await service.submissions.evidence_from_upload(
            b"\xff\xd8jpeg-bytes", "after.jpg", description="Finished", content_type="image/jpeg"
        )
        assert item.reference.startswith("memory://evidence/")

        submission = await service.submit_work(engagement_id, PROVIDER, [item])
        assert submission.evidence[0].original_name == "after.jpg"

    @pytest.mark.asyncio
    async def test_only_provider_submits(self, service, engagement_in_progress, evidence) -> None:
        engagement_id = await engagement_in_progress()
        with pytest.raises(ActorNotPermittedError):
            await service.submit_work(engagement_id, CLIENT, evidence)

    @pytest.mark.asyncio
    async def test_cannot_submit_before_work_starts(self, service, quoted_engagement, evidence) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)
        with pytest.raises(InvalidTransitionError):
            await service.submit_work(engagement_id, PROVIDER, evidence)


class TestPayoutReadiness:
    @pytest.mark.asyncio
    async def test_unverified_account_keeps_approval(
        self, service, processor, payouts, session, submitted_engagement, register_payout_account
    ) -> None:
        account_id = await register_payout_account(verified=False)
        engagement_id = await submitted_engagement()

        with pytest.raises(PayoutAccountNotReadyError):
            await service.approve_work(engagement_id, APPROVER)

        escrow = await service.get_escrow(engagement_id)
        assert escrow.status == EscrowStatus.APPROVED
        assert (await service.get_engagement(engagement_id)).status == EngagementStatus.APPROVED
        assert processor.transfers == []

        await payouts.verify(account_id)
        await session.commit()

        payout = await service.approve_work(engagement_id, APPROVER)
        assert payout == Decimal("85.00")
        assert (await service.get_escrow(engagement_id)).status == EscrowStatus.RELEASED
        assert len(processor.transfers) == 1

    @pytest.mark.asyncio
    async def test_missing_account(self, service, submitted_engagement) -> None:
        engagement_id = await submitted_engagement()
        with pytest.raises(PayoutAccountNotReadyError, match="no active payout account"):
            await service.approve_work(engagement_id, APPROVER)

    @pytest.mark.asyncio
    async def test_transfer_failure_can_be_retried(
        self, service, processor, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()
        processor.fail_next("transfer_payout")

        with pytest.raises(ProcessorError):
            await service.approve_work(engagement_id, APPROVER)
        assert (await service.get_escrow(engagement_id)).status == EscrowStatus.APPROVED

        assert await service.approve_work(engagement_id, APPROVER) == Decimal("85.00")
        assert len(processor.transfers) == 1


class TestReleaseAndRefund:
    @pytest.mark.asyncio
    async def test_release_is_idempotent(
        self, service, processor, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()

        first = await service.approve_work(engagement_id, APPROVER)
        second = await service.approve_work(engagement_id, APPROVER)
        escrow = await service.get_escrow(engagement_id)
        third = await service.ledger.release(escrow.id)

        assert first == second == third == Decimal("85.00")
        assert len(processor.transfers) == 1

    @pytest.mark.asyncio
    async def test_no_refund_after_release(
        self, service, processor, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()
        await service.approve_work(engagement_id, APPROVER)

        with pytest.raises(InvalidTransitionError):
            await service.refund(engagement_id, SECOND_APPROVER, "client changed their mind")

        escrow = await service.get_escrow(engagement_id)
        assert escrow.status == EscrowStatus.RELEASED
        assert processor.holds[escrow.processor_ref].status == "held"

    @pytest.mark.asyncio
    async def test_ledger_refuses_refund_of_released_escrow(
        self, service, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()
        await service.approve_work(engagement_id, APPROVER)
        escrow = await service.get_escrow(engagement_id)

        with pytest.raises(InvalidTransitionError, match="escrow is RELEASED"):
            await service.ledger.refund(escrow.id, "too late")

    @pytest.mark.asyncio
    async def test_refund_held_escrow(self, service, processor, notifier, submitted_engagement) -> None:
        engagement_id = await submitted_engagement()

        escrow = await service.refund(engagement_id, APPROVER, "provider never showed up")

        assert escrow.status == EscrowStatus.REFUNDED
        assert escrow.refund_reason == "provider never showed up"
        assert processor.holds[escrow.processor_ref].status == "canceled"
        assert (await service.get_engagement(engagement_id)).status == EngagementStatus.REFUNDED
        assert NotificationKind.PAYMENT_REFUNDED in notifier.kinds()

    @pytest.mark.asyncio
    async def test_refund_needs_reason(self, service, submitted_engagement) -> None:
        engagement_id = await submitted_engagement()
        with pytest.raises(ReasonRequiredError):
            await service.refund(engagement_id, APPROVER, " ")

    @pytest.mark.asyncio
    async def test_refund_and_approve_race(
        self, session_factory, make_service, processor, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()

        async with session_factory() as first, session_factory() as second:
            results = await asyncio.gather(
                make_service(first).refund(engagement_id, APPROVER, "client complaint"),
                make_service(second).approve_work(engagement_id, SECOND_APPROVER),
                return_exceptions=True,
            )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidTransitionError)

        async with session_factory() as check:
            escrow = await make_service(check).get_escrow(engagement_id)
            assert escrow.status in (EscrowStatus.REFUNDED, EscrowStatus.RELEASED)
            if escrow.status == EscrowStatus.REFUNDED:
                assert processor.transfers == []
            else:
                assert len(processor.transfers) == 1


class TestApproverRules:
    @pytest.mark.asyncio
    async def test_client_cannot_approve(self, service, submitted_engagement) -> None:
        engagement_id = await submitted_engagement()
        with pytest.raises(ActorNotPermittedError):
            await service.approve_work(engagement_id, CLIENT)

    @pytest.mark.asyncio
    async def test_unknown_user_cannot_refund(self, service, submitted_engagement) -> None:
        engagement_id = await submitted_engagement()
        with pytest.raises(ActorNotPermittedError):
            await service.refund(engagement_id, "mallory", "because")

    @pytest.mark.asyncio
    async def test_cannot_approve_before_submission(
        self, service, engagement_in_progress, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await engagement_in_progress()
        with pytest.raises(InvalidTransitionError):
            await service.approve_work(engagement_id, APPROVER)


class TestRejections:
    @pytest.mark.asyncio
    async def test_rejection_returns_work(
        self, service, notifier, submitted_engagement, evidence
    ) -> None:
        engagement_id = await submitted_engagement()

        engagement = await service.reject_work(engagement_id, APPROVER, "Photos are blurry")
        assert engagement.status == EngagementStatus.IN_PROGRESS
        assert engagement.rejection_count == 1

        rejected = [n for n in notifier.for_user(PROVIDER) if n.event_kind == "work_rejected"]
        assert rejected[0].payload["rejections_left"] == 2

        await service.submit_work(engagement_id, PROVIDER, evidence, summary="Retook photos")
        submissions = await service.get_submissions(engagement_id)
        assert [s.attempt for s in submissions] == [2, 1]
        assert submissions[1].outcome == "REJECTED"
        assert submissions[1].review_reason == "Photos are blurry"

    @pytest.mark.asyncio
    async def test_rejection_needs_reason(self, service, submitted_engagement) -> None:
        engagement_id = await submitted_engagement()
        with pytest.raises(ReasonRequiredError):
            await service.reject_work(engagement_id, APPROVER, "")

    @pytest.mark.asyncio
    async def test_rejection_cap_forces_dispute(
        self, service, notifier, submitted_engagement, evidence
    ) -> None:
        engagement_id = await submitted_engagement()
        await service.reject_work(engagement_id, APPROVER, "Still leaking")
        await service.submit_work(engagement_id, PROVIDER, evidence)
        await service.reject_work(engagement_id, APPROVER, "Still leaking")
        await service.submit_work(engagement_id, PROVIDER, evidence)

        engagement = await service.reject_work(engagement_id, SECOND_APPROVER, "Still leaking")

        assert engagement.status == EngagementStatus.DISPUTED
        assert engagement.rejection_count == 3
        events = await service.get_events(engagement_id)
        assert events[-1].event_type == EventType.REJECTION_LIMIT_REACHED
        assert events[-1].actor == SECOND_APPROVER
        disputed_users = {n.user_id for n in notifier.sent if n.event_kind == "dispute_raised"}
        assert disputed_users == {CLIENT, PROVIDER}

    @pytest.mark.asyncio
    async def test_dispute_resolved_by_approval(
        self, service, processor, submitted_engagement, register_payout_account
    ) -> None:
        await register_payout_account()
        engagement_id = await submitted_engagement()
        await service.dispute(engagement_id, CLIENT, "Sink still drips")

        assert await service.approve_work(engagement_id, APPROVER) == Decimal("85.00")
        assert len(processor.transfers) == 1


class TestDisputes:
    @pytest.mark.asyncio
    async def test_client_disputes_in_progress_work(
        self, service, notifier, engagement_in_progress
    ) -> None:
        engagement_id = await engagement_in_progress()
        engagement = await service.dispute(engagement_id, CLIENT, "Provider damaged the cabinet")

        assert engagement.status == EngagementStatus.DISPUTED
        assert [n.event_kind for n in notifier.for_user(PROVIDER)][-1] == "dispute_raised"
        escrow = await service.get_escrow(engagement_id)
        assert escrow.status == EscrowStatus.HELD

    @pytest.mark.asyncio
    async def test_dispute_then_refund_then_close(self, service, engagement_in_progress) -> None:
        engagement_id = await engagement_in_progress()
        await service.dispute(engagement_id, PROVIDER, "Client keeps changing scope")
        await service.refund(engagement_id, APPROVER, "Mutual agreement")

        engagement = await service.close(engagement_id, actor_id=APPROVER)
        assert engagement.status == EngagementStatus.CLOSED

    @pytest.mark.asyncio
    async def test_outsider_cannot_dispute(self, service, engagement_in_progress) -> None:
        engagement_id = await engagement_in_progress()
        with pytest.raises(ActorNotPermittedError):
            await service.dispute(engagement_id, "neighbour", "Too noisy")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_refunds_held_funds(
        self, service, processor, notifier, quoted_engagement
    ) -> None:
        engagement_id = await quoted_engagement()
        await service.accept_price(engagement_id, CLIENT)

        engagement = await service.cancel(engagement_id, CLIENT, "Found someone closer")

        assert engagement.status == EngagementStatus.CANCELLED
        escrow = await service.get_escrow(engagement_id)
        assert escrow.status == EscrowStatus.REFUNDED
        assert processor.holds[escrow.processor_ref].status == "canceled"
        assert NotificationKind.ENGAGEMENT_CANCELLED in [
            n.event_kind for n in notifier.for_user(PROVIDER)
        ]

    @pytest.mark.asyncio
    async def test_cancel_declines_open_quotes(self, service, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        await service.cancel(engagement_id, CLIENT, "No longer needed")
        [quote] = await service.get_quotes(engagement_id)
        assert quote.status == QuoteStatus.DECLINED

    @pytest.mark.asyncio
    async def test_cannot_cancel_once_work_started(self, service, engagement_in_progress) -> None:
        engagement_id = await engagement_in_progress()
        with pytest.raises(InvalidTransitionError):
            await service.cancel(engagement_id, CLIENT, "Changed my mind")


class TestManualHoldConfirmation:
    @pytest.fixture
    def manual_service(self, session, make_service, settings):
        return make_service(session, settings=settings.model_copy(update={"auto_confirm_holds": False}))

    @pytest.mark.asyncio
    async def test_work_waits_for_confirmed_hold(self, manual_service) -> None:
        engagement = await manual_service.create_engagement(
            client_id=CLIENT, title="Paint fence", description="Twenty metres of picket fence"
        )
        engagement_id = engagement.id
        await manual_service.submit_quote(engagement_id, PROVIDER, "100.00", 5, PROPOSAL)

        escrow = await manual_service.accept_price(engagement_id, CLIENT)
        assert escrow.status == EscrowStatus.PENDING
        await manual_service.approve_task_review(engagement_id, PROVIDER)
        await manual_service.release_customer_details(engagement_id, CLIENT)

        with pytest.raises(ApprovalRequiredError, match="not been secured"):
            await manual_service.begin_work(engagement_id, PROVIDER)

        escrow = await manual_service.confirm_payment(engagement_id, CLIENT)
        assert escrow.status == EscrowStatus.HELD
        engagement = await manual_service.begin_work(engagement_id, PROVIDER)
        assert engagement.status == EngagementStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_cancel_voids_pending_hold(self, manual_service, processor) -> None:
        engagement = await manual_service.create_engagement(
            client_id=CLIENT, title="Paint fence", description="Twenty metres of picket fence"
        )
        engagement_id = engagement.id
        await manual_service.submit_quote(engagement_id, PROVIDER, "100.00", 5, PROPOSAL)
        await manual_service.accept_price(engagement_id, CLIENT)

        await manual_service.cancel(engagement_id, CLIENT, "Weather")

        escrow = await manual_service.get_escrow(engagement_id)
        assert escrow.status == EscrowStatus.FAILED
        assert processor.holds[escrow.processor_ref].status == "canceled"


class TestProcessorFailures:
    @pytest.mark.asyncio
    async def test_failed_hold_confirmation_rolls_back(
        self, service, processor, quoted_engagement
    ) -> None:
        engagement_id = await quoted_engagement()
        processor.fail_next("confirm_hold")

        with pytest.raises(ProcessorError):
            await service.accept_price(engagement_id, CLIENT)

        engagement = await service.get_engagement(engagement_id)
        assert engagement.status == EngagementStatus.QUOTED
        assert engagement.provider_id is None
        assert processor.holds["hold_0001"].status == "canceled"

        escrow = await service.accept_price(engagement_id, CLIENT)
        assert escrow.status == EscrowStatus.HELD


class TestNotifications:
    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_operation(
        self, session, make_service
    ) -> None:
        class BrokenNotifier:
            async def notify(self, user_id, event_kind, payload) -> None:
                raise ConnectionError("push gateway unreachable")

        service = make_service(session, notifier=BrokenNotifier())
        engagement = await service.create_engagement(
            client_id=CLIENT, title="Mount a TV", description="65 inch on drywall"
        )
        engagement_id = engagement.id
        quote = await service.submit_quote(engagement_id, PROVIDER, "60.00", 1, PROPOSAL)

        assert quote.status == QuoteStatus.PENDING
        assert (await service.get_engagement(engagement_id)).status == EngagementStatus.QUOTED

    @pytest.mark.asyncio
    async def test_failed_operation_sends_nothing(self, service, notifier, quoted_engagement) -> None:
        engagement_id = await quoted_engagement()
        before = len(notifier.sent)
        with pytest.raises(ActorNotPermittedError):
            await service.accept_price(engagement_id, "not-the-client")
        assert len(notifier.sent) == before


class TestEvidenceItemRules:
    @pytest.mark.asyncio
    async def test_blank_reference_keeps_status(self, service, engagement_in_progress) -> None:
        engagement_id = await engagement_in_progress()
        with pytest.raises(InvalidEvidenceError):
            await service.submit_work(engagement_id, PROVIDER, [EvidenceItem(reference="")])
        assert (await service.get_engagement(engagement_id)).status == EngagementStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_upload_without_store(self, session, make_service) -> None:
        service = make_service(session, evidence_store=None)
        with pytest.raises(EvidenceStorageUnavailableError, match="not available"):
            await service.submissions.evidence_from_upload(b"jpeg-bytes", "after.jpg")
