"""Domain enumerations for the marketplace escrow engine.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class EngagementStatus(enum.StrEnum):
    """Lifecycle states of a client/provider engagement.

    Transitions are enforced by EngagementStateMachine in
    domain/state_machine.py.
    """

    REQUESTED = "REQUESTED"
    QUOTED = "QUOTED"
    PRICE_ACCEPTED = "PRICE_ACCEPTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    DETAILS_RELEASED = "DETAILS_RELEASED"
    IN_PROGRESS = "IN_PROGRESS"
    WORK_SUBMITTED = "WORK_SUBMITTED"
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"
    DISPUTED = "DISPUTED"
    REFUNDED = "REFUNDED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"

    @property
    def is_finalized(self) -> bool:
        return self in FINALIZED_ENGAGEMENT_STATUSES


FINALIZED_ENGAGEMENT_STATUSES = frozenset(
    {
        EngagementStatus.RELEASED,
        EngagementStatus.REFUNDED,
        EngagementStatus.CLOSED,
        EngagementStatus.CANCELLED,
    }
)


class EscrowStatus(enum.StrEnum):
    """Custody states of an escrow payment.

    PENDING -> HELD -> APPROVED -> RELEASED, with REFUNDED reachable from
    HELD or APPROVED. FAILED ends a hold that was never confirmed.
    """

    PENDING = "PENDING"
    HELD = "HELD"
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"

    @property
    def is_live(self) -> bool:
        """A live escrow blocks opening another one for the same engagement."""
        return self not in (EscrowStatus.REFUNDED, EscrowStatus.FAILED)


class ApprovalGate(enum.StrEnum):
    """Ordered checkpoints an engagement must clear before work starts."""

    PRICE_ACCEPTED = "PRICE_ACCEPTED"
    TASK_REVIEWED = "TASK_REVIEWED"
    CUSTOMER_DETAILS_RELEASED = "CUSTOMER_DETAILS_RELEASED"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").lower()


class GateState(enum.StrEnum):
    PENDING = "PENDING"
    CLEARED = "CLEARED"


class QuoteStatus(enum.StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    SUPERSEDED = "SUPERSEDED"
    DECLINED = "DECLINED"


class ReviewOutcome(enum.StrEnum):
    """Review state of a work submission."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AccountType(enum.StrEnum):
    CHECKING = "checking"
    SAVINGS = "savings"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the engagement_events table.

    Every engagement transition produces exactly one event. The table is the
    append-only forensic trail for disputes.
    """

    # Negotiation
    ENGAGEMENT_CREATED = "ENGAGEMENT_CREATED"
    QUOTE_SUBMITTED = "QUOTE_SUBMITTED"

    # Approval gates
    PRICE_ACCEPTED = "PRICE_ACCEPTED"
    TASK_REVIEWED = "TASK_REVIEWED"
    CUSTOMER_DETAILS_RELEASED = "CUSTOMER_DETAILS_RELEASED"

    # Custody
    PAYMENT_HELD = "PAYMENT_HELD"

    # Work
    WORK_STARTED = "WORK_STARTED"
    WORK_SUBMITTED = "WORK_SUBMITTED"
    WORK_APPROVED = "WORK_APPROVED"
    WORK_REJECTED = "WORK_REJECTED"
    REJECTION_LIMIT_REACHED = "REJECTION_LIMIT_REACHED"

    # Settlement
    FUNDS_RELEASED = "FUNDS_RELEASED"
    FUNDS_REFUNDED = "FUNDS_REFUNDED"

    # Exceptional paths
    DISPUTE_RAISED = "DISPUTE_RAISED"
    ENGAGEMENT_CANCELLED = "ENGAGEMENT_CANCELLED"
    ENGAGEMENT_CLOSED = "ENGAGEMENT_CLOSED"


class NotificationKind(enum.StrEnum):
    """Event kinds handed to the notification capability."""

    QUOTE_RECEIVED = "quote_received"
    QUOTE_ACCEPTED = "quote_accepted"
    TASK_REVIEWED = "task_reviewed"
    CUSTOMER_DETAILS_RELEASED = "customer_details_released"
    WORK_STARTED = "work_started"
    WORK_SUBMITTED = "work_submitted"
    WORK_REJECTED = "work_rejected"
    PAYMENT_RELEASED = "payment_released"
    PAYMENT_REFUNDED = "payment_refunded"
    DISPUTE_RAISED = "dispute_raised"
    ENGAGEMENT_CANCELLED = "engagement_cancelled"
