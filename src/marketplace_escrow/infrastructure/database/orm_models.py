"""SQLAlchemy 2.0 ORM models for the marketplace escrow engine.

Tables:
    1. engagements         - The aggregate root: one client/provider engagement.
    2. quotes              - Provider bids (append-only, superseded not deleted).
    3. approval_gates      - The three ordered gates of each engagement.
    4. escrow_payments     - Money custody records (old ones kept for audit).
    5. work_submissions    - Completion claims, one per attempt.
    6. evidence_items      - Photo/file references attached to a submission.
    7. payout_accounts     - Provider payout destinations.
    8. engagement_events   - Append-only audit log of every transition.

Design decisions:
    - UUIDs as primary keys.
    - Numeric(12, 2) for money; Decimal end to end.
    - JSON columns (JSONB on PostgreSQL) for contact details and event metadata.
    - CHECK constraints on status columns and amounts.
    - Children reference engagements with ON DELETE CASCADE.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from marketplace_escrow.domain.enums import (
    ApprovalGate,
    EngagementStatus,
    EscrowStatus,
    GateState,
    QuoteStatus,
    ReviewOutcome,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _in_check(column: str, values: type) -> str:
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. engagements
# ---------------------------------------------------------------------------
class Engagement(Base):
    """A client/provider service engagement from request to closure."""

    __tablename__ = "engagements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        default=None,
        comment="Assigned provider (set when a quote is accepted)",
    )

    # --- Task ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    budget: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    location: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Service address; released to the provider after the last gate",
    )
    contact_details: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Client phone/email; released to the provider after the last gate",
    )
    agreed_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    # --- Lifecycle ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EngagementStatus.REQUESTED.value,
        comment="Current lifecycle state (guarded by EngagementStateMachine)",
    )
    rejection_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_rejections: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=3,
        comment="Rejected submissions allowed before the engagement is disputed",
    )

    # --- Transition timestamps ---
    quoted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    price_accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    details_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    work_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    work_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # --- Relationships ---
    gates: Mapped[list[ApprovalGateRecord]] = relationship(
        "ApprovalGateRecord",
        back_populates="engagement",
        cascade="all, delete-orphan",
        order_by="ApprovalGateRecord.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(_in_check("status", EngagementStatus), name="ck_engagement_valid_status"),
        CheckConstraint(
            "rejection_count >= 0 AND rejection_count <= max_rejections",
            name="ck_engagement_rejection_bounds",
        ),
        Index("idx_engagement_status", "status"),
        Index("idx_engagement_client", "client_id"),
        Index("idx_engagement_provider", "provider_id"),
    )

    def __repr__(self) -> str:
        return f"<Engagement id={self.id} status={self.status} provider={self.provider_id}>"


# ---------------------------------------------------------------------------
# 2. quotes
# ---------------------------------------------------------------------------
class Quote(Base):
    """A provider's proposed price for an engagement."""

    __tablename__ = "quotes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    estimated_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    proposal: Mapped[str] = mapped_column(Text, nullable=False)
    tools_provided: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_services: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuoteStatus.PENDING.value
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(_in_check("status", QuoteStatus), name="ck_quote_valid_status"),
        CheckConstraint("amount > 0", name="ck_quote_positive_amount"),
        Index("idx_quote_engagement", "engagement_id"),
    )

    def __repr__(self) -> str:
        return f"<Quote id={self.id} amount={self.amount} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. approval_gates
# ---------------------------------------------------------------------------
class ApprovalGateRecord(Base):
    """One checkpoint of an engagement's approval gate sequence."""

    __tablename__ = "approval_gates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    gate: Mapped[str] = mapped_column(String(32), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(10), nullable=False, default=GateState.PENDING.value)
    cleared_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    engagement: Mapped[Engagement] = relationship("Engagement", back_populates="gates")

    __table_args__ = (
        CheckConstraint(_in_check("gate", ApprovalGate), name="ck_gate_valid_gate"),
        CheckConstraint(_in_check("state", GateState), name="ck_gate_valid_state"),
        Index("uq_gate_engagement_gate", "engagement_id", "gate", unique=True),
    )

    def __repr__(self) -> str:
        return f"<ApprovalGate {self.gate}={self.state} engagement={self.engagement_id}>"


# ---------------------------------------------------------------------------
# 4. escrow_payments
# ---------------------------------------------------------------------------
class EscrowPayment(Base):
    """Custody record for the client's funds.

    A refunded or failed record is never overwritten; a retried engagement
    gets a new row.
    """

    __tablename__ = "escrow_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Financials ---
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, comment="Charged to the client"
    )
    payout_amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, comment="Owed to the provider"
    )

    # --- Processor references ---
    processor_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    client_secret: Mapped[str | None] = mapped_column(String(256), nullable=True)
    transfer_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=EscrowStatus.PENDING.value,
        comment="Custody state (guarded by EscrowStateMachine)",
    )
    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    held_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(_in_check("status", EscrowStatus), name="ck_escrow_valid_status"),
        CheckConstraint("amount > 0", name="ck_escrow_positive_amount"),
        CheckConstraint("payout_amount <= amount", name="ck_escrow_payout_within_amount"),
        Index("idx_escrow_engagement", "engagement_id"),
        Index("idx_escrow_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowPayment id={self.id} status={self.status} "
            f"total={self.total_amount} payout={self.payout_amount}>"
        )


# ---------------------------------------------------------------------------
# 5. work_submissions / 6. evidence_items
# ---------------------------------------------------------------------------
class WorkSubmission(Base):
    """A provider's claim that the work is done, with evidence."""

    __tablename__ = "work_submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_payments.id", ondelete="CASCADE"), nullable=False
    )
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # --- Review ---
    outcome: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ReviewOutcome.PENDING.value
    )
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    review_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    evidence: Mapped[list[EvidenceRecord]] = relationship(
        "EvidenceRecord",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="EvidenceRecord.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(_in_check("outcome", ReviewOutcome), name="ck_submission_valid_outcome"),
        Index("idx_submission_engagement", "engagement_id"),
    )

    def __repr__(self) -> str:
        return f"<WorkSubmission id={self.id} attempt={self.attempt} outcome={self.outcome}>"


class EvidenceRecord(Base):
    """Reference to one stored evidence blob. The blob itself lives elsewhere."""

    __tablename__ = "evidence_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("work_submissions.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    reference: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    original_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    submission: Mapped[WorkSubmission] = relationship("WorkSubmission", back_populates="evidence")


# ---------------------------------------------------------------------------
# 7. payout_accounts
# ---------------------------------------------------------------------------
class PayoutAccount(Base):
    """Where a provider's released funds are sent."""

    __tablename__ = "payout_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    external_ref: Mapped[str] = mapped_column(
        String(128), nullable=False, comment="Processor-side connected account id"
    )
    account_holder_name: Mapped[str] = mapped_column(String(200), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_last4: Mapped[str] = mapped_column(String(4), nullable=False)
    routing_number: Mapped[str] = mapped_column(String(9), nullable=False)
    account_type: Mapped[str] = mapped_column(String(10), nullable=False, default="checking")
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("account_type IN ('checking', 'savings')", name="ck_payout_account_type"),
        Index("idx_payout_provider", "provider_id"),
    )

    @property
    def is_ready(self) -> bool:
        return self.verified and self.active

    def __repr__(self) -> str:
        return (
            f"<PayoutAccount id={self.id} provider={self.provider_id} "
            f"verified={self.verified} active={self.active}>"
        )


# ---------------------------------------------------------------------------
# 8. engagement_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EngagementEvent(Base):
    """Immutable audit record of every engagement transition.

    APPEND-ONLY. No UPDATE or DELETE at the application level.
    """

    __tablename__ = "engagement_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(String(64), nullable=False, default="SYSTEM")
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
    )
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Per-engagement ordinal, keeps order stable"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_event_engagement", "engagement_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<EngagementEvent type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


event.listen(Engagement, "before_update", _set_updated_at)
event.listen(EscrowPayment, "before_update", _set_updated_at)
event.listen(PayoutAccount, "before_update", _set_updated_at)
