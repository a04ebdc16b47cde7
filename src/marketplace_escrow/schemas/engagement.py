"""Pydantic schemas for the Engagement and Payments API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to maintain clean boundaries between the API
and database layers. Business validation (amount precision, evidence,
reasons) stays in the domain layer so every caller gets the same errors.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves these annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEngagementRequest(BaseModel):
    """Request body for a client posting a new service request."""

    client_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=3, max_length=200, examples=["Fix leaking kitchen sink"])
    description: str = Field(..., min_length=1, max_length=5000)
    category: str | None = Field(default=None, max_length=64, examples=["plumbing"])
    budget: Decimal | None = Field(default=None, description="Client's indicative budget")
    location: str | None = Field(
        default=None,
        description="Service address, hidden from the provider until details are released",
    )
    contact_details: dict | None = Field(
        default=None,
        description="Phone/email, hidden from the provider until details are released",
        examples=[{"phone": "+1 555 0100", "email": "client@example.com"}],
    )


class SubmitQuoteRequest(BaseModel):
    """Request body for a provider bidding on an engagement."""

    provider_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., description="Base price the provider asks for", examples=["100.00"])
    estimated_hours: int
    proposal: str = Field(..., description="How the provider will approach the job")
    tools_provided: str | None = None
    additional_services: str | None = None


class AcceptPriceRequest(BaseModel):
    client_id: str = Field(..., min_length=1, max_length=64)
    quote_id: uuid.UUID | None = Field(
        default=None, description="Quote to accept; defaults to the latest pending one"
    )


class ClientActionRequest(BaseModel):
    client_id: str = Field(..., min_length=1, max_length=64)


class ProviderActionRequest(BaseModel):
    provider_id: str = Field(..., min_length=1, max_length=64)


class ApproverActionRequest(BaseModel):
    approver_id: str = Field(..., min_length=1, max_length=64)


class EvidenceItemSchema(BaseModel):
    reference: str = Field(..., description="Stored evidence URL")
    description: str = ""
    original_name: str = ""


class SubmitWorkRequest(BaseModel):
    """Request body for a provider claiming the work is complete."""

    provider_id: str = Field(..., min_length=1, max_length=64)
    evidence: list[EvidenceItemSchema] = Field(default_factory=list)
    summary: str = Field(default="", max_length=5000)


class ReasonedApproverRequest(BaseModel):
    """Reject or refund: an approver plus a mandatory reason."""

    approver_id: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(default="", max_length=2000)


class CancelRequest(BaseModel):
    client_id: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(default="", max_length=2000)


class RaiseDisputeRequest(BaseModel):
    """Request body for raising a dispute against an engagement."""

    actor_id: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(default="", max_length=2000)


class CloseRequest(BaseModel):
    actor_id: str = Field(default="SYSTEM", max_length=64)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EngagementResponse(BaseModel):
    """Engagement as seen by anyone. Location and contact are never included."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    client_id: str
    provider_id: str | None
    title: str
    description: str
    category: str | None
    budget: Decimal | None
    agreed_price: Decimal | None
    status: str
    rejection_count: int
    max_rejections: int
    created_at: datetime
    updated_at: datetime


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    provider_id: str
    amount: Decimal
    estimated_hours: int
    proposal: str
    tools_provided: str | None
    additional_services: str | None
    status: str
    submitted_at: datetime


class EscrowResponse(BaseModel):
    """Response schema for an escrow payment."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    currency: str
    amount: Decimal
    platform_fee: Decimal
    tax: Decimal
    total_amount: Decimal
    payout_amount: Decimal
    processor_ref: str
    client_secret: str | None
    transfer_ref: str | None
    status: str
    approved_by: str | None
    refund_reason: str | None


class EvidenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reference: str
    description: str
    original_name: str


class WorkSubmissionResponse(BaseModel):
    """Response schema for a work submission."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    escrow_id: uuid.UUID
    provider_id: str
    attempt: int
    summary: str
    outcome: str
    reviewed_by: str | None
    review_reason: str | None
    submitted_at: datetime
    evidence: list[EvidenceResponse]


class GateResponse(BaseModel):
    gate: str
    state: str
    cleared_by: str | None
    cleared_at: datetime | None


class EngagementStatusResponse(BaseModel):
    """Lightweight status check with the events that are currently allowed."""

    engagement_id: str
    status: str
    allowed_events: list[str]
    provider_id: str | None
    agreed_price: Decimal | None
    gates: list[GateResponse]
    gates_complete: bool
    escrow_id: str | None
    escrow_status: str | None
    rejection_count: int
    max_rejections: int


class EngagementEventResponse(BaseModel):
    """Response schema for an audit trail event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata_json: dict | None = Field(default=None, serialization_alias="metadata")
    sequence: int
    created_at: datetime


class CustomerDetailsResponse(BaseModel):
    location: str | None
    contact_details: dict | None


class ApproveWorkResponse(BaseModel):
    engagement_id: uuid.UUID
    status: str
    payout_amount: Decimal


class PaymentBreakdownResponse(BaseModel):
    amount: Decimal
    platform_fee: Decimal
    tax: Decimal
    total_amount: Decimal
    payout_amount: Decimal


class PaymentStatsResponse(BaseModel):
    """Figures for the payment approver dashboard."""

    pending: int
    approved_today: int
    total_released: Decimal
    released_this_month: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
