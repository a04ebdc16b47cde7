"""Engagement REST API routes.

These endpoints provide the HTTP interface for the whole engagement
lifecycle. They are thin: every rule lives in EngagementService.

Routes:
    POST   /api/v1/engagements                        - Post a service request
    GET    /api/v1/engagements/{id}                   - Engagement details
    GET    /api/v1/engagements/{id}/status            - Status, gates, allowed events
    GET    /api/v1/engagements/{id}/events            - Audit trail
    GET    /api/v1/engagements/{id}/quotes            - Quotes received
    GET    /api/v1/engagements/{id}/submissions       - Work submissions
    GET    /api/v1/engagements/{id}/escrow            - Current escrow payment
    GET    /api/v1/engagements/{id}/customer-details  - Location/contact (gated)
    POST   /api/v1/engagements/{id}/quotes            - Provider submits a quote
    POST   /api/v1/engagements/{id}/accept-price      - Client accepts a quote
    POST   /api/v1/engagements/{id}/confirm-payment   - Client confirms the hold
    POST   /api/v1/engagements/{id}/review-task       - Provider confirms the scope
    POST   /api/v1/engagements/{id}/release-details   - Client releases details
    POST   /api/v1/engagements/{id}/start             - Provider begins work
    POST   /api/v1/engagements/{id}/submit-work       - Provider submits evidence
    POST   /api/v1/engagements/{id}/approve           - Approver approves + releases
    POST   /api/v1/engagements/{id}/reject            - Approver rejects the work
    POST   /api/v1/engagements/{id}/dispute           - Raise a dispute
    POST   /api/v1/engagements/{id}/refund            - Approver refunds
    POST   /api/v1/engagements/{id}/cancel            - Client cancels
    POST   /api/v1/engagements/{id}/close             - Archive a settled engagement
    POST   /api/v1/engagements/evidence               - Upload an evidence file
"""

from __future__ import annotations

import base64
import binascii
import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from marketplace_escrow.api.deps import get_engagement_service
from marketplace_escrow.domain.exceptions import InvalidEvidenceError
from marketplace_escrow.domain.inputs import EvidenceItem
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.schemas.engagement import (
    AcceptPriceRequest,
    ApproverActionRequest,
    ApproveWorkResponse,
    CancelRequest,
    ClientActionRequest,
    CloseRequest,
    CreateEngagementRequest,
    CustomerDetailsResponse,
    EngagementEventResponse,
    EngagementResponse,
    EngagementStatusResponse,
    EscrowResponse,
    EvidenceItemSchema,
    ProviderActionRequest,
    QuoteResponse,
    RaiseDisputeRequest,
    ReasonedApproverRequest,
    SubmitQuoteRequest,
    SubmitWorkRequest,
    WorkSubmissionResponse,
)
from marketplace_escrow.services.engagement_service import EngagementService

router = APIRouter(prefix="/api/v1/engagements", tags=["Engagements"])
logger = get_logger(__name__)


class EvidenceUploadRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_base64: str = Field(..., description="File content, base64 encoded")
    content_type: str = "image/jpeg"
    description: str = ""


# ---------------------------------------------------------------------------
# Create & read
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EngagementResponse,
    status_code=201,
    summary="Post a new service request",
)
async def create_engagement(
    request: CreateEngagementRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.create_engagement(
        client_id=request.client_id,
        title=request.title,
        description=request.description,
        category=request.category,
        budget=request.budget,
        location=request.location,
        contact_details=request.contact_details,
    )
    return EngagementResponse.model_validate(engagement)


@router.get("/{engagement_id}", response_model=EngagementResponse, summary="Get engagement")
async def get_engagement(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    return EngagementResponse.model_validate(await svc.get_engagement(engagement_id))


@router.get(
    "/{engagement_id}/status",
    response_model=EngagementStatusResponse,
    summary="Lightweight status check",
)
async def get_engagement_status(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementStatusResponse:
    """Status, gate snapshot, escrow state and the events allowed next."""
    return EngagementStatusResponse(**await svc.get_status(engagement_id))


@router.get(
    "/{engagement_id}/events",
    response_model=list[EngagementEventResponse],
    summary="Audit trail",
)
async def get_engagement_events(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> list[EngagementEventResponse]:
    events = await svc.get_events(engagement_id)
    return [EngagementEventResponse.model_validate(e) for e in events]


@router.get("/{engagement_id}/quotes", response_model=list[QuoteResponse], summary="List quotes")
async def list_quotes(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> list[QuoteResponse]:
    return [QuoteResponse.model_validate(q) for q in await svc.get_quotes(engagement_id)]


@router.get(
    "/{engagement_id}/submissions",
    response_model=list[WorkSubmissionResponse],
    summary="List work submissions",
)
async def list_submissions(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> list[WorkSubmissionResponse]:
    submissions = await svc.get_submissions(engagement_id)
    return [WorkSubmissionResponse.model_validate(s) for s in submissions]


@router.get("/{engagement_id}/escrow", response_model=EscrowResponse, summary="Current escrow")
async def get_escrow(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> EscrowResponse:
    return EscrowResponse.model_validate(await svc.get_escrow(engagement_id))


@router.get(
    "/{engagement_id}/customer-details",
    response_model=CustomerDetailsResponse,
    summary="Client location and contact",
)
async def get_customer_details(
    engagement_id: uuid.UUID,
    actor_id: str = Query(..., min_length=1),
    svc: EngagementService = Depends(get_engagement_service),
) -> CustomerDetailsResponse:
    """The assigned provider sees these only after the client releases them."""
    return CustomerDetailsResponse(**await svc.get_customer_details(engagement_id, actor_id))


# ---------------------------------------------------------------------------
# Quoting & approval gates
# ---------------------------------------------------------------------------


@router.post(
    "/{engagement_id}/quotes",
    response_model=QuoteResponse,
    status_code=201,
    summary="Submit a quote",
)
async def submit_quote(
    engagement_id: uuid.UUID,
    request: SubmitQuoteRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> QuoteResponse:
    quote = await svc.submit_quote(
        engagement_id,
        provider_id=request.provider_id,
        amount=request.amount,
        estimated_hours=request.estimated_hours,
        proposal=request.proposal,
        tools_provided=request.tools_provided,
        additional_services=request.additional_services,
    )
    return QuoteResponse.model_validate(quote)


@router.post(
    "/{engagement_id}/accept-price",
    response_model=EscrowResponse,
    summary="Accept a quote and secure the payment",
)
async def accept_price(
    engagement_id: uuid.UUID,
    request: AcceptPriceRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EscrowResponse:
    """Clears the price gate. Returns the escrow, including the client secret."""
    escrow = await svc.accept_price(engagement_id, request.client_id, request.quote_id)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{engagement_id}/confirm-payment",
    response_model=EscrowResponse,
    summary="Confirm the payment hold",
)
async def confirm_payment(
    engagement_id: uuid.UUID,
    request: ClientActionRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EscrowResponse:
    escrow = await svc.confirm_payment(engagement_id, request.client_id)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{engagement_id}/review-task",
    response_model=EngagementResponse,
    summary="Provider confirms the task scope",
)
async def review_task(
    engagement_id: uuid.UUID,
    request: ProviderActionRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.approve_task_review(engagement_id, request.provider_id)
    return EngagementResponse.model_validate(engagement)


@router.post(
    "/{engagement_id}/release-details",
    response_model=EngagementResponse,
    summary="Client releases location and contact details",
)
async def release_details(
    engagement_id: uuid.UUID,
    request: ClientActionRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.release_customer_details(engagement_id, request.client_id)
    return EngagementResponse.model_validate(engagement)


# ---------------------------------------------------------------------------
# Work & review
# ---------------------------------------------------------------------------


@router.post(
    "/{engagement_id}/start",
    response_model=EngagementResponse,
    summary="Provider begins work",
)
async def begin_work(
    engagement_id: uuid.UUID,
    request: ProviderActionRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.begin_work(engagement_id, request.provider_id)
    return EngagementResponse.model_validate(engagement)


@router.post(
    "/evidence",
    response_model=EvidenceItemSchema,
    status_code=201,
    summary="Upload an evidence file",
)
async def upload_evidence(
    request: EvidenceUploadRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EvidenceItemSchema:
    """Store a photo and get back the reference to use in submit-work."""
    try:
        blob = base64.b64decode(request.content_base64, validate=True)
    except (binascii.Error, ValueError) as err:
        raise InvalidEvidenceError(0) from err
    item = await svc.submissions.evidence_from_upload(
        blob, request.filename, request.description, request.content_type
    )
    return EvidenceItemSchema(
        reference=item.reference,
        description=item.description,
        original_name=item.original_name,
    )


@router.post(
    "/{engagement_id}/submit-work",
    response_model=WorkSubmissionResponse,
    status_code=201,
    summary="Submit completed work with evidence",
)
async def submit_work(
    engagement_id: uuid.UUID,
    request: SubmitWorkRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> WorkSubmissionResponse:
    evidence = [
        EvidenceItem(
            reference=e.reference,
            description=e.description,
            original_name=e.original_name,
        )
        for e in request.evidence
    ]
    submission = await svc.submit_work(
        engagement_id, request.provider_id, evidence, request.summary
    )
    return WorkSubmissionResponse.model_validate(submission)


@router.post(
    "/{engagement_id}/approve",
    response_model=ApproveWorkResponse,
    summary="Approve the work and release the funds",
)
async def approve_work(
    engagement_id: uuid.UUID,
    request: ApproverActionRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> ApproveWorkResponse:
    payout = await svc.approve_work(engagement_id, request.approver_id)
    engagement = await svc.get_engagement(engagement_id)
    return ApproveWorkResponse(
        engagement_id=engagement.id,
        status=engagement.status,
        payout_amount=payout,
    )


@router.post(
    "/{engagement_id}/reject",
    response_model=EngagementResponse,
    summary="Reject the submitted work",
)
async def reject_work(
    engagement_id: uuid.UUID,
    request: ReasonedApproverRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.reject_work(engagement_id, request.approver_id, request.reason)
    return EngagementResponse.model_validate(engagement)


# ---------------------------------------------------------------------------
# Disputes, refunds, cancellation, closure
# ---------------------------------------------------------------------------


@router.post(
    "/{engagement_id}/dispute",
    response_model=EngagementResponse,
    summary="Raise a dispute",
)
async def raise_dispute(
    engagement_id: uuid.UUID,
    request: RaiseDisputeRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.dispute(engagement_id, request.actor_id, request.reason)
    return EngagementResponse.model_validate(engagement)


@router.post(
    "/{engagement_id}/refund",
    response_model=EscrowResponse,
    summary="Refund the client",
)
async def refund(
    engagement_id: uuid.UUID,
    request: ReasonedApproverRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EscrowResponse:
    escrow = await svc.refund(engagement_id, request.approver_id, request.reason)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{engagement_id}/cancel",
    response_model=EngagementResponse,
    summary="Cancel before work starts",
)
async def cancel(
    engagement_id: uuid.UUID,
    request: CancelRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.cancel(engagement_id, request.client_id, request.reason)
    return EngagementResponse.model_validate(engagement)


@router.post(
    "/{engagement_id}/close",
    response_model=EngagementResponse,
    summary="Close a settled engagement",
)
async def close(
    engagement_id: uuid.UUID,
    request: CloseRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.close(engagement_id, request.actor_id)
    return EngagementResponse.model_validate(engagement)
