"""Pydantic API schemas."""

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
    HealthResponse,
    PaymentBreakdownResponse,
    PaymentStatsResponse,
    ProviderActionRequest,
    QuoteResponse,
    RaiseDisputeRequest,
    ReasonedApproverRequest,
    SubmitQuoteRequest,
    SubmitWorkRequest,
    WorkSubmissionResponse,
)
from marketplace_escrow.schemas.payout import (
    PayoutAccountResponse,
    RegisterPayoutAccountRequest,
)

__all__ = [
    "AcceptPriceRequest",
    "ApproverActionRequest",
    "ApproveWorkResponse",
    "CancelRequest",
    "ClientActionRequest",
    "CloseRequest",
    "CreateEngagementRequest",
    "CustomerDetailsResponse",
    "EngagementEventResponse",
    "EngagementResponse",
    "EngagementStatusResponse",
    "EscrowResponse",
    "HealthResponse",
    "PaymentBreakdownResponse",
    "PaymentStatsResponse",
    "ProviderActionRequest",
    "QuoteResponse",
    "RaiseDisputeRequest",
    "ReasonedApproverRequest",
    "SubmitQuoteRequest",
    "SubmitWorkRequest",
    "WorkSubmissionResponse",
    "PayoutAccountResponse",
    "RegisterPayoutAccountRequest",
]
