"""Application services - use case orchestration."""

from marketplace_escrow.services.approval_service import ApprovalService
from marketplace_escrow.services.engagement_service import EngagementService
from marketplace_escrow.services.evidence_store import InMemoryEvidenceStore
from marketplace_escrow.services.ledger_service import LedgerService
from marketplace_escrow.services.notifications import (
    InMemoryNotifier,
    LoggingNotifier,
    NotificationOutbox,
    StaticApproverDirectory,
)
from marketplace_escrow.services.payment_processor import SimulatedPaymentProcessor
from marketplace_escrow.services.payout_service import PayoutService
from marketplace_escrow.services.submission_service import SubmissionService

__all__ = [
    "ApprovalService",
    "EngagementService",
    "InMemoryEvidenceStore",
    "LedgerService",
    "InMemoryNotifier",
    "LoggingNotifier",
    "NotificationOutbox",
    "StaticApproverDirectory",
    "SimulatedPaymentProcessor",
    "PayoutService",
    "SubmissionService",
]
