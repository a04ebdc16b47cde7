"""Database infrastructure: engine, ORM models, and repositories."""

from marketplace_escrow.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from marketplace_escrow.infrastructure.database.orm_models import (
    ApprovalGateRecord,
    Base,
    Engagement,
    EngagementEvent,
    EscrowPayment,
    EvidenceRecord,
    PayoutAccount,
    Quote,
    WorkSubmission,
)
from marketplace_escrow.infrastructure.database.repositories import (
    EngagementRepository,
    EscrowRepository,
    EventRepository,
    PayoutAccountRepository,
    QuoteRepository,
    SubmissionRepository,
)

__all__ = [
    "ApprovalGateRecord",
    "Base",
    "Engagement",
    "EngagementEvent",
    "EscrowPayment",
    "EvidenceRecord",
    "PayoutAccount",
    "Quote",
    "WorkSubmission",
    "EngagementRepository",
    "EscrowRepository",
    "EventRepository",
    "PayoutAccountRepository",
    "QuoteRepository",
    "SubmissionRepository",
    "close_db",
    "get_async_session",
    "get_session_factory",
    "init_db",
]
