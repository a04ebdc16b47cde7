"""Domain layer - pure business logic with zero framework dependencies."""

from marketplace_escrow.domain.approval_gates import (
    GATE_ORDER,
    check_can_clear,
    first_pending_gate,
    is_sequence_complete,
)
from marketplace_escrow.domain.capabilities import (
    ApproverDirectory,
    EvidenceStore,
    HoldResult,
    Notifier,
    PaymentProcessor,
)
from marketplace_escrow.domain.enums import (
    ApprovalGate,
    EngagementStatus,
    EscrowStatus,
    EventType,
    GateState,
    QuoteStatus,
)
from marketplace_escrow.domain.exceptions import (
    ActorNotPermittedError,
    ApprovalRequiredError,
    EvidenceRequiredError,
    InvalidAmountError,
    InvalidEvidenceError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    OutOfOrderApprovalError,
    PayoutAccountNotReadyError,
    ProcessorError,
)
from marketplace_escrow.domain.inputs import EvidenceItem, PayoutAccountDetails, QuoteTerms
from marketplace_escrow.domain.money import FeeSchedule, PaymentBreakdown, compute_breakdown
from marketplace_escrow.domain.state_machine import (
    EngagementStateMachine,
    EscrowStateMachine,
    validate_transition,
)

__all__ = [
    "GATE_ORDER",
    "check_can_clear",
    "first_pending_gate",
    "is_sequence_complete",
    "ApproverDirectory",
    "EvidenceStore",
    "HoldResult",
    "Notifier",
    "PaymentProcessor",
    "ApprovalGate",
    "EngagementStatus",
    "EscrowStatus",
    "EventType",
    "GateState",
    "QuoteStatus",
    "ActorNotPermittedError",
    "ApprovalRequiredError",
    "EvidenceRequiredError",
    "InvalidAmountError",
    "InvalidEvidenceError",
    "InvalidTransitionError",
    "MarketplaceError",
    "NotFoundError",
    "OutOfOrderApprovalError",
    "PayoutAccountNotReadyError",
    "ProcessorError",
    "EvidenceItem",
    "PayoutAccountDetails",
    "QuoteTerms",
    "FeeSchedule",
    "PaymentBreakdown",
    "compute_breakdown",
    "EngagementStateMachine",
    "EscrowStateMachine",
    "validate_transition",
]
