"""Domain exceptions for the marketplace escrow engine.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every message is meant to be shown to the user as-is.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotFoundError(MarketplaceError):
    """Raised when an entity id does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


# --- Input Validation Errors ---


class InputValidationError(MarketplaceError):
    """Base class for input rejected before any state is touched."""


class InvalidAmountError(InputValidationError):
    def __init__(self, amount: object, reason: str = "amount must be greater than zero") -> None:
        super().__init__(message=f"Invalid amount {amount}: {reason}", code="INVALID_AMOUNT")
        self.amount = amount


class InvalidQuoteError(InputValidationError):
    def __init__(self, reason: str) -> None:
        super().__init__(message=f"Invalid quote: {reason}", code="INVALID_QUOTE")


class EvidenceRequiredError(InputValidationError):
    def __init__(self) -> None:
        super().__init__(
            message="At least one photo or evidence item is required to submit work",
            code="EVIDENCE_REQUIRED",
        )


class InvalidEvidenceError(InputValidationError):
    def __init__(self, index: int) -> None:
        super().__init__(
            message=f"Evidence item #{index + 1} has no file reference",
            code="INVALID_EVIDENCE",
        )
        self.index = index


class InvalidPayoutAccountError(InputValidationError):
    def __init__(self, reason: str) -> None:
        super().__init__(message=f"Invalid payout account: {reason}", code="INVALID_PAYOUT_ACCOUNT")


class ReasonRequiredError(InputValidationError):
    def __init__(self, action: str) -> None:
        super().__init__(message=f"A reason is required to {action}", code="REASON_REQUIRED")


# --- Transition Guard Errors ---


class InvalidTransitionError(MarketplaceError):
    """Raised when an attempted state transition is not allowed.

    Example: RELEASED -> REFUNDED (released funds need a separate reversal).
    """

    def __init__(self, entity: str, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Cannot {attempted.replace('_', ' ')}: {entity} is {current_state}",
            code="INVALID_TRANSITION",
        )
        self.entity = entity
        self.current_state = current_state
        self.attempted = attempted


class OutOfOrderApprovalError(MarketplaceError):
    """Raised when an approval gate is cleared before its predecessors."""

    def __init__(self, gate: str, reason: str) -> None:
        super().__init__(message=reason, code="OUT_OF_ORDER_APPROVAL")
        self.gate = gate


class ApprovalRequiredError(MarketplaceError):
    """Raised when an action needs an approval that has not been given yet."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="APPROVAL_REQUIRED")


class PayoutAccountNotReadyError(MarketplaceError):
    """Raised when funds cannot be released to the provider's payout account."""

    def __init__(self, provider_id: str, reason: str) -> None:
        super().__init__(
            message=f"Payout account for provider {provider_id} is not ready: {reason}",
            code="PAYOUT_ACCOUNT_NOT_READY",
        )
        self.provider_id = provider_id


class ActorNotPermittedError(MarketplaceError):
    """Raised when an actor is not allowed to perform an action."""

    def __init__(self, actor_id: str, action: str) -> None:
        super().__init__(
            message=f"User {actor_id} is not allowed to {action}",
            code="ACTOR_NOT_PERMITTED",
        )
        self.actor_id = actor_id


class EngagementBusyError(MarketplaceError):
    """Raised when the engagement lock could not be acquired in time."""

    def __init__(self, engagement_id: str) -> None:
        super().__init__(
            message=f"Engagement {engagement_id} is being updated, try again",
            code="ENGAGEMENT_BUSY",
        )


class EvidenceStorageUnavailableError(MarketplaceError):
    """Raised when an upload arrives but no evidence store is configured."""

    def __init__(self) -> None:
        super().__init__(
            message="Evidence uploads are not available right now",
            code="EVIDENCE_STORAGE_UNAVAILABLE",
        )


# --- Payment Processor Errors ---


class ProcessorError(MarketplaceError):
    """Raised when a payment processor call fails. Safe to retry."""

    def __init__(self, operation: str, message: str, processor_ref: str | None = None) -> None:
        super().__init__(
            message=f"Payment processor {operation} failed: {message}",
            code="PROCESSOR_ERROR",
        )
        self.operation = operation
        self.processor_ref = processor_ref
