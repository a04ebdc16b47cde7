"""Boundary capabilities consumed by the engine.

These are Protocols (structural subtyping): the hosted payment processor,
notification transport, approver roster and evidence storage are supplied
from outside and only need to match these shapes.

The domain layer has ZERO imports from any processor SDK or transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class HoldResult:
    """Result of placing a hold on the client's funds.

    Attributes:
        processor_ref: Processor-side id of the hold (payment intent).
        client_secret: Secret the client uses to authorize the hold.
    """

    processor_ref: str
    client_secret: str


@runtime_checkable
class PaymentProcessor(Protocol):
    """Hosted payment processor.

    Every method is a network call that may fail or time out. Implementations
    raise ProcessorError on failure; the engine never retries on its own, and
    idempotency keys make a caller-side retry safe.
    """

    async def create_hold(
        self,
        total_amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_key: str,
    ) -> HoldResult: ...

    async def confirm_hold(self, processor_ref: str) -> None: ...

    async def transfer_payout(
        self,
        payout_account_ref: str,
        payout_amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> str:
        """Move ``payout_amount`` to the provider account; return the transfer ref."""
        ...

    async def reverse_hold(self, processor_ref: str) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget notification transport."""

    async def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class ApproverDirectory(Protocol):
    """Roster of users holding the payment approver role."""

    def list_payment_approvers(self) -> list[str]: ...

    def is_payment_approver(self, user_id: str) -> bool: ...


@runtime_checkable
class EvidenceStore(Protocol):
    """Blob storage for work evidence; returns a stable reference URL."""

    async def store(self, blob: bytes, filename: str, content_type: str) -> str: ...
