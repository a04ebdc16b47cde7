"""Simulated payment processor.

Deterministic in-memory stand-in for the hosted processor: references are
sequential (``hold_0001``, ``tr_0001``), failures can be injected per
operation, and payout transfers are deduplicated by idempotency key the way
the real processor deduplicates them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from marketplace_escrow.domain.capabilities import HoldResult
from marketplace_escrow.domain.exceptions import ProcessorError
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from decimal import Decimal

logger = get_logger(__name__)

OPERATIONS = ("create_hold", "confirm_hold", "transfer_payout", "reverse_hold")


@dataclass
class SimulatedHold:
    processor_ref: str
    total_amount: Decimal
    currency: str
    metadata: dict[str, Any]
    status: str = "requires_confirmation"


@dataclass
class SimulatedTransfer:
    transfer_ref: str
    payout_account_ref: str
    payout_amount: Decimal
    currency: str
    idempotency_key: str


class SimulatedPaymentProcessor:
    """In-memory PaymentProcessor used by tests and local development."""

    def __init__(self) -> None:
        self.holds: dict[str, SimulatedHold] = {}
        self.transfers: list[SimulatedTransfer] = []
        self._hold_keys: dict[str, str] = {}
        self._transfer_keys: dict[str, SimulatedTransfer] = {}
        self._failures: dict[str, int] = {}
        self._hold_seq = 0
        self._transfer_seq = 0

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ProcessorError."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown processor operation '{operation}'")
        self._failures[operation] = self._failures.get(operation, 0) + times

    def _maybe_fail(self, operation: str, processor_ref: str | None = None) -> None:
        remaining = self._failures.get(operation, 0)
        if remaining:
            self._failures[operation] = remaining - 1
            logger.warning("processor.simulated_failure", operation=operation)
            raise ProcessorError(operation, "simulated processor outage", processor_ref)

    async def create_hold(
        self,
        total_amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_key: str,
    ) -> HoldResult:
        self._maybe_fail("create_hold")
        existing = self._hold_keys.get(idempotency_key)
        if existing is not None:
            return HoldResult(processor_ref=existing, client_secret=f"{existing}_secret")

        self._hold_seq += 1
        ref = f"hold_{self._hold_seq:04d}"
        self.holds[ref] = SimulatedHold(
            processor_ref=ref,
            total_amount=total_amount,
            currency=currency,
            metadata=dict(metadata),
        )
        self._hold_keys[idempotency_key] = ref
        logger.info("processor.hold_created", processor_ref=ref, total=str(total_amount))
        return HoldResult(processor_ref=ref, client_secret=f"{ref}_secret_{uuid.uuid4().hex[:8]}")

    async def confirm_hold(self, processor_ref: str) -> None:
        self._maybe_fail("confirm_hold", processor_ref)
        hold = self.holds.get(processor_ref)
        if hold is None:
            raise ProcessorError("confirm_hold", "no such hold", processor_ref)
        hold.status = "held"
        logger.info("processor.hold_confirmed", processor_ref=processor_ref)

    async def transfer_payout(
        self,
        payout_account_ref: str,
        payout_amount: Decimal,
        currency: str,
        idempotency_key: str,
    ) -> str:
        self._maybe_fail("transfer_payout")
        existing = self._transfer_keys.get(idempotency_key)
        if existing is not None:
            logger.info("processor.transfer_deduplicated", transfer_ref=existing.transfer_ref)
            return existing.transfer_ref

        self._transfer_seq += 1
        transfer = SimulatedTransfer(
            transfer_ref=f"tr_{self._transfer_seq:04d}",
            payout_account_ref=payout_account_ref,
            payout_amount=payout_amount,
            currency=currency,
            idempotency_key=idempotency_key,
        )
        self.transfers.append(transfer)
        self._transfer_keys[idempotency_key] = transfer
        logger.info(
            "processor.transfer_created",
            transfer_ref=transfer.transfer_ref,
            amount=str(payout_amount),
            destination=payout_account_ref,
        )
        return transfer.transfer_ref

    async def reverse_hold(self, processor_ref: str) -> None:
        self._maybe_fail("reverse_hold", processor_ref)
        hold = self.holds.get(processor_ref)
        if hold is None:
            raise ProcessorError("reverse_hold", "no such hold", processor_ref)
        hold.status = "canceled"
        logger.info("processor.hold_reversed", processor_ref=processor_ref)
