"""Approval gate ordering rules.

The gates encode a trust ramp: the price is agreed before either party
invests in a deeper scope review, and the client's contact details are only
released once both price and scope are confirmed.
"""

from __future__ import annotations

from collections.abc import Mapping

from marketplace_escrow.domain.enums import ApprovalGate, GateState
from marketplace_escrow.domain.exceptions import OutOfOrderApprovalError

GATE_ORDER: tuple[ApprovalGate, ...] = (
    ApprovalGate.PRICE_ACCEPTED,
    ApprovalGate.TASK_REVIEWED,
    ApprovalGate.CUSTOMER_DETAILS_RELEASED,
)

_NOT_YET = {
    ApprovalGate.PRICE_ACCEPTED: "price has not been accepted yet",
    ApprovalGate.TASK_REVIEWED: "task has not been reviewed by the provider yet",
    ApprovalGate.CUSTOMER_DETAILS_RELEASED: "customer details have not been released yet",
}


def first_pending_gate(states: Mapping[ApprovalGate, GateState]) -> ApprovalGate | None:
    """Return the earliest gate still pending, or None when all are cleared."""
    for gate in GATE_ORDER:
        if states.get(gate, GateState.PENDING) == GateState.PENDING:
            return gate
    return None


def is_sequence_complete(states: Mapping[ApprovalGate, GateState]) -> bool:
    return first_pending_gate(states) is None


def check_can_clear(states: Mapping[ApprovalGate, GateState], gate: ApprovalGate) -> None:
    """Raise OutOfOrderApprovalError unless ``gate`` is the next one to clear."""
    if states.get(gate) == GateState.CLEARED:
        raise OutOfOrderApprovalError(gate, f"{gate.label.capitalize()} has already been cleared")
    pending = first_pending_gate(states)
    if pending is not None and pending != gate:
        raise OutOfOrderApprovalError(
            gate, f"Cannot clear {gate.label}: {_NOT_YET[pending]}"
        )


def not_yet_reason(gate: ApprovalGate) -> str:
    """User-facing explanation for a gate that is still pending."""
    return _NOT_YET[gate]
