"""Engagement and escrow state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain
level. No matter what the API or a service does, an illegal transition
(e.g., RELEASED -> REFUNDED) raises TransitionNotAllowed before the ORM
status column is touched.

Machines are instantiated per record at its persisted status, fired, and
discarded; the database row remains the source of truth.

Engagement transition table:
    REQUESTED         -> QUOTED             (submit_quote)
    QUOTED            -> QUOTED             (submit_quote, re-quote)
    QUOTED            -> PRICE_ACCEPTED     (accept_price)
    PRICE_ACCEPTED    -> UNDER_REVIEW       (review_task)
    UNDER_REVIEW      -> DETAILS_RELEASED   (release_details)
    DETAILS_RELEASED  -> IN_PROGRESS        (begin_work)
    IN_PROGRESS       -> WORK_SUBMITTED     (submit_work)
    WORK_SUBMITTED    -> APPROVED           (approve_work)
    DISPUTED          -> APPROVED           (approve_work, resolver)
    APPROVED          -> RELEASED           (release_funds)
    WORK_SUBMITTED    -> IN_PROGRESS        (reject_work)
    WORK_SUBMITTED    -> DISPUTED           (escalate_rejection)
    IN_PROGRESS       -> DISPUTED           (raise_dispute)
    WORK_SUBMITTED    -> DISPUTED           (raise_dispute)
    IN_PROGRESS..DISPUTED -> REFUNDED       (refund)
    any pre-work state    -> CANCELLED      (cancel)
    RELEASED|REFUNDED -> CLOSED             (close)

Escrow transition table:
    PENDING  -> HELD      (hold_confirmed)
    PENDING  -> FAILED    (void)
    HELD     -> APPROVED  (approve)
    APPROVED -> RELEASED  (release)
    HELD     -> REFUNDED  (refund)
    APPROVED -> REFUNDED  (refund)
"""

from __future__ import annotations

from statemachine import State, StateMachine


def _check_known_status(machine: StateMachine, current_status: str) -> None:
    valid_values = {s.value for s in machine.states}
    if current_status not in valid_values:
        valid = ", ".join(sorted(valid_values))
        raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")


class EngagementStateMachine(StateMachine):
    """Guards the engagement lifecycle.

    Usage:
        sm = EngagementStateMachine(current_status="QUOTED")
        sm.accept_price()   # transitions to PRICE_ACCEPTED
        sm.status           # "PRICE_ACCEPTED"
    """

    # --- States ---
    REQUESTED = State("REQUESTED", initial=True)
    QUOTED = State("QUOTED")
    PRICE_ACCEPTED = State("PRICE_ACCEPTED")
    UNDER_REVIEW = State("UNDER_REVIEW")
    DETAILS_RELEASED = State("DETAILS_RELEASED")
    IN_PROGRESS = State("IN_PROGRESS")
    WORK_SUBMITTED = State("WORK_SUBMITTED")
    APPROVED = State("APPROVED")
    RELEASED = State("RELEASED")
    DISPUTED = State("DISPUTED")
    REFUNDED = State("REFUNDED")
    CLOSED = State("CLOSED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---

    # Negotiation
    submit_quote = REQUESTED.to(QUOTED) | QUOTED.to.itself()

    # Approval gates, in lockstep with the gate sequence
    accept_price = QUOTED.to(PRICE_ACCEPTED)
    review_task = PRICE_ACCEPTED.to(UNDER_REVIEW)
    release_details = UNDER_REVIEW.to(DETAILS_RELEASED)

    # Work
    begin_work = DETAILS_RELEASED.to(IN_PROGRESS)
    submit_work = IN_PROGRESS.to(WORK_SUBMITTED)

    # Review outcomes
    approve_work = WORK_SUBMITTED.to(APPROVED) | DISPUTED.to(APPROVED)
    release_funds = APPROVED.to(RELEASED)
    reject_work = WORK_SUBMITTED.to(IN_PROGRESS)
    escalate_rejection = WORK_SUBMITTED.to(DISPUTED)

    # Disputes and refunds
    raise_dispute = IN_PROGRESS.to(DISPUTED) | WORK_SUBMITTED.to(DISPUTED)
    refund = (
        IN_PROGRESS.to(REFUNDED)
        | WORK_SUBMITTED.to(REFUNDED)
        | APPROVED.to(REFUNDED)
        | DISPUTED.to(REFUNDED)
    )

    # Exits
    cancel = (
        REQUESTED.to(CANCELLED)
        | QUOTED.to(CANCELLED)
        | PRICE_ACCEPTED.to(CANCELLED)
        | UNDER_REVIEW.to(CANCELLED)
        | DETAILS_RELEASED.to(CANCELLED)
    )
    close = RELEASED.to(CLOSED) | REFUNDED.to(CLOSED)

    def __init__(self, current_status: str = "REQUESTED") -> None:
        """Initialize the machine at a persisted EngagementStatus value."""
        _check_known_status(self, current_status)
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EngagementStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


class EscrowStateMachine(StateMachine):
    """Guards escrow payment custody. No transition skips a state."""

    PENDING = State("PENDING", initial=True)
    HELD = State("HELD")
    APPROVED = State("APPROVED")
    RELEASED = State("RELEASED", final=True)
    REFUNDED = State("REFUNDED", final=True)
    FAILED = State("FAILED", final=True)

    hold_confirmed = PENDING.to(HELD)
    void = PENDING.to(FAILED)
    approve = HELD.to(APPROVED)
    release = APPROVED.to(RELEASED)
    refund = HELD.to(REFUNDED) | APPROVED.to(REFUNDED)

    def __init__(self, current_status: str = "PENDING") -> None:
        _check_known_status(self, current_status)
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        return [event.id for event in self.allowed_events]


def validate_transition(
    current_status: str,
    event_name: str,
    machine_cls: type[StateMachine] = EngagementStateMachine,
) -> str:
    """Validate a state transition and return the new status.

    Creates a throwaway machine at ``current_status``, fires ``event_name``
    and reports where it landed.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is unknown.
    """
    sm = machine_cls(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
