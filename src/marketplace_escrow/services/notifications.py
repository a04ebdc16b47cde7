"""Notification transports, the approver roster and the post-commit outbox.

Notifications are fire-and-forget: they are queued while an engagement
operation runs and only dispatched after its transaction has committed. A
failing transport is logged and never rolls back or fails the operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marketplace_escrow.domain.capabilities import Notifier
    from marketplace_escrow.domain.enums import NotificationKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    user_id: str
    event_kind: str
    payload: dict[str, Any]


class LoggingNotifier:
    """Notifier that writes every notification to the structured log."""

    async def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        logger.info("notification.sent", user_id=user_id, kind=event_kind, **payload)


class InMemoryNotifier:
    """Notifier that keeps what it was asked to send (tests, local runs)."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        self.sent.append(Notification(user_id=user_id, event_kind=event_kind, payload=payload))

    def for_user(self, user_id: str) -> list[Notification]:
        return [n for n in self.sent if n.user_id == user_id]

    def kinds(self) -> list[str]:
        return [n.event_kind for n in self.sent]


class StaticApproverDirectory:
    """Approver roster fixed at construction (usually from settings)."""

    def __init__(self, approver_ids: Iterable[str]) -> None:
        self._approver_ids = list(dict.fromkeys(a for a in approver_ids if a))

    def list_payment_approvers(self) -> list[str]:
        return list(self._approver_ids)

    def is_payment_approver(self, user_id: str) -> bool:
        return user_id in self._approver_ids


class NotificationOutbox:
    """Collects notifications during a unit of work and sends them afterwards."""

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier
        self._pending: list[Notification] = []

    def queue(self, user_id: str | None, kind: NotificationKind, payload: dict[str, Any]) -> None:
        if not user_id:
            return
        self._pending.append(Notification(user_id=user_id, event_kind=kind.value, payload=payload))

    def clear(self) -> None:
        self._pending.clear()

    @property
    def pending(self) -> list[Notification]:
        return list(self._pending)

    async def dispatch(self) -> int:
        """Send everything queued; return how many were delivered."""
        pending, self._pending = self._pending, []
        delivered = 0
        for item in pending:
            try:
                await self._notifier.notify(item.user_id, item.event_kind, item.payload)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "notification.failed",
                    user_id=item.user_id,
                    kind=item.event_kind,
                    error=str(exc),
                )
        return delivered
