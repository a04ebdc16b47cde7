"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the boundary capabilities (payment processor, notifier, approver roster,
evidence store) and the services built on top of them. Tests swap any of
them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_escrow.config import Settings, get_settings
from marketplace_escrow.domain.capabilities import (
    ApproverDirectory,
    EvidenceStore,
    Notifier,
    PaymentProcessor,
)
from marketplace_escrow.infrastructure.database.engine import get_async_session
from marketplace_escrow.infrastructure.locks import EngagementLocks, get_engagement_locks
from marketplace_escrow.services.engagement_service import EngagementService
from marketplace_escrow.services.evidence_store import InMemoryEvidenceStore
from marketplace_escrow.services.ledger_service import LedgerService
from marketplace_escrow.services.notifications import LoggingNotifier, StaticApproverDirectory
from marketplace_escrow.services.payment_processor import SimulatedPaymentProcessor
from marketplace_escrow.services.payout_service import PayoutService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


@lru_cache(maxsize=1)
def get_payment_processor() -> PaymentProcessor:
    """Provide the payment processor (simulated until a hosted one is wired in)."""
    return SimulatedPaymentProcessor()


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return LoggingNotifier()


def get_approver_directory(settings: Settings = Depends(get_app_settings)) -> ApproverDirectory:
    return StaticApproverDirectory(settings.payment_approver_id_list)


@lru_cache(maxsize=1)
def get_evidence_store() -> EvidenceStore:
    return InMemoryEvidenceStore()


def get_locks() -> EngagementLocks:
    return get_engagement_locks()


async def get_engagement_service(
    session: AsyncSession = Depends(get_db_session),
    processor: PaymentProcessor = Depends(get_payment_processor),
    notifier: Notifier = Depends(get_notifier),
    approvers: ApproverDirectory = Depends(get_approver_directory),
    evidence_store: EvidenceStore = Depends(get_evidence_store),
    locks: EngagementLocks = Depends(get_locks),
    settings: Settings = Depends(get_app_settings),
) -> EngagementService:
    """Provide an EngagementService bound to the current session."""
    return EngagementService(
        session,
        processor=processor,
        notifier=notifier,
        approvers=approvers,
        evidence_store=evidence_store,
        locks=locks,
        settings=settings,
    )


async def get_ledger_service(
    session: AsyncSession = Depends(get_db_session),
    processor: PaymentProcessor = Depends(get_payment_processor),
    settings: Settings = Depends(get_app_settings),
) -> LedgerService:
    return LedgerService(session, processor, settings)


async def get_payout_service(
    session: AsyncSession = Depends(get_db_session),
) -> PayoutService:
    """Provide a PayoutService bound to the current session."""
    return PayoutService(session)
