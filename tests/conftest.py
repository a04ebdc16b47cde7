"""Shared test fixtures for the Marketplace Escrow test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - The simulated payment processor and in-memory notifier/evidence store
    - An EngagementService factory and helpers that walk an engagement
      through its lifecycle
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketplace_escrow.config import Settings
from marketplace_escrow.domain.inputs import EvidenceItem, PayoutAccountDetails
from marketplace_escrow.infrastructure.database.orm_models import Base
from marketplace_escrow.infrastructure.locks import EngagementLocks
from marketplace_escrow.services.engagement_service import EngagementService
from marketplace_escrow.services.evidence_store import InMemoryEvidenceStore
from marketplace_escrow.services.notifications import InMemoryNotifier, StaticApproverDirectory
from marketplace_escrow.services.payment_processor import SimulatedPaymentProcessor
from marketplace_escrow.services.payout_service import PayoutService

CLIENT = "client-1"
PROVIDER = "provider-1"
OTHER_PROVIDER = "provider-2"
APPROVER = "approver-1"
SECOND_APPROVER = "approver-2"

PROPOSAL = "Replace the leaking kitchen faucet and reseal the sink basin"


# ---------------------------------------------------------------------------
# Infrastructure Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="development",
        database_url="sqlite+aiosqlite:///:memory:",
        payment_approver_ids=f"{APPROVER},{SECOND_APPROVER}",
        platform_fee_rate=Decimal("0.15"),
        tax_rate=Decimal("0.08"),
        fee_overrides={},
        max_work_rejections=3,
        auto_confirm_holds=True,
    )


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def processor() -> SimulatedPaymentProcessor:
    return SimulatedPaymentProcessor()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def approvers() -> StaticApproverDirectory:
    return StaticApproverDirectory([APPROVER, SECOND_APPROVER])


@pytest.fixture
def evidence_store() -> InMemoryEvidenceStore:
    return InMemoryEvidenceStore()


@pytest.fixture
def locks() -> EngagementLocks:
    return EngagementLocks(wait_seconds=5.0)


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_service(processor, notifier, approvers, evidence_store, locks, settings):
    """Build an EngagementService on any session (sharing processor and locks)."""

    def _make(session: AsyncSession, **overrides) -> EngagementService:
        kwargs = {
            "processor": processor,
            "notifier": notifier,
            "approvers": approvers,
            "evidence_store": evidence_store,
            "locks": locks,
            "settings": settings,
        }
        kwargs.update(overrides)
        return EngagementService(session, **kwargs)

    return _make


@pytest.fixture
def service(session, make_service) -> EngagementService:
    return make_service(session)


@pytest.fixture
def payouts(session) -> PayoutService:
    return PayoutService(session)


@pytest.fixture
def bank_details() -> PayoutAccountDetails:
    return PayoutAccountDetails(
        account_holder_name="Jordan Rivera",
        bank_name="First Community Bank",
        account_number="000123456789",
        routing_number="021000021",
    )


@pytest.fixture
def evidence() -> list[EvidenceItem]:
    return [
        EvidenceItem(
            reference="memory://evidence/after.jpg",
            description="Faucet installed, no leaks",
            original_name="after.jpg",
        )
    ]


# ---------------------------------------------------------------------------
# Lifecycle Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def register_payout_account(session, payouts, bank_details):
    """Register (and by default verify) the provider's payout account; returns its id."""

    async def _register(provider_id: str = PROVIDER, verified: bool = True):
        account = await payouts.register(provider_id, bank_details)
        if verified:
            account = await payouts.verify(account.id)
        await session.commit()
        return account.id

    return _register


@pytest.fixture
def quoted_engagement(service):
    """Create an engagement with one 100.00 quote; returns the engagement id."""

    async def _create(amount: str = "100.00"):
        engagement = await service.create_engagement(
            client_id=CLIENT,
            title="Fix kitchen faucet",
            description="Faucet drips constantly and the sink seal is cracked",
            category="plumbing",
            budget=Decimal("150.00"),
            location="12 Elm Street, Springfield",
            contact_details={"phone": "555-0100"},
        )
        await service.submit_quote(
            engagement.id, PROVIDER, Decimal(amount), estimated_hours=2, proposal=PROPOSAL
        )
        return engagement.id

    return _create


@pytest.fixture
def engagement_in_progress(service, quoted_engagement):
    """Walk an engagement through every gate and start the work."""

    async def _create(amount: str = "100.00"):
        engagement_id = await quoted_engagement(amount)
        await service.accept_price(engagement_id, CLIENT)
        await service.approve_task_review(engagement_id, PROVIDER)
        await service.release_customer_details(engagement_id, CLIENT)
        await service.begin_work(engagement_id, PROVIDER)
        return engagement_id

    return _create


@pytest.fixture
def submitted_engagement(service, engagement_in_progress, evidence):
    """An engagement whose work has been submitted for approval."""

    async def _create(amount: str = "100.00"):
        engagement_id = await engagement_in_progress(amount)
        await service.submit_work(engagement_id, PROVIDER, evidence, summary="All done")
        return engagement_id

    return _create
