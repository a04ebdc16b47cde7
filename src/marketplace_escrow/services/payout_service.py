"""Payout Account Service: where released funds go.

A provider has at most one active payout account; registering a new one
replaces (deactivates) the older ones. Only the last four digits of the
account number are ever persisted.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from marketplace_escrow.domain.exceptions import NotFoundError, PayoutAccountNotReadyError
from marketplace_escrow.infrastructure.database.orm_models import PayoutAccount
from marketplace_escrow.infrastructure.database.repositories import PayoutAccountRepository
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from marketplace_escrow.domain.inputs import PayoutAccountDetails

logger = get_logger(__name__)


class PayoutService:
    """Manages provider payout accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = PayoutAccountRepository(session)

    async def register(self, provider_id: str, details: PayoutAccountDetails) -> PayoutAccount:
        """Register a new (unverified, active) account, replacing any older one."""
        details.validate()

        replaced = []
        for old in await self._repo.get_by_provider(provider_id):
            if old.active:
                old.active = False
                await self._repo.save(old)
                replaced.append(str(old.id))

        account = PayoutAccount(
            provider_id=provider_id,
            external_ref=details.external_ref or f"acct_{uuid.uuid4().hex[:16]}",
            account_holder_name=details.account_holder_name.strip(),
            bank_name=details.bank_name.strip(),
            account_last4=details.last4,
            routing_number=details.routing_number,
            account_type=details.account_type.value,
            verified=False,
            active=True,
        )
        account = await self._repo.create(account)

        logger.info(
            "payout.account_registered",
            provider_id=provider_id,
            account_id=str(account.id),
            replaced=replaced,
        )
        return account

    async def verify(self, account_id: uuid.UUID) -> PayoutAccount:
        """Mark the account verified. Verifying twice is a no-op."""
        account = await self._get_or_raise(account_id)
        if account.verified:
            return account
        account.verified = True
        account.verified_at = datetime.now(UTC)
        await self._repo.save(account)
        logger.info("payout.account_verified", account_id=str(account_id))
        return account

    async def deactivate(self, account_id: uuid.UUID) -> PayoutAccount:
        account = await self._get_or_raise(account_id)
        if account.active:
            account.active = False
            await self._repo.save(account)
            logger.info("payout.account_deactivated", account_id=str(account_id))
        return account

    async def reactivate(self, account_id: uuid.UUID) -> PayoutAccount:
        """Make this account the provider's active one again."""
        account = await self._get_or_raise(account_id)
        for other in await self._repo.get_by_provider(account.provider_id):
            if other.id != account.id and other.active:
                other.active = False
                await self._repo.save(other)
        if not account.active:
            account.active = True
            await self._repo.save(account)
            logger.info("payout.account_reactivated", account_id=str(account_id))
        return account

    async def get_account(self, account_id: uuid.UUID) -> PayoutAccount:
        return await self._get_or_raise(account_id)

    async def list_accounts(self, provider_id: str) -> list[PayoutAccount]:
        return await self._repo.get_by_provider(provider_id)

    async def get_active_account(self, provider_id: str) -> PayoutAccount | None:
        for account in await self._repo.get_by_provider(provider_id):
            if account.active:
                return account
        return None

    async def require_ready(self, provider_id: str) -> PayoutAccount:
        """Return the account funds can be sent to, or raise PayoutAccountNotReadyError."""
        account = await self.get_active_account(provider_id)
        if account is None:
            raise PayoutAccountNotReadyError(provider_id, "no active payout account on file")
        if not account.verified:
            raise PayoutAccountNotReadyError(provider_id, "payout account has not been verified")
        return account

    async def _get_or_raise(self, account_id: uuid.UUID) -> PayoutAccount:
        account = await self._repo.get_by_id(account_id)
        if account is None:
            raise NotFoundError("Payout account", str(account_id))
        return account
