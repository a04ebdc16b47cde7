"""Pydantic schemas for the Payout Account API."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves these annotations at runtime
from datetime import datetime  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from marketplace_escrow.domain.enums import AccountType


class RegisterPayoutAccountRequest(BaseModel):
    """Bank details a provider submits. Only the last four digits are kept."""

    provider_id: str = Field(..., min_length=1, max_length=64)
    account_holder_name: str
    bank_name: str
    account_number: str = Field(..., description="Digits only")
    routing_number: str = Field(..., description="9-digit routing number")
    account_type: AccountType = AccountType.CHECKING
    external_ref: str | None = Field(
        default=None, description="Processor-side account id, if already created"
    )


class PayoutAccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    provider_id: str
    external_ref: str
    account_holder_name: str
    bank_name: str
    account_last4: str
    routing_number: str
    account_type: str
    verified: bool
    active: bool
    is_ready: bool
    verified_at: datetime | None
    created_at: datetime
