"""Payout account REST API routes.

Routes:
    POST   /api/v1/payout-accounts                   - Register bank details
    GET    /api/v1/payout-accounts?provider_id=...   - A provider's accounts
    GET    /api/v1/payout-accounts/{id}              - One account
    POST   /api/v1/payout-accounts/{id}/verify       - Mark verified
    POST   /api/v1/payout-accounts/{id}/deactivate   - Stop paying out to it
    POST   /api/v1/payout-accounts/{id}/reactivate   - Make it the active one again
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter types at runtime

from fastapi import APIRouter, Depends, Query

from marketplace_escrow.api.deps import get_payout_service
from marketplace_escrow.domain.inputs import PayoutAccountDetails
from marketplace_escrow.schemas.payout import PayoutAccountResponse, RegisterPayoutAccountRequest
from marketplace_escrow.services.payout_service import PayoutService

router = APIRouter(prefix="/api/v1/payout-accounts", tags=["Payout Accounts"])


@router.post(
    "",
    response_model=PayoutAccountResponse,
    status_code=201,
    summary="Register a payout account",
)
async def register_account(
    request: RegisterPayoutAccountRequest,
    svc: PayoutService = Depends(get_payout_service),
) -> PayoutAccountResponse:
    """Registering replaces the provider's previous active account."""
    details = PayoutAccountDetails(
        account_holder_name=request.account_holder_name,
        bank_name=request.bank_name,
        account_number=request.account_number,
        routing_number=request.routing_number,
        account_type=request.account_type,
        external_ref=request.external_ref,
    )
    account = await svc.register(request.provider_id, details)
    return PayoutAccountResponse.model_validate(account)


@router.get("", response_model=list[PayoutAccountResponse], summary="List a provider's accounts")
async def list_accounts(
    provider_id: str = Query(..., min_length=1),
    svc: PayoutService = Depends(get_payout_service),
) -> list[PayoutAccountResponse]:
    return [PayoutAccountResponse.model_validate(a) for a in await svc.list_accounts(provider_id)]


@router.get("/{account_id}", response_model=PayoutAccountResponse, summary="Get an account")
async def get_account(
    account_id: uuid.UUID,
    svc: PayoutService = Depends(get_payout_service),
) -> PayoutAccountResponse:
    return PayoutAccountResponse.model_validate(await svc.get_account(account_id))


@router.post("/{account_id}/verify", response_model=PayoutAccountResponse, summary="Verify")
async def verify_account(
    account_id: uuid.UUID,
    svc: PayoutService = Depends(get_payout_service),
) -> PayoutAccountResponse:
    return PayoutAccountResponse.model_validate(await svc.verify(account_id))


@router.post("/{account_id}/deactivate", response_model=PayoutAccountResponse, summary="Deactivate")
async def deactivate_account(
    account_id: uuid.UUID,
    svc: PayoutService = Depends(get_payout_service),
) -> PayoutAccountResponse:
    return PayoutAccountResponse.model_validate(await svc.deactivate(account_id))


@router.post("/{account_id}/reactivate", response_model=PayoutAccountResponse, summary="Reactivate")
async def reactivate_account(
    account_id: uuid.UUID,
    svc: PayoutService = Depends(get_payout_service),
) -> PayoutAccountResponse:
    return PayoutAccountResponse.model_validate(await svc.reactivate(account_id))
