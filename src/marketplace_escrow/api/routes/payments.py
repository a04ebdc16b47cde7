"""Payment REST API routes: price breakdowns and the approver dashboard.

Routes:
    GET    /api/v1/payments/breakdown?amount=...&category=...  - Fee/tax/payout split
    GET    /api/v1/payments/stats                             - Approver dashboard figures
"""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - FastAPI resolves query parameter types at runtime

from fastapi import APIRouter, Depends, Query

from marketplace_escrow.api.deps import get_ledger_service
from marketplace_escrow.schemas.engagement import PaymentBreakdownResponse, PaymentStatsResponse
from marketplace_escrow.services.ledger_service import LedgerService

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.get(
    "/breakdown",
    response_model=PaymentBreakdownResponse,
    summary="Preview what the client pays and the provider receives",
)
async def get_breakdown(
    amount: Decimal = Query(..., description="Base price"),
    category: str | None = Query(default=None),
    ledger: LedgerService = Depends(get_ledger_service),
) -> PaymentBreakdownResponse:
    breakdown = ledger.breakdown(amount, category)
    return PaymentBreakdownResponse(
        amount=breakdown.amount,
        platform_fee=breakdown.platform_fee,
        tax=breakdown.tax,
        total_amount=breakdown.total_amount,
        payout_amount=breakdown.payout_amount,
    )


@router.get("/stats", response_model=PaymentStatsResponse, summary="Approver dashboard figures")
async def get_payment_stats(
    ledger: LedgerService = Depends(get_ledger_service),
) -> PaymentStatsResponse:
    return PaymentStatsResponse(**await ledger.payment_stats())
