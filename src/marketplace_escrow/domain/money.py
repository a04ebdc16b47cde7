"""Escrow money arithmetic.

The platform fee is taken out of the provider's base price; tax is charged on
top and passed through to the processor. For a base price B:

    platform_fee = round(B * platform_fee_rate)
    tax          = round(B * tax_rate)
    total_amount = B + platform_fee + tax     (what the client is charged)
    payout       = B - platform_fee           (what the provider receives)

Rounding is ROUND_HALF_UP to the currency minor unit. All values are Decimal;
floats never enter the ledger.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from marketplace_escrow.domain.exceptions import InvalidAmountError

MINOR_UNIT = Decimal("0.01")


def to_money(value: Decimal | int | str | float) -> Decimal:
    """Coerce user input to Decimal without float artifacts.

    Raises InvalidAmountError for non-numeric or non-finite values.
    """
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as err:
        raise InvalidAmountError(value, "not a number") from err
    if not amount.is_finite():
        raise InvalidAmountError(value, "not a finite number")
    return amount


def round_minor(value: Decimal) -> Decimal:
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeSchedule:
    """Platform fee and tax rates applied to a base price."""

    platform_fee_rate: Decimal = Decimal("0.15")
    tax_rate: Decimal = Decimal("0.08")

    def __post_init__(self) -> None:
        # payout_amount stays positive
        for name in ("platform_fee_rate", "tax_rate"):
            rate = getattr(self, name)
            if not Decimal(0) <= rate < 1:
                raise ValueError(f"{name} must be in [0, 1), got {rate}")

    @classmethod
    def for_category(
        cls,
        platform_fee_rate: Decimal,
        tax_rate: Decimal,
        overrides: Mapping[str, Mapping[str, Decimal]],
        category: str | None = None,
    ) -> FeeSchedule:
        """Build the schedule for ``category``, falling back to the defaults."""
        override = overrides.get(category, {}) if category else {}
        return cls(
            platform_fee_rate=Decimal(str(override.get("platform_fee_rate", platform_fee_rate))),
            tax_rate=Decimal(str(override.get("tax_rate", tax_rate))),
        )


@dataclass(frozen=True)
class PaymentBreakdown:
    amount: Decimal
    platform_fee: Decimal
    tax: Decimal
    total_amount: Decimal
    payout_amount: Decimal

    def to_dict(self) -> dict[str, str]:
        """Serialize with string amounts (safe for JSON event metadata)."""
        return {
            "amount": str(self.amount),
            "platform_fee": str(self.platform_fee),
            "tax": str(self.tax),
            "total_amount": str(self.total_amount),
            "payout_amount": str(self.payout_amount),
        }


def compute_breakdown(
    base_amount: Decimal | int | str | float,
    schedule: FeeSchedule | None = None,
) -> PaymentBreakdown:
    """Split a base price into fee, tax, client total and provider payout.

    Raises:
        InvalidAmountError: If the amount is not positive, not finite, or has
            more precision than the currency minor unit.
    """
    schedule = schedule or FeeSchedule()
    amount = to_money(base_amount)
    if amount <= 0:
        raise InvalidAmountError(base_amount)
    if amount != amount.quantize(MINOR_UNIT):
        raise InvalidAmountError(base_amount, "more precise than one cent")
    amount = amount.quantize(MINOR_UNIT)

    platform_fee = round_minor(amount * schedule.platform_fee_rate)
    tax = round_minor(amount * schedule.tax_rate)
    return PaymentBreakdown(
        amount=amount,
        platform_fee=platform_fee,
        tax=tax,
        total_amount=amount + platform_fee + tax,
        payout_amount=amount - platform_fee,
    )
