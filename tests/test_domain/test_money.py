"""Tests for fee, tax and payout arithmetic."""

from __future__ import annotations

from decimal import Decimal

import pytest

from marketplace_escrow.domain.exceptions import InvalidAmountError
from marketplace_escrow.domain.money import FeeSchedule, compute_breakdown, to_money


class TestComputeBreakdown:
    def test_hundred_dollar_job(self) -> None:
        breakdown = compute_breakdown(Decimal("100.00"))
        assert breakdown.platform_fee == Decimal("15.00")
        assert breakdown.tax == Decimal("8.00")
        assert breakdown.total_amount == Decimal("123.00")
        assert breakdown.payout_amount == Decimal("85.00")

    @pytest.mark.parametrize("amount", ["0.01", "1.99", "33.33", "87.45", "12345.67"])
    def test_totals_add_up(self, amount: str) -> None:
        b = compute_breakdown(amount)
        assert b.total_amount == b.amount + b.platform_fee + b.tax
        assert b.payout_amount == b.amount - b.platform_fee

    def test_half_cent_rounds_up(self) -> None:
        # 0.15 * 0.10 = 0.015 and 0.08 * 0.10 = 0.008
        b = compute_breakdown("0.10")
        assert b.platform_fee == Decimal("0.02")
        assert b.tax == Decimal("0.01")

    def test_custom_schedule(self) -> None:
        schedule = FeeSchedule(platform_fee_rate=Decimal("0.10"), tax_rate=Decimal("0"))
        b = compute_breakdown("200", schedule)
        assert b.platform_fee == Decimal("20.00")
        assert b.tax == Decimal("0.00")
        assert b.total_amount == Decimal("220.00")

    def test_to_dict_uses_strings(self) -> None:
        data = compute_breakdown("100").to_dict()
        assert data["payout_amount"] == "85.00"


class TestInvalidAmounts:
    @pytest.mark.parametrize("amount", ["0", "-5", "0.00"])
    def test_non_positive_rejected(self, amount: str) -> None:
        with pytest.raises(InvalidAmountError):
            compute_breakdown(amount)

    def test_sub_cent_rejected(self) -> None:
        with pytest.raises(InvalidAmountError, match="one cent"):
            compute_breakdown("10.005")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity"])
    def test_non_numeric_rejected(self, value: str) -> None:
        with pytest.raises(InvalidAmountError):
            to_money(value)


class TestFeeSchedule:
    def test_category_override(self) -> None:
        overrides = {"electrical": {"platform_fee_rate": Decimal("0.20")}}
        schedule = FeeSchedule.for_category(
            Decimal("0.15"), Decimal("0.08"), overrides, "electrical"
        )
        assert schedule.platform_fee_rate == Decimal("0.20")
        assert schedule.tax_rate == Decimal("0.08")

    def test_unknown_category_uses_defaults(self) -> None:
        schedule = FeeSchedule.for_category(Decimal("0.15"), Decimal("0.08"), {}, "gardening")
        assert schedule == FeeSchedule()

    @pytest.mark.parametrize(
        "rates",
        [
            {"platform_fee_rate": Decimal("1.5")},
            {"platform_fee_rate": Decimal("1")},
            {"tax_rate": Decimal("-0.01")},
        ],
    )
    def test_out_of_range_rates_rejected(self, rates: dict) -> None:
        with pytest.raises(ValueError, match="must be in"):
            FeeSchedule(**rates)

    def test_bad_override_rejected(self) -> None:
        overrides = {"roofing": {"platform_fee_rate": Decimal("1.5")}}
        with pytest.raises(ValueError, match="platform_fee_rate"):
            FeeSchedule.for_category(Decimal("0.15"), Decimal("0.08"), overrides, "roofing")
