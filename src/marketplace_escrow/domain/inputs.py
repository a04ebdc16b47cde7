"""Validated inputs for work evidence, quotes and payout accounts.

Validation runs before any state is touched, so a rejected input never leaves
a partial effect behind.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from marketplace_escrow.domain.enums import AccountType
from marketplace_escrow.domain.exceptions import (
    EvidenceRequiredError,
    InvalidAmountError,
    InvalidEvidenceError,
    InvalidPayoutAccountError,
    InvalidQuoteError,
    ReasonRequiredError,
)
from marketplace_escrow.domain.money import MINOR_UNIT, to_money

MIN_PROPOSAL_LENGTH = 10


@dataclass(frozen=True)
class EvidenceItem:
    """One piece of completion evidence (usually a photo).

    Attributes:
        reference: Stable URL returned by the evidence store.
        description: What the photo shows.
        original_name: File name as uploaded.
    """

    reference: str
    description: str = ""
    original_name: str = ""


def validate_evidence(evidence: Sequence[EvidenceItem]) -> None:
    if not evidence:
        raise EvidenceRequiredError()
    for index, item in enumerate(evidence):
        if not item.reference or not item.reference.strip():
            raise InvalidEvidenceError(index)


@dataclass(frozen=True)
class QuoteTerms:
    amount: Decimal
    estimated_hours: int
    proposal: str
    tools_provided: str | None = None
    additional_services: str | None = None

    @classmethod
    def build(
        cls,
        amount: Decimal | int | str,
        estimated_hours: int,
        proposal: str,
        tools_provided: str | None = None,
        additional_services: str | None = None,
    ) -> QuoteTerms:
        value = to_money(amount)
        if value <= 0:
            raise InvalidAmountError(amount, "quote amount must be a positive number")
        if value != value.quantize(MINOR_UNIT):
            raise InvalidAmountError(amount, "more precise than one cent")
        if estimated_hours <= 0:
            raise InvalidQuoteError("estimated hours must be a positive number")
        if len((proposal or "").strip()) < MIN_PROPOSAL_LENGTH:
            raise InvalidQuoteError("please provide a detailed proposal explaining your approach")
        return cls(
            amount=value.quantize(MINOR_UNIT),
            estimated_hours=estimated_hours,
            proposal=proposal.strip(),
            tools_provided=tools_provided,
            additional_services=additional_services,
        )


@dataclass(frozen=True)
class PayoutAccountDetails:
    """Bank details a provider submits for payouts."""

    account_holder_name: str
    bank_name: str
    account_number: str
    routing_number: str
    account_type: AccountType = AccountType.CHECKING
    external_ref: str | None = None

    def validate(self) -> None:
        if len(self.account_holder_name.strip()) < 2:
            raise InvalidPayoutAccountError("account holder name is required")
        if len(self.bank_name.strip()) < 2:
            raise InvalidPayoutAccountError("bank name is required")
        if len(self.account_number) < 4 or not self.account_number.isdigit():
            raise InvalidPayoutAccountError("account number must be at least 4 digits")
        if len(self.routing_number) != 9 or not self.routing_number.isdigit():
            raise InvalidPayoutAccountError("routing number must be exactly 9 digits")
        if self.account_type not in set(AccountType):
            raise InvalidPayoutAccountError("account type must be checking or savings")

    @property
    def last4(self) -> str:
        return self.account_number[-4:]


def require_reason(reason: str | None, action: str) -> str:
    if not reason or not reason.strip():
        raise ReasonRequiredError(action)
    return reason.strip()
