"""
Annual Quote Module

Prices the settlement of all remaining quarters of a year in one payment,
including the early-payment discount when it applies.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..exceptions import NotFoundError
from ..tax.penalties import latest_effective_percent
from .quarterly_ledger import LedgerType, QuarterlyLedger, QuarterStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class AnnualQuoteResult:
    """Amounts due to settle every unpaid quarter of a year."""

    ledger_type: LedgerType
    parent_id: int
    year: int
    unpaid_quarters: list[str] = field(default_factory=list)
    paid_quarters: list[str] = field(default_factory=list)
    base_tax: Decimal = Decimal("0")
    penalty: Decimal = Decimal("0")
    discount_eligible: bool = False
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    ineligible_reason: str | None = None

    @property
    def total_due(self) -> Decimal:
        return (self.base_tax + self.penalty - self.discount_amount).quantize(CENT, rounding=ROUND_HALF_UP)

    def to_dict(self) -> dict:
        return {
            "ledger_type": self.ledger_type.value,
            "parent_id": self.parent_id,
            "year": self.year,
            "unpaid_quarters": self.unpaid_quarters,
            "paid_quarters": self.paid_quarters,
            "base_tax": float(self.base_tax),
            "penalty": float(self.penalty),
            "discount_eligible": self.discount_eligible,
            "discount_percent": float(self.discount_percent),
            "discount_amount": float(self.discount_amount),
            "ineligible_reason": self.ineligible_reason,
            "total_due": float(self.total_due),
        }


class AnnualQuote:
    """Computes annual settlement amounts from the quarterly ledger."""

    def __init__(self, db: Session, settings: PortalSettings):
        self.db = db
        self.settings = settings
        self.ledger = QuarterlyLedger(db, settings)

    def discount_percent(self, as_of: date) -> Decimal:
        return latest_effective_percent(
            self.db,
            "discount_config",
            as_of,
            Decimal(str(self.settings.default_annual_discount_percent)),
        )

    def for_parent(
        self,
        ledger_type: LedgerType,
        parent_id: int,
        year: int,
        as_of: date | None = None,
    ) -> AnnualQuoteResult:
        """Quote the annual settlement of a property or business.

        The discount is offered only during the configured discount month,
        for the current billing year, while no quarter of the year has been
        paid, carries a penalty or is past due. It applies to the base tax,
        not to penalties.

        Args:
            ledger_type: RPT or business
            parent_id: Property total or business permit record id
            year: Billing year
            as_of: Quote date (defaults to today)

        Returns:
            AnnualQuoteResult

        Raises:
            NotFoundError: No quarters exist for the parent and year
        """
        as_of = as_of or date.today()
        quarters = self.ledger.list_quarters(ledger_type, parent_id, year)
        if not quarters:
            raise NotFoundError(
                f"No quarterly taxes found for {ledger_type.value} {parent_id} in {year}"
            )

        quote = AnnualQuoteResult(ledger_type=ledger_type, parent_id=parent_id, year=year)
        has_penalty = False
        past_due = False

        for quarter in quarters:
            if quarter.is_paid:
                quote.paid_quarters.append(quarter.quarter)
                continue
            quote.unpaid_quarters.append(quarter.quarter)
            quote.base_tax += quarter.total_quarterly_tax
            quote.penalty += quarter.penalty_amount
            if quarter.penalty_amount > 0:
                has_penalty = True
            if quarter.payment_status == QuarterStatus.OVERDUE or quarter.due_date < as_of:
                past_due = True

        quote.base_tax = quote.base_tax.quantize(CENT, rounding=ROUND_HALF_UP)
        quote.penalty = quote.penalty.quantize(CENT, rounding=ROUND_HALF_UP)

        if as_of.month != self.settings.annual_discount_month:
            quote.ineligible_reason = "Outside the annual discount period"
        elif year != as_of.year:
            quote.ineligible_reason = "Only the current billing year qualifies for the discount"
        elif quote.paid_quarters:
            quote.ineligible_reason = "A quarter has already been paid"
        elif has_penalty:
            quote.ineligible_reason = "A quarter carries a penalty"
        elif past_due:
            quote.ineligible_reason = "A quarter is past due"
        else:
            quote.discount_eligible = True
            quote.discount_percent = self.discount_percent(as_of)
            quote.discount_amount = (
                quote.base_tax * quote.discount_percent / Decimal("100")
            ).quantize(CENT, rounding=ROUND_HALF_UP)

        logger.debug(
            f"Annual quote {ledger_type.value} {parent_id} ({year}): "
            f"{quote.total_due} due, discount {quote.discount_amount}"
        )
        return quote
