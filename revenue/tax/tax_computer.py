"""
Tax Computer Module

Combines a resolved rate and the regulatory fees into the annual business
tax liability and divides it into quarterly installments.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from ..config import PortalSettings
from ..exceptions import RateNotFoundError
from .fee_aggregator import FeeBreakdown
from .rate_resolver import RateLookup, TaxCalculationType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
QUARTERS = ("Q1", "Q2", "Q3", "Q4")


@dataclass
class TaxComputation:
    """Annual tax computation for one taxable amount."""

    calculation_type: TaxCalculationType
    taxable_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    regulatory_fees: Decimal
    total_tax: Decimal
    rate_found: bool = True
    configuration_id: int | None = None
    computation_date: datetime = field(default_factory=datetime.now)

    @property
    def quarterly_amount(self) -> Decimal:
        return self.total_tax / 4


@dataclass
class QuarterlyInstallment:
    """One of the four equal installments of an annual liability."""

    quarter: str
    year: int
    due_date: date
    amount: Decimal


class TaxComputer:
    """Business tax arithmetic."""

    def __init__(self, settings: PortalSettings):
        self.settings = settings

    def compute(
        self,
        calculation_type: TaxCalculationType,
        taxable_amount: Decimal,
        rate: RateLookup,
        fees: FeeBreakdown,
    ) -> TaxComputation:
        """Compute tax_amount = taxable * rate / 100 and total = tax + fees.

        Args:
            calculation_type: Capital investment or gross sales
            taxable_amount: Base amount
            rate: Result of the rate lookup
            fees: Active regulatory fees

        Returns:
            TaxComputation

        Raises:
            RateNotFoundError: No rate matched and the policy is 'reject'
        """
        if not rate.found:
            if self.settings.missing_rate_policy == "reject":
                raise RateNotFoundError(
                    f"No active tax configuration for {rate.scope}",
                    scope=rate.scope,
                )
            logger.info(f"No rate for {rate.scope}; computing with 0% rate")

        tax_amount = (taxable_amount * rate.rate / Decimal("100")).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
        total_tax = tax_amount + fees.total

        return TaxComputation(
            calculation_type=calculation_type,
            taxable_amount=taxable_amount,
            tax_rate=rate.rate,
            tax_amount=tax_amount,
            regulatory_fees=fees.total,
            total_tax=total_tax,
            rate_found=rate.found,
            configuration_id=rate.configuration_id,
        )

    def split_quarterly(self, annual_total: Decimal, year: int) -> list[QuarterlyInstallment]:
        """Divide an annual liability into four equal installments.

        Every quarter of the year gets a full share regardless of when the
        liability was approved. Division by four is exact in Decimal, so the
        installments always sum to the annual total.

        Args:
            annual_total: Annual liability
            year: Billing year

        Returns:
            Four installments, Q1 to Q4
        """
        amount = annual_total / 4
        return [
            QuarterlyInstallment(
                quarter=quarter,
                year=year,
                due_date=self.due_date(quarter, year),
                amount=amount,
            )
            for quarter in QUARTERS
        ]

    def due_date(self, quarter: str, year: int) -> date:
        """Due date of a quarter from the configured MM-DD values."""
        month_day = self.settings.quarter_due_dates[quarter]
        month, day = (int(part) for part in month_day.split("-"))
        return date(year, month, day)
