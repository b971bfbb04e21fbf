"""
Tax Rate Resolver Module

Looks up the applicable business tax percentage from the time-bounded
configuration tables: capital-investment brackets and gross-sales rates by
business type.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from ..database import as_date, as_decimal, execute_query

logger = logging.getLogger(__name__)


class TaxCalculationType(Enum):
    """How the taxable amount of a business is measured."""
    CAPITAL_INVESTMENT = "capital_investment"
    GROSS_SALES = "gross_sales"


@dataclass
class TaxConfiguration:
    """One row of a tax configuration table."""

    id: int
    tax_percent: Decimal
    effective_date: date
    expiration_date: date | None = None  # None = open-ended
    min_amount: Decimal | None = None  # capital investment brackets only
    max_amount: Decimal | None = None
    business_type: str | None = None  # gross sales only
    remarks: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "TaxConfiguration":
        return cls(
            id=row["id"],
            tax_percent=as_decimal(row["tax_percent"]),
            effective_date=as_date(row["effective_date"]),
            expiration_date=as_date(row.get("expiration_date")),
            min_amount=as_decimal(row["min_amount"]) if row.get("min_amount") is not None else None,
            max_amount=as_decimal(row["max_amount"]) if row.get("max_amount") is not None else None,
            business_type=row.get("business_type"),
            remarks=row.get("remarks"),
        )

    def is_active(self, as_of: date) -> bool:
        """Not expired on the given date."""
        return self.expiration_date is None or self.expiration_date >= as_of

    def covers(self, amount: Decimal) -> bool:
        """Capital investment bracket check, inclusive on both ends."""
        return self.min_amount <= amount <= self.max_amount


@dataclass
class RateLookup:
    """Result of a rate lookup.

    found is False when no active configuration matched; the caller decides
    whether that means a zero rate or a rejected calculation.
    """

    found: bool
    rate: Decimal
    scope: str
    configuration_id: int | None = None

    @classmethod
    def missing(cls, scope: str) -> "RateLookup":
        return cls(found=False, rate=Decimal("0"), scope=scope)


def select_latest(configurations: list[TaxConfiguration], as_of: date) -> TaxConfiguration | None:
    """Pick the active configuration with the latest effective date.

    Ties on effective_date go to the higher id, so the most recently
    created row wins.
    """
    active = [c for c in configurations if c.is_active(as_of)]
    if not active:
        return None
    return max(active, key=lambda c: (c.effective_date, c.id))


class RateResolver:
    """Resolves business tax rates from the configuration tables."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(
        self,
        calculation_type: TaxCalculationType,
        taxable_amount: Decimal,
        business_type: str,
        as_of: date | None = None,
    ) -> RateLookup:
        """Resolve the rate for a calculation type.

        Args:
            calculation_type: Capital investment or gross sales
            taxable_amount: Amount used to pick the capital bracket
            business_type: Business type used for gross sales
            as_of: Lookup date (defaults to today)

        Returns:
            RateLookup
        """
        if calculation_type == TaxCalculationType.CAPITAL_INVESTMENT:
            return self.resolve_capital_investment(taxable_amount, as_of)
        return self.resolve_gross_sales(business_type, as_of)

    def resolve_capital_investment(
        self,
        amount: Decimal,
        as_of: date | None = None,
    ) -> RateLookup:
        as_of = as_of or date.today()
        scope = f"capital_investment:{amount}"

        rows = execute_query(
            self.db,
            """
            SELECT id, min_amount, max_amount, tax_percent,
                   effective_date, expiration_date, remarks
            FROM capital_investment_tax_config
            """,
        )
        candidates = [
            config for config in (TaxConfiguration.from_row(r) for r in rows)
            if config.covers(amount)
        ]

        selected = select_latest(candidates, as_of)
        if selected is None:
            logger.warning(f"No capital investment bracket for amount {amount} as of {as_of}")
            return RateLookup.missing(scope)

        return RateLookup(
            found=True,
            rate=selected.tax_percent,
            scope=scope,
            configuration_id=selected.id,
        )

    def resolve_gross_sales(
        self,
        business_type: str,
        as_of: date | None = None,
    ) -> RateLookup:
        as_of = as_of or date.today()
        scope = f"gross_sales:{business_type}"

        rows = execute_query(
            self.db,
            """
            SELECT id, business_type, tax_percent,
                   effective_date, expiration_date, remarks
            FROM gross_sales_tax_config
            WHERE business_type = :business_type
            """,
            {"business_type": business_type},
        )

        selected = select_latest([TaxConfiguration.from_row(r) for r in rows], as_of)
        if selected is None:
            logger.warning(f"No gross sales rate for business type '{business_type}' as of {as_of}")
            return RateLookup.missing(scope)

        return RateLookup(
            found=True,
            rate=selected.tax_percent,
            scope=scope,
            configuration_id=selected.id,
        )
