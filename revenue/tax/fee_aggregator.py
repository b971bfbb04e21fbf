"""
Regulatory Fee Aggregator Module

Sums the flat regulatory fees (mayor's permit, sanitary, registration, ...)
added on top of every business tax computation.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from ..database import as_date, as_decimal, execute_query

logger = logging.getLogger(__name__)


@dataclass
class RegulatoryFee:
    """Single regulatory fee configuration."""

    id: int
    fee_name: str
    amount: Decimal
    expiration_date: date | None = None
    remarks: str | None = None

    def is_active(self, as_of: date) -> bool:
        return self.expiration_date is None or self.expiration_date >= as_of


@dataclass
class FeeBreakdown:
    """Active fees and their total."""

    total: Decimal = Decimal("0")
    fees: list[RegulatoryFee] = field(default_factory=list)


def sum_active_fees(fees: list[RegulatoryFee], as_of: date) -> FeeBreakdown:
    """Sum every non-expired fee. Fees are not scoped by business type."""
    active = [f for f in fees if f.is_active(as_of)]
    return FeeBreakdown(
        total=sum((f.amount for f in active), Decimal("0")),
        fees=active,
    )


class FeeAggregator:
    """Loads regulatory fees and sums the active ones."""

    def __init__(self, db: Session):
        self.db = db

    def load_fees(self) -> list[RegulatoryFee]:
        rows = execute_query(
            self.db,
            """
            SELECT id, fee_name, amount, expiration_date, remarks
            FROM regulatory_fee_config
            ORDER BY id
            """,
        )
        return [
            RegulatoryFee(
                id=row["id"],
                fee_name=row["fee_name"],
                amount=as_decimal(row["amount"]),
                expiration_date=as_date(row["expiration_date"]),
                remarks=row["remarks"],
            )
            for row in rows
        ]

    def aggregate(self, as_of: date | None = None) -> FeeBreakdown:
        """Total of all active regulatory fees (0 when none).

        Args:
            as_of: Date used for the expiration check (defaults to today)

        Returns:
            FeeBreakdown
        """
        as_of = as_of or date.today()
        breakdown = sum_active_fees(self.load_fees(), as_of)
        logger.debug(f"Regulatory fees as of {as_of}: {breakdown.total} from {len(breakdown.fees)} fee(s)")
        return breakdown
