"""
Quarterly Ledger Module

Keeps one row per quarter of an annual tax liability (real property tax or
business tax) and settles quarters individually or for a whole year.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..database import as_date, as_decimal, execute_insert, execute_query, execute_update
from ..exceptions import LedgerSyncError, StateConflictError, ValidationError
from ..tax.tax_computer import TaxComputer

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class LedgerType(Enum):
    """Which tax a quarterly row belongs to."""
    RPT = "rpt"  # parent is a property total
    BUSINESS = "business"  # parent is a business permit record


class QuarterStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass
class QuarterlyTax:
    """One quarterly installment row."""

    id: int
    ledger_type: LedgerType
    parent_id: int
    quarter: str
    year: int
    due_date: date
    total_quarterly_tax: Decimal
    penalty_amount: Decimal = Decimal("0")
    days_late: int = 0
    discount_amount: Decimal = Decimal("0")
    discount_percent_used: Decimal | None = None
    payment_status: QuarterStatus = QuarterStatus.PENDING
    payment_date: date | None = None
    receipt_number: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "QuarterlyTax":
        return cls(
            id=row["id"],
            ledger_type=LedgerType(row["ledger_type"]),
            parent_id=row["parent_id"],
            quarter=row["quarter"],
            year=int(row["year"]),
            due_date=as_date(row["due_date"]),
            total_quarterly_tax=as_decimal(row["total_quarterly_tax"]),
            penalty_amount=as_decimal(row.get("penalty_amount")),
            days_late=int(row.get("days_late") or 0),
            discount_amount=as_decimal(row.get("discount_amount")),
            discount_percent_used=(
                as_decimal(row["discount_percent_used"])
                if row.get("discount_percent_used") is not None else None
            ),
            payment_status=QuarterStatus(row["payment_status"]),
            payment_date=as_date(row.get("payment_date")),
            receipt_number=row.get("receipt_number"),
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == QuarterStatus.PAID

    @property
    def amount_due(self) -> Decimal:
        """Installment plus penalty, in cents."""
        return (self.total_quarterly_tax + self.penalty_amount).quantize(CENT, rounding=ROUND_HALF_UP)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ledger_type": self.ledger_type.value,
            "parent_id": self.parent_id,
            "quarter": self.quarter,
            "year": self.year,
            "due_date": self.due_date.isoformat(),
            "total_quarterly_tax": float(self.total_quarterly_tax),
            "penalty_amount": float(self.penalty_amount),
            "days_late": self.days_late,
            "discount_amount": float(self.discount_amount),
            "discount_percent_used": (
                float(self.discount_percent_used) if self.discount_percent_used is not None else None
            ),
            "payment_status": self.payment_status.value,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "receipt_number": self.receipt_number,
            "amount_due": float(self.amount_due),
        }


@dataclass
class SettlementResult:
    """Outcome of a quarterly or annual settlement."""

    receipt_number: str
    settled: list[str] = field(default_factory=list)  # quarters marked paid
    already_paid: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.settled


QUARTER_COLUMNS = """
    id, ledger_type, parent_id, quarter, year, due_date, total_quarterly_tax,
    penalty_amount, days_late, discount_amount, discount_percent_used,
    payment_status, payment_date, receipt_number
"""


class QuarterlyLedger:
    """Reads and writes quarterly tax rows. Never commits; callers do."""

    def __init__(self, db: Session, settings: PortalSettings):
        self.db = db
        self.settings = settings
        self.computer = TaxComputer(settings)

    # ==================== Queries ====================

    def list_quarters(
        self,
        ledger_type: LedgerType,
        parent_id: int,
        year: int,
    ) -> list[QuarterlyTax]:
        """All quarters of a parent for one year, Q1 first."""
        rows = execute_query(
            self.db,
            f"""
            SELECT {QUARTER_COLUMNS}
            FROM quarterly_taxes
            WHERE ledger_type = :ledger_type
              AND parent_id = :parent_id
              AND year = :year
            ORDER BY quarter
            """,
            {"ledger_type": ledger_type.value, "parent_id": parent_id, "year": year},
        )
        return [QuarterlyTax.from_row(r) for r in rows]

    def get_quarter(self, quarter_id: int) -> QuarterlyTax | None:
        rows = execute_query(
            self.db,
            f"SELECT {QUARTER_COLUMNS} FROM quarterly_taxes WHERE id = :id",
            {"id": quarter_id},
        )
        return QuarterlyTax.from_row(rows[0]) if rows else None

    def has_quarters(self, ledger_type: LedgerType, parent_id: int, year: int | None = None) -> bool:
        query = """
            SELECT COUNT(*) AS total
            FROM quarterly_taxes
            WHERE ledger_type = :ledger_type AND parent_id = :parent_id
        """
        params = {"ledger_type": ledger_type.value, "parent_id": parent_id}
        if year is not None:
            query += " AND year = :year"
            params["year"] = year

        result = execute_query(self.db, query, params)
        return bool(result and result[0]["total"])

    # ==================== Generation ====================

    def generate_quarters(
        self,
        ledger_type: LedgerType,
        parent_id: int,
        annual_total: Decimal,
        year: int | None = None,
    ) -> list[QuarterlyTax]:
        """Create the four quarterly rows of an annual liability.

        Args:
            ledger_type: RPT or business
            parent_id: Property total or business permit record id
            annual_total: Annual liability divided equally across quarters
            year: Billing year (defaults to the current year)

        Returns:
            The created quarters

        Raises:
            ValidationError: Non-positive annual total
            StateConflictError: Quarters already exist for that year
        """
        year = year or date.today().year

        if annual_total <= 0:
            raise ValidationError("Annual tax must be greater than zero", annual_total=float(annual_total))

        if self.has_quarters(ledger_type, parent_id, year):
            raise StateConflictError(
                f"Quarterly taxes already generated for {ledger_type.value} {parent_id} in {year}"
            )

        now = datetime.now()
        for installment in self.computer.split_quarterly(annual_total, year):
            execute_insert(self.db, "quarterly_taxes", {
                "ledger_type": ledger_type.value,
                "parent_id": parent_id,
                "quarter": installment.quarter,
                "year": year,
                "due_date": installment.due_date,
                "total_quarterly_tax": installment.amount,
                "penalty_amount": Decimal("0"),
                "days_late": 0,
                "discount_applied": 0,
                "discount_amount": Decimal("0"),
                "payment_status": QuarterStatus.PENDING.value,
                "created_at": now,
            })

        logger.info(
            f"Generated 4 quarters for {ledger_type.value} {parent_id} ({year}): "
            f"{annual_total / 4} each"
        )
        return self.list_quarters(ledger_type, parent_id, year)

    # ==================== Settlement ====================

    def settle_quarter(
        self,
        quarter_id: int,
        receipt_number: str,
        paid_on: date | None = None,
    ) -> SettlementResult:
        """Mark a single quarter as paid.

        Settling a quarter that is already paid leaves it untouched.

        Raises:
            LedgerSyncError: The quarter does not exist
        """
        paid_on = paid_on or date.today()
        quarter = self.get_quarter(quarter_id)
        if quarter is None:
            raise LedgerSyncError(f"Quarterly tax {quarter_id} not found")

        result = SettlementResult(receipt_number=receipt_number)
        label = f"{quarter.quarter} {quarter.year}"

        if quarter.is_paid:
            logger.info(f"Quarter {quarter_id} already paid with receipt {quarter.receipt_number}")
            result.already_paid.append(label)
            return result

        updated = execute_update(
            self.db,
            """
            UPDATE quarterly_taxes
            SET payment_status = 'paid',
                payment_date = :paid_on,
                receipt_number = :receipt_number
            WHERE id = :id AND payment_status != 'paid'
            """,
            {"id": quarter_id, "paid_on": paid_on, "receipt_number": receipt_number},
        )
        if updated:
            result.settled.append(label)
        else:
            result.already_paid.append(label)

        logger.info(f"Settled quarter {quarter_id} ({label}) with receipt {receipt_number}")
        return result

    def settle_annual(
        self,
        ledger_type: LedgerType,
        parent_id: int,
        year: int,
        receipt_number: str,
        discount_percent: Decimal = Decimal("0"),
        paid_on: date | None = None,
    ) -> SettlementResult:
        """Mark every unpaid quarter of a year as paid under one receipt.

        Quarters that are already paid keep their status, receipt and
        amounts. When nothing is left unpaid the call succeeds as a no-op.

        Args:
            ledger_type: RPT or business
            parent_id: Property total or business permit record id
            year: Billing year
            receipt_number: Receipt shared by all settled quarters
            discount_percent: Annual prepayment discount applied to each
                settled quarter's base tax
            paid_on: Payment date (defaults to today)

        Returns:
            SettlementResult

        Raises:
            LedgerSyncError: No quarters exist for the parent and year
        """
        paid_on = paid_on or date.today()
        quarters = self.list_quarters(ledger_type, parent_id, year)

        if not quarters:
            raise LedgerSyncError(
                f"No quarterly taxes found for {ledger_type.value} {parent_id} in {year}"
            )

        result = SettlementResult(receipt_number=receipt_number)
        discount_applied = 1 if discount_percent > 0 else 0

        for quarter in quarters:
            if quarter.is_paid:
                result.already_paid.append(quarter.quarter)
                continue

            discount_amount = (
                quarter.total_quarterly_tax * discount_percent / Decimal("100")
            ).quantize(CENT, rounding=ROUND_HALF_UP)

            updated = execute_update(
                self.db,
                """
                UPDATE quarterly_taxes
                SET payment_status = 'paid',
                    payment_date = :paid_on,
                    receipt_number = :receipt_number,
                    discount_applied = :discount_applied,
                    discount_percent_used = :discount_percent,
                    discount_amount = :discount_amount
                WHERE id = :id AND payment_status != 'paid'
                """,
                {
                    "id": quarter.id,
                    "paid_on": paid_on,
                    "receipt_number": receipt_number,
                    "discount_applied": discount_applied,
                    "discount_percent": discount_percent,
                    "discount_amount": discount_amount,
                },
            )
            if updated:
                result.settled.append(quarter.quarter)
            else:
                result.already_paid.append(quarter.quarter)

        if result.is_noop:
            logger.info(f"No unpaid quarters for {ledger_type.value} {parent_id} in {year}")
        else:
            logger.info(
                f"Annual settlement {receipt_number}: {', '.join(result.settled)} "
                f"for {ledger_type.value} {parent_id} ({year})"
            )

        return result

    def receipt_progress(
        self,
        ledger_type: LedgerType,
        parent_id: int,
        year: int,
        receipt_number: str,
    ) -> dict:
        """Quarters of a year paid under a given receipt."""
        rows = execute_query(
            self.db,
            """
            SELECT COUNT(*) AS total,
                   SUM(CASE WHEN payment_status = 'paid' THEN 1 ELSE 0 END) AS paid_count
            FROM quarterly_taxes
            WHERE ledger_type = :ledger_type
              AND parent_id = :parent_id
              AND year = :year
              AND receipt_number = :receipt_number
            """,
            {
                "ledger_type": ledger_type.value,
                "parent_id": parent_id,
                "year": year,
                "receipt_number": receipt_number,
            },
        )
        row = rows[0] if rows else {}
        return {
            "type": "annual",
            "updated_quarters": int(row.get("paid_count") or 0),
            "total_quarters": int(row.get("total") or 0),
        }
