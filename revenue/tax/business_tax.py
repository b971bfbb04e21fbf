"""
Business Tax Module

Computes and stores the annual business tax of a permit and approves it
into the quarterly ledger.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..database import as_datetime, as_decimal, execute_insert, execute_query, execute_update
from ..exceptions import NotFoundError, StateConflictError, ValidationError
from ..ledger.quarterly_ledger import LedgerType, QuarterlyLedger
from .fee_aggregator import FeeAggregator
from .rate_resolver import RateResolver, TaxCalculationType
from .tax_computer import TaxComputation, TaxComputer

logger = logging.getLogger(__name__)

APPROVED_STATUSES = ("Approved", "Active")


@dataclass
class BusinessTaxRequest:
    """Validated input of a business tax calculation."""

    business_permit_id: str
    business_name: str
    owner_name: str
    business_type: str
    taxable_amount: Decimal
    tax_calculation_type: TaxCalculationType
    address: str | None = None
    contact_number: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "BusinessTaxRequest":
        """Validate a raw payload.

        full_name and owner_name are accepted interchangeably.

        Raises:
            ValidationError: A required field is missing or malformed
        """
        payload = dict(payload)
        if not payload.get("full_name") and payload.get("owner_name"):
            payload["full_name"] = payload["owner_name"]

        required = [
            "business_permit_id",
            "business_name",
            "full_name",
            "business_type",
            "taxable_amount",
            "tax_calculation_type",
        ]
        for name in required:
            value = payload.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"Missing required field: {name}", field=name)

        try:
            taxable_amount = Decimal(str(payload["taxable_amount"]))
        except (InvalidOperation, ValueError):
            raise ValidationError("Taxable amount must be a number", field="taxable_amount")

        if not taxable_amount.is_finite() or taxable_amount <= 0:
            raise ValidationError("Taxable amount must be greater than zero", field="taxable_amount")

        try:
            calculation_type = TaxCalculationType(payload["tax_calculation_type"])
        except ValueError:
            raise ValidationError(
                "Invalid tax calculation type. Must be 'capital_investment' or 'gross_sales'",
                field="tax_calculation_type",
            )

        return cls(
            business_permit_id=str(payload["business_permit_id"]).strip(),
            business_name=str(payload["business_name"]).strip(),
            owner_name=str(payload["full_name"]).strip(),
            business_type=str(payload["business_type"]).strip(),
            taxable_amount=taxable_amount,
            tax_calculation_type=calculation_type,
            address=payload.get("address"),
            contact_number=payload.get("contact_number"),
        )


@dataclass
class BusinessTaxResult:
    """Saved computation plus whether the record was created or updated."""

    action: str  # 'created' or 'updated'
    record_id: int
    business_permit_id: str
    status: str
    computation: TaxComputation

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "record_id": self.record_id,
            "business_permit_id": self.business_permit_id,
            "status": self.status,
            "tax_rate": float(self.computation.tax_rate),
            "tax_amount": float(self.computation.tax_amount),
            "regulatory_fees": float(self.computation.regulatory_fees),
            "total_tax": float(self.computation.total_tax),
            "quarterly_amount": float(self.computation.quarterly_amount),
            "rate_found": self.computation.rate_found,
        }


class BusinessTaxService:
    """Calculates, stores and approves business taxes."""

    def __init__(self, db: Session, settings: PortalSettings):
        self.db = db
        self.settings = settings
        self.resolver = RateResolver(db)
        self.fees = FeeAggregator(db)
        self.computer = TaxComputer(settings)
        self.ledger = QuarterlyLedger(db, settings)

    def calculate(self, request: BusinessTaxRequest, as_of: date | None = None) -> TaxComputation:
        """Compute the annual tax without saving it."""
        as_of = as_of or date.today()
        rate = self.resolver.resolve(
            request.tax_calculation_type,
            request.taxable_amount,
            request.business_type,
            as_of,
        )
        fees = self.fees.aggregate(as_of)
        return self.computer.compute(request.tax_calculation_type, request.taxable_amount, rate, fees)

    def calculate_and_save(self, payload: dict, as_of: date | None = None) -> BusinessTaxResult:
        """Compute the tax of a permit and upsert its tax record.

        A second call for the same business_permit_id updates the numbers of
        the existing record. Its status is never moved backwards.

        Args:
            payload: Raw request fields
            as_of: Rate and fee lookup date (defaults to today)

        Returns:
            BusinessTaxResult

        Raises:
            ValidationError: Invalid payload (nothing is written)
            RateNotFoundError: No rate matched under the 'reject' policy
        """
        request = BusinessTaxRequest.from_payload(payload)
        computation = self.calculate(request, as_of)
        now = datetime.now()

        existing = self.get_record(request.business_permit_id)

        values = {
            "business_name": request.business_name,
            "owner_name": request.owner_name,
            "business_type": request.business_type,
            "tax_calculation_type": request.tax_calculation_type.value,
            "taxable_amount": request.taxable_amount,
            "tax_rate": computation.tax_rate,
            "tax_amount": computation.tax_amount,
            "regulatory_fees": computation.regulatory_fees,
            "total_tax": computation.total_tax,
        }

        try:
            if existing:
                execute_update(
                    self.db,
                    """
                    UPDATE business_permits
                    SET business_name = :business_name,
                        owner_name = :owner_name,
                        business_type = :business_type,
                        tax_calculation_type = :tax_calculation_type,
                        taxable_amount = :taxable_amount,
                        tax_rate = :tax_rate,
                        tax_amount = :tax_amount,
                        regulatory_fees = :regulatory_fees,
                        total_tax = :total_tax,
                        updated_at = :updated_at
                    WHERE id = :id
                    """,
                    {**values, "id": existing["id"], "updated_at": now},
                )
                action = "updated"
                record_id = existing["id"]
                status = existing["status"]
            else:
                row = execute_insert(self.db, "business_permits", {
                    "business_permit_id": request.business_permit_id,
                    **values,
                    "status": "Pending",
                    "address": request.address,
                    "contact_number": request.contact_number,
                    "created_at": now,
                    "updated_at": now,
                })
                action = "created"
                record_id = row["id"]
                status = "Pending"

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Business tax {action} for permit {request.business_permit_id}: "
            f"rate {computation.tax_rate}%, total {computation.total_tax}"
        )

        return BusinessTaxResult(
            action=action,
            record_id=record_id,
            business_permit_id=request.business_permit_id,
            status=status,
            computation=computation,
        )

    def get_record(self, business_permit_id: str) -> dict | None:
        rows = execute_query(
            self.db,
            """
            SELECT id, business_permit_id, business_name, owner_name, business_type,
                   tax_calculation_type, taxable_amount, tax_rate, tax_amount,
                   regulatory_fees, total_tax, status, approved_by, approved_date,
                   created_at, updated_at
            FROM business_permits
            WHERE business_permit_id = :business_permit_id
            """,
            {"business_permit_id": business_permit_id},
        )
        return rows[0] if rows else None

    def get_permit(self, business_permit_id: str, year: int | None = None) -> dict:
        """Tax record with its quarters for a year.

        Raises:
            NotFoundError: Unknown permit
        """
        record = self.get_record(business_permit_id)
        if record is None:
            raise NotFoundError(f"Business permit {business_permit_id} not found")

        year = year or date.today().year
        quarters = self.ledger.list_quarters(LedgerType.BUSINESS, record["id"], year)

        approved_date = as_datetime(record["approved_date"])
        return {
            "id": record["id"],
            "business_permit_id": record["business_permit_id"],
            "business_name": record["business_name"],
            "owner_name": record["owner_name"],
            "business_type": record["business_type"],
            "tax_calculation_type": record["tax_calculation_type"],
            "taxable_amount": float(as_decimal(record["taxable_amount"])),
            "tax_rate": float(as_decimal(record["tax_rate"])),
            "tax_amount": float(as_decimal(record["tax_amount"])),
            "regulatory_fees": float(as_decimal(record["regulatory_fees"])),
            "total_tax": float(as_decimal(record["total_tax"])),
            "status": record["status"],
            "approved_by": record["approved_by"],
            "approved_date": approved_date.isoformat() if approved_date else None,
            "year": year,
            "quarters": [q.to_dict() for q in quarters],
        }

    def approve_permit(self, business_permit_id: str, approved_by: str) -> dict:
        """Approve a pending tax record and open its quarterly ledger.

        Args:
            business_permit_id: Permit identifier
            approved_by: User approving the permit

        Returns:
            Dict with the resulting status and whether anything changed

        Raises:
            NotFoundError: Unknown permit
            StateConflictError: Not pending, or zero taxable/tax amount
        """
        record = self.get_record(business_permit_id)
        if record is None:
            raise NotFoundError(f"Business permit {business_permit_id} not found")

        if record["status"] in APPROVED_STATUSES:
            return {"business_permit_id": business_permit_id, "status": record["status"], "changed": False}

        if record["status"] != "Pending":
            raise StateConflictError(
                f"Permit {business_permit_id} cannot be approved from status {record['status']}",
                status=record["status"],
            )

        taxable_amount = as_decimal(record["taxable_amount"])
        tax_amount = as_decimal(record["tax_amount"])
        if taxable_amount <= 0 or tax_amount <= 0:
            raise StateConflictError(
                f"Permit {business_permit_id} has no computed tax to approve",
                taxable_amount=float(taxable_amount),
                tax_amount=float(tax_amount),
            )

        year = date.today().year
        try:
            updated = execute_update(
                self.db,
                """
                UPDATE business_permits
                SET status = 'Approved',
                    approved_by = :approved_by,
                    approved_date = :approved_date,
                    updated_at = :approved_date
                WHERE id = :id AND status = 'Pending'
                """,
                {"id": record["id"], "approved_by": approved_by, "approved_date": datetime.now()},
            )
            if not updated:
                raise StateConflictError(f"Permit {business_permit_id} was modified concurrently")

            quarters_created = False
            if not self.ledger.has_quarters(LedgerType.BUSINESS, record["id"], year):
                self.ledger.generate_quarters(
                    LedgerType.BUSINESS,
                    record["id"],
                    as_decimal(record["total_tax"]),
                    year,
                )
                quarters_created = True

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Permit {business_permit_id} approved by {approved_by}")

        return {
            "business_permit_id": business_permit_id,
            "status": "Approved",
            "changed": True,
            "quarters_created": quarters_created,
            "year": year,
        }
