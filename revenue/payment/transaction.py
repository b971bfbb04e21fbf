"""
Payment transaction record.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..database import as_datetime, as_decimal


@dataclass
class PaymentTransaction:
    """One row of payment_transactions."""

    payment_id: str
    purpose: str
    amount: Decimal
    phone: str
    payment_method: str
    otp_code: str
    otp_expires_at: datetime
    otp_attempts: int = 0
    otp_locked: bool = False
    payment_status: str = "pending"
    receipt_number: str | None = None
    paid_at: datetime | None = None
    ledger_type: str = "rpt"
    tax_id: int = 0  # quarterly_taxes.id for single-quarter payments
    property_total_id: int = 0  # ledger parent for annual payments
    quarter: str | None = None
    year: int | None = None
    is_annual: bool = False
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    sync_status: str = "pending"
    system_error: str | None = None
    client_system: str | None = None
    client_reference: str | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: dict) -> "PaymentTransaction":
        return cls(
            id=row.get("id"),
            payment_id=row["payment_id"],
            purpose=row["purpose"],
            amount=as_decimal(row["amount"]),
            phone=row["phone"],
            payment_method=row["payment_method"],
            otp_code=row["otp_code"],
            otp_expires_at=as_datetime(row["otp_expires_at"]),
            otp_attempts=int(row["otp_attempts"] or 0),
            otp_locked=bool(row["otp_locked"]),
            payment_status=row["payment_status"],
            receipt_number=row.get("receipt_number"),
            paid_at=as_datetime(row.get("paid_at")),
            ledger_type=row.get("ledger_type") or "rpt",
            tax_id=int(row.get("tax_id") or 0),
            property_total_id=int(row.get("property_total_id") or 0),
            quarter=row.get("quarter") or None,
            year=int(row["year"]) if row.get("year") else None,
            is_annual=bool(row.get("is_annual")),
            discount_percent=as_decimal(row.get("discount_percent")),
            discount_amount=as_decimal(row.get("discount_amount")),
            sync_status=row.get("sync_status") or "pending",
            system_error=row.get("system_error"),
            client_system=row.get("client_system"),
            client_reference=row.get("client_reference"),
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    def is_expired(self, now: datetime) -> bool:
        return now > self.otp_expires_at
