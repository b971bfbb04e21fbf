"""
OTP Payment Gate Module

Issues a short-lived numeric code per payment attempt and moves the
payment from pending to paid when the right code is entered in time.
Wrong codes count towards a lock; a locked payment can no longer be paid.

Every state change is a conditional UPDATE on (payment_status='pending',
otp_locked=0), so two concurrent verifications of the same payment cannot
both succeed or both consume the same attempt count.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..database import execute_insert, execute_query, execute_update
from ..exceptions import (
    InvalidOTPError,
    NotFoundError,
    OTPExpiredError,
    PaymentLockedError,
    StateConflictError,
    ValidationError,
)
from ..ledger.annual_quote import AnnualQuote
from ..ledger.quarterly_ledger import LedgerType, QuarterlyLedger
from .ledger_sync import LedgerSync, SyncStatus
from .phone import format_phone_number
from .transaction import PaymentTransaction

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Transaction not found or already processed"


def generate_payment_id(now: datetime | None = None) -> str:
    """PAY-YYYYmmddHHMMSS-NNNN"""
    now = now or datetime.now()
    return f"PAY-{now:%Y%m%d%H%M%S}-{secrets.randbelow(10000):04d}"


def generate_receipt_number(now: datetime | None = None) -> str:
    """RCPT-YYYYmmddHHMMSS-NNN"""
    now = now or datetime.now()
    return f"RCPT-{now:%Y%m%d%H%M%S}-{secrets.randbelow(1000):03d}"


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


class OTPGate:
    """Creates, verifies and resends payment OTPs."""

    def __init__(
        self,
        db: Session,
        settings: PortalSettings,
        ledger_sync: LedgerSync | None = None,
    ):
        self.db = db
        self.settings = settings
        self.ledger_sync = ledger_sync or LedgerSync(db, settings)

    # ==================== Lookups ====================

    def get_transaction(self, payment_id: str) -> PaymentTransaction | None:
        rows = execute_query(
            self.db,
            "SELECT * FROM payment_transactions WHERE payment_id = :payment_id",
            {"payment_id": payment_id},
        )
        return PaymentTransaction.from_row(rows[0]) if rows else None

    def _get_pending(self, payment_id: str) -> PaymentTransaction:
        """Pending transaction, or the uniform not-found error."""
        transaction = self.get_transaction(payment_id)
        if transaction is None or transaction.payment_status != "pending":
            logger.info(f"{NOT_FOUND_MESSAGE}: {payment_id}")
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return transaction

    # ==================== Request ====================

    def request_otp(self, payload: dict, now: datetime | None = None) -> dict:
        """Create a pending payment and issue its OTP.

        Args:
            payload: phone, payment_method, amount, purpose, and optionally
                ledger_type, tax_id, property_total_id, quarter, year,
                is_annual, client_system, client_reference
            now: Current time (defaults to datetime.now())

        Returns:
            Response dict with payment_id and expires_at; test_otp is
            included only in development

        Raises:
            ValidationError: Missing fields, bad amount or phone number
            NotFoundError: Linked quarter or year does not exist
            StateConflictError: Linked quarters are already paid
        """
        now = now or datetime.now()

        for name in ("phone", "payment_method", "amount", "purpose"):
            value = payload.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"Missing required field: {name}", field=name)

        try:
            amount = Decimal(str(payload["amount"]))
        except (InvalidOperation, ValueError):
            raise ValidationError("Amount must be a number", field="amount")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")

        phone = format_phone_number(str(payload["phone"]))
        if phone is None:
            raise ValidationError(
                "Invalid phone number format. Please enter 10 or 11 digits.",
                field="phone",
            )

        ledger_type = payload.get("ledger_type") or LedgerType.RPT.value
        try:
            ledger_type = LedgerType(ledger_type)
        except ValueError:
            raise ValidationError(f"Invalid ledger type '{ledger_type}'", field="ledger_type")

        link = self._ledger_link(payload, amount, ledger_type, now)

        payment_id = generate_payment_id(now)
        otp_code = generate_otp(self.settings.otp_length)
        expires_at = now + timedelta(minutes=self.settings.otp_expiry_minutes)

        try:
            execute_insert(self.db, "payment_transactions", {
                "payment_id": payment_id,
                "client_system": payload.get("client_system") or "RPT System",
                "client_reference": payload.get("client_reference") or "",
                "purpose": str(payload["purpose"]).strip(),
                "amount": amount,
                "phone": phone,
                "payment_method": str(payload["payment_method"]).strip(),
                "otp_code": otp_code,
                "otp_expires_at": expires_at,
                "otp_attempts": 0,
                "otp_locked": 0,
                "payment_status": "pending",
                **link,
                "sync_status": SyncStatus.PENDING,
                "created_at": now,
            })
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment {payment_id} created: {amount} via {payload['payment_method']}")
        if self.settings.is_development:
            logger.debug(f"OTP for {payment_id}: {otp_code}")

        response = {
            "success": True,
            "payment_id": payment_id,
            "expires_at": expires_at.isoformat(sep=" ", timespec="seconds"),
        }
        if self.settings.is_development:
            response["message"] = "OTP sent successfully (simulated)"
            response["test_otp"] = otp_code
            response["formatted_phone"] = phone
        else:
            response["message"] = "OTP sent to your phone"
        return response

    def _ledger_link(
        self,
        payload: dict,
        amount: Decimal,
        ledger_type: LedgerType,
        now: datetime,
    ) -> dict:
        """Ledger columns of a new payment, priced from the ledger itself.

        A payment linked to a quarter or to an annual settlement must pay
        exactly the amount due. The annual discount comes from the annual
        quote of the day; discount values sent by the client are ignored.
        """
        try:
            tax_id = int(payload.get("tax_id") or 0)
            property_total_id = int(payload.get("property_total_id") or 0)
            year = int(payload.get("year") or now.year)
        except (TypeError, ValueError):
            raise ValidationError("tax_id, property_total_id and year must be whole numbers")

        link = {
            "ledger_type": ledger_type.value,
            "tax_id": tax_id,
            "property_total_id": property_total_id,
            "quarter": payload.get("quarter") or None,
            "year": year,
            "is_annual": 0,
            "discount_percent": Decimal("0"),
            "discount_amount": Decimal("0"),
        }

        if payload.get("is_annual"):
            if property_total_id <= 0:
                raise ValidationError(
                    "Annual payments require a property_total_id",
                    field="property_total_id",
                )
            quote = AnnualQuote(self.db, self.settings).for_parent(
                ledger_type, property_total_id, year, now.date()
            )
            if not quote.unpaid_quarters:
                raise StateConflictError(f"All quarters of {year} are already paid")
            amount_due = quote.total_due
            link.update(
                is_annual=1,
                discount_percent=quote.discount_percent,
                discount_amount=quote.discount_amount,
            )
        elif tax_id > 0:
            quarter = QuarterlyLedger(self.db, self.settings).get_quarter(tax_id)
            if quarter is None:
                raise NotFoundError(f"Quarterly tax {tax_id} not found")
            if quarter.is_paid:
                raise StateConflictError(f"{quarter.quarter} {quarter.year} is already paid")
            amount_due = quarter.amount_due
            link.update(
                ledger_type=quarter.ledger_type.value,
                quarter=quarter.quarter,
                year=quarter.year,
            )
        else:
            return link

        if amount != amount_due:
            raise ValidationError(
                f"Amount must equal the amount due of {amount_due}",
                field="amount",
                amount_due=float(amount_due),
            )
        return link

    # ==================== Verify ====================

    def verify_otp(self, payment_id: str, otp_code: str, now: datetime | None = None) -> dict:
        """Verify the OTP of a pending payment.

        Checks run in order: locked, expired, wrong code, match. An expired
        code does not consume an attempt. A wrong code does, and the payment
        locks when the attempts reach the configured maximum.

        On a match the payment is committed as paid first; the quarterly
        ledger is updated afterwards and a failure there is only recorded
        on the transaction.

        Args:
            payment_id: Payment identifier
            otp_code: Code entered by the payer
            now: Current time (defaults to datetime.now())

        Returns:
            Success response with the receipt number

        Raises:
            ValidationError: Missing payment_id or code
            NotFoundError: Unknown or already processed payment
            PaymentLockedError: Too many failed attempts
            OTPExpiredError: Code has expired
            InvalidOTPError: Wrong code
        """
        now = now or datetime.now()
        payment_id = (payment_id or "").strip()
        otp_code = (otp_code or "").strip()
        if not payment_id or not otp_code:
            raise ValidationError("Payment ID and OTP code are required")

        transaction = self._get_pending(payment_id)

        if transaction.otp_locked:
            raise PaymentLockedError("OTP verification locked. Too many failed attempts.")

        if transaction.is_expired(now):
            logger.info(f"OTP expired for payment {payment_id}")
            raise OTPExpiredError("OTP has expired. Please request a new one.")

        if not secrets.compare_digest(transaction.otp_code.encode(), otp_code.encode()):
            raise self._record_failed_attempt(transaction, now)

        receipt_number = generate_receipt_number(now)
        try:
            updated = execute_update(
                self.db,
                """
                UPDATE payment_transactions
                SET payment_status = 'paid',
                    receipt_number = :receipt_number,
                    paid_at = :paid_at,
                    last_otp_attempt_at = :paid_at,
                    sync_status = 'pending'
                WHERE payment_id = :payment_id
                  AND payment_status = 'pending'
                  AND otp_locked = 0
                  AND otp_code = :otp_code
                """,
                {
                    "payment_id": payment_id,
                    "receipt_number": receipt_number,
                    "paid_at": now,
                    "otp_code": otp_code,
                },
            )
            if not updated:
                raise NotFoundError(NOT_FOUND_MESSAGE)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment {payment_id} paid, receipt {receipt_number}")

        transaction.payment_status = "paid"
        transaction.receipt_number = receipt_number
        transaction.paid_at = now
        sync_status = self.ledger_sync.apply(transaction, now.date())

        return {
            "success": True,
            "message": "Payment successful!",
            "payment_id": payment_id,
            "receipt_number": receipt_number,
            "amount": float(transaction.amount),
            "tax_id": transaction.tax_id,
            "is_annual": transaction.is_annual,
            "sync_status": sync_status,
        }

    def _record_failed_attempt(self, transaction: PaymentTransaction, now: datetime) -> InvalidOTPError:
        """Consume one attempt and return the error to raise."""
        max_attempts = self.settings.max_otp_attempts
        try:
            updated = execute_update(
                self.db,
                """
                UPDATE payment_transactions
                SET otp_attempts = otp_attempts + 1,
                    last_otp_attempt_at = :now,
                    otp_locked = CASE WHEN otp_attempts + 1 >= :max_attempts THEN 1 ELSE 0 END
                WHERE payment_id = :payment_id
                  AND payment_status = 'pending'
                  AND otp_locked = 0
                """,
                {"payment_id": transaction.payment_id, "now": now, "max_attempts": max_attempts},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        current = self.get_transaction(transaction.payment_id)
        if not updated:
            # Lost the race against another verification of the same payment
            if current is not None and current.payment_status == "pending" and current.otp_locked:
                raise PaymentLockedError("OTP verification locked. Too many failed attempts.")
            raise NotFoundError(NOT_FOUND_MESSAGE)

        attempts_left = max(max_attempts - current.otp_attempts, 0)
        if current.otp_locked:
            message = "Invalid OTP. Account locked due to too many failed attempts."
            logger.warning(f"Payment {transaction.payment_id} locked after {current.otp_attempts} attempts")
        else:
            message = f"Invalid OTP. You have {attempts_left} attempt(s) left."
            logger.info(f"Invalid OTP for payment {transaction.payment_id}, {attempts_left} left")

        return InvalidOTPError(message, attempts_left=attempts_left, locked=current.otp_locked)

    # ==================== Resend / Status ====================

    def resend_otp(self, payment_id: str, now: datetime | None = None) -> dict:
        """Issue a new code and expiry for a pending payment.

        The attempt counter is kept, so resending does not grant extra
        attempts.

        Raises:
            NotFoundError: Unknown or already processed payment
            PaymentLockedError: Payment is locked
        """
        now = now or datetime.now()
        transaction = self._get_pending((payment_id or "").strip())

        if transaction.otp_locked:
            raise PaymentLockedError("OTP verification locked. Too many failed attempts.")

        otp_code = generate_otp(self.settings.otp_length)
        expires_at = now + timedelta(minutes=self.settings.otp_expiry_minutes)

        try:
            updated = execute_update(
                self.db,
                """
                UPDATE payment_transactions
                SET otp_code = :otp_code,
                    otp_expires_at = :expires_at
                WHERE payment_id = :payment_id
                  AND payment_status = 'pending'
                  AND otp_locked = 0
                """,
                {"payment_id": transaction.payment_id, "otp_code": otp_code, "expires_at": expires_at},
            )
            if not updated:
                raise NotFoundError(NOT_FOUND_MESSAGE)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"OTP resent for payment {transaction.payment_id}")

        response = {
            "success": True,
            "message": "A new OTP has been sent",
            "payment_id": transaction.payment_id,
            "expires_at": expires_at.isoformat(sep=" ", timespec="seconds"),
            "attempts_left": max(self.settings.max_otp_attempts - transaction.otp_attempts, 0),
        }
        if self.settings.is_development:
            response["test_otp"] = otp_code
        return response

    def check_status(self, payment_id: str) -> dict:
        """Payment, sync and ledger status of a transaction.

        Raises:
            NotFoundError: Unknown payment
        """
        transaction = self.get_transaction((payment_id or "").strip())
        if transaction is None:
            raise NotFoundError("Transaction not found")

        ledger = QuarterlyLedger(self.db, self.settings)
        rpt_status = None
        if transaction.is_annual and transaction.property_total_id > 0 and transaction.receipt_number:
            rpt_status = ledger.receipt_progress(
                LedgerType(transaction.ledger_type),
                transaction.property_total_id,
                transaction.year,
                transaction.receipt_number,
            )
        elif transaction.tax_id > 0:
            quarter = ledger.get_quarter(transaction.tax_id)
            if quarter is not None:
                rpt_status = {
                    "type": "quarterly",
                    "quarter": quarter.quarter,
                    "year": quarter.year,
                    "payment_status": quarter.payment_status.value,
                    "receipt_number": quarter.receipt_number,
                }

        return {
            "success": True,
            "payment_id": transaction.payment_id,
            "payment_status": transaction.payment_status,
            "receipt_number": transaction.receipt_number,
            "amount": float(transaction.amount),
            "otp_locked": transaction.otp_locked,
            "sync_status": transaction.sync_status,
            "system_error": transaction.system_error,
            "rpt_status": rpt_status,
        }
