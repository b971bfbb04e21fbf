"""
Payment Module

OTP-gated tax payments and their synchronisation into the quarterly ledger.
"""

from .transaction import PaymentTransaction
from .phone import format_phone_number
from .ledger_sync import (
    LedgerSync,
    RetrySummary,
    SyncStatus,
)
from .otp_gate import (
    OTPGate,
    generate_otp,
    generate_payment_id,
    generate_receipt_number,
)

__all__ = [
    "PaymentTransaction",
    "format_phone_number",
    # Ledger Sync
    "LedgerSync",
    "RetrySummary",
    "SyncStatus",
    # OTP Gate
    "OTPGate",
    "generate_otp",
    "generate_payment_id",
    "generate_receipt_number",
]
