"""
OTP Payment API Routes

Provides endpoints for OTP-gated tax payments.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...config import PortalSettings
from ...database import get_db
from ...payment import OTPGate
from ..auth import User, get_settings, require_pay

router = APIRouter(prefix="/otp", tags=["otp"])


class OTPRequestInput(BaseModel):
    """Input model for a payment OTP request."""

    phone: str
    payment_method: str
    amount: float
    purpose: str
    ledger_type: str = "rpt"
    tax_id: int | None = None
    property_total_id: int | None = None
    quarter: str | None = None
    year: int | None = None
    is_annual: bool = False
    client_system: str | None = None
    client_reference: str | None = None


class OTPVerifyInput(BaseModel):
    """Input model for OTP verification."""

    payment_id: str
    otp_code: str


class OTPResendInput(BaseModel):
    payment_id: str


@router.post("/request")
def request_otp(
    body: OTPRequestInput,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_pay),
) -> dict:
    """Create a pending payment and send its OTP.

    Args:
        body: Payment details
        db: Database session
        settings: Portal settings
        user: Authenticated user

    Returns:
        payment_id and expires_at (plus test_otp in development)
    """
    return OTPGate(db, settings).request_otp(body.model_dump())


@router.post("/verify")
def verify_otp(
    body: OTPVerifyInput,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_pay),
) -> dict:
    """Verify the OTP and mark the payment as paid."""
    return OTPGate(db, settings).verify_otp(body.payment_id, body.otp_code)


@router.post("/resend")
def resend_otp(
    body: OTPResendInput,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_pay),
) -> dict:
    return OTPGate(db, settings).resend_otp(body.payment_id)


@router.get("/status")
def check_status(
    payment_id: str = Query(...),
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_pay),
) -> dict:
    """Payment, ledger sync and quarter status of a payment."""
    return OTPGate(db, settings).check_status(payment_id)
