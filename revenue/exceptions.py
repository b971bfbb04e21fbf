"""
Portal Exceptions

Typed errors raised by the tax, ledger and payment modules. The API layer
maps each one to an HTTP status and a JSON error payload.
"""

from typing import Any


class PortalError(Exception):
    """Base class for all portal errors."""

    code: str = "PORTAL_ERROR"
    http_status: int = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            **self.details,
        }


class ValidationError(PortalError):
    """Missing or malformed input. Raised before anything is persisted."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(PortalError):
    code = "NOT_FOUND"
    http_status = 404


class StateConflictError(PortalError):
    """Entity exists but is in the wrong state for the requested action."""

    code = "STATE_CONFLICT"
    http_status = 409


class RateNotFoundError(PortalError):
    """No active tax configuration matched the lookup key."""

    code = "RATE_NOT_FOUND"
    http_status = 422


class OTPError(PortalError):
    code = "OTP_ERROR"
    http_status = 400


class PaymentLockedError(OTPError):
    code = "OTP_LOCKED"
    http_status = 423


class OTPExpiredError(OTPError):
    code = "OTP_EXPIRED"
    http_status = 410


class InvalidOTPError(OTPError):
    """Wrong code. Carries the remaining attempts and whether it locked."""

    code = "INVALID_OTP"
    http_status = 401

    def __init__(self, message: str, attempts_left: int, locked: bool):
        super().__init__(message, attempts_left=attempts_left, locked=locked)
        self.attempts_left = attempts_left
        self.locked = locked


class LedgerSyncError(PortalError):
    """Downstream quarterly ledger update failed after a payment succeeded."""

    code = "LEDGER_SYNC_FAILED"
    http_status = 502
