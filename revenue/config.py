"""
Portal Configuration

Loads the portal settings from config/portal_config.yaml with environment
variable overrides. The resulting PortalSettings object is passed to the
services and routes that need it.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"

DEFAULTS: dict[str, Any] = {
    "environment": "development",
    "otp": {
        "expiry_minutes": 5,
        "max_attempts": 3,
        "code_length": 6,
    },
    "tax": {
        "missing_rate_policy": "zero",
        "quarter_due_dates": {
            "Q1": "03-31",
            "Q2": "06-30",
            "Q3": "09-30",
            "Q4": "12-31",
        },
    },
    "penalty": {
        "default_percent": 2.00,
        "day_divisor": 30,
    },
    "discount": {
        "default_annual_percent": 10.00,
        "annual_discount_month": 1,
    },
    "cors_origins": ["http://localhost:5173"],
}


def _default_database_url() -> str:
    return (
        f"postgresql+psycopg://{os.getenv('POSTGRES_USER', 'revenue')}:"
        f"{os.getenv('POSTGRES_PASSWORD', 'password')}@"
        f"{os.getenv('POSTGRES_HOST', 'localhost')}:"
        f"{os.getenv('POSTGRES_PORT', '5432')}/"
        f"{os.getenv('POSTGRES_DB', 'municipal_revenue')}"
    )


@dataclass
class PortalSettings:
    """Settings shared by the tax, ledger and payment services."""

    environment: str = "development"
    database_url: str = field(default_factory=_default_database_url)

    # OTP gate
    otp_expiry_minutes: int = 5
    max_otp_attempts: int = 3
    otp_length: int = 6

    # Tax computation
    missing_rate_policy: str = "zero"  # 'zero' or 'reject'
    quarter_due_dates: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULTS["tax"]["quarter_due_dates"])
    )

    # Penalties and discounts
    default_penalty_percent: float = 2.00
    penalty_day_divisor: int = 30
    default_annual_discount_percent: float = 10.00
    annual_discount_month: int = 1

    cors_origins: list[str] = field(
        default_factory=lambda: list(DEFAULTS["cors_origins"])
    )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def __post_init__(self):
        if self.missing_rate_policy not in ("zero", "reject"):
            raise ValueError(
                f"missing_rate_policy must be 'zero' or 'reject', got {self.missing_rate_policy!r}"
            )
        if self.max_otp_attempts < 1:
            raise ValueError("max_otp_attempts must be at least 1")


def load_settings(config_dir: Path | str | None = None) -> PortalSettings:
    """Load settings from YAML, then apply environment overrides.

    Args:
        config_dir: Directory holding portal_config.yaml

    Returns:
        PortalSettings
    """
    config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    config_file = config_dir / "portal_config.yaml"

    if config_file.exists():
        with open(config_file) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.warning(f"Config file not found: {config_file}, using defaults")
        raw = {}

    otp = {**DEFAULTS["otp"], **raw.get("otp", {})}
    tax = {**DEFAULTS["tax"], **raw.get("tax", {})}
    penalty = {**DEFAULTS["penalty"], **raw.get("penalty", {})}
    discount = {**DEFAULTS["discount"], **raw.get("discount", {})}

    cors_origins = raw.get("cors_origins", DEFAULTS["cors_origins"])
    if os.getenv("CORS_ORIGINS"):
        cors_origins = os.getenv("CORS_ORIGINS").split(",")

    return PortalSettings(
        environment=os.getenv("ENVIRONMENT", raw.get("environment", DEFAULTS["environment"])),
        database_url=os.getenv("DATABASE_URL") or raw.get("database_url") or _default_database_url(),
        otp_expiry_minutes=int(os.getenv("OTP_EXPIRY_MINUTES", otp["expiry_minutes"])),
        max_otp_attempts=int(os.getenv("MAX_OTP_ATTEMPTS", otp["max_attempts"])),
        otp_length=int(otp["code_length"]),
        missing_rate_policy=tax["missing_rate_policy"],
        quarter_due_dates=dict(tax["quarter_due_dates"]),
        default_penalty_percent=float(penalty["default_percent"]),
        penalty_day_divisor=int(penalty["day_divisor"]),
        default_annual_discount_percent=float(discount["default_annual_percent"]),
        annual_discount_month=int(discount["annual_discount_month"]),
        cors_origins=list(cors_origins),
    )
