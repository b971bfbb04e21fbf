"""
Pytest configuration and fixtures for municipal revenue tests.
"""

import os
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Generator

import pytest
import yaml
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from revenue.config import PortalSettings
from revenue.database import execute_insert, init_db

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def config_dir() -> Path:
    """Return the config directory path."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def settings() -> PortalSettings:
    """Development settings against an in-memory database."""
    return PortalSettings(environment="development", database_url="sqlite://")


@pytest.fixture
def production_settings() -> PortalSettings:
    return PortalSettings(environment="production", database_url="sqlite://")


@pytest.fixture
def engine():
    """In-memory SQLite engine with the portal schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Database session for direct service tests."""
    session = session_factory()
    yield session
    session.close()


class Seeder:
    """Inserts configuration and ledger rows for tests. Every call commits."""

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, table: str, data: dict) -> int:
        row = execute_insert(self.db, table, {**data, "created_at": datetime.now()})
        self.db.commit()
        return row["id"]

    def capital_bracket(self, min_amount, max_amount, percent, effective, expiration=None) -> int:
        return self._insert("capital_investment_tax_config", {
            "min_amount": Decimal(str(min_amount)),
            "max_amount": Decimal(str(max_amount)),
            "tax_percent": Decimal(str(percent)),
            "effective_date": effective,
            "expiration_date": expiration,
        })

    def gross_sales_rate(self, business_type, percent, effective, expiration=None) -> int:
        return self._insert("gross_sales_tax_config", {
            "business_type": business_type,
            "tax_percent": Decimal(str(percent)),
            "effective_date": effective,
            "expiration_date": expiration,
        })

    def fee(self, fee_name, amount, expiration=None) -> int:
        return self._insert("regulatory_fee_config", {
            "fee_name": fee_name,
            "amount": Decimal(str(amount)),
            "effective_date": date(2020, 1, 1),
            "expiration_date": expiration,
        })

    def penalty_percent(self, percent, effective, expiration=None) -> int:
        return self._insert("penalty_config", {
            "penalty_percent": Decimal(str(percent)),
            "effective_date": effective,
            "expiration_date": expiration,
        })

    def discount_percent(self, percent, effective, expiration=None) -> int:
        return self._insert("discount_config", {
            "discount_percent": Decimal(str(percent)),
            "effective_date": effective,
            "expiration_date": expiration,
        })

    def rpt_tax_rate(self, tax_name, percent, effective, expiration=None) -> int:
        return self._insert("rpt_tax_config", {
            "tax_name": tax_name,
            "tax_percent": Decimal(str(percent)),
            "effective_date": effective,
            "expiration_date": expiration,
        })

    def land_config(self, classification, market_value, level, effective, expiration=None) -> int:
        return self._insert("land_configurations", {
            "classification": classification,
            "market_value": Decimal(str(market_value)),
            "assessment_level": Decimal(str(level)),
            "effective_date": effective,
            "expiration_date": expiration,
        })

    def registration(self, status="pending", reference_number="RPT-2025-0001") -> int:
        return self._insert("property_registrations", {
            "reference_number": reference_number,
            "owner_name": "Juan Dela Cruz",
            "status": status,
            "updated_at": datetime.now(),
        })

    def pending_payment(
        self,
        payment_id="PAY-20250115100000-0001",
        otp_code="123456",
        expires_at=None,
        attempts=0,
        locked=0,
        **links,
    ) -> int:
        return self._insert("payment_transactions", {
            "payment_id": payment_id,
            "purpose": "Real property tax",
            "amount": Decimal("1000.00"),
            "phone": "09171234567",
            "payment_method": "gcash",
            "otp_code": otp_code,
            "otp_expires_at": expires_at or datetime.now() + timedelta(minutes=5),
            "otp_attempts": attempts,
            "otp_locked": locked,
            "payment_status": "pending",
            "ledger_type": links.get("ledger_type", "rpt"),
            "tax_id": links.get("tax_id", 0),
            "property_total_id": links.get("property_total_id", 0),
            "quarter": links.get("quarter"),
            "year": links.get("year", 2025),
            "is_annual": links.get("is_annual", 0),
            "discount_percent": Decimal(str(links.get("discount_percent", 0))),
            "discount_amount": Decimal(str(links.get("discount_amount", 0))),
            "sync_status": "pending",
        })


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def client(session_factory, settings) -> Generator[TestClient, None, None]:
    """API client with the database and settings dependencies overridden."""
    from revenue.api.auth import get_settings
    from revenue.api.main import app
    from revenue.database import get_db

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def acl_file(tmp_path) -> Path:
    """Temporary ACL with one user per role."""
    acl = {
        "users": [
            {"user_id": "admin-1", "name": "Admin", "role": "admin"},
            {"user_id": "assessor-1", "name": "Assessor", "role": "assessor"},
        ],
        "permissions": {
            "admin": ["*"],
            "assessor": ["view", "assess", "pay"],
            "citizen": ["pay"],
        },
    }
    path = tmp_path / "portal_acl.yaml"
    with open(path, "w") as f:
        yaml.dump(acl, f)
    return path


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.setdefault("ENVIRONMENT", "development")
    os.environ.setdefault("POSTGRES_HOST", "localhost")
    os.environ.setdefault("POSTGRES_DB", "municipal_revenue_test")
    yield
