"""
Portal Table Definitions

SQLAlchemy table metadata for the revenue database. Queries elsewhere are
written as raw SQL; these definitions are used to create the schema.
Flag columns are integers (0/1) so the same SQL runs on PostgreSQL and SQLite.
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()


# ==================== Tax Configuration ====================

capital_investment_tax_config = Table(
    "capital_investment_tax_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("min_amount", Numeric(14, 2), nullable=False),
    Column("max_amount", Numeric(14, 2), nullable=False),
    Column("tax_percent", Numeric(7, 4), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)

gross_sales_tax_config = Table(
    "gross_sales_tax_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("business_type", String(100), nullable=False),
    Column("tax_percent", Numeric(7, 4), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)

regulatory_fee_config = Table(
    "regulatory_fee_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("fee_name", String(100), nullable=False),
    Column("amount", Numeric(14, 2), nullable=False),
    Column("effective_date", Date, nullable=True),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)

penalty_config = Table(
    "penalty_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("penalty_percent", Numeric(7, 4), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)

discount_config = Table(
    "discount_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("discount_percent", Numeric(7, 4), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)

rpt_tax_config = Table(
    "rpt_tax_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tax_name", String(50), nullable=False),  # 'Basic Tax' or 'SEF Tax'
    Column("tax_percent", Numeric(7, 4), nullable=False),
    Column("effective_date", Date, nullable=False),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)

land_configurations = Table(
    "land_configurations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("classification", String(50), nullable=False),
    Column("market_value", Numeric(14, 2), nullable=False),  # per square meter
    Column("assessment_level", Numeric(7, 4), nullable=False),  # percent of market value
    Column("effective_date", Date, nullable=False),
    Column("expiration_date", Date, nullable=True),
    Column("remarks", Text),
    Column("created_at", DateTime),
)


# ==================== Tax Records ====================

business_permits = Table(
    "business_permits",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("business_permit_id", String(50), nullable=False, unique=True),
    Column("business_name", String(255), nullable=False),
    Column("owner_name", String(255), nullable=False),
    Column("business_type", String(100), nullable=False),
    Column("tax_calculation_type", String(30), nullable=False),
    Column("taxable_amount", Numeric(16, 2), nullable=False),
    Column("tax_rate", Numeric(7, 4), nullable=False, default=0),
    Column("tax_amount", Numeric(16, 2), nullable=False, default=0),
    Column("regulatory_fees", Numeric(16, 2), nullable=False, default=0),
    Column("total_tax", Numeric(16, 2), nullable=False, default=0),
    Column("status", String(20), nullable=False, default="Pending"),
    Column("address", Text),
    Column("contact_number", String(20)),
    Column("approved_by", String(100)),
    Column("approved_date", DateTime),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

quarterly_taxes = Table(
    "quarterly_taxes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ledger_type", String(20), nullable=False),  # 'rpt' or 'business'
    Column("parent_id", Integer, nullable=False),
    Column("quarter", String(2), nullable=False),
    Column("year", Integer, nullable=False),
    Column("due_date", Date, nullable=False),
    Column("total_quarterly_tax", Numeric(16, 4), nullable=False),
    Column("penalty_amount", Numeric(16, 2), nullable=False, default=0),
    Column("penalty_percent_used", Numeric(7, 4)),
    Column("days_late", Integer, nullable=False, default=0),
    Column("discount_applied", Integer, nullable=False, default=0),
    Column("discount_percent_used", Numeric(7, 4)),
    Column("discount_amount", Numeric(16, 2), nullable=False, default=0),
    Column("payment_status", String(20), nullable=False, default="pending"),
    Column("payment_date", Date),
    Column("receipt_number", String(50)),
    Column("created_at", DateTime),
    UniqueConstraint("ledger_type", "parent_id", "year", "quarter", name="uq_quarter_per_parent"),
)

penalty_log = Table(
    "penalty_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("ledger_type", String(20), nullable=False),
    Column("calculated_date", Date, nullable=False),
    Column("updated_records", Integer, nullable=False, default=0),
    Column("total_penalty", Numeric(16, 2), nullable=False, default=0),
    Column("penalty_percent_used", Numeric(7, 4)),
    Column("created_at", DateTime),
)


property_totals = Table(
    "property_totals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("registration_id", Integer, nullable=False, unique=True),
    Column("classification", String(50), nullable=False),
    Column("land_area_sqm", Numeric(14, 2), nullable=False),
    Column("land_market_value", Numeric(16, 2), nullable=False),
    Column("assessment_level", Numeric(7, 4), nullable=False),
    Column("land_assessed_value", Numeric(16, 2), nullable=False),
    Column("building_assessed_value", Numeric(16, 2), nullable=False, default=0),
    Column("basic_tax_percent", Numeric(7, 4), nullable=False, default=0),
    Column("sef_tax_percent", Numeric(7, 4), nullable=False, default=0),
    Column("land_annual_tax", Numeric(16, 2), nullable=False, default=0),
    Column("total_building_annual_tax", Numeric(16, 2), nullable=False, default=0),
    Column("basic_tax", Numeric(16, 2), nullable=False, default=0),
    Column("sef_tax", Numeric(16, 2), nullable=False, default=0),
    Column("total_annual_tax", Numeric(16, 2), nullable=False, default=0),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)


# ==================== Payments ====================

payment_transactions = Table(
    "payment_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("payment_id", String(40), nullable=False, unique=True),
    Column("client_system", String(50)),
    Column("client_reference", String(100)),
    Column("purpose", String(255), nullable=False),
    Column("amount", Numeric(16, 2), nullable=False),
    Column("phone", String(20), nullable=False),
    Column("payment_method", String(20), nullable=False),
    Column("otp_code", String(10), nullable=False),
    Column("otp_expires_at", DateTime, nullable=False),
    Column("otp_attempts", Integer, nullable=False, default=0),
    Column("otp_locked", Integer, nullable=False, default=0),
    Column("last_otp_attempt_at", DateTime),
    Column("payment_status", String(20), nullable=False, default="pending"),
    Column("receipt_number", String(50)),
    Column("paid_at", DateTime),
    Column("ledger_type", String(20), nullable=False, default="rpt"),
    Column("tax_id", Integer, nullable=False, default=0),
    Column("property_total_id", Integer, nullable=False, default=0),
    Column("quarter", String(2)),
    Column("year", Integer),
    Column("is_annual", Integer, nullable=False, default=0),
    Column("discount_percent", Numeric(7, 4), nullable=False, default=0),
    Column("discount_amount", Numeric(16, 2), nullable=False, default=0),
    Column("sync_status", String(20), nullable=False, default="pending"),
    Column("system_error", Text),
    Column("created_at", DateTime),
)


# ==================== RPT Registrations ====================

property_registrations = Table(
    "property_registrations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reference_number", String(50)),
    Column("owner_name", String(255)),
    Column("status", String(30), nullable=False, default="pending"),
    Column("correction_notes", Text),
    Column("approved_by", String(100)),
    Column("approved_date", DateTime),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)
