"""
Tax Configuration API Routes

Provides list/create/expire endpoints for the rate, fee, penalty, discount
and real property (RPT rate and land value) configuration tables.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...database import as_date, execute_insert, execute_query, execute_update, get_db
from ...exceptions import NotFoundError, ValidationError
from ...tax.property_tax import RPT_TAX_NAMES
from ..auth import User, require_configure, require_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tax-config", tags=["tax-config"])

# kind -> (table, kind-specific columns)
CONFIG_KINDS = {
    "capital-investment": ("capital_investment_tax_config", ["min_amount", "max_amount", "tax_percent"]),
    "gross-sales": ("gross_sales_tax_config", ["business_type", "tax_percent"]),
    "regulatory-fees": ("regulatory_fee_config", ["fee_name", "amount"]),
    "penalty": ("penalty_config", ["penalty_percent"]),
    "discount": ("discount_config", ["discount_percent"]),
    "rpt-tax": ("rpt_tax_config", ["tax_name", "tax_percent"]),
    "land": ("land_configurations", ["classification", "market_value", "assessment_level"]),
}

NUMERIC_COLUMNS = {
    "min_amount", "max_amount", "tax_percent", "amount", "penalty_percent", "discount_percent",
    "market_value", "assessment_level",
}


class ConfigInput(BaseModel):
    """Input model for a configuration row. Which fields apply depends on the kind."""

    min_amount: float | None = None
    max_amount: float | None = None
    tax_percent: float | None = None
    business_type: str | None = None
    fee_name: str | None = None
    amount: float | None = None
    penalty_percent: float | None = None
    discount_percent: float | None = None
    tax_name: str | None = None
    classification: str | None = None
    market_value: float | None = None
    assessment_level: float | None = None
    effective_date: date | None = None
    expiration_date: date | None = None
    remarks: str | None = None


class ExpireInput(BaseModel):
    expiration_date: date | None = None


def _resolve_kind(kind: str) -> tuple[str, list[str]]:
    if kind not in CONFIG_KINDS:
        raise NotFoundError(
            f"Unknown configuration kind '{kind}'",
            allowed=sorted(CONFIG_KINDS),
        )
    return CONFIG_KINDS[kind]


def _is_active(row: dict, as_of: date) -> bool:
    expiration = as_date(row.get("expiration_date"))
    return expiration is None or expiration >= as_of


@router.get("/{kind}")
def list_configurations(
    kind: str,
    active_only: bool = Query(False),
    user: User = Depends(require_view),
    db: Session = Depends(get_db),
) -> dict:
    """List configuration rows, newest effective date first.

    Args:
        kind: capital-investment, gross-sales, regulatory-fees, penalty,
            discount, rpt-tax or land
        active_only: Hide expired rows
        user: Authenticated user
        db: Database session

    Returns:
        Configuration rows
    """
    table, columns = _resolve_kind(kind)
    rows = execute_query(
        db,
        f"""
        SELECT id, {", ".join(columns)}, effective_date, expiration_date, remarks
        FROM {table}
        ORDER BY effective_date DESC, id DESC
        """,
    )

    today = date.today()
    items = []
    for row in rows:
        active = _is_active(row, today)
        if active_only and not active:
            continue
        item = {
            key: (float(value) if key in NUMERIC_COLUMNS and value is not None else value)
            for key, value in row.items()
        }
        for key in ("effective_date", "expiration_date"):
            parsed = as_date(item.get(key))
            item[key] = parsed.isoformat() if parsed else None
        item["active"] = active
        items.append(item)

    return {"success": True, "kind": kind, "data": items}


@router.post("/{kind}")
def create_configuration(
    kind: str,
    body: ConfigInput,
    user: User = Depends(require_configure),
    db: Session = Depends(get_db),
) -> dict:
    """Add a configuration row. Rows are never edited, only expired."""
    table, columns = _resolve_kind(kind)
    values = body.model_dump()

    for column in columns:
        if values.get(column) is None or values.get(column) == "":
            raise ValidationError(f"Missing required field: {column}", field=column)
    for column in columns:
        if column in NUMERIC_COLUMNS and values[column] < 0:
            raise ValidationError(f"{column} cannot be negative", field=column)

    if kind == "capital-investment" and values["min_amount"] > values["max_amount"]:
        raise ValidationError("min_amount cannot exceed max_amount", field="min_amount")
    if kind == "rpt-tax" and values["tax_name"] not in RPT_TAX_NAMES:
        raise ValidationError(
            f"tax_name must be one of: {', '.join(RPT_TAX_NAMES)}",
            field="tax_name",
        )

    effective_date = values["effective_date"] or date.today()
    expiration_date = values["expiration_date"]
    if expiration_date is not None and expiration_date < effective_date:
        raise ValidationError("Expiration date cannot be before the effective date", field="expiration_date")

    data = {
        column: Decimal(str(values[column])) if column in NUMERIC_COLUMNS else values[column]
        for column in columns
    }
    data.update({
        "effective_date": effective_date,
        "expiration_date": expiration_date,
        "remarks": values["remarks"],
        "created_at": datetime.now(),
    })

    try:
        row = execute_insert(db, table, data)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"{user.user_id} added {kind} configuration {row['id']}")
    return {"success": True, "id": row["id"]}


@router.post("/{kind}/{config_id}/expire")
def expire_configuration(
    kind: str,
    config_id: int,
    body: ExpireInput | None = None,
    user: User = Depends(require_configure),
    db: Session = Depends(get_db),
) -> dict:
    """Set the expiration date of a configuration row (today by default)."""
    table, _ = _resolve_kind(kind)
    expiration_date = (body.expiration_date if body else None) or date.today()

    try:
        updated = execute_update(
            db,
            f"UPDATE {table} SET expiration_date = :expiration_date WHERE id = :id",
            {"id": config_id, "expiration_date": expiration_date},
        )
        if not updated:
            raise NotFoundError(f"Configuration {config_id} not found")
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"{user.user_id} expired {kind} configuration {config_id} as of {expiration_date}")
    return {"success": True, "id": config_id, "expiration_date": expiration_date.isoformat()}
