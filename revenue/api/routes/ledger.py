"""
Quarterly Ledger API Routes

Provides endpoints for quarterly taxes, annual quotes, penalty runs and
ledger sync reconciliation.
"""

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...config import PortalSettings
from ...database import get_db
from ...ledger import AnnualQuote, LedgerType, QuarterlyLedger
from ...payment import LedgerSync
from ...tax import PenaltyCalculator
from ..auth import User, get_settings, require_assess, require_pay, require_reconcile

router = APIRouter(prefix="/ledger", tags=["ledger"])


class GenerateQuartersInput(BaseModel):
    """Input model for quarter generation."""

    annual_total: float = Field(..., gt=0)
    year: int | None = None


class PenaltyRunInput(BaseModel):
    as_of: date | None = None


class SyncRetryInput(BaseModel):
    limit: int = Field(50, ge=1, le=500)


@router.post("/sync/retry")
def retry_failed_sync(
    body: SyncRetryInput | None = None,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_reconcile),
) -> dict:
    """Re-apply ledger updates of paid transactions whose sync failed."""
    limit = body.limit if body else 50
    summary = LedgerSync(db, settings).retry_failed(limit)
    return {"success": True, "data": summary.to_dict()}


@router.post("/{ledger_type}/{parent_id}/quarters")
def generate_quarters(
    ledger_type: LedgerType,
    parent_id: int,
    body: GenerateQuartersInput,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_assess),
) -> dict:
    """Create the four quarterly installments of an annual tax.

    Args:
        ledger_type: rpt or business
        parent_id: Property total or business permit record id
        body: Annual total and year
        db: Database session
        settings: Portal settings
        user: Authenticated user

    Returns:
        Created quarters
    """
    ledger = QuarterlyLedger(db, settings)
    try:
        quarters = ledger.generate_quarters(
            ledger_type,
            parent_id,
            Decimal(str(body.annual_total)),
            body.year,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    return {"success": True, "data": [q.to_dict() for q in quarters]}


@router.get("/{ledger_type}/{parent_id}/quarters")
def list_quarters(
    ledger_type: LedgerType,
    parent_id: int,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_pay),
) -> dict:
    year = year or date.today().year
    quarters = QuarterlyLedger(db, settings).list_quarters(ledger_type, parent_id, year)
    return {
        "success": True,
        "year": year,
        "data": [q.to_dict() for q in quarters],
    }


@router.get("/{ledger_type}/{parent_id}/annual-quote")
def annual_quote(
    ledger_type: LedgerType,
    parent_id: int,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_pay),
) -> dict:
    """Amount due to settle every unpaid quarter of a year at once."""
    year = year or date.today().year
    quote = AnnualQuote(db, settings).for_parent(ledger_type, parent_id, year)
    return {"success": True, "data": quote.to_dict()}


@router.post("/{ledger_type}/penalties/refresh")
def refresh_penalties(
    ledger_type: LedgerType,
    body: PenaltyRunInput | None = None,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_reconcile),
) -> dict:
    """Recalculate penalties of overdue quarters."""
    as_of = body.as_of if body else None
    summary = PenaltyCalculator(db, settings).refresh(ledger_type.value, as_of)
    return {
        "success": True,
        "message": f"Penalties updated for {summary.updated_records} quarterly taxes",
        "data": summary.to_dict(),
    }
