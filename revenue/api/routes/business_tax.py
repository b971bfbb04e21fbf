"""
Business Tax API Routes

Provides endpoints for business tax calculation and permit approval.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...config import PortalSettings
from ...database import get_db
from ...tax.business_tax import BusinessTaxService
from ..auth import User, get_settings, require_approve, require_assess, require_view

router = APIRouter(prefix="/business-tax", tags=["business-tax"])


class BusinessTaxInput(BaseModel):
    """Input model for a business tax calculation.

    Fields are optional here so that missing values are reported with the
    portal's own validation messages.
    """

    business_permit_id: str | None = None
    business_name: str | None = None
    full_name: str | None = None
    owner_name: str | None = None
    business_type: str | None = None
    taxable_amount: float | str | None = None
    tax_calculation_type: str | None = None
    address: str | None = None
    contact_number: str | None = None


@router.post("/calculate")
def calculate_business_tax(
    body: BusinessTaxInput,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_assess),
) -> dict:
    """Compute and save the annual tax of a business permit.

    Args:
        body: Permit details and taxable amount
        db: Database session
        settings: Portal settings
        user: Authenticated user

    Returns:
        Tax calculation with action 'created' or 'updated'
    """
    result = BusinessTaxService(db, settings).calculate_and_save(body.model_dump())
    return {
        "success": True,
        "message": f"Business tax {result.action} successfully",
        "tax_calculation": result.to_dict(),
    }


@router.post("/{permit_id}/approve")
def approve_permit(
    permit_id: str,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_approve),
) -> dict:
    """Approve a pending permit and generate its quarterly taxes."""
    result = BusinessTaxService(db, settings).approve_permit(permit_id, approved_by=user.name)
    return {"success": True, **result}


@router.get("/{permit_id}")
def get_permit(
    permit_id: str,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_view),
) -> dict:
    return {"success": True, "data": BusinessTaxService(db, settings).get_permit(permit_id, year)}
