"""
Real Property Tax API Routes

Provides endpoints for property assessment and approval.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...config import PortalSettings
from ...database import get_db
from ...tax.property_tax import PropertyTaxService
from ..auth import User, get_settings, require_approve, require_assess, require_view

router = APIRouter(prefix="/property-tax", tags=["property-tax"])


class PropertyAssessmentInput(BaseModel):
    """Input model for a property assessment."""

    registration_id: int | str | None = None
    classification: str | None = None
    land_property_type: str | None = None
    land_area_sqm: float | str | None = None
    building_assessed_value: float | str | None = None


@router.post("/assess")
def assess_property(
    body: PropertyAssessmentInput,
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_assess),
) -> dict:
    """Compute and save the annual tax of a registered property."""
    result = PropertyTaxService(db, settings).assess(body.model_dump())
    return {
        "success": True,
        "message": f"Property assessment {result.action} successfully",
        "assessment": result.to_dict(),
    }


@router.post("/{registration_id}/approve")
def approve_property(
    registration_id: int,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_approve),
) -> dict:
    """Approve an assessed property and generate its quarterly taxes."""
    result = PropertyTaxService(db, settings).approve_property(
        registration_id, approved_by=user.name, year=year
    )
    return {"success": True, **result}


@router.get("/{registration_id}")
def get_property(
    registration_id: int,
    year: int | None = Query(None),
    db: Session = Depends(get_db),
    settings: PortalSettings = Depends(get_settings),
    user: User = Depends(require_view),
) -> dict:
    return {"success": True, "data": PropertyTaxService(db, settings).get_property(registration_id, year)}
