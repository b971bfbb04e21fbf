"""
RPT Registration API Routes
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...database import get_db
from ...ledger import RegistrationWorkflow
from ..auth import User, require_assess

router = APIRouter(prefix="/registration", tags=["registration"])


class StatusUpdateInput(BaseModel):
    """Input model for a registration status change."""

    registration_id: int
    status: str
    correction_notes: str | None = None


@router.post("/update-status")
def update_status(
    body: StatusUpdateInput,
    db: Session = Depends(get_db),
    user: User = Depends(require_assess),
) -> dict:
    """Move a property registration to a new workflow status.

    Args:
        body: Registration id, new status and optional correction notes
        db: Database session
        user: Authenticated user

    Returns:
        Updated record, or changed=false when the status is unchanged
    """
    result = RegistrationWorkflow(db).update_status(
        body.registration_id,
        body.status,
        body.correction_notes,
    )
    message = "Status updated" if result["changed"] else "Status unchanged"
    return {"success": True, "message": message, "data": result}
