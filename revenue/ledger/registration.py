"""
RPT Registration Status Module

Moves property registrations through the assessment workflow.
"""

import logging
from datetime import datetime
from enum import Enum

from sqlalchemy.orm import Session

from ..database import as_datetime, execute_query, execute_update
from ..exceptions import NotFoundError, StateConflictError, ValidationError

logger = logging.getLogger(__name__)


class RegistrationStatus(Enum):
    PENDING = "pending"
    FOR_INSPECTION = "for_inspection"
    NEEDS_CORRECTION = "needs_correction"
    RESUBMITTED = "resubmitted"
    ASSESSED = "assessed"
    APPROVED = "approved"
    REJECTED = "rejected"


class RegistrationWorkflow:
    """Status updates of property registrations."""

    def __init__(self, db: Session):
        self.db = db

    def get_registration(self, registration_id: int) -> dict | None:
        rows = execute_query(
            self.db,
            """
            SELECT id, reference_number, owner_name, status, correction_notes,
                   created_at, updated_at
            FROM property_registrations
            WHERE id = :id
            """,
            {"id": registration_id},
        )
        return rows[0] if rows else None

    def update_status(
        self,
        registration_id: int,
        status: str,
        correction_notes: str | None = None,
    ) -> dict:
        """Set the status of a registration.

        Args:
            registration_id: Registration id
            status: One of RegistrationStatus values
            correction_notes: Required for needs_correction

        Returns:
            Updated record with changed=True, or changed=False when the
            registration already had that status

        Raises:
            ValidationError: Unknown status or missing correction notes
            NotFoundError: Unknown registration
            StateConflictError: Approval requested outside the property assessment
        """
        try:
            new_status = RegistrationStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in RegistrationStatus)
            raise ValidationError(f"Invalid status '{status}'. Allowed: {allowed}", field="status")

        notes = (correction_notes or "").strip() or None
        if new_status == RegistrationStatus.NEEDS_CORRECTION and not notes:
            raise ValidationError(
                "Correction notes are required when requesting corrections",
                field="correction_notes",
            )

        record = self.get_registration(registration_id)
        if record is None:
            raise NotFoundError(f"Registration {registration_id} not found")

        if record["status"] == new_status.value:
            return {
                "registration_id": registration_id,
                "status": new_status.value,
                "changed": False,
            }

        if new_status == RegistrationStatus.APPROVED:
            raise StateConflictError(
                "Approve the property through its assessment so the quarterly taxes are generated",
                status=record["status"],
            )

        try:
            execute_update(
                self.db,
                """
                UPDATE property_registrations
                SET status = :status,
                    correction_notes = COALESCE(:notes, correction_notes),
                    updated_at = :updated_at
                WHERE id = :id
                """,
                {
                    "id": registration_id,
                    "status": new_status.value,
                    "notes": notes,
                    "updated_at": datetime.now(),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Registration {registration_id}: {record['status']} -> {new_status.value}")

        updated = self.get_registration(registration_id)
        updated_at = as_datetime(updated["updated_at"])
        return {
            "registration_id": registration_id,
            "reference_number": updated["reference_number"],
            "previous_status": record["status"],
            "status": updated["status"],
            "correction_notes": updated["correction_notes"],
            "updated_at": updated_at.isoformat() if updated_at else None,
            "changed": True,
        }
