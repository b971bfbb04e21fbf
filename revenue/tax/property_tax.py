"""
Real Property Tax Module

Assesses a registered property from the land configuration of its
classification and the Basic and SEF tax rates, stores the assessment
totals and approves the property into the quarterly ledger.

    market value   = land area x market value per sqm
    assessed value = market value x assessment level
    annual tax     = (land + building assessed value) x (Basic + SEF)%
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy.orm import Session

from ..config import PortalSettings
from ..database import as_date, as_datetime, as_decimal, execute_insert, execute_query, execute_update
from ..exceptions import NotFoundError, RateNotFoundError, StateConflictError, ValidationError
from ..ledger.quarterly_ledger import LedgerType, QuarterlyLedger
from .rate_resolver import RateLookup, TaxConfiguration, select_latest

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
BASIC_TAX = "Basic Tax"
SEF_TAX = "SEF Tax"
RPT_TAX_NAMES = (BASIC_TAX, SEF_TAX)


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _positive_decimal(payload: dict, name: str, allow_zero: bool = False) -> Decimal:
    try:
        value = Decimal(str(payload[name]))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number", field=name)
    if not value.is_finite() or value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} must be greater than zero", field=name)
    return value


@dataclass
class LandConfiguration:
    """Market value and assessment level of a land classification."""

    id: int
    classification: str
    market_value: Decimal  # per square meter
    assessment_level: Decimal  # percent
    effective_date: date
    expiration_date: date | None = None

    @classmethod
    def from_row(cls, row: dict) -> "LandConfiguration":
        return cls(
            id=row["id"],
            classification=row["classification"],
            market_value=as_decimal(row["market_value"]),
            assessment_level=as_decimal(row["assessment_level"]),
            effective_date=as_date(row["effective_date"]),
            expiration_date=as_date(row.get("expiration_date")),
        )

    def is_active(self, as_of: date) -> bool:
        return self.expiration_date is None or self.expiration_date >= as_of


@dataclass
class PropertyAssessmentRequest:
    """Validated input of a property assessment."""

    registration_id: int
    classification: str
    land_area_sqm: Decimal
    building_assessed_value: Decimal = Decimal("0")

    @classmethod
    def from_payload(cls, payload: dict) -> "PropertyAssessmentRequest":
        """Validate a raw payload.

        land_property_type is accepted as an alias of classification.

        Raises:
            ValidationError: A required field is missing or malformed
        """
        payload = dict(payload)
        if not payload.get("classification") and payload.get("land_property_type"):
            payload["classification"] = payload["land_property_type"]

        for name in ("registration_id", "classification", "land_area_sqm"):
            value = payload.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"Missing required field: {name}", field=name)

        try:
            registration_id = int(payload["registration_id"])
        except (TypeError, ValueError):
            raise ValidationError("registration_id must be a whole number", field="registration_id")

        building_assessed_value = Decimal("0")
        if payload.get("building_assessed_value") is not None:
            building_assessed_value = _positive_decimal(payload, "building_assessed_value", allow_zero=True)

        return cls(
            registration_id=registration_id,
            classification=str(payload["classification"]).strip(),
            land_area_sqm=_positive_decimal(payload, "land_area_sqm"),
            building_assessed_value=building_assessed_value,
        )


@dataclass
class PropertyTaxComputation:
    """Annual real property tax of one assessment."""

    land_market_value: Decimal
    assessment_level: Decimal
    land_assessed_value: Decimal
    building_assessed_value: Decimal
    basic_tax_percent: Decimal
    sef_tax_percent: Decimal
    land_annual_tax: Decimal
    building_annual_tax: Decimal
    basic_tax: Decimal
    sef_tax: Decimal
    rates_found: bool = True

    @property
    def total_annual_tax(self) -> Decimal:
        return self.land_annual_tax + self.building_annual_tax


def compute_property_tax(
    land_area_sqm: Decimal,
    land: LandConfiguration,
    basic_tax_percent: Decimal,
    sef_tax_percent: Decimal,
    building_assessed_value: Decimal = Decimal("0"),
) -> PropertyTaxComputation:
    """Compute the annual property tax, every amount rounded to cents.

    The SEF share is the total minus the Basic share, so both shares always
    add up to the annual tax.
    """
    tax_percent = basic_tax_percent + sef_tax_percent
    land_market_value = _cents(land_area_sqm * land.market_value)
    land_assessed_value = _cents(land_market_value * land.assessment_level / Decimal("100"))
    land_annual_tax = _cents(land_assessed_value * tax_percent / Decimal("100"))
    building_annual_tax = _cents(building_assessed_value * tax_percent / Decimal("100"))

    total = land_annual_tax + building_annual_tax
    if tax_percent > 0:
        basic_tax = _cents(total * basic_tax_percent / tax_percent)
    else:
        basic_tax = Decimal("0.00")

    return PropertyTaxComputation(
        land_market_value=land_market_value,
        assessment_level=land.assessment_level,
        land_assessed_value=land_assessed_value,
        building_assessed_value=building_assessed_value,
        basic_tax_percent=basic_tax_percent,
        sef_tax_percent=sef_tax_percent,
        land_annual_tax=land_annual_tax,
        building_annual_tax=building_annual_tax,
        basic_tax=basic_tax,
        sef_tax=total - basic_tax,
    )


@dataclass
class PropertyAssessmentResult:
    """Saved assessment plus whether it was created or updated."""

    action: str  # 'created' or 'updated'
    property_total_id: int
    registration_id: int
    computation: PropertyTaxComputation

    def to_dict(self) -> dict:
        c = self.computation
        return {
            "action": self.action,
            "property_total_id": self.property_total_id,
            "registration_id": self.registration_id,
            "land_market_value": float(c.land_market_value),
            "assessment_level": float(c.assessment_level),
            "land_assessed_value": float(c.land_assessed_value),
            "building_assessed_value": float(c.building_assessed_value),
            "basic_tax_percent": float(c.basic_tax_percent),
            "sef_tax_percent": float(c.sef_tax_percent),
            "land_annual_tax": float(c.land_annual_tax),
            "building_annual_tax": float(c.building_annual_tax),
            "basic_tax": float(c.basic_tax),
            "sef_tax": float(c.sef_tax),
            "total_annual_tax": float(c.total_annual_tax),
            "rates_found": c.rates_found,
        }


class PropertyTaxService:
    """Assesses and approves real property taxes."""

    def __init__(self, db: Session, settings: PortalSettings):
        self.db = db
        self.settings = settings
        self.ledger = QuarterlyLedger(db, settings)

    # ==================== Configuration ====================

    def land_configuration(self, classification: str, as_of: date) -> LandConfiguration:
        """Active land configuration of a classification.

        Raises:
            ValidationError: No active configuration for the classification
        """
        rows = execute_query(
            self.db,
            """
            SELECT id, classification, market_value, assessment_level,
                   effective_date, expiration_date
            FROM land_configurations
            WHERE classification = :classification
            """,
            {"classification": classification},
        )
        selected = select_latest([LandConfiguration.from_row(r) for r in rows], as_of)
        if selected is None:
            raise ValidationError(
                f"No active land configuration found for classification: {classification}",
                field="classification",
            )
        return selected

    def rpt_rate(self, tax_name: str, as_of: date) -> RateLookup:
        rows = execute_query(
            self.db,
            """
            SELECT id, tax_percent, effective_date, expiration_date, remarks
            FROM rpt_tax_config
            WHERE tax_name = :tax_name
            """,
            {"tax_name": tax_name},
        )
        selected = select_latest([TaxConfiguration.from_row(r) for r in rows], as_of)
        if selected is None:
            logger.warning(f"No {tax_name} rate as of {as_of}")
            return RateLookup.missing(f"rpt:{tax_name}")
        return RateLookup(
            found=True,
            rate=selected.tax_percent,
            scope=f"rpt:{tax_name}",
            configuration_id=selected.id,
        )

    def calculate(self, request: PropertyAssessmentRequest, as_of: date | None = None) -> PropertyTaxComputation:
        """Compute the annual tax of a property without saving it.

        Raises:
            ValidationError: No land configuration for the classification
            RateNotFoundError: A rate is missing and the policy is 'reject'
        """
        as_of = as_of or date.today()
        land = self.land_configuration(request.classification, as_of)
        rates = [self.rpt_rate(name, as_of) for name in RPT_TAX_NAMES]

        for rate in rates:
            if not rate.found and self.settings.missing_rate_policy == "reject":
                raise RateNotFoundError(f"No active tax configuration for {rate.scope}", scope=rate.scope)

        basic, sef = rates
        computation = compute_property_tax(
            request.land_area_sqm,
            land,
            basic.rate,
            sef.rate,
            request.building_assessed_value,
        )
        computation.rates_found = basic.found and sef.found
        return computation

    # ==================== Records ====================

    def get_registration(self, registration_id: int) -> dict | None:
        rows = execute_query(
            self.db,
            "SELECT id, reference_number, owner_name, status FROM property_registrations WHERE id = :id",
            {"id": registration_id},
        )
        return rows[0] if rows else None

    def get_assessment(self, registration_id: int) -> dict | None:
        rows = execute_query(
            self.db,
            "SELECT * FROM property_totals WHERE registration_id = :registration_id",
            {"registration_id": registration_id},
        )
        return rows[0] if rows else None

    def assess(self, payload: dict, as_of: date | None = None) -> PropertyAssessmentResult:
        """Compute the tax of a property and upsert its assessment totals.

        The registration moves to 'assessed'. An approved property cannot be
        reassessed, since its quarters were generated from the stored total.

        Args:
            payload: registration_id, classification (or land_property_type),
                land_area_sqm and optionally building_assessed_value
            as_of: Configuration lookup date (defaults to today)

        Returns:
            PropertyAssessmentResult

        Raises:
            ValidationError: Invalid payload or unknown classification
            NotFoundError: Unknown registration
            StateConflictError: Registration already approved
            RateNotFoundError: A rate is missing under the 'reject' policy
        """
        request = PropertyAssessmentRequest.from_payload(payload)

        registration = self.get_registration(request.registration_id)
        if registration is None:
            raise NotFoundError(f"Registration {request.registration_id} not found")
        if registration["status"] == "approved":
            raise StateConflictError(
                f"Registration {request.registration_id} is already approved",
                status=registration["status"],
            )

        computation = self.calculate(request, as_of)
        existing = self.get_assessment(request.registration_id)
        now = datetime.now()

        values = {
            "classification": request.classification,
            "land_area_sqm": request.land_area_sqm,
            "land_market_value": computation.land_market_value,
            "assessment_level": computation.assessment_level,
            "land_assessed_value": computation.land_assessed_value,
            "building_assessed_value": computation.building_assessed_value,
            "basic_tax_percent": computation.basic_tax_percent,
            "sef_tax_percent": computation.sef_tax_percent,
            "land_annual_tax": computation.land_annual_tax,
            "total_building_annual_tax": computation.building_annual_tax,
            "basic_tax": computation.basic_tax,
            "sef_tax": computation.sef_tax,
            "total_annual_tax": computation.total_annual_tax,
        }

        try:
            if existing:
                execute_update(
                    self.db,
                    """
                    UPDATE property_totals
                    SET classification = :classification,
                        land_area_sqm = :land_area_sqm,
                        land_market_value = :land_market_value,
                        assessment_level = :assessment_level,
                        land_assessed_value = :land_assessed_value,
                        building_assessed_value = :building_assessed_value,
                        basic_tax_percent = :basic_tax_percent,
                        sef_tax_percent = :sef_tax_percent,
                        land_annual_tax = :land_annual_tax,
                        total_building_annual_tax = :total_building_annual_tax,
                        basic_tax = :basic_tax,
                        sef_tax = :sef_tax,
                        total_annual_tax = :total_annual_tax,
                        updated_at = :updated_at
                    WHERE id = :id
                    """,
                    {**values, "id": existing["id"], "updated_at": now},
                )
                action = "updated"
                property_total_id = existing["id"]
            else:
                row = execute_insert(self.db, "property_totals", {
                    "registration_id": request.registration_id,
                    **values,
                    "created_at": now,
                    "updated_at": now,
                })
                action = "created"
                property_total_id = row["id"]

            execute_update(
                self.db,
                """
                UPDATE property_registrations
                SET status = 'assessed', updated_at = :updated_at
                WHERE id = :id AND status != 'approved'
                """,
                {"id": request.registration_id, "updated_at": now},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Property assessment {action} for registration {request.registration_id}: "
            f"annual tax {computation.total_annual_tax}"
        )

        return PropertyAssessmentResult(
            action=action,
            property_total_id=property_total_id,
            registration_id=request.registration_id,
            computation=computation,
        )

    def get_property(self, registration_id: int, year: int | None = None) -> dict:
        """Assessment totals with the quarters of a year.

        Raises:
            NotFoundError: Unknown registration or no assessment yet
        """
        registration = self.get_registration(registration_id)
        if registration is None:
            raise NotFoundError(f"Registration {registration_id} not found")
        assessment = self.get_assessment(registration_id)
        if assessment is None:
            raise NotFoundError(f"Registration {registration_id} has not been assessed")

        year = year or date.today().year
        quarters = self.ledger.list_quarters(LedgerType.RPT, assessment["id"], year)
        updated_at = as_datetime(assessment["updated_at"])

        return {
            "registration_id": registration_id,
            "reference_number": registration["reference_number"],
            "owner_name": registration["owner_name"],
            "status": registration["status"],
            "property_total_id": assessment["id"],
            "classification": assessment["classification"],
            "land_area_sqm": float(as_decimal(assessment["land_area_sqm"])),
            "land_assessed_value": float(as_decimal(assessment["land_assessed_value"])),
            "building_assessed_value": float(as_decimal(assessment["building_assessed_value"])),
            "basic_tax": float(as_decimal(assessment["basic_tax"])),
            "sef_tax": float(as_decimal(assessment["sef_tax"])),
            "total_annual_tax": float(as_decimal(assessment["total_annual_tax"])),
            "updated_at": updated_at.isoformat() if updated_at else None,
            "year": year,
            "quarters": [q.to_dict() for q in quarters],
        }

    def approve_property(self, registration_id: int, approved_by: str, year: int | None = None) -> dict:
        """Approve an assessed property and open its quarterly ledger.

        Args:
            registration_id: Registration id
            approved_by: User approving the property
            year: Billing year of the quarters (defaults to the current year)

        Returns:
            Dict with the resulting status and whether anything changed

        Raises:
            NotFoundError: Unknown registration
            StateConflictError: Rejected, not assessed, or zero annual tax
        """
        registration = self.get_registration(registration_id)
        if registration is None:
            raise NotFoundError(f"Registration {registration_id} not found")

        if registration["status"] == "approved":
            return {"registration_id": registration_id, "status": "approved", "changed": False}

        if registration["status"] == "rejected":
            raise StateConflictError(
                f"Registration {registration_id} was rejected",
                status=registration["status"],
            )

        assessment = self.get_assessment(registration_id)
        if assessment is None:
            raise StateConflictError(
                "No assessment totals found. Please save the assessment first",
                status=registration["status"],
            )

        total_annual_tax = as_decimal(assessment["total_annual_tax"])
        if total_annual_tax <= 0:
            raise StateConflictError(
                f"Registration {registration_id} has no computed tax to approve",
                total_annual_tax=float(total_annual_tax),
            )

        year = year or date.today().year
        now = datetime.now()
        try:
            updated = execute_update(
                self.db,
                """
                UPDATE property_registrations
                SET status = 'approved',
                    approved_by = :approved_by,
                    approved_date = :approved_date,
                    updated_at = :approved_date
                WHERE id = :id AND status = :current_status
                """,
                {
                    "id": registration_id,
                    "approved_by": approved_by,
                    "approved_date": now,
                    "current_status": registration["status"],
                },
            )
            if not updated:
                raise StateConflictError(f"Registration {registration_id} was modified concurrently")

            quarters_created = False
            if not self.ledger.has_quarters(LedgerType.RPT, assessment["id"], year):
                self.ledger.generate_quarters(LedgerType.RPT, assessment["id"], total_annual_tax, year)
                quarters_created = True

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Registration {registration_id} approved by {approved_by}")

        return {
            "registration_id": registration_id,
            "property_total_id": assessment["id"],
            "status": "approved",
            "changed": True,
            "quarters_created": quarters_created,
            "year": year,
            "total_annual_tax": float(total_annual_tax),
        }
