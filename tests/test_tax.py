"""
Tests for Tax Module

Tests for rate lookup, regulatory fees, tax arithmetic and the business tax
service.
"""

from datetime import date
from decimal import Decimal

import pytest

from revenue.config import PortalSettings
from revenue.database import _prepare_params, as_decimal, execute_query
from revenue.exceptions import (
    NotFoundError,
    RateNotFoundError,
    StateConflictError,
    ValidationError,
)
from revenue.ledger import LedgerType, QuarterlyLedger
from revenue.tax import (
    FeeAggregator,
    FeeBreakdown,
    RateLookup,
    RateResolver,
    TaxCalculationType,
    TaxComputer,
    TaxConfiguration,
    select_latest,
)
from revenue.tax.business_tax import BusinessTaxRequest, BusinessTaxService
from revenue.tax.property_tax import (
    LandConfiguration,
    PropertyAssessmentRequest,
    PropertyTaxService,
    compute_property_tax,
)

AS_OF = date(2025, 3, 1)


class TestSelectLatest:
    """Tests for picking the configuration in force."""

    def _config(self, id, effective, expiration=None, percent="1.0"):
        return TaxConfiguration(
            id=id,
            tax_percent=Decimal(percent),
            effective_date=effective,
            expiration_date=expiration,
        )

    def test_latest_effective_date_wins(self):
        configs = [
            self._config(1, date(2023, 1, 1), percent="1.5"),
            self._config(2, date(2024, 1, 1), percent="2.0"),
        ]

        assert select_latest(configs, AS_OF).id == 2

    def test_expired_rows_are_skipped(self):
        configs = [
            self._config(1, date(2023, 1, 1)),
            self._config(2, date(2024, 1, 1), expiration=date(2025, 2, 28)),
        ]

        assert select_latest(configs, AS_OF).id == 1

    def test_expiring_today_is_still_active(self):
        configs = [self._config(1, date(2024, 1, 1), expiration=AS_OF)]

        assert select_latest(configs, AS_OF).id == 1

    def test_tie_goes_to_higher_id(self):
        configs = [
            self._config(7, date(2024, 1, 1)),
            self._config(3, date(2024, 1, 1)),
        ]

        assert select_latest(configs, AS_OF).id == 7

    def test_no_active_rows(self):
        configs = [self._config(1, date(2023, 1, 1), expiration=date(2023, 12, 31))]

        assert select_latest(configs, AS_OF) is None


class TestRateResolver:
    """Tests for rate lookups against the configuration tables."""

    @pytest.fixture
    def resolver(self, db):
        return RateResolver(db)

    def test_gross_sales_rate_by_business_type(self, resolver, seed):
        seed.gross_sales_rate("Retail", "1.5", date(2023, 1, 1))
        latest = seed.gross_sales_rate("Retail", "2.0", date(2024, 1, 1))
        seed.gross_sales_rate("Manufacturing", "3.0", date(2024, 6, 1))

        result = resolver.resolve_gross_sales("Retail", AS_OF)

        assert result.found
        assert result.rate == Decimal("2.0")
        assert result.configuration_id == latest

    def test_gross_sales_ignores_expired_newer_row(self, resolver, seed):
        seed.gross_sales_rate("Retail", "2.0", date(2024, 1, 1))
        seed.gross_sales_rate("Retail", "5.0", date(2025, 1, 1), expiration=date(2025, 1, 31))

        result = resolver.resolve_gross_sales("Retail", AS_OF)

        assert result.rate == Decimal("2.0")

    def test_capital_bracket_bounds_are_inclusive(self, resolver, seed):
        seed.capital_bracket("0", "100000", "1.0", date(2024, 1, 1))
        seed.capital_bracket("100000.01", "500000", "1.5", date(2024, 1, 1))

        assert resolver.resolve_capital_investment(Decimal("100000"), AS_OF).rate == Decimal("1.0")
        assert resolver.resolve_capital_investment(Decimal("100000.01"), AS_OF).rate == Decimal("1.5")
        assert resolver.resolve_capital_investment(Decimal("0"), AS_OF).rate == Decimal("1.0")

    def test_missing_rate_is_explicit(self, resolver, seed):
        seed.gross_sales_rate("Retail", "2.0", date(2024, 1, 1))

        result = resolver.resolve_gross_sales("Restaurant", AS_OF)

        assert isinstance(result, RateLookup)
        assert result.found is False
        assert result.rate == Decimal("0")
        assert result.configuration_id is None

    def test_amount_outside_all_brackets(self, resolver, seed):
        seed.capital_bracket("0", "100000", "1.0", date(2024, 1, 1))

        result = resolver.resolve_capital_investment(Decimal("2000000"), AS_OF)

        assert result.found is False

    def test_resolve_dispatches_on_calculation_type(self, resolver, seed):
        seed.capital_bracket("0", "100000", "1.0", date(2024, 1, 1))
        seed.gross_sales_rate("Retail", "2.0", date(2024, 1, 1))

        capital = resolver.resolve(TaxCalculationType.CAPITAL_INVESTMENT, Decimal("5000"), "Retail", AS_OF)
        gross = resolver.resolve(TaxCalculationType.GROSS_SALES, Decimal("5000"), "Retail", AS_OF)

        assert capital.rate == Decimal("1.0")
        assert gross.rate == Decimal("2.0")


class TestFeeAggregator:
    """Tests for regulatory fee totals."""

    def test_sums_active_fees(self, db, seed):
        seed.fee("Mayor's Permit", "499.98")
        seed.fee("Sanitary Permit", "500")
        seed.fee("Garbage Fee", "300", expiration=date(2025, 12, 31))
        seed.fee("Old Fire Fee", "250", expiration=date(2024, 12, 31))

        breakdown = FeeAggregator(db).aggregate(AS_OF)

        assert breakdown.total == Decimal("1299.98")
        assert len(breakdown.fees) == 3

    def test_no_fees(self, db):
        breakdown = FeeAggregator(db).aggregate(AS_OF)

        assert breakdown.total == Decimal("0")
        assert breakdown.fees == []


class TestTaxComputer:
    """Tests for tax arithmetic and quarterly split."""

    @pytest.fixture
    def computer(self, settings):
        return TaxComputer(settings)

    def test_gross_sales_example(self, computer):
        rate = RateLookup(found=True, rate=Decimal("2"), scope="gross_sales:Retail", configuration_id=1)
        fees = FeeBreakdown(total=Decimal("1299.98"))

        result = computer.compute(TaxCalculationType.GROSS_SALES, Decimal("100000"), rate, fees)

        assert result.tax_amount == Decimal("2000.00")
        assert result.regulatory_fees == Decimal("1299.98")
        assert result.total_tax == Decimal("3299.98")
        assert result.quarterly_amount == Decimal("824.995")

    def test_tax_amount_rounds_to_cents(self, computer):
        rate = RateLookup(found=True, rate=Decimal("1.25"), scope="x")

        result = computer.compute(TaxCalculationType.GROSS_SALES, Decimal("1234.56"), rate, FeeBreakdown())

        assert result.tax_amount == Decimal("15.43")

    def test_missing_rate_computes_zero_by_default(self, computer):
        fees = FeeBreakdown(total=Decimal("500"))

        result = computer.compute(
            TaxCalculationType.GROSS_SALES,
            Decimal("100000"),
            RateLookup.missing("gross_sales:Unknown"),
            fees,
        )

        assert result.tax_amount == Decimal("0.00")
        assert result.total_tax == Decimal("500.00")
        assert result.rate_found is False

    def test_missing_rate_rejected_by_policy(self):
        computer = TaxComputer(PortalSettings(database_url="sqlite://", missing_rate_policy="reject"))

        with pytest.raises(RateNotFoundError) as exc_info:
            computer.compute(
                TaxCalculationType.GROSS_SALES,
                Decimal("100000"),
                RateLookup.missing("gross_sales:Unknown"),
                FeeBreakdown(),
            )

        assert exc_info.value.http_status == 422

    def test_quarterly_split_sums_to_total(self, computer):
        installments = computer.split_quarterly(Decimal("3299.98"), 2025)

        assert [i.quarter for i in installments] == ["Q1", "Q2", "Q3", "Q4"]
        assert all(i.amount == Decimal("824.995") for i in installments)
        assert sum(i.amount for i in installments) == Decimal("3299.98")

    def test_due_dates(self, computer):
        installments = computer.split_quarterly(Decimal("1000"), 2025)

        assert [i.due_date for i in installments] == [
            date(2025, 3, 31),
            date(2025, 6, 30),
            date(2025, 9, 30),
            date(2025, 12, 31),
        ]


class TestBusinessTaxRequest:
    """Tests for request validation."""

    @pytest.fixture
    def payload(self):
        return {
            "business_permit_id": "BP-2025-001",
            "business_name": "Sari-Sari Store",
            "full_name": "Maria Santos",
            "business_type": "Retail",
            "taxable_amount": "100000",
            "tax_calculation_type": "gross_sales",
        }

    def test_valid_payload(self, payload):
        request = BusinessTaxRequest.from_payload(payload)

        assert request.taxable_amount == Decimal("100000")
        assert request.tax_calculation_type == TaxCalculationType.GROSS_SALES
        assert request.owner_name == "Maria Santos"

    def test_owner_name_alias(self, payload):
        payload.pop("full_name")
        payload["owner_name"] = "Pedro Reyes"

        assert BusinessTaxRequest.from_payload(payload).owner_name == "Pedro Reyes"

    @pytest.mark.parametrize("field", ["business_permit_id", "business_name", "business_type", "taxable_amount"])
    def test_missing_field(self, payload, field):
        payload[field] = ""

        with pytest.raises(ValidationError) as exc_info:
            BusinessTaxRequest.from_payload(payload)

        assert field in exc_info.value.message

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_taxable_amount(self, payload, amount):
        payload["taxable_amount"] = amount

        with pytest.raises(ValidationError):
            BusinessTaxRequest.from_payload(payload)

    def test_invalid_calculation_type(self, payload):
        payload["tax_calculation_type"] = "net_income"

        with pytest.raises(ValidationError):
            BusinessTaxRequest.from_payload(payload)


class TestBusinessTaxService:
    """Tests for business tax persistence and approval."""

    @pytest.fixture
    def service(self, db, settings):
        return BusinessTaxService(db, settings)

    @pytest.fixture
    def configured(self, seed):
        seed.gross_sales_rate("Retail", "2.0", date(2024, 1, 1))
        seed.fee("Mayor's Permit", "499.98")
        seed.fee("Sanitary Permit", "500")
        seed.fee("Garbage Fee", "300")

    @pytest.fixture
    def payload(self):
        return {
            "business_permit_id": "BP-2025-001",
            "business_name": "Sari-Sari Store",
            "full_name": "Maria Santos",
            "business_type": "Retail",
            "taxable_amount": 100000,
            "tax_calculation_type": "gross_sales",
        }

    def _permit_count(self, db):
        return execute_query(db, "SELECT COUNT(*) AS total FROM business_permits")[0]["total"]

    def test_create_then_update(self, service, db, configured, payload):
        first = service.calculate_and_save(payload, AS_OF)
        second = service.calculate_and_save(payload, AS_OF)

        assert first.action == "created"
        assert second.action == "updated"
        assert second.record_id == first.record_id
        assert self._permit_count(db) == 1
        assert first.computation.total_tax == second.computation.total_tax == Decimal("3299.98")
        assert second.computation.tax_amount == Decimal("2000.00")

    def test_validation_error_writes_nothing(self, service, db, configured, payload):
        payload["business_type"] = ""

        with pytest.raises(ValidationError):
            service.calculate_and_save(payload, AS_OF)

        assert self._permit_count(db) == 0

    def test_reject_policy_writes_nothing(self, db, configured, payload):
        service = BusinessTaxService(db, PortalSettings(database_url="sqlite://", missing_rate_policy="reject"))
        payload["business_type"] = "Restaurant"

        with pytest.raises(RateNotFoundError):
            service.calculate_and_save(payload, AS_OF)

        assert self._permit_count(db) == 0

    def test_approve_generates_quarters(self, service, db, settings, configured, payload):
        saved = service.calculate_and_save(payload, AS_OF)

        result = service.approve_permit("BP-2025-001", approved_by="Treasurer")

        assert result["changed"] is True
        assert result["quarters_created"] is True
        quarters = QuarterlyLedger(db, settings).list_quarters(
            LedgerType.BUSINESS, saved.record_id, date.today().year
        )
        assert len(quarters) == 4
        assert sum(q.total_quarterly_tax for q in quarters) == Decimal("3299.98")
        assert service.get_record("BP-2025-001")["status"] == "Approved"

    def test_approve_twice_is_noop(self, service, configured, payload):
        service.calculate_and_save(payload, AS_OF)
        service.approve_permit("BP-2025-001", approved_by="Treasurer")

        result = service.approve_permit("BP-2025-001", approved_by="Treasurer")

        assert result["changed"] is False
        assert result["status"] == "Approved"

    def test_recalculation_keeps_approved_status(self, service, configured, payload):
        service.calculate_and_save(payload, AS_OF)
        service.approve_permit("BP-2025-001", approved_by="Treasurer")

        result = service.calculate_and_save(payload, AS_OF)

        assert result.action == "updated"
        assert result.status == "Approved"

    def test_approve_without_tax_conflicts(self, service, seed, payload):
        seed.fee("Mayor's Permit", "500")
        payload["business_type"] = "Unconfigured"
        service.calculate_and_save(payload, AS_OF)

        with pytest.raises(StateConflictError):
            service.approve_permit("BP-2025-001", approved_by="Treasurer")

    def test_approve_unknown_permit(self, service):
        with pytest.raises(NotFoundError):
            service.approve_permit("BP-MISSING", approved_by="Treasurer")

    def test_get_permit(self, service, configured, payload):
        service.calculate_and_save(payload, AS_OF)

        permit = service.get_permit("BP-2025-001")

        assert permit["owner_name"] == "Maria Santos"
        assert permit["total_tax"] == pytest.approx(3299.98)
        assert permit["quarters"] == []


class TestPropertyTaxComputation:
    """Tests for the real property tax arithmetic."""

    @pytest.fixture
    def residential(self):
        return LandConfiguration(
            id=1,
            classification="Residential",
            market_value=Decimal("5000"),
            assessment_level=Decimal("20"),
            effective_date=date(2024, 1, 1),
        )

    def test_land_and_building_tax(self, residential):
        result = compute_property_tax(
            Decimal("200"), residential, Decimal("1"), Decimal("1"), Decimal("50000")
        )

        assert result.land_market_value == Decimal("1000000.00")
        assert result.land_assessed_value == Decimal("200000.00")
        assert result.land_annual_tax == Decimal("4000.00")
        assert result.building_annual_tax == Decimal("1000.00")
        assert result.total_annual_tax == Decimal("5000.00")
        assert result.basic_tax == Decimal("2500.00")
        assert result.sef_tax == Decimal("2500.00")

    def test_shares_add_up_after_rounding(self, residential):
        result = compute_property_tax(Decimal("33.33"), residential, Decimal("1"), Decimal("0.5"))

        assert result.basic_tax + result.sef_tax == result.total_annual_tax

    def test_zero_rates(self, residential):
        result = compute_property_tax(Decimal("200"), residential, Decimal("0"), Decimal("0"))

        assert result.total_annual_tax == Decimal("0")
        assert result.basic_tax == Decimal("0.00")


class TestPropertyAssessmentRequest:
    """Tests for property assessment payload validation."""

    def test_land_property_type_alias(self):
        request = PropertyAssessmentRequest.from_payload({
            "registration_id": "7",
            "land_property_type": "Residential",
            "land_area_sqm": "120.5",
        })

        assert request.registration_id == 7
        assert request.classification == "Residential"
        assert request.land_area_sqm == Decimal("120.5")
        assert request.building_assessed_value == Decimal("0")

    @pytest.mark.parametrize("field", ["registration_id", "classification", "land_area_sqm"])
    def test_missing_field(self, field):
        payload = {"registration_id": 7, "classification": "Residential", "land_area_sqm": 100}
        del payload[field]

        with pytest.raises(ValidationError) as exc_info:
            PropertyAssessmentRequest.from_payload(payload)

        assert exc_info.value.details["field"] == field

    @pytest.mark.parametrize("area", [0, -5, "abc"])
    def test_invalid_area(self, area):
        with pytest.raises(ValidationError):
            PropertyAssessmentRequest.from_payload({
                "registration_id": 7, "classification": "Residential", "land_area_sqm": area,
            })


class TestPropertyTaxService:
    """Tests for property assessment persistence and approval."""

    @pytest.fixture
    def service(self, db, settings):
        return PropertyTaxService(db, settings)

    @pytest.fixture
    def configured(self, seed):
        seed.rpt_tax_rate("Basic Tax", "1", date(2024, 1, 1))
        seed.rpt_tax_rate("SEF Tax", "1", date(2024, 1, 1))
        seed.land_config("Residential", "5000", "20", date(2024, 1, 1))

    @pytest.fixture
    def registration_id(self, seed):
        return seed.registration(status="for_inspection")

    @pytest.fixture
    def payload(self, registration_id):
        return {
            "registration_id": registration_id,
            "classification": "Residential",
            "land_area_sqm": 200,
            "building_assessed_value": 50000,
        }

    def _status(self, db, registration_id):
        return execute_query(
            db, "SELECT status FROM property_registrations WHERE id = :id", {"id": registration_id}
        )[0]["status"]

    def test_assess_creates_then_updates(self, service, db, configured, payload, registration_id):
        first = service.assess(payload, AS_OF)
        payload["building_assessed_value"] = 0
        second = service.assess(payload, AS_OF)

        assert first.action == "created"
        assert first.computation.total_annual_tax == Decimal("5000.00")
        assert second.action == "updated"
        assert second.property_total_id == first.property_total_id
        assert second.computation.total_annual_tax == Decimal("4000.00")
        assert self._status(db, registration_id) == "assessed"
        rows = execute_query(db, "SELECT COUNT(*) AS total FROM property_totals")
        assert rows[0]["total"] == 1

    def test_assess_unknown_registration(self, service, configured, payload):
        payload["registration_id"] = 9999

        with pytest.raises(NotFoundError):
            service.assess(payload, AS_OF)

    def test_missing_land_configuration(self, service, configured, payload):
        payload["classification"] = "Agricultural"

        with pytest.raises(ValidationError) as exc_info:
            service.assess(payload, AS_OF)

        assert exc_info.value.details["field"] == "classification"

    def test_expired_land_configuration_is_skipped(self, service, seed, configured, payload):
        seed.land_config("Residential", "9000", "20", date(2024, 6, 1), expiration=date(2024, 12, 31))

        result = service.assess(payload, AS_OF)

        assert result.computation.land_market_value == Decimal("1000000.00")

    def test_missing_rate_rejected_by_policy(self, db, seed, payload):
        seed.rpt_tax_rate("Basic Tax", "1", date(2024, 1, 1))
        seed.land_config("Residential", "5000", "20", date(2024, 1, 1))
        service = PropertyTaxService(
            db, PortalSettings(database_url="sqlite://", missing_rate_policy="reject")
        )

        with pytest.raises(RateNotFoundError):
            service.assess(payload, AS_OF)

        assert execute_query(db, "SELECT COUNT(*) AS total FROM property_totals")[0]["total"] == 0

    def test_missing_rate_computes_zero_by_default(self, service, seed, payload):
        seed.rpt_tax_rate("Basic Tax", "1", date(2024, 1, 1))
        seed.land_config("Residential", "5000", "20", date(2024, 1, 1))

        result = service.assess(payload, AS_OF)

        assert result.computation.rates_found is False
        assert result.computation.sef_tax_percent == Decimal("0")
        assert result.computation.total_annual_tax == Decimal("2500.00")

    def test_approve_generates_rpt_quarters(self, service, db, settings, configured, payload, registration_id):
        saved = service.assess(payload, AS_OF)

        result = service.approve_property(registration_id, approved_by="Assessor", year=2025)

        assert result["changed"] is True
        assert result["quarters_created"] is True
        assert result["property_total_id"] == saved.property_total_id
        quarters = QuarterlyLedger(db, settings).list_quarters(LedgerType.RPT, saved.property_total_id, 2025)
        assert [q.total_quarterly_tax for q in quarters] == [Decimal("1250.00")] * 4
        record = execute_query(
            db, "SELECT status, approved_by FROM property_registrations WHERE id = :id", {"id": registration_id}
        )[0]
        assert record == {"status": "approved", "approved_by": "Assessor"}

    def test_approve_twice_is_noop(self, service, configured, payload, registration_id):
        service.assess(payload, AS_OF)
        service.approve_property(registration_id, approved_by="Assessor", year=2025)

        result = service.approve_property(registration_id, approved_by="Assessor", year=2025)

        assert result["changed"] is False

    def test_approved_property_cannot_be_reassessed(self, service, configured, payload, registration_id):
        service.assess(payload, AS_OF)
        service.approve_property(registration_id, approved_by="Assessor", year=2025)

        with pytest.raises(StateConflictError):
            service.assess(payload, AS_OF)

    def test_approve_without_assessment(self, service, registration_id):
        with pytest.raises(StateConflictError):
            service.approve_property(registration_id, approved_by="Assessor")

    def test_approve_rejected_registration(self, service, seed):
        registration_id = seed.registration(status="rejected", reference_number="RPT-2025-0002")

        with pytest.raises(StateConflictError):
            service.approve_property(registration_id, approved_by="Assessor")

    def test_approve_unknown_registration(self, service):
        with pytest.raises(NotFoundError):
            service.approve_property(9999, approved_by="Assessor")

    def test_get_property_lists_quarters(self, service, configured, payload, registration_id):
        service.assess(payload, AS_OF)
        service.approve_property(registration_id, approved_by="Assessor", year=2025)

        record = service.get_property(registration_id, 2025)

        assert record["status"] == "approved"
        assert record["total_annual_tax"] == pytest.approx(5000.0)
        assert [q["quarter"] for q in record["quarters"]] == ["Q1", "Q2", "Q3", "Q4"]

    def test_get_property_without_assessment(self, service, registration_id):
        with pytest.raises(NotFoundError):
            service.get_property(registration_id)


class TestDecimalBinding:
    """Tests for how money values reach the database."""

    def test_decimal_params_are_kept(self):
        params = _prepare_params({"amount": Decimal("0.10"), "day": date(2025, 1, 15)})

        assert isinstance(params["amount"], Decimal)
        assert params["amount"] == Decimal("0.10")
        assert params["day"] == "2025-01-15"

    def test_decimal_insert_reads_back_exactly(self, db, seed):
        config_id = seed.discount_percent("12.5", date(2025, 1, 1))

        row = execute_query(
            db, "SELECT discount_percent FROM discount_config WHERE id = :id", {"id": config_id}
        )[0]

        assert as_decimal(row["discount_percent"]) == Decimal("12.5")
