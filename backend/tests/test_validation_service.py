"""Tests for hard validation and data-quality flags."""

from reservation_engine.services.normalize_service import normalize_reservation
from reservation_engine.services.validation_service import (
    ERROR_CODES,
    check_data_quality,
    format_errors,
    validate_core,
    validate_extras,
    validate_reservation,
)


DEFS = [
    {"key": "visa_number", "type": "string", "required": True, "is_active": True},
    {"key": "meal_plan", "type": "select", "options": ["none", "breakfast"], "is_active": True},
    {"key": "passport", "type": "string", "pattern": r"^[A-Z]\d{8}$", "is_active": True},
    {"key": "arrival", "type": "date", "is_active": True},
    {"key": "bad_regex", "type": "string", "pattern": "([", "is_active": True},
]


def _fields(result):
    return {error.field: error.code for error in result.errors}


class TestCoreValidation:
    """Fixed attribute rules."""

    def test_valid_record(self):
        record = normalize_reservation({"reservation_number": "R1", "total_amount": 10}, [])
        assert validate_core(record).valid

    def test_every_violation_reported(self):
        result = validate_core({
            "reservation_number": "",
            "total_amount": -1,
            "quantity": 0,
            "people_adult": 2,
            "people_child": 1,
            "people_infant": 0,
            "guest_count": 2,
            "email": "nope",
            "usage_date": "2026-13-45",
            "usage_time": "25:00",
            "payment_status": "maybe",
            "memo": "x" * 1001,
        })
        assert not result.valid
        assert _fields(result) == {
            "reservation_number": "required",
            "total_amount": "range",
            "quantity": "range",
            "guest_count": "range",
            "email": "format",
            "usage_date": "format",
            "usage_time": "pattern",
            "payment_status": "enum",
            "memo": "length",
        }

    def test_error_codes_are_known(self):
        result = validate_core({"reservation_number": None, "quantity": "x", "review_status": "?"})
        assert all(error.code in ERROR_CODES for error in result.errors)

    def test_status_enums_only_checked_when_present(self):
        assert validate_core({"reservation_number": "R1"}).valid

    def test_money_upper_bound(self):
        assert validate_core({"reservation_number": "R1", "total_amount": 9999999999.99}).valid
        result = validate_core({"reservation_number": "R1", "total_amount": 1e10, "child_unit_price": 1e30})
        assert _fields(result) == {"total_amount": "range", "child_unit_price": "range"}
        assert result.errors[0].params == {"maximum": 9999999999.99}


class TestExtrasValidation:
    """Rules derived from the active catalog."""

    def test_required_missing(self):
        result = validate_extras({}, DEFS)
        assert _fields(result) == {"extras.visa_number": "required"}

    def test_enum_pattern_and_format(self):
        result = validate_extras({
            "visa_number": "V1",
            "meal_plan": "dinner",
            "passport": "123",
            "arrival": "someday",
        }, DEFS)
        assert _fields(result) == {
            "extras.meal_plan": "enum",
            "extras.passport": "pattern",
            "extras.arrival": "format",
        }

    def test_invalid_definition_pattern_is_ignored(self):
        result = validate_extras({"visa_number": "V1", "bad_regex": "anything"}, DEFS)
        assert result.valid

    def test_inactive_definitions_skipped(self):
        defs = [{"key": "visa_number", "type": "string", "required": True, "is_active": False}]
        assert validate_extras({}, defs).valid


class TestReservationValidation:
    def test_combines_core_and_extras(self):
        record = normalize_reservation({"reservation_number": "R1", "email": "bad"}, DEFS)
        record["email"] = "bad"
        result = validate_reservation(record, DEFS)
        assert not result.valid
        assert {"email", "extras.visa_number"} <= set(_fields(result))
        assert result.error_dicts()[0].keys() >= {"field", "code", "message"}
        assert all(isinstance(message, str) for message in format_errors(result.errors))


class TestDataQuality:
    """Soft flags never block a write."""

    def test_missing_critical_and_required_extras(self):
        record = {"product_name": "City tour", "korean_name": "", "extras": {}}
        flags = check_data_quality(record, DEFS)
        assert flags["missing"] == ["korean_name", "extras.visa_number"]

    def test_ambiguous_placeholders(self):
        record = {
            "product_name": "TBD",
            "korean_name": "김철수",
            "memo": "???",
            "payment_status": "pending",
            "extras": {"visa_number": "n/a"},
        }
        flags = check_data_quality(record, DEFS)
        assert flags["ambiguous"] == ["product_name", "memo", "extras.visa_number"]
        assert flags["missing"] == []
