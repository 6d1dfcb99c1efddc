"""Validation of normalized reservation data.

Two tiers:

* hard validation (``validate_reservation``) rejects a write and returns
  every violation at once as a list of ``ValidationIssue``;
* data-quality flags (``check_data_quality``) never block a write, they mark
  records with missing business-critical values or placeholder text so an
  operator can review them.

Nothing in this module raises on bad input.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from reservation_engine.models.reservation import (
    CORE_FIELDS,
    MONEY_FIELDS,
    PAYMENT_STATUSES,
    REVIEW_STATUSES,
)
from reservation_engine.services.normalize_service import EMAIL_RE

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
PHONE_PATTERN = re.compile(r"^[+]?[0-9\s\-\(\)]+$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

AMBIGUOUS_PATTERNS = [
    re.compile(r"^(tbd|tba|pending|unknown|n/a|na|null|undefined)$", re.IGNORECASE),
    re.compile(r"^[?]+$"),
    re.compile(r"^-+$"),
    re.compile(r"^\.+$"),
]

QUALITY_REQUIRED_FIELDS = ("product_name", "korean_name")

# Enum columns hold legal values such as "pending"; never scan them for placeholders
QUALITY_SKIP_FIELDS = {"payment_status", "review_status"}

MAX_LENGTHS = {
    "reservation_number": 100,
    "confirmation_number": 100,
    "channel": 50,
    "platform_name": 50,
    "product_name": 255,
    "package_type": 100,
    "korean_name": 100,
    "english_first_name": 50,
    "english_last_name": 50,
    "email": 255,
    "phone": 50,
    "kakao_id": 100,
    "memo": 1000,
}

MIN_COUNTS = {
    "quantity": 1,
    "guest_count": 1,
    "people_adult": 0,
    "people_child": 0,
    "people_infant": 0,
}

# Largest value a Numeric(12, 2) money column holds
MAX_MONEY = 9999999999.99

ERROR_CODES = ("required", "type", "format", "pattern", "enum", "range", "length")


@dataclass
class ValidationIssue:
    """A single violation: where, which rule, and a readable message."""

    field: str
    code: str
    message: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {"field": self.field, "code": self.code, "message": self.message}
        if self.params:
            data["params"] = self.params
        return data


@dataclass
class ValidationResult:
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    core_data: Dict[str, Any] = field(default_factory=dict)
    extras_data: Dict[str, Any] = field(default_factory=dict)

    def error_dicts(self) -> List[Dict[str, Any]]:
        return [error.to_dict() for error in self.errors]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _valid_date(value: Any) -> bool:
    if isinstance(value, date) and not isinstance(value, datetime):
        return True
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _valid_datetime(value: Any) -> bool:
    if isinstance(value, datetime):
        return True
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return False
    return True


def _defn(definition: Any, name: str, default: Any = None) -> Any:
    if isinstance(definition, dict):
        return definition.get(name, default)
    return getattr(definition, name, default)


# ===== FIXED FIELDS =====

def validate_core(data: Dict[str, Any]) -> ValidationResult:
    """Check normalized fixed attributes against their column constraints."""
    errors: List[ValidationIssue] = []

    if _is_blank(data.get("reservation_number")):
        errors.append(ValidationIssue("reservation_number", "required", "reservation_number is required"))

    for name, limit in MAX_LENGTHS.items():
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            errors.append(ValidationIssue(name, "type", f"{name} must be a string"))
        elif len(value) > limit:
            errors.append(ValidationIssue(
                name, "length", f"{name} must be at most {limit} characters", {"max_length": limit},
            ))

    for name in MONEY_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not _is_number(value):
            errors.append(ValidationIssue(name, "type", f"{name} must be a number"))
        elif value < 0:
            errors.append(ValidationIssue(name, "range", f"{name} must be at least 0", {"minimum": 0}))
        elif value > MAX_MONEY:
            errors.append(ValidationIssue(
                name, "range", f"{name} must be at most {MAX_MONEY:.2f}", {"maximum": MAX_MONEY},
            ))

    for name, minimum in MIN_COUNTS.items():
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(ValidationIssue(name, "type", f"{name} must be an integer"))
        elif value < minimum:
            errors.append(ValidationIssue(
                name, "range", f"{name} must be at least {minimum}", {"minimum": minimum},
            ))

    headcounts = [data.get(n) for n in ("people_adult", "people_child", "people_infant")]
    guest_count = data.get("guest_count")
    if isinstance(guest_count, int) and all(isinstance(n, int) and n >= 0 for n in headcounts):
        total_people = sum(headcounts)
        if guest_count < total_people:
            errors.append(ValidationIssue(
                "guest_count", "range",
                f"guest_count must be at least the number of people ({total_people})",
                {"minimum": total_people},
            ))

    email = data.get("email")
    if email is not None and not (isinstance(email, str) and EMAIL_RE.match(email)):
        errors.append(ValidationIssue("email", "format", "email must be a valid email address"))

    if data.get("usage_date") is not None and not _valid_date(data["usage_date"]):
        errors.append(ValidationIssue("usage_date", "format", "usage_date must be a date (YYYY-MM-DD)"))

    usage_time = data.get("usage_time")
    if usage_time is not None and not (isinstance(usage_time, str) and TIME_PATTERN.match(usage_time)):
        errors.append(ValidationIssue("usage_time", "pattern", "usage_time must be HH:MM"))

    if data.get("reservation_datetime") is not None and not _valid_datetime(data["reservation_datetime"]):
        errors.append(ValidationIssue(
            "reservation_datetime", "format", "reservation_datetime must be a date-time",
        ))

    if "payment_status" in data and data["payment_status"] not in PAYMENT_STATUSES:
        errors.append(ValidationIssue(
            "payment_status", "enum", f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
            {"allowed": PAYMENT_STATUSES},
        ))
    if "review_status" in data and data["review_status"] not in REVIEW_STATUSES:
        errors.append(ValidationIssue(
            "review_status", "enum", f"review_status must be one of: {', '.join(REVIEW_STATUSES)}",
            {"allowed": REVIEW_STATUSES},
        ))

    if "code_issued" in data and not isinstance(data["code_issued"], bool):
        errors.append(ValidationIssue("code_issued", "type", "code_issued must be a boolean"))

    return ValidationResult(valid=not errors, errors=errors, core_data=data)


# ===== DYNAMIC FIELDS =====

def _check_extra(key: str, field_type: str, value: Any, options: Optional[list]) -> Optional[ValidationIssue]:
    path = f"extras.{key}"
    if field_type == "number":
        if not _is_number(value):
            return ValidationIssue(path, "type", f"{path} must be a number")
    elif field_type == "boolean":
        if not isinstance(value, bool):
            return ValidationIssue(path, "type", f"{path} must be a boolean")
    elif field_type == "date":
        if not _valid_date(value):
            return ValidationIssue(path, "format", f"{path} must be a date (YYYY-MM-DD)")
    elif field_type == "time":
        if not (isinstance(value, str) and TIME_PATTERN.match(value)):
            return ValidationIssue(path, "pattern", f"{path} must be HH:MM")
    elif field_type == "datetime":
        if not _valid_datetime(value):
            return ValidationIssue(path, "format", f"{path} must be a date-time")
    elif field_type == "email":
        if not (isinstance(value, str) and EMAIL_RE.match(value)):
            return ValidationIssue(path, "format", f"{path} must be a valid email address")
    elif field_type == "phone":
        if not (isinstance(value, str) and PHONE_PATTERN.match(value)):
            return ValidationIssue(path, "pattern", f"{path} must be a phone number")
    elif field_type == "select":
        if options and value not in options:
            return ValidationIssue(
                path, "enum", f"{path} must be one of: {', '.join(map(str, options))}", {"allowed": options},
            )
    elif field_type == "multiselect":
        if not isinstance(value, list):
            return ValidationIssue(path, "type", f"{path} must be a list")
        if options:
            invalid = [item for item in value if item not in options]
            if invalid:
                return ValidationIssue(
                    path, "enum", f"{path} contains values not allowed: {', '.join(map(str, invalid))}",
                    {"allowed": options, "invalid": invalid},
                )
    else:
        if not isinstance(value, str):
            return ValidationIssue(path, "type", f"{path} must be a string")
    return None


def validate_extras(extras: Dict[str, Any], active_defs: Iterable[Any]) -> ValidationResult:
    """Check extras against the live catalog of active field definitions."""
    extras = extras or {}
    errors: List[ValidationIssue] = []

    for definition in active_defs:
        if not _defn(definition, "is_active", True):
            continue
        key = _defn(definition, "key")
        path = f"extras.{key}"
        value = extras.get(key)

        if _is_blank(value):
            if _defn(definition, "required", False):
                errors.append(ValidationIssue(path, "required", f"{path} is required"))
            continue

        issue = _check_extra(key, _defn(definition, "type", "string"), value, _defn(definition, "options"))
        if issue:
            errors.append(issue)
            continue

        pattern = _defn(definition, "pattern")
        if pattern and isinstance(value, str):
            try:
                matched = re.search(pattern, value) is not None
            except re.error:
                matched = True
            if not matched:
                errors.append(ValidationIssue(
                    path, "pattern", f"{path} does not match the required pattern", {"pattern": pattern},
                ))

    return ValidationResult(valid=not errors, errors=errors, extras_data=extras)


def validate_reservation(record: Dict[str, Any], active_defs: List[Any]) -> ValidationResult:
    """Validate a normalized record (fixed attributes plus ``extras``)."""
    core_data = {name: record.get(name) for name in CORE_FIELDS if name in record}
    extras_data = record.get("extras") or {}

    core_result = validate_core(core_data)
    extras_result = validate_extras(extras_data, active_defs)
    errors = core_result.errors + extras_result.errors
    return ValidationResult(
        valid=not errors,
        errors=errors,
        core_data=core_data,
        extras_data=extras_data,
    )


# ===== DATA QUALITY =====

def _is_ambiguous(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    return any(pattern.match(stripped) for pattern in AMBIGUOUS_PATTERNS)


def check_data_quality(record: Dict[str, Any], active_defs: Iterable[Any]) -> Dict[str, List[str]]:
    """Compute ``{"missing": [...], "ambiguous": [...]}`` for a record."""
    flags: Dict[str, List[str]] = {"missing": [], "ambiguous": []}
    extras = record.get("extras") or {}

    for name in QUALITY_REQUIRED_FIELDS:
        if _is_blank(record.get(name)):
            flags["missing"].append(name)

    for definition in active_defs:
        if _defn(definition, "required", False) and _defn(definition, "is_active", True):
            key = _defn(definition, "key")
            if _is_blank(extras.get(key)):
                flags["missing"].append(f"extras.{key}")

    for name, value in record.items():
        if name == "extras" or name in QUALITY_SKIP_FIELDS:
            continue
        if _is_ambiguous(value):
            flags["ambiguous"].append(name)

    for key, value in extras.items():
        if _is_ambiguous(value):
            flags["ambiguous"].append(f"extras.{key}")

    return flags


def format_errors(errors: Iterable[ValidationIssue]) -> List[str]:
    """Human-readable messages for a list of issues."""
    return [error.message for error in errors]
