"""Normalization of raw reservation input.

Coerces strings coming from forms, parsers and imports into canonical typed
values. Every function here is pure and never raises: input that cannot be
interpreted degrades to ``None`` and it is the validator's job to decide
whether that is acceptable.

Canonical forms:
- dates: ``YYYY-MM-DD``
- times: ``HH:MM`` (24-hour)
- datetimes: ``YYYY-MM-DD HH:MM:SS``
- money: float rounded to 2 decimal places
"""

import hashlib
import math
import random
import re
import string
import time as _time
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

from reservation_engine.models.reservation import CORE_FIELDS, MONEY_FIELDS

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIME_RE = re.compile(r"^(\d{1,2}):?(\d{2})(?::\d{2})?$")
PHONE_STRIP_RE = re.compile(r"[^\d+\-\s()]")

CHANNEL_MAP = {
    "web": "웹",
    "mobile": "모바일",
    "app": "앱",
    "phone": "전화",
    "email": "이메일",
    "walk-in": "현장",
    "partner": "제휴사",
}
DEFAULT_CHANNEL = "웹"

PLATFORM_MAP = {
    "nol": "NOL",
    "klook": "KLOOK",
    "viator": "VIATOR",
    "getyourguide": "GETYOURGUIDE",
    "expedia": "EXPEDIA",
    "booking.com": "BOOKING",
    "agoda": "AGODA",
    "vasco": "VASCO",
}
DEFAULT_PLATFORM = "OTHER"

PAYMENT_STATUS_MAP = {
    "paid": "confirmed",
    "completed": "confirmed",
    "success": "confirmed",
    "confirmed": "confirmed",
    "pending": "pending",
    "waiting": "pending",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "refunded": "refunded",
    "failed": "failed",
    "error": "failed",
}

TRUE_STRINGS = {"true", "1", "yes", "y", "on"}

# Plain text columns: trimmed, blank becomes None
TEXT_FIELDS = (
    "confirmation_number", "product_name", "package_type", "korean_name", "kakao_id", "memo",
)

TWO_PLACES = Decimal("0.01")


# ===== SCALAR COERCIONS =====

def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_date(value: Any) -> Optional[str]:
    """Return ``YYYY-MM-DD`` or None."""
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date_parser.parse(str(value).strip()).date().isoformat()
    except (ValueError, OverflowError, TypeError):
        return None


def normalize_time(value: Any) -> Optional[str]:
    """Return ``HH:MM`` (00-23 / 00-59) or None."""
    if _blank(value):
        return None
    if isinstance(value, (time, datetime)):
        return f"{value.hour:02d}:{value.minute:02d}"
    cleaned = re.sub(r"[^\d:]", "", str(value))
    match = TIME_RE.match(cleaned)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def normalize_datetime(value: Any) -> Optional[str]:
    """Return ``YYYY-MM-DD HH:MM:SS`` or None."""
    if _blank(value):
        return None
    if not isinstance(value, datetime):
        if isinstance(value, date):
            value = datetime(value.year, value.month, value.day)
        else:
            try:
                value = date_parser.parse(str(value).strip())
            except (ValueError, OverflowError, TypeError):
                return None
    return value.strftime("%Y-%m-%d %H:%M:%S")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a money-like value into a 2-place Decimal."""
    if _blank(value) or isinstance(value, bool):
        return None
    try:
        if isinstance(value, str):
            value = value.strip().replace(",", "")
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    try:
        return number.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits to quantize; validation rejects the magnitude.
        return number


def normalize_money(value: Any) -> Optional[float]:
    """Return a float rounded to 2 places; negatives pass through."""
    number = to_decimal(value)
    return float(number) if number is not None else None


def _to_int(value: Any) -> Optional[int]:
    if _blank(value) or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def normalize_email(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    email = str(value).strip().lower()
    return email if EMAIL_RE.match(email) else None


def normalize_phone(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    phone = PHONE_STRIP_RE.sub("", str(value)).strip()
    return phone or None


def normalize_english_name(value: Any) -> Optional[str]:
    """Title-case each whitespace-separated word."""
    if _blank(value):
        return None
    return " ".join(part[:1].upper() + part[1:].lower() for part in str(value).split())


def normalize_text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    return str(value).strip()


def normalize_channel(value: Any) -> str:
    if _blank(value):
        return DEFAULT_CHANNEL
    channel = str(value).strip()
    return CHANNEL_MAP.get(channel.lower(), channel)


def normalize_platform(value: Any) -> str:
    if _blank(value):
        return DEFAULT_PLATFORM
    platform = str(value).strip()
    return PLATFORM_MAP.get(platform.lower(), platform.upper())


def normalize_payment_status(value: Any) -> str:
    if _blank(value):
        return "pending"
    status = str(value).strip()
    return PAYMENT_STATUS_MAP.get(status.lower(), status)


def normalize_review_status(value: Any) -> str:
    if _blank(value):
        return "needs_review"
    return str(value).strip().lower()


def generate_reservation_number() -> str:
    """``AUTO_<last 8 digits of ms timestamp>_<4 random chars>``."""
    timestamp = str(int(_time.time() * 1000))[-8:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"AUTO_{timestamp}_{suffix}"


def generate_origin_hash(raw_text: Optional[str]) -> Optional[str]:
    """SHA-256 hex digest of the trimmed raw source text."""
    if _blank(raw_text):
        return None
    return hashlib.sha256(str(raw_text).strip().encode("utf-8")).hexdigest()


def derive_unit_price(total_amount: Any, people_adult: Any) -> Optional[float]:
    """Per-adult price for a total, or None when it cannot be derived."""
    total = to_decimal(total_amount)
    adults = _to_int(people_adult)
    if total is None or total < 0 or not adults or adults <= 0:
        return None
    try:
        return float((total / adults).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return None


# ===== RECORD NORMALIZATION =====

def normalize_core(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize the fixed reservation attributes.

    Keys outside the fixed attribute set are ignored. The result always
    carries every fixed attribute.
    """
    raw = raw or {}
    data: Dict[str, Any] = {}

    data["reservation_number"] = normalize_text(raw.get("reservation_number")) or generate_reservation_number()
    data["channel"] = normalize_channel(raw.get("channel"))
    data["platform_name"] = normalize_platform(raw.get("platform_name"))

    for field in TEXT_FIELDS:
        data[field] = normalize_text(raw.get(field))

    for field in MONEY_FIELDS:
        data[field] = normalize_money(raw.get(field))

    adult = _to_int(raw.get("people_adult"))
    child = _to_int(raw.get("people_child"))
    infant = _to_int(raw.get("people_infant"))
    data["people_adult"] = 1 if adult is None else adult
    data["people_child"] = 0 if child is None else child
    data["people_infant"] = 0 if infant is None else infant

    quantity = _to_int(raw.get("quantity"))
    data["quantity"] = 1 if quantity is None else quantity

    guest_count = _to_int(raw.get("guest_count"))
    if guest_count is None or guest_count < 1:
        guest_count = data["people_adult"] + data["people_child"] + data["people_infant"]
    data["guest_count"] = guest_count

    data["english_first_name"] = normalize_english_name(raw.get("english_first_name"))
    data["english_last_name"] = normalize_english_name(raw.get("english_last_name"))
    data["email"] = normalize_email(raw.get("email"))
    data["phone"] = normalize_phone(raw.get("phone"))

    data["usage_date"] = normalize_date(raw.get("usage_date"))
    data["usage_time"] = normalize_time(raw.get("usage_time"))
    data["reservation_datetime"] = normalize_datetime(raw.get("reservation_datetime"))

    data["payment_status"] = normalize_payment_status(raw.get("payment_status"))
    data["review_status"] = normalize_review_status(raw.get("review_status"))
    data["code_issued"] = to_bool(raw.get("code_issued", False))

    if data["total_amount"] is not None and data["people_adult"] > 0:
        if data["adult_unit_price"] is None:
            data["adult_unit_price"] = derive_unit_price(data["total_amount"], data["people_adult"])
        if data["people_child"] > 0 and data["child_unit_price"] is None:
            data["child_unit_price"] = data["adult_unit_price"]

    return {field: data[field] for field in CORE_FIELDS}


def _defn(definition: Any, name: str, default: Any = None) -> Any:
    if isinstance(definition, dict):
        return definition.get(name, default)
    return getattr(definition, name, default)


def normalize_extras_value(field_type: str, value: Any) -> Any:
    """Normalize one extras value by declared type; None means drop it."""
    if value is None:
        return None
    if field_type == "number":
        if isinstance(value, bool):
            return None
        try:
            number = float(str(value).strip().replace(",", ""))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    if field_type == "boolean":
        return to_bool(value)
    if field_type == "date":
        return normalize_date(value)
    if field_type == "time":
        return normalize_time(value)
    if field_type == "datetime":
        return normalize_datetime(value)
    if field_type == "email":
        return normalize_email(value)
    if field_type == "phone":
        return normalize_phone(value)
    if field_type == "multiselect":
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple, set)):
            value = [value]
        items = [str(item).strip() for item in value if item is not None and str(item).strip()]
        return items or None
    if isinstance(value, str):
        return value.strip() or None
    return value


def normalize_extras(raw_extras: Optional[Dict[str, Any]], active_defs: Iterable[Any]) -> Dict[str, Any]:
    """Normalize extras against the active field definitions.

    Keys without an active definition are dropped silently.
    """
    if not isinstance(raw_extras, dict):
        return {}
    normalized: Dict[str, Any] = {}
    for definition in active_defs:
        if not _defn(definition, "is_active", True):
            continue
        key = _defn(definition, "key")
        if key not in raw_extras:
            continue
        value = normalize_extras_value(_defn(definition, "type", "string"), raw_extras[key])
        if value is not None:
            normalized[key] = value
    return normalized


def deep_merge(target: Optional[Dict[str, Any]], source: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively merge ``source`` into a copy of ``target``."""
    result = dict(target or {})
    for key, value in (source or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def normalize_reservation(raw: Dict[str, Any], active_defs: List[Any]) -> Dict[str, Any]:
    """Normalize a full payload: fixed attributes plus ``extras``."""
    core = normalize_core(raw)
    core["extras"] = normalize_extras((raw or {}).get("extras"), active_defs)
    return core
