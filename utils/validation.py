import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from models.user import ROLES
from utils.errors import ValidationError

_PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]+$")

SLOT_FIELDS = {
    "location_level": 20,
    "location_tower": 60,
    "location_landmark": 120,
    "notes": 2000,
}
SLOT_IMMUTABLE = {"id", "owner_id", "tenant_code", "community_code", "status", "booking_seq", "is_active"}

PROFILE_ADMIN_FIELDS = {"unit_number", "role"}
PROFILE_IMMUTABLE = {"id", "tenant_code", "community_code", "is_active"}

CENTS = Decimal("0.01")


def parse_datetime(value, field: str) -> datetime:
    """ISO 8601 string or datetime -> naive UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(
                f"Invalid {field}. Use ISO e.g. 2026-01-20T18:00:00Z",
                details={field: "invalid datetime"},
            )
    else:
        raise ValidationError(f"{field} is required", details={field: "required"})

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _optional_datetime(data: dict, field: str):
    value = data.get(field)
    if value is None or value == "":
        return None
    return parse_datetime(value, field)


def parse_price(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("Invalid price_per_hour", details={"price_per_hour": "not a number"})
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Invalid price_per_hour", details={"price_per_hour": "not a number"})
    if not price.is_finite() or price < 0:
        raise ValidationError("Invalid price_per_hour", details={"price_per_hour": "must be >= 0"})
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)


def _clean_text(data: dict, field: str, max_len: int, required: bool):
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {field}", details={field: "must be a string"})
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if len(value) > max_len:
        raise ValidationError(f"Invalid {field}", details={field: f"max {max_len} characters"})
    return value or None


def _reject_keys(data: dict, forbidden, message: str):
    bad = sorted(k for k in data if k in forbidden)
    if bad:
        raise ValidationError(message, details={k: "not writable" for k in bad})


def validate_slot_attrs(data, partial: bool = False, current=None) -> dict:
    """Clean slot attributes. ``current`` is the slot being edited (partial updates)."""
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")
    _reject_keys(data, SLOT_IMMUTABLE, "Slot ownership, community and status cannot be set")

    out = {}
    for field in ("location_level", "location_tower"):
        if not partial or field in data:
            out[field] = _clean_text(data, field, SLOT_FIELDS[field], required=True)
    for field in ("location_landmark", "notes"):
        if field in data:
            out[field] = _clean_text(data, field, SLOT_FIELDS[field], required=False)

    if "price_per_hour" in data:
        out["price_per_hour"] = parse_price(data.get("price_per_hour"))

    for field in ("available_from", "available_until"):
        if field in data:
            out[field] = _optional_datetime(data, field)

    window_from = out.get("available_from", getattr(current, "available_from", None))
    window_until = out.get("available_until", getattr(current, "available_until", None))
    if window_from is not None and window_until is not None and window_until <= window_from:
        raise ValidationError(
            "available_until must be after available_from",
            details={"available_until": "must be after available_from"},
        )
    return out


def validate_registration(data) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")
    out = {
        "display_name": _clean_text(data, "display_name", 120, required=True),
        "unit_number": _clean_text(data, "unit_number", 20, required=True),
        "phone": _clean_text(data, "phone", 30, required=False),
        "email": _clean_text(data, "email", 255, required=False),
    }
    _check_phone(out["phone"])
    _check_email(out["email"])
    return out


def validate_profile_attrs(data, allow_admin_fields: bool) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")
    _reject_keys(data, PROFILE_IMMUTABLE, "Identity and community cannot be changed")
    if not allow_admin_fields:
        _reject_keys(data, PROFILE_ADMIN_FIELDS, "Only an administrator can change these fields")

    out = {}
    if "display_name" in data:
        out["display_name"] = _clean_text(data, "display_name", 120, required=True)
    if "phone" in data:
        out["phone"] = _clean_text(data, "phone", 30, required=False)
        _check_phone(out["phone"])
    if "email" in data:
        out["email"] = _clean_text(data, "email", 255, required=False)
        _check_email(out["email"])
    if "unit_number" in data:
        out["unit_number"] = _clean_text(data, "unit_number", 20, required=True)
    if "role" in data:
        if data.get("role") not in ROLES:
            raise ValidationError("Invalid role", details={"role": f"one of {', '.join(ROLES)}"})
        out["role"] = data["role"]
    return out


def _check_phone(phone):
    if phone and not _PHONE_RE.match(phone):
        raise ValidationError("Invalid phone number format", details={"phone": "invalid format"})


def _check_email(email):
    if email and ("@" not in email or len(email) > 255):
        raise ValidationError("Invalid email", details={"email": "invalid format"})


def parse_slot_filters(args) -> dict:
    filters = {}
    for key in ("level", "tower"):
        value = (args.get(key) or "").strip()
        if value:
            filters[key] = value

    start = args.get("start")
    end = args.get("end")
    if start or end:
        if not (start and end):
            raise ValidationError("start and end must be given together")
        filters["start"] = parse_datetime(start, "start")
        filters["end"] = parse_datetime(end, "end")
        if filters["end"] <= filters["start"]:
            raise ValidationError("end must be after start", details={"end": "must be after start"})

    max_price = args.get("max_price")
    if max_price not in (None, ""):
        filters["max_price"] = parse_price(max_price)
    return filters
