"""
Request payload validation.

Each validator takes the decoded JSON value, collects every problem it finds
and raises a single ValidationError listing them, or returns the cleaned data.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from .clock import as_utc
from .config import settings
from .errors import ValidationError

ORDER_ID_RE = re.compile(r"^[a-zA-Z0-9\-_]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
SETTING_KEY_RE = re.compile(r"^[a-zA-Z0-9_]+$")
URL_RE = re.compile(r"^https?://.+")
_UNSAFE_CHARS_RE = re.compile(r"[<>'\"&\x00]")


def sanitize_string(value: str, max_length: int = 255) -> str:
    return _UNSAFE_CHARS_RE.sub("", value.strip()[:max_length])


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_order_id(value: Any, errors: List[str]) -> Optional[str]:
    if not value:
        errors.append("Order ID is required")
        return None
    if not isinstance(value, str):
        errors.append("Order ID must be a string")
        return None
    # Over-long ids are rejected rather than silently truncated
    if len(value.strip()) > 50:
        errors.append("Order ID must be 50 characters or fewer")
        return None
    cleaned = sanitize_string(value, 50)
    before = len(errors)
    if len(cleaned) < 3:
        errors.append("Order ID must be at least 3 characters long")
    if not ORDER_ID_RE.match(cleaned):
        errors.append("Order ID can only contain letters, numbers, hyphens, and underscores")
    return cleaned if len(errors) == before else None


def _check_url(value: Any, label: str, errors: List[str]) -> Optional[str]:
    if not isinstance(value, str):
        errors.append(f"{label} must be a string")
        return None
    value = value.strip()
    if not URL_RE.match(value):
        errors.append(f"{label} must be a valid HTTP/HTTPS URL")
    if len(value) > 500:
        errors.append(f"{label} must be less than 500 characters")
    return value


def _parse_datetime(value: Any, errors: List[str]) -> Optional[datetime]:
    if not isinstance(value, str):
        errors.append("Expiration date must be an ISO 8601 string")
        return None
    try:
        # fromisoformat on older interpreters does not accept a trailing Z
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        errors.append("Expiration date must be an ISO 8601 string")
        return None
    return as_utc(parsed)


def validate_order_id(value: Any) -> str:
    errors: List[str] = []
    cleaned = _check_order_id(value, errors)
    if errors:
        raise ValidationError(errors)
    return cleaned


def _whole_number(value: Any) -> Optional[int]:
    if _is_int(value):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    # isdigit alone also accepts non-ASCII digits such as "²"
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        return int(value.strip())
    return None


def _check_internal_id(value: Any, label: str, errors: List[str]) -> Optional[int]:
    if isinstance(value, str):
        value = _whole_number(value)
    if not _is_int(value) or value <= 0:
        errors.append(f"{label} must be a positive integer")
        return None
    return value


def validate_id(value: Any, label: str = "ID") -> int:
    errors: List[str] = []
    if value is None or value == "":
        raise ValidationError([f"{label} is required"])
    cleaned = _check_internal_id(value, label, errors)
    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_order_data(data: Any, editing: bool = False) -> Dict[str, Any]:
    """Validate an order create (or edit, when ``editing``) payload."""
    if not isinstance(data, dict):
        raise ValidationError(["Request body must be a JSON object"])

    errors: List[str] = []
    cleaned: Dict[str, Any] = {}

    if editing:
        if data.get("id") is None:
            errors.append("Order internal ID is required")
        else:
            cleaned["id"] = _check_internal_id(data.get("id"), "Order internal ID", errors)
    else:
        cleaned["order_id"] = _check_order_id(data.get("order_id"), errors)

    product_ids = data.get("product_ids")
    if product_ids is None:
        errors.append("Product IDs are required")
    elif not isinstance(product_ids, list):
        errors.append("Product IDs must be an array")
    elif not product_ids:
        errors.append("At least one product ID is required")
    else:
        valid: List[int] = []
        for index, pid in enumerate(product_ids):
            if not _is_int(pid) or pid <= 0:
                errors.append(f"Product ID at index {index} must be a positive integer")
            elif pid not in valid:
                valid.append(pid)
        cleaned["product_ids"] = valid

    if data.get("expiration_days") is not None:
        days = data["expiration_days"]
        if not _is_int(days):
            errors.append("Expiration days must be an integer")
        elif days < 1 or days > 365:
            errors.append("Expiration days must be between 1 and 365")
        else:
            cleaned["expiration_days"] = days

    if data.get("expiration_date") is not None:
        if "expiration_days" in cleaned:
            errors.append("Provide either expiration days or an expiration date, not both")
        else:
            cleaned["expiration_date"] = _parse_datetime(data["expiration_date"], errors)

    for flag in ("one_time_use", "reset_claim_count"):
        if flag == "reset_claim_count" and not editing:
            continue
        if data.get(flag) is not None:
            if not isinstance(data[flag], bool):
                label = "One-time use" if flag == "one_time_use" else "Reset claim count"
                errors.append(f"{label} must be a boolean")
            else:
                cleaned[flag] = data[flag]

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_product_data(data: Any, editing: bool = False) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(["Request body must be a JSON object"])

    errors: List[str] = []
    cleaned: Dict[str, Any] = {}

    if editing:
        if data.get("id") is None:
            errors.append("Product ID is required")
        else:
            cleaned["id"] = _check_internal_id(data.get("id"), "Product ID", errors)

    name = data.get("name")
    if not name:
        errors.append("Product name is required")
    elif not isinstance(name, str):
        errors.append("Product name must be a string")
    else:
        cleaned["name"] = sanitize_string(name, 100)
        if len(cleaned["name"]) < 2:
            errors.append("Product name must be at least 2 characters long")

    description = data.get("description")
    if description is not None:
        if not isinstance(description, str):
            errors.append("Product description must be a string")
        else:
            cleaned["description"] = sanitize_string(description, 500)

    if not data.get("download_link"):
        errors.append("Download link is required")
    else:
        cleaned["download_link"] = _check_url(data["download_link"], "Download link", errors)

    if data.get("image_url") not in (None, ""):
        cleaned["image_url"] = _check_url(data["image_url"], "Image URL", errors)

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_settings_data(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(["Settings data must be an object"])

    errors: List[str] = []
    cleaned: Dict[str, Any] = {}
    for key, value in data.items():
        clean_key = sanitize_string(str(key), 50)
        if not SETTING_KEY_RE.match(clean_key):
            errors.append(f'Setting key "{key}" can only contain letters, numbers, and underscores')
            continue
        if not isinstance(value, (str, int, float, bool)):
            errors.append(f'Setting value for "{key}" must be a string, number, or boolean')
            continue
        cleaned[clean_key] = sanitize_string(value, 100) if isinstance(value, str) else value

    days = cleaned.get("default_expiration_days")
    if days is not None:
        days_int = _whole_number(days)
        if days_int is None or days_int < 0 or days_int > 365:
            errors.append("default_expiration_days must be an integer between 0 and 365")
        else:
            cleaned["default_expiration_days"] = days_int

    flag = cleaned.get("one_time_use_enabled")
    if flag is not None and not isinstance(flag, bool) and str(flag).lower() not in {"true", "false"}:
        errors.append("one_time_use_enabled must be a boolean")

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_admin_credentials(data: Any) -> Dict[str, str]:
    if not isinstance(data, dict):
        raise ValidationError(["Request body must be a JSON object"])

    errors: List[str] = []
    cleaned: Dict[str, str] = {}

    username = data.get("username")
    if not username:
        errors.append("Username is required")
    elif not isinstance(username, str):
        errors.append("Username must be a string")
    else:
        clean = sanitize_string(username, 50)
        if len(clean) < 3:
            errors.append("Username must be at least 3 characters long")
        if not USERNAME_RE.match(clean):
            errors.append("Username can only contain letters, numbers, and underscores")
        cleaned["username"] = clean

    password = data.get("password")
    if not password:
        errors.append("Password is required")
    elif not isinstance(password, str):
        errors.append("Password must be a string")
    else:
        # complexity rules apply when a password is set, not when one is checked
        cleaned["password"] = password

    if errors:
        raise ValidationError(errors)
    return cleaned


def check_new_password(password: Any, errors: List[str], label: str = "New password") -> None:
    if not password:
        errors.append(f"{label} is required")
    elif not isinstance(password, str):
        errors.append(f"{label} must be a string")
    elif len(password) < settings.PASSWORD_MIN_LENGTH:
        errors.append(f"{label} must be at least {settings.PASSWORD_MIN_LENGTH} characters long")
    elif len(password) > settings.PASSWORD_MAX_LENGTH:
        errors.append(f"{label} must be less than {settings.PASSWORD_MAX_LENGTH} characters")


def validate_password_change(data: Any) -> Dict[str, str]:
    if not isinstance(data, dict):
        raise ValidationError(["Request body must be a JSON object"])

    errors: List[str] = []
    current = data.get("currentPassword")
    new = data.get("newPassword")
    confirm = data.get("confirmPassword")

    if not current:
        errors.append("Current password is required")
    check_new_password(new, errors)
    if not confirm:
        errors.append("Password confirmation is required")
    elif new != confirm:
        errors.append("New password and confirmation do not match")
    if current and current == new:
        errors.append("New password must be different from current password")

    if errors:
        raise ValidationError(errors)
    return {"current_password": current, "new_password": new}
