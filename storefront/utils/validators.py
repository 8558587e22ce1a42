from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from ..errors import ValidationError


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_positive_int(value: Any, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer", field=field)
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0", field=field)
    return number


def ensure_non_negative_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number", field=field)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number", field=field)
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be a whole number", field=field)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0", field=field)
    return number


def ensure_money(value: Any, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be >= 0", field=field)
    return amount


def require_fields(data: Optional[Mapping], fields: Iterable[str], label: str = "body") -> dict:
    if data is not None and not isinstance(data, Mapping):
        raise ValidationError(f"{label} must be an object", field=label)
    data = dict(data or {})
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required", field=name)
    return data


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes or ISO-8601 strings; aware values are converted to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
