from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from bson import Decimal128, ObjectId


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> ObjectId | None:
    """Parse an id string, returning None for anything Mongo cannot address."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def date_to_bson(value: date | None) -> datetime | None:
    """BSON has no date type; dates are stored as midnight UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def bson_to_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def decimal_to_bson(value: Decimal | None) -> Decimal128 | None:
    if value is None:
        return None
    return Decimal128(str(value))


def bson_to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return Decimal(str(value))
