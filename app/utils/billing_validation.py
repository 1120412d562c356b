"""Billing errors and month-key utilities."""
import calendar
import re
from datetime import date
from enum import Enum
from typing import Any, Dict, Tuple


MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RACE_ABSORBED = "race_absorbed"
    STORAGE_FAILURE = "storage_failure"


class BillingError(Exception):
    """Base for every error raised by the billing ledger."""
    kind: ErrorKind = ErrorKind.STORAGE_FAILURE


class BillingValidationError(BillingError):
    """Malformed month, missing required field or forbidden field mutation."""
    kind = ErrorKind.VALIDATION


class RecordNotFoundError(BillingError):
    kind = ErrorKind.NOT_FOUND


class DuplicateRecordError(BillingError):
    """A record for (student, month) already exists on direct creation."""
    kind = ErrorKind.CONFLICT


class UniquenessViolation(DuplicateRecordError):
    """
    Raised by ledger stores when the (student_id, month) unique index
    rejects a write. Surfaces as a conflict on direct creation; the
    reconciler catches exactly this type and absorbs it.
    """

    def __init__(self, student_id: str, month: str):
        super().__init__(f"Record for student {student_id} in {month} already exists")
        self.student_id = student_id
        self.month = month


class StorageFailure(BillingError):
    kind = ErrorKind.STORAGE_FAILURE


def validate_month(month: Any) -> str:
    """
    Validate a month key.

    Rules:
    - must be a string in the exact YYYY-MM form (no reinterpretation of "2026-2")
    - the month part must be 01..12
    """
    if not month or not isinstance(month, str):
        raise BillingValidationError("Parameter month is required (format: YYYY-MM)")
    if not MONTH_PATTERN.match(month):
        raise BillingValidationError(
            f"Invalid month format '{month}'. Expected YYYY-MM (for example 2026-02)"
        )
    month_number = int(month[5:7])
    if month_number < 1 or month_number > 12:
        raise BillingValidationError(f"Invalid month '{month}': month must be 01-12")
    return month


def month_bounds(month: str) -> Tuple[date, date]:
    """Return the first and last calendar day of a YYYY-MM month key."""
    validate_month(month)
    year, month_number = int(month[:4]), int(month[5:7])
    last_day = calendar.monthrange(year, month_number)[1]
    return date(year, month_number, 1), date(year, month_number, last_day)


def month_of(day: date) -> str:
    """Format the month key a date falls in."""
    return f"{day.year:04d}-{day.month:02d}"


def blank_to_none(value: Any) -> Any:
    """Treat empty or whitespace-only strings as absent."""
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def strip_month(update_data: Dict[str, Any], stored_month: str) -> Dict[str, Any]:
    """
    Drop the month key from an update payload.

    A month equal to the stored one is silently removed; a different one is
    rejected since the month identity is write-once.
    """
    updates = dict(update_data)
    month = blank_to_none(updates.pop("month", None))
    if month is not None and month != stored_month:
        raise BillingValidationError(
            "Field month cannot be changed. The record is bound to its billing month."
        )
    return updates
