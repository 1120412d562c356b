"""
First-month proration.

A full month is a fixed number of classes (8 by default) whatever the
calendar length, so the price of one class is price / 8 and the first
charge is that times the classes left between enrollment and month end.
"""

import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.core.config import settings
from app.services.schedule_service import WEEKDAYS

CENTS = Decimal("0.01")


def count_occurrences(start: date, end: date, weekdays: Iterable[str]) -> int:
    """Count dates in [start, end] whose weekday name is in weekdays."""
    days = set(weekdays)
    count = 0
    current = start
    while current <= end:
        if WEEKDAYS[current.weekday()] in days:
            count += 1
        current += timedelta(days=1)
    return count


def estimate_occurrences(start: date, end: date, classes_per_week: int) -> int:
    """Expected classes in [start, end] for a group with no known weekdays."""
    remaining_days = (end - start).days + 1
    if remaining_days <= 0:
        return 0
    expected = Decimal(remaining_days * classes_per_week) / Decimal(7)
    return int(expected.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def prorate(
    full_month_price: Decimal,
    enrollment_date: date,
    weekdays: Iterable[str],
    classes_per_month: int | None = None,
    default_classes_per_week: int | None = None,
) -> Decimal:
    """
    Compute the prorated first charge.

    An empty weekday set falls back to the default weekly frequency
    (twice a week) spread evenly over the remaining days.
    """
    classes_per_month = classes_per_month or settings.CLASSES_PER_FULL_MONTH
    default_classes_per_week = default_classes_per_week or settings.DEFAULT_CLASSES_PER_WEEK

    if isinstance(enrollment_date, datetime):
        enrollment_date = enrollment_date.date()

    price_per_class = Decimal(full_month_price) / Decimal(classes_per_month)
    last_day = date(
        enrollment_date.year,
        enrollment_date.month,
        calendar.monthrange(enrollment_date.year, enrollment_date.month)[1],
    )

    weekdays = set(weekdays)
    if weekdays:
        occurrences = count_occurrences(enrollment_date, last_day, weekdays)
    else:
        occurrences = estimate_occurrences(enrollment_date, last_day, default_classes_per_week)

    return (price_per_class * occurrences).quantize(CENTS, rounding=ROUND_HALF_UP)
