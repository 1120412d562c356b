from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.services.enrollment_service import EnrollmentBilling
from app.utils.billing_validation import RecordNotFoundError

ENROLLED_AT = datetime(2026, 2, 9, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_first_month_is_prorated(store, roster):
    """Joining mid-month charges for the remaining classes."""
    # group g-1 meets Monday and Wednesday (stored in Russian and English)
    record = await EnrollmentBilling(store, roster).charge_enrollment("s-1", ENROLLED_AT)

    assert record.month == "2026-02"
    assert record.amount == Decimal("600.00")
    assert record.payment_date == date(2026, 2, 1)
    assert record.due_date == date(2026, 2, 28)


@pytest.mark.asyncio
async def test_defaults_to_student_creation_time(store, roster):
    """Without an enrollment date the student's creation time is used."""
    record = await EnrollmentBilling(store, roster).charge_enrollment("s-3")

    assert record.month == "2026-02"
    assert record.amount == Decimal("600.00")


@pytest.mark.asyncio
async def test_empty_schedule_uses_twice_weekly_fallback(store, roster):
    """A group without a schedule prorates as twice weekly."""
    # group g-2 has no schedule: Feb 9..28 is 20 days -> 20 * 2 / 7 = 5.7 -> 6 classes
    record = await EnrollmentBilling(store, roster).charge_enrollment("s-2", ENROLLED_AT)

    assert record.amount == Decimal("750.00")


@pytest.mark.asyncio
async def test_group_change_charges_full_price(store, roster):
    """Without proration the full price is charged."""
    record = await EnrollmentBilling(store, roster).charge_enrollment(
        "s-1", ENROLLED_AT, prorate_first_month=False
    )

    assert record.amount == Decimal("800")


@pytest.mark.asyncio
async def test_existing_month_record_is_kept(store, roster):
    """An existing record for the month is left alone."""
    billing = EnrollmentBilling(store, roster)
    first = await billing.charge_enrollment("s-1", ENROLLED_AT)

    second = await billing.charge_enrollment("s-1", datetime(2026, 2, 20, tzinfo=timezone.utc))

    assert second is None
    assert list(store.records.values()) == [first]


@pytest.mark.asyncio
async def test_unbillable_student_gets_nothing(store, roster):
    """Students with no group or a free course are not charged."""
    billing = EnrollmentBilling(store, roster)

    assert await billing.charge_enrollment("s-4", ENROLLED_AT) is None
    assert await billing.charge_enrollment("s-5", ENROLLED_AT) is None
    assert store.records == {}


@pytest.mark.asyncio
async def test_unknown_student(store, roster):
    """An unknown student is not found."""
    with pytest.raises(RecordNotFoundError):
        await EnrollmentBilling(store, roster).charge_enrollment("s-missing", ENROLLED_AT)
