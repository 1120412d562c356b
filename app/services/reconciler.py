"""
BillingReconciler - makes sure every eligible student has a record for a month.

Algorithm:
1. Load active students with group -> course resolved
2. Skip students without a group, a course, or a positive course price
3. Skip students that already have a record for the month (never touch it)
4. Create the missing record at the full course price
5. A uniqueness violation means a concurrent run won the race: count it as
   existing. Any other storage failure skips only that student.

Running it again for the same month creates nothing new.
"""

import logging
from decimal import Decimal
from typing import Optional

from app.models.billing import BillingRecord, BillingStatus
from app.models.roster import RosterStudent
from app.repositories.billing_repo import BillingStore
from app.repositories.roster_repo import RosterSource
from app.schemas.billing import ReconcileReport
from app.utils.billing_validation import (
    ErrorKind,
    StorageFailure,
    UniquenessViolation,
    month_bounds,
    validate_month,
)

logger = logging.getLogger(__name__)


def ineligibility_reason(student: RosterStudent) -> Optional[str]:
    """Why a student cannot be billed, or None when they can."""
    if not student.group_id:
        return "no group"
    if student.course is None:
        return "no course"
    if not student.course.has_positive_price():
        return "course has no price"
    return None


def new_monthly_record(student: RosterStudent, month: str, amount: Decimal) -> BillingRecord:
    """A pending record dated to the bounds of its month."""
    first_day, last_day = month_bounds(month)
    return BillingRecord(
        student_id=student.id,
        course_id=student.course.id if student.course else None,
        month=month,
        amount=amount,
        status=BillingStatus.PENDING,
        payment_date=first_day,
        due_date=last_day,
    )


async def create_absorbing_race(store: BillingStore, record: BillingRecord) -> Optional[BillingRecord]:
    """
    Insert a record, treating a lost (student_id, month) race as a no-op.

    Returns the created record, or None if another writer got there first.
    """
    try:
        return await store.create(record)
    except UniquenessViolation:
        logger.info(
            "Billing record for student %s in %s already exists (%s)",
            record.student_id, record.month, ErrorKind.RACE_ABSORBED.value,
        )
        return None


class BillingReconciler:
    """Fills in missing monthly billing records."""

    def __init__(self, store: BillingStore, roster: RosterSource):
        self.store = store
        self.roster = roster

    async def ensure_monthly_records(self, month: str) -> ReconcileReport:
        validate_month(month)
        report = ReconcileReport(month=month)

        students = await self.roster.list_active_students()
        logger.info("Reconciling billing for %s: %d active students", month, len(students))

        for student in students:
            reason = ineligibility_reason(student)
            if reason:
                logger.debug("Skipping student %s: %s", student.id, reason)
                report.skipped += 1
                continue

            existing = await self.store.find_by_student_and_month(student.id, month)
            if existing:
                report.existing += 1
                continue

            # Monthly reconciliation always charges the full price.
            record = new_monthly_record(student, month, student.course.price)
            try:
                created = await create_absorbing_race(self.store, record)
            except StorageFailure as exc:
                logger.error(
                    "Failed to create billing record for student %s, month %s: %s",
                    student.id, month, exc,
                )
                report.failed += 1
                continue

            if created is None:
                report.existing += 1
            else:
                report.created += 1
                logger.info(
                    "Created billing record for student %s (%s %s): amount %s, month %s",
                    student.id, student.first_name, student.last_name or "", created.amount, month,
                )

        logger.info(
            "Reconciliation for %s done: created=%d existing=%d skipped=%d failed=%d",
            month, report.created, report.existing, report.skipped, report.failed,
        )
        return report
