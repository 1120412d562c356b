"""
First-month billing at enrollment time.

This is where proration happens: a student joining a group mid-month pays
only for the classes left in that month. A student moving to another group
pays the full price of the new course. Monthly reconciliation never prorates.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.models.billing import BillingRecord
from app.repositories.billing_repo import BillingStore
from app.repositories.roster_repo import RosterSource
from app.services.proration import prorate
from app.services.reconciler import create_absorbing_race, ineligibility_reason, new_monthly_record
from app.services.schedule_service import ScheduleResolver
from app.utils.billing_validation import RecordNotFoundError, month_of

logger = logging.getLogger(__name__)


class EnrollmentBilling:
    def __init__(self, store: BillingStore, roster: RosterSource, schedules: ScheduleResolver | None = None):
        self.store = store
        self.roster = roster
        self.schedules = schedules or ScheduleResolver(roster)

    async def charge_enrollment(
        self,
        student_id: str,
        enrolled_at: Optional[datetime] = None,
        prorate_first_month: bool = True,
    ) -> Optional[BillingRecord]:
        """
        Create the billing record for the enrollment month.

        Returns the new record, or None when nothing was created: the
        student is not billable, or the month already has a record.
        """
        student = await self.roster.get_student(student_id)
        if student is None:
            raise RecordNotFoundError(f"Student {student_id} not found")

        reason = ineligibility_reason(student)
        if reason:
            logger.info("No enrollment charge for student %s: %s", student_id, reason)
            return None

        enrolled_at = enrolled_at or student.created_at or datetime.now(timezone.utc)
        month = month_of(enrolled_at)

        existing = await self.store.find_by_student_and_month(student.id, month)
        if existing is not None:
            logger.info("Student %s already has a billing record for %s", student.id, month)
            return None

        amount = student.course.price
        if prorate_first_month:
            weekdays = await self.schedules.resolve(student.group_id)
            amount = prorate(student.course.price, enrolled_at, weekdays)

        record = await create_absorbing_race(self.store, new_monthly_record(student, month, amount))
        if record is not None:
            logger.info(
                "Enrollment charge for student %s: amount %s, month %s (prorated=%s)",
                student.id, amount, month, prorate_first_month,
            )
        return record
