import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.models.billing import BillingRecord, BillingStatus
from app.models.roster import CourseInfo, RosterStudent
from app.models.user import CurrentUser
from app.repositories.billing_repo import BillingStore
from app.repositories.roster_repo import RosterSource
from app.schemas.billing import (
    BillingRecordCreate,
    BillingRecordResponse,
    BillingRecordUpdate,
    BillingStats,
    CourseSummary,
    MarkPaidRequest,
    StudentSummary,
)
from app.services.reconciler import BillingReconciler
from app.services.status_machine import check_can_mark_paid
from app.utils.billing_validation import (
    DuplicateRecordError,
    RecordNotFoundError,
    UniquenessViolation,
    month_bounds,
    validate_month,
)

logger = logging.getLogger(__name__)


def compute_stats(records: Iterable[BillingRecord]) -> BillingStats:
    """Count and sum amounts per status. Refunded records count only toward the totals."""
    stats = BillingStats()
    for record in records:
        amount = Decimal(record.amount)
        stats.total += 1
        stats.total_amount += amount
        if record.status == BillingStatus.PAID:
            stats.paid += 1
            stats.paid_amount += amount
        elif record.status == BillingStatus.PENDING:
            stats.pending += 1
            stats.pending_amount += amount
        elif record.status == BillingStatus.OVERDUE:
            stats.overdue += 1
            stats.overdue_amount += amount
    return stats


def _today() -> date:
    return datetime.now(timezone.utc).date()


class BillingService:
    """Month-scoped reads, stats and administrative writes over the ledger."""

    def __init__(self, store: BillingStore, roster: RosterSource, reconciler: BillingReconciler | None = None):
        self.store = store
        self.roster = roster
        self.reconciler = reconciler or BillingReconciler(store, roster)

    async def list_records(
        self,
        month: str,
        caller: CurrentUser,
        student_id: Optional[str] = None,
        course_id: Optional[str] = None,
        status: Optional[BillingStatus] = None,
    ) -> List[BillingRecordResponse]:
        """
        List records of one month, filling gaps for that month first.

        Filtering is by the month key only; payment_date is not a billing
        period and changes on mark-paid.
        """
        validate_month(month)
        await self.reconciler.ensure_monthly_records(month)

        if caller.is_student():
            own = await self._caller_student(caller)
            if own is None:
                return []
            student_id = own.id

        records = await self.store.list_by_filter(
            month=month, student_id=student_id, course_id=course_id, status=status
        )
        students = await self.roster.get_students(r.student_id for r in records)
        courses = await self.roster.get_courses(r.course_id for r in records if r.course_id)

        def sort_key(record: BillingRecord):
            student = students.get(record.student_id)
            if student is None:
                return ("", "")
            return ((student.last_name or "").casefold(), student.first_name.casefold())

        records.sort(key=sort_key)
        return [self._to_response(r, students, courses) for r in records]

    async def get_stats(
        self,
        month: str,
        student_id: Optional[str] = None,
        course_id: Optional[str] = None,
    ) -> BillingStats:
        validate_month(month)
        await self.reconciler.ensure_monthly_records(month)
        records = await self.store.list_by_filter(month=month, student_id=student_id, course_id=course_id)
        return compute_stats(records)

    async def get_record(self, record_id: str) -> BillingRecordResponse:
        record = await self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError("Billing record not found")
        return await self._with_associations(record)

    async def create_record(self, payload: BillingRecordCreate) -> BillingRecordResponse:
        month = validate_month(payload.month)

        student = await self.roster.get_student(payload.student_id)
        if student is None:
            raise RecordNotFoundError("Student not found")
        course_id = payload.course_id or (student.course.id if student.course else None)

        existing = await self.store.find_by_student_and_month(payload.student_id, month)
        if existing is not None:
            raise DuplicateRecordError(
                f"Billing record for month {month} already exists for this student"
            )

        record = BillingRecord(
            student_id=payload.student_id,
            course_id=course_id,
            month=month,
            amount=payload.amount,
            status=BillingStatus.PENDING,
            payment_date=payload.payment_date or month_bounds(month)[0],
            due_date=payload.due_date,
            notes=payload.notes,
            payment_method=payload.payment_method,
        )
        try:
            created = await self.store.create(record)
        except UniquenessViolation as exc:
            raise DuplicateRecordError(
                f"Billing record for month {month} already exists for this student"
            ) from exc

        logger.info("Created billing record %s for student %s, month %s", created.id, created.student_id, month)
        return await self._with_associations(created)

    async def update_record(self, record_id: str, payload: BillingRecordUpdate) -> BillingRecordResponse:
        update_data = payload.model_dump(exclude_unset=True)

        # payment_date is required; an empty value keeps the stored date
        if update_data.get("payment_date") is None:
            update_data.pop("payment_date", None)
        for field in ("amount", "status"):
            if field in update_data and update_data[field] is None:
                update_data.pop(field)

        updated = await self.store.update(record_id, update_data)
        if updated is None:
            raise RecordNotFoundError("Billing record not found")
        return await self._with_associations(updated)

    async def mark_paid(self, record_id: str, payload: MarkPaidRequest) -> BillingRecordResponse:
        record = await self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError("Billing record not found")
        check_can_mark_paid(record)

        updated = await self.store.mark_paid(
            record_id,
            paid_on=_today(),
            payment_method=payload.payment_method,
            notes=payload.notes,
        )
        if updated is None:
            raise RecordNotFoundError("Billing record not found")
        logger.info("Billing record %s marked paid", record_id)
        return await self._with_associations(updated)

    async def delete_record(self, record_id: str) -> None:
        deleted = await self.store.delete(record_id)
        if not deleted:
            raise RecordNotFoundError("Billing record not found")
        logger.info("Deleted billing record %s", record_id)

    # ===== PRIVATE HELPERS =====

    async def _caller_student(self, caller: CurrentUser) -> Optional[RosterStudent]:
        if not caller.email:
            return None
        return await self.roster.find_student_by_email(caller.email)

    async def _with_associations(self, record: BillingRecord) -> BillingRecordResponse:
        students = await self.roster.get_students([record.student_id])
        courses = await self.roster.get_courses([record.course_id] if record.course_id else [])
        return self._to_response(record, students, courses)

    @staticmethod
    def _to_response(
        record: BillingRecord,
        students: Dict[str, RosterStudent],
        courses: Dict[str, CourseInfo],
    ) -> BillingRecordResponse:
        student = students.get(record.student_id)
        course = courses.get(record.course_id) if record.course_id else None
        return BillingRecordResponse(
            **record.model_dump(),
            student=StudentSummary(
                id=student.id,
                first_name=student.first_name,
                last_name=student.last_name,
                email=student.email,
            ) if student else None,
            course=CourseSummary(id=course.id, name=course.name, price=course.price) if course else None,
        )
