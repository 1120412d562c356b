from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_billing_service, get_enrollment_billing, get_reconciler
from app.core.auth import get_current_user, require_roles
from app.models.billing import BillingStatus
from app.models.user import CurrentUser, UserRole
from app.schemas.billing import (
    BillingRecordCreate,
    BillingRecordResponse,
    BillingRecordUpdate,
    BillingStats,
    EnrollmentChargeRequest,
    MarkPaidRequest,
    ReconcileReport,
)
from app.services.billing_service import BillingService
from app.services.enrollment_service import EnrollmentBilling
from app.services.reconciler import BillingReconciler

router = APIRouter()

staff = require_roles(UserRole.ADMIN, UserRole.TEACHER)
admin = require_roles(UserRole.ADMIN)


@router.get("", response_model=List[BillingRecordResponse])
async def list_billing_records(
    month: Optional[str] = None,
    student_id: Optional[str] = None,
    course_id: Optional[str] = None,
    status: Optional[BillingStatus] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    """List records for a YYYY-MM month. Students only see their own."""
    return await service.list_records(month, current_user, student_id, course_id, status)


@router.get("/month/{month}", response_model=List[BillingRecordResponse])
async def list_billing_records_for_month(
    month: str,
    student_id: Optional[str] = None,
    course_id: Optional[str] = None,
    status: Optional[BillingStatus] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    return await service.list_records(month, current_user, student_id, course_id, status)


@router.get("/stats", response_model=BillingStats)
async def get_billing_stats(
    month: Optional[str] = None,
    student_id: Optional[str] = None,
    course_id: Optional[str] = None,
    current_user: CurrentUser = Depends(staff),
    service: BillingService = Depends(get_billing_service),
):
    """Counts and amounts per status for one month."""
    return await service.get_stats(month, student_id, course_id)


@router.post("/reconcile/{month}", response_model=ReconcileReport)
async def reconcile_month(
    month: str,
    current_user: CurrentUser = Depends(admin),
    reconciler: BillingReconciler = Depends(get_reconciler),
):
    """Create missing records for every eligible student in a month."""
    return await reconciler.ensure_monthly_records(month)


@router.post("/enrollment-charge", response_model=Optional[BillingRecordResponse])
async def charge_enrollment(
    payload: EnrollmentChargeRequest,
    current_user: CurrentUser = Depends(admin),
    enrollment: EnrollmentBilling = Depends(get_enrollment_billing),
    service: BillingService = Depends(get_billing_service),
):
    """First-month charge for a newly enrolled student (null if nothing was created)."""
    record = await enrollment.charge_enrollment(
        payload.student_id, payload.enrolled_at, prorate_first_month=payload.prorate
    )
    if record is None:
        return None
    return await service.get_record(record.id)


@router.get("/{record_id}", response_model=BillingRecordResponse)
async def get_billing_record(
    record_id: str,
    current_user: CurrentUser = Depends(staff),
    service: BillingService = Depends(get_billing_service),
):
    return await service.get_record(record_id)


@router.post("", response_model=BillingRecordResponse, status_code=status.HTTP_201_CREATED)
async def create_billing_record(
    payload: BillingRecordCreate,
    current_user: CurrentUser = Depends(admin),
    service: BillingService = Depends(get_billing_service),
):
    return await service.create_record(payload)


@router.patch("/{record_id}/mark-paid", response_model=BillingRecordResponse)
async def mark_billing_record_paid(
    record_id: str,
    payload: Optional[MarkPaidRequest] = None,
    current_user: CurrentUser = Depends(admin),
    service: BillingService = Depends(get_billing_service),
):
    return await service.mark_paid(record_id, payload or MarkPaidRequest())


@router.put("/{record_id}", response_model=BillingRecordResponse)
async def update_billing_record(
    record_id: str,
    payload: BillingRecordUpdate,
    current_user: CurrentUser = Depends(admin),
    service: BillingService = Depends(get_billing_service),
):
    """Update a record. The billing month cannot be changed."""
    return await service.update_record(record_id, payload)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_billing_record(
    record_id: str,
    current_user: CurrentUser = Depends(admin),
    service: BillingService = Depends(get_billing_service),
):
    await service.delete_record(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
