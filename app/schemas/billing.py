from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.billing import BillingStatus
from app.utils.billing_validation import blank_to_none


class BillingRecordCreate(BaseModel):
    """Administrative creation of a billing record."""
    student_id: str
    course_id: Optional[str] = None
    month: str
    amount: Decimal = Field(..., ge=0)
    payment_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=50)

    @field_validator("course_id", "payment_date", "due_date", "notes", "payment_method", mode="before")
    @classmethod
    def _blank_is_absent(cls, value):
        return blank_to_none(value)


class BillingRecordUpdate(BaseModel):
    """
    Partial update. month may be sent back unchanged; a different value is
    rejected by the ledger. An empty payment_date keeps the stored one.
    """
    month: Optional[str] = None
    course_id: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    status: Optional[BillingStatus] = None
    payment_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=50)

    @field_validator("month", "course_id", "payment_date", "due_date", "notes", "payment_method", mode="before")
    @classmethod
    def _blank_is_absent(cls, value):
        return blank_to_none(value)


class MarkPaidRequest(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class EnrollmentChargeRequest(BaseModel):
    """First-month charge when a student joins a group."""
    student_id: str
    enrolled_at: Optional[datetime] = None
    prorate: bool = True


class StudentSummary(BaseModel):
    id: str
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None


class CourseSummary(BaseModel):
    id: str
    name: str
    price: Optional[Decimal] = None


class BillingRecordResponse(BaseModel):
    id: str
    student_id: str
    course_id: Optional[str] = None
    month: str
    amount: Decimal
    status: BillingStatus
    payment_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    student: Optional[StudentSummary] = None
    course: Optional[CourseSummary] = None

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class BillingStats(BaseModel):
    """Month aggregates by status."""
    total: int = 0
    total_amount: Decimal = Field(Decimal("0"), serialization_alias="totalAmount")
    paid: int = 0
    paid_amount: Decimal = Field(Decimal("0"), serialization_alias="paidAmount")
    pending: int = 0
    pending_amount: Decimal = Field(Decimal("0"), serialization_alias="pendingAmount")
    overdue: int = 0
    overdue_amount: Decimal = Field(Decimal("0"), serialization_alias="overdueAmount")

    model_config = ConfigDict(populate_by_name=True)


class ReconcileReport(BaseModel):
    """Outcome of one reconciliation run."""
    month: str
    created: int = 0
    existing: int = 0
    skipped: int = 0
    failed: int = 0
