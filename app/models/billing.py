"""
Billing record model - one student's tuition obligation for one month.

Design principles:
- One record per (student_id, month), enforced by a unique index
- month is a YYYY-MM string and is write-once
- amount is a non-negative Decimal fixed at creation
- Status: pending -> paid (mark-paid); refunded/overdue only via update
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.base import _utcnow


class BillingStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    REFUNDED = "refunded"


class BillingRecord(BaseModel):
    """
    Ledger entry: student owes amount for month.

    Invariants:
    - (student_id, month) is unique across the ledger
    - month and student_id never change after creation
    - amount >= 0
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, validation_alias="_id")

    # References
    student_id: str
    course_id: Optional[str] = None

    # Billing period and money
    month: str
    amount: Decimal = Field(ge=0)
    status: BillingStatus = BillingStatus.PENDING

    # Dates
    payment_date: date
    due_date: Optional[date] = None

    notes: Optional[str] = None
    payment_method: Optional[str] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def is_paid(self) -> bool:
        return self.status == BillingStatus.PAID
