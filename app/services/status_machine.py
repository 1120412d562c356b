"""
Billing status transitions.

pending -> paid happens only through mark-paid. refunded and overdue are set
by an administrator through a direct update; nothing moves a record to
overdue automatically when its due date passes.
"""

from app.models.billing import BillingRecord, BillingStatus
from app.utils.billing_validation import BillingValidationError

# States from which mark-paid is allowed.
PAYABLE_STATES = frozenset({BillingStatus.PENDING, BillingStatus.OVERDUE, BillingStatus.PAID})


def check_can_mark_paid(record: BillingRecord) -> None:
    if record.status not in PAYABLE_STATES:
        raise BillingValidationError(
            f"Cannot mark a {record.status.value} record as paid"
        )
