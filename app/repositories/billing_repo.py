"""
BillingRepository - persistence of monthly billing records.

Storage rules:
1. (student_id, month) is unique, backed by a unique compound index
2. month and student_id are write-once
3. Duplicate-key rejections surface as UniquenessViolation, never as
   driver errors, so callers can catch the race structurally
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.models.base import (
    bson_to_date,
    bson_to_decimal,
    date_to_bson,
    decimal_to_bson,
    to_object_id,
)
from app.models.billing import BillingRecord, BillingStatus
from app.utils.billing_validation import (
    BillingValidationError,
    StorageFailure,
    UniquenessViolation,
    strip_month,
)

logger = logging.getLogger(__name__)

PAYMENTS_COLLECTION = "payments"
STUDENT_MONTH_INDEX = "student_id_month_unique"

# Fields the ledger never lets an update touch.
IMMUTABLE_FIELDS = ("_id", "id", "student_id", "created_at")


class BillingStore(ABC):
    """Storage port for billing records."""

    @abstractmethod
    async def find_by_student_and_month(self, student_id: str, month: str) -> Optional[BillingRecord]:
        ...

    @abstractmethod
    async def get(self, record_id: str) -> Optional[BillingRecord]:
        ...

    @abstractmethod
    async def create(self, record: BillingRecord) -> BillingRecord:
        """Insert a record. Raises UniquenessViolation on a duplicate (student_id, month)."""

    @abstractmethod
    async def update(self, record_id: str, update_data: Dict[str, Any]) -> Optional[BillingRecord]:
        """Apply field updates. Raises BillingValidationError on a month change."""

    @abstractmethod
    async def mark_paid(
        self,
        record_id: str,
        paid_on: date,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[BillingRecord]:
        ...

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        ...

    @abstractmethod
    async def list_by_filter(
        self,
        month: Optional[str] = None,
        student_id: Optional[str] = None,
        course_id: Optional[str] = None,
        status: Optional[BillingStatus] = None,
    ) -> List[BillingRecord]:
        ...


def guard_update(current: BillingRecord, update_data: Dict[str, Any]) -> Dict[str, Any]:
    """Strip write-once fields from an update payload."""
    updates = strip_month(update_data, current.month)
    student_id = updates.get("student_id")
    if student_id is not None and student_id != current.student_id:
        raise BillingValidationError("Field student_id cannot be changed")
    for field in IMMUTABLE_FIELDS:
        updates.pop(field, None)
    return updates


class BillingRepository(BillingStore):
    """MongoDB implementation of the billing ledger."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db[PAYMENTS_COLLECTION]

    async def ensure_indexes(self) -> None:
        """
        Create the ledger indexes.

        If legacy data already holds duplicate (student_id, month) pairs the
        unique index cannot be built; the duplicates are logged so they can
        be cleaned up, and the service keeps running on the plain indexes.
        """
        await self.collection.create_index("month")
        await self.collection.create_index([("course_id", ASCENDING), ("month", ASCENDING)])
        try:
            await self.collection.create_index(
                [("student_id", ASCENDING), ("month", ASCENDING)],
                unique=True,
                name=STUDENT_MONTH_INDEX,
            )
        except DuplicateKeyError:
            duplicates = await self.find_duplicates()
            logger.error(
                "Cannot create unique (student_id, month) index: %d duplicate pairs found",
                len(duplicates),
            )
            for dup in duplicates:
                logger.error(
                    "Duplicate billing records: student_id=%s month=%s count=%s",
                    dup["student_id"], dup["month"], dup["count"],
                )

    async def find_duplicates(self) -> List[Dict[str, Any]]:
        """Return (student_id, month) pairs stored more than once."""
        docs = await self.collection.aggregate([
            {
                "$group": {
                    "_id": {"student_id": "$student_id", "month": "$month"},
                    "count": {"$sum": 1}
                }
            },
            {"$match": {"count": {"$gt": 1}}}
        ]).to_list(None)
        return [
            {
                "student_id": doc["_id"]["student_id"],
                "month": doc["_id"]["month"],
                "count": doc["count"],
            }
            for doc in docs
        ]

    async def find_by_student_and_month(self, student_id: str, month: str) -> Optional[BillingRecord]:
        doc = await self._call(self.collection.find_one({"student_id": student_id, "month": month}))
        return self._from_doc(doc) if doc else None

    async def get(self, record_id: str) -> Optional[BillingRecord]:
        oid = to_object_id(record_id)
        if oid is None:
            return None
        doc = await self._call(self.collection.find_one({"_id": oid}))
        return self._from_doc(doc) if doc else None

    async def create(self, record: BillingRecord) -> BillingRecord:
        now = datetime.now(timezone.utc)
        record = record.model_copy(update={"created_at": now, "updated_at": now})
        doc = self._to_doc(record)

        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise UniquenessViolation(record.student_id, record.month) from exc
        except PyMongoError as exc:
            raise StorageFailure(
                f"Failed to insert billing record for student {record.student_id}, month {record.month}: {exc}"
            ) from exc

        return record.model_copy(update={"id": str(result.inserted_id)})

    async def update(self, record_id: str, update_data: Dict[str, Any]) -> Optional[BillingRecord]:
        current = await self.get(record_id)
        if current is None:
            return None

        updates = guard_update(current, update_data)
        if not updates:
            return current

        updates = self._encode_fields(updates)
        updates["updated_at"] = datetime.now(timezone.utc)
        result = await self._call(self.collection.find_one_and_update(
            {"_id": to_object_id(record_id)},
            {"$set": updates},
            return_document=True
        ))
        return self._from_doc(result) if result else None

    async def mark_paid(
        self,
        record_id: str,
        paid_on: date,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[BillingRecord]:
        oid = to_object_id(record_id)
        if oid is None:
            return None

        updates: Dict[str, Any] = {
            "status": BillingStatus.PAID.value,
            "payment_date": date_to_bson(paid_on),
            "updated_at": datetime.now(timezone.utc),
        }
        if payment_method:
            updates["payment_method"] = payment_method
        if notes:
            updates["notes"] = notes

        result = await self._call(self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": updates},
            return_document=True
        ))
        return self._from_doc(result) if result else None

    async def delete(self, record_id: str) -> bool:
        oid = to_object_id(record_id)
        if oid is None:
            return False
        result = await self._call(self.collection.delete_one({"_id": oid}))
        return result.deleted_count > 0

    async def list_by_filter(
        self,
        month: Optional[str] = None,
        student_id: Optional[str] = None,
        course_id: Optional[str] = None,
        status: Optional[BillingStatus] = None,
    ) -> List[BillingRecord]:
        query: Dict[str, Any] = {}
        if month is not None:
            query["month"] = month
        if student_id is not None:
            query["student_id"] = student_id
        if course_id is not None:
            query["course_id"] = course_id
        if status is not None:
            query["status"] = BillingStatus(status).value

        docs = await self._call(self.collection.find(query).sort("created_at", ASCENDING).to_list(None))
        return [self._from_doc(doc) for doc in docs]

    # ===== PRIVATE HELPERS =====

    @staticmethod
    async def _call(awaitable):
        """Await a driver call, translating driver errors to StorageFailure."""
        try:
            return await awaitable
        except PyMongoError as exc:
            raise StorageFailure(f"Billing storage error: {exc}") from exc

    @staticmethod
    def _encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
        encoded = {}
        for key, value in fields.items():
            if key in ("payment_date", "due_date"):
                value = date_to_bson(value)
            elif key == "amount":
                value = decimal_to_bson(value)
            elif key == "status" and value is not None:
                value = BillingStatus(value).value
            encoded[key] = value
        return encoded

    def _to_doc(self, record: BillingRecord) -> Dict[str, Any]:
        doc = record.model_dump(exclude={"id"})
        return self._encode_fields(doc)

    @staticmethod
    def _from_doc(doc: Dict[str, Any]) -> BillingRecord:
        doc = dict(doc)
        doc["_id"] = str(doc["_id"])
        doc["amount"] = bson_to_decimal(doc.get("amount"))
        doc["payment_date"] = bson_to_date(doc.get("payment_date"))
        doc["due_date"] = bson_to_date(doc.get("due_date"))
        return BillingRecord(**doc)
