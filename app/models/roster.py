"""Read-only views of the student roster owned by the rest of the system."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CourseInfo(BaseModel):
    id: str
    name: str = ""
    price: Optional[Decimal] = None

    def has_positive_price(self) -> bool:
        return self.price is not None and self.price > 0


class RosterStudent(BaseModel):
    """Active-student roster entry with its group and course resolved."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    group_id: Optional[str] = None
    course: Optional[CourseInfo] = None


class ScheduleEntry(BaseModel):
    group_id: str
    day_of_week: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
