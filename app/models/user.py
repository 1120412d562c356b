from enum import Enum
from typing import Optional

from pydantic import BaseModel


class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    USER = "user"


class CurrentUser(BaseModel):
    """Caller identity decoded from the bearer token."""
    id: str
    role: UserRole
    email: Optional[str] = None

    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT
