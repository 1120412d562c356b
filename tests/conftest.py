from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_billing_store, get_roster
from app.core.auth import create_access_token
from app.main import app
from app.models.roster import CourseInfo, RosterStudent
from app.models.user import UserRole
from tests.fakes import InMemoryBillingStore, InMemoryRoster

MATH = CourseInfo(id="c-math", name="Math", price=Decimal("800"))
ENGLISH = CourseInfo(id="c-eng", name="English", price=Decimal("1000"))
FREE = CourseInfo(id="c-free", name="Open Day", price=Decimal("0"))


def make_student(student_id, first, last, course=MATH, group_id="g-1", email=None, active=True):
    return RosterStudent(
        id=student_id,
        first_name=first,
        last_name=last,
        email=email,
        is_active=active,
        created_at=datetime(2026, 2, 9, 10, 0, tzinfo=timezone.utc),
        group_id=group_id,
        course=course,
    )


@pytest.fixture
def students():
    """Three billable students and three that must be skipped."""
    return [
        make_student("s-1", "Anna", "Smirnova", email="anna@example.com"),
        make_student("s-2", "Boris", "Ivanov", course=ENGLISH, group_id="g-2"),
        make_student("s-3", "Alex", "Ivanov", email="alex@example.com"),
        make_student("s-4", "No", "Group", group_id=None, course=None),
        make_student("s-5", "Free", "Course", course=FREE),
        make_student("s-6", "Left", "School", active=False),
    ]


@pytest.fixture
def store():
    return InMemoryBillingStore()


@pytest.fixture
def roster(students):
    return InMemoryRoster(
        students,
        schedules={"g-1": ["Понедельник", "wednesday"], "g-2": []},
    )


@pytest.fixture
def mock_db():
    """Motor database whose collections are MagicMocks with async methods."""
    db = MagicMock()
    collection = MagicMock()
    collection.insert_one = AsyncMock()
    collection.find_one = AsyncMock()
    collection.find_one_and_update = AsyncMock()
    collection.delete_one = AsyncMock()
    collection.create_index = AsyncMock()
    db.__getitem__.return_value = collection
    return db


@pytest.fixture
def test_client(store, roster):
    """API client wired to in-memory stores; no MongoDB connection is opened."""
    app.dependency_overrides[get_billing_store] = lambda: store
    app.dependency_overrides[get_roster] = lambda: roster
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def auth_headers(role: UserRole, email: str | None = None) -> dict:
    token = create_access_token(f"user-{role.value}", role, email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth_headers(UserRole.ADMIN, "admin@example.com")


@pytest.fixture
def teacher_headers():
    return auth_headers(UserRole.TEACHER, "teacher@example.com")


@pytest.fixture
def student_headers():
    return auth_headers(UserRole.STUDENT, "anna@example.com")
