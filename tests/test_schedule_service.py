import pytest

from app.services.schedule_service import ScheduleResolver, normalize_weekday
from tests.fakes import InMemoryRoster


@pytest.mark.parametrize("raw, expected", [
    ("Monday", "Monday"),
    ("monday", "Monday"),
    ("Понедельник", "Monday"),
    ("вторник", "Tuesday"),
    ("Среда", "Wednesday"),
    ("четверг", "Thursday"),
    ("Пятница", "Friday"),
    ("суббота", "Saturday"),
    ("Воскресенье", "Sunday"),
    (" SUNDAY ", "Sunday"),
])
def test_normalize_weekday(raw, expected):
    """English and Russian day names normalize to English."""
    assert normalize_weekday(raw) == expected


def test_normalize_weekday_passes_unknown_through():
    """Unknown names are returned unchanged."""
    assert normalize_weekday("Lundi") == "Lundi"


@pytest.mark.asyncio
async def test_resolve_deduplicates_mixed_languages():
    """The same day in two languages resolves once."""
    roster = InMemoryRoster(schedules={"g-1": ["Monday", "понедельник", "Среда", "wednesday"]})

    days = await ScheduleResolver(roster).resolve("g-1")

    assert days == {"Monday", "Wednesday"}


@pytest.mark.asyncio
async def test_resolve_empty_schedule():
    """A group without a schedule resolves to no days."""
    days = await ScheduleResolver(InMemoryRoster()).resolve("g-missing")

    assert days == set()
