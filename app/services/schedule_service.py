from typing import Set

from app.repositories.roster_repo import RosterSource

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# Upstream schedules store weekday names in English or Russian.
WEEKDAY_SYNONYMS = {
    "Monday": ("monday", "понедельник"),
    "Tuesday": ("tuesday", "вторник"),
    "Wednesday": ("wednesday", "среда"),
    "Thursday": ("thursday", "четверг"),
    "Friday": ("friday", "пятница"),
    "Saturday": ("saturday", "суббота"),
    "Sunday": ("sunday", "воскресенье"),
}


def normalize_weekday(name: str) -> str:
    """
    Map a weekday name to its canonical English form.

    Unrecognized values are returned unchanged so that a failed
    normalization stays visible instead of silently becoming a valid day.
    """
    lower = name.strip().lower()
    for canonical, synonyms in WEEKDAY_SYNONYMS.items():
        if any(synonym in lower for synonym in synonyms):
            return canonical
    return name


class ScheduleResolver:
    """Resolves the set of weekdays a group meets on."""

    def __init__(self, roster: RosterSource):
        self.roster = roster

    async def resolve(self, group_id: str) -> Set[str]:
        entries = await self.roster.list_schedule(group_id)
        return {normalize_weekday(entry.day_of_week) for entry in entries}
