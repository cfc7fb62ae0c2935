"""
Timetable scheduling — time ranges, typed filters and conflict detection.

Two bookings conflict when they share any interior point on the same day:
    existing.start < proposed.end AND existing.end > proposed.start
Touching endpoints (09:00-10:00 and 10:00-11:00) do not conflict.

Faculty clashes are scoped by semester + year. Room clashes are scoped by day
only, since a physical room is shared across terms.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import List

from app.core.errors import (
    EXCLUSION_VIOLATION,
    UNIQUE_VIOLATION,
    NotFound,
    ScheduleConflict,
    ValidationError,
    is_constraint_violation,
)
from app.core.filters import TimetableFilter

logger = logging.getLogger(__name__)

TIME_FORMAT = "%H:%M"
TABLE = "timetables"


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"


DAY_ORDER = {day.value: index for index, day in enumerate(DayOfWeek)}


def parse_time(value) -> time:
    """Accept "9:00", "09:00" or "09:00:00" (Postgres time columns)."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    text = str(value).strip()
    for fmt in (TIME_FORMAT, "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid time '{value}', expected HH:MM")


def format_time(value: time) -> str:
    return value.strftime(TIME_FORMAT)


@dataclass(frozen=True)
class TimeRange:
    day: DayOfWeek
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(
                f"start_time {format_time(self.start)} must be before end_time {format_time(self.end)}"
            )

    @classmethod
    def parse(cls, day, start, end) -> "TimeRange":
        try:
            day = DayOfWeek(str(day).upper())
        except ValueError:
            raise ValidationError(f"Invalid day_of_week '{day}'")
        return cls(day, parse_time(start), parse_time(end))

    def overlaps(self, other: "TimeRange") -> bool:
        if self.day != other.day:
            return False
        return self.start < other.end and self.end > other.start


@dataclass
class ConflictResult:
    faculty: List[dict] = field(default_factory=list)
    room: List[dict] = field(default_factory=list)

    @property
    def entries(self) -> List[dict]:
        seen = set()
        merged = []
        for entry in self.faculty + self.room:
            key = entry.get("id") or id(entry)
            if key in seen:
                continue
            seen.add(key)
            merged.append(entry)
        return merged

    @property
    def has_conflict(self) -> bool:
        return bool(self.faculty or self.room)

    def to_dict(self) -> dict:
        return {
            "has_conflict": self.has_conflict,
            "faculty_conflicts": self.faculty,
            "room_conflicts": self.room,
        }


class ConflictChecker:
    def __init__(self, db):
        self.db = db

    def _overlapping(self, query, slot: TimeRange) -> List[dict]:
        result = (
            query.eq("day_of_week", slot.day.value)
            .lt("start_time", format_time(slot.end))
            .gt("end_time", format_time(slot.start))
            .execute()
        )
        return result.data or []

    def check_conflict(self, proposed: dict) -> ConflictResult:
        slot = TimeRange.parse(proposed["day_of_week"], proposed["start_time"], proposed["end_time"])
        table = self.db.table(TABLE)

        faculty = self._overlapping(
            table.select("*")
            .eq("faculty_id", proposed["faculty_id"])
            .eq("semester", proposed["semester"])
            .eq("year", proposed["year"]),
            slot,
        )

        room = []
        if proposed.get("room_id"):
            room = self._overlapping(
                self.db.table(TABLE).select("*").eq("room_id", proposed["room_id"]),
                slot,
            )

        return ConflictResult(faculty=faculty, room=room)

    def create_entry(self, proposed: dict) -> dict:
        """Check then insert. Raises ScheduleConflict listing the clashing entries."""
        slot = TimeRange.parse(proposed["day_of_week"], proposed["start_time"], proposed["end_time"])
        record = {
            **proposed,
            "day_of_week": slot.day.value,
            "start_time": format_time(slot.start),
            "end_time": format_time(slot.end),
        }

        conflicts = self.check_conflict(record)
        if conflicts.has_conflict:
            logger.info(
                "Rejected timetable entry faculty=%s room=%s %s %s-%s: %d conflict(s)",
                record["faculty_id"], record.get("room_id"), record["day_of_week"],
                record["start_time"], record["end_time"], len(conflicts.entries),
            )
            raise ScheduleConflict("Scheduling conflict detected", data=conflicts.to_dict())

        try:
            result = self.db.table(TABLE).insert(record).execute()
        except Exception as e:
            # Exclusion constraints on the table catch a concurrent insert that
            # passed the check above.
            if is_constraint_violation(e, EXCLUSION_VIOLATION, UNIQUE_VIOLATION):
                logger.warning("Timetable insert lost a race for faculty=%s: %s", record["faculty_id"], e)
                raise ScheduleConflict("Scheduling conflict detected", data=self.check_conflict(record).to_dict())
            raise

        logger.info("Created timetable entry %s", result.data[0].get("id"))
        return result.data[0]

    def list_entries(self, filters: TimetableFilter) -> List[dict]:
        query = filters.apply(self.db.table(TABLE).select("*"))
        rows = query.execute().data or []
        return sorted(rows, key=lambda r: (DAY_ORDER.get(r["day_of_week"], 99), r["start_time"]))

    def delete_entry(self, entry_id: str) -> None:
        result = self.db.table(TABLE).delete().eq("id", entry_id).execute()
        if not result.data:
            raise NotFound("Timetable entry not found")
