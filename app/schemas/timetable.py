"""
Pydantic schemas for timetable scheduling.
"""

from pydantic import BaseModel
from typing import Optional


class TimetableEntryCreate(BaseModel):
    subject_id: str
    faculty_id: str
    room_id: Optional[str] = None
    day_of_week: str  # MONDAY ... SATURDAY
    start_time: str  # "09:00"
    end_time: str    # "09:50"
    semester: int
    year: int
    batch: Optional[str] = None
