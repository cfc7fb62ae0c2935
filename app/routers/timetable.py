"""
Timetable router — list, create (with conflict detection), preview, delete.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from app.core.security import require_role
from app.core.database import get_supabase
from app.core.filters import TimetableFilter
from app.core.scheduling import ConflictChecker, DayOfWeek
from app.core.errors import ValidationError
from app.schemas.timetable import TimetableEntryCreate
from app.utils.response import success_response

router = APIRouter(prefix="/api/timetable", tags=["Timetable"])


def _student_subject_ids(db, student_id: str) -> List[str]:
    """Subjects of every course the student is enrolled in."""
    enrollments = db.table("enrollments").select("course_id").eq("student_id", student_id).execute()
    course_ids = [e["course_id"] for e in enrollments.data]
    if not course_ids:
        return []
    subjects = db.table("subjects").select("id").in_("course_id", course_ids).execute()
    return [s["id"] for s in subjects.data]


@router.get("")
async def list_timetable(
    semester: Optional[int] = None,
    year: Optional[int] = None,
    faculty_id: Optional[str] = None,
    room_id: Optional[str] = None,
    day_of_week: Optional[str] = None,
    student_id: Optional[str] = None,
    user: dict = Depends(require_role(["admin", "faculty", "student", "staff"])),
):
    db = get_supabase()

    if user["role"] == "student":
        student_id = user["user_id"]

    if day_of_week:
        try:
            day_of_week = DayOfWeek(day_of_week.upper()).value
        except ValueError:
            raise ValidationError(f"Invalid day_of_week '{day_of_week}'")

    filters = TimetableFilter(
        semester=semester,
        year=year,
        faculty_id=faculty_id,
        room_id=room_id,
        day_of_week=day_of_week,
        subject_ids=_student_subject_ids(db, student_id) if student_id else None,
    )
    entries = ConflictChecker(db).list_entries(filters)
    return success_response(data=entries)


@router.post("")
async def create_timetable_entry(
    body: TimetableEntryCreate,
    user: dict = Depends(require_role(["admin"])),
):
    entry = ConflictChecker(get_supabase()).create_entry(body.model_dump())
    return success_response(data=entry, message="Timetable entry created")


@router.post("/check")
async def check_timetable_entry(
    body: TimetableEntryCreate,
    user: dict = Depends(require_role(["admin"])),
):
    """Dry run: report conflicts for a proposed entry without saving it."""
    result = ConflictChecker(get_supabase()).check_conflict(body.model_dump())
    return success_response(data=result.to_dict())


@router.delete("/{entry_id}")
async def delete_timetable_entry(
    entry_id: str,
    user: dict = Depends(require_role(["admin"])),
):
    ConflictChecker(get_supabase()).delete_entry(entry_id)
    return success_response(message="Timetable entry deleted")
