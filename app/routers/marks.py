"""
Marks router — Marks entry, role-scoped listing, GPA summary, grade distribution.
"""

from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from app.core.security import require_role
from app.core.database import get_supabase
from app.core.errors import ERPError, ValidationError
from app.core.filters import MarkFilter
from app.core import grading
from app.schemas.marks import MarkCreate, MarksBulkSubmit
from app.utils.response import success_response

router = APIRouter(prefix="/api/marks", tags=["Marks"])


def _validate_mark(body: MarkCreate) -> None:
    if body.exam_type.upper() not in grading.ExamType.__members__:
        raise ValidationError(f"Invalid exam_type '{body.exam_type}'")
    if body.max_marks <= 0:
        raise ValidationError("max_marks must be greater than 0")
    if not 0 <= body.obtained_marks <= body.max_marks:
        raise ValidationError(f"obtained_marks must be between 0 and {body.max_marks}")


def _mark_record(body: MarkCreate, faculty_id: str) -> dict:
    _validate_mark(body)
    return {**body.model_dump(), "exam_type": body.exam_type.upper(), "faculty_id": faculty_id}


def _with_grade(mark: dict) -> dict:
    pct = grading.percentage(mark["obtained_marks"], mark["max_marks"])
    return {**mark, "percentage": round(pct, 2), "grade": grading.grade_for(pct)}


@router.get("")
async def list_marks(
    subject_id: Optional[str] = None,
    exam_type: Optional[str] = None,
    semester: Optional[int] = None,
    year: Optional[int] = None,
    user: dict = Depends(require_role(["admin", "faculty", "student"])),
):
    db = get_supabase()
    filters = MarkFilter(
        subject_id=subject_id,
        exam_type=exam_type.upper() if exam_type else None,
        semester=semester,
        year=year,
    )
    if user["role"] == "student":
        filters.student_id = user["user_id"]
    elif user["role"] == "faculty":
        filters.faculty_id = user["user_id"]

    result = filters.apply(db.table("marks").select("*")).order("created_at", desc=True).execute()
    return success_response(data=[_with_grade(m) for m in result.data])


@router.post("")
async def create_mark(
    body: MarkCreate,
    user: dict = Depends(require_role(["faculty"])),
):
    db = get_supabase()
    result = db.table("marks").insert(_mark_record(body, user["user_id"])).execute()
    return success_response(data=_with_grade(result.data[0]), message="Mark recorded")


@router.post("/bulk")
async def create_marks_bulk(
    body: MarksBulkSubmit,
    user: dict = Depends(require_role(["faculty"])),
):
    """Record many marks at once. Invalid entries are reported, valid ones saved."""
    db = get_supabase()

    records = []
    errors = []
    for index, entry in enumerate(body.entries):
        try:
            records.append(_mark_record(entry, user["user_id"]))
        except ERPError as e:
            errors.append({"index": index, "student_id": entry.student_id, "error": e.message, "code": e.code})

    saved = db.table("marks").insert(records).execute().data if records else []
    return success_response(
        data={"saved": len(saved), "failed": len(errors), "errors": errors},
        message=f"Marks recorded for {len(saved)} of {len(body.entries)} entries",
    )


@router.get("/summary/{student_id}")
async def get_result_summary(
    student_id: str,
    user: dict = Depends(require_role(["admin", "faculty", "student"])),
):
    """Per-semester and overall GPA for a student."""
    if user["role"] == "student" and user["user_id"] != student_id:
        raise HTTPException(status_code=403, detail="Students can only view their own results")

    db = get_supabase()
    marks = db.table("marks").select("*").eq("student_id", student_id).execute().data

    subject_ids = sorted({m["subject_id"] for m in marks})
    credits = {}
    if subject_ids:
        subjects = db.table("subjects").select("id, credits").in_("id", subject_ids).execute()
        credits = {s["id"]: s.get("credits") or 0 for s in subjects.data}

    graded = [{**_with_grade(m), "credits": credits.get(m["subject_id"], 0)} for m in marks]

    by_term = defaultdict(list)
    for mark in graded:
        by_term[(mark["year"], mark["semester"])].append(mark)

    semesters = [
        {
            "year": year,
            "semester": semester,
            "gpa": round(grading.gpa(term_marks), 2),
            "marks": term_marks,
        }
        for (year, semester), term_marks in sorted(by_term.items())
    ]

    return success_response(data={
        "student_id": student_id,
        "gpa": round(grading.gpa(graded), 2),
        "semesters": semesters,
        "grade_distribution": grading.grade_distribution(graded),
    })


@router.get("/distribution")
async def get_grade_distribution(
    subject_id: Optional[str] = None,
    semester: Optional[int] = None,
    year: Optional[int] = None,
    user: dict = Depends(require_role(["admin", "faculty"])),
):
    db = get_supabase()
    filters = MarkFilter(subject_id=subject_id, semester=semester, year=year)
    if user["role"] == "faculty":
        filters.faculty_id = user["user_id"]

    marks = filters.apply(db.table("marks").select("*")).execute().data
    return success_response(data={
        "total": len(marks),
        "distribution": grading.grade_distribution(marks),
    })
