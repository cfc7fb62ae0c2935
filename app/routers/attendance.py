"""
Attendance router — per-subject attendance summary against the requirement threshold.
"""

from fastapi import APIRouter, Depends, HTTPException
from app.core.security import require_role
from app.core.database import get_supabase
from app.core.config import settings
from app.core import grading
from app.utils.response import success_response

router = APIRouter(prefix="/api/attendance", tags=["Attendance"])


@router.get("/summary/{student_id}")
async def get_attendance_summary(
    student_id: str,
    user: dict = Depends(require_role(["admin", "faculty", "student", "staff"])),
):
    if user["role"] == "student" and user["user_id"] != student_id:
        raise HTTPException(status_code=403, detail="Students can only view their own attendance")

    db = get_supabase()
    records = db.table("attendance").select("subject_id, status").eq("student_id", student_id).execute().data

    threshold = settings.ATTENDANCE_THRESHOLD
    subject_stats = {}
    for rec in records:
        stats = subject_stats.setdefault(rec["subject_id"], {"total": 0, "present": 0})
        stats["total"] += 1
        if rec["status"] == "PRESENT":
            stats["present"] += 1

    subjects = []
    for subject_id, stats in subject_stats.items():
        pct = grading.attendance_percentage(stats["present"], stats["total"])
        subjects.append({
            "subject_id": subject_id,
            "total_sessions": stats["total"],
            "present": stats["present"],
            "percentage": round(pct, 2),
            "meets_requirement": grading.meets_attendance(pct, threshold),
        })

    present = sum(s["present"] for s in subject_stats.values())
    overall = grading.attendance_percentage(present, len(records))

    return success_response(data={
        "student_id": student_id,
        "threshold": threshold,
        "total_sessions": len(records),
        "present": present,
        "percentage": round(overall, 2),
        "meets_requirement": grading.meets_attendance(overall, threshold),
        "subjects": subjects,
    })
