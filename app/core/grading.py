"""
Academic grading rules — percentage, grade bands, grade points, GPA, attendance.

Canonical grade table (inclusive lower bounds):
    >= 90  A+     >= 60  C
    >= 80  A      >= 50  D
    >= 70  B       else  F

Grade points on a 10-point scale:
    >= 90 → 10, >= 80 → 9, >= 70 → 8, >= 60 → 7, >= 50 → 6, >= 40 → 5, else 0
"""

from enum import Enum
from typing import Iterable, List, Tuple

GRADE_BANDS: List[Tuple[float, str]] = [
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
]
FAIL_GRADE = "F"
GRADE_ORDER = [grade for _, grade in GRADE_BANDS] + [FAIL_GRADE]

GRADE_POINTS: List[Tuple[float, int]] = [
    (90, 10),
    (80, 9),
    (70, 8),
    (60, 7),
    (50, 6),
    (40, 5),
]

DEFAULT_ATTENDANCE_THRESHOLD = 75.0


class ExamType(str, Enum):
    QUIZ = "QUIZ"
    MIDTERM = "MIDTERM"
    FINAL = "FINAL"
    ASSIGNMENT = "ASSIGNMENT"


def percentage(obtained: float, maximum: float) -> float:
    if not maximum:
        return 0.0
    return obtained / maximum * 100


def grade_for(pct: float) -> str:
    for lower, grade in GRADE_BANDS:
        if pct >= lower:
            return grade
    return FAIL_GRADE


def grade_point(pct: float) -> int:
    for lower, points in GRADE_POINTS:
        if pct >= lower:
            return points
    return 0


def gpa(marks: Iterable[dict]) -> float:
    """
    Credit-weighted GPA.
    Each mark needs obtained_marks, max_marks and credits.
    """
    total_points = 0.0
    total_credits = 0.0
    for mark in marks:
        credits = mark.get("credits") or 0
        pct = percentage(mark["obtained_marks"], mark["max_marks"])
        total_points += grade_point(pct) * credits
        total_credits += credits
    if total_credits <= 0:
        return 0.0
    return total_points / total_credits


def grade_distribution(marks: Iterable[dict]) -> dict:
    counts = {grade: 0 for grade in GRADE_ORDER}
    for mark in marks:
        counts[grade_for(percentage(mark["obtained_marks"], mark["max_marks"]))] += 1
    return counts


def attendance_percentage(present: int, total: int) -> float:
    return percentage(present, total)


def meets_attendance(pct: float, threshold: float = DEFAULT_ATTENDANCE_THRESHOLD) -> bool:
    return pct >= threshold
