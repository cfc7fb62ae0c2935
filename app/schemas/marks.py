"""
Pydantic schemas for marks entry.
"""

from pydantic import BaseModel
from typing import List


class MarkCreate(BaseModel):
    student_id: str
    subject_id: str
    exam_type: str  # QUIZ, MIDTERM, FINAL, ASSIGNMENT
    max_marks: float = 100
    obtained_marks: float
    semester: int
    year: int


class MarksBulkSubmit(BaseModel):
    entries: List[MarkCreate]
