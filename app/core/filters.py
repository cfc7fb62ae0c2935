"""
Typed query filters.

Each filter is a set of optional constraints for one table. apply() adds the
constraints that are set to a PostgREST query builder and returns it. Scalar
fields become `eq` on the column of the same name; list fields become `in_` on
the column named in their metadata.
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional


@dataclass
class QueryFilter:
    def apply(self, query):
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value == "":
                continue
            if isinstance(value, (list, tuple)):
                query = query.in_(f.metadata.get("column", f.name), list(value))
            else:
                query = query.eq(f.name, getattr(value, "value", value))
        return query


@dataclass
class TimetableFilter(QueryFilter):
    semester: Optional[int] = None
    year: Optional[int] = None
    faculty_id: Optional[str] = None
    room_id: Optional[str] = None
    day_of_week: Optional[str] = None
    subject_ids: Optional[List[str]] = field(default=None, metadata={"column": "subject_id"})


@dataclass
class MarkFilter(QueryFilter):
    student_id: Optional[str] = None
    subject_id: Optional[str] = None
    faculty_id: Optional[str] = None
    exam_type: Optional[str] = None
    semester: Optional[int] = None
    year: Optional[int] = None


@dataclass
class FeePaymentFilter(QueryFilter):
    student_id: Optional[str] = None
    statuses: Optional[List[str]] = field(default=None, metadata={"column": "status"})
    semester: Optional[int] = None
    year: Optional[int] = None
