"""Course catalogue module.

Provides:
- Course and lesson CRUD with cascades to progress records
- Single-step lesson moves over unique per-course order keys
- Lesson order integrity checks
"""

from .models import (
    COURSES_TABLE_SPECS,
    COURSES_TABLES_CQL,
    Course,
    Lesson,
    MoveDirection,
)


__all__ = [
    "COURSES_TABLES_CQL",
    "COURSES_TABLE_SPECS",
    "Course",
    "Lesson",
    "MoveDirection",
]
