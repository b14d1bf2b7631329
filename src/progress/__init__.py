"""Student progress module.

Provides:
- Lesson completion records and the completion toggle
- Course progress aggregation
- Dashboard resume selection
"""

from .models import (
    LESSON_PROGRESS_TABLE,
    PROGRESS_TABLE_SPECS,
    PROGRESS_TABLES_CQL,
    LessonStatus,
    ProgressRecord,
)


__all__ = [
    "LESSON_PROGRESS_TABLE",
    "PROGRESS_TABLES_CQL",
    "PROGRESS_TABLE_SPECS",
    "LessonStatus",
    "ProgressRecord",
]
