"""Database models for lesson completion tracking.

A progress record exists while a user has a lesson marked complete and is
deleted when they unmark it. Course and lesson status are never stored; they
are derived from the records on every read (see aggregator.py).
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from src.core.store import Record, TableSpec
from src.courses.models import ensure_utc_aware


class LessonStatus(str, Enum):
    """Derived lesson status for one user."""

    NOT_STARTED = "not_started"  # no record, nothing earlier completed
    IN_PROGRESS = "in_progress"  # no record, an earlier lesson is completed
    COMPLETED = "completed"  # record exists


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition key user_id: one read returns a user's progress across courses
LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    user_id UUID,
    course_id UUID,
    lesson_id UUID,
    completed_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id, lesson_id)
) WITH CLUSTERING ORDER BY (course_id ASC, lesson_id ASC)
"""

# Secondary indexes for the administrator cascades (lesson and course delete)
LESSON_PROGRESS_BY_LESSON_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS lesson_progress_lesson_idx
ON {keyspace}.lesson_progress (lesson_id)
"""

LESSON_PROGRESS_BY_COURSE_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS lesson_progress_course_idx
ON {keyspace}.lesson_progress (course_id)
"""

PROGRESS_TABLES_CQL = [
    LESSON_PROGRESS_TABLE_CQL,
    LESSON_PROGRESS_BY_LESSON_INDEX_CQL,
    LESSON_PROGRESS_BY_COURSE_INDEX_CQL,
]

LESSON_PROGRESS_TABLE = TableSpec(
    name="lesson_progress",
    partition_key=("user_id",),
    clustering_key=("course_id", "lesson_id"),
    columns=("user_id", "course_id", "lesson_id", "completed_at"),
)

PROGRESS_TABLE_SPECS = [LESSON_PROGRESS_TABLE]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ProgressRecord:
    """Completion of one lesson by one user.

    Attributes:
        user_id: User UUID
        course_id: Course UUID
        lesson_id: Lesson UUID
        completed_at: When the lesson was marked complete
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        completed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.lesson_id = lesson_id
        self.completed_at = ensure_utc_aware(completed_at) or datetime.now(UTC)

    @property
    def key(self) -> dict[str, UUID]:
        """Composite identity used for upsert and delete."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "lesson_id": self.lesson_id,
        }

    @classmethod
    def from_record(cls, record: Record) -> "ProgressRecord":
        """Create ProgressRecord instance from a store record."""
        return cls(
            user_id=record["user_id"],
            course_id=record["course_id"],
            lesson_id=record["lesson_id"],
            completed_at=record.get("completed_at"),
        )

    def to_record(self) -> Record:
        """Convert to a store record."""
        return {**self.key, "completed_at": self.completed_at}

    def __repr__(self) -> str:
        return (
            f"<ProgressRecord user={self.user_id} lesson={self.lesson_id} "
            f"at={self.completed_at.isoformat()}>"
        )
