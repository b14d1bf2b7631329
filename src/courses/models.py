"""Database models for the course catalogue.

Cassandra table definitions for:
- Courses: title and description authored by administrators
- Lessons: partitioned by course, positioned by an integer order key

Order keys are unique per course at rest and start at 1. Gaps are allowed
(deleting a lesson does not renumber the rest). A reserved key below 1 is used
as a parking slot while two lessons swap places.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from src.core.store import Record, TableSpec


FIRST_ORDER_KEY = 1


class MoveDirection(str, Enum):
    """Direction of a single-step lesson move."""

    UP = "up"
    DOWN = "down"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def clean_text(value: str | None) -> str | None:
    """Strip surrounding whitespace, mapping blank strings to None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Partition key course_id: one read returns the whole lesson sequence
LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    course_id UUID,
    id UUID,
    title TEXT,
    video_url TEXT,
    notes TEXT,
    order_key INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, id)
)
"""

LESSON_ID_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS lessons_id_idx
ON {keyspace}.lessons (id)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    LESSON_TABLE_CQL,
    LESSON_ID_INDEX_CQL,
]

COURSES_TABLE = TableSpec(
    name="courses",
    partition_key=("id",),
    columns=("id", "title", "description", "created_at", "updated_at"),
)

LESSONS_TABLE = TableSpec(
    name="lessons",
    partition_key=("course_id",),
    clustering_key=("id",),
    columns=(
        "course_id",
        "id",
        "title",
        "video_url",
        "notes",
        "order_key",
        "created_at",
        "updated_at",
    ),
)

COURSES_TABLE_SPECS = [COURSES_TABLE, LESSONS_TABLE]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course entity.

    Attributes:
        id: Course UUID
        title: Display title
        description: Optional long description
        created_at: Creation timestamp
        updated_at: Last edit timestamp
    """

    def __init__(
        self,
        title: str,
        description: str | None = None,
        id: UUID | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.title = title
        self.description = description
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_record(cls, record: Record) -> "Course":
        """Create Course instance from a store record."""
        return cls(
            id=record["id"],
            title=record.get("title") or "",
            description=record.get("description"),
            created_at=record.get("created_at"),
            updated_at=record.get("updated_at"),
        )

    def to_record(self) -> Record:
        """Convert to a store record."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Course {self.id} {self.title!r}>"


class Lesson:
    """Lesson entity.

    Attributes:
        id: Lesson UUID
        course_id: Owning course UUID
        title: Display title
        video_url: Optional video reference
        notes: Optional lesson notes
        order_key: Position within the course (unique per course at rest)
    """

    def __init__(
        self,
        course_id: UUID,
        title: str,
        order_key: int,
        video_url: str | None = None,
        notes: str | None = None,
        id: UUID | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.course_id = course_id
        self.title = title
        self.order_key = order_key
        self.video_url = video_url
        self.notes = notes
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_record(cls, record: Record) -> "Lesson":
        """Create Lesson instance from a store record."""
        return cls(
            id=record["id"],
            course_id=record["course_id"],
            title=record.get("title") or "",
            order_key=record["order_key"],
            video_url=record.get("video_url"),
            notes=record.get("notes"),
            created_at=record.get("created_at"),
            updated_at=record.get("updated_at"),
        )

    def to_record(self) -> Record:
        """Convert to a store record."""
        return {
            "course_id": self.course_id,
            "id": self.id,
            "title": self.title,
            "video_url": self.video_url,
            "notes": self.notes,
            "order_key": self.order_key,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Lesson {self.id} course={self.course_id} key={self.order_key}>"
