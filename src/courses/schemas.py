"""Pydantic schemas for the course catalogue.

Request and response models for:
- Courses: CRUD operations
- Lessons: CRUD operations and single-step moves
- Lesson order integrity checks
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.courses.models import Course, Lesson, MoveDirection


def _required_text(value: str) -> str:
    value = value.strip()
    if not value:
        msg = "Must not be blank"
        raise ValueError(msg)
    return value


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


# ==============================================================================
# Course Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Course creation request."""

    title: str = Field(..., max_length=200, description="Course title")
    description: str | None = Field(
        None, max_length=5000, description="Course description"
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        return _optional_text(v)


class UpdateCourseRequest(BaseModel):
    """Course update request. Omitted fields are left unchanged."""

    title: str | None = Field(None, max_length=200, description="Course title")
    description: str | None = Field(
        None, max_length=5000, description="Course description (blank clears it)"
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return None if v is None else _required_text(v)


class CourseResponse(BaseModel):
    """Course response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    lesson_count: int = 0

    @classmethod
    def from_entity(cls, course: Course, lesson_count: int = 0) -> "CourseResponse":
        """Create response from entity."""
        return cls(
            id=course.id,
            title=course.title,
            description=course.description,
            created_at=course.created_at,
            updated_at=course.updated_at,
            lesson_count=lesson_count,
        )


class CourseListResponse(BaseModel):
    """Course list response."""

    items: list[CourseResponse]
    total: int


# ==============================================================================
# Lesson Schemas
# ==============================================================================


class CreateLessonRequest(BaseModel):
    """Lesson creation request. The order key is assigned by the server."""

    title: str = Field(..., max_length=200, description="Lesson title")
    video_url: str | None = Field(None, max_length=1000, description="Video URL")
    notes: str | None = Field(None, max_length=20000, description="Lesson notes")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("video_url", "notes")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        return _optional_text(v)


class UpdateLessonRequest(BaseModel):
    """Lesson update request. Omitted fields are left unchanged.

    ``order_key`` is only meant for repairing a course after an aborted move;
    regular reordering goes through the move endpoint.
    """

    title: str | None = Field(None, max_length=200, description="Lesson title")
    video_url: str | None = Field(
        None, max_length=1000, description="Video URL (blank clears it)"
    )
    notes: str | None = Field(
        None, max_length=20000, description="Lesson notes (blank clears them)"
    )
    order_key: int | None = Field(None, ge=1, description="Explicit order key")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return None if v is None else _required_text(v)


class LessonResponse(BaseModel):
    """Lesson response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    title: str
    video_url: str | None = None
    notes: str | None = None
    order_key: int
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, lesson: Lesson) -> "LessonResponse":
        """Create response from entity."""
        return cls(
            id=lesson.id,
            course_id=lesson.course_id,
            title=lesson.title,
            video_url=lesson.video_url,
            notes=lesson.notes,
            order_key=lesson.order_key,
            created_at=lesson.created_at,
            updated_at=lesson.updated_at,
        )


class LessonListResponse(BaseModel):
    """Lessons of a course in order."""

    course_id: UUID
    items: list[LessonResponse]


class MoveLessonRequest(BaseModel):
    """Move a lesson one position up or down."""

    direction: MoveDirection = Field(..., description="up or down")


# ==============================================================================
# Order Integrity Schemas
# ==============================================================================


class OrderViolationResponse(BaseModel):
    """Lesson breaking the per-course order key rule."""

    lesson_id: UUID
    order_key: int
    reason: str


class OrderCheckResponse(BaseModel):
    """Result of inspecting a course's lesson order."""

    course_id: UUID
    consistent: bool
    violations: list[OrderViolationResponse]
