"""Pydantic schemas for student progress.

Request and response models for:
- Lesson completion toggle
- Course progress and course summaries
- Dashboard resume target
- Lesson page view
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.courses.models import Lesson
from src.progress.aggregator import CourseProgress, LessonStatusEntry
from src.progress.models import LessonStatus
from src.progress.resume import ResumeTarget
from src.progress.service import CourseSummary, LessonView


# ==============================================================================
# Request Schemas
# ==============================================================================


class ToggleLessonRequest(BaseModel):
    """Flip the completion status of a lesson."""

    course_id: UUID = Field(..., description="Course ID")
    lesson_id: UUID = Field(..., description="Lesson ID")
    completed: bool = Field(
        ..., description="Completion status currently shown to the user"
    )


# ==============================================================================
# Response Schemas
# ==============================================================================


class ToggleLessonResponse(BaseModel):
    """Completion status after the toggle."""

    course_id: UUID
    lesson_id: UUID
    completed: bool


class LessonStatusResponse(BaseModel):
    """Status of one lesson within a course."""

    lesson_id: UUID
    title: str
    order_key: int
    position: int
    status: LessonStatus
    completed_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: LessonStatusEntry) -> "LessonStatusResponse":
        return cls(
            lesson_id=entry.lesson_id,
            title=entry.title,
            order_key=entry.order_key,
            position=entry.position,
            status=entry.status,
            completed_at=entry.completed_at,
        )


class CourseProgressResponse(BaseModel):
    """Progress of a user in one course."""

    course_id: UUID
    total_lessons: int
    completed_count: int
    completion_ratio: float
    completion_percent: int
    lessons: list[LessonStatusResponse] = []

    @classmethod
    def from_progress(
        cls, progress: CourseProgress, include_lessons: bool = True
    ) -> "CourseProgressResponse":
        """Create response from the aggregated progress."""
        return cls(
            course_id=progress.course_id,
            total_lessons=progress.total_lessons,
            completed_count=progress.completed_count,
            completion_ratio=progress.completion_ratio,
            completion_percent=progress.completion_percent,
            lessons=(
                [LessonStatusResponse.from_entry(e) for e in progress.lessons]
                if include_lessons
                else []
            ),
        )


class CourseSummaryResponse(BaseModel):
    """Course card with the user's progress."""

    course_id: UUID
    title: str
    description: str | None = None
    total_lessons: int
    completed_count: int
    completion_percent: int

    @classmethod
    def from_summary(cls, summary: CourseSummary) -> "CourseSummaryResponse":
        return cls(
            course_id=summary.course.id,
            title=summary.course.title,
            description=summary.course.description,
            total_lessons=summary.progress.total_lessons,
            completed_count=summary.progress.completed_count,
            completion_percent=summary.progress.completion_percent,
        )


class CourseSummaryListResponse(BaseModel):
    """All courses with progress."""

    items: list[CourseSummaryResponse]
    total: int


class ResumeTargetResponse(BaseModel):
    """Dashboard "continue learning" target.

    ``available`` is false when no course has any lesson.
    """

    available: bool
    course_id: UUID | None = None
    course_title: str | None = None
    lesson_id: UUID | None = None
    lesson_title: str | None = None
    completion_percent: int | None = None

    @classmethod
    def from_target(cls, target: ResumeTarget | None) -> "ResumeTargetResponse":
        if target is None:
            return cls(available=False)
        return cls(
            available=True,
            course_id=target.course_id,
            course_title=target.course_title,
            lesson_id=target.lesson_id,
            lesson_title=target.lesson_title,
            completion_percent=round(target.completion_ratio * 100),
        )


class LessonLinkResponse(BaseModel):
    """Previous/next lesson link."""

    id: UUID
    title: str

    @classmethod
    def from_lesson(cls, lesson: Lesson | None) -> "LessonLinkResponse | None":
        if lesson is None:
            return None
        return cls(id=lesson.id, title=lesson.title)


class LessonViewResponse(BaseModel):
    """Lesson page: content, completion flag and neighbours."""

    course_id: UUID
    course_title: str
    lesson_id: UUID
    title: str
    video_url: str | None = None
    notes: str | None = None
    position: int
    completed: bool
    completed_at: datetime | None = None
    previous: LessonLinkResponse | None = None
    next: LessonLinkResponse | None = None

    @classmethod
    def from_view(cls, view: LessonView) -> "LessonViewResponse":
        """Create response from the lesson view."""
        lesson = view.navigation.lesson
        return cls(
            course_id=view.course.id,
            course_title=view.course.title,
            lesson_id=lesson.id,
            title=lesson.title,
            video_url=lesson.video_url,
            notes=lesson.notes,
            position=view.navigation.position,
            completed=view.completed,
            completed_at=view.completed_at,
            previous=LessonLinkResponse.from_lesson(view.navigation.previous),
            next=LessonLinkResponse.from_lesson(view.navigation.next),
        )
