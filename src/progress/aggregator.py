"""Derived progress for one user over one course.

Pure functions of two inputs: the course's lessons in order and the user's
progress records for that course. Nothing here is stored or cached; callers
recompute after every write to lessons or progress records.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from src.courses.models import Lesson
from src.progress.models import LessonStatus, ProgressRecord


@dataclass(frozen=True)
class LessonStatusEntry:
    """Status of the lesson at ``position`` (0-based) in the course order."""

    lesson_id: UUID
    title: str
    order_key: int
    position: int
    status: LessonStatus
    completed_at: datetime | None = None

    @property
    def completed(self) -> bool:
        return self.status == LessonStatus.COMPLETED


@dataclass(frozen=True)
class CourseProgress:
    """Completion summary of a course for one user."""

    course_id: UUID
    total_lessons: int
    completed_count: int
    completion_ratio: float
    lessons: tuple[LessonStatusEntry, ...] = ()

    @property
    def completion_percent(self) -> int:
        return round(self.completion_ratio * 100)


@dataclass(frozen=True)
class LessonNavigation:
    """Where a lesson sits in its course, with its neighbours."""

    lesson: Lesson
    position: int
    previous: Lesson | None
    next: Lesson | None


def completion_times(
    lessons: Sequence[Lesson],
    records: Iterable[ProgressRecord],
) -> dict[UUID, datetime]:
    """Completion time per lesson of the sequence.

    Records for lessons outside the sequence (deleted lessons, other courses)
    are ignored so counts never exceed the number of lessons.
    """
    lesson_ids = {lesson.id for lesson in lessons}
    return {
        record.lesson_id: record.completed_at
        for record in records
        if record.lesson_id in lesson_ids
    }


def aggregate_course_progress(
    course_id: UUID,
    lessons: Sequence[Lesson],
    records: Iterable[ProgressRecord],
) -> CourseProgress:
    """Compute course totals and per-lesson status.

    A lesson is completed when it has a record, in progress when some earlier
    lesson has one, and not started otherwise. A course without lessons has a
    ratio of 0 and no per-lesson entries.
    """
    total = len(lessons)
    completed = completion_times(lessons, records)

    entries = []
    seen_completed = False
    for position, lesson in enumerate(lessons):
        if lesson.id in completed:
            status = LessonStatus.COMPLETED
        elif seen_completed:
            status = LessonStatus.IN_PROGRESS
        else:
            status = LessonStatus.NOT_STARTED
        entries.append(
            LessonStatusEntry(
                lesson_id=lesson.id,
                title=lesson.title,
                order_key=lesson.order_key,
                position=position,
                status=status,
                completed_at=completed.get(lesson.id),
            )
        )
        seen_completed = seen_completed or lesson.id in completed

    completed_count = len(completed)

    return CourseProgress(
        course_id=course_id,
        total_lessons=total,
        completed_count=completed_count,
        completion_ratio=completed_count / total if total else 0.0,
        lessons=tuple(entries),
    )


def first_incomplete_lesson(
    lessons: Sequence[Lesson],
    completed_ids: set[UUID],
) -> Lesson | None:
    """First lesson in order without a progress record."""
    return next((lesson for lesson in lessons if lesson.id not in completed_ids), None)


def resume_candidate(
    lessons: Sequence[Lesson],
    completed_ids: set[UUID],
) -> Lesson | None:
    """Lesson to continue with: first incomplete, else the last one."""
    if not lessons:
        return None
    return first_incomplete_lesson(lessons, completed_ids) or lessons[-1]


def lesson_navigation(
    lessons: Sequence[Lesson],
    lesson_id: UUID,
) -> LessonNavigation | None:
    """Position and neighbours of ``lesson_id``, or None if it is not listed."""
    for position, lesson in enumerate(lessons):
        if lesson.id == lesson_id:
            return LessonNavigation(
                lesson=lesson,
                position=position,
                previous=lessons[position - 1] if position > 0 else None,
                next=lessons[position + 1] if position < len(lessons) - 1 else None,
            )
    return None
