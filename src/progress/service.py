"""Student progress service layer.

Business logic for:
- Marking and unmarking lessons complete (idempotent toggle)
- Per-course progress derived from lessons and progress records
- Course summaries and the dashboard "continue learning" target
- Lesson page data (completion flag and previous/next lesson)
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import structlog

from src.core.errors import NotFoundError, TransientIOError, UnauthenticatedError
from src.core.store import TableStore
from src.courses.models import Course, Lesson
from src.courses.service import CatalogService
from src.progress.aggregator import (
    CourseProgress,
    LessonNavigation,
    aggregate_course_progress,
    lesson_navigation,
)
from src.progress.models import LESSON_PROGRESS_TABLE, ProgressRecord
from src.progress.resume import EnrolledCourse, ResumeTarget, select_resume_target


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CourseSummary:
    """A course card: the course and the user's progress in it."""

    course: Course
    progress: CourseProgress


@dataclass(frozen=True)
class LessonView:
    """Everything the lesson page needs for one user."""

    course: Course
    navigation: LessonNavigation
    completed: bool
    completed_at: datetime | None


class ProgressService:
    """Service for lesson completion and derived progress."""

    def __init__(
        self,
        store: TableStore,
        catalog: CatalogService,
        toggle_max_attempts: int = 3,
        toggle_retry_delay: float = 0.2,
    ):
        self.store = store
        self.catalog = catalog
        self.toggle_max_attempts = max(1, toggle_max_attempts)
        self.toggle_retry_delay = toggle_retry_delay

    # ==========================================================================
    # Progress Records
    # ==========================================================================

    async def list_records(
        self,
        user_id: UUID | None,
        course_id: UUID | None = None,
    ) -> list[ProgressRecord]:
        """Progress records of a user, optionally for one course.

        An anonymous caller has no records.
        """
        if user_id is None:
            return []
        filters: dict[str, UUID] = {"user_id": user_id}
        if course_id is not None:
            filters["course_id"] = course_id
        rows = await self.store.list(LESSON_PROGRESS_TABLE.name, filters)
        return [ProgressRecord.from_record(row) for row in rows]

    async def get_record(
        self,
        user_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
    ) -> ProgressRecord | None:
        """Progress record for one lesson, if the user completed it."""
        rows = await self.store.list(
            LESSON_PROGRESS_TABLE.name,
            {"user_id": user_id, "course_id": course_id, "lesson_id": lesson_id},
        )
        return ProgressRecord.from_record(rows[0]) if rows else None

    # ==========================================================================
    # Completion Toggle
    # ==========================================================================

    async def toggle_lesson_completion(
        self,
        user_id: UUID | None,
        course_id: UUID,
        lesson_id: UUID,
        currently_completed: bool,
    ) -> bool:
        """Flip a lesson's completion for a user.

        Not completed: upsert the record keyed on (user, course, lesson), so
        repeating the call never creates a duplicate. Completed: delete it.
        Each direction is a single write; transient store failures are retried
        from the start since both writes are idempotent.

        Args:
            user_id: Resolved user, or None when there is no active session
            course_id: Course UUID
            lesson_id: Lesson UUID
            currently_completed: Completion status the caller is looking at

        Returns:
            The completion status after the write

        Raises:
            UnauthenticatedError: If user_id is None (nothing is written)
            NotFoundError: If the lesson doesn't exist in this course
            TransientIOError: If every attempt failed
        """
        if user_id is None:
            raise UnauthenticatedError

        await self.catalog.require_lesson(course_id, lesson_id)

        attempt = 1
        while True:
            try:
                if currently_completed:
                    await self._clear_completion(user_id, course_id, lesson_id)
                else:
                    await self._mark_completion(user_id, course_id, lesson_id)
                break
            except TransientIOError as e:
                if attempt >= self.toggle_max_attempts:
                    logger.error(
                        "lesson_completion_toggle_failed",
                        course_id=str(course_id),
                        lesson_id=str(lesson_id),
                        attempts=attempt,
                        error=e.message,
                    )
                    raise
                delay = self.toggle_retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    "lesson_completion_toggle_retry",
                    course_id=str(course_id),
                    lesson_id=str(lesson_id),
                    attempt=attempt,
                    delay_seconds=delay,
                )
                attempt += 1
                await asyncio.sleep(delay)

        completed = not currently_completed
        logger.info(
            "lesson_completion_toggled",
            user_id=str(user_id),
            course_id=str(course_id),
            lesson_id=str(lesson_id),
            completed=completed,
        )
        return completed

    async def _mark_completion(
        self, user_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> None:
        record = ProgressRecord(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            completed_at=datetime.now(UTC),
        )
        await self.store.create(LESSON_PROGRESS_TABLE.name, record.to_record())

    async def _clear_completion(
        self, user_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> None:
        await self.store.delete(
            LESSON_PROGRESS_TABLE.name,
            {"user_id": user_id, "course_id": course_id, "lesson_id": lesson_id},
        )

    # ==========================================================================
    # Derived Progress
    # ==========================================================================

    async def get_course_progress(
        self,
        course_id: UUID,
        user_id: UUID | None,
    ) -> CourseProgress:
        """Totals and per-lesson status of a course for a user.

        Raises:
            NotFoundError: If course doesn't exist
        """
        await self.catalog.require_course(course_id)
        lessons = await self.catalog.list_lessons(course_id)
        records = await self.list_records(user_id, course_id)
        return aggregate_course_progress(course_id, lessons, records)

    async def _load_enrolled_courses(
        self, user_id: UUID | None
    ) -> list[EnrolledCourse]:
        # Every catalogue course counts as enrolled
        courses = await self.catalog.list_courses()
        lesson_lists: list[list[Lesson]] = await asyncio.gather(
            *(self.catalog.list_lessons(course.id) for course in courses)
        )
        records = await self.list_records(user_id)

        records_by_course: dict[UUID, list[ProgressRecord]] = {}
        for record in records:
            records_by_course.setdefault(record.course_id, []).append(record)

        return [
            EnrolledCourse(
                course=course,
                lessons=lessons,
                progress=aggregate_course_progress(
                    course.id, lessons, records_by_course.get(course.id, [])
                ),
            )
            for course, lessons in zip(courses, lesson_lists, strict=True)
        ]

    async def list_course_summaries(self, user_id: UUID | None) -> list[CourseSummary]:
        """Progress of every catalogue course, in catalogue order."""
        enrolled = await self._load_enrolled_courses(user_id)
        return [CourseSummary(course=e.course, progress=e.progress) for e in enrolled]

    async def get_resume_target(self, user_id: UUID | None) -> ResumeTarget | None:
        """Dashboard "continue learning" target, or None without any lessons."""
        enrolled = await self._load_enrolled_courses(user_id)
        target = select_resume_target(enrolled)
        logger.debug(
            "resume_target_selected",
            courses=len(enrolled),
            course_id=str(target.course_id) if target else None,
            lesson_id=str(target.lesson_id) if target else None,
        )
        return target

    async def get_lesson_view(
        self,
        course_id: UUID,
        lesson_id: UUID,
        user_id: UUID | None,
    ) -> LessonView:
        """Lesson with completion flag and neighbours in course order.

        Raises:
            NotFoundError: If the course or lesson doesn't exist
        """
        course = await self.catalog.require_course(course_id)
        lessons = await self.catalog.list_lessons(course_id)
        navigation = lesson_navigation(lessons, lesson_id)
        if navigation is None:
            msg = "Lesson not found"
            raise NotFoundError(msg)

        record = None
        if user_id is not None:
            record = await self.get_record(user_id, course_id, lesson_id)

        return LessonView(
            course=course,
            navigation=navigation,
            completed=record is not None,
            completed_at=record.completed_at if record else None,
        )
