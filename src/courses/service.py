"""Course catalogue service layer.

Business logic for:
- Course CRUD with cascade to lessons and progress records
- Lesson CRUD with server-assigned order keys
- Single-step lesson moves (see reorder.py) and order integrity checks
"""

import asyncio
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog

from src.core.errors import InvalidRequestError, NotFoundError
from src.core.store import TableStore
from src.courses.models import (
    COURSES_TABLE,
    LESSONS_TABLE,
    Course,
    Lesson,
    MoveDirection,
    clean_text,
)
from src.courses.reorder import (
    LessonSwap,
    OrderViolation,
    find_order_violations,
    next_order_key,
)
from src.courses.schemas import (
    CreateCourseRequest,
    CreateLessonRequest,
    UpdateCourseRequest,
    UpdateLessonRequest,
)
from src.progress.models import LESSON_PROGRESS_TABLE


logger = structlog.get_logger(__name__)


class CatalogService:
    """Service for courses and their ordered lessons."""

    def __init__(self, store: TableStore, sentinel_key: int = -1):
        """Initialize with the table store and the reserved reorder key."""
        self.store = store
        self.sentinel_key = sentinel_key
        # One order-affecting write at a time per course within this process
        self._reorder_locks: defaultdict[UUID, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    # ==========================================================================
    # Courses
    # ==========================================================================

    async def create_course(self, data: CreateCourseRequest) -> Course:
        """Create a new course."""
        course = Course(title=data.title, description=data.description)
        await self.store.create(COURSES_TABLE.name, course.to_record())
        logger.info("course_created", course_id=str(course.id))
        return course

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get course by ID."""
        rows = await self.store.list(COURSES_TABLE.name, {"id": course_id})
        return Course.from_record(rows[0]) if rows else None

    async def require_course(self, course_id: UUID) -> Course:
        """Get course by ID.

        Raises:
            NotFoundError: If course doesn't exist
        """
        course = await self.get_course(course_id)
        if course is None:
            msg = "Course not found"
            raise NotFoundError(msg)
        return course

    async def list_courses(self) -> list[Course]:
        """All courses, by title."""
        rows = await self.store.list(COURSES_TABLE.name, order_by="title")
        return [Course.from_record(row) for row in rows]

    async def update_course(self, course_id: UUID, data: UpdateCourseRequest) -> Course:
        """Update course title and/or description.

        Raises:
            NotFoundError: If course doesn't exist
        """
        course = await self.require_course(course_id)
        fields = data.model_fields_set

        if "title" in fields and data.title is not None:
            course.title = data.title
        if "description" in fields:
            course.description = clean_text(data.description)
        course.updated_at = datetime.now(UTC)

        await self.store.update(
            COURSES_TABLE.name,
            {"id": course_id},
            {
                "title": course.title,
                "description": course.description,
                "updated_at": course.updated_at,
            },
        )
        return course

    async def delete_course(self, course_id: UUID) -> int:
        """Delete a course with its lessons and their progress records.

        Progress goes first, then lessons, then the course row, so a failure
        part way never leaves progress pointing at deleted lessons.

        Returns:
            Number of lessons deleted

        Raises:
            NotFoundError: If course doesn't exist
        """
        await self.require_course(course_id)

        progress_deleted = await self.store.delete(
            LESSON_PROGRESS_TABLE.name, {"course_id": course_id}
        )
        lessons_deleted = await self.store.delete(
            LESSONS_TABLE.name, {"course_id": course_id}
        )
        await self.store.delete(COURSES_TABLE.name, {"id": course_id})

        logger.info(
            "course_deleted",
            course_id=str(course_id),
            lessons_deleted=lessons_deleted,
            progress_deleted=progress_deleted,
        )
        return lessons_deleted

    # ==========================================================================
    # Lessons
    # ==========================================================================

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        """Lessons of a course ordered by order key."""
        rows = await self.store.list(
            LESSONS_TABLE.name, {"course_id": course_id}, order_by="order_key"
        )
        return [Lesson.from_record(row) for row in rows]

    async def get_lesson(self, course_id: UUID, lesson_id: UUID) -> Lesson | None:
        """Get lesson by course and lesson ID."""
        rows = await self.store.list(
            LESSONS_TABLE.name, {"course_id": course_id, "id": lesson_id}
        )
        return Lesson.from_record(rows[0]) if rows else None

    async def require_lesson(self, course_id: UUID, lesson_id: UUID) -> Lesson:
        """Get lesson by course and lesson ID.

        Raises:
            NotFoundError: If the lesson doesn't exist in this course
        """
        lesson = await self.get_lesson(course_id, lesson_id)
        if lesson is None:
            msg = "Lesson not found"
            raise NotFoundError(msg)
        return lesson

    async def create_lesson(self, course_id: UUID, data: CreateLessonRequest) -> Lesson:
        """Append a lesson at the end of the course.

        Raises:
            NotFoundError: If course doesn't exist
        """
        await self.require_course(course_id)

        async with self._reorder_locks[course_id]:
            existing = await self.list_lessons(course_id)
            lesson = Lesson(
                course_id=course_id,
                title=data.title,
                video_url=data.video_url,
                notes=data.notes,
                order_key=next_order_key(existing, self.sentinel_key),
            )
            await self.store.create(LESSONS_TABLE.name, lesson.to_record())

        logger.info(
            "lesson_created",
            course_id=str(course_id),
            lesson_id=str(lesson.id),
            order_key=lesson.order_key,
        )
        return lesson

    async def update_lesson(
        self,
        course_id: UUID,
        lesson_id: UUID,
        data: UpdateLessonRequest,
    ) -> Lesson:
        """Update lesson content, or set its order key explicitly.

        Raises:
            NotFoundError: If the lesson doesn't exist in this course
            InvalidRequestError: If the order key is taken by another lesson
        """
        fields = data.model_fields_set

        async with self._reorder_locks[course_id]:
            lesson = await self.require_lesson(course_id, lesson_id)
            patch: dict[str, Any] = {}

            if "title" in fields and data.title is not None:
                patch["title"] = lesson.title = data.title
            if "video_url" in fields:
                patch["video_url"] = lesson.video_url = clean_text(data.video_url)
            if "notes" in fields:
                patch["notes"] = lesson.notes = clean_text(data.notes)
            if data.order_key is not None and data.order_key != lesson.order_key:
                siblings = await self.list_lessons(course_id)
                if any(
                    other.order_key == data.order_key and other.id != lesson_id
                    for other in siblings
                ):
                    msg = f"Order key {data.order_key} is already used in this course"
                    raise InvalidRequestError(msg)
                logger.warning(
                    "lesson_order_key_set",
                    course_id=str(course_id),
                    lesson_id=str(lesson_id),
                    old_key=lesson.order_key,
                    new_key=data.order_key,
                )
                patch["order_key"] = lesson.order_key = data.order_key
            patch["updated_at"] = lesson.updated_at = datetime.now(UTC)

            # Only fields set on the request; content edits leave order_key alone
            await self.store.update(
                LESSONS_TABLE.name, {"course_id": course_id, "id": lesson_id}, patch
            )
        return lesson

    async def delete_lesson(self, course_id: UUID, lesson_id: UUID) -> int:
        """Delete a lesson after deleting every progress record for it.

        Remaining lessons keep their order keys.

        Returns:
            Number of progress records deleted

        Raises:
            NotFoundError: If the lesson doesn't exist in this course
        """
        await self.require_lesson(course_id, lesson_id)

        progress_deleted = await self.store.delete(
            LESSON_PROGRESS_TABLE.name,
            {"course_id": course_id, "lesson_id": lesson_id},
        )
        await self.store.delete(
            LESSONS_TABLE.name, {"course_id": course_id, "id": lesson_id}
        )

        logger.info(
            "lesson_deleted",
            course_id=str(course_id),
            lesson_id=str(lesson_id),
            progress_deleted=progress_deleted,
        )
        return progress_deleted

    # ==========================================================================
    # Ordering
    # ==========================================================================

    async def reorder_lesson(
        self,
        course_id: UUID,
        lesson_id: UUID,
        direction: MoveDirection,
    ) -> list[Lesson]:
        """Move a lesson one position up or down.

        Moving the first lesson up, the last lesson down, or any lesson of a
        course with fewer than two lessons returns the current order without
        writing anything.

        Returns:
            The course's lessons in their new order

        Raises:
            NotFoundError: If the course or lesson doesn't exist
            InvalidRequestError: If the stored order is already inconsistent
            TransientIOError: If the first write failed (nothing changed)
            WriteConflictError: If a later write failed (manual repair needed)
        """
        async with self._reorder_locks[course_id]:
            await self.require_course(course_id)
            lessons = await self.list_lessons(course_id)
            if not any(lesson.id == lesson_id for lesson in lessons):
                msg = "Lesson not found"
                raise NotFoundError(msg)

            if find_order_violations(lessons, self.sentinel_key):
                msg = "Lesson order of this course needs repair before moving lessons"
                raise InvalidRequestError(msg)

            swap = LessonSwap(self.store, course_id, lessons, self.sentinel_key)
            return await swap.run(lesson_id, direction)

    async def check_lesson_order(self, course_id: UUID) -> list[OrderViolation]:
        """Inspect a course for lessons on the sentinel key or sharing a key.

        Raises:
            NotFoundError: If course doesn't exist
        """
        await self.require_course(course_id)
        lessons = await self.list_lessons(course_id)
        violations = find_order_violations(lessons, self.sentinel_key)
        if violations:
            logger.warning(
                "lesson_order_inconsistent",
                course_id=str(course_id),
                violations=len(violations),
            )
        return violations
