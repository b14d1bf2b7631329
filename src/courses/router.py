"""Course catalogue API endpoints.

Provides routes for:
- Courses: CRUD (writes are admin only)
- Lessons: CRUD within a course (writes are admin only)
- Lesson moves and order integrity checks (admin only)
"""

import asyncio
from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import AdminUser
from src.core.errors import PortalError, handle_portal_error
from src.courses.dependencies import CatalogServiceDep
from src.courses.schemas import (
    CourseListResponse,
    CourseResponse,
    CreateCourseRequest,
    CreateLessonRequest,
    LessonListResponse,
    LessonResponse,
    MoveLessonRequest,
    OrderCheckResponse,
    OrderViolationResponse,
    UpdateCourseRequest,
    UpdateLessonRequest,
)


router = APIRouter(prefix="/v1/courses", tags=["courses"])


# ==============================================================================
# Courses
# ==============================================================================


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create course",
)
async def create_course(
    data: CreateCourseRequest,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> CourseResponse:
    """Create a new course without lessons."""
    try:
        course = await catalog.create_course(data)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return CourseResponse.from_entity(course)


@router.get(
    "",
    response_model=CourseListResponse,
    summary="List courses",
)
async def list_courses(catalog: CatalogServiceDep) -> CourseListResponse:
    """All courses ordered by title."""
    try:
        courses = await catalog.list_courses()
        lesson_lists = await asyncio.gather(
            *(catalog.list_lessons(course.id) for course in courses)
        )
    except PortalError as e:
        raise handle_portal_error(e) from e

    items = [
        CourseResponse.from_entity(course, len(lessons))
        for course, lessons in zip(courses, lesson_lists, strict=True)
    ]
    return CourseListResponse(items=items, total=len(items))


@router.get(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Get course",
)
async def get_course(course_id: UUID, catalog: CatalogServiceDep) -> CourseResponse:
    """Get a course with its lesson count."""
    try:
        course = await catalog.require_course(course_id)
        lessons = await catalog.list_lessons(course_id)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return CourseResponse.from_entity(course, len(lessons))


@router.put(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Update course",
)
async def update_course(
    course_id: UUID,
    data: UpdateCourseRequest,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> CourseResponse:
    """Update course title and/or description."""
    try:
        course = await catalog.update_course(course_id, data)
        lessons = await catalog.list_lessons(course_id)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return CourseResponse.from_entity(course, len(lessons))


@router.delete(
    "/{course_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete course",
)
async def delete_course(
    course_id: UUID,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> None:
    """Delete a course with its lessons and every progress record on them."""
    try:
        await catalog.delete_course(course_id)
    except PortalError as e:
        raise handle_portal_error(e) from e


# ==============================================================================
# Lessons
# ==============================================================================


@router.get(
    "/{course_id}/lessons",
    response_model=LessonListResponse,
    summary="List lessons",
)
async def list_lessons(
    course_id: UUID, catalog: CatalogServiceDep
) -> LessonListResponse:
    """Lessons of a course in order."""
    try:
        await catalog.require_course(course_id)
        lessons = await catalog.list_lessons(course_id)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return LessonListResponse(
        course_id=course_id,
        items=[LessonResponse.from_entity(lesson) for lesson in lessons],
    )


@router.post(
    "/{course_id}/lessons",
    response_model=LessonResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create lesson",
)
async def create_lesson(
    course_id: UUID,
    data: CreateLessonRequest,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> LessonResponse:
    """Append a lesson at the end of the course."""
    try:
        lesson = await catalog.create_lesson(course_id, data)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return LessonResponse.from_entity(lesson)


# Registered before /{lesson_id} so "order-check" is not parsed as an id
@router.get(
    "/{course_id}/lessons/order-check",
    response_model=OrderCheckResponse,
    summary="Check lesson order",
)
async def check_lesson_order(
    course_id: UUID,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> OrderCheckResponse:
    """Report lessons sharing an order key or left on the reserved key."""
    try:
        violations = await catalog.check_lesson_order(course_id)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return OrderCheckResponse(
        course_id=course_id,
        consistent=not violations,
        violations=[
            OrderViolationResponse(
                lesson_id=v.lesson_id, order_key=v.order_key, reason=v.reason
            )
            for v in violations
        ],
    )


@router.get(
    "/{course_id}/lessons/{lesson_id}",
    response_model=LessonResponse,
    summary="Get lesson",
)
async def get_lesson(
    course_id: UUID, lesson_id: UUID, catalog: CatalogServiceDep
) -> LessonResponse:
    """Get a lesson of a course."""
    try:
        lesson = await catalog.require_lesson(course_id, lesson_id)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return LessonResponse.from_entity(lesson)


@router.put(
    "/{course_id}/lessons/{lesson_id}",
    response_model=LessonResponse,
    summary="Update lesson",
)
async def update_lesson(
    course_id: UUID,
    lesson_id: UUID,
    data: UpdateLessonRequest,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> LessonResponse:
    """Update lesson content, or repair its order key."""
    try:
        lesson = await catalog.update_lesson(course_id, lesson_id, data)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return LessonResponse.from_entity(lesson)


@router.delete(
    "/{course_id}/lessons/{lesson_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete lesson",
)
async def delete_lesson(
    course_id: UUID,
    lesson_id: UUID,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> None:
    """Delete a lesson and every progress record on it."""
    try:
        await catalog.delete_lesson(course_id, lesson_id)
    except PortalError as e:
        raise handle_portal_error(e) from e


@router.post(
    "/{course_id}/lessons/{lesson_id}/move",
    response_model=LessonListResponse,
    summary="Move lesson",
)
async def move_lesson(
    course_id: UUID,
    lesson_id: UUID,
    data: MoveLessonRequest,
    catalog: CatalogServiceDep,
    _admin: AdminUser,
) -> LessonListResponse:
    """Swap a lesson with its neighbour above or below.

    Returns the lessons in their new order. A 409 response carries the
    lesson ids and original keys needed to repair an interrupted move.
    """
    try:
        lessons = await catalog.reorder_lesson(course_id, lesson_id, data.direction)
    except PortalError as e:
        raise handle_portal_error(e) from e
    return LessonListResponse(
        course_id=course_id,
        items=[LessonResponse.from_entity(lesson) for lesson in lessons],
    )
