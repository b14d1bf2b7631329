"""Student progress API endpoints.

Provides routes for:
- Lesson completion toggle
- Course progress and course summaries
- Dashboard resume target
- Lesson page view

Every route accepts anonymous callers, who simply have no progress records;
the toggle then answers 401 without writing anything.
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import OptionalUser
from src.auth.schemas import AuthenticatedUser
from src.core.errors import PortalError, handle_portal_error

from .dependencies import ProgressServiceDep
from .schemas import (
    CourseProgressResponse,
    CourseSummaryListResponse,
    CourseSummaryResponse,
    LessonViewResponse,
    ResumeTargetResponse,
    ToggleLessonRequest,
    ToggleLessonResponse,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


def _user_id(user: AuthenticatedUser | None) -> UUID | None:
    return user.id if user is not None else None


@router.post(
    "/lessons/toggle",
    response_model=ToggleLessonResponse,
    status_code=status.HTTP_200_OK,
    summary="Toggle lesson completion",
)
async def toggle_lesson_completion(
    data: ToggleLessonRequest,
    progress_service: ProgressServiceDep,
    user: OptionalUser,
) -> ToggleLessonResponse:
    """Mark a lesson complete, or clear its completion.

    Repeating the same request is harmless: marking twice keeps one record,
    clearing twice leaves none.
    """
    try:
        completed = await progress_service.toggle_lesson_completion(
            user_id=_user_id(user),
            course_id=data.course_id,
            lesson_id=data.lesson_id,
            currently_completed=data.completed,
        )
    except PortalError as e:
        raise handle_portal_error(e) from e

    return ToggleLessonResponse(
        course_id=data.course_id, lesson_id=data.lesson_id, completed=completed
    )


@router.get(
    "/resume",
    response_model=ResumeTargetResponse,
    summary="Get continue-learning target",
)
async def get_resume_target(
    progress_service: ProgressServiceDep,
    user: OptionalUser,
) -> ResumeTargetResponse:
    """Least advanced course and the lesson to continue with."""
    try:
        target = await progress_service.get_resume_target(_user_id(user))
    except PortalError as e:
        raise handle_portal_error(e) from e
    return ResumeTargetResponse.from_target(target)


@router.get(
    "/courses",
    response_model=CourseSummaryListResponse,
    summary="List courses with progress",
)
async def list_course_summaries(
    progress_service: ProgressServiceDep,
    user: OptionalUser,
) -> CourseSummaryListResponse:
    """All courses ordered by title, each with the user's completion."""
    try:
        summaries = await progress_service.list_course_summaries(_user_id(user))
    except PortalError as e:
        raise handle_portal_error(e) from e

    items = [CourseSummaryResponse.from_summary(s) for s in summaries]
    return CourseSummaryListResponse(items=items, total=len(items))


@router.get(
    "/courses/{course_id}",
    response_model=CourseProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: OptionalUser,
) -> CourseProgressResponse:
    """Completion totals and per-lesson status for a course."""
    try:
        progress = await progress_service.get_course_progress(
            course_id, _user_id(user)
        )
    except PortalError as e:
        raise handle_portal_error(e) from e
    return CourseProgressResponse.from_progress(progress)


@router.get(
    "/courses/{course_id}/lessons/{lesson_id}",
    response_model=LessonViewResponse,
    summary="Get lesson view",
)
async def get_lesson_view(
    course_id: UUID,
    lesson_id: UUID,
    progress_service: ProgressServiceDep,
    user: OptionalUser,
) -> LessonViewResponse:
    """Lesson content with completion flag and previous/next lessons."""
    try:
        view = await progress_service.get_lesson_view(
            course_id, lesson_id, _user_id(user)
        )
    except PortalError as e:
        raise handle_portal_error(e) from e
    return LessonViewResponse.from_view(view)
