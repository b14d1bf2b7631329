"""Tests for the progress service: completion toggle and derived reads."""

from uuid import uuid4

import pytest

from src.core.errors import NotFoundError, TransientIOError, UnauthenticatedError
from src.progress.models import LessonStatus
from src.progress.service import ProgressService


def progress_rows(store) -> list[dict]:
    return list(store.rows["lesson_progress"].values())


class TestToggleLessonCompletion:
    """Tests for toggle_lesson_completion."""

    @pytest.mark.asyncio
    async def test_marks_lesson_complete(
        self, progress_service: ProgressService, store, seed_course, user_id
    ):
        course, (a, _) = seed_course(lessons=2)

        completed = await progress_service.toggle_lesson_completion(
            user_id, course.id, a.id, currently_completed=False
        )

        assert completed is True
        (row,) = progress_rows(store)
        assert (row["user_id"], row["course_id"], row["lesson_id"]) == (
            user_id,
            course.id,
            a.id,
        )
        assert row["completed_at"] is not None

    @pytest.mark.asyncio
    async def test_repeated_mark_keeps_one_record(
        self, progress_service, store, seed_course, user_id
    ):
        """Re-sending the same stale "not completed" request upserts."""
        course, (a,) = seed_course(lessons=1)

        for _ in range(2):
            await progress_service.toggle_lesson_completion(
                user_id, course.id, a.id, currently_completed=False
            )

        assert len(progress_rows(store)) == 1

    @pytest.mark.asyncio
    async def test_toggle_twice_returns_to_start(
        self, progress_service, store, seed_course, user_id
    ):
        course, (a,) = seed_course(lessons=1)

        state = await progress_service.toggle_lesson_completion(
            user_id, course.id, a.id, currently_completed=False
        )
        state = await progress_service.toggle_lesson_completion(
            user_id, course.id, a.id, currently_completed=state
        )

        assert state is False
        assert progress_rows(store) == []

    @pytest.mark.asyncio
    async def test_unmarking_completed_lesson_updates_status(
        self, progress_service, seed_course, complete, user_id
    ):
        course, (a, b, c) = seed_course(lessons=3)
        complete(user_id, a)
        complete(user_id, b)

        await progress_service.toggle_lesson_completion(
            user_id, course.id, b.id, currently_completed=True
        )

        progress = await progress_service.get_course_progress(course.id, user_id)
        assert [e.status for e in progress.lessons] == [
            LessonStatus.COMPLETED,
            LessonStatus.IN_PROGRESS,
            LessonStatus.IN_PROGRESS,
        ]

        await progress_service.toggle_lesson_completion(
            user_id, course.id, a.id, currently_completed=True
        )

        progress = await progress_service.get_course_progress(course.id, user_id)
        assert progress.lessons[1].status == LessonStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_no_session_writes_nothing(
        self, progress_service, store, seed_course
    ):
        course, (a,) = seed_course(lessons=1)

        with pytest.raises(UnauthenticatedError):
            await progress_service.toggle_lesson_completion(
                None, course.id, a.id, currently_completed=False
            )

        assert store.writes() == []

    @pytest.mark.asyncio
    async def test_unknown_lesson(self, progress_service, store, seed_course, user_id):
        course, _ = seed_course(lessons=1)

        with pytest.raises(NotFoundError):
            await progress_service.toggle_lesson_completion(
                user_id, course.id, uuid4(), currently_completed=False
            )

        assert store.writes() == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(
        self, progress_service, store, seed_course, user_id
    ):
        course, (a,) = seed_course(lessons=1)
        store.fail("create", 1, 2)

        completed = await progress_service.toggle_lesson_completion(
            user_id, course.id, a.id, currently_completed=False
        )

        assert completed is True
        assert len(store.writes("create")) == 3
        assert len(progress_rows(store)) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(
        self, progress_service, store, seed_course, user_id
    ):
        course, (a,) = seed_course(lessons=1)
        store.fail("create", 1, 2, 3)

        with pytest.raises(TransientIOError):
            await progress_service.toggle_lesson_completion(
                user_id, course.id, a.id, currently_completed=False
            )

        assert len(store.writes("create")) == 3
        assert progress_rows(store) == []


class TestCourseProgress:
    """Tests for get_course_progress and list_course_summaries."""

    @pytest.mark.asyncio
    async def test_counts_only_this_users_records(
        self, progress_service, seed_course, complete, user_id
    ):
        course, (a, b, c) = seed_course(lessons=3)
        complete(user_id, a)
        complete(uuid4(), b)

        progress = await progress_service.get_course_progress(course.id, user_id)

        assert progress.completed_count == 1
        assert progress.completion_ratio == 1 / 3

    @pytest.mark.asyncio
    async def test_anonymous_caller_has_no_progress(
        self, progress_service, seed_course, complete, user_id
    ):
        course, (a,) = seed_course(lessons=1)
        complete(user_id, a)

        progress = await progress_service.get_course_progress(course.id, None)

        assert progress.completed_count == 0

    @pytest.mark.asyncio
    async def test_missing_course(self, progress_service):
        with pytest.raises(NotFoundError):
            await progress_service.get_course_progress(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_summaries_in_title_order(
        self, progress_service, seed_course, complete, user_id
    ):
        _, stock_lessons = seed_course(title="Stocks", lessons=2)
        seed_course(title="Bonds", lessons=0)
        complete(user_id, stock_lessons[0])

        summaries = await progress_service.list_course_summaries(user_id)

        assert [s.course.title for s in summaries] == ["Bonds", "Stocks"]
        assert summaries[0].progress.completion_ratio == 0
        assert summaries[1].progress.completion_percent == 50


class TestResumeTarget:
    """Tests for get_resume_target."""

    @pytest.mark.asyncio
    async def test_least_advanced_course(
        self, progress_service, seed_course, complete, user_id
    ):
        _, stocks = seed_course(title="Stocks", lessons=2)
        _, bonds = seed_course(title="Bonds", lessons=5)
        complete(user_id, stocks[0])
        complete(user_id, bonds[0])

        target = await progress_service.get_resume_target(user_id)

        assert target.course_title == "Bonds"
        assert target.lesson_id == bonds[1].id

    @pytest.mark.asyncio
    async def test_empty_catalogue(self, progress_service, seed_course, user_id):
        seed_course(title="Empty", lessons=0)

        assert await progress_service.get_resume_target(user_id) is None


class TestLessonView:
    """Tests for get_lesson_view."""

    @pytest.mark.asyncio
    async def test_view_with_neighbours_and_completion(
        self, progress_service, seed_course, complete, user_id
    ):
        course, (a, b, c) = seed_course(lessons=3)
        complete(user_id, b)

        view = await progress_service.get_lesson_view(course.id, b.id, user_id)

        assert view.course.id == course.id
        assert view.navigation.position == 1
        assert view.navigation.previous.id == a.id
        assert view.navigation.next.id == c.id
        assert view.completed is True
        assert view.completed_at is not None

    @pytest.mark.asyncio
    async def test_anonymous_view_is_not_completed(self, progress_service, seed_course):
        course, (a,) = seed_course(lessons=1)

        view = await progress_service.get_lesson_view(course.id, a.id, None)

        assert view.completed is False
        assert view.navigation.previous is None

    @pytest.mark.asyncio
    async def test_lesson_of_another_course(self, progress_service, seed_course):
        course, _ = seed_course(lessons=1)
        _, (other,) = seed_course(title="Other", lessons=1)

        with pytest.raises(NotFoundError):
            await progress_service.get_lesson_view(course.id, other.id, None)
