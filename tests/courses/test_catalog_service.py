"""Tests for the course catalogue service."""

import asyncio
from uuid import uuid4

import pytest

from src.core.errors import InvalidRequestError, NotFoundError, WriteConflictError
from src.courses.models import MoveDirection
from src.courses.schemas import (
    CreateCourseRequest,
    CreateLessonRequest,
    UpdateCourseRequest,
    UpdateLessonRequest,
)
from src.courses.service import CatalogService


class TestCourses:
    """Tests for course CRUD."""

    @pytest.mark.asyncio
    async def test_create_and_list_by_title(self, catalog: CatalogService):
        await catalog.create_course(CreateCourseRequest(title="Options"))
        await catalog.create_course(CreateCourseRequest(title="Bonds"))

        courses = await catalog.list_courses()

        assert [c.title for c in courses] == ["Bonds", "Options"]

    @pytest.mark.asyncio
    async def test_update_only_given_fields(self, catalog: CatalogService):
        course = await catalog.create_course(
            CreateCourseRequest(title="Bonds", description="Fixed income")
        )

        updated = await catalog.update_course(
            course.id, UpdateCourseRequest(title="Bond basics")
        )

        assert updated.title == "Bond basics"
        assert updated.description == "Fixed income"
        assert updated.updated_at is not None
        stored = await catalog.require_course(course.id)
        assert stored.title == "Bond basics"

    @pytest.mark.asyncio
    async def test_missing_course(self, catalog: CatalogService):
        assert await catalog.get_course(uuid4()) is None
        with pytest.raises(NotFoundError):
            await catalog.require_course(uuid4())

    @pytest.mark.asyncio
    async def test_delete_cascades_progress_then_lessons(
        self, catalog, store, seed_course, complete, user_id
    ):
        course, lessons = seed_course(lessons=2)
        other, other_lessons = seed_course(title="Other", lessons=1)
        complete(user_id, lessons[0])
        complete(user_id, other_lessons[0])

        deleted = await catalog.delete_course(course.id)

        assert deleted == 2
        assert await catalog.get_course(course.id) is None
        assert await catalog.list_lessons(course.id) == []
        remaining = list(store.rows["lesson_progress"].values())
        assert [r["lesson_id"] for r in remaining] == [other_lessons[0].id]
        tables = [call[1] for call in store.writes("delete")]
        assert tables == ["lesson_progress", "lessons", "courses"]


class TestLessons:
    """Tests for lesson CRUD."""

    @pytest.mark.asyncio
    async def test_new_lessons_are_appended(self, catalog: CatalogService):
        course = await catalog.create_course(CreateCourseRequest(title="Bonds"))

        first = await catalog.create_lesson(course.id, CreateLessonRequest(title="A"))
        second = await catalog.create_lesson(course.id, CreateLessonRequest(title="B"))

        assert (first.order_key, second.order_key) == (1, 2)
        lessons = await catalog.list_lessons(course.id)
        assert [lesson.title for lesson in lessons] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_append_after_gap(self, catalog, seed_course):
        course, _ = seed_course(keys=[1, 4])

        lesson = await catalog.create_lesson(course.id, CreateLessonRequest(title="C"))

        assert lesson.order_key == 5

    @pytest.mark.asyncio
    async def test_lesson_for_missing_course(self, catalog: CatalogService):
        with pytest.raises(NotFoundError):
            await catalog.create_lesson(uuid4(), CreateLessonRequest(title="A"))

    @pytest.mark.asyncio
    async def test_lesson_must_belong_to_course(self, catalog, seed_course):
        _, (lesson,) = seed_course(lessons=1)
        other, _ = seed_course(title="Other", lessons=0)

        with pytest.raises(NotFoundError):
            await catalog.require_lesson(other.id, lesson.id)

    @pytest.mark.asyncio
    async def test_update_content_keeps_order(self, catalog, seed_course):
        course, (a, _) = seed_course(lessons=2)

        updated = await catalog.update_lesson(
            course.id, a.id, UpdateLessonRequest(notes="  Read chapter 2  ")
        )

        assert updated.notes == "Read chapter 2"
        assert updated.order_key == 1

    @pytest.mark.asyncio
    async def test_explicit_order_key_repairs_parked_lesson(
        self, catalog, seed_course, stored_keys
    ):
        course, (a, b) = seed_course(keys=[-1, 1])

        await catalog.update_lesson(course.id, a.id, UpdateLessonRequest(order_key=2))

        assert stored_keys(course.id) == {a.id: 2, b.id: 1}

    @pytest.mark.asyncio
    async def test_explicit_order_key_must_be_free(self, catalog, seed_course):
        course, (a, _) = seed_course(lessons=2)

        with pytest.raises(InvalidRequestError):
            await catalog.update_lesson(
                course.id, a.id, UpdateLessonRequest(order_key=2)
            )

    @pytest.mark.asyncio
    async def test_delete_lesson_removes_its_progress_first(
        self, catalog, store, seed_course, complete, user_id, stored_keys
    ):
        course, (a, b, c) = seed_course(lessons=3)
        complete(user_id, b)
        complete(user_id, c)
        complete(uuid4(), b)

        removed = await catalog.delete_lesson(course.id, b.id)

        assert removed == 2
        assert [r["lesson_id"] for r in store.rows["lesson_progress"].values()] == [
            c.id
        ]
        # Remaining keys are not renumbered
        assert stored_keys(course.id) == {a.id: 1, c.id: 3}
        assert [call[1] for call in store.writes("delete")] == [
            "lesson_progress",
            "lessons",
        ]


class TestReorder:
    """Tests for reorder_lesson and check_lesson_order."""

    @pytest.mark.asyncio
    async def test_reorder_returns_new_order(self, catalog, seed_course, stored_keys):
        course, (a, b, c) = seed_course(lessons=3)

        lessons = await catalog.reorder_lesson(course.id, b.id, MoveDirection.DOWN)

        assert [lesson.id for lesson in lessons] == [a.id, c.id, b.id]
        assert stored_keys(course.id) == {a.id: 1, c.id: 2, b.id: 3}

    @pytest.mark.asyncio
    async def test_unknown_lesson(self, catalog, seed_course):
        course, _ = seed_course(lessons=2)

        with pytest.raises(NotFoundError):
            await catalog.reorder_lesson(course.id, uuid4(), MoveDirection.UP)

    @pytest.mark.asyncio
    async def test_unknown_course(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.reorder_lesson(uuid4(), uuid4(), MoveDirection.UP)

    @pytest.mark.asyncio
    async def test_refused_while_order_is_broken(self, catalog, store, seed_course):
        course, (a, _, _) = seed_course(keys=[1, 2, 2])

        with pytest.raises(InvalidRequestError):
            await catalog.reorder_lesson(course.id, a.id, MoveDirection.DOWN)

        assert store.writes() == []

    @pytest.mark.asyncio
    async def test_aborted_move_is_reported_by_order_check(
        self, catalog, store, seed_course
    ):
        course, (a, b) = seed_course(lessons=2)
        store.fail("update", 2)

        with pytest.raises(WriteConflictError):
            await catalog.reorder_lesson(course.id, a.id, MoveDirection.DOWN)

        violations = await catalog.check_lesson_order(course.id)
        assert [(v.lesson_id, v.reason) for v in violations] == [
            (a.id, "sentinel_key")
        ]

    @pytest.mark.asyncio
    async def test_concurrent_moves_on_one_course_are_serialized(
        self, catalog, seed_course, stored_keys
    ):
        course, (a, b, c) = seed_course(lessons=3)

        await asyncio.gather(
            catalog.reorder_lesson(course.id, a.id, MoveDirection.DOWN),
            catalog.reorder_lesson(course.id, c.id, MoveDirection.UP),
        )

        keys = stored_keys(course.id)
        assert sorted(keys.values()) == [1, 2, 3]
        assert await catalog.check_lesson_order(course.id) == []


class TestEditsDuringMoves:
    """Lesson edits and appends racing a move on the same course."""

    @pytest.mark.asyncio
    async def test_content_edit_does_not_write_order_key(
        self, catalog, store, seed_course
    ):
        course, (a, _) = seed_course(lessons=2)

        await catalog.update_lesson(
            course.id, a.id, UpdateLessonRequest(title="Renamed")
        )

        ((_, _, _, patch),) = store.writes("update")
        assert set(patch) == {"title", "updated_at"}

    @pytest.mark.asyncio
    async def test_title_edit_and_move_keep_keys_unique(
        self, catalog, store, seed_course, stored_keys, monkeypatch
    ):
        """[A(1), B(2), C(3)]: rename B while moving B down."""
        course, (a, b, c) = seed_course(lessons=3)
        list_rows = store.list
        delayed = []

        async def slow_first_list(
            table, filters=None, order_by=None, descending=False
        ):
            if not delayed:
                delayed.append(table)
                await asyncio.sleep(0.01)
            return await list_rows(table, filters, order_by, descending)

        monkeypatch.setattr(store, "list", slow_first_list)

        await asyncio.gather(
            catalog.update_lesson(
                course.id, b.id, UpdateLessonRequest(title="Renamed")
            ),
            catalog.reorder_lesson(course.id, b.id, MoveDirection.DOWN),
        )

        assert stored_keys(course.id) == {a.id: 1, c.id: 2, b.id: 3}
        assert store.rows["lessons"][(course.id, b.id)]["title"] == "Renamed"

    @pytest.mark.asyncio
    async def test_append_during_move_gets_a_free_key(
        self, catalog, store, seed_course, stored_keys, monkeypatch
    ):
        course, (a, b) = seed_course(lessons=2)
        update_rows = store.update

        async def yielding_update(table, filters, patch):
            touched = await update_rows(table, filters, patch)
            await asyncio.sleep(0)
            return touched

        monkeypatch.setattr(store, "update", yielding_update)

        _, new = await asyncio.gather(
            catalog.reorder_lesson(course.id, b.id, MoveDirection.UP),
            catalog.create_lesson(course.id, CreateLessonRequest(title="C")),
        )

        assert new.order_key == 3
        assert stored_keys(course.id) == {a.id: 2, b.id: 1, new.id: 3}
        assert await catalog.check_lesson_order(course.id) == []
