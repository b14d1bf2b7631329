"""Shared fixtures: in-memory table store, services and an HTTP client."""

import os


# Must be set before src.config caches the settings
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import Callable, Iterable, Mapping  # noqa: E402
from typing import Any  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.auth.security import create_access_token  # noqa: E402
from src.core.errors import TransientIOError  # noqa: E402
from src.core.store import Record, TableSpec, sort_records  # noqa: E402
from src.courses.models import COURSES_TABLE_SPECS, Course, Lesson  # noqa: E402
from src.courses.service import CatalogService  # noqa: E402
from src.progress.models import PROGRESS_TABLE_SPECS, ProgressRecord  # noqa: E402
from src.progress.service import ProgressService  # noqa: E402


class MemoryTableStore:
    """TableStore keeping rows in dicts keyed by primary key.

    ``fail(op, *call_numbers)`` makes the given calls of an operation raise
    (1-based, counted over the store's lifetime), which is how tests break a
    reorder or toggle part way through.
    """

    def __init__(self, tables: Iterable[TableSpec]):
        self.specs = {spec.name: spec for spec in tables}
        self.rows: dict[str, dict[tuple[Any, ...], Record]] = {
            name: {} for name in self.specs
        }
        self.calls: list[tuple[str, str, dict[str, Any], dict[str, Any]]] = []
        self._counters: dict[str, int] = {}
        self._failures: dict[str, dict[int, Exception]] = {}

    # -- test helpers -------------------------------------------------------

    def fail(
        self, op: str, *call_numbers: int, error: Exception | None = None
    ) -> None:
        planned = self._failures.setdefault(op, {})
        for number in call_numbers:
            planned[number] = error or TransientIOError(f"injected {op} failure")

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        spec = self.specs[table]
        self.rows[table][spec.key_of(record)] = dict(record)

    def writes(self, op: str | None = None) -> list[tuple]:
        return [
            call
            for call in self.calls
            if call[0] != "list" and (op is None or call[0] == op)
        ]

    def _record_call(
        self,
        op: str,
        table: str,
        filters: Mapping[str, Any] | None,
        patch: Mapping[str, Any] | None = None,
    ) -> None:
        number = self._counters.get(op, 0) + 1
        self._counters[op] = number
        self.calls.append((op, table, dict(filters or {}), dict(patch or {})))
        error = self._failures.get(op, {}).pop(number, None)
        if error is not None:
            raise error

    def _matching(self, table: str, filters: Mapping[str, Any] | None) -> list:
        filters = filters or {}
        return [
            key
            for key, row in self.rows[table].items()
            if all(row.get(column) == value for column, value in filters.items())
        ]

    # -- TableStore ---------------------------------------------------------

    async def list(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Record]:
        self._record_call("list", table, filters)
        rows = [dict(self.rows[table][key]) for key in self._matching(table, filters)]
        return sort_records(rows, order_by, descending)

    async def create(self, table: str, record: Mapping[str, Any]) -> Record:
        self._record_call("create", table, record)
        self.insert(table, record)
        return dict(record)

    async def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        self._record_call("update", table, filters, patch)
        keys = self._matching(table, filters)
        for key in keys:
            self.rows[table][key].update(patch)
        return len(keys)

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        self._record_call("delete", table, filters)
        keys = self._matching(table, filters)
        for key in keys:
            del self.rows[table][key]
        return len(keys)


# ==============================================================================
# Store and Services
# ==============================================================================


@pytest.fixture
def store() -> MemoryTableStore:
    """Empty in-memory store with the catalogue and progress tables."""
    return MemoryTableStore(COURSES_TABLE_SPECS + PROGRESS_TABLE_SPECS)


@pytest.fixture
def catalog(store: MemoryTableStore) -> CatalogService:
    """Catalogue service over the in-memory store."""
    return CatalogService(store, sentinel_key=-1)


@pytest.fixture
def progress_service(
    store: MemoryTableStore, catalog: CatalogService
) -> ProgressService:
    """Progress service with retries and no delay between attempts."""
    return ProgressService(
        store, catalog, toggle_max_attempts=3, toggle_retry_delay=0
    )


@pytest.fixture
def user_id() -> UUID:
    """Test user ID."""
    return uuid4()


@pytest.fixture
def seed_course(store: MemoryTableStore) -> Callable[..., tuple[Course, list[Lesson]]]:
    """Insert a course with lessons keyed 1..n (or the given keys)."""

    def _seed(
        title: str = "Course",
        lessons: int = 3,
        keys: list[int] | None = None,
    ) -> tuple[Course, list[Lesson]]:
        course = Course(title=title)
        store.insert("courses", course.to_record())
        created = []
        for index, key in enumerate(keys or range(1, lessons + 1)):
            lesson = Lesson(
                course_id=course.id, title=f"{title} lesson {index + 1}", order_key=key
            )
            store.insert("lessons", lesson.to_record())
            created.append(lesson)
        return course, created

    return _seed


@pytest.fixture
def complete(store: MemoryTableStore) -> Callable[[UUID, Lesson], None]:
    """Insert a progress record for a user and lesson."""

    def _complete(user: UUID, lesson: Lesson) -> None:
        record = ProgressRecord(
            user_id=user, course_id=lesson.course_id, lesson_id=lesson.id
        )
        store.insert("lesson_progress", record.to_record())

    return _complete


@pytest.fixture
def stored_keys(store: MemoryTableStore) -> Callable[[UUID], dict[UUID, int]]:
    """Stored order key per lesson id of a course."""

    def _keys(course_id: UUID) -> dict[UUID, int]:
        return {
            row["id"]: row["order_key"]
            for row in store.rows["lessons"].values()
            if row["course_id"] == course_id
        }

    return _keys


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.fixture
def app(store: MemoryTableStore) -> FastAPI:
    """Application wired to the in-memory store (lifespan not run)."""
    from src.main import build_services, create_app

    application = create_app()
    build_services(application, store)
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client for the application."""
    return TestClient(app)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Create access tokens for arbitrary users."""

    def _make(user: UUID | None = None, role: str = "student") -> str:
        return create_access_token({"sub": str(user or uuid4()), "role": role})

    return _make


@pytest.fixture
def student_headers(make_token, user_id: UUID) -> dict[str, str]:
    """Authorization header for a student (``user_id``)."""
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def admin_headers(make_token) -> dict[str, str]:
    """Authorization header for an administrator."""
    return {"Authorization": f"Bearer {make_token(role='admin')}"}
