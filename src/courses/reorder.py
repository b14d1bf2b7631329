"""Lesson ordering: order key allocation, integrity checks and the swap protocol.

Swapping two adjacent lessons takes three single-row writes, and the store
offers no multi-row transaction:

    idle -> staging -> committing_target -> committing_current -> idle
                \\-----------------\\-------------------\\-----> failed

1. staging: park ``current`` on the sentinel key, freeing its real key
2. committing_target: give ``target`` the key ``current`` had
3. committing_current: give ``current`` the key ``target`` had

No two lessons share a real key after any step. A failed step is not rolled
back: a failure while staging changed nothing and surfaces as
``TransientIOError``, a failure in a commit step surfaces as
``WriteConflictError`` with the keys needed to repair the course by hand.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

import structlog

from src.core.errors import NotFoundError, PortalError, WriteConflictError
from src.core.store import TableStore
from src.courses.models import FIRST_ORDER_KEY, LESSONS_TABLE, Lesson, MoveDirection


logger = structlog.get_logger(__name__)


class ReorderState(str, Enum):
    """States of a single lesson swap."""

    IDLE = "idle"
    STAGING = "staging"
    COMMITTING_TARGET = "committing_target"
    COMMITTING_CURRENT = "committing_current"
    FAILED = "failed"


@dataclass(frozen=True)
class OrderViolation:
    """A lesson whose order key breaks the per-course uniqueness rule."""

    lesson_id: UUID
    order_key: int
    reason: str  # "duplicate_key" or "sentinel_key"


def next_order_key(lessons: Sequence[Lesson], sentinel_key: int) -> int:
    """Key for a new lesson: one past the highest real key, or 1."""
    keys = [lesson.order_key for lesson in lessons if lesson.order_key != sentinel_key]
    return max(keys) + 1 if keys else FIRST_ORDER_KEY


def find_order_violations(
    lessons: Sequence[Lesson], sentinel_key: int
) -> list[OrderViolation]:
    """List lessons stranded on the sentinel key or sharing a key.

    Both only exist at rest after an aborted swap (or a concurrent one from
    another administrator).
    """
    counts = Counter(lesson.order_key for lesson in lessons)
    violations = []
    for lesson in lessons:
        if lesson.order_key == sentinel_key:
            violations.append(
                OrderViolation(lesson.id, lesson.order_key, "sentinel_key")
            )
        elif counts[lesson.order_key] > 1:
            violations.append(
                OrderViolation(lesson.id, lesson.order_key, "duplicate_key")
            )
    return violations


def find_swap_partner(
    lessons: Sequence[Lesson],
    lesson_id: UUID,
    direction: MoveDirection,
) -> tuple[int, int] | None:
    """Array positions of (current, target), or None when the move is a no-op."""
    if len(lessons) < 2:
        return None

    current_index = next(
        (i for i, lesson in enumerate(lessons) if lesson.id == lesson_id), None
    )
    if current_index is None:
        return None

    step = -1 if direction == MoveDirection.UP else 1
    target_index = current_index + step
    if target_index < 0 or target_index >= len(lessons):
        return None

    return current_index, target_index


class LessonSwap:
    """One run of the swap protocol over a course's ordered lessons.

    ``state`` and ``history`` expose how far the run got, including after a
    failure.
    """

    def __init__(
        self,
        store: TableStore,
        course_id: UUID,
        lessons: Sequence[Lesson],
        sentinel_key: int,
    ):
        self.store = store
        self.course_id = course_id
        self.lessons = list(lessons)
        self.sentinel_key = sentinel_key
        self.state = ReorderState.IDLE
        self.history: list[ReorderState] = [ReorderState.IDLE]

    def _enter(self, state: ReorderState) -> None:
        self.state = state
        self.history.append(state)

    async def _write_key(self, lesson: Lesson, order_key: int) -> None:
        touched = await self.store.update(
            LESSONS_TABLE.name,
            {"course_id": self.course_id, "id": lesson.id},
            {"order_key": order_key},
        )
        if touched == 0:
            msg = f"Lesson {lesson.id} no longer exists"
            raise NotFoundError(msg)

    async def run(self, lesson_id: UUID, direction: MoveDirection) -> list[Lesson]:
        """Move ``lesson_id`` one step in ``direction``.

        Returns:
            The lesson list with the two entries swapped in place, or the list
            unchanged when the move is a no-op (no writes issued).

        Raises:
            NotFoundError: A lesson vanished before anything was written
            TransientIOError: Staging failed, nothing was written (other store
                errors raised while staging propagate unchanged)
            WriteConflictError: A commit step failed after staging succeeded
        """
        positions = find_swap_partner(self.lessons, lesson_id, direction)
        if positions is None:
            return self.lessons

        current_index, target_index = positions
        current = self.lessons[current_index]
        target = self.lessons[target_index]
        current_key, target_key = current.order_key, target.order_key

        log = logger.bind(
            course_id=str(self.course_id),
            lesson_id=str(current.id),
            target_lesson_id=str(target.id),
            direction=direction.value,
        )

        steps = (
            (ReorderState.STAGING, current, self.sentinel_key),
            (ReorderState.COMMITTING_TARGET, target, current_key),
            (ReorderState.COMMITTING_CURRENT, current, target_key),
        )
        for state, lesson, key in steps:
            self._enter(state)
            try:
                await self._write_key(lesson, key)
            except PortalError as e:
                self._enter(ReorderState.FAILED)
                log.error(
                    "lesson_reorder_failed",
                    failed_state=state.value,
                    error=e.message,
                    error_code=e.code,
                )
                if state == ReorderState.STAGING:
                    raise
                raise WriteConflictError(
                    course_id=self.course_id,
                    failed_state=state.value,
                    current_lesson_id=current.id,
                    current_key=current_key,
                    target_lesson_id=target.id,
                    target_key=target_key,
                    cause=e.message,
                ) from e

        self._enter(ReorderState.IDLE)

        current.order_key = target_key
        target.order_key = current_key
        self.lessons[current_index], self.lessons[target_index] = target, current

        log.info("lesson_reordered", old_key=current_key, new_key=target_key)
        return self.lessons
