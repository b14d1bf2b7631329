"""Resume selection: the single "continue learning" target for the dashboard.

The least advanced course wins, not the most recently touched one, so
programs a learner has barely started are not pushed down forever.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import UUID

from src.courses.models import Course, Lesson
from src.progress.aggregator import CourseProgress, resume_candidate


@dataclass(frozen=True)
class EnrolledCourse:
    """A course as seen by one user: its lessons in order and derived progress."""

    course: Course
    lessons: Sequence[Lesson]
    progress: CourseProgress


@dataclass(frozen=True)
class ResumeTarget:
    """Course/lesson pair presented as "continue learning"."""

    course_id: UUID
    course_title: str
    lesson_id: UUID
    lesson_title: str
    completion_ratio: float


def select_resume_target(courses: Iterable[EnrolledCourse]) -> ResumeTarget | None:
    """Pick the course with the lowest completion ratio.

    Courses without lessons are never candidates. On equal ratios the course
    seen first in ``courses`` wins. The lesson is the first one without a
    progress record, or the last lesson when all are complete.

    Returns:
        The target, or None when no course has any lesson.
    """
    best: ResumeTarget | None = None

    for enrolled in courses:
        if enrolled.progress.total_lessons == 0 or not enrolled.lessons:
            continue

        ratio = enrolled.progress.completion_ratio
        if best is not None and ratio >= best.completion_ratio:
            continue

        completed_ids = {
            entry.lesson_id for entry in enrolled.progress.lessons if entry.completed
        }
        lesson = resume_candidate(enrolled.lessons, completed_ids)
        if lesson is None:
            continue

        best = ResumeTarget(
            course_id=enrolled.course.id,
            course_title=enrolled.course.title,
            lesson_id=lesson.id,
            lesson_title=lesson.title,
            completion_ratio=ratio,
        )

    return best
