"""Tests for the dashboard resume selector."""

from uuid import uuid4

from src.courses.models import Course, Lesson
from src.progress.aggregator import aggregate_course_progress
from src.progress.models import ProgressRecord
from src.progress.resume import EnrolledCourse, select_resume_target


USER_ID = uuid4()


def enrolled(title: str, lesson_count: int, completed: int = 0) -> EnrolledCourse:
    course = Course(title=title)
    lessons = [
        Lesson(course_id=course.id, title=f"{title} {i + 1}", order_key=i + 1)
        for i in range(lesson_count)
    ]
    records = [
        ProgressRecord(user_id=USER_ID, course_id=course.id, lesson_id=lesson.id)
        for lesson in lessons[:completed]
    ]
    return EnrolledCourse(
        course=course,
        lessons=lessons,
        progress=aggregate_course_progress(course.id, lessons, records),
    )


def test_lowest_ratio_wins() -> None:
    """Ratio 0.5 vs 0.2: the 0.2 course's first incomplete lesson."""
    first = enrolled("Stocks", 2, completed=1)
    second = enrolled("Bonds", 5, completed=1)

    target = select_resume_target([first, second])

    assert target.course_id == second.course.id
    assert target.lesson_id == second.lessons[1].id
    assert target.lesson_title == "Bonds 2"
    assert target.completion_ratio == 0.2


def test_ties_go_to_first_seen() -> None:
    first = enrolled("Stocks", 2)
    second = enrolled("Bonds", 4)

    assert select_resume_target([first, second]).course_id == first.course.id
    assert select_resume_target([second, first]).course_id == second.course.id


def test_courses_without_lessons_are_never_targets() -> None:
    empty = enrolled("Empty", 0)
    done = enrolled("Done", 1, completed=1)

    target = select_resume_target([empty, done])

    assert target.course_id == done.course.id


def test_completed_course_resumes_on_last_lesson() -> None:
    done = enrolled("Done", 3, completed=3)

    target = select_resume_target([done])

    assert target.lesson_id == done.lessons[-1].id
    assert target.completion_ratio == 1


def test_no_target_without_lessons() -> None:
    assert select_resume_target([]) is None
    assert select_resume_target([enrolled("Empty", 0), enrolled("Void", 0)]) is None
