"""
Unit tests for occurrence generation.

Tests expansion of one lesson plus its exceptions into a window.
"""

import uuid
from datetime import datetime, timedelta

import pytest

from lesson_scheduler.services.occurrence_exceptions import (
    ExceptionType,
    OccurrenceException,
    OccurrenceModifications,
)
from lesson_scheduler.services.occurrences import Occurrence, generate_occurrences
from lesson_scheduler.services.recurrence import RecurrencePattern

JAN_1 = datetime(2024, 1, 1)
JAN_31 = datetime(2024, 1, 31, 23, 59)


@pytest.fixture
def weekly(make_lesson):
    """Mondays at 10:00 for one hour, from 2024-01-01."""
    return make_lesson(recurrence_pattern=RecurrencePattern.weekly())


class TestOneOffLessons:
    """Test non-recurring lessons."""

    def test_inside_window(self, make_lesson, teacher_id, pupil_id):
        lesson = make_lesson(start_time=datetime(2024, 1, 3, 14, 0))

        result = generate_occurrences(lesson, [], JAN_1, JAN_31)

        assert result == [
            Occurrence(
                lesson_id=lesson.id,
                title="Piano",
                start_time=datetime(2024, 1, 3, 14, 0),
                end_time=datetime(2024, 1, 3, 15, 0),
                original_start=datetime(2024, 1, 3, 14, 0),
                teacher_ids=(teacher_id,),
                pupil_ids=(pupil_id,),
            )
        ]

    def test_outside_window(self, make_lesson):
        lesson = make_lesson(start_time=datetime(2024, 2, 3, 14, 0))

        assert generate_occurrences(lesson, [], JAN_1, JAN_31) == []

    def test_overlapping_window_start(self, make_lesson):
        lesson = make_lesson(start_time=datetime(2023, 12, 31, 23, 30))

        result = generate_occurrences(lesson, [], JAN_1, JAN_31)

        assert len(result) == 1

    def test_exceptions_ignored(self, make_lesson):
        lesson = make_lesson(start_time=datetime(2024, 1, 3, 14, 0))
        skip = OccurrenceException.skip(lesson.id, lesson.start_time)

        result = generate_occurrences(lesson, [skip], JAN_1, JAN_31)

        assert len(result) == 1
        assert result[0].exception_type is None


class TestRecurringLessons:
    """Test pattern expansion with exceptions overlaid."""

    def test_no_exceptions(self, weekly):
        result = generate_occurrences(weekly, [], JAN_1, JAN_31)

        assert [o.start_time.day for o in result] == [1, 8, 15, 22, 29]
        assert all(o.duration_minutes == 60 for o in result)
        assert not any(o.is_exception for o in result)

    def test_skip_removes_exactly_one(self, weekly):
        skip = OccurrenceException.skip(weekly.id, datetime(2024, 1, 15, 10, 0))

        result = generate_occurrences(weekly, [skip], JAN_1, JAN_31)

        assert [o.start_time.day for o in result] == [1, 8, 22, 29]

    def test_reschedule_keeps_duration(self, weekly):
        reschedule = OccurrenceException.reschedule(
            weekly.id, datetime(2024, 1, 8, 10, 0), datetime(2024, 1, 10, 16, 30)
        )

        result = generate_occurrences(weekly, [reschedule], JAN_1, JAN_31)
        moved = [o for o in result if o.exception_type == ExceptionType.RESCHEDULE]

        assert len(result) == 5
        assert len(moved) == 1
        assert moved[0].start_time == datetime(2024, 1, 10, 16, 30)
        assert moved[0].end_time == datetime(2024, 1, 10, 17, 30)
        assert moved[0].original_start == datetime(2024, 1, 8, 10, 0)

    def test_reschedule_outside_window_is_emitted(self, weekly):
        reschedule = OccurrenceException.reschedule(
            weekly.id, datetime(2024, 1, 29, 10, 0), datetime(2024, 2, 2, 10, 0)
        )

        result = generate_occurrences(weekly, [reschedule], JAN_1, JAN_31)

        assert result[-1].start_time == datetime(2024, 2, 2, 10, 0)

    def test_reschedule_into_window_from_outside_is_not_found(self, weekly):
        reschedule = OccurrenceException.reschedule(
            weekly.id, datetime(2024, 2, 5, 10, 0), datetime(2024, 1, 30, 10, 0)
        )

        result = generate_occurrences(weekly, [reschedule], JAN_1, JAN_31)

        assert datetime(2024, 1, 30, 10, 0) not in [o.start_time for o in result]

    def test_modify_overrides_fields(self, weekly):
        other_teacher = uuid.uuid4()
        modify = OccurrenceException.modify(
            weekly.id,
            datetime(2024, 1, 22, 10, 0),
            OccurrenceModifications(title="Exam", teacher_ids=(other_teacher,)),
        )

        result = generate_occurrences(weekly, [modify], JAN_1, JAN_31)
        modified = next(o for o in result if o.is_exception)

        assert modified.title == "Exam"
        assert modified.teacher_ids == (other_teacher,)
        assert modified.pupil_ids == tuple(weekly.pupil_ids)
        assert modified.start_time == datetime(2024, 1, 22, 10, 0)
        assert modified.exception_type == ExceptionType.MODIFY

    def test_modify_start_keeps_duration(self, weekly):
        modify = OccurrenceException.modify(
            weekly.id,
            datetime(2024, 1, 22, 10, 0),
            OccurrenceModifications(start_time=datetime(2024, 1, 22, 13, 0)),
        )

        modified = next(
            o for o in generate_occurrences(weekly, [modify], JAN_1, JAN_31) if o.is_exception
        )

        assert modified.end_time == datetime(2024, 1, 22, 14, 0)
        assert modified.original_start == datetime(2024, 1, 22, 10, 0)

    def test_modify_end_time(self, weekly):
        modify = OccurrenceException.modify(
            weekly.id,
            datetime(2024, 1, 22, 10, 0),
            OccurrenceModifications(end_time=datetime(2024, 1, 22, 11, 30)),
        )

        modified = next(
            o for o in generate_occurrences(weekly, [modify], JAN_1, JAN_31) if o.is_exception
        )

        assert modified.duration_minutes == 90

    def test_exception_not_on_candidate_is_ignored(self, weekly):
        stray = OccurrenceException.skip(weekly.id, datetime(2024, 1, 9, 10, 0))

        result = generate_occurrences(weekly, [stray], JAN_1, JAN_31)

        assert len(result) == 5

    def test_count_limits_series(self, make_lesson):
        lesson = make_lesson(recurrence_pattern=RecurrencePattern.weekly(count=2))

        result = generate_occurrences(lesson, [], JAN_1, JAN_31)

        assert [o.start_time.day for o in result] == [1, 8]
