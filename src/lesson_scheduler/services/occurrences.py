"""
Occurrence generation.

Projects one lesson (its recurrence pattern plus its stored exceptions)
onto a query window, producing the concrete occurrences in that window.
Pure and side-effect free: lessons can be expanded independently.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Sequence, TYPE_CHECKING

from lesson_scheduler.services.occurrence_exceptions import (
    ExceptionType,
    OccurrenceException,
)

if TYPE_CHECKING:
    from lesson_scheduler.models.lessons import Lesson

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Occurrence:
    """
    A single concrete occurrence of a lesson. Never persisted.

    original_start is the pattern-generated start this occurrence came
    from; it differs from start_time for rescheduled occurrences and
    modified ones that moved.
    """

    lesson_id: uuid.UUID
    title: str
    start_time: datetime
    end_time: datetime
    original_start: datetime
    description: Optional[str] = None
    teacher_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)
    pupil_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)
    exception_type: Optional[ExceptionType] = None

    @property
    def duration_minutes(self) -> int:
        """Occurrence duration in minutes."""
        delta = self.end_time - self.start_time
        return int(delta.total_seconds() / 60)

    @property
    def is_exception(self) -> bool:
        """Whether a stored exception shaped this occurrence."""
        return self.exception_type is not None


def _base_occurrence(lesson: "Lesson", start: datetime) -> Occurrence:
    return Occurrence(
        lesson_id=lesson.id,
        title=lesson.title,
        description=lesson.description,
        teacher_ids=tuple(lesson.teacher_ids),
        pupil_ids=tuple(lesson.pupil_ids),
        start_time=start,
        end_time=start + lesson.duration,
        original_start=start,
    )


def _rescheduled_occurrence(lesson: "Lesson", exception: OccurrenceException) -> Occurrence:
    return replace(
        _base_occurrence(lesson, exception.new_date),
        original_start=exception.original_date,
        exception_type=ExceptionType.RESCHEDULE,
    )


def _modified_occurrence(
    lesson: "Lesson",
    candidate_start: datetime,
    exception: OccurrenceException,
) -> Occurrence:
    mods = exception.modifications
    start = mods.start_time or candidate_start
    # An overridden start without an end keeps the lesson's duration.
    end = mods.end_time or start + lesson.duration

    return Occurrence(
        lesson_id=lesson.id,
        title=mods.title if mods.title is not None else lesson.title,
        description=mods.description if mods.description is not None else lesson.description,
        teacher_ids=mods.teacher_ids if mods.teacher_ids is not None else tuple(lesson.teacher_ids),
        pupil_ids=mods.pupil_ids if mods.pupil_ids is not None else tuple(lesson.pupil_ids),
        start_time=start,
        end_time=end,
        original_start=candidate_start,
        exception_type=ExceptionType.MODIFY,
    )


def generate_occurrences(
    lesson: "Lesson",
    exceptions: Sequence[OccurrenceException],
    window_start: datetime,
    window_end: datetime,
) -> list[Occurrence]:
    """
    Expand a lesson into its occurrences for a window.

    One-off lessons yield their single occurrence if it overlaps the
    window; exceptions never apply to them. Recurring lessons yield one
    occurrence per pattern candidate starting in the window, with stored
    exceptions overlaid:
    - SKIP: candidate omitted
    - RESCHEDULE: emitted at new_date with the lesson duration, even if
      new_date is outside the window
    - MODIFY: emitted at the candidate with field overrides applied

    Exceptions are matched to candidates by exact start instant. A
    reschedule whose original date lies outside the window is not found.

    Args:
        lesson: Lesson to expand
        exceptions: Stored exceptions of this lesson
        window_start: Window start (inclusive)
        window_end: Window end (inclusive)

    Returns:
        Occurrences of this lesson, in no particular order
    """
    pattern = lesson.recurrence_pattern

    if pattern is None:
        if lesson.start_time <= window_end and lesson.end_time >= window_start:
            return [_base_occurrence(lesson, lesson.start_time)]
        return []

    by_original_date = {exception.original_date: exception for exception in exceptions}
    occurrences = []

    for candidate in pattern.candidates(lesson.start_time, window_start, window_end):
        exception = by_original_date.get(candidate.start)

        if exception is None:
            occurrences.append(_base_occurrence(lesson, candidate.start))
        elif exception.type == ExceptionType.SKIP:
            continue
        elif exception.type == ExceptionType.RESCHEDULE:
            occurrences.append(_rescheduled_occurrence(lesson, exception))
        else:
            occurrences.append(_modified_occurrence(lesson, candidate.start, exception))

    logger.debug(
        f"Expanded lesson {lesson.id} into {len(occurrences)} occurrences "
        f"({len(by_original_date)} exceptions) for {window_start} - {window_end}"
    )

    return occurrences
