"""
Period query service.

Answers "which lesson occurrences does this teacher have between A and B":
loads the teacher's lessons and their exceptions in two bulk reads,
expands each lesson, then merges everything into one ordered list.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional, Sequence, TYPE_CHECKING
from uuid import UUID

from lesson_scheduler.config import get_settings
from lesson_scheduler.errors import InvalidPeriodError
from lesson_scheduler.services.occurrence_exceptions import OccurrenceException
from lesson_scheduler.services.occurrences import Occurrence, generate_occurrences

if TYPE_CHECKING:
    from lesson_scheduler.repositories.base import (
        LessonRepository,
        OccurrenceExceptionRepository,
    )

logger = logging.getLogger(__name__)


def occurrence_sort_key(occurrence: Occurrence) -> tuple:
    """Order by start, then lesson identity, then original start."""
    return (occurrence.start_time, str(occurrence.lesson_id), occurrence.original_start)


def group_exceptions_by_lesson(
    exceptions: Sequence[OccurrenceException],
) -> dict[UUID, list[OccurrenceException]]:
    """Group exceptions by the lesson they belong to."""
    grouped: dict[UUID, list[OccurrenceException]] = defaultdict(list)
    for exception in exceptions:
        grouped[exception.lesson_id].append(exception)
    return grouped


class PeriodQueryService:
    """
    Read-only occurrence queries across all of a teacher's lessons.

    Repository failures propagate unchanged; nothing is returned partially.
    """

    def __init__(
        self,
        lesson_repository: "LessonRepository",
        exception_repository: "OccurrenceExceptionRepository",
        max_window: Optional[timedelta] = None,
    ):
        self._lessons = lesson_repository
        self._exceptions = exception_repository
        if max_window is None:
            max_window = timedelta(days=get_settings().max_query_window_days)
        self._max_window = max_window

    def _validate_window(self, window_start: datetime, window_end: datetime) -> None:
        if window_end < window_start:
            raise InvalidPeriodError(
                f"Period end {window_end.isoformat()} is before its start {window_start.isoformat()}"
            )
        if window_end - window_start > self._max_window:
            raise InvalidPeriodError(
                f"Period may span at most {self._max_window.days} days"
            )

    def occurrences_for_period(
        self,
        user_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Occurrence]:
        """
        Get the occurrences of every lesson a user teaches within a window.

        Args:
            user_id: Teacher's user ID
            window_start: Window start (inclusive)
            window_end: Window end (inclusive)

        Returns:
            Occurrences sorted by start time; ties ordered by lesson ID

        Raises:
            InvalidPeriodError: If the window is inverted or too long
        """
        self._validate_window(window_start, window_end)

        lessons = self._lessons.find_for_teacher_in_window(user_id, window_start, window_end)
        if not lessons:
            return []

        exceptions = self._exceptions.find_by_lesson_ids_and_date_range(
            [lesson.id for lesson in lessons],
            window_start,
            window_end,
        )
        exceptions_by_lesson = group_exceptions_by_lesson(exceptions)

        occurrences = [
            occurrence
            for lesson in lessons
            for occurrence in generate_occurrences(
                lesson,
                exceptions_by_lesson.get(lesson.id, []),
                window_start,
                window_end,
            )
        ]
        occurrences.sort(key=occurrence_sort_key)

        logger.info(
            f"Found {len(occurrences)} occurrences from {len(lessons)} lessons "
            f"for user {user_id} between {window_start} and {window_end}"
        )

        return occurrences
