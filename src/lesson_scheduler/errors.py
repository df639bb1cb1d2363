"""
Domain errors for lesson scheduling.

Three families:
- Construction invariants (invalid patterns, invalid exceptions, invalid lessons)
- Preconditions checked by mutation operations after a read
- Query arguments (invalid periods)

Storage failures are not wrapped here; they propagate as raised by SQLAlchemy.
"""

from datetime import datetime
from uuid import UUID


class SchedulingError(Exception):
    """Base exception for scheduling operations."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# =============================================================================
# Construction invariants
# =============================================================================


class InvalidRecurrencePatternError(SchedulingError):
    """
    Recurrence pattern violates its invariants.

    Causes:
    - Interval or occurrence count below 1
    - Both an end date and an occurrence count
    - Days of week on a non-weekly pattern, or duplicated days
    - End date before the lesson start
    """


class InvalidExceptionError(SchedulingError):
    """
    Occurrence exception violates the invariants of its type.

    Causes:
    - SKIP carrying a new date or modifications
    - RESCHEDULE without a new date, or with modifications
    - MODIFY without modifications, or with a new date
    """


class SameDateRescheduleError(InvalidExceptionError):
    """Reschedule target equals the original occurrence date."""

    def __init__(self, original_date: datetime):
        super().__init__(
            f"Cannot reschedule occurrence {original_date.isoformat()} to the same date."
        )
        self.original_date = original_date


class InvalidLessonError(SchedulingError):
    """Lesson fields are inconsistent (e.g. end before start)."""


# =============================================================================
# Preconditions
# =============================================================================


class LessonNotFoundError(SchedulingError):
    """Lesson does not exist or was deleted."""

    def __init__(self, lesson_id: UUID):
        super().__init__(f"Lesson with ID {lesson_id} not found.")
        self.lesson_id = lesson_id


class LessonNotRecurringError(SchedulingError):
    """Occurrence-level changes require a recurring lesson."""

    def __init__(self, lesson_id: UUID):
        super().__init__(f"Lesson {lesson_id} is not recurring.")
        self.lesson_id = lesson_id


class LessonExceptionAlreadyExistsError(SchedulingError):
    """An exception is already stored for this lesson occurrence."""

    def __init__(self, lesson_id: UUID, original_date: datetime):
        super().__init__(
            f"Exception already exists for lesson {lesson_id} on {original_date.isoformat()}."
        )
        self.lesson_id = lesson_id
        self.original_date = original_date


class ExceptionNotFoundError(SchedulingError):
    """Occurrence exception does not exist for the given lesson."""

    def __init__(self, exception_id: UUID):
        super().__init__(f"Occurrence exception with ID {exception_id} not found.")
        self.exception_id = exception_id


class InvalidPeriodError(SchedulingError):
    """Query window is empty, inverted, or too long."""
