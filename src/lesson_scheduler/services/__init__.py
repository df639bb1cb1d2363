"""
Service layer for Lesson Scheduler.

Provides scheduling logic for:
- Recurrence patterns and candidate expansion
- Occurrence exceptions (skip, reschedule, modify)
- Occurrence generation for a query window
- Period queries across a teacher's lessons
- Exception mutations and lesson edits
"""

from lesson_scheduler.services.recurrence import (
    Candidate,
    Frequency,
    RecurrencePattern,
    Termination,
    Weekday,
)

from lesson_scheduler.services.occurrence_exceptions import (
    ExceptionType,
    OccurrenceException,
    OccurrenceModifications,
)

from lesson_scheduler.services.occurrences import (
    Occurrence,
    generate_occurrences,
)

from lesson_scheduler.services.period_query import (
    PeriodQueryService,
    group_exceptions_by_lesson,
    occurrence_sort_key,
)

from lesson_scheduler.services.lesson_exceptions import (
    LessonEdit,
    LessonExceptionService,
)

__all__ = [
    # Recurrence
    "Candidate",
    "Frequency",
    "RecurrencePattern",
    "Termination",
    "Weekday",
    # Exceptions
    "ExceptionType",
    "OccurrenceException",
    "OccurrenceModifications",
    # Generation
    "Occurrence",
    "generate_occurrences",
    # Period queries
    "PeriodQueryService",
    "group_exceptions_by_lesson",
    "occurrence_sort_key",
    # Mutations
    "LessonEdit",
    "LessonExceptionService",
]
