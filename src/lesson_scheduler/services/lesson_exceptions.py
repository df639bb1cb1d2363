"""
Occurrence-level changes to recurring lessons.

Operations:
- skip / reschedule / modify: store a new exception for one occurrence
- restore: delete one exception, bringing back the pattern occurrence
- edit_lesson: replace a lesson's fields, clearing exceptions whose
  original dates no longer line up with the series
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from uuid import UUID

from lesson_scheduler.errors import (
    ExceptionNotFoundError,
    LessonExceptionAlreadyExistsError,
    LessonNotFoundError,
    LessonNotRecurringError,
)
from lesson_scheduler.services.occurrence_exceptions import (
    OccurrenceException,
    OccurrenceModifications,
)
from lesson_scheduler.services.recurrence import RecurrencePattern

if TYPE_CHECKING:
    from lesson_scheduler.models.lessons import Lesson
    from lesson_scheduler.repositories.base import (
        LessonRepository,
        OccurrenceExceptionRepository,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonEdit:
    """Full replacement of a lesson's editable fields."""

    title: str
    start_time: datetime
    end_time: datetime
    teacher_ids: tuple[UUID, ...] = field(default_factory=tuple)
    pupil_ids: tuple[UUID, ...] = field(default_factory=tuple)
    description: Optional[str] = None
    recurrence_pattern: Optional[RecurrencePattern] = None


class LessonExceptionService:
    """
    Mutations of a lesson's exception overlay.

    Every operation validates before writing and writes at most once;
    a failed precondition leaves storage untouched.
    """

    def __init__(
        self,
        lesson_repository: "LessonRepository",
        exception_repository: "OccurrenceExceptionRepository",
    ):
        self._lessons = lesson_repository
        self._exceptions = exception_repository

    def _get_recurring_lesson(self, lesson_id: UUID) -> "Lesson":
        lesson = self._lessons.find_by_id(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        if not lesson.is_recurring:
            raise LessonNotRecurringError(lesson_id)
        return lesson

    def _ensure_no_exception(self, lesson_id: UUID, original_date: datetime) -> None:
        if self._exceptions.find_by_lesson_and_date(lesson_id, original_date) is not None:
            raise LessonExceptionAlreadyExistsError(lesson_id, original_date)

    def _add(self, exception: OccurrenceException) -> OccurrenceException:
        created = self._exceptions.create(exception)
        logger.info(
            f"Created {created.type.value} exception {created.id} for lesson "
            f"{created.lesson_id} at {created.original_date.isoformat()}"
        )
        return created

    def skip(self, lesson_id: UUID, occurrence_date: datetime) -> OccurrenceException:
        """
        Mark one occurrence of a recurring lesson as skipped.

        Args:
            lesson_id: Recurring lesson
            occurrence_date: Pattern-generated start of the occurrence

        Returns:
            The stored SKIP exception

        Raises:
            LessonNotFoundError: If the lesson does not exist
            LessonNotRecurringError: If the lesson has no recurrence pattern
            LessonExceptionAlreadyExistsError: If the occurrence already has an exception
        """
        self._get_recurring_lesson(lesson_id)
        self._ensure_no_exception(lesson_id, occurrence_date)
        return self._add(OccurrenceException.skip(lesson_id, occurrence_date))

    def reschedule(
        self,
        lesson_id: UUID,
        original_date: datetime,
        new_date: datetime,
    ) -> OccurrenceException:
        """
        Move one occurrence of a recurring lesson to a new start.

        Raises:
            LessonNotFoundError: If the lesson does not exist
            LessonNotRecurringError: If the lesson has no recurrence pattern
            LessonExceptionAlreadyExistsError: If the occurrence already has an exception
            SameDateRescheduleError: If new_date equals original_date
        """
        self._get_recurring_lesson(lesson_id)
        self._ensure_no_exception(lesson_id, original_date)
        return self._add(OccurrenceException.reschedule(lesson_id, original_date, new_date))

    def modify(
        self,
        lesson_id: UUID,
        original_date: datetime,
        modifications: OccurrenceModifications,
    ) -> OccurrenceException:
        """
        Override fields of one occurrence of a recurring lesson.

        Raises:
            LessonNotFoundError: If the lesson does not exist
            LessonNotRecurringError: If the lesson has no recurrence pattern
            LessonExceptionAlreadyExistsError: If the occurrence already has an exception
            InvalidExceptionError: If no field is overridden
        """
        self._get_recurring_lesson(lesson_id)
        self._ensure_no_exception(lesson_id, original_date)
        return self._add(OccurrenceException.modify(lesson_id, original_date, modifications))

    def restore(self, lesson_id: UUID, exception_id: UUID) -> None:
        """
        Delete one exception, restoring the pattern occurrence.

        Raises:
            LessonNotFoundError: If the lesson does not exist
            ExceptionNotFoundError: If the exception does not exist for this lesson
        """
        if self._lessons.find_by_id(lesson_id) is None:
            raise LessonNotFoundError(lesson_id)

        exception = self._exceptions.find_by_id(exception_id)
        if exception is None or exception.lesson_id != lesson_id:
            raise ExceptionNotFoundError(exception_id)

        self._exceptions.delete(exception_id)
        logger.info(f"Deleted {exception.type.value} exception {exception_id} of lesson {lesson_id}")

    def edit_lesson(self, lesson_id: UUID, changes: LessonEdit) -> "Lesson":
        """
        Replace a lesson's fields.

        When the recurrence pattern is replaced, added or removed, or a
        recurring lesson's start moves, all of its exceptions are deleted
        before the lesson is saved.

        Raises:
            LessonNotFoundError: If the lesson does not exist
            InvalidLessonError: If the end is not after the start
            InvalidRecurrencePatternError: If the pattern ends before the lesson starts
        """
        lesson = self._lessons.find_by_id(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)

        series_changed = lesson.edit(
            title=changes.title,
            description=changes.description,
            teacher_ids=changes.teacher_ids,
            pupil_ids=changes.pupil_ids,
            start_time=changes.start_time,
            end_time=changes.end_time,
            recurrence_pattern=changes.recurrence_pattern,
        )

        if series_changed:
            deleted = self._exceptions.delete_by_lesson_id(lesson_id)
            logger.info(f"Series of lesson {lesson_id} changed; deleted {deleted} exceptions")

        saved = self._lessons.save(lesson)
        logger.info(f"Edited lesson {lesson_id}")
        return saved
