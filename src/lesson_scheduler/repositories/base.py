"""
Repository protocols for lessons and occurrence exceptions.

Defines the storage contracts the scheduling services depend on.
"""

from abc import abstractmethod
from datetime import datetime
from typing import Optional, Protocol, Sequence, TYPE_CHECKING
from uuid import UUID

from lesson_scheduler.services.occurrence_exceptions import OccurrenceException

if TYPE_CHECKING:
    from lesson_scheduler.models.lessons import Lesson


class LessonRepository(Protocol):
    """
    Protocol for lesson storage.

    Implementations:
    - SQLAlchemyLessonRepository: Uses the local database
    """

    @abstractmethod
    def find_for_teacher_in_window(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
    ) -> Sequence["Lesson"]:
        """
        Get non-deleted lessons taught by a user whose series overlaps a window.

        Args:
            user_id: Teacher's user ID
            start: Window start (inclusive)
            end: Window end (inclusive)

        Returns:
            Lessons with participants loaded, in one round trip
        """
        ...

    @abstractmethod
    def find_by_id(self, lesson_id: UUID) -> Optional["Lesson"]:
        """
        Get a non-deleted lesson by ID.

        Returns:
            Lesson or None if not found
        """
        ...

    @abstractmethod
    def save(self, lesson: "Lesson") -> "Lesson":
        """Persist a new or edited lesson."""
        ...

    @abstractmethod
    def delete(self, lesson_id: UUID) -> bool:
        """
        Soft-delete a lesson.

        Returns:
            True if deleted, False if not found
        """
        ...


class OccurrenceExceptionRepository(Protocol):
    """
    Protocol for occurrence exception storage.

    Only deviations from a pattern are stored (sparse overlay).
    """

    @abstractmethod
    def find_by_lesson_ids_and_date_range(
        self,
        lesson_ids: Sequence[UUID],
        start: datetime,
        end: datetime,
    ) -> Sequence[OccurrenceException]:
        """
        Get exceptions of several lessons whose original date is in a window.

        One query regardless of the number of lessons.

        Args:
            lesson_ids: Lessons to query
            start: Window start (inclusive)
            end: Window end (inclusive)

        Returns:
            Exceptions ordered by original date
        """
        ...

    @abstractmethod
    def find_by_lesson_and_date(
        self,
        lesson_id: UUID,
        original_date: datetime,
    ) -> Optional[OccurrenceException]:
        """Get the exception for one occurrence, or None."""
        ...

    @abstractmethod
    def find_by_id(self, exception_id: UUID) -> Optional[OccurrenceException]:
        """Get an exception by ID, or None."""
        ...

    @abstractmethod
    def create(self, exception: OccurrenceException) -> OccurrenceException:
        """
        Store a new exception.

        Raises:
            LessonExceptionAlreadyExistsError: If one already exists for the
                same lesson and original date
        """
        ...

    @abstractmethod
    def delete(self, exception_id: UUID) -> bool:
        """
        Delete one exception, restoring the original occurrence.

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    def delete_by_lesson_id(self, lesson_id: UUID) -> int:
        """
        Delete all exceptions of a lesson.

        Returns:
            Number of exceptions deleted
        """
        ...
