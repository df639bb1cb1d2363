"""
SQLAlchemy implementations of the repository protocols.

Repositories flush but never commit; the caller owns the transaction
(see lesson_scheduler.database.get_db / get_db_context).
"""

import logging
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, delete, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from lesson_scheduler.errors import LessonExceptionAlreadyExistsError
from lesson_scheduler.models.lessons import (
    Lesson,
    LessonParticipant,
    LessonException,
    TEACHER_ROLE,
)
from lesson_scheduler.services.occurrence_exceptions import OccurrenceException

logger = logging.getLogger(__name__)

# Messages identifying the (lesson_id, original_date) uniqueness violation
_UNIQUE_EXCEPTION_MARKERS = (
    "uq_lesson_exception_original_date",
    "UNIQUE constraint failed: lesson_exceptions.lesson_id, lesson_exceptions.original_date",
)


class SQLAlchemyLessonRepository:
    """Lesson storage in the local database."""

    def __init__(self, session: Session):
        self.session = session

    def find_for_teacher_in_window(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
    ) -> Sequence[Lesson]:
        stmt = (
            select(Lesson)
            .join(LessonParticipant, LessonParticipant.lesson_id == Lesson.id)
            .where(
                and_(
                    LessonParticipant.user_id == user_id,
                    LessonParticipant.role == TEACHER_ROLE,
                    Lesson.deleted_at.is_(None),
                    # Series that started by the window end and has not ended before it
                    Lesson.start_time <= end,
                    or_(Lesson.series_end.is_(None), Lesson.series_end >= start),
                )
            )
            .options(selectinload(Lesson.participants))
            .order_by(Lesson.start_time, Lesson.id)
        )

        return self.session.scalars(stmt).all()

    def find_by_id(self, lesson_id: UUID) -> Optional[Lesson]:
        stmt = (
            select(Lesson)
            .where(
                and_(
                    Lesson.id == lesson_id,
                    Lesson.deleted_at.is_(None),
                )
            )
            .options(selectinload(Lesson.participants))
        )

        return self.session.scalar(stmt)

    def save(self, lesson: Lesson) -> Lesson:
        self.session.add(lesson)
        self.session.flush()
        return lesson

    def delete(self, lesson_id: UUID) -> bool:
        lesson = self.find_by_id(lesson_id)
        if lesson is None:
            return False

        lesson.soft_delete()
        self.session.flush()
        logger.info(f"Soft-deleted lesson {lesson_id}")
        return True


class SQLAlchemyOccurrenceExceptionRepository:
    """Occurrence exception storage in the local database."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_lesson_ids_and_date_range(
        self,
        lesson_ids: Sequence[UUID],
        start: datetime,
        end: datetime,
    ) -> Sequence[OccurrenceException]:
        if not lesson_ids:
            return []

        stmt = (
            select(LessonException)
            .where(
                and_(
                    LessonException.lesson_id.in_(list(lesson_ids)),
                    LessonException.original_date >= start,
                    LessonException.original_date <= end,
                )
            )
            .order_by(LessonException.original_date)
        )

        return [row.to_domain() for row in self.session.scalars(stmt).all()]

    def find_by_lesson_and_date(
        self,
        lesson_id: UUID,
        original_date: datetime,
    ) -> Optional[OccurrenceException]:
        stmt = select(LessonException).where(
            and_(
                LessonException.lesson_id == lesson_id,
                LessonException.original_date == original_date,
            )
        )

        row = self.session.scalar(stmt)
        return row.to_domain() if row else None

    def find_by_id(self, exception_id: UUID) -> Optional[OccurrenceException]:
        row = self.session.get(LessonException, exception_id)
        return row.to_domain() if row else None

    def create(self, exception: OccurrenceException) -> OccurrenceException:
        # Savepoint: a rejected insert leaves the caller's transaction intact
        try:
            with self.session.begin_nested():
                self.session.add(LessonException.from_domain(exception))
                self.session.flush()
        except IntegrityError as e:
            if any(marker in str(e.orig) for marker in _UNIQUE_EXCEPTION_MARKERS):
                raise LessonExceptionAlreadyExistsError(
                    exception.lesson_id, exception.original_date
                ) from e
            raise

        return exception

    def delete(self, exception_id: UUID) -> bool:
        row = self.session.get(LessonException, exception_id)
        if row is None:
            return False

        self.session.delete(row)
        self.session.flush()
        return True

    def delete_by_lesson_id(self, lesson_id: UUID) -> int:
        result = self.session.execute(
            delete(LessonException).where(LessonException.lesson_id == lesson_id)
        )
        return result.rowcount
