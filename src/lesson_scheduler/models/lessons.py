"""
Lesson, LessonParticipant and LessonException models.

Entities:
- Lesson: Base definition of a (possibly recurring) lesson
- LessonParticipant: Teacher or pupil attached to a lesson, in order
- LessonException: Stored deviation from a recurring lesson's pattern
"""

import uuid
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lesson_scheduler.errors import InvalidLessonError
from lesson_scheduler.models.base import BaseModel, get_json_type
from lesson_scheduler.services.occurrence_exceptions import (
    ExceptionType,
    OccurrenceException,
    OccurrenceModifications,
)
from lesson_scheduler.services.recurrence import RecurrencePattern, Termination

TEACHER_ROLE = "teacher"
PUPIL_ROLE = "pupil"


class Lesson(BaseModel):
    """
    Represents a lesson and, when recurring, its whole series.

    The lesson's own start/end are the anchor of the series: they fix the
    first candidate date, the time of day and the duration of every
    occurrence. Occurrences are expanded on demand and never stored; only
    deviations are stored as LessonException rows.

    Key features:
    - Ordered teacher and pupil lists (via LessonParticipant)
    - Optional recurrence pattern stored as JSON
    - series_end: last instant the series can cover (NULL if never-ending),
      kept in sync with the pattern for window queries
    - Soft deletion excludes the lesson from future generation
    """

    __tablename__ = "lessons"

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Lesson title"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Detailed lesson description"
    )

    # Timing (anchor of the series)
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Start of the first occurrence"
    )

    end_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="End of the first occurrence"
    )

    recurrence: Mapped[Optional[dict]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Serialized RecurrencePattern (NULL for one-off lessons)"
    )

    series_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="End of the last possible occurrence (NULL for never-ending series)"
    )

    participants: Mapped[list["LessonParticipant"]] = relationship(
        "LessonParticipant",
        back_populates="lesson",
        cascade="all, delete-orphan",
        order_by="LessonParticipant.position",
        doc="Teachers and pupils of the lesson"
    )

    exceptions: Mapped[list["LessonException"]] = relationship(
        "LessonException",
        back_populates="lesson",
        cascade="all, delete-orphan",
        passive_deletes=True,
        doc="Stored deviations from the recurrence pattern"
    )

    __table_args__ = (
        Index("idx_lesson_start_time", "start_time"),
        Index("idx_lesson_series_end", "series_end"),
        Index("idx_lesson_deleted", "deleted_at"),
        Index("idx_lesson_time_range", "start_time", "series_end"),
    )

    def __init__(
        self,
        *,
        recurrence_pattern: Optional[RecurrencePattern] = None,
        teacher_ids: Iterable[uuid.UUID] = (),
        pupil_ids: Iterable[uuid.UUID] = (),
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.set_participants(teacher_ids, pupil_ids)
        self.recurrence_pattern = recurrence_pattern

    # -------------------------------------------------------------------------
    # Participants
    # -------------------------------------------------------------------------

    @property
    def teacher_ids(self) -> list[uuid.UUID]:
        """Teacher IDs in their stored order."""
        return [p.user_id for p in self.participants if p.role == TEACHER_ROLE]

    @property
    def pupil_ids(self) -> list[uuid.UUID]:
        """Pupil IDs in their stored order."""
        return [p.user_id for p in self.participants if p.role == PUPIL_ROLE]

    def set_participants(
        self,
        teacher_ids: Iterable[uuid.UUID],
        pupil_ids: Iterable[uuid.UUID],
    ) -> None:
        """
        Replace teachers and pupils, keeping rows for people who stay.

        Duplicate IDs within a role are collapsed to their first position.
        """
        existing = {(p.role, p.user_id): p for p in self.participants}
        participants = []

        for role, user_ids in ((TEACHER_ROLE, teacher_ids), (PUPIL_ROLE, pupil_ids)):
            seen = set()
            for user_id in user_ids:
                if user_id in seen:
                    continue
                seen.add(user_id)
                participant = existing.get((role, user_id))
                if participant is None:
                    participant = LessonParticipant(user_id=user_id, role=role)
                participant.position = len(participants)
                participants.append(participant)

        self.participants = participants

    # -------------------------------------------------------------------------
    # Recurrence
    # -------------------------------------------------------------------------

    @property
    def recurrence_pattern(self) -> Optional[RecurrencePattern]:
        """Recurrence pattern, or None for a one-off lesson."""
        if not self.recurrence:
            return None
        return RecurrencePattern.from_dict(self.recurrence)

    @recurrence_pattern.setter
    def recurrence_pattern(self, pattern: Optional[RecurrencePattern]) -> None:
        self.recurrence = pattern.to_dict() if pattern else None
        self.refresh_series_end()

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def refresh_series_end(self) -> None:
        """Recompute series_end from the anchor and the pattern."""
        pattern = self.recurrence_pattern
        if self.start_time is None or self.end_time is None:
            self.series_end = None
        elif pattern is None:
            self.series_end = self.end_time
        elif pattern.termination == Termination.NEVER:
            self.series_end = None
        elif pattern.termination == Termination.UNTIL:
            self.series_end = pattern.until + self.duration
        else:
            last = pattern.last_occurrence(self.start_time)
            self.series_end = last + self.duration if last else self.end_time

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check the lesson's own invariants.

        Raises:
            InvalidLessonError: If the end is not after the start
            InvalidRecurrencePatternError: If the pattern does not fit the anchor
        """
        if self.end_time <= self.start_time:
            raise InvalidLessonError("Lesson end must be after its start")
        pattern = self.recurrence_pattern
        if pattern is not None:
            pattern.validate_anchor(self.start_time)

    def edit(
        self,
        *,
        title: str,
        description: Optional[str],
        teacher_ids: Iterable[uuid.UUID],
        pupil_ids: Iterable[uuid.UUID],
        start_time: datetime,
        end_time: datetime,
        recurrence_pattern: Optional[RecurrencePattern],
    ) -> bool:
        """
        Replace the lesson's fields.

        Returns:
            True if the occurrence keys of the series changed (pattern
            replaced, added or removed, or the anchor moved on a recurring
            lesson), meaning stored exceptions no longer line up.
        """
        if end_time <= start_time:
            raise InvalidLessonError("Lesson end must be after its start")
        if recurrence_pattern is not None:
            recurrence_pattern.validate_anchor(start_time)

        old_pattern = self.recurrence_pattern
        anchor_moved = start_time != self.start_time

        self.title = title
        self.description = description
        self.set_participants(teacher_ids, pupil_ids)
        self.start_time = start_time
        self.end_time = end_time
        self.recurrence_pattern = recurrence_pattern

        if old_pattern != recurrence_pattern:
            return True
        return recurrence_pattern is not None and anchor_moved

    def __repr__(self) -> str:
        """String representation showing title and time."""
        return f"<Lesson(title='{self.title}', start='{self.start_time}', recurring={self.is_recurring})>"


class LessonParticipant(BaseModel):
    """
    Teacher or pupil attached to a lesson.

    Uses the association object pattern; `position` keeps the order in
    which participants were given.
    """

    __tablename__ = "lesson_participants"

    lesson_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        doc="Lesson ID"
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        doc="User ID (users are managed outside this service)"
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Role: 'teacher' or 'pupil'"
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Order of the participant within the lesson"
    )

    lesson: Mapped["Lesson"] = relationship(
        "Lesson",
        back_populates="participants",
        doc="Lesson this participation is for"
    )

    __table_args__ = (
        UniqueConstraint("lesson_id", "user_id", "role", name="uq_lesson_participant"),
        Index("idx_participant_lesson", "lesson_id"),
        Index("idx_participant_user_role", "user_id", "role"),
    )

    def __repr__(self) -> str:
        return f"<LessonParticipant(lesson_id={self.lesson_id}, user_id={self.user_id}, role='{self.role}')>"


class LessonException(BaseModel):
    """
    Stored form of an OccurrenceException.

    One row per deviating occurrence; the unique constraint on
    (lesson_id, original_date) makes a second concurrent writer fail.
    """

    __tablename__ = "lesson_exceptions"

    lesson_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        doc="Lesson (series) this exception belongs to"
    )

    original_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Pattern-generated start of the affected occurrence"
    )

    exception_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Type: 'SKIP', 'RESCHEDULE', 'MODIFY'"
    )

    new_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="New start for RESCHEDULE exceptions"
    )

    modifications: Mapped[Optional[dict]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Field overrides for MODIFY exceptions"
    )

    lesson: Mapped["Lesson"] = relationship(
        "Lesson",
        back_populates="exceptions",
        doc="Lesson this exception belongs to"
    )

    __table_args__ = (
        UniqueConstraint("lesson_id", "original_date", name="uq_lesson_exception_original_date"),
        Index("idx_lesson_exception_lesson", "lesson_id"),
        Index("idx_lesson_exception_original_date", "original_date"),
    )

    @classmethod
    def from_domain(cls, exception: OccurrenceException) -> "LessonException":
        """Build a row from a domain exception."""
        return cls(
            id=exception.id,
            lesson_id=exception.lesson_id,
            original_date=exception.original_date,
            exception_type=exception.type.value,
            new_date=exception.new_date,
            modifications=exception.modifications.to_dict() if exception.modifications else None,
            created_at=exception.created_at,
        )

    def to_domain(self) -> OccurrenceException:
        """Convert the row back to a validated domain exception."""
        return OccurrenceException(
            id=self.id,
            lesson_id=self.lesson_id,
            original_date=self.original_date,
            type=ExceptionType(self.exception_type),
            new_date=self.new_date,
            modifications=(
                OccurrenceModifications.from_dict(self.modifications)
                if self.modifications is not None
                else None
            ),
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<LessonException(lesson_id={self.lesson_id}, "
            f"original_date='{self.original_date}', type='{self.exception_type}')>"
        )
