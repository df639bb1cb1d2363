"""
Pydantic request and response models for the Lesson Scheduler API.
"""

from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from lesson_scheduler.models.lessons import Lesson
from lesson_scheduler.services.lesson_exceptions import LessonEdit
from lesson_scheduler.services.occurrence_exceptions import (
    OccurrenceException,
    OccurrenceModifications,
)
from lesson_scheduler.services.occurrences import Occurrence
from lesson_scheduler.services.recurrence import RecurrencePattern


# =============================================================================
# Shared
# =============================================================================


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Convert an offset-aware datetime to naive UTC.

    Lessons are stored and expanded as naive UTC instants; naive input
    is taken to be UTC already.
    """
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value



class RecurrencePatternModel(BaseModel):
    """Recurrence pattern as exchanged over HTTP."""

    frequency: Literal["DAILY", "WEEKLY", "MONTHLY"] = Field(
        ...,
        description="How often the lesson repeats",
    )
    interval: int = Field(default=1, ge=1, description="Repeat every N periods")
    days_of_week: list[int] = Field(
        default_factory=list,
        description="Weekdays for WEEKLY patterns (0 = Monday ... 6 = Sunday)",
    )
    until: Optional[datetime] = Field(None, description="Last instant an occurrence may start")
    count: Optional[int] = Field(None, ge=1, description="Total number of occurrences")

    @field_validator("until")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    def to_domain(self) -> RecurrencePattern:
        return RecurrencePattern(
            frequency=self.frequency,
            interval=self.interval,
            days_of_week=tuple(self.days_of_week),
            until=self.until,
            count=self.count,
        )

    @classmethod
    def from_domain(cls, pattern: RecurrencePattern) -> "RecurrencePatternModel":
        return cls(
            frequency=pattern.frequency.value,
            interval=pattern.interval,
            days_of_week=[int(day) for day in pattern.days_of_week],
            until=pattern.until,
            count=pattern.count,
        )


# =============================================================================
# Request Models
# =============================================================================


class SkipOccurrenceRequest(BaseModel):
    """Request to skip one occurrence."""

    occurrence_date: datetime = Field(
        ...,
        description="Pattern-generated start of the occurrence to skip",
    )

    @field_validator("occurrence_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class RescheduleOccurrenceRequest(BaseModel):
    """Request to move one occurrence."""

    original_date: datetime = Field(..., description="Pattern-generated start of the occurrence")
    new_date: datetime = Field(..., description="New start of the occurrence")

    @field_validator("original_date", "new_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ModifyOccurrenceRequest(BaseModel):
    """Request to override fields of one occurrence. Omitted fields stay unchanged."""

    original_date: datetime = Field(..., description="Pattern-generated start of the occurrence")
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    teacher_ids: Optional[list[UUID]] = None
    pupil_ids: Optional[list[UUID]] = None

    @field_validator("original_date", "start_time", "end_time")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    def to_modifications(self) -> OccurrenceModifications:
        return OccurrenceModifications(
            title=self.title,
            description=self.description,
            start_time=self.start_time,
            end_time=self.end_time,
            teacher_ids=tuple(self.teacher_ids) if self.teacher_ids is not None else None,
            pupil_ids=tuple(self.pupil_ids) if self.pupil_ids is not None else None,
        )


class EditLessonRequest(BaseModel):
    """Full replacement of a lesson's editable fields."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    teacher_ids: list[UUID] = Field(default_factory=list)
    pupil_ids: list[UUID] = Field(default_factory=list)
    recurrence: Optional[RecurrencePatternModel] = Field(
        None,
        description="Recurrence pattern; omit for a one-off lesson",
    )

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @field_validator("title")
    @classmethod
    def validate_title_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    def to_edit(self) -> LessonEdit:
        return LessonEdit(
            title=self.title,
            description=self.description,
            start_time=self.start_time,
            end_time=self.end_time,
            teacher_ids=tuple(self.teacher_ids),
            pupil_ids=tuple(self.pupil_ids),
            recurrence_pattern=self.recurrence.to_domain() if self.recurrence else None,
        )


# =============================================================================
# Response Models
# =============================================================================


class OccurrenceResponse(BaseModel):
    """One concrete lesson occurrence."""

    lesson_id: UUID
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    original_start: datetime
    teacher_ids: list[UUID] = Field(default_factory=list)
    pupil_ids: list[UUID] = Field(default_factory=list)
    exception_type: Optional[str] = Field(
        None,
        description="SKIP, RESCHEDULE or MODIFY when an exception shaped this occurrence",
    )

    @classmethod
    def from_domain(cls, occurrence: Occurrence) -> "OccurrenceResponse":
        return cls(
            lesson_id=occurrence.lesson_id,
            title=occurrence.title,
            description=occurrence.description,
            start_time=occurrence.start_time,
            end_time=occurrence.end_time,
            original_start=occurrence.original_start,
            teacher_ids=list(occurrence.teacher_ids),
            pupil_ids=list(occurrence.pupil_ids),
            exception_type=occurrence.exception_type.value if occurrence.exception_type else None,
        )


class OccurrenceListResponse(BaseModel):
    """Occurrences in a period, sorted by start time."""

    occurrences: list[OccurrenceResponse]
    total: int
    start: datetime
    end: datetime


class ExceptionResponse(BaseModel):
    """A stored occurrence exception."""

    id: UUID
    lesson_id: UUID
    original_date: datetime
    type: str
    new_date: Optional[datetime] = None
    modifications: Optional[dict] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, exception: OccurrenceException) -> "ExceptionResponse":
        return cls(
            id=exception.id,
            lesson_id=exception.lesson_id,
            original_date=exception.original_date,
            type=exception.type.value,
            new_date=exception.new_date,
            modifications=exception.modifications.to_dict() if exception.modifications else None,
            created_at=exception.created_at,
        )


class LessonResponse(BaseModel):
    """A lesson and its recurrence pattern."""

    id: UUID
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    teacher_ids: list[UUID] = Field(default_factory=list)
    pupil_ids: list[UUID] = Field(default_factory=list)
    recurrence: Optional[RecurrencePatternModel] = None

    @classmethod
    def from_model(cls, lesson: Lesson) -> "LessonResponse":
        pattern = lesson.recurrence_pattern
        return cls(
            id=lesson.id,
            title=lesson.title,
            description=lesson.description,
            start_time=lesson.start_time,
            end_time=lesson.end_time,
            teacher_ids=lesson.teacher_ids,
            pupil_ids=lesson.pupil_ids,
            recurrence=RecurrencePatternModel.from_domain(pattern) if pattern else None,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    version: str
    database_connected: bool


class ErrorResponse(BaseModel):
    """Error response body."""

    error_type: str
    message: str
    retryable: bool = False
