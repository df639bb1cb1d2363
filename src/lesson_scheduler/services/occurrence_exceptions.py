"""
Occurrence exceptions.

An exception records one deviation from a recurring lesson's pattern,
keyed by the lesson and the original (pattern-generated) start instant.
Only deviations are stored; unchanged occurrences are never materialized.

Types:
- SKIP: the occurrence does not take place
- RESCHEDULE: the occurrence moves to new_date, keeping its duration
- MODIFY: the occurrence keeps its slot but overrides some lesson fields
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Optional

from dateutil.parser import parse as parse_datetime

from lesson_scheduler.errors import InvalidExceptionError, SameDateRescheduleError


class ExceptionType(str, Enum):
    """Kind of deviation from the pattern."""

    SKIP = "SKIP"
    RESCHEDULE = "RESCHEDULE"
    MODIFY = "MODIFY"


@dataclass(frozen=True)
class OccurrenceModifications:
    """Field overrides for a single modified occurrence. None means unchanged."""

    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    teacher_ids: Optional[tuple[uuid.UUID, ...]] = None
    pupil_ids: Optional[tuple[uuid.UUID, ...]] = None

    def __post_init__(self):
        if self.teacher_ids is not None:
            object.__setattr__(self, "teacher_ids", tuple(self.teacher_ids))
        if self.pupil_ids is not None:
            object.__setattr__(self, "pupil_ids", tuple(self.pupil_ids))

    @property
    def is_empty(self) -> bool:
        """True when no field is overridden."""
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary, omitting unchanged fields."""
        data: dict = {}
        if self.title is not None:
            data["title"] = self.title
        if self.description is not None:
            data["description"] = self.description
        if self.start_time is not None:
            data["start_time"] = self.start_time.isoformat()
        if self.end_time is not None:
            data["end_time"] = self.end_time.isoformat()
        if self.teacher_ids is not None:
            data["teacher_ids"] = [str(i) for i in self.teacher_ids]
        if self.pupil_ids is not None:
            data["pupil_ids"] = [str(i) for i in self.pupil_ids]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "OccurrenceModifications":
        """Build modifications from their dictionary form."""
        start_time = data.get("start_time")
        end_time = data.get("end_time")
        teacher_ids = data.get("teacher_ids")
        pupil_ids = data.get("pupil_ids")

        return cls(
            title=data.get("title"),
            description=data.get("description"),
            start_time=parse_datetime(start_time) if isinstance(start_time, str) else start_time,
            end_time=parse_datetime(end_time) if isinstance(end_time, str) else end_time,
            teacher_ids=tuple(uuid.UUID(str(i)) for i in teacher_ids) if teacher_ids is not None else None,
            pupil_ids=tuple(uuid.UUID(str(i)) for i in pupil_ids) if pupil_ids is not None else None,
        )


@dataclass(frozen=True)
class OccurrenceException:
    """
    One stored deviation from a lesson's recurrence pattern.

    A single type with a discriminant; the variant-specific fields
    (new_date, modifications) are validated against `type` on construction.

    Raises:
        InvalidExceptionError: If the fields do not fit the type
        SameDateRescheduleError: If a reschedule targets its original date
    """

    lesson_id: uuid.UUID
    original_date: datetime
    type: ExceptionType
    new_date: Optional[datetime] = None
    modifications: Optional[OccurrenceModifications] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        try:
            exception_type = ExceptionType(self.type)
        except ValueError:
            raise InvalidExceptionError(f"Unknown exception type: {self.type}")
        object.__setattr__(self, "type", exception_type)

        if exception_type == ExceptionType.SKIP:
            if self.new_date is not None or self.modifications is not None:
                raise InvalidExceptionError(
                    "Skip exception cannot carry a new date or modifications"
                )

        elif exception_type == ExceptionType.RESCHEDULE:
            if self.new_date is None:
                raise InvalidExceptionError("Reschedule exception requires a new date")
            if self.modifications is not None:
                raise InvalidExceptionError("Reschedule exception cannot carry modifications")
            if self.new_date == self.original_date:
                raise SameDateRescheduleError(self.original_date)

        elif exception_type == ExceptionType.MODIFY:
            if self.modifications is None or self.modifications.is_empty:
                raise InvalidExceptionError("Modify exception requires at least one modification")
            if self.new_date is not None:
                raise InvalidExceptionError("Modify exception cannot carry a new date")

    @classmethod
    def skip(cls, lesson_id: uuid.UUID, original_date: datetime) -> "OccurrenceException":
        """Exception removing the occurrence at original_date."""
        return cls(lesson_id=lesson_id, original_date=original_date, type=ExceptionType.SKIP)

    @classmethod
    def reschedule(
        cls,
        lesson_id: uuid.UUID,
        original_date: datetime,
        new_date: datetime,
    ) -> "OccurrenceException":
        """Exception moving the occurrence at original_date to new_date."""
        return cls(
            lesson_id=lesson_id,
            original_date=original_date,
            type=ExceptionType.RESCHEDULE,
            new_date=new_date,
        )

    @classmethod
    def modify(
        cls,
        lesson_id: uuid.UUID,
        original_date: datetime,
        modifications: OccurrenceModifications,
    ) -> "OccurrenceException":
        """Exception overriding fields of the occurrence at original_date."""
        return cls(
            lesson_id=lesson_id,
            original_date=original_date,
            type=ExceptionType.MODIFY,
            modifications=modifications,
        )

    @property
    def is_skip(self) -> bool:
        return self.type == ExceptionType.SKIP

    @property
    def is_reschedule(self) -> bool:
        return self.type == ExceptionType.RESCHEDULE

    @property
    def is_modify(self) -> bool:
        return self.type == ExceptionType.MODIFY

    def applies_to(self, date: datetime) -> bool:
        """Whether this exception targets the occurrence starting exactly at `date`."""
        return self.original_date == date
