"""
Recurrence pattern and candidate expansion.

A lesson stores one RecurrencePattern; occurrences are expanded on demand
for a query window and never stored. Each expanded candidate carries its
sequence index counted from the lesson anchor (the lesson's own start), so
an occurrence-count limit behaves the same for every query window.

Uses python-dateutil rrule for the date arithmetic.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any, Iterator, Optional

from dateutil.parser import parse as parse_datetime
from dateutil.rrule import DAILY, MONTHLY, WEEKLY, MO, rrule

from lesson_scheduler.errors import InvalidRecurrencePatternError


class Frequency(str, Enum):
    """How often a pattern repeats."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class Weekday(IntEnum):
    """Weekday index, matching datetime.weekday()."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class Termination(str, Enum):
    """How a series ends."""

    NEVER = "NEVER"
    UNTIL = "UNTIL"
    AFTER = "AFTER"


_RRULE_FREQUENCIES = {
    Frequency.DAILY: DAILY,
    Frequency.WEEKLY: WEEKLY,
    Frequency.MONTHLY: MONTHLY,
}


@dataclass(frozen=True)
class Candidate:
    """A candidate occurrence start produced by a pattern."""

    sequence_index: int
    start: datetime


@dataclass(frozen=True)
class RecurrencePattern:
    """
    Immutable description of how a lesson repeats.

    Fields:
    - frequency: DAILY, WEEKLY or MONTHLY
    - interval: repeat every N periods (>= 1)
    - days_of_week: weekdays for WEEKLY patterns; empty means the anchor's weekday
    - until: last instant a candidate may start at (inclusive)
    - count: total number of candidates in the series

    At most one of until/count is set; neither means the series never ends.
    Days are stored sorted, so equality does not depend on their order.
    """

    frequency: Frequency
    interval: int = 1
    days_of_week: tuple[Weekday, ...] = ()
    until: Optional[datetime] = None
    count: Optional[int] = None

    def __post_init__(self):
        try:
            frequency = Frequency(self.frequency)
        except ValueError:
            raise InvalidRecurrencePatternError(f"Unknown frequency: {self.frequency}")

        try:
            days = [Weekday(day) for day in self.days_of_week]
        except ValueError:
            raise InvalidRecurrencePatternError(
                f"Days of week must be between 0 (Monday) and 6 (Sunday): {list(self.days_of_week)}"
            )

        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise InvalidRecurrencePatternError("Interval must be at least 1")

        if self.count is not None and (isinstance(self.count, bool) or self.count < 1):
            raise InvalidRecurrencePatternError("Occurrences must be at least 1")

        if self.until is not None and self.count is not None:
            raise InvalidRecurrencePatternError("Cannot specify both an end date and occurrences")

        if frequency != Frequency.WEEKLY and days:
            raise InvalidRecurrencePatternError(
                "Days of week can only be specified for weekly recurrence"
            )

        if len(set(days)) != len(days):
            raise InvalidRecurrencePatternError("Duplicate days of week are not allowed")

        object.__setattr__(self, "frequency", frequency)
        object.__setattr__(self, "days_of_week", tuple(sorted(days)))

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def daily(
        cls,
        interval: int = 1,
        until: Optional[datetime] = None,
        count: Optional[int] = None,
    ) -> "RecurrencePattern":
        return cls(Frequency.DAILY, interval, (), until, count)

    @classmethod
    def weekly(
        cls,
        days_of_week: tuple[Weekday, ...] = (),
        interval: int = 1,
        until: Optional[datetime] = None,
        count: Optional[int] = None,
    ) -> "RecurrencePattern":
        return cls(Frequency.WEEKLY, interval, tuple(days_of_week), until, count)

    @classmethod
    def monthly(
        cls,
        interval: int = 1,
        until: Optional[datetime] = None,
        count: Optional[int] = None,
    ) -> "RecurrencePattern":
        return cls(Frequency.MONTHLY, interval, (), until, count)

    # -------------------------------------------------------------------------
    # Termination
    # -------------------------------------------------------------------------

    @property
    def termination(self) -> Termination:
        """Which termination condition applies."""
        if self.count is not None:
            return Termination.AFTER
        if self.until is not None:
            return Termination.UNTIL
        return Termination.NEVER

    def validate_anchor(self, anchor: datetime) -> None:
        """
        Check the pattern against the lesson start it will be anchored to.

        Raises:
            InvalidRecurrencePatternError: If the end date precedes the anchor
        """
        if self.until is not None and self.until < anchor:
            raise InvalidRecurrencePatternError(
                f"End date {self.until.isoformat()} is before lesson start {anchor.isoformat()}"
            )

    # -------------------------------------------------------------------------
    # Expansion
    # -------------------------------------------------------------------------

    def _rule(self, anchor: datetime) -> rrule:
        """
        Build the dateutil rule for this pattern anchored at `anchor`.

        rrule drops microseconds from dtstart; callers add them back.
        """
        kwargs: dict[str, Any] = {
            "dtstart": anchor.replace(microsecond=0),
            "interval": self.interval,
            "wkst": MO,
        }

        if self.frequency == Frequency.WEEKLY:
            kwargs["byweekday"] = [int(day) for day in self.days_of_week] or [anchor.weekday()]
        elif self.frequency == Frequency.MONTHLY:
            # Days past the 28th fall back to the month's last day.
            if anchor.day > 28:
                kwargs["bymonthday"] = (anchor.day, -1)
                kwargs["bysetpos"] = 1
            else:
                kwargs["bymonthday"] = anchor.day

        if self.count is not None:
            kwargs["count"] = self.count
        elif self.until is not None:
            kwargs["until"] = self.until

        return rrule(_RRULE_FREQUENCIES[self.frequency], **kwargs)

    def iter_candidates(self, anchor: datetime) -> Iterator[Candidate]:
        """
        Iterate every candidate of the series from the anchor on.

        Infinite for patterns that never end; callers must bound it.
        """
        offset = timedelta(microseconds=anchor.microsecond)
        for index, start in enumerate(self._rule(anchor)):
            start = start + offset
            # rrule compares until against the truncated start
            if self.until is not None and start > self.until:
                return
            yield Candidate(sequence_index=index, start=start)

    def candidates(
        self,
        anchor: datetime,
        window_start: datetime,
        window_end: datetime,
    ) -> Iterator[Candidate]:
        """
        Candidates whose start falls within [window_start, window_end].

        Sequence indexes are counted from the anchor, so candidates before
        the window still consume an occurrence-count budget.

        Args:
            anchor: Lesson start (zero point of the series)
            window_start: Window start (inclusive)
            window_end: Window end (inclusive)

        Returns:
            Lazy iterator of Candidate in ascending start order
        """
        for candidate in self.iter_candidates(anchor):
            if candidate.start > window_end:
                return
            if candidate.start >= window_start:
                yield candidate

    def last_occurrence(self, anchor: datetime) -> Optional[datetime]:
        """
        Start of the final candidate of a finite series.

        Returns:
            Last candidate start, or None if the series never ends or is empty
        """
        if self.termination == Termination.NEVER:
            return None

        last = None
        for candidate in self.iter_candidates(anchor):
            last = candidate.start
        return last

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary."""
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "days_of_week": [int(day) for day in self.days_of_week],
            "until": self.until.isoformat() if self.until else None,
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecurrencePattern":
        """
        Build a pattern from its dictionary form.

        Raises:
            InvalidRecurrencePatternError: If the data is incomplete or invalid
        """
        if "frequency" not in data:
            raise InvalidRecurrencePatternError("Recurrence pattern requires a frequency")

        until = data.get("until")
        if isinstance(until, str):
            until = parse_datetime(until)

        return cls(
            frequency=data["frequency"],
            interval=data.get("interval", 1),
            days_of_week=tuple(data.get("days_of_week") or ()),
            until=until,
            count=data.get("count"),
        )
