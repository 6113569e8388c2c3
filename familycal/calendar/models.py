"""Data models for family calendar series, exceptions and materialized instances."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Annotated, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware timestamp to naive local wall-clock time; naive passes through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class Frequency(str, Enum):
    """Supported recurrence frequencies."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Weekday(str, Enum):
    """Weekday names as stored in recurrence rules (lowercase English)."""

    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"

    @property
    def python_weekday(self) -> int:
        """Index compatible with ``date.weekday()`` (Monday == 0)."""
        return _PYTHON_WEEKDAY[self]

    @classmethod
    def from_date(cls, day: date) -> Weekday:
        """Return the weekday a calendar date falls on."""
        return _WEEKDAY_BY_INDEX[day.weekday()]


_PYTHON_WEEKDAY = {
    Weekday.MONDAY: 0,
    Weekday.TUESDAY: 1,
    Weekday.WEDNESDAY: 2,
    Weekday.THURSDAY: 3,
    Weekday.FRIDAY: 4,
    Weekday.SATURDAY: 5,
    Weekday.SUNDAY: 6,
}
_WEEKDAY_BY_INDEX = {index: day for day, index in _PYTHON_WEEKDAY.items()}

# Week-view order, Sunday first
WEEKDAY_ORDER = list(Weekday)


# Recurrence rules


class CountTerminator(BaseModel):
    """Stop after the n-th occurrence counted from the series anchor."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["count"] = "count"
    count: int = Field(..., ge=1, description="Total occurrences in the whole series")


class UntilTerminator(BaseModel):
    """Stop generating occurrences after a calendar date (inclusive)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["until"] = "until"
    until: date = Field(..., description="Last date an occurrence may fall on")


Terminator = Annotated[Union[CountTerminator, UntilTerminator], Field(discriminator="kind")]


class LogisticsSettings(BaseModel):
    """Per-rule arrival and drive-time settings (stored as ``additionalSettings``)."""

    model_config = ConfigDict(frozen=True)

    time_to_be_there: Optional[time] = Field(
        default=None, description="Wall-clock arrival time on each occurrence day"
    )
    drive_time_minutes: Optional[int] = Field(
        default=None, ge=1, description="Minutes of driving before arrival"
    )

    @property
    def is_empty(self) -> bool:
        return self.time_to_be_there is None and self.drive_time_minutes is None


class _RuleBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    interval: int = Field(default=1, ge=1, description="Repeat every N frequency units")
    terminator: Terminator
    logistics: Optional[LogisticsSettings] = None

    @property
    def freq(self) -> Frequency:
        return Frequency(getattr(self, "frequency"))


class DailyRule(_RuleBase):
    """Every ``interval`` days from the anchor."""

    frequency: Literal["daily"] = "daily"


class WeeklyRule(_RuleBase):
    """Selected weekdays every ``interval`` weeks.

    An empty ``days`` set means "the anchor's own weekday".
    """

    frequency: Literal["weekly"] = "weekly"
    days: frozenset[Weekday] = Field(default_factory=frozenset)


class MonthlyRule(_RuleBase):
    """The anchor's day-of-month every ``interval`` months."""

    frequency: Literal["monthly"] = "monthly"


class YearlyRule(_RuleBase):
    """The anchor's month and day every ``interval`` years."""

    frequency: Literal["yearly"] = "yearly"


RecurrenceRule = Annotated[
    Union[DailyRule, WeeklyRule, MonthlyRule, YearlyRule], Field(discriminator="frequency")
]


# Series and exceptions


class Assignments(BaseModel):
    """Family members assigned to an event plus an optional driver/helper."""

    model_config = ConfigDict(frozen=True)

    member_ids: tuple[str, ...] = Field(default_factory=tuple)
    driver_helper_id: Optional[str] = None

    @field_validator("member_ids")
    @classmethod
    def _dedupe_members(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(member for member in value if member))

    @property
    def is_empty(self) -> bool:
        return not self.member_ids and self.driver_helper_id is None


class EventSeries(BaseModel):
    """Persisted definition of a (possibly recurring) event.

    ``start``/``end`` give the anchor occurrence: its date anchors the rule and its
    time-of-day and duration are inherited by every generated occurrence.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Series ID")
    title: str = Field(..., description="Event title")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location")

    start: datetime = Field(..., description="Anchor occurrence start")
    end: datetime = Field(..., description="Anchor occurrence end")
    all_day: bool = Field(default=False, description="All-day event flag")

    recurrence_rule: Optional[RecurrenceRule] = Field(default=None, description="Recurrence")

    family_id: str = Field(..., description="Owning family")
    created_by: str = Field(..., description="Creating user")
    assignments: Assignments = Field(default_factory=Assignments)

    version: int = Field(default=0, ge=0, description="Bumped on every whole-series edit")

    @field_validator("start", "end")
    @classmethod
    def _naive_local(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @model_validator(mode="after")
    def _check_interval(self) -> EventSeries:
        if self.end <= self.start:
            raise ValueError(f"series end {self.end} must be after start {self.start}")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def anchor_date(self) -> date:
        return self.start.date()

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule is not None


class OccurrenceKey(NamedTuple):
    """Canonical identity of one occurrence of a series."""

    series_id: str
    occurrence_date: date


class OccurrenceOverride(BaseModel):
    """Field overrides for a single modified occurrence.

    Only fields explicitly set (``model_fields_set``) override the series; an
    explicit ``None`` clears an optional field for that occurrence.
    """

    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: Optional[bool] = None

    @field_validator("start", "end")
    @classmethod
    def _naive_local(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else to_local_naive(value)

    @model_validator(mode="after")
    def _check_times(self) -> OccurrenceOverride:
        if self.start is not None and self.end is not None and self.end <= self.start:
            raise ValueError(f"override end {self.end} must be after start {self.start}")
        return self

    def merged_with(self, newer: OccurrenceOverride) -> OccurrenceOverride:
        """Combine two overrides, fields set on ``newer`` winning."""
        merged = self.model_dump(include=self.model_fields_set)
        merged.update(newer.model_dump(include=newer.model_fields_set))
        return OccurrenceOverride(**merged)


class ModifiedOccurrence(BaseModel):
    """An occurrence whose displayed fields are replaced."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["modified"] = "modified"
    series_id: str
    occurrence_date: date
    overrides: OccurrenceOverride = Field(default_factory=OccurrenceOverride)
    assignments: Optional[Assignments] = Field(
        default=None, description="Own assignment list; None inherits the series list"
    )

    @property
    def key(self) -> OccurrenceKey:
        return OccurrenceKey(self.series_id, self.occurrence_date)


class DeletedOccurrence(BaseModel):
    """An occurrence suppressed from materialization."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["deleted"] = "deleted"
    series_id: str
    occurrence_date: date

    @property
    def key(self) -> OccurrenceKey:
        return OccurrenceKey(self.series_id, self.occurrence_date)


OccurrenceException = Annotated[
    Union[ModifiedOccurrence, DeletedOccurrence], Field(discriminator="kind")
]


# Materialized output


class InstanceKind(str, Enum):
    """What a materialized instance represents."""

    MAIN = "main"
    ARRIVAL = "arrival"
    DRIVE_TIME = "drive_time"


class MaterializedInstance(BaseModel):
    """Concrete, displayable event for one occurrence (never persisted)."""

    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(..., description="UI-boundary identifier")
    series_id: str = Field(..., description="Owning series")
    occurrence_date: Optional[date] = Field(
        default=None, description="Set when derived from a recurring series"
    )

    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start: datetime
    end: datetime
    all_day: bool = False

    is_exception: bool = False
    is_recurring_instance: bool = False
    kind: InstanceKind = InstanceKind.MAIN

    family_id: Optional[str] = None
    assignments: Assignments = Field(default_factory=Assignments)

    @property
    def key(self) -> Optional[OccurrenceKey]:
        if self.occurrence_date is None:
            return None
        return OccurrenceKey(self.series_id, self.occurrence_date)

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    def overlaps(self, other: MaterializedInstance) -> bool:
        """Half-open ``[start, end)`` intersection test."""
        return self.start < other.end and other.start < self.end


class TimeWindow(BaseModel):
    """Half-open query window ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _naive_local(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @model_validator(mode="after")
    def _check_order(self) -> TimeWindow:
        if self.end <= self.start:
            raise ValueError(f"window end {self.end} must be after start {self.start}")
        return self

    @classmethod
    def for_dates(cls, first: date, last: date) -> TimeWindow:
        """Window covering the whole calendar days ``first`` through ``last``."""
        return cls(
            start=datetime.combine(first, time.min),
            end=datetime.combine(last + timedelta(days=1), time.min),
        )

    def intersects(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start

    @property
    def first_date(self) -> date:
        return self.start.date()

    @property
    def last_date(self) -> date:
        """Last calendar date touched by the window."""
        return (self.end - timedelta(microseconds=1)).date()
