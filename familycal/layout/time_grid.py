"""Time-grid layout: pixel positions and overlap columns for day and week views.

The grid is a 24-hour column of fixed slots (30 minutes at 32 px by default).
Timed instances become :class:`LayoutBox` entries; all-day instances (and, in the
simplified view, long timed ones) are listed separately above the grid.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

from familycal.calendar.logistics import is_logistics_title
from familycal.calendar.models import WEEKDAY_ORDER, MaterializedInstance, Weekday

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


class ColumnStrategy(str, Enum):
    """How overlapping timed instances are packed into columns."""

    GREEDY = "greedy"
    INTERVAL_COLORING = "interval_coloring"


@dataclass
class GridMetrics:
    """Grid geometry and display rules."""

    slot_minutes: int = 30
    slot_height_px: int = 32
    min_event_height_px: int = 20
    simplified_threshold_minutes: int = 60
    initial_scroll_hour: int = 7
    week_starts_on: str = "sunday"
    column_strategy: ColumnStrategy = ColumnStrategy.GREEDY

    @classmethod
    def from_settings(cls, settings: Any) -> GridMetrics:
        """Extract grid metrics from a settings object.

        Args:
            settings: Configuration object (FamilyCalSettings or any look-alike)

        Returns:
            GridMetrics with values from settings or defaults
        """
        return cls(
            slot_minutes=getattr(settings, "slot_minutes", 30),
            slot_height_px=getattr(settings, "slot_height_px", 32),
            min_event_height_px=getattr(settings, "min_event_height_px", 20),
            simplified_threshold_minutes=getattr(settings, "simplified_threshold_minutes", 60),
            initial_scroll_hour=getattr(settings, "initial_scroll_hour", 7),
            week_starts_on=getattr(settings, "week_starts_on", "sunday"),
            column_strategy=ColumnStrategy(getattr(settings, "column_strategy", "greedy")),
        )

    @property
    def px_per_minute(self) -> float:
        return self.slot_height_px / self.slot_minutes

    @property
    def slot_count(self) -> int:
        return MINUTES_PER_DAY // self.slot_minutes

    @property
    def grid_height_px(self) -> float:
        return self.slot_count * self.slot_height_px

    def minutes_to_px(self, minutes: float) -> float:
        return (minutes / self.slot_minutes) * self.slot_height_px


@dataclass
class LayoutBox:
    """Pixel-positioned timed instance inside one day column."""

    instance_id: str
    top: float
    height: float
    column: int
    column_count: int
    instance: Optional[MaterializedInstance] = field(default=None, repr=False, compare=False)

    @property
    def width_percent(self) -> float:
        return 100 / self.column_count

    @property
    def left_percent(self) -> float:
        return self.column * self.width_percent


@dataclass
class DayLayout:
    """Layout of one calendar day."""

    day: date
    all_day: list[MaterializedInstance] = field(default_factory=list)
    boxes: list[LayoutBox] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return max((box.column_count for box in self.boxes), default=0)

    @property
    def is_empty(self) -> bool:
        return not self.all_day and not self.boxes


@dataclass
class WeekLayout:
    """Layout of the seven day columns of a week view."""

    days: list[DayLayout] = field(default_factory=list)

    @property
    def week_start(self) -> Optional[date]:
        return self.days[0].day if self.days else None

    @property
    def has_all_day(self) -> bool:
        return any(day.all_day for day in self.days)


@dataclass
class TimeIndicator:
    """Position of the "now" line."""

    day_index: int
    top: float


def _intervals_overlap(a: tuple[float, float], b: tuple[float, float]) -> bool:
    return not (a[1] <= b[0] or a[0] >= b[1])


def assign_columns_greedy(intervals: Sequence[tuple[float, float]]) -> tuple[list[int], int]:
    """First-fit packing in the given order.

    Each interval goes into the leftmost column none of whose members it
    overlaps; a new column is opened when none fits.

    Returns:
        Column index per interval and the number of columns used
    """
    columns: list[list[tuple[float, float]]] = []
    assignment: list[int] = []
    for interval in intervals:
        for index, members in enumerate(columns):
            if not any(_intervals_overlap(interval, member) for member in members):
                members.append(interval)
                assignment.append(index)
                break
        else:
            columns.append([interval])
            assignment.append(len(columns) - 1)
    return assignment, len(columns)


def assign_columns_interval_coloring(
    intervals: Sequence[tuple[float, float]],
) -> tuple[list[int], int]:
    """Minimal packing: sweep by start, reusing the column that frees up first.

    Uses exactly as many columns as the maximum number of simultaneously
    overlapping intervals.
    """
    order = sorted(range(len(intervals)), key=lambda i: (intervals[i][0], intervals[i][1]))
    assignment = [0] * len(intervals)
    free_at: list[tuple[float, int]] = []
    column_count = 0

    for i in order:
        start, end = intervals[i]
        if free_at and free_at[0][0] <= start:
            _, column = heapq.heappop(free_at)
        else:
            column = column_count
            column_count += 1
        assignment[i] = column
        heapq.heappush(free_at, (end, column))

    return assignment, column_count


def week_start_for(day: date, week_starts_on: str = "sunday") -> date:
    """First day of the week containing ``day``."""
    first = Weekday(week_starts_on).python_weekday
    return day - timedelta(days=(day.weekday() - first) % 7)


def _minutes_since_midnight(moment: datetime) -> float:
    midnight = datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)
    return (moment - midnight).total_seconds() / 60


def appears_on(instance: MaterializedInstance, day: date) -> bool:
    """Whether a day view of ``day`` shows the instance.

    Timed instances belong to the day they start; all-day instances to every
    day they cover, the end being exclusive.
    """
    first = instance.start.date()
    if not instance.all_day:
        return first == day
    last = (instance.end - timedelta(microseconds=1)).date()
    return first <= day <= max(first, last)


class TimeGridLayoutEngine:
    """Turns materialized instances into day and week grid layouts."""

    def __init__(self, settings: Any = None):
        self.metrics = GridMetrics.from_settings(settings)

    def is_timed_display(self, instance: MaterializedInstance, simplified: bool = False) -> bool:
        """Whether an instance is drawn in the time grid (vs. the all-day section).

        The simplified view moves long timed instances up to the all-day section,
        except drive-time sub-events, which always keep their exact position.
        """
        if instance.all_day:
            return False
        if not simplified or is_logistics_title(instance.title):
            return True
        return instance.duration_minutes <= self.metrics.simplified_threshold_minutes

    def partition(
        self, instances: Iterable[MaterializedInstance], simplified: bool = False
    ) -> tuple[list[MaterializedInstance], list[MaterializedInstance]]:
        """Split instances into (all-day section, timed grid), order preserved."""
        all_day: list[MaterializedInstance] = []
        timed: list[MaterializedInstance] = []
        for instance in instances:
            if self.is_timed_display(instance, simplified):
                timed.append(instance)
            else:
                all_day.append(instance)
        return all_day, timed

    def position(self, instance: MaterializedInstance) -> tuple[float, float]:
        """Pixel ``(top, height)`` of a timed instance in its start day's column.

        Height has a floor of ``min_event_height_px`` and is clipped at the grid
        bottom for instances running past midnight.
        """
        metrics = self.metrics
        top = metrics.minutes_to_px(_minutes_since_midnight(instance.start))
        height = max(metrics.minutes_to_px(instance.duration_minutes), metrics.min_event_height_px)
        height = max(min(height, metrics.grid_height_px - top), metrics.min_event_height_px)
        return top, height

    def assign_columns(self, intervals: Sequence[tuple[float, float]]) -> tuple[list[int], int]:
        if self.metrics.column_strategy is ColumnStrategy.INTERVAL_COLORING:
            return assign_columns_interval_coloring(intervals)
        return assign_columns_greedy(intervals)

    def layout_timed(self, instances: Sequence[MaterializedInstance]) -> list[LayoutBox]:
        """Position and column-pack timed instances of one day column.

        Args:
            instances: Timed instances starting on the same day

        Returns:
            Boxes in (start, longest first, id) order; empty for no instances
        """
        ordered = sorted(
            instances, key=lambda inst: (inst.start, -inst.duration_minutes, inst.instance_id)
        )

        positioned = []
        intervals = []
        for instance in ordered:
            top, height = self.position(instance)
            start_minutes = _minutes_since_midnight(instance.start)
            positioned.append((instance, top, height))
            intervals.append((start_minutes, start_minutes + instance.duration_minutes))

        columns, column_count = self.assign_columns(intervals)

        return [
            LayoutBox(
                instance_id=instance.instance_id,
                top=top,
                height=height,
                column=column,
                column_count=column_count,
                instance=instance,
            )
            for (instance, top, height), column in zip(positioned, columns)
        ]

    def layout_day(
        self,
        instances: Iterable[MaterializedInstance],
        day: date,
        simplified: bool = False,
    ) -> DayLayout:
        """Lay out one calendar day.

        Timed instances appear on the day they start; all-day instances appear
        on every day they cover.
        """
        on_day = [instance for instance in instances if appears_on(instance, day)]
        on_day.sort(key=lambda inst: (inst.start, inst.title, inst.instance_id))
        all_day, timed = self.partition(on_day, simplified)

        layout = DayLayout(day=day, all_day=all_day, boxes=self.layout_timed(timed))
        logger.debug(
            "Laid out %s: %d all-day, %d timed in %d columns",
            day,
            len(layout.all_day),
            len(layout.boxes),
            layout.column_count,
        )
        return layout

    def week_dates(self, day: date) -> list[date]:
        start = week_start_for(day, self.metrics.week_starts_on)
        return [start + timedelta(days=offset) for offset in range(len(WEEKDAY_ORDER))]

    def layout_week(
        self,
        instances: Iterable[MaterializedInstance],
        day: date,
        simplified: bool = False,
    ) -> WeekLayout:
        """Lay out the week containing ``day`` as seven independent day columns."""
        instances = list(instances)
        return WeekLayout(
            days=[
                self.layout_day(instances, column_day, simplified)
                for column_day in self.week_dates(day)
            ]
        )

    def current_time_indicator(
        self, tick: datetime, days: Sequence[date]
    ) -> Optional[TimeIndicator]:
        """Position of the current-time line for a clock tick.

        Args:
            tick: Wall-clock time delivered by the caller's timer
            days: Dates of the displayed day columns

        Returns:
            Day column and top offset, or None when today is not displayed
        """
        today = tick.date()
        if today not in days:
            return None
        return TimeIndicator(
            day_index=list(days).index(today),
            top=self.metrics.minutes_to_px(_minutes_since_midnight(tick)),
        )

    def initial_scroll_offset(self) -> float:
        """Scroll position that opens the grid at ``initial_scroll_hour``."""
        return self.metrics.minutes_to_px(self.metrics.initial_scroll_hour * 60)
