"""Pointer-to-time mapping and the click/drag gesture machine of the time grid.

A press on an empty part of the grid either becomes a click (released without
moving past the drag threshold), which proposes a one-hour event, or a drag,
which proposes the snapped range between press and release, never shorter
than the minimum drag span. Leaving the grid cancels, and in week view a drag
that wanders into another day column is abandoned.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

LEFT_BUTTON = 0

CreateCallback = Callable[[datetime, datetime], None]


@dataclass
class PointerConfig:
    """Configuration for pointer mapping and gesture recognition."""

    slot_minutes: int = 30
    slot_height_px: int = 32
    drag_threshold_px: float = 5.0
    click_event_minutes: int = 60
    min_drag_minutes: int = 30

    @classmethod
    def from_settings(cls, settings: Any) -> PointerConfig:
        return cls(
            slot_minutes=getattr(settings, "slot_minutes", 30),
            slot_height_px=getattr(settings, "slot_height_px", 32),
            drag_threshold_px=getattr(settings, "drag_threshold_px", 5.0),
            click_event_minutes=getattr(settings, "click_event_minutes", 60),
            min_drag_minutes=getattr(settings, "min_drag_minutes", 30),
        )


class PointerTimeMapper:
    """Maps a Y offset from the grid top to a snapped slot start time."""

    def __init__(self, settings: Any = None):
        self.config = PointerConfig.from_settings(settings)

    @property
    def slot_count(self) -> int:
        return (24 * 60) // self.config.slot_minutes

    def slot_index(self, y: float) -> int:
        """Slot under ``y``, clamped to the grid (never raises)."""
        if math.isnan(y):
            return 0
        if math.isinf(y):
            return 0 if y < 0 else self.slot_count - 1
        index = math.floor(y / self.config.slot_height_px)
        return max(0, min(index, self.slot_count - 1))

    def time_at(self, y: float, day: date) -> datetime:
        """Start time of the slot under ``y`` on ``day``."""
        return datetime.combine(day, time.min) + timedelta(
            minutes=self.slot_index(y) * self.config.slot_minutes
        )


class GestureState(str, Enum):
    IDLE = "idle"
    PRESSED = "pressed"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class PointerSample:
    """Pointer position with its snapped time."""

    time: datetime
    x: float
    y: float
    day_index: int


@dataclass
class DragSelection:
    """In-progress selection on the grid."""

    anchor: PointerSample
    current: PointerSample
    committed: bool = False
    left_anchor_day: bool = False

    @property
    def start(self) -> datetime:
        return min(self.anchor.time, self.current.time)

    @property
    def end(self) -> datetime:
        return max(self.anchor.time, self.current.time)


@dataclass(frozen=True)
class TimeRange:
    """Time range proposed to event creation."""

    start: datetime
    end: datetime
    day_index: int

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


@dataclass(frozen=True)
class DragPreview:
    """Highlight drawn in the anchor's day column while dragging."""

    day_index: int
    top: float
    height: float


class GridGestureTracker:
    """Gesture state machine for one grid surface (a day, or a week of day columns).

    Example:
        tracker = GridGestureTracker([day], on_create=open_new_event_form)
        tracker.press(y=224)
        tracker.release(y=224)   # click: 03:30-04:30
    """

    def __init__(
        self,
        days: Sequence[date],
        settings: Any = None,
        on_create: Optional[CreateCallback] = None,
        mapper: Optional[PointerTimeMapper] = None,
    ):
        """Initialize tracker.

        Args:
            days: Dates of the day columns, left to right
            settings: Configuration object (see PointerConfig)
            on_create: Called with (start, end) when a gesture completes
            mapper: Pointer mapper, built from settings when omitted
        """
        if not days:
            raise ValueError("GridGestureTracker needs at least one day column")
        self.days = list(days)
        self.mapper = mapper or PointerTimeMapper(settings)
        self.config = self.mapper.config
        self.on_create = on_create
        self.selection: Optional[DragSelection] = None
        self._state = GestureState.IDLE

    @property
    def state(self) -> GestureState:
        return self._state

    def _clamp_day(self, day_index: int) -> int:
        return max(0, min(day_index, len(self.days) - 1))

    def _sample(self, x: float, y: float, day_index: int) -> PointerSample:
        day_index = self._clamp_day(day_index)
        return PointerSample(
            time=self.mapper.time_at(y, self.days[day_index]), x=x, y=y, day_index=day_index
        )

    def reset(self) -> None:
        """Abandon any gesture in progress."""
        self.selection = None
        self._state = GestureState.IDLE

    def press(
        self,
        y: float,
        day_index: int = 0,
        x: float = 0.0,
        button: int = LEFT_BUTTON,
        over_event: bool = False,
    ) -> bool:
        """Pointer down on the grid.

        Presses with a non-primary button or on top of an existing event box
        are ignored.

        Returns:
            True if a gesture started
        """
        if button != LEFT_BUTTON or over_event:
            logger.debug("Ignoring press (button=%s, over_event=%s)", button, over_event)
            return False

        sample = self._sample(x, y, day_index)
        self.selection = DragSelection(anchor=sample, current=sample)
        self._state = GestureState.PRESSED
        return True

    def move(self, y: float, day_index: int = 0, x: float = 0.0) -> None:
        """Pointer moved over the grid."""
        selection = self.selection
        if selection is None or self._state is GestureState.IDLE:
            return

        if self._state is GestureState.PRESSED:
            delta_x = abs(x - selection.anchor.x)
            delta_y = abs(y - selection.anchor.y)
            threshold = self.config.drag_threshold_px
            if delta_x > threshold or delta_y > threshold:
                self._state = GestureState.DRAGGING
                logger.debug("Drag started at %s", selection.anchor.time)

        if self._state is not GestureState.DRAGGING:
            return

        sample = self._sample(x, y, day_index)
        if sample.day_index != selection.anchor.day_index:
            selection.left_anchor_day = True
            return
        selection.current = sample

    def release(
        self, y: Optional[float] = None, day_index: Optional[int] = None, x: Optional[float] = None
    ) -> Optional[TimeRange]:
        """Pointer up: finish the gesture.

        Args:
            y: Release position; the last known position when omitted
            day_index: Day column of the release; the last known one when omitted
            x: Horizontal release position, for the drag threshold

        Returns:
            The proposed range, or None when nothing is created
        """
        selection = self.selection
        state = self._state
        self.reset()

        if selection is None or state is GestureState.IDLE:
            return None

        if y is not None:
            release_day = selection.current.day_index if day_index is None else day_index
            release_x = selection.current.x if x is None else x
            if state is GestureState.PRESSED:
                threshold = self.config.drag_threshold_px
                if (
                    abs(release_x - selection.anchor.x) > threshold
                    or abs(y - selection.anchor.y) > threshold
                ):
                    state = GestureState.DRAGGING
            sample = self._sample(release_x, y, release_day)
            if sample.day_index != selection.anchor.day_index:
                selection.left_anchor_day = True
            elif state is GestureState.DRAGGING:
                selection.current = sample
        elif day_index is not None and self._clamp_day(day_index) != selection.anchor.day_index:
            selection.left_anchor_day = True

        if selection.left_anchor_day:
            logger.debug("Gesture ended outside its starting day column, nothing created")
            return None

        if state is GestureState.DRAGGING:
            start = selection.start
            end = max(selection.end, start + timedelta(minutes=self.config.min_drag_minutes))
        else:
            start = selection.anchor.time
            end = start + timedelta(minutes=self.config.click_event_minutes)

        selection.committed = True
        proposed = TimeRange(start=start, end=end, day_index=selection.anchor.day_index)
        logger.debug("Gesture proposes new event %s-%s", start, end)
        if self.on_create is not None:
            self.on_create(start, end)
        return proposed

    def leave(self) -> None:
        """Pointer left the grid surface: cancel without creating anything."""
        if self._state is not GestureState.IDLE:
            logger.debug("Pointer left the grid, gesture cancelled")
        self.reset()

    def drag_preview(self) -> Optional[DragPreview]:
        """Preview box for the current drag, in the anchor's day column."""
        selection = self.selection
        if selection is None or self._state is not GestureState.DRAGGING:
            return None

        top = min(selection.anchor.y, selection.current.y)
        bottom = max(selection.anchor.y, selection.current.y)
        return DragPreview(
            day_index=selection.anchor.day_index,
            top=top,
            height=max(bottom - top, self.config.slot_height_px),
        )
