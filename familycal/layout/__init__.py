"""Time-grid layout, list view grouping and pointer gesture handling."""

from .agenda import agenda_for_day, agenda_for_week
from .pointer import GestureState, GridGestureTracker, PointerTimeMapper
from .time_grid import ColumnStrategy, DayLayout, LayoutBox, TimeGridLayoutEngine, WeekLayout

__all__ = [
    "ColumnStrategy",
    "DayLayout",
    "GestureState",
    "GridGestureTracker",
    "LayoutBox",
    "PointerTimeMapper",
    "TimeGridLayoutEngine",
    "WeekLayout",
    "agenda_for_day",
    "agenda_for_week",
]
