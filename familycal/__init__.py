"""familycal - recurring event expansion and time-grid layout for a shared family calendar.

Series and per-occurrence exceptions come in already loaded; familycal expands
them into concrete instances for a date window, lays those out on day and week
time grids, and turns pointer gestures on the grid back into time ranges for
new events.
"""

__version__ = "0.1.0"
__description__ = "Recurring event expansion and calendar time-grid layout"

__all__ = [
    "__description__",
    "__version__",
]
