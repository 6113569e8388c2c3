"""List (agenda) view: instances of a day or a week grouped by calendar date."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from familycal.calendar.models import MaterializedInstance
from familycal.layout.time_grid import appears_on, week_start_for


def _sorted(instances: Iterable[MaterializedInstance]) -> list[MaterializedInstance]:
    return sorted(instances, key=lambda inst: (inst.start, inst.title, inst.instance_id))


def agenda_for_day(instances: Iterable[MaterializedInstance], day: date) -> list[MaterializedInstance]:
    """Instances shown on ``day``, by start time.

    Matches the day grid: all-day instances are listed on every day they cover.
    """
    return _sorted(inst for inst in instances if appears_on(inst, day))


def agenda_for_week(
    instances: Iterable[MaterializedInstance],
    day: date,
    week_starts_on: str = "sunday",
) -> dict[date, list[MaterializedInstance]]:
    """Instances of the week containing ``day`` grouped by date.

    Returns:
        Ordered mapping of date to that date's instances; days without
        instances are omitted
    """
    first = week_start_for(day, week_starts_on)
    ordered = _sorted(instances)

    grouped: dict[date, list[MaterializedInstance]] = {}
    for current in (first + timedelta(days=offset) for offset in range(7)):
        on_day = [inst for inst in ordered if appears_on(inst, current)]
        if on_day:
            grouped[current] = on_day
    return grouped
