"""Derived arrival and drive-time sub-events for occurrences with logistics settings."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from familycal.calendar.instance_ids import encode_instance_id
from familycal.calendar.models import (
    Assignments,
    InstanceKind,
    LogisticsSettings,
    MaterializedInstance,
)

logger = logging.getLogger(__name__)

DRIVE_TITLE_PREFIX = "🚗 "
LEGACY_DRIVE_TITLE_SUFFIX = " - Drive Time"
ARRIVAL_TITLE_SUFFIX = " - Arrival"


def _arrival_time(instance: MaterializedInstance, logistics: LogisticsSettings) -> datetime | None:
    if logistics.time_to_be_there is None:
        return None
    return datetime.combine(instance.start.date(), logistics.time_to_be_there)


def _sub_instance(
    instance: MaterializedInstance,
    kind: InstanceKind,
    title: str,
    description: str,
    start: datetime,
    end: datetime,
    assignments: Assignments,
) -> MaterializedInstance:
    return MaterializedInstance(
        instance_id=encode_instance_id(instance.series_id, instance.occurrence_date, kind),
        series_id=instance.series_id,
        occurrence_date=instance.occurrence_date,
        title=title,
        description=description,
        location=instance.location,
        start=start,
        end=end,
        all_day=False,
        is_exception=instance.is_exception,
        is_recurring_instance=instance.is_recurring_instance,
        kind=kind,
        family_id=instance.family_id,
        assignments=assignments,
    )


def derive_logistics(
    instance: MaterializedInstance, logistics: LogisticsSettings | None
) -> list[MaterializedInstance]:
    """Build the arrival and drive sub-events for one main instance.

    The arrival block runs from ``time_to_be_there`` to the event start and is
    only produced when the arrival time is earlier than the start. The drive
    block ends at the arrival time (or the start when there is no arrival
    block) and needs both a positive drive time and an assigned driver; it is
    assigned to the driver alone.

    Args:
        instance: Main (timed) instance to derive from
        logistics: Rule-level logistics settings, if any

    Returns:
        Sub-instances ordered arrival, drive. Empty for all-day instances or
        when nothing applies.
    """
    if logistics is None or logistics.is_empty:
        return []
    if instance.all_day or instance.kind is not InstanceKind.MAIN:
        return []

    derived: list[MaterializedInstance] = []

    arrival = _arrival_time(instance, logistics)
    if arrival is not None and arrival > instance.start:
        logger.debug(
            "Arrival time %s is after start of %s, skipping arrival block",
            arrival.time(),
            instance.instance_id,
        )
        arrival = None

    if arrival is not None and arrival < instance.start:
        derived.append(
            _sub_instance(
                instance,
                InstanceKind.ARRIVAL,
                f"{instance.title}{ARRIVAL_TITLE_SUFFIX}",
                f"Arrival time for {instance.title}",
                arrival,
                instance.start,
                instance.assignments,
            )
        )

    driver = instance.assignments.driver_helper_id
    if logistics.drive_time_minutes and driver:
        drive_end = arrival or instance.start
        derived.append(
            _sub_instance(
                instance,
                InstanceKind.DRIVE_TIME,
                f"{DRIVE_TITLE_PREFIX}{instance.title}",
                f"Drive time to {instance.title}",
                drive_end - timedelta(minutes=logistics.drive_time_minutes),
                drive_end,
                Assignments(member_ids=(driver,), driver_helper_id=driver),
            )
        )

    return derived


def is_logistics_title(title: str) -> bool:
    """True for drive-time sub-event titles, current or legacy form."""
    return title.startswith(DRIVE_TITLE_PREFIX) or LEGACY_DRIVE_TITLE_SUFFIX in title
