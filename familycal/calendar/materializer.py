"""Instance materialization: series + exceptions + window -> displayable instances."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from familycal.calendar.instance_ids import encode_instance_id
from familycal.calendar.logistics import derive_logistics
from familycal.calendar.models import (
    DeletedOccurrence,
    EventSeries,
    MaterializedInstance,
    ModifiedOccurrence,
    OccurrenceException,
    OccurrenceKey,
    RecurrenceRule,
    TimeWindow,
)
from familycal.calendar.rrule_interpreter import RecurrenceRuleInterpreter
from familycal.calendar.window_cache import ExpansionCache
from familycal.core.exceptions import RecurrenceExpansionError

logger = logging.getLogger(__name__)

ExceptionMap = Mapping[OccurrenceKey, OccurrenceException]


@dataclass
class MaterializerConfig:
    """Configuration for instance materialization."""

    include_logistics: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> MaterializerConfig:
        return cls(include_logistics=getattr(settings, "include_logistics", True))


def index_exceptions(
    exceptions: Iterable[OccurrenceException],
) -> dict[OccurrenceKey, OccurrenceException]:
    """Key exceptions by occurrence, later entries replacing earlier ones.

    Args:
        exceptions: Exceptions in write order

    Returns:
        Map with at most one exception per (series_id, occurrence_date)
    """
    indexed: dict[OccurrenceKey, OccurrenceException] = {}
    for exception in exceptions:
        if exception.key in indexed:
            logger.warning(
                "Duplicate exception for %s on %s, keeping the latest",
                exception.series_id,
                exception.occurrence_date,
            )
        indexed[exception.key] = exception
    return indexed


class InstanceMaterializer:
    """Combines series, occurrence dates and exceptions into concrete instances."""

    def __init__(
        self,
        settings: Any = None,
        interpreter: Optional[RecurrenceRuleInterpreter] = None,
        cache: Optional[ExpansionCache] = None,
    ):
        """Initialize materializer.

        Args:
            settings: Configuration object (include_logistics, max_occurrences_per_call)
            interpreter: Occurrence-date generator, built from settings when omitted
            cache: Optional window cache. Callers must invalidate it whenever the
                series or its exceptions change.
        """
        config = MaterializerConfig.from_settings(settings)
        self.include_logistics = config.include_logistics
        self.interpreter = interpreter or RecurrenceRuleInterpreter(settings)
        self.cache = cache

    def materialize(
        self,
        series: EventSeries,
        exceptions: ExceptionMap,
        window: TimeWindow,
    ) -> list[MaterializedInstance]:
        """Materialize one series for a window.

        Args:
            series: Series definition
            exceptions: Exceptions keyed by OccurrenceKey (may hold other series' keys)
            window: Half-open query window

        Returns:
            Instances intersecting the window, in occurrence order, each main
            instance followed by its derived logistics sub-events
        """
        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.make_key(series.id, window, series.version)
            cached = self.cache.get(cache_key)
            if cached is not None:
                return list(cached)

        rule = series.recurrence_rule
        if rule is None:
            instances = self._materialize_single(series, exceptions, window)
        else:
            try:
                instances = self._materialize_recurring(series, rule, exceptions, window)
            except RecurrenceExpansionError as e:
                logger.warning(
                    "Failed to expand series %s, showing it as a single event: %s", series.id, e
                )
                instances = self._materialize_single(series, exceptions, window)

        if self.cache is not None and cache_key is not None:
            self.cache.set(cache_key, tuple(instances))

        return instances

    def materialize_family(
        self,
        series_list: Iterable[EventSeries],
        exceptions: ExceptionMap,
        window: TimeWindow,
    ) -> list[MaterializedInstance]:
        """Materialize many series and return one list sorted by start, title, id."""
        instances: list[MaterializedInstance] = []
        series_count = 0
        for series in series_list:
            series_count += 1
            instances.extend(self.materialize(series, exceptions, window))

        instances.sort(key=lambda inst: (inst.start, inst.title, inst.instance_id))
        logger.debug(
            "Materialized %d instances from %d series for %s..%s",
            len(instances),
            series_count,
            window.start,
            window.end,
        )
        return instances

    def _materialize_single(
        self, series: EventSeries, exceptions: ExceptionMap, window: TimeWindow
    ) -> list[MaterializedInstance]:
        exception = exceptions.get(OccurrenceKey(series.id, series.anchor_date))
        if isinstance(exception, DeletedOccurrence):
            return []

        instance = self._build_instance(
            series, series.start, exception, instance_id=series.id, occurrence_date=None
        )
        if not window.intersects(instance.start, instance.end):
            return []
        return [instance]

    def _materialize_recurring(
        self,
        series: EventSeries,
        rule: RecurrenceRule,
        exceptions: ExceptionMap,
        window: TimeWindow,
    ) -> list[MaterializedInstance]:
        # Occurrences that started before the window can still run into it
        first_candidate = (window.start - series.duration - timedelta(days=1)).date()
        end_candidate = window.end.date() + timedelta(days=1)

        dates = self.interpreter.occurrence_dates(
            rule, series.anchor_date, first_candidate, end_candidate, label=series.id
        )

        logistics = rule.logistics if self.include_logistics else None
        instances: list[MaterializedInstance] = []
        seen: set[date] = set()

        for occurrence_date in dates:
            seen.add(occurrence_date)
            instance = self._occurrence_instance(series, occurrence_date, exceptions)
            if instance is None or not window.intersects(instance.start, instance.end):
                continue
            instances.append(instance)
            instances.extend(derive_logistics(instance, logistics))

        # Modified occurrences whose new time lands in the window from outside it
        for moved in self._moved_into_window(series, rule, exceptions, window, seen):
            instances.append(moved)
            instances.extend(derive_logistics(moved, logistics))

        logger.debug(
            "Series %s: %d instances in %s..%s", series.id, len(instances), window.start, window.end
        )
        return instances

    def _moved_into_window(
        self,
        series: EventSeries,
        rule: RecurrenceRule,
        exceptions: ExceptionMap,
        window: TimeWindow,
        seen: set[date],
    ) -> list[MaterializedInstance]:
        moved: list[MaterializedInstance] = []
        for key, exception in exceptions.items():
            if key.series_id != series.id or key.occurrence_date in seen:
                continue
            if not isinstance(exception, ModifiedOccurrence):
                continue
            if "start" not in exception.overrides.model_fields_set:
                continue
            if not self.interpreter.occurs_on(rule, series.anchor_date, key.occurrence_date):
                continue
            instance = self._occurrence_instance(series, key.occurrence_date, exceptions)
            if instance is not None and window.intersects(instance.start, instance.end):
                moved.append(instance)

        moved.sort(key=lambda inst: inst.start)
        return moved

    def _occurrence_instance(
        self, series: EventSeries, occurrence_date: date, exceptions: ExceptionMap
    ) -> Optional[MaterializedInstance]:
        exception = exceptions.get(OccurrenceKey(series.id, occurrence_date))
        if isinstance(exception, DeletedOccurrence):
            logger.debug("Occurrence %s of %s is deleted", occurrence_date, series.id)
            return None

        occurrence_start = datetime.combine(occurrence_date, series.start.timetz())
        return self._build_instance(
            series,
            occurrence_start,
            exception,
            instance_id=encode_instance_id(series.id, occurrence_date),
            occurrence_date=occurrence_date,
        )

    def _build_instance(
        self,
        series: EventSeries,
        occurrence_start: datetime,
        exception: Optional[OccurrenceException],
        instance_id: str,
        occurrence_date: Optional[date],
    ) -> MaterializedInstance:
        fields: dict[str, Any] = {
            "title": series.title,
            "description": series.description,
            "location": series.location,
            "start": occurrence_start,
            "end": occurrence_start + series.duration,
            "all_day": series.all_day,
        }
        assignments = series.assignments
        is_exception = False

        if isinstance(exception, ModifiedOccurrence):
            is_exception = True
            overrides = exception.overrides
            explicit = overrides.model_fields_set

            for name in ("title", "description", "location", "all_day"):
                if name in explicit:
                    value = getattr(overrides, name)
                    if name in ("title", "all_day") and value is None:
                        continue
                    fields[name] = value

            if "start" in explicit and overrides.start is not None:
                fields["start"] = overrides.start
                fields["end"] = overrides.start + series.duration
            if "end" in explicit and overrides.end is not None:
                if overrides.end > fields["start"]:
                    fields["end"] = overrides.end
                else:
                    logger.warning(
                        "Ignoring end override %s for %s: not after start %s",
                        overrides.end,
                        instance_id,
                        fields["start"],
                    )

            if exception.assignments is not None:
                assignments = exception.assignments

        return MaterializedInstance(
            instance_id=instance_id,
            series_id=series.id,
            occurrence_date=occurrence_date,
            is_exception=is_exception,
            is_recurring_instance=occurrence_date is not None,
            family_id=series.family_id,
            assignments=assignments,
            **fields,
        )
