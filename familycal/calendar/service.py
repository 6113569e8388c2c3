"""In-memory calendar service wiring the interpreter, materializer, cache and editor."""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

from pydantic import ValidationError

from familycal.calendar.instance_ids import InstanceRef, decode_instance_id
from familycal.calendar.materializer import InstanceMaterializer
from familycal.calendar.models import (
    EventSeries,
    InstanceKind,
    MaterializedInstance,
    OccurrenceException,
    TimeWindow,
)
from familycal.calendar.records import Row, load_records
from familycal.calendar.rrule_interpreter import RecurrenceRuleInterpreter
from familycal.calendar.series_editor import (
    EditScope,
    ExceptionStore,
    delete_occurrence,
    delete_series,
    edit_occurrence,
    edit_series,
    restore_occurrence,
)
from familycal.calendar.window_cache import ExpansionCache
from familycal.core.exceptions import (
    InstanceIdError,
    OccurrenceNotFoundError,
    SeriesValidationError,
)
from familycal.core.settings import get_settings

logger = logging.getLogger(__name__)

_OVERRIDE_FIELDS = ("title", "description", "location", "start", "end", "all_day")


class FamilyCalendar:
    """Series and exceptions of one family, materialized on demand.

    Persistence is someone else's job: rows are handed in already loaded and
    every mutation here only updates the in-memory state and its caches.
    """

    def __init__(self, settings: Any = None):
        self.settings = settings if settings is not None else get_settings()
        self.cache = ExpansionCache.from_settings(self.settings)
        self.interpreter = RecurrenceRuleInterpreter(self.settings)
        self.materializer = InstanceMaterializer(
            self.settings,
            self.interpreter,
            self.cache if self.cache.max_size > 0 else None,
        )
        self.exceptions = ExceptionStore()
        self.exceptions.add_listener(self.cache.invalidate_series)
        self._series: dict[str, EventSeries] = {}

    @classmethod
    def from_records(
        cls,
        rows: Iterable[Row],
        exception_rows: Iterable[Row] = (),
        settings: Any = None,
        tz: Optional[datetime.tzinfo] = None,
    ) -> FamilyCalendar:
        """Build a calendar from stored event rows (see :mod:`familycal.calendar.records`)."""
        calendar = cls(settings)
        loaded = load_records(rows, exception_rows, tz)
        for series in loaded.series:
            calendar.add_series(series)
        for exception in loaded.exceptions:
            if exception.series_id not in calendar._series:
                logger.warning(
                    "Dropping exception for unknown series %s on %s",
                    exception.series_id,
                    exception.occurrence_date,
                )
                continue
            calendar.exceptions.put(exception)
        return calendar

    @property
    def series(self) -> list[EventSeries]:
        return list(self._series.values())

    def get_series(self, series_id: str) -> EventSeries:
        try:
            return self._series[series_id]
        except KeyError:
            raise OccurrenceNotFoundError(f"Unknown series: {series_id}") from None

    def add_series(self, series: EventSeries) -> EventSeries:
        if series.id in self._series:
            raise SeriesValidationError(f"Series {series.id} already exists")
        self._series[series.id] = series
        return series

    def create_event(
        self,
        title: str,
        start: datetime.datetime,
        end: datetime.datetime,
        family_id: str,
        created_by: str,
        **fields: Any,
    ) -> EventSeries:
        """Create a new series, e.g. from a click or drag selection on the grid.

        Raises:
            SeriesValidationError: If the fields do not form a valid series
        """
        try:
            series = EventSeries(
                id=fields.pop("id", None) or str(uuid.uuid4()),
                title=title,
                start=start,
                end=end,
                family_id=family_id,
                created_by=created_by,
                **fields,
            )
        except ValidationError as e:
            raise SeriesValidationError(f"Invalid new event: {e}") from e

        logger.info("Created event %s (%s) %s-%s", series.id, title, start, end)
        return self.add_series(series)

    def _resolve(self, instance_id: str) -> tuple[InstanceRef, EventSeries]:
        ref = decode_instance_id(instance_id)
        if ref.kind is not InstanceKind.MAIN:
            raise InstanceIdError(f"{instance_id} is a derived logistics event and cannot be edited")
        return ref, self.get_series(ref.series_id)

    def update(
        self,
        instance_id: str,
        changes: Mapping[str, Any],
        scope: Union[EditScope, str] = EditScope.ALL,
    ) -> Union[EventSeries, OccurrenceException]:
        """Edit an occurrence or its whole series.

        Args:
            instance_id: UI id of the instance or series
            changes: Field values; for a single occurrence, instance fields plus
                an optional ``assignments``
            scope: "single" for this occurrence only, "all" for the series

        Returns:
            The stored exception (single) or the new series (all)
        """
        scope = EditScope(scope)
        ref, series = self._resolve(instance_id)

        if scope is EditScope.SINGLE and series.is_recurring:
            occurrence_date = ref.occurrence_date or series.anchor_date
            unknown = set(changes) - set(_OVERRIDE_FIELDS) - {"assignments"}
            if unknown:
                raise SeriesValidationError(f"Cannot override fields {sorted(unknown)}")
            overrides = {k: v for k, v in changes.items() if k in _OVERRIDE_FIELDS}
            return edit_occurrence(
                series,
                self.exceptions,
                occurrence_date,
                overrides,
                assignments=changes.get("assignments"),
                interpreter=self.interpreter,
            )

        result = edit_series(series, changes, self.exceptions, self.interpreter)
        self._series[series.id] = result.series
        self.cache.invalidate_series(series.id)
        return result.series

    def delete(self, instance_id: str, scope: Union[EditScope, str] = EditScope.ALL) -> None:
        """Delete one occurrence or a whole series (cascading to its exceptions)."""
        scope = EditScope(scope)
        ref, series = self._resolve(instance_id)

        if scope is EditScope.SINGLE and series.is_recurring:
            delete_occurrence(
                series,
                self.exceptions,
                ref.occurrence_date or series.anchor_date,
                interpreter=self.interpreter,
            )
            return

        del self._series[series.id]
        delete_series(self.exceptions, series.id)
        self.cache.invalidate_series(series.id)

    def restore(self, instance_id: str) -> bool:
        """Drop the exception of one occurrence. Returns True if one existed."""
        ref, series = self._resolve(instance_id)
        return restore_occurrence(
            self.exceptions, series.id, ref.occurrence_date or series.anchor_date
        )

    def instances(self, window: TimeWindow) -> list[MaterializedInstance]:
        return self.materializer.materialize_family(self._series.values(), self.exceptions, window)

    def instances_for_dates(
        self, first: datetime.date, last: Optional[datetime.date] = None
    ) -> list[MaterializedInstance]:
        """Instances touching the calendar days ``first`` through ``last`` (inclusive)."""
        return self.instances(TimeWindow.for_dates(first, last or first))
