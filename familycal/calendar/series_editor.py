"""Edit scopes for recurring series and the in-memory exception store.

"This occurrence only" edits create or update an exception row for one
(series_id, occurrence_date) key. "All occurrences" edits replace the series
itself, bump its version and drop exceptions the new rule no longer generates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional, Union

from pydantic import ValidationError

from familycal.calendar.models import (
    Assignments,
    DeletedOccurrence,
    EventSeries,
    ModifiedOccurrence,
    OccurrenceException,
    OccurrenceKey,
    OccurrenceOverride,
)
from familycal.calendar.rrule_interpreter import RecurrenceRuleInterpreter
from familycal.calendar.rule_codec import parse_recurrence_rule
from familycal.core.exceptions import OccurrenceNotFoundError, SeriesValidationError

logger = logging.getLogger(__name__)

ExceptionListener = Callable[[str], None]
OverrideInput = Union[OccurrenceOverride, Mapping[str, Any]]


class EditScope(str, Enum):
    """Which occurrences an edit or delete applies to."""

    SINGLE = "single"
    ALL = "all"


class ExceptionStore(Mapping[OccurrenceKey, OccurrenceException]):
    """Per-occurrence exceptions keyed by OccurrenceKey.

    Writes are last-write-wins per key. Listeners are called with the series id
    after every mutation so dependent caches can invalidate.
    """

    def __init__(self, exceptions: Iterable[OccurrenceException] = ()):
        self._exceptions: dict[OccurrenceKey, OccurrenceException] = {}
        self._listeners: list[ExceptionListener] = []
        for exception in exceptions:
            self._exceptions[exception.key] = exception

    def __getitem__(self, key: OccurrenceKey) -> OccurrenceException:
        return self._exceptions[key]

    def __iter__(self) -> Iterator[OccurrenceKey]:
        return iter(self._exceptions)

    def __len__(self) -> int:
        return len(self._exceptions)

    def add_listener(self, listener: ExceptionListener) -> None:
        self._listeners.append(listener)

    def _notify(self, series_id: str) -> None:
        for listener in self._listeners:
            listener(series_id)

    def put(self, exception: OccurrenceException) -> Optional[OccurrenceException]:
        """Insert or replace the exception for its key.

        Returns:
            The exception previously stored under that key, if any
        """
        previous = self._exceptions.get(exception.key)
        self._exceptions[exception.key] = exception
        self._notify(exception.series_id)
        return previous

    def remove(self, key: OccurrenceKey) -> Optional[OccurrenceException]:
        removed = self._exceptions.pop(key, None)
        if removed is not None:
            self._notify(key.series_id)
        return removed

    def for_series(self, series_id: str) -> list[OccurrenceException]:
        """Exceptions of one series ordered by occurrence date."""
        return sorted(
            (exc for key, exc in self._exceptions.items() if key.series_id == series_id),
            key=lambda exc: exc.occurrence_date,
        )

    def purge_series(self, series_id: str) -> int:
        stale = [key for key in self._exceptions if key.series_id == series_id]
        for key in stale:
            del self._exceptions[key]
        if stale:
            self._notify(series_id)
        return len(stale)


@dataclass
class SeriesEditResult:
    """Outcome of an "all occurrences" edit."""

    series: EventSeries
    orphaned: list[OccurrenceException] = field(default_factory=list)


def _interpreter(interpreter: Optional[RecurrenceRuleInterpreter]) -> RecurrenceRuleInterpreter:
    return interpreter or RecurrenceRuleInterpreter()


def generates_date(
    series: EventSeries,
    occurrence_date: date,
    interpreter: Optional[RecurrenceRuleInterpreter] = None,
) -> bool:
    """True when ``occurrence_date`` is a real occurrence of the series."""
    if series.recurrence_rule is None:
        return occurrence_date == series.anchor_date
    return _interpreter(interpreter).occurs_on(
        series.recurrence_rule, series.anchor_date, occurrence_date
    )


def _require_occurrence(
    series: EventSeries,
    occurrence_date: date,
    interpreter: Optional[RecurrenceRuleInterpreter],
) -> None:
    if not generates_date(series, occurrence_date, interpreter):
        raise OccurrenceNotFoundError(f"Series {series.id} has no occurrence on {occurrence_date}")


def _coerce_assignments(assignments: Any) -> Optional[Assignments]:
    if assignments is None or isinstance(assignments, Assignments):
        return assignments
    try:
        return Assignments.model_validate(assignments)
    except ValidationError as e:
        raise SeriesValidationError(f"Invalid occurrence assignments: {e}") from e


def _coerce_overrides(overrides: OverrideInput) -> OccurrenceOverride:
    if isinstance(overrides, OccurrenceOverride):
        return overrides
    try:
        return OccurrenceOverride(**dict(overrides))
    except (ValidationError, TypeError) as e:
        raise SeriesValidationError(f"Invalid occurrence override: {e}") from e


def edit_occurrence(
    series: EventSeries,
    store: ExceptionStore,
    occurrence_date: date,
    overrides: OverrideInput,
    assignments: Union[Assignments, Mapping[str, Any], None] = None,
    interpreter: Optional[RecurrenceRuleInterpreter] = None,
) -> ModifiedOccurrence:
    """Edit one occurrence only.

    An existing Modified exception is merged with the new overrides (new fields
    win); a Deleted one is replaced, which restores the occurrence.

    Args:
        series: Series the occurrence belongs to
        store: Exception store to update
        occurrence_date: Date of the occurrence being edited
        overrides: Field overrides, as a model or mapping
        assignments: Own assignment list for this occurrence; None keeps the
            existing one (or inherits from the series)
        interpreter: Interpreter used to check the date

    Returns:
        The stored ModifiedOccurrence

    Raises:
        OccurrenceNotFoundError: If the series does not occur on that date
        SeriesValidationError: If the overrides are invalid
    """
    _require_occurrence(series, occurrence_date, interpreter)
    new_overrides = _coerce_overrides(overrides)
    own_assignments = _coerce_assignments(assignments)

    key = OccurrenceKey(series.id, occurrence_date)
    existing = store.get(key)
    if isinstance(existing, ModifiedOccurrence):
        try:
            new_overrides = existing.overrides.merged_with(new_overrides)
        except ValidationError as e:
            raise SeriesValidationError(f"Conflicting overrides for {key}: {e}") from e
        if own_assignments is None:
            own_assignments = existing.assignments

    exception = ModifiedOccurrence(
        series_id=series.id,
        occurrence_date=occurrence_date,
        overrides=new_overrides,
        assignments=own_assignments,
    )
    store.put(exception)
    logger.debug("Stored modified occurrence %s", key)
    return exception


def delete_occurrence(
    series: EventSeries,
    store: ExceptionStore,
    occurrence_date: date,
    interpreter: Optional[RecurrenceRuleInterpreter] = None,
) -> DeletedOccurrence:
    """Suppress one occurrence (replacing any Modified exception for it).

    Raises:
        OccurrenceNotFoundError: If the series does not occur on that date
    """
    _require_occurrence(series, occurrence_date, interpreter)
    exception = DeletedOccurrence(series_id=series.id, occurrence_date=occurrence_date)
    store.put(exception)
    logger.debug("Stored deleted occurrence %s", exception.key)
    return exception


def restore_occurrence(store: ExceptionStore, series_id: str, occurrence_date: date) -> bool:
    """Drop the exception for one occurrence so it follows the series again.

    Returns:
        True if an exception was removed
    """
    return store.remove(OccurrenceKey(series_id, occurrence_date)) is not None


def _normalize_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(changes)

    unknown = set(normalized) - set(EventSeries.model_fields)
    if unknown:
        raise SeriesValidationError(f"Unknown series fields: {sorted(unknown)}")
    for frozen_field in ("id", "version"):
        if frozen_field in normalized:
            raise SeriesValidationError(f"Series field {frozen_field!r} cannot be edited")

    rule = normalized.get("recurrence_rule")
    if isinstance(rule, (str, Mapping)):
        normalized["recurrence_rule"] = parse_recurrence_rule(rule)
    return normalized


def edit_series(
    series: EventSeries,
    changes: Mapping[str, Any],
    store: ExceptionStore,
    interpreter: Optional[RecurrenceRuleInterpreter] = None,
) -> SeriesEditResult:
    """Edit all occurrences by replacing the series definition.

    The new definition is validated as a whole and its version bumped.
    Exceptions for dates the new definition no longer generates are removed
    from the store and returned as orphaned.

    Args:
        series: Current series
        changes: Field values to replace; ``recurrence_rule`` may be a model,
            a stored JSON payload/mapping, or None to stop recurring
        store: Exception store holding the series' exceptions
        interpreter: Interpreter used to check surviving exception dates

    Returns:
        SeriesEditResult with the new series and the removed exceptions

    Raises:
        SeriesValidationError: If the edited series is invalid
        RecurrenceRuleError: If a rule payload is malformed
    """
    normalized = _normalize_changes(changes)

    data = {name: getattr(series, name) for name in EventSeries.model_fields}
    data.update(normalized)
    data["version"] = series.version + 1
    try:
        updated = EventSeries.model_validate(data)
    except ValidationError as e:
        raise SeriesValidationError(f"Invalid edit of series {series.id}: {e}") from e

    orphaned = [
        exception
        for exception in store.for_series(series.id)
        if not generates_date(updated, exception.occurrence_date, interpreter)
    ]
    for exception in orphaned:
        store.remove(exception.key)

    if orphaned:
        logger.warning(
            "Edit of series %s removed %d exceptions on dates it no longer generates: %s",
            series.id,
            len(orphaned),
            ", ".join(exc.occurrence_date.isoformat() for exc in orphaned),
        )

    logger.info("Series %s updated to version %d", series.id, updated.version)
    return SeriesEditResult(series=updated, orphaned=orphaned)


def delete_series(store: ExceptionStore, series_id: str) -> int:
    """Remove all exceptions of a deleted series.

    Returns:
        Number of exceptions removed
    """
    purged = store.purge_series(series_id)
    logger.info("Deleted series %s and %d exceptions", series_id, purged)
    return purged
