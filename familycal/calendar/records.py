"""Decoding of stored event rows into series and occurrence exceptions.

Rows follow the stored ``events`` table shape: recurring parents carry a JSON
``recurrence_rule``; per-occurrence exceptions are child rows with
``parent_event_id`` and ``recurrence_instance_date``; a child titled
``DELETED`` marks a deleted occurrence; ``is_deleted`` rows are soft-deleted
and ignored. Assignments arrive as ``event_assignments`` lists of
``{"family_member_id": ..., "is_driver_helper": bool}``.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import ValidationError

from familycal.calendar.logistics import (
    ARRIVAL_TITLE_SUFFIX,
    is_logistics_title,
)
from familycal.calendar.models import (
    Assignments,
    DeletedOccurrence,
    EventSeries,
    ModifiedOccurrence,
    OccurrenceException,
    OccurrenceOverride,
)
from familycal.calendar.rule_codec import parse_recurrence_rule
from familycal.core.exceptions import RecurrenceRuleError, SeriesValidationError

logger = logging.getLogger(__name__)

DELETED_MARKER_TITLE = "DELETED"

Row = Mapping[str, Any]


def parse_datetime(value: Any, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """Parse a stored timestamp into a naive local wall-clock datetime.

    Args:
        value: ISO 8601 string or datetime
        tz: Zone to convert aware values into (system local zone when None)

    Returns:
        Naive datetime

    Raises:
        SeriesValidationError: If the value is not a timestamp
    """
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = date_parser.isoparse(value.strip())
        except ValueError as e:
            raise SeriesValidationError(f"Invalid timestamp: {value!r}") from e
    else:
        raise SeriesValidationError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(tz).replace(tzinfo=None)
    return dt


def _parse_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return date_parser.isoparse(value.strip()).date()
        except ValueError as e:
            raise SeriesValidationError(f"Invalid recurrence_instance_date: {value!r}") from e
    raise SeriesValidationError(f"Invalid recurrence_instance_date: {value!r}")


def assignments_from_rows(rows: Optional[Iterable[Row]]) -> Assignments:
    """Build Assignments from ``event_assignments`` rows."""
    members: list[str] = []
    driver: Optional[str] = None
    for row in rows or ():
        member_id = row.get("family_member_id") or row.get("member_id")
        if not member_id:
            continue
        if row.get("is_driver_helper"):
            driver = str(member_id)
        else:
            members.append(str(member_id))
    return Assignments(member_ids=tuple(members), driver_helper_id=driver)


def series_from_record(row: Row, tz: Optional[datetime.tzinfo] = None) -> EventSeries:
    """Decode a parent or standalone event row.

    A malformed stored ``recurrence_rule`` does not fail the row: it is logged
    and the series is treated as non-recurring.

    Raises:
        SeriesValidationError: If required fields are missing or inconsistent
    """
    rule = None
    raw_rule = row.get("recurrence_rule")
    if raw_rule:
        try:
            rule = parse_recurrence_rule(raw_rule)
        except RecurrenceRuleError as e:
            logger.warning(
                "Series %s has a malformed recurrence rule, treating as non-recurring: %s",
                row.get("id"),
                e,
            )

    try:
        return EventSeries(
            id=str(row.get("id") or ""),
            title=row.get("title") or "",
            description=row.get("description"),
            location=row.get("location"),
            start=parse_datetime(row.get("start_time"), tz),
            end=parse_datetime(row.get("end_time"), tz),
            all_day=bool(row.get("all_day", False)),
            recurrence_rule=rule,
            family_id=str(row.get("family_id") or ""),
            created_by=str(row.get("created_by_user_id") or row.get("created_by") or ""),
            assignments=assignments_from_rows(row.get("event_assignments")),
            version=int(row.get("version") or 0),
        )
    except ValidationError as e:
        raise SeriesValidationError(f"Invalid event row {row.get('id')!r}: {e}") from e


def exception_from_record(row: Row, tz: Optional[datetime.tzinfo] = None) -> OccurrenceException:
    """Decode an exception child row.

    Raises:
        SeriesValidationError: If the row lacks its parent reference or dates
    """
    parent_id = row.get("parent_event_id")
    raw_date = row.get("recurrence_instance_date")
    if not parent_id or not raw_date:
        raise SeriesValidationError(
            f"Exception row {row.get('id')!r} needs parent_event_id and recurrence_instance_date"
        )
    occurrence_date = _parse_date(raw_date)

    if row.get("title") == DELETED_MARKER_TITLE:
        return DeletedOccurrence(series_id=str(parent_id), occurrence_date=occurrence_date)

    override_fields: dict[str, Any] = {}
    for name in ("title", "description", "location"):
        if name in row:
            override_fields[name] = row[name]
    if row.get("start_time"):
        override_fields["start"] = parse_datetime(row["start_time"], tz)
    if row.get("end_time"):
        override_fields["end"] = parse_datetime(row["end_time"], tz)
    if "all_day" in row:
        override_fields["all_day"] = bool(row["all_day"])

    # An exception without its own assignment rows inherits the parent's
    own_assignments = None
    if row.get("event_assignments"):
        own_assignments = assignments_from_rows(row["event_assignments"])

    try:
        return ModifiedOccurrence(
            series_id=str(parent_id),
            occurrence_date=occurrence_date,
            overrides=OccurrenceOverride(**override_fields),
            assignments=own_assignments,
        )
    except ValidationError as e:
        raise SeriesValidationError(f"Invalid exception row {row.get('id')!r}: {e}") from e


def _is_stored_logistics_row(row: Row) -> bool:
    title = row.get("title") or ""
    return bool(row.get("parent_event_id")) and (
        is_logistics_title(title) or title.endswith(ARRIVAL_TITLE_SUFFIX)
    )


@dataclass
class LoadedRecords:
    """Series and exceptions decoded from one batch of rows."""

    series: list[EventSeries] = field(default_factory=list)
    exceptions: list[OccurrenceException] = field(default_factory=list)
    skipped: int = 0


def load_records(
    rows: Iterable[Row],
    exception_rows: Iterable[Row] = (),
    tz: Optional[datetime.tzinfo] = None,
) -> LoadedRecords:
    """Split stored rows into series and exceptions.

    Soft-deleted rows and stored arrival/drive child rows (those are derived on
    demand now) are skipped, as is any row that fails to decode.

    Args:
        rows: Event rows; child rows with ``parent_event_id`` are exceptions
        exception_rows: Additional exception rows stored separately
        tz: Zone to convert aware timestamps into

    Returns:
        LoadedRecords in row order
    """
    loaded = LoadedRecords()

    for row in [*rows, *exception_rows]:
        if row.get("is_deleted"):
            loaded.skipped += 1
            continue
        if _is_stored_logistics_row(row):
            loaded.skipped += 1
            continue

        try:
            if row.get("parent_event_id"):
                loaded.exceptions.append(exception_from_record(row, tz))
            else:
                loaded.series.append(series_from_record(row, tz))
        except SeriesValidationError as e:
            logger.warning("Skipping row %s: %s", row.get("id"), e)
            loaded.skipped += 1

    logger.debug(
        "Loaded %d series and %d exceptions (%d rows skipped)",
        len(loaded.series),
        len(loaded.exceptions),
        loaded.skipped,
    )
    return loaded
