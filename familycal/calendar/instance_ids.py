"""Composite instance identifiers used at the UI boundary.

An instance id is the bare series id (non-recurring event or series parent) or
``<series_id>-<YYYY-MM-DD>`` for an occurrence of a recurring series. Derived
logistics sub-events append ``~arrival`` / ``~drive``. Internally occurrences are
always addressed by :class:`OccurrenceKey`; these strings are only produced for
and decoded from the UI.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from familycal.calendar.models import InstanceKind, OccurrenceKey
from familycal.core.exceptions import InstanceIdError

_DATE_SUFFIX_RE = re.compile(r"^(?P<series_id>.+)-(?P<date>\d{4}-\d{2}-\d{2})$")

_KIND_SUFFIXES = {
    InstanceKind.ARRIVAL: "~arrival",
    InstanceKind.DRIVE_TIME: "~drive",
}


@dataclass(frozen=True)
class InstanceRef:
    """Decoded form of a UI instance id."""

    series_id: str
    occurrence_date: Optional[date] = None
    kind: InstanceKind = InstanceKind.MAIN

    @property
    def key(self) -> Optional[OccurrenceKey]:
        if self.occurrence_date is None:
            return None
        return OccurrenceKey(self.series_id, self.occurrence_date)


def encode_instance_id(
    series_id: str,
    occurrence_date: Optional[date] = None,
    kind: InstanceKind = InstanceKind.MAIN,
) -> str:
    """Build the UI id for a series, an occurrence or a derived sub-event."""
    if not series_id:
        raise InstanceIdError("series_id must be non-empty")

    instance_id = series_id
    if occurrence_date is not None:
        instance_id = f"{series_id}-{occurrence_date.isoformat()}"
    return instance_id + _KIND_SUFFIXES.get(kind, "")


def decode_instance_id(instance_id: str) -> InstanceRef:
    """Split a UI id back into series id, occurrence date and kind.

    A trailing ``-YYYY-MM-DD`` that is not a real calendar date is treated as part
    of the series id.

    Raises:
        InstanceIdError: If the id is empty
    """
    if not instance_id or not instance_id.strip():
        raise InstanceIdError("instance id must be non-empty")

    kind = InstanceKind.MAIN
    for candidate, suffix in _KIND_SUFFIXES.items():
        if instance_id.endswith(suffix) and len(instance_id) > len(suffix):
            kind = candidate
            instance_id = instance_id[: -len(suffix)]
            break

    match = _DATE_SUFFIX_RE.match(instance_id)
    if match:
        try:
            occurrence_date = date.fromisoformat(match.group("date"))
        except ValueError:
            return InstanceRef(series_id=instance_id, kind=kind)
        return InstanceRef(
            series_id=match.group("series_id"), occurrence_date=occurrence_date, kind=kind
        )

    return InstanceRef(series_id=instance_id, kind=kind)
