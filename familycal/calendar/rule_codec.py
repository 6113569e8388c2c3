"""JSON boundary for recurrence rules.

Stored rules use the loosely-typed shape::

    {"type": "weekly", "interval": 1, "days": ["monday", "wednesday"],
     "endCount": 10, "additionalSettings": {"time_to_be_there": "08:45",
                                            "drive_time_minutes": "20"}}

They are validated once here and turned into the frequency-tagged models in
:mod:`familycal.calendar.models`; nothing downstream looks at the raw payload.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime, time
from typing import Any, Optional, Union

from dateutil import parser as date_parser
from pydantic import TypeAdapter, ValidationError

from familycal.calendar.models import (
    CountTerminator,
    Frequency,
    LogisticsSettings,
    RecurrenceRule,
    UntilTerminator,
    Weekday,
    WeeklyRule,
)
from familycal.core.exceptions import RecurrenceRuleError

_RULE_ADAPTER: TypeAdapter[RecurrenceRule] = TypeAdapter(RecurrenceRule)

RulePayload = Union[str, Mapping[str, Any]]


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_positive_int(value: Any, field_name: str) -> int:
    """Accept ints and digit strings (form inputs arrive as strings)."""
    if isinstance(value, bool):
        raise RecurrenceRuleError(f"{field_name} must be an integer, got {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        parsed = int(value.strip())
    else:
        raise RecurrenceRuleError(f"{field_name} must be an integer, got {value!r}")
    if parsed < 1:
        raise RecurrenceRuleError(f"{field_name} must be >= 1, got {parsed}")
    return parsed


def _parse_end_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date_parser.isoparse(value.strip()).date()
        except ValueError as e:
            raise RecurrenceRuleError(f"endDate is not an ISO date: {value!r}") from e
    raise RecurrenceRuleError(f"endDate is not an ISO date: {value!r}")


def _parse_weekdays(raw_days: Any) -> frozenset[Weekday]:
    if not isinstance(raw_days, (list, tuple, set, frozenset)):
        raise RecurrenceRuleError(f"days must be a list of weekday names, got {raw_days!r}")
    days = set()
    for raw in raw_days:
        name = raw.strip().lower() if isinstance(raw, str) else raw
        try:
            days.add(Weekday(name))
        except ValueError as e:
            raise RecurrenceRuleError(f"Unknown weekday name: {raw!r}") from e
    return frozenset(days)


def _parse_time_of_day(value: Any) -> Optional[time]:
    if _is_absent(value):
        return None
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip())
        except ValueError as e:
            raise RecurrenceRuleError(f"time_to_be_there is not HH:MM: {value!r}") from e
    raise RecurrenceRuleError(f"time_to_be_there is not HH:MM: {value!r}")


def _parse_logistics(raw: Any) -> Optional[LogisticsSettings]:
    if _is_absent(raw):
        return None
    if not isinstance(raw, Mapping):
        raise RecurrenceRuleError(f"additionalSettings must be an object, got {raw!r}")

    arrival = _parse_time_of_day(raw.get("time_to_be_there"))

    drive_minutes: Optional[int] = None
    raw_drive = raw.get("drive_time_minutes")
    if not _is_absent(raw_drive):
        # Zero means "no drive" in stored forms
        if str(raw_drive).strip() not in ("0", "0.0"):
            drive_minutes = _parse_positive_int(raw_drive, "drive_time_minutes")

    settings = LogisticsSettings(time_to_be_there=arrival, drive_time_minutes=drive_minutes)
    return None if settings.is_empty else settings


def parse_recurrence_rule(payload: RulePayload) -> RecurrenceRule:
    """Validate a stored/JSON recurrence rule and build the tagged model.

    Args:
        payload: JSON string or already-decoded mapping

    Returns:
        One of DailyRule, WeeklyRule, MonthlyRule, YearlyRule

    Raises:
        RecurrenceRuleError: If the payload is malformed in any way
    """
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise RecurrenceRuleError(f"Recurrence rule is not valid JSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, Mapping):
        raise RecurrenceRuleError(f"Recurrence rule must be an object, got {type(data).__name__}")

    raw_type = data.get("type")
    try:
        frequency = Frequency(raw_type.strip().lower() if isinstance(raw_type, str) else raw_type)
    except ValueError as e:
        raise RecurrenceRuleError(f"Unknown recurrence type: {raw_type!r}") from e

    if "interval" not in data or _is_absent(data["interval"]):
        raise RecurrenceRuleError("Recurrence rule missing interval")
    interval = _parse_positive_int(data["interval"], "interval")

    has_end_date = not _is_absent(data.get("endDate"))
    has_end_count = not _is_absent(data.get("endCount"))
    if has_end_date and has_end_count:
        raise RecurrenceRuleError("Recurrence rule has both endDate and endCount")
    if not has_end_date and not has_end_count:
        raise RecurrenceRuleError("Recurrence rule needs exactly one of endDate or endCount")

    terminator: Union[CountTerminator, UntilTerminator]
    if has_end_count:
        terminator = CountTerminator(count=_parse_positive_int(data["endCount"], "endCount"))
    else:
        terminator = UntilTerminator(until=_parse_end_date(data["endDate"]))

    fields: dict[str, Any] = {
        "frequency": frequency.value,
        "interval": interval,
        "terminator": terminator,
        "logistics": _parse_logistics(data.get("additionalSettings")),
    }

    raw_days = data.get("days")
    if not _is_absent(raw_days) and raw_days != []:
        days = _parse_weekdays(raw_days)
        if frequency is not Frequency.WEEKLY:
            raise RecurrenceRuleError(f"days are only valid for weekly rules, not {frequency.value}")
        fields["days"] = days

    try:
        return _RULE_ADAPTER.validate_python(fields)
    except ValidationError as e:
        raise RecurrenceRuleError(f"Invalid recurrence rule: {e}") from e


def dump_recurrence_rule(rule: RecurrenceRule) -> dict[str, Any]:
    """Serialize a rule back to the stored JSON shape."""
    data: dict[str, Any] = {"type": rule.freq.value, "interval": rule.interval}

    if isinstance(rule, WeeklyRule) and rule.days:
        data["days"] = [day.value for day in Weekday if day in rule.days]

    if isinstance(rule.terminator, CountTerminator):
        data["endCount"] = rule.terminator.count
    else:
        data["endDate"] = rule.terminator.until.isoformat()

    if rule.logistics is not None:
        logistics = rule.logistics
        data["additionalSettings"] = {
            "time_to_be_there": (
                logistics.time_to_be_there.strftime("%H:%M")
                if logistics.time_to_be_there
                else None
            ),
            "drive_time_minutes": (
                str(logistics.drive_time_minutes) if logistics.drive_time_minutes else None
            ),
        }

    return data
