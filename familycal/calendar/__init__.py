"""Recurring series, occurrence exceptions and instance materialization."""

from .materializer import InstanceMaterializer, index_exceptions
from .models import (
    EventSeries,
    MaterializedInstance,
    OccurrenceException,
    OccurrenceKey,
    TimeWindow,
)
from .rrule_interpreter import RecurrenceRuleInterpreter
from .rule_codec import dump_recurrence_rule, parse_recurrence_rule
from .series_editor import EditScope, ExceptionStore
from .service import FamilyCalendar

__all__ = [
    "EditScope",
    "EventSeries",
    "ExceptionStore",
    "FamilyCalendar",
    "InstanceMaterializer",
    "MaterializedInstance",
    "OccurrenceException",
    "OccurrenceKey",
    "RecurrenceRuleInterpreter",
    "TimeWindow",
    "dump_recurrence_rule",
    "index_exceptions",
    "parse_recurrence_rule",
]
