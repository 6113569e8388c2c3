"""Recurrence rule interpretation: lazy occurrence-date generation for a query window."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from dateutil.rrule import DAILY, MONTHLY, SU, WEEKLY, YEARLY, rrule, weekdays

from familycal.calendar.models import (
    CountTerminator,
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    UntilTerminator,
    Weekday,
    WeeklyRule,
    YearlyRule,
)
from familycal.core.exceptions import RecurrenceExpansionError

logger = logging.getLogger(__name__)


@dataclass
class InterpreterConfig:
    """Configuration for occurrence generation."""

    max_occurrences_per_call: int = 500

    @classmethod
    def from_settings(cls, settings: Any) -> InterpreterConfig:
        """Extract interpreter configuration from a settings object.

        Args:
            settings: Configuration object (FamilyCalSettings or any look-alike)

        Returns:
            InterpreterConfig with values from settings or defaults
        """
        return cls(
            max_occurrences_per_call=getattr(settings, "max_occurrences_per_call", 500),
        )


def _weekly_byweekday(rule: WeeklyRule, anchor: date) -> list[Any]:
    days = rule.days or frozenset({Weekday.from_date(anchor)})
    return [weekdays[day.python_weekday] for day in sorted(days, key=lambda d: d.python_weekday)]


def build_rrule(rule: RecurrenceRule, anchor: date) -> rrule:
    """Translate a validated rule into a dateutil rrule anchored at ``anchor``.

    Monthly and yearly rules pin the anchor's day-of-month (and month), so months
    or years lacking that day are skipped rather than rolled over. Count and
    until are evaluated from the anchor, never from a query window.

    Raises:
        RecurrenceExpansionError: If the rule type is not supported
    """
    kwargs: dict[str, Any] = {
        "dtstart": datetime.combine(anchor, time.min),
        "interval": rule.interval,
        # Week boundaries for multi-week intervals start on Sunday
        "wkst": SU,
    }

    terminator = rule.terminator
    if isinstance(terminator, CountTerminator):
        kwargs["count"] = terminator.count
    elif isinstance(terminator, UntilTerminator):
        kwargs["until"] = datetime.combine(terminator.until, time.min)
    else:
        raise RecurrenceExpansionError(f"Unsupported terminator: {terminator!r}")

    if isinstance(rule, DailyRule):
        return rrule(DAILY, **kwargs)
    if isinstance(rule, WeeklyRule):
        return rrule(WEEKLY, byweekday=_weekly_byweekday(rule, anchor), **kwargs)
    if isinstance(rule, MonthlyRule):
        return rrule(MONTHLY, bymonthday=anchor.day, **kwargs)
    if isinstance(rule, YearlyRule):
        return rrule(YEARLY, bymonth=anchor.month, bymonthday=anchor.day, **kwargs)

    raise RecurrenceExpansionError(f"Unsupported recurrence rule: {type(rule).__name__}")


class OccurrenceSequence:
    """Restartable, lazy sequence of occurrence dates in ``[window_start, window_end)``.

    Each iteration re-walks the rule from the anchor, so the sequence can be
    consumed any number of times. At most ``ceiling`` dates are yielded per
    iteration.
    """

    def __init__(
        self,
        rule_set: rrule,
        window_start: date,
        window_end: date,
        ceiling: int,
        label: str = "",
    ) -> None:
        self._rule_set = rule_set
        self.window_start = window_start
        self.window_end = window_end
        self.ceiling = ceiling
        self._label = label

    def __iter__(self) -> Iterator[date]:
        if self.window_end <= self.window_start:
            return

        emitted = 0
        start_dt = datetime.combine(self.window_start, time.min)
        for occurrence in self._rule_set.xafter(start_dt, inc=True):
            occurrence_date = occurrence.date()
            if occurrence_date >= self.window_end:
                break

            if emitted >= self.ceiling:
                logger.warning(
                    "Occurrence generation for %s stopped at ceiling of %d dates in %s..%s",
                    self._label or "<rule>",
                    self.ceiling,
                    self.window_start,
                    self.window_end,
                )
                break

            emitted += 1
            yield occurrence_date

        logger.debug(
            "Generated %d occurrence dates for %s in %s..%s",
            emitted,
            self._label or "<rule>",
            self.window_start,
            self.window_end,
        )


class RecurrenceRuleInterpreter:
    """Generates candidate occurrence dates for validated recurrence rules."""

    def __init__(self, settings: Any = None):
        """Initialize interpreter with configuration settings.

        Args:
            settings: Configuration object with ``max_occurrences_per_call``
        """
        config = InterpreterConfig.from_settings(settings)
        self.max_occurrences = config.max_occurrences_per_call

        logger.debug(
            "RecurrenceRuleInterpreter initialized: max_occurrences=%d", self.max_occurrences
        )

    def occurrence_dates(
        self,
        rule: RecurrenceRule,
        anchor: date,
        window_start: date,
        window_end: date,
        label: str = "",
    ) -> OccurrenceSequence:
        """Candidate occurrence dates intersecting ``[window_start, window_end)``.

        Args:
            rule: Validated recurrence rule
            anchor: Date of the series' first (anchor) occurrence
            window_start: First date of the window (inclusive)
            window_end: End date of the window (exclusive)
            label: Series identifier used in log messages

        Returns:
            Lazy, ordered, duplicate-free sequence of dates

        Raises:
            RecurrenceExpansionError: If the rule cannot be expanded
        """
        try:
            rule_set = build_rrule(rule, anchor)
        except (ValueError, TypeError) as e:
            raise RecurrenceExpansionError(f"Failed to build rule for {label or anchor}: {e}") from e

        return OccurrenceSequence(
            rule_set,
            window_start=max(window_start, anchor),
            window_end=window_end,
            ceiling=self.max_occurrences,
            label=label,
        )

    def occurs_on(self, rule: RecurrenceRule, anchor: date, day: date) -> bool:
        """Check whether ``day`` is a date the rule generates (terminator included)."""
        if day < anchor:
            return False
        sequence = self.occurrence_dates(rule, anchor, day, day + timedelta(days=1))
        return any(occurrence == day for occurrence in sequence)
