"""Unit tests for InstanceMaterializer."""

from datetime import date, datetime, timedelta, timezone

import pytest

from familycal.calendar.materializer import InstanceMaterializer, MaterializerConfig, index_exceptions
from familycal.calendar.models import (
    Assignments,
    DeletedOccurrence,
    InstanceKind,
    ModifiedOccurrence,
    OccurrenceKey,
    OccurrenceOverride,
    TimeWindow,
)
from familycal.calendar.window_cache import ExpansionCache
from familycal.core.exceptions import RecurrenceExpansionError

pytestmark = pytest.mark.unit

DAILY_3 = {"type": "daily", "interval": 1, "endCount": 3}
MON_WED = {"type": "weekly", "interval": 1, "days": ["monday", "wednesday"], "endCount": 50}
FIRST_WEEKS = TimeWindow.for_dates(date(2024, 1, 1), date(2024, 1, 15))


@pytest.fixture
def materializer(simple_settings):
    return InstanceMaterializer(simple_settings)


def _modified(day: date, series_id: str = "s1", assignments=None, **overrides) -> ModifiedOccurrence:
    return ModifiedOccurrence(
        series_id=series_id,
        occurrence_date=day,
        overrides=OccurrenceOverride(**overrides),
        assignments=assignments,
    )


def _exceptions(*items):
    return {item.key: item for item in items}


class TestMaterializerConfig:
    def test_from_settings_reads_flag(self, simple_settings) -> None:
        simple_settings.include_logistics = False
        assert MaterializerConfig.from_settings(simple_settings).include_logistics is False

    def test_from_settings_defaults(self) -> None:
        assert MaterializerConfig.from_settings(None).include_logistics is True


class TestRecurringExpansion:
    """Recurring series without exceptions."""

    def test_daily_count_three(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3)

        instances = materializer.materialize(series, {}, TimeWindow.for_dates(date(2024, 1, 1), date(2024, 1, 7)))

        assert [(i.start, i.end) for i in instances] == [
            (datetime(2024, 1, d, 9, 0), datetime(2024, 1, d, 10, 0)) for d in (1, 2, 3)
        ]
        assert [i.instance_id for i in instances] == ["s1-2024-01-01", "s1-2024-01-02", "s1-2024-01-03"]
        assert all(i.is_recurring_instance and not i.is_exception for i in instances)
        assert instances[0].key == OccurrenceKey("s1", date(2024, 1, 1))

    def test_weekly_days_in_window(self, materializer, make_series) -> None:
        series = make_series(rule=MON_WED)

        instances = materializer.materialize(series, {}, FIRST_WEEKS)

        assert [i.occurrence_date for i in instances] == [
            date(2024, 1, 1),
            date(2024, 1, 3),
            date(2024, 1, 8),
            date(2024, 1, 10),
            date(2024, 1, 15),
        ]

    def test_instances_inherit_series_fields(self, materializer, make_series) -> None:
        series = make_series(
            rule=DAILY_3, members=("kid-1", "kid-2"), location="Gym", description="Bring water"
        )

        first = materializer.materialize(series, {}, FIRST_WEEKS)[0]

        assert first.location == "Gym"
        assert first.description == "Bring water"
        assert first.family_id == "fam-1"
        assert first.assignments.member_ids == ("kid-1", "kid-2")

    def test_occurrence_crossing_midnight_reaches_next_day(self, materializer, make_series) -> None:
        series = make_series(
            start=datetime(2024, 1, 1, 22, 0),
            end=datetime(2024, 1, 2, 2, 0),
            rule={"type": "daily", "interval": 1, "endCount": 5},
        )

        instances = materializer.materialize(
            series, {}, TimeWindow.for_dates(date(2024, 1, 2), date(2024, 1, 2))
        )

        assert [i.occurrence_date for i in instances] == [date(2024, 1, 1), date(2024, 1, 2)]

    def test_window_before_anchor_is_empty(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3)

        window = TimeWindow.for_dates(date(2023, 12, 1), date(2023, 12, 31))

        assert materializer.materialize(series, {}, window) == []

    def test_aware_series_times_become_naive_local(self, materializer, make_series) -> None:
        aware_start = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        local_start = aware_start.astimezone().replace(tzinfo=None)
        series = make_series(start=aware_start, rule=DAILY_3)

        instances = materializer.materialize(
            series, {}, TimeWindow.for_dates(date(2023, 12, 30), date(2024, 1, 6))
        )

        assert series.start == local_start
        assert series.start.tzinfo is None
        assert [i.start for i in instances] == [local_start + timedelta(days=n) for n in range(3)]

    def test_aware_override_start_becomes_naive_local(self) -> None:
        aware = datetime(2024, 1, 2, 11, 0, tzinfo=timezone.utc)

        override = OccurrenceOverride(start=aware)

        assert override.start == aware.astimezone().replace(tzinfo=None)

    def test_repeated_calls_are_identical(self, materializer, make_series) -> None:
        series = make_series(rule=MON_WED)
        exceptions = _exceptions(DeletedOccurrence(series_id="s1", occurrence_date=date(2024, 1, 8)))

        first = materializer.materialize(series, exceptions, FIRST_WEEKS)
        second = materializer.materialize(series, exceptions, FIRST_WEEKS)

        assert first == second


class TestExceptions:
    """Deleted and modified occurrences."""

    def test_deleted_occurrence_is_absent(self, materializer, make_series) -> None:
        series = make_series(rule=MON_WED)
        exceptions = _exceptions(DeletedOccurrence(series_id="s1", occurrence_date=date(2024, 1, 3)))

        instances = materializer.materialize(series, exceptions, FIRST_WEEKS)

        assert [i.occurrence_date for i in instances] == [
            date(2024, 1, 1),
            date(2024, 1, 8),
            date(2024, 1, 10),
            date(2024, 1, 15),
        ]

    def test_exceptions_of_other_series_are_ignored(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3)
        exceptions = _exceptions(DeletedOccurrence(series_id="other", occurrence_date=date(2024, 1, 2)))

        assert len(materializer.materialize(series, exceptions, FIRST_WEEKS)) == 3

    def test_modified_overrides_apply(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3, members=("kid-1",), location="Office")
        exceptions = _exceptions(
            _modified(
                date(2024, 1, 2),
                title="Late standup",
                start=datetime(2024, 1, 2, 11, 0),
                location=None,
                assignments=Assignments(member_ids=("mom",)),
            )
        )

        instances = materializer.materialize(series, exceptions, FIRST_WEEKS)
        modified = instances[1]

        assert modified.instance_id == "s1-2024-01-02"
        assert modified.is_exception is True
        assert modified.title == "Late standup"
        assert modified.start == datetime(2024, 1, 2, 11, 0)
        assert modified.end == datetime(2024, 1, 2, 12, 0)
        assert modified.location is None
        assert modified.assignments.member_ids == ("mom",)
        # Neighbours untouched
        assert instances[0].title == "Standup"
        assert instances[2].location == "Office"

    def test_unset_override_fields_inherit(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3, members=("kid-1",), description="Daily sync")
        exceptions = _exceptions(_modified(date(2024, 1, 3), location="Room 2"))

        modified = materializer.materialize(series, exceptions, FIRST_WEEKS)[2]

        assert modified.title == "Standup"
        assert modified.description == "Daily sync"
        assert modified.location == "Room 2"
        assert modified.start == datetime(2024, 1, 3, 9, 0)
        assert modified.assignments.member_ids == ("kid-1",)

    def test_explicit_none_title_keeps_series_title(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3)
        exceptions = _exceptions(_modified(date(2024, 1, 1), title=None))

        assert materializer.materialize(series, exceptions, FIRST_WEEKS)[0].title == "Standup"

    def test_end_override_before_start_is_ignored(self, materializer, make_series, caplog) -> None:
        series = make_series(rule=DAILY_3)
        exceptions = _exceptions(_modified(date(2024, 1, 2), end=datetime(2024, 1, 2, 8, 0)))

        with caplog.at_level("WARNING"):
            modified = materializer.materialize(series, exceptions, FIRST_WEEKS)[1]

        assert modified.end == datetime(2024, 1, 2, 10, 0)
        assert "Ignoring end override" in caplog.text

    def test_end_override_extends_occurrence(self, materializer, make_series) -> None:
        series = make_series(rule=DAILY_3)
        exceptions = _exceptions(_modified(date(2024, 1, 2), end=datetime(2024, 1, 2, 12, 0)))

        modified = materializer.materialize(series, exceptions, FIRST_WEEKS)[1]

        assert modified.end == datetime(2024, 1, 2, 12, 0)

    def test_occurrence_moved_into_window_is_included(self, materializer, make_series) -> None:
        series = make_series(rule={"type": "weekly", "interval": 1, "days": ["monday"], "endCount": 10})
        exceptions = _exceptions(_modified(date(2024, 1, 8), start=datetime(2024, 1, 6, 10, 0)))

        instances = materializer.materialize(
            series, exceptions, TimeWindow.for_dates(date(2024, 1, 6), date(2024, 1, 6))
        )

        assert [i.instance_id for i in instances] == ["s1-2024-01-08"]
        assert instances[0].start == datetime(2024, 1, 6, 10, 0)

    def test_occurrence_moved_out_of_window_is_excluded(self, materializer, make_series) -> None:
        series = make_series(rule={"type": "weekly", "interval": 1, "days": ["monday"], "endCount": 10})
        exceptions = _exceptions(_modified(date(2024, 1, 8), start=datetime(2024, 1, 20, 10, 0)))

        instances = materializer.materialize(
            series, exceptions, TimeWindow.for_dates(date(2024, 1, 8), date(2024, 1, 8))
        )

        assert instances == []

    def test_modified_date_not_generated_by_rule_is_ignored(self, materializer, make_series) -> None:
        series = make_series(rule={"type": "weekly", "interval": 1, "days": ["monday"], "endCount": 10})
        exceptions = _exceptions(_modified(date(2024, 1, 9), start=datetime(2024, 1, 6, 10, 0)))

        instances = materializer.materialize(
            series, exceptions, TimeWindow.for_dates(date(2024, 1, 6), date(2024, 1, 6))
        )

        assert instances == []


class TestSingleEvents:
    def test_non_recurring_in_window(self, materializer, make_series) -> None:
        series = make_series()

        instances = materializer.materialize(series, {}, FIRST_WEEKS)

        assert len(instances) == 1
        assert instances[0].instance_id == "s1"
        assert instances[0].occurrence_date is None
        assert instances[0].is_recurring_instance is False

    def test_non_recurring_outside_window(self, materializer, make_series) -> None:
        series = make_series(start=datetime(2024, 2, 1, 9, 0))
        assert materializer.materialize(series, {}, FIRST_WEEKS) == []

    def test_non_recurring_deleted(self, materializer, make_series) -> None:
        series = make_series()
        exceptions = _exceptions(DeletedOccurrence(series_id="s1", occurrence_date=date(2024, 1, 1)))

        assert materializer.materialize(series, exceptions, FIRST_WEEKS) == []

    def test_non_recurring_modified(self, materializer, make_series) -> None:
        series = make_series()
        exceptions = _exceptions(_modified(date(2024, 1, 1), title="Renamed"))

        instance = materializer.materialize(series, exceptions, FIRST_WEEKS)[0]

        assert instance.title == "Renamed"
        assert instance.is_exception is True

    def test_expansion_failure_degrades_to_single_event(
        self, materializer, make_series, monkeypatch, caplog
    ) -> None:
        def _fail(*args, **kwargs):
            raise RecurrenceExpansionError("boom")

        monkeypatch.setattr(materializer.interpreter, "occurrence_dates", _fail)
        series = make_series(rule=DAILY_3)

        with caplog.at_level("WARNING"):
            instances = materializer.materialize(series, {}, FIRST_WEEKS)

        assert [i.instance_id for i in instances] == ["s1"]
        assert instances[0].start == datetime(2024, 1, 1, 9, 0)
        assert "showing it as a single event" in caplog.text


class TestLogisticsIntegration:
    RULE = {
        "type": "daily",
        "interval": 1,
        "endCount": 2,
        "additionalSettings": {"time_to_be_there": "08:45", "drive_time_minutes": 20},
    }

    def test_sub_events_follow_main_instance(self, materializer, make_series) -> None:
        series = make_series(rule=self.RULE, members=("kid-1",), driver="dad")

        instances = materializer.materialize(series, {}, FIRST_WEEKS)

        assert [i.instance_id for i in instances] == [
            "s1-2024-01-01",
            "s1-2024-01-01~arrival",
            "s1-2024-01-01~drive",
            "s1-2024-01-02",
            "s1-2024-01-02~arrival",
            "s1-2024-01-02~drive",
        ]
        drive = instances[2]
        assert drive.kind is InstanceKind.DRIVE_TIME
        assert (drive.start, drive.end) == (datetime(2024, 1, 1, 8, 25), datetime(2024, 1, 1, 8, 45))

    def test_deleted_occurrence_has_no_sub_events(self, materializer, make_series) -> None:
        series = make_series(rule=self.RULE, driver="dad")
        exceptions = _exceptions(DeletedOccurrence(series_id="s1", occurrence_date=date(2024, 1, 1)))

        instances = materializer.materialize(series, exceptions, FIRST_WEEKS)

        assert {i.occurrence_date for i in instances} == {date(2024, 1, 2)}

    def test_disabled_by_settings(self, simple_settings, make_series) -> None:
        simple_settings.include_logistics = False
        series = make_series(rule=self.RULE, driver="dad")

        instances = InstanceMaterializer(simple_settings).materialize(series, {}, FIRST_WEEKS)

        assert all(i.kind is InstanceKind.MAIN for i in instances)


class TestMaterializeFamily:
    def test_sorted_by_start_then_title(self, materializer, make_series) -> None:
        series = [
            make_series("b", title="Soccer", start=datetime(2024, 1, 2, 9, 0)),
            make_series("a", title="Piano", start=datetime(2024, 1, 2, 9, 0)),
            make_series("c", title="Breakfast", start=datetime(2024, 1, 2, 7, 0)),
        ]

        instances = materializer.materialize_family(series, {}, FIRST_WEEKS)

        assert [i.title for i in instances] == ["Breakfast", "Piano", "Soccer"]


class TestCaching:
    def test_second_call_hits_cache(self, simple_settings, make_series) -> None:
        cache = ExpansionCache(max_size=8)
        materializer = InstanceMaterializer(simple_settings, cache=cache)
        series = make_series(rule=DAILY_3)

        first = materializer.materialize(series, {}, FIRST_WEEKS)
        second = materializer.materialize(series, {}, FIRST_WEEKS)

        assert first == second
        assert cache.get_stats()["hits"] == 1

    def test_new_version_misses_cache(self, simple_settings, make_series) -> None:
        cache = ExpansionCache(max_size=8)
        materializer = InstanceMaterializer(simple_settings, cache=cache)
        series = make_series(rule=DAILY_3)
        materializer.materialize(series, {}, FIRST_WEEKS)

        bumped = series.model_copy(update={"version": 1, "title": "Renamed"})
        instances = materializer.materialize(bumped, {}, FIRST_WEEKS)

        assert instances[0].title == "Renamed"
        assert cache.get_stats()["hits"] == 0


def test_index_exceptions_last_write_wins(caplog) -> None:
    older = _modified(date(2024, 1, 2), title="First")
    newer = DeletedOccurrence(series_id="s1", occurrence_date=date(2024, 1, 2))

    with caplog.at_level("WARNING"):
        indexed = index_exceptions([older, newer])

    assert indexed == {OccurrenceKey("s1", date(2024, 1, 2)): newer}
    assert "Duplicate exception" in caplog.text


def test_short_window_selects_by_intersection(materializer, make_series) -> None:
    """A window shorter than a day still selects occurrences by intersection."""
    series = make_series(rule=DAILY_3)
    window = TimeWindow(start=datetime(2024, 1, 2, 9, 30), end=datetime(2024, 1, 2, 9, 30) + timedelta(minutes=1))

    assert [i.occurrence_date for i in materializer.materialize(series, {}, window)] == [date(2024, 1, 2)]
