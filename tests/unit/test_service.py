"""Unit tests for FamilyCalendar."""

from datetime import date, datetime

import pytest

from familycal.calendar.models import (
    DeletedOccurrence,
    EventSeries,
    InstanceKind,
    ModifiedOccurrence,
    OccurrenceKey,
)
from familycal.calendar.series_editor import EditScope
from familycal.calendar.service import FamilyCalendar
from familycal.core.exceptions import InstanceIdError, OccurrenceNotFoundError, SeriesValidationError

pytestmark = pytest.mark.unit

MON_WED = {"type": "weekly", "interval": 1, "days": ["monday", "wednesday"], "endCount": 50}


@pytest.fixture
def calendar(simple_settings, make_series):
    cal = FamilyCalendar(simple_settings)
    cal.add_series(make_series(rule=MON_WED))
    return cal


def _dates(instances):
    return [i.occurrence_date for i in instances if i.kind is InstanceKind.MAIN]


class TestQueries:
    def test_instances_for_dates(self, calendar) -> None:
        assert _dates(calendar.instances_for_dates(date(2024, 1, 1), date(2024, 1, 10))) == [
            date(2024, 1, 1),
            date(2024, 1, 3),
            date(2024, 1, 8),
            date(2024, 1, 10),
        ]

    def test_single_day_query(self, calendar) -> None:
        assert _dates(calendar.instances_for_dates(date(2024, 1, 3))) == [date(2024, 1, 3)]

    def test_get_series_unknown_raises(self, calendar) -> None:
        with pytest.raises(OccurrenceNotFoundError):
            calendar.get_series("missing")

    def test_add_duplicate_raises(self, calendar, make_series) -> None:
        with pytest.raises(SeriesValidationError):
            calendar.add_series(make_series())


class TestCreateEvent:
    def test_create_event_generates_id(self, calendar) -> None:
        series = calendar.create_event(
            "Piano", datetime(2024, 1, 2, 16, 0), datetime(2024, 1, 2, 16, 30), "fam-1", "user-1"
        )

        assert isinstance(series, EventSeries)
        assert len(series.id) == 36
        assert calendar.get_series(series.id) is series
        assert [i.title for i in calendar.instances_for_dates(date(2024, 1, 2))] == ["Piano"]

    def test_create_event_invalid_raises(self, calendar) -> None:
        with pytest.raises(SeriesValidationError):
            calendar.create_event(
                "Piano", datetime(2024, 1, 2, 16, 0), datetime(2024, 1, 2, 15, 0), "fam-1", "user-1"
            )


class TestEditing:
    def test_single_occurrence_edit(self, calendar) -> None:
        calendar.instances_for_dates(date(2024, 1, 1), date(2024, 1, 10))

        exception = calendar.update("s1-2024-01-03", {"title": "Dentist"}, scope="single")

        assert isinstance(exception, ModifiedOccurrence)
        titles = [i.title for i in calendar.instances_for_dates(date(2024, 1, 1), date(2024, 1, 10))]
        assert titles == ["Standup", "Dentist", "Standup", "Standup"]

    def test_single_edit_rejects_series_fields(self, calendar) -> None:
        with pytest.raises(SeriesValidationError):
            calendar.update("s1-2024-01-03", {"recurrence_rule": None}, scope=EditScope.SINGLE)

    def test_edit_all_replaces_series(self, calendar) -> None:
        calendar.instances_for_dates(date(2024, 1, 1), date(2024, 1, 10))

        updated = calendar.update("s1-2024-01-03", {"title": "Practice"})

        assert updated.version == 1
        titles = {i.title for i in calendar.instances_for_dates(date(2024, 1, 1), date(2024, 1, 10))}
        assert titles == {"Practice"}

    def test_delete_single_then_restore(self, calendar) -> None:
        window = (date(2024, 1, 1), date(2024, 1, 10))
        calendar.instances_for_dates(*window)

        calendar.delete("s1-2024-01-08", scope="single")
        assert date(2024, 1, 8) not in _dates(calendar.instances_for_dates(*window))
        assert isinstance(calendar.exceptions[OccurrenceKey("s1", date(2024, 1, 8))], DeletedOccurrence)

        assert calendar.restore("s1-2024-01-08") is True
        assert date(2024, 1, 8) in _dates(calendar.instances_for_dates(*window))

    def test_delete_all_removes_series_and_exceptions(self, calendar) -> None:
        calendar.delete("s1-2024-01-08", scope="single")

        calendar.delete("s1")

        assert calendar.series == []
        assert len(calendar.exceptions) == 0
        assert calendar.instances_for_dates(date(2024, 1, 1), date(2024, 1, 10)) == []

    def test_single_scope_on_non_recurring_edits_series(self, simple_settings, make_series) -> None:
        cal = FamilyCalendar(simple_settings)
        cal.add_series(make_series("one-off"))

        updated = cal.update("one-off", {"title": "Moved"}, scope="single")

        assert isinstance(updated, EventSeries)
        assert updated.title == "Moved"

    def test_logistics_ids_cannot_be_edited(self, calendar) -> None:
        with pytest.raises(InstanceIdError):
            calendar.update("s1-2024-01-03~drive", {"title": "x"}, scope="single")

    def test_edit_of_date_not_in_rule_raises(self, calendar) -> None:
        with pytest.raises(OccurrenceNotFoundError):
            calendar.update("s1-2024-01-04", {"title": "x"}, scope="single")

    def test_unknown_scope_raises(self, calendar) -> None:
        with pytest.raises(ValueError):
            calendar.update("s1", {"title": "x"}, scope="some")


class TestFromRecords:
    def test_loads_rows_and_drops_orphan_exceptions(self, simple_settings, caplog) -> None:
        rows = [
            {
                "id": "evt-1",
                "title": "Swim",
                "start_time": "2024-01-01T17:00:00",
                "end_time": "2024-01-01T18:00:00",
                "family_id": "fam-1",
                "created_by_user_id": "user-1",
                "recurrence_rule": {"type": "daily", "interval": 1, "endCount": 3},
            },
            {"parent_event_id": "evt-1", "recurrence_instance_date": "2024-01-02", "title": "DELETED"},
            {"parent_event_id": "gone", "recurrence_instance_date": "2024-01-02", "title": "DELETED"},
        ]

        with caplog.at_level("WARNING"):
            cal = FamilyCalendar.from_records(rows, settings=simple_settings)

        assert _dates(cal.instances_for_dates(date(2024, 1, 1), date(2024, 1, 5))) == [
            date(2024, 1, 1),
            date(2024, 1, 3),
        ]
        assert len(cal.exceptions) == 1
        assert "unknown series gone" in caplog.text


def test_cache_disabled_when_size_zero(simple_settings) -> None:
    simple_settings.cache_max_entries = 0
    assert FamilyCalendar(simple_settings).materializer.cache is None
