"""Unit tests for the agenda (list) view grouping."""

from datetime import date, datetime

import pytest

from familycal.layout.agenda import agenda_for_day, agenda_for_week

pytestmark = pytest.mark.unit


@pytest.fixture
def instances(make_instance):
    return [
        make_instance("late", start=datetime(2024, 1, 1, 18, 0)),
        make_instance("early", start=datetime(2024, 1, 1, 7, 0)),
        make_instance("wed", start=datetime(2024, 1, 3, 12, 0)),
        make_instance("next-week", start=datetime(2024, 1, 8, 9, 0)),
        make_instance("prev-sat", start=datetime(2023, 12, 30, 9, 0)),
    ]


def test_agenda_for_day_sorted(instances) -> None:
    assert [i.instance_id for i in agenda_for_day(instances, date(2024, 1, 1))] == ["early", "late"]


def test_agenda_for_day_empty(instances) -> None:
    assert agenda_for_day(instances, date(2024, 1, 2)) == []


def test_agenda_for_week_groups_by_date(instances) -> None:
    grouped = agenda_for_week(instances, date(2024, 1, 3))

    assert list(grouped) == [date(2024, 1, 1), date(2024, 1, 3)]
    assert [i.instance_id for i in grouped[date(2024, 1, 1)]] == ["early", "late"]


def test_agenda_for_week_monday_start(instances) -> None:
    grouped = agenda_for_week(instances, date(2024, 1, 7), week_starts_on="monday")

    assert date(2024, 1, 8) not in grouped
    assert list(grouped) == [date(2024, 1, 1), date(2024, 1, 3)]


def test_multi_day_all_day_listed_on_each_covered_day(make_instance) -> None:
    camp = make_instance("camp", start=datetime(2024, 1, 1), end=datetime(2024, 1, 4), all_day=True)

    assert [agenda_for_day([camp], date(2024, 1, d)) for d in (1, 2, 3, 4)] == [[camp], [camp], [camp], []]


def test_week_lists_all_day_on_covered_days(instances, make_instance) -> None:
    camp = make_instance("camp", start=datetime(2024, 1, 2), end=datetime(2024, 1, 4), all_day=True)

    grouped = agenda_for_week([*instances, camp], date(2024, 1, 3))

    assert list(grouped) == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
    assert [i.instance_id for i in grouped[date(2024, 1, 3)]] == ["camp", "wed"]
