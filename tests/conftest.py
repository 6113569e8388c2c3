"""Shared fixtures for familycal tests."""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from familycal.calendar.models import Assignments, EventSeries, MaterializedInstance
from familycal.calendar.rule_codec import parse_recurrence_rule
from familycal.core.settings import reset_settings


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "critical_path: Core functionality tests")


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object with the default configuration values.

    Components read settings through getattr, so tests override single
    fields with ``simple_settings.<field> = value``.
    """
    return SimpleNamespace(
        max_occurrences_per_call=500,
        include_logistics=True,
        cache_max_entries=256,
        slot_minutes=30,
        slot_height_px=32,
        min_event_height_px=20,
        simplified_threshold_minutes=60,
        initial_scroll_hour=7,
        week_starts_on="sunday",
        column_strategy="greedy",
        drag_threshold_px=5.0,
        click_event_minutes=60,
        min_drag_minutes=30,
        log_level="INFO",
        debug=False,
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Strip FAMILYCAL_* variables (including the frozen test clock) and the global settings."""
    for key in list(os.environ):
        if key.startswith("FAMILYCAL_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def make_series() -> Callable[..., EventSeries]:
    """Factory for EventSeries with sensible defaults.

    ``rule`` may be a stored-rule mapping, which is parsed through the codec.
    """

    def _make(
        series_id: str = "s1",
        title: str = "Standup",
        start: datetime = datetime(2024, 1, 1, 9, 0),
        end: Optional[datetime] = None,
        rule: Any = None,
        members: tuple[str, ...] = (),
        driver: Optional[str] = None,
        **fields: Any,
    ) -> EventSeries:
        if isinstance(rule, dict):
            rule = parse_recurrence_rule(rule)
        return EventSeries(
            id=series_id,
            title=title,
            start=start,
            end=end or start + timedelta(hours=1),
            recurrence_rule=rule,
            family_id="fam-1",
            created_by="user-1",
            assignments=Assignments(member_ids=members, driver_helper_id=driver),
            **fields,
        )

    return _make


@pytest.fixture
def make_instance() -> Callable[..., MaterializedInstance]:
    """Factory for timed MaterializedInstance objects on 2024-01-01."""

    def _make(
        instance_id: str = "e1",
        start: datetime = datetime(2024, 1, 1, 9, 0),
        end: Optional[datetime] = None,
        title: Optional[str] = None,
        **fields: Any,
    ) -> MaterializedInstance:
        return MaterializedInstance(
            instance_id=instance_id,
            series_id=fields.pop("series_id", instance_id),
            title=title or instance_id,
            start=start,
            end=end or start + timedelta(hours=1),
            **fields,
        )

    return _make
