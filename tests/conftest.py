"""
Daily Brew Test Suite - Shared Fixtures and Configuration
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from daily_brew.core.config import reset_settings
from daily_brew.core.logging import reset_logging
from daily_brew.core.store import MemoryStore
from daily_brew.engine.models import Actor, NotificationItem, NotificationSource


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """
    Isolate every test from the developer's environment.

    Settings and loggers are reset so env changes and caplog work per test.
    """
    for var in (
        "BREW_LOG_LEVEL",
        "BREW_DEBUG",
        "BREW_LOG_JSON",
        "BREW_TIMEZONE",
        "BREW_REFRESH_INTERVAL_SECONDS",
        "BREW_MAX_ITEMS",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("BREW_STATE_DIR", str(tmp_path / "state"))

    reset_settings()
    reset_logging()
    yield
    reset_settings()
    reset_logging()


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed aware datetime for deterministic tests (a Thursday, 10:30 UTC)."""
    return datetime(2026, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_item(fixed_now):
    """
    Factory for NotificationItems with sensible defaults.

    Usage:
        def test_something(make_item):
            item = make_item("a", score=80, topics=("market",))
    """

    def _make(
        item_id: str = "item-1",
        score: int = 50,
        source: NotificationSource = NotificationSource.SYSTEM,
        topics: tuple[str, ...] = (),
        age_hours: float = 0.0,
        actors: tuple[str, ...] = (),
        **kwargs,
    ) -> NotificationItem:
        return NotificationItem(
            id=item_id,
            title=kwargs.pop("title", f"Item {item_id}"),
            source=source,
            score=score,
            topics=topics,
            timestamp=kwargs.pop("timestamp", fixed_now - timedelta(hours=age_hours)),
            actors=tuple(Actor(name=name) for name in actors),
            **kwargs,
        )

    return _make
