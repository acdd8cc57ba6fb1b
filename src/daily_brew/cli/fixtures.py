"""
Scenario fixtures for the CLI.

A fixture is a YAML (or JSON) document describing a batch of producer events
plus the ambient session context to evaluate them in:

    now: 2026-01-15T09:30:00+00:00
    context:
      page: /pulse/overview
      heading: Competitor moves
      window_title: Zoom Meeting
      idle_seconds: 0
      typing: false
      focus_minutes: 25
      quiet_hours: {start: "22:00", end: "08:00"}
      batch_mode: realtime
    events:
      - type: recognition
        id: r-1
        giver_name: Alice Smith
        value: teamwork
      - id: system:raw-1        # raw items are accepted as-is
        title: Build failed
        score: 80

A bare list is read as the events with default context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from ..core.store import KeyValueStore
from ..engine import ActivityTracker, BrewEngine
from ..engine.models import parse_timestamp, utc_now
from ..engine.timing import TYPING_KEYSTROKE_THRESHOLD


@dataclass
class Fixture:
    """Parsed scenario."""

    events: list[Any]
    now: datetime = field(default_factory=utc_now)
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: Any) -> Fixture:
        """
        Raises:
            ValueError: If the document is not a list or mapping of events
        """
        if isinstance(data, list):
            return cls(events=data)
        if not isinstance(data, dict):
            raise ValueError("Fixture must be a list of events or a mapping with 'events'")

        events = data.get("events") or []
        if not isinstance(events, list):
            raise ValueError("Fixture 'events' must be a list")

        context = data.get("context") or {}
        if not isinstance(context, dict):
            raise ValueError("Fixture 'context' must be a mapping")

        now = parse_timestamp(data["now"]) if data.get("now") is not None else utc_now()
        return cls(events=events, now=now, context=context)


def load_fixture(path: Path) -> Fixture:
    """
    Load a fixture file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid YAML/JSON or has the wrong shape
    """
    if not path.exists():
        raise FileNotFoundError(f"Fixture not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in fixture {path}: {e}") from e

    return Fixture.from_data(data)


def _tracker_for(fixture: Fixture) -> ActivityTracker:
    ctx = fixture.context
    now = fixture.now.timestamp()
    idle = float(ctx.get("idle_seconds") or 0)

    tracker = ActivityTracker(started_at=now - idle)
    tracker.set_window_title(str(ctx.get("window_title") or ""))

    if ctx.get("typing"):
        for i in range(TYPING_KEYSTROKE_THRESHOLD + 1):
            tracker.record_keystroke(at=now - 10 + i * 0.05)
    else:
        tracker.record_click(at=now - idle)

    return tracker


def build_engine(fixture: Fixture, store: KeyValueStore | None = None) -> BrewEngine:
    """Engine primed with the fixture's context and events."""
    ctx = fixture.context
    engine = BrewEngine(store=store, tracker=_tracker_for(fixture), timezone=ctx.get("timezone"))

    if ctx.get("page"):
        engine.timing.set_page(str(ctx["page"]), ctx.get("heading"))
    if ctx.get("focus_minutes"):
        engine.timing.enable_focus_mode(float(ctx["focus_minutes"]), now=fixture.now)

    quiet = ctx.get("quiet_hours")
    if isinstance(quiet, dict):
        engine.taste.set_quiet_hours(str(quiet["start"]), str(quiet["end"]))
    if ctx.get("batch_mode"):
        engine.taste.set_batch_mode(str(ctx["batch_mode"]))

    engine.ingest_many(fixture.events, now=fixture.now)
    engine.refresh(fixture.now)
    return engine
