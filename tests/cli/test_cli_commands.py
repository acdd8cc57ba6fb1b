"""
Tests for the daily-brew CLI commands.
"""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone

import pytest
import yaml

from daily_brew.__main__ import build_parser, main
from daily_brew.cli.fixtures import Fixture, build_engine, load_fixture
from daily_brew.cli.simulate import cmd_explain, cmd_simulate
from daily_brew.cli.taste import cmd_taste_batch_mode, cmd_taste_quiet_hours, cmd_taste_show

TS = "2026-01-15T10:00:00+00:00"

SCENARIO = {
    "now": "2026-01-15T10:30:00+00:00",
    "context": {"window_title": "Zoom Meeting"},
    "events": [
        {"type": "recognition", "id": "1", "timestamp": TS, "giver_name": "Alice Smith", "value": "teamwork", "target_id": "user-42"},
        {"type": "recognition", "id": "2", "timestamp": TS, "giver_name": "Bob Jones", "value": "teamwork", "target_id": "user-42"},
        {"type": "recognition", "id": "3", "timestamp": TS, "giver_name": "Carol White", "value": "teamwork", "target_id": "user-42"},
        {
            "type": "system",
            "id": "m",
            "timestamp": TS,
            "title": "Your manager mentioned you",
            "content_type": "mention",
            "relationship": "manager",
            "topics": ["mention"],
        },
        {"type": "nonsense", "id": "x"},
    ],
}


@pytest.fixture
def scenario_file(tmp_path):
    path = tmp_path / "scenario.yaml"
    path.write_text(yaml.safe_dump(SCENARIO))
    return path


def _args(**kwargs) -> argparse.Namespace:
    kwargs.setdefault("state_dir", None)
    return argparse.Namespace(**kwargs)


class TestFixtures:
    """Test fixture loading."""

    def test_load_yaml(self, scenario_file):
        """YAML fixtures load with their context and clock."""
        fixture = load_fixture(scenario_file)

        assert len(fixture.events) == 5
        assert fixture.now == datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert fixture.context["window_title"] == "Zoom Meeting"

    def test_bare_list(self):
        """A bare list is read as events."""
        fixture = Fixture.from_data([{"id": "a", "title": "A"}])
        assert fixture.events == [{"id": "a", "title": "A"}]

    def test_json_is_yaml(self, tmp_path):
        """JSON fixtures are accepted."""
        path = tmp_path / "f.json"
        path.write_text(json.dumps({"events": []}))
        assert load_fixture(path).events == []

    def test_missing_file(self, tmp_path):
        """Missing fixtures raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_fixture(tmp_path / "nope.yaml")

    def test_invalid_shape(self, tmp_path):
        """Scalars are not fixtures."""
        path = tmp_path / "bad.yaml"
        path.write_text("just a string")
        with pytest.raises(ValueError):
            load_fixture(path)

    def test_context_applied(self):
        """Page, focus, quiet hours and batching reach the engine."""
        fixture = Fixture.from_data(
            {
                "now": "2026-01-15T23:00:00+00:00",
                "context": {
                    "page": "/pulse",
                    "focus_minutes": 20,
                    "quiet_hours": {"start": "22:00", "end": "08:00"},
                    "batch_mode": "scheduled",
                    "typing": True,
                },
                "events": [],
            }
        )

        engine = build_engine(fixture)

        assert engine.timing.focus_mode_until is not None
        assert engine.taste.get_quiet_hours() == {"start": "22:00", "end": "08:00"}
        assert engine.taste.batch_mode.value == "scheduled"
        assert engine.timing.context.activity_state.value == "typing"
        assert "market" in engine.timing.context.current_topics


class TestSimulate:
    """Test the simulate command."""

    def test_feed_tiers_and_digest(self, scenario_file):
        """The feed is blended and ranked; bad events are counted."""
        result = cmd_simulate(_args(fixture=str(scenario_file)))

        assert result["status"] == "ok"
        assert result["ingested"] == 4
        assert result["rejected"] == 1
        assert [i["id"] for i in result["feed"]] == ["system:m", "blend:toast:1"]
        assert result["feed"][1]["blended_count"] == 3
        assert result["tiers"]["critical"] == ["system:m"]
        assert result["digest"]["greeting"] == "Good Morning"
        assert result["next_delivery"] == "Next delivery in 2h 30m"
        assert result["stats"]["steam_pressure"] == 4

    def test_missing_fixture(self, tmp_path):
        """A missing file is reported as an error result."""
        result = cmd_simulate(_args(fixture=str(tmp_path / "missing.yaml")))

        assert result["status"] == "error"
        assert result["error"] == "not_found"


class TestExplain:
    """Test the explain command."""

    def test_reasons(self, scenario_file):
        """Critical items deliver through a meeting; the rest are queued."""
        result = cmd_explain(_args(fixture=str(scenario_file)))
        decisions = {d["id"]: d for d in result["decisions"]}

        assert result["context"]["activity_state"] == "meeting"
        assert decisions["system:m"]["deliver"] is True
        assert decisions["system:m"]["reason"] == "Critical notification - always deliver"
        assert decisions["toast:1"]["deliver"] is False
        assert decisions["toast:1"]["reason"] == "User in meeting"
        assert decisions["toast:1"]["queue_until"] == "2026-01-15T11:00:00+00:00"


class TestTasteCommands:
    """Test persisted taste editing."""

    def test_quiet_hours_persist(self, tmp_path):
        """Quiet hours written by one command are read by the next."""
        state = str(tmp_path / "state")

        cmd_taste_quiet_hours(_args(state_dir=state, start="22:00", end="07:00"))
        result = cmd_taste_show(_args(state_dir=state))

        assert result["taste"]["quiet_hours"] == {"start": "22:00", "end": "07:00"}

    def test_invalid_quiet_hours(self, tmp_path):
        """Malformed times are reported, not raised."""
        result = cmd_taste_quiet_hours(_args(state_dir=str(tmp_path), start="late", end="07:00"))

        assert result["status"] == "error"
        assert result["error"] == "invalid_time"

    def test_batch_mode(self, tmp_path):
        """Batch mode switches and persists."""
        result = cmd_taste_batch_mode(_args(state_dir=str(tmp_path), mode="scheduled"))
        assert result["taste"]["batch_mode"] == "scheduled"

    def test_default_state_dir_from_settings(self):
        """Without --state-dir the configured directory is used."""
        result = cmd_taste_show(_args())
        assert result["taste"]["batch_mode"] == "realtime"


class TestMain:
    """Test the entry point."""

    def test_parser_has_commands(self):
        """All top-level commands are registered."""
        parser = build_parser()
        args = parser.parse_args(["taste", "batch-mode", "realtime"])
        assert args.mode == "realtime"

    def test_main_outputs_json(self, scenario_file, capsys):
        """main prints the command result as JSON."""
        exit_code = main(["simulate", str(scenario_file)])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["status"] == "ok"

    def test_main_error_exit_code(self, tmp_path, capsys):
        """Error results exit non-zero."""
        exit_code = main(["explain", str(tmp_path / "missing.yaml")])

        assert exit_code == 1
        assert json.loads(capsys.readouterr().out)["error"] == "not_found"

    def test_no_command_prints_help(self, capsys):
        """Running without a command shows usage."""
        assert main([]) == 0
        assert "daily-brew" in capsys.readouterr().out
