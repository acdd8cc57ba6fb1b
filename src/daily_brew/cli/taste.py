"""
Taste Commands

Inspect and edit the persisted user taste in the state directory.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from ..core.config import get_settings, get_state_dir
from ..core.errors import InvalidTimeError
from ..core.store import JsonFileStore
from ..engine.models import BatchMode, utc_now
from ..engine.taste import TasteModel


def _model(args: argparse.Namespace) -> TasteModel:
    override = Path(args.state_dir) if getattr(args, "state_dir", None) else None
    store = JsonFileStore(get_state_dir(override))
    return TasteModel(store, timezone=get_settings().zone)


def _ok(model: TasteModel, **extra: Any) -> dict[str, Any]:
    return {
        "query_timestamp": utc_now().isoformat(),
        "status": "ok",
        **extra,
        "taste": model.snapshot(),
    }


def cmd_taste_show(args: argparse.Namespace) -> dict[str, Any]:
    """Show the persisted taste."""
    return _ok(_model(args))


def cmd_taste_quiet_hours(args: argparse.Namespace) -> dict[str, Any]:
    """Set the quiet-hours window."""
    model = _model(args)
    try:
        model.set_quiet_hours(args.start, args.end)
    except InvalidTimeError as e:
        return {
            "query_timestamp": utc_now().isoformat(),
            "status": "error",
            "error": "invalid_time",
            "message": str(e),
        }
    return _ok(model)


def cmd_taste_clear_quiet_hours(args: argparse.Namespace) -> dict[str, Any]:
    """Remove the quiet-hours window."""
    model = _model(args)
    model.clear_quiet_hours()
    return _ok(model)


def cmd_taste_batch_mode(args: argparse.Namespace) -> dict[str, Any]:
    """Switch between realtime and scheduled delivery."""
    model = _model(args)
    model.set_batch_mode(args.mode)
    return _ok(model)


def cmd_taste_reset(args: argparse.Namespace) -> dict[str, Any]:
    """Forget everything learned."""
    model = _model(args)
    model.reset()
    return _ok(model)


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register taste command parsers."""

    taste_parser = subparsers.add_parser(
        "taste",
        help="Inspect or edit learned preferences",
        description="Inspect or edit the persisted taste: affinities, quiet hours "
        "and batching mode.",
    )
    taste_parser.add_argument(
        "--state-dir",
        help="State directory (default: BREW_STATE_DIR or .daily-brew)",
    )

    taste_subparsers = taste_parser.add_subparsers(
        dest="taste_command",
        help="Taste commands",
    )

    show_parser = taste_subparsers.add_parser("show", help="Show the persisted taste")
    show_parser.set_defaults(func=cmd_taste_show)

    quiet_parser = taste_subparsers.add_parser("quiet-hours", help="Set quiet hours (HH:MM HH:MM)")
    quiet_parser.add_argument("start", help="Start time, e.g. 22:00")
    quiet_parser.add_argument("end", help="End time, e.g. 08:00")
    quiet_parser.set_defaults(func=cmd_taste_quiet_hours)

    clear_parser = taste_subparsers.add_parser("clear-quiet-hours", help="Remove quiet hours")
    clear_parser.set_defaults(func=cmd_taste_clear_quiet_hours)

    batch_parser = taste_subparsers.add_parser("batch-mode", help="Set delivery batching mode")
    batch_parser.add_argument("mode", choices=[m.value for m in BatchMode])
    batch_parser.set_defaults(func=cmd_taste_batch_mode)

    reset_parser = taste_subparsers.add_parser("reset", help="Forget all learned preferences")
    reset_parser.set_defaults(func=cmd_taste_reset)
