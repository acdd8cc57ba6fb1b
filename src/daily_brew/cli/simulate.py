"""
Scenario Commands

Run a fixture of producer events through a fresh engine session and report
the presented feed, digest and per-item delivery decisions.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from ..core.store import JsonFileStore
from ..engine import BrewEngine
from ..engine.models import utc_now
from ..engine.schedule import next_delivery_label, should_batch_now
from .fixtures import build_engine, load_fixture


def _load_engine(args: argparse.Namespace) -> tuple[BrewEngine, Any]:
    fixture = load_fixture(Path(args.fixture))
    store = JsonFileStore(Path(args.state_dir)) if args.state_dir else None
    return build_engine(fixture, store), fixture


def _error(kind: str, message: str) -> dict[str, Any]:
    return {
        "query_timestamp": utc_now().isoformat(),
        "status": "error",
        "error": kind,
        "message": message,
    }


# =============================================================================
# Simulate Command
# =============================================================================


def cmd_simulate(args: argparse.Namespace) -> dict[str, Any]:
    """
    Ingest a fixture and show the ranked blended feed, tiers and digest.

    Args:
        args: Parsed arguments with fixture path

    Returns:
        Result dict
    """
    try:
        engine, fixture = _load_engine(args)
    except FileNotFoundError as e:
        return _error("not_found", str(e))
    except ValueError as e:
        return _error("invalid", str(e))

    status = engine.window_status(fixture.now)
    return {
        "query_timestamp": utc_now().isoformat(),
        "status": "ok",
        "now": fixture.now.isoformat(),
        "ingested": engine.metrics.ingested,
        "rejected": engine.metrics.rejected,
        "feed": [item.to_dict() for item in engine.feed()],
        "tiers": {tier.value: [i.id for i in items] for tier, items in engine.tiers().items()},
        "digest": engine.digest(now=fixture.now).to_dict(),
        "window_status": status.to_dict(),
        "next_delivery": next_delivery_label(status),
        "stats": engine.menu.stats().to_dict(),
    }


# =============================================================================
# Explain Command
# =============================================================================


def cmd_explain(args: argparse.Namespace) -> dict[str, Any]:
    """
    Explain the delivery decision for every unread item in a fixture.

    Args:
        args: Parsed arguments with fixture path

    Returns:
        Result dict with one decision per item
    """
    try:
        engine, fixture = _load_engine(args)
    except FileNotFoundError as e:
        return _error("not_found", str(e))
    except ValueError as e:
        return _error("invalid", str(e))

    batch_mode = engine.taste.batch_mode
    decisions = []
    for item in engine.menu.unread():
        decision = engine.decide(item.id, fixture.now)
        if decision is None:
            continue
        decisions.append(
            {
                "id": item.id,
                "title": item.title,
                "score": item.score,
                "tier": item.tier.value,
                "held_for_batch": should_batch_now(item.tier, batch_mode),
                **decision.to_dict(),
            }
        )

    return {
        "query_timestamp": utc_now().isoformat(),
        "status": "ok",
        "now": fixture.now.isoformat(),
        "context": engine.timing.context.to_dict(),
        "batch_mode": batch_mode.value,
        "decisions": decisions,
    }


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register scenario command parsers."""

    simulate_parser = subparsers.add_parser(
        "simulate",
        help="Run a fixture and show the ranked feed, tiers and digest",
    )
    simulate_parser.add_argument("fixture", help="Path to YAML or JSON fixture")
    simulate_parser.add_argument(
        "--state-dir",
        help="Use learned taste from this state directory (default: in-memory)",
    )
    simulate_parser.set_defaults(func=cmd_simulate)

    explain_parser = subparsers.add_parser(
        "explain",
        help="Show the delivery decision and reason for each item in a fixture",
    )
    explain_parser.add_argument("fixture", help="Path to YAML or JSON fixture")
    explain_parser.add_argument(
        "--state-dir",
        help="Use learned taste from this state directory (default: in-memory)",
    )
    explain_parser.set_defaults(func=cmd_explain)
