"""
Digest & Schedule Engine.

Aggregates pending items into a categorized, time-aware digest and works out
the batched-delivery windows.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .models import BatchMode, NotificationItem, PriorityTier
from .taste import ScheduleWindow

# Checked in this order; an item lands in the first category it matches
DIGEST_CATEGORIES: tuple[tuple[str, str, frozenset[str]], ...] = (
    (
        "critical",
        "Critical",
        frozenset({"urgent", "approval", "mention", "deadline", "blocker", "critical"}),
    ),
    (
        "recognition",
        "Recognition",
        frozenset({"recognition", "toast", "kudos", "celebration", "shoutout", "thanks"}),
    ),
    (
        "market",
        "Market",
        frozenset({"market", "pulse", "insight", "metric", "trend", "analytics", "report"}),
    ),
    (
        "learning",
        "Learning",
        frozenset({"lop", "learning", "session", "training", "workshop", "education"}),
    ),
)

CRITICAL_CATEGORY = "critical"


@dataclass
class DigestCategory:
    """One non-empty digest section."""

    key: str
    label: str
    items: list[NotificationItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "count": len(self.items),
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class Digest:
    """Categorized summary of pending (unread) items."""

    greeting: str
    total_pending: int
    categories: list[DigestCategory]
    top_priority: NotificationItem | None

    def category(self, key: str) -> DigestCategory | None:
        return next((c for c in self.categories if c.key == key), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "greeting": self.greeting,
            "total_pending": self.total_pending,
            "categories": [c.to_dict() for c in self.categories],
            "top_priority": self.top_priority.to_dict() if self.top_priority else None,
        }


@dataclass
class WindowStatus:
    """Where we are relative to the configured delivery windows."""

    current_window: ScheduleWindow | None
    next_window: ScheduleWindow | None
    ms_to_next_window: int
    is_in_window: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_window": self.current_window.to_dict() if self.current_window else None,
            "next_window": self.next_window.to_dict() if self.next_window else None,
            "ms_to_next_window": self.ms_to_next_window,
            "is_in_window": self.is_in_window,
        }


def time_greeting(hour: int) -> str:
    """Greeting for an hour of day (0-23)."""
    if 5 <= hour < 12:
        return "Good Morning"
    if 12 <= hour < 17:
        return "Good Afternoon"
    if 17 <= hour < 21:
        return "Good Evening"
    return "Night Owl Mode"


def categorize(item: NotificationItem) -> str | None:
    """
    Pick the digest category for an item.

    Unmatched critical-tier items fall back to "critical"; other unmatched
    items are left out of the digest.
    """
    tags = item.topic_set
    for key, _label, keywords in DIGEST_CATEGORIES:
        if tags & keywords:
            return key
    if item.tier == PriorityTier.CRITICAL:
        return CRITICAL_CATEGORY
    return None


def generate_digest(items: Iterable[NotificationItem], hour: int | None = None) -> Digest:
    """
    Build the digest for the unread items.

    Args:
        items: Raw working-set items (read items are skipped)
        hour: Local hour of day for the greeting; defaults to now

    Returns:
        Digest with only non-empty categories. The top priority item is the
        highest score; on ties the first one in iteration order wins.
    """
    if hour is None:
        hour = datetime.now().hour

    pending = [item for item in items if not item.is_read]

    buckets: dict[str, list[NotificationItem]] = {key: [] for key, _, _ in DIGEST_CATEGORIES}
    for item in pending:
        key = categorize(item)
        if key is not None:
            buckets[key].append(item)

    categories = [
        DigestCategory(key=key, label=label, items=buckets[key])
        for key, label, _ in DIGEST_CATEGORIES
        if buckets[key]
    ]

    top: NotificationItem | None = None
    for item in pending:
        if top is None or item.score > top.score:
            top = item

    return Digest(
        greeting=time_greeting(hour),
        total_pending=len(pending),
        categories=categories,
        top_priority=top,
    )


def get_window_status(windows: Sequence[ScheduleWindow], now: datetime | None = None) -> WindowStatus:
    """
    Locate the most recently passed and the next upcoming delivery window.

    Before the first window of the day, the current window is the previous
    day's last one; after the last window, the next one is tomorrow's first.
    """
    now = now if now is not None else datetime.now()
    enabled = sorted((w for w in windows if w.enabled), key=lambda w: w.start_hour)

    if not enabled:
        return WindowStatus(current_window=None, next_window=None, ms_to_next_window=0)

    hour = now.hour
    next_window = next((w for w in enabled if w.start_hour > hour), enabled[0])

    next_time = now.replace(hour=next_window.start_hour, minute=0, second=0, microsecond=0)
    if next_window.start_hour <= hour:
        next_time = next_time + timedelta(days=1)

    # Aware times share a ZoneInfo, so subtract instants rather than wall clocks
    if now.tzinfo is not None:
        seconds = next_time.timestamp() - now.timestamp()
    else:
        seconds = (next_time - now).total_seconds()
    ms_to_next = int(seconds * 1000)

    passed = [w for w in enabled if w.start_hour <= hour]
    current_window = passed[-1] if passed else enabled[-1]

    return WindowStatus(
        current_window=current_window,
        next_window=next_window,
        ms_to_next_window=ms_to_next,
    )


def should_batch_now(tier: PriorityTier, batch_mode: BatchMode) -> bool:
    """Critical items are never held; everything else is held in scheduled mode."""
    if tier == PriorityTier.CRITICAL:
        return False
    return batch_mode == BatchMode.SCHEDULED


def next_delivery_label(status: WindowStatus) -> str:
    """Human-readable countdown to the next window."""
    if status.next_window is None:
        return ""

    ms = status.ms_to_next_window
    hours = ms // 3_600_000
    minutes = (ms % 3_600_000) // 60_000

    if hours > 0:
        return f"Next delivery in {hours}h {minutes}m"
    return f"Next delivery in {minutes}m"
