"""
The Timing - Contextual Delivery Policy.

Serve intelligence only when the user is ready to receive it. The policy
looks at ambient activity (typing, idle, scrolling, meeting), page context,
quiet hours and focus mode to decide whether an item is delivered now,
suppressed, or re-checked later.

Activity state is never remembered: every classification is derived fresh
from the recorded input timestamps and the current window title.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from ..core.errors import PersistenceError
from ..core.logging import get_logger
from ..core.store import KeyValueStore, MemoryStore
from .models import (
    ActivityState,
    DeliveryDecision,
    NotificationItem,
    PriorityTier,
    TimingContext,
    clamp_score,
    ensure_aware,
    utc_now,
)
from .taste import TasteModel

logger = get_logger(__name__)

TIMING_STORAGE_KEY = "daily-brew:timing-context"

MEETING_KEYWORDS = ("meet", "zoom", "teams", "webex", "call", "huddle")

# 40 WPM is roughly 200 chars/min, ~100 keystrokes per 30 seconds
TYPING_WINDOW_SECONDS = 30.0
TYPING_KEYSTROKE_THRESHOLD = 100
IDLE_AFTER_SECONDS = 5 * 60.0
SCROLLING_WINDOW_SECONDS = 2.0
KEYSTROKE_BUFFER = 1000

MEETING_RETRY = timedelta(minutes=30)
TYPING_RETRY = timedelta(minutes=5)

CRITICAL_CONTEXT_BOOST = 10
CONTEXT_MATCH_BOOST = 15
IDLE_PENALTY = -10

# Page path fragment -> topics it implies
PATH_TOPICS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("pulse",), ("market", "competitive", "regulatory")),
    (("toast",), ("recognition", "culture", "team")),
    (("lop",), ("learning", "session", "education")),
    (("community", "discuss"), ("discussion", "community")),
    (("library",), ("resources", "documentation")),
)

HEADING_TOPICS: tuple[tuple[str, str], ...] = (
    ("regulatory", "regulatory"),
    ("competitor", "competitive"),
    ("market", "market"),
)


def extract_page_topics(path: str, heading: str | None = None) -> list[str]:
    """
    Derive topic tags from the current page path and main heading.

    Returns:
        De-duplicated topics in first-seen order
    """
    path = (path or "").lower()
    heading = (heading or "").lower()
    topics: list[str] = []

    for fragments, implied in PATH_TOPICS:
        if any(fragment in path for fragment in fragments):
            topics.extend(implied)

    for word, topic in HEADING_TOPICS:
        if word in heading:
            topics.append(topic)

    return list(dict.fromkeys(topics))


@dataclass
class ActivityTracker:
    """
    Passive observer of user input.

    Recording only appends a timestamp; it never blocks the caller.
    """

    _keystrokes: deque[float] = field(default_factory=lambda: deque(maxlen=KEYSTROKE_BUFFER))
    window_title: str = ""
    started_at: float = field(default_factory=time.time)
    _last_scroll_at: float | None = None
    _last_input_at: float | None = None

    def record_keystroke(self, at: float | None = None) -> None:
        at = time.time() if at is None else at
        self._keystrokes.append(at)
        self._touch(at)

    def record_scroll(self, at: float | None = None) -> None:
        at = time.time() if at is None else at
        if self._last_scroll_at is None or at > self._last_scroll_at:
            self._last_scroll_at = at
        self._touch(at)

    def record_pointer_move(self, at: float | None = None) -> None:
        self._touch(time.time() if at is None else at)

    def record_click(self, at: float | None = None) -> None:
        self._touch(time.time() if at is None else at)

    def set_window_title(self, title: str) -> None:
        self.window_title = title or ""

    def _touch(self, at: float) -> None:
        if self._last_input_at is None or at > self._last_input_at:
            self._last_input_at = at

    @property
    def last_input_at(self) -> float:
        """Latest observed input, or the tracker start when nothing was seen."""
        return self._last_input_at if self._last_input_at is not None else self.started_at

    def is_in_meeting(self) -> bool:
        title = self.window_title.lower()
        return any(keyword in title for keyword in MEETING_KEYWORDS)

    def is_typing(self, now: float) -> bool:
        cutoff = now - TYPING_WINDOW_SECONDS
        recent = sum(1 for t in list(self._keystrokes) if cutoff < t <= now)
        return recent > TYPING_KEYSTROKE_THRESHOLD

    def is_idle(self, now: float) -> bool:
        return (now - self.last_input_at) > IDLE_AFTER_SECONDS

    def is_scrolling(self, now: float) -> bool:
        if self._last_scroll_at is None:
            return False
        return (now - self._last_scroll_at) < SCROLLING_WINDOW_SECONDS

    def classify(self, now: float | None = None) -> ActivityState:
        """
        Classify current activity.

        Precedence: meeting > typing > idle > scrolling > active.
        """
        now = time.time() if now is None else now
        if self.is_in_meeting():
            return ActivityState.MEETING
        if self.is_typing(now):
            return ActivityState.TYPING
        if self.is_idle(now):
            return ActivityState.IDLE
        if self.is_scrolling(now):
            return ActivityState.SCROLLING
        return ActivityState.ACTIVE


def _epoch(value: datetime) -> float:
    return ensure_aware(value).timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class TimingPolicy:
    """
    Decides, per item, whether to deliver now, suppress, or re-check later.

    One instance per user session; it holds the session's page context and
    focus-mode expiry (the latter survives reloads via the key-value store).
    """

    def __init__(
        self,
        taste: TasteModel,
        tracker: ActivityTracker | None = None,
        store: KeyValueStore | None = None,
        storage_key: str = TIMING_STORAGE_KEY,
    ) -> None:
        self._taste = taste
        self._tracker = tracker if tracker is not None else ActivityTracker()
        self._store = store if store is not None else MemoryStore()
        self._storage_key = storage_key
        self._current_page = "/"
        self._page_topics: frozenset[str] = frozenset()
        self._focus_mode_until: datetime | None = self._load_focus_mode()
        self._context = TimingContext()

    @property
    def tracker(self) -> ActivityTracker:
        return self._tracker

    @property
    def context(self) -> TimingContext:
        """Most recently refreshed context snapshot."""
        return self._context

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load_focus_mode(self) -> datetime | None:
        try:
            data = self._store.get(self._storage_key)
        except PersistenceError as e:
            logger.warning("Failed to load timing context: %s", e)
            return None
        if not isinstance(data, dict):
            return None
        until = data.get("focus_mode_until")
        if isinstance(until, (int, float)) and not isinstance(until, bool):
            try:
                return _from_epoch(until)
            except (OverflowError, OSError, ValueError) as e:
                logger.warning("Dropping persisted focus mode expiry %r: %s", until, e)
        return None

    def _save_focus_mode(self) -> None:
        until = self._focus_mode_until
        payload = {"focus_mode_until": _epoch(until) if until else None}
        try:
            self._store.set(self._storage_key, payload)
        except PersistenceError as e:
            logger.warning("Failed to save timing context: %s", e)

    # =========================================================================
    # Page Context
    # =========================================================================

    def set_page(self, path: str, heading: str | None = None) -> frozenset[str]:
        """Record the page the user is on and derive its topics."""
        self._current_page = path or "/"
        self._page_topics = frozenset(extract_page_topics(path, heading))
        return self._page_topics

    def set_page_topics(self, topics: list[str] | set[str] | frozenset[str]) -> None:
        self._page_topics = frozenset(t.lower() for t in topics)

    def matches_page_context(self, item: NotificationItem) -> bool:
        if not self._page_topics:
            return False
        return bool(item.topic_set & self._page_topics)

    # =========================================================================
    # Focus Mode
    # =========================================================================

    def enable_focus_mode(self, minutes: float, now: datetime | None = None) -> datetime:
        now = ensure_aware(now) if now is not None else utc_now()
        self._focus_mode_until = now + timedelta(minutes=minutes)
        self._save_focus_mode()
        logger.info("Focus mode enabled until %s", self._focus_mode_until.isoformat())
        return self._focus_mode_until

    def disable_focus_mode(self) -> None:
        self._focus_mode_until = None
        self._save_focus_mode()

    def is_focus_mode_active(self, now: datetime | None = None) -> bool:
        if self._focus_mode_until is None:
            return False
        now = ensure_aware(now) if now is not None else utc_now()
        if now > self._focus_mode_until:
            self._focus_mode_until = None
            self._save_focus_mode()
            return False
        return True

    @property
    def focus_mode_until(self) -> datetime | None:
        return self._focus_mode_until

    # =========================================================================
    # Context Refresh
    # =========================================================================

    def refresh_context(self, now: datetime | None = None) -> TimingContext:
        """Re-derive the full timing context from current signals."""
        now = ensure_aware(now) if now is not None else utc_now()
        focus_active = self.is_focus_mode_active(now)
        self._context = TimingContext(
            activity_state=self._tracker.classify(_epoch(now)),
            current_page=self._current_page,
            current_topics=self._page_topics,
            last_activity_at=_from_epoch(self._tracker.last_input_at),
            is_quiet_hours=self._taste.is_quiet_hours(now),
            focus_mode_until=self._focus_mode_until if focus_active else None,
        )
        return self._context

    # =========================================================================
    # Delivery Decision
    # =========================================================================

    def should_deliver_now(
        self, item: NotificationItem, now: datetime | None = None
    ) -> DeliveryDecision:
        """
        Ordered decision table; the first matching branch wins.

        critical > focus mode > quiet hours > meeting > typing (ambient only)
        > idle > page-context match > default.
        """
        now = ensure_aware(now) if now is not None else utc_now()
        state = self._tracker.classify(_epoch(now))
        context_match = self.matches_page_context(item)
        tier = item.tier

        if tier == PriorityTier.CRITICAL:
            return DeliveryDecision(
                deliver=True,
                reason="Critical notification - always deliver",
                boost_score=CRITICAL_CONTEXT_BOOST if context_match else 0,
            )

        if self.is_focus_mode_active(now):
            return DeliveryDecision(
                deliver=False,
                reason="Focus mode active",
                queue_until=self._focus_mode_until,
            )

        if self._taste.is_quiet_hours(now):
            # No requeue time: the caller batches to the next digest
            return DeliveryDecision(deliver=False, reason="Quiet hours active")

        if state == ActivityState.MEETING:
            return DeliveryDecision(
                deliver=False,
                reason="User in meeting",
                queue_until=now + MEETING_RETRY,
            )

        if state == ActivityState.TYPING and tier == PriorityTier.AMBIENT:
            return DeliveryDecision(
                deliver=False,
                reason="User in deep typing focus",
                queue_until=now + TYPING_RETRY,
            )

        if state == ActivityState.IDLE:
            return DeliveryDecision(
                deliver=True,
                reason="User idle - batch delivery",
                boost_score=IDLE_PENALTY,
            )

        if context_match:
            return DeliveryDecision(
                deliver=True,
                reason="Content matches current page context",
                boost_score=CONTEXT_MATCH_BOOST,
            )

        return DeliveryDecision(deliver=True, reason="Normal delivery")

    def apply_timing_context(
        self, score: float, item: NotificationItem, now: datetime | None = None
    ) -> int:
        """Score adjusted by the decision's boost, clamped to 0-100."""
        decision = self.should_deliver_now(item, now)
        return clamp_score(score + decision.boost_score)
