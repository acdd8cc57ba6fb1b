"""
Tests for ambient activity classification and the delivery policy.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from daily_brew.core.store import MemoryStore
from daily_brew.engine.models import ActivityState, PriorityTier
from daily_brew.engine.taste import TasteModel
from daily_brew.engine.timing import (
    TIMING_STORAGE_KEY,
    ActivityTracker,
    TimingPolicy,
    extract_page_topics,
)


def _active_tracker(now: datetime, title: str = "") -> ActivityTracker:
    t = now.timestamp()
    tracker = ActivityTracker(started_at=t - 60)
    tracker.record_click(at=t - 1)
    tracker.set_window_title(title)
    return tracker


def _type(tracker: ActivityTracker, now: datetime, count: int = 101) -> None:
    t = now.timestamp()
    for i in range(count):
        tracker.record_keystroke(at=t - 20 + i * 0.1)


@pytest.fixture
def taste(store) -> TasteModel:
    return TasteModel(store)


# =============================================================================
# Activity Classification
# =============================================================================


class TestActivityTracker:
    """Test ambient state classification."""

    def test_active_by_default(self, fixed_now):
        """Recent input, no special signals."""
        tracker = _active_tracker(fixed_now)
        assert tracker.classify(fixed_now.timestamp()) == ActivityState.ACTIVE

    @pytest.mark.parametrize("title", ["Zoom Meeting", "Weekly sync | Microsoft Teams", "Google Meet - abc"])
    def test_meeting_from_window_title(self, fixed_now, title):
        """Meeting keywords in the title mean the user is in a call."""
        tracker = _active_tracker(fixed_now, title)
        assert tracker.classify(fixed_now.timestamp()) == ActivityState.MEETING

    def test_typing_needs_more_than_100_keystrokes(self, fixed_now):
        """100 keystrokes in 30s is not yet typing; 101 is."""
        tracker = _active_tracker(fixed_now)
        _type(tracker, fixed_now, count=100)
        assert tracker.classify(fixed_now.timestamp()) == ActivityState.ACTIVE

        tracker.record_keystroke(at=fixed_now.timestamp())
        assert tracker.classify(fixed_now.timestamp()) == ActivityState.TYPING

    def test_old_keystrokes_do_not_count(self, fixed_now):
        """Only the trailing 30 seconds matter."""
        tracker = _active_tracker(fixed_now)
        t = fixed_now.timestamp()
        for i in range(200):
            tracker.record_keystroke(at=t - 120 + i * 0.1)
        tracker.record_click(at=t)

        assert tracker.classify(t) == ActivityState.ACTIVE

    def test_idle_after_five_minutes(self, fixed_now):
        """No input for more than 5 minutes is idle."""
        t = fixed_now.timestamp()
        tracker = ActivityTracker(started_at=t - 3600)
        tracker.record_pointer_move(at=t - 301)

        assert tracker.classify(t) == ActivityState.IDLE

    def test_no_input_ever_counts_from_start(self, fixed_now):
        """A tracker with no input is idle five minutes after it started."""
        t = fixed_now.timestamp()
        assert ActivityTracker(started_at=t - 10).classify(t) == ActivityState.ACTIVE
        assert ActivityTracker(started_at=t - 400).classify(t) == ActivityState.IDLE

    def test_scrolling(self, fixed_now):
        """A scroll within the last two seconds is reading."""
        tracker = _active_tracker(fixed_now)
        tracker.record_scroll(at=fixed_now.timestamp() - 1)

        assert tracker.classify(fixed_now.timestamp()) == ActivityState.SCROLLING
        assert tracker.classify(fixed_now.timestamp() + 5) == ActivityState.ACTIVE

    def test_precedence(self, fixed_now):
        """meeting > typing > idle > scrolling."""
        t = fixed_now.timestamp()
        tracker = _active_tracker(fixed_now, "Zoom")
        _type(tracker, fixed_now)
        tracker.record_scroll(at=t)
        assert tracker.classify(t) == ActivityState.MEETING

        tracker.set_window_title("Editor")
        assert tracker.classify(t) == ActivityState.TYPING

        later = t + 600
        assert tracker.classify(later) == ActivityState.IDLE


class TestExtractPageTopics:
    """Test page-context topic extraction."""

    def test_path_fragments(self):
        """Known path fragments imply topics."""
        assert extract_page_topics("/pulse/overview") == ["market", "competitive", "regulatory"]
        assert extract_page_topics("/community/discussions/9") == ["discussion", "community"]

    def test_heading_adds_topics(self):
        """Headings can add topics without duplicates."""
        topics = extract_page_topics("/pulse", "Regulatory changes this week")
        assert topics == ["market", "competitive", "regulatory"]

        assert extract_page_topics("/home", "Competitor roundup") == ["competitive"]

    def test_unknown_page(self):
        """Unrecognised pages have no topics."""
        assert extract_page_topics("/settings") == []


# =============================================================================
# Delivery Policy
# =============================================================================


class TestShouldDeliverNow:
    """Test the ordered decision table."""

    def test_meeting_suppresses_ambient(self, taste, make_item, fixed_now):
        """In a meeting, ambient items are re-checked in 30 minutes."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now, "Zoom Meeting"))
        item = make_item(score=10)

        decision = policy.should_deliver_now(item, fixed_now)

        assert decision.deliver is False
        assert decision.reason == "User in meeting"
        assert decision.queue_until == fixed_now + timedelta(minutes=30)

    def test_critical_always_delivers(self, taste, make_item, fixed_now):
        """Critical beats focus mode, quiet hours and meetings."""
        taste.set_quiet_hours("00:00", "23:59")
        policy = TimingPolicy(taste, _active_tracker(fixed_now, "Zoom"))
        policy.enable_focus_mode(30, now=fixed_now)

        decision = policy.should_deliver_now(make_item(score=90), fixed_now)

        assert decision.deliver is True
        assert decision.reason == "Critical notification - always deliver"
        assert decision.boost_score == 0

    def test_critical_context_boost(self, taste, make_item, fixed_now):
        """Critical items matching the page get +10."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now))
        policy.set_page("/pulse")

        decision = policy.should_deliver_now(make_item(score=80, topics=("market",)), fixed_now)

        assert decision.boost_score == 10

    def test_focus_mode_suppresses_until_expiry(self, taste, make_item, fixed_now):
        """Focus mode queues until it ends, even for page matches."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now))
        policy.set_page("/pulse")
        until = policy.enable_focus_mode(25, now=fixed_now)

        decision = policy.should_deliver_now(make_item(score=50, topics=("market",)), fixed_now)

        assert decision.deliver is False
        assert decision.reason == "Focus mode active"
        assert decision.queue_until == until == fixed_now + timedelta(minutes=25)

    def test_quiet_hours_suppress_without_requeue(self, taste, make_item):
        """Quiet hours defer to the next digest."""
        taste.set_quiet_hours("22:00", "08:00")
        now = datetime(2026, 1, 15, 23, 0, tzinfo=timezone.utc)
        policy = TimingPolicy(taste, _active_tracker(now))

        decision = policy.should_deliver_now(make_item(score=50), now)

        assert decision.deliver is False
        assert decision.reason == "Quiet hours active"
        assert decision.queue_until is None

    def test_typing_suppresses_only_ambient(self, taste, make_item, fixed_now):
        """Deep typing holds ambient items for 5 minutes but lets elevated through."""
        tracker = _active_tracker(fixed_now)
        _type(tracker, fixed_now)
        policy = TimingPolicy(taste, tracker)

        ambient = policy.should_deliver_now(make_item(score=20), fixed_now)
        elevated = policy.should_deliver_now(make_item(score=50), fixed_now)

        assert ambient.deliver is False
        assert ambient.reason == "User in deep typing focus"
        assert ambient.queue_until == fixed_now + timedelta(minutes=5)
        assert elevated.deliver is True
        assert elevated.reason == "Normal delivery"

    def test_idle_delivers_with_penalty(self, taste, make_item, fixed_now):
        """Idle users still get items, with reduced confidence."""
        t = fixed_now.timestamp()
        policy = TimingPolicy(taste, ActivityTracker(started_at=t - 3600))

        decision = policy.should_deliver_now(make_item(score=50, topics=("market",)), fixed_now)

        assert decision.deliver is True
        assert decision.boost_score == -10
        assert decision.reason == "User idle - batch delivery"

    def test_idle_beats_context_match(self, taste, make_item, fixed_now):
        """The first matching branch wins."""
        policy = TimingPolicy(taste, ActivityTracker(started_at=fixed_now.timestamp() - 3600))
        policy.set_page("/pulse")

        decision = policy.should_deliver_now(make_item(score=50, topics=("market",)), fixed_now)

        assert decision.boost_score == -10

    def test_context_match_boost(self, taste, make_item, fixed_now):
        """Items matching the current page get +15."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now))
        policy.set_page("/lop/sessions")

        decision = policy.should_deliver_now(make_item(score=40, topics=("Learning",)), fixed_now)

        assert decision.deliver is True
        assert decision.boost_score == 15
        assert decision.reason == "Content matches current page context"

    def test_default_delivery(self, taste, make_item, fixed_now):
        """Nothing special: deliver with no boost."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now))

        decision = policy.should_deliver_now(make_item(score=40), fixed_now)

        assert (decision.deliver, decision.boost_score, decision.queue_until) == (True, 0, None)

    def test_apply_timing_context_clamps(self, taste, make_item, fixed_now):
        """Boosts are applied and clamped."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now))
        policy.set_page("/pulse")
        item = make_item(score=95, topics=("market",))

        assert policy.apply_timing_context(95, item, fixed_now) == 100

        policy.set_page_topics(set())
        idle_policy = TimingPolicy(taste, ActivityTracker(started_at=fixed_now.timestamp() - 3600))
        assert idle_policy.apply_timing_context(5, make_item(score=5), fixed_now) == 0


class TestFocusMode:
    """Test focus-mode lifecycle and persistence."""

    def test_expires(self, taste, fixed_now):
        """Focus mode ends on its own."""
        policy = TimingPolicy(taste)
        policy.enable_focus_mode(10, now=fixed_now)

        assert policy.is_focus_mode_active(fixed_now + timedelta(minutes=5)) is True
        assert policy.is_focus_mode_active(fixed_now + timedelta(minutes=11)) is False
        assert policy.focus_mode_until is None

    def test_survives_reload(self, taste, store, fixed_now):
        """A new policy over the same store restores the expiry."""
        TimingPolicy(taste, store=store).enable_focus_mode(30, now=fixed_now)

        restored = TimingPolicy(taste, store=store)

        assert restored.focus_mode_until == fixed_now + timedelta(minutes=30)
        assert restored.is_focus_mode_active(fixed_now + timedelta(minutes=1)) is True

    def test_disable(self, taste, store, fixed_now):
        """Disabling clears the persisted expiry."""
        policy = TimingPolicy(taste, store=store)
        policy.enable_focus_mode(30, now=fixed_now)
        policy.disable_focus_mode()

        assert TimingPolicy(taste, store=store).focus_mode_until is None
        assert store.get(TIMING_STORAGE_KEY) == {"focus_mode_until": None}

    def test_corrupt_state_ignored(self, taste):
        """Unreadable timing state starts without focus mode."""
        store = MemoryStore()
        store.set_raw(TIMING_STORAGE_KEY, "not-json")

        assert TimingPolicy(taste, store=store).focus_mode_until is None

    @pytest.mark.parametrize("until", [1e20, -1e20])
    def test_out_of_range_expiry_ignored(self, taste, until):
        """Epochs outside the datetime range start without focus mode."""
        store = MemoryStore({TIMING_STORAGE_KEY: {"focus_mode_until": until}})

        assert TimingPolicy(taste, store=store).focus_mode_until is None


class TestRefreshContext:
    """Test context snapshots."""

    def test_snapshot_reflects_signals(self, taste, fixed_now):
        """The context is re-derived from current signals."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now, "Zoom"))
        policy.set_page("/toast/wall")
        policy.enable_focus_mode(15, now=fixed_now)

        context = policy.refresh_context(fixed_now)

        assert context.activity_state == ActivityState.MEETING
        assert context.current_page == "/toast/wall"
        assert context.current_topics == frozenset({"recognition", "culture", "team"})
        assert context.focus_mode_until == fixed_now + timedelta(minutes=15)
        assert context.is_quiet_hours is False
        assert policy.context is context

    def test_tier_of_suppressed_item_unchanged(self, taste, make_item, fixed_now):
        """Decisions never touch the item."""
        policy = TimingPolicy(taste, _active_tracker(fixed_now, "Zoom"))
        item = make_item(score=20)

        policy.should_deliver_now(item, fixed_now)

        assert item.score == 20
        assert item.tier == PriorityTier.AMBIENT
