"""
Brew Engine - per-session orchestrator.

Wires scoring, taste, decay, blending, timing and digests together for one
user session. All state is owned by the BrewEngine instance; nothing is kept
in module-level singletons, so independent sessions never share state.

Usage:
    engine = BrewEngine(store=JsonFileStore(settings.state_dir))
    engine.ingest(RecognitionEvent(id="r1", giver_name="Alice Smith"))
    for item, decision in engine.deliverable():
        ...
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from ..core.config import BrewSettings, get_settings
from ..core.logging import get_logger
from ..core.store import KeyValueStore, MemoryStore
from .blend import blend_items
from .decay import decay_item
from .events import EventChannel, ProducerEvent, event_from_dict
from .menu import NotificationMenu
from .models import (
    DeliveryDecision,
    InteractionAction,
    InteractionSignal,
    NotificationItem,
    PriorityTier,
    ensure_aware,
    utc_now,
)
from .schedule import Digest, WindowStatus, generate_digest, get_window_status, should_batch_now
from .taste import TasteModel
from .timing import ActivityTracker, TimingPolicy

logger = get_logger(__name__)

BLEND_PREFIX = "blend:"

# Upper bound on a single channel wait so stop requests are noticed promptly
STOP_POLL_SECONDS = 0.25


@dataclass
class EngineMetrics:
    """Counters for one session."""

    ingested: int = 0
    duplicates: int = 0
    rejected: int = 0
    refreshes: int = 0
    errors: int = 0
    last_refresh_time: datetime | None = None


class BrewEngine:
    """
    Notification intelligence for one user session.

    Owns the key-value store, taste model, activity tracker, timing policy
    and working set.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        settings: BrewSettings | None = None,
        tracker: ActivityTracker | None = None,
        timezone: ZoneInfo | str | None = None,
        max_items: int | None = None,
    ):
        self.settings = settings if settings is not None else get_settings()
        self.store = store if store is not None else MemoryStore()

        zone = timezone if timezone is not None else self.settings.zone
        self.zone = ZoneInfo(zone) if isinstance(zone, str) else zone

        self.taste = TasteModel(self.store, timezone=self.zone)
        self.tracker = tracker if tracker is not None else ActivityTracker()
        self.timing = TimingPolicy(self.taste, self.tracker, self.store)
        self.menu = NotificationMenu(max_items if max_items is not None else self.settings.max_items)
        self.metrics = EngineMetrics()

        # Advisory re-check times from suppressed decisions
        self._queued: dict[str, datetime] = {}

    def _local(self, now: datetime | None) -> datetime:
        """Wall-clock time in the session timezone."""
        if now is None:
            return datetime.now(tz=self.zone)
        if now.tzinfo is not None:
            return now.astimezone(self.zone)
        return now

    # =========================================================================
    # Ingestion
    # =========================================================================

    def _coerce(
        self, incoming: NotificationItem | ProducerEvent | dict[str, Any], now: datetime
    ) -> NotificationItem | None:
        if isinstance(incoming, NotificationItem):
            return incoming
        if isinstance(incoming, ProducerEvent):
            return incoming.to_item(now)
        if isinstance(incoming, dict):
            if "type" in incoming:
                return event_from_dict(incoming).to_item(now)
            return NotificationItem.from_dict(incoming)
        raise TypeError(f"Cannot ingest {type(incoming).__name__}")

    def ingest(
        self,
        incoming: NotificationItem | ProducerEvent | dict[str, Any],
        now: datetime | None = None,
    ) -> NotificationItem | None:
        """
        Score an incoming event and add it to the working set.

        The producer's raw score is weighted by taste (source, primary topic,
        first actor) to form the base score, then decayed for its age.
        Malformed input is logged and rejected without raising.

        Returns:
            The stored item, or None if rejected, filtered or a duplicate
        """
        now = ensure_aware(now) if now is not None else utc_now()

        try:
            item = self._coerce(incoming, now)
        except (TypeError, ValueError) as e:
            self.metrics.rejected += 1
            logger.warning("Rejected malformed event: %s", e)
            return None

        if item is None:
            return None

        if item.id in self.menu:
            self.metrics.duplicates += 1
            return None

        actor_id = item.actors[0].key if item.actors else None
        base = self.taste.apply_preference(
            item.base_score or 0, item.source, item.primary_topic, actor_id
        )
        stored = decay_item(
            replace(item, score=base, base_score=base, served_at=item.served_at or now),
            now,
        )

        if not self.menu.add(stored):
            self.metrics.duplicates += 1
            return None

        self.metrics.ingested += 1
        logger.debug("Ingested %s score=%d tier=%s", stored.id, stored.score, stored.tier.value)
        return stored

    def ingest_many(self, incoming: list[Any], now: datetime | None = None) -> list[NotificationItem]:
        """Ingest a batch; one bad entry never stops the rest."""
        stored = []
        for entry in incoming:
            item = self.ingest(entry, now)
            if item is not None:
                stored.append(item)
        return stored

    # =========================================================================
    # Interaction
    # =========================================================================

    def _resolve(self, item_id: str) -> tuple[NotificationItem | None, list[NotificationItem]]:
        """
        The presented item behind an id and the live items it stands for.

        Blended ids expand to their constituents still in the working set.
        """
        if item_id.startswith(BLEND_PREFIX):
            for presented in self.feed():
                if presented.id == item_id and presented.is_blended:
                    live = [i for i in presented.original_items if i.id in self.menu]
                    return (presented if live else None), live
            item_id = item_id[len(BLEND_PREFIX) :]
        item = self.menu.get(item_id)
        return item, ([item] if item is not None else [])

    def record_interaction(
        self,
        item_id: str,
        action: InteractionAction | str,
        now: datetime | None = None,
    ) -> bool:
        """
        Feed an implicit interaction on a working-set item into the taste model.

        Returns:
            False if no such item is in the working set
        """
        subject, _ = self._resolve(item_id)
        if subject is None:
            logger.debug("Interaction on unknown item %s ignored", item_id)
            return False

        # One signal per user action, even when the item is a blend
        self.record_signal(
            InteractionSignal(
                item_id=subject.id,
                source=subject.source,
                action=InteractionAction(action),
                topic=subject.primary_topic,
                actor_id=subject.actors[0].key if subject.actors else None,
                timestamp=now if now is not None else utc_now(),
            )
        )
        return True

    def record_signal(self, signal: InteractionSignal) -> None:
        self.taste.record_interaction(signal)

    def read(self, item_id: str) -> bool:
        """Mark an item (or every constituent of a blended item) read."""
        _, items = self._resolve(item_id)
        for item in items:
            self.menu.mark_read(item.id)
            self._queued.pop(item.id, None)
        return bool(items)

    def dismiss(self, item_id: str, now: datetime | None = None) -> bool:
        """Remove an item from the working set and learn from the dismissal."""
        _, items = self._resolve(item_id)
        if items:
            self.record_interaction(item_id, InteractionAction.DISMISS, now)
        for item in items:
            self.menu.dismiss(item.id)
            self._queued.pop(item.id, None)
        return bool(items)

    # =========================================================================
    # Recompute
    # =========================================================================

    def refresh(self, now: datetime | None = None) -> list[NotificationItem]:
        """Decay pass plus timing-context refresh; safe to run repeatedly."""
        now = ensure_aware(now) if now is not None else utc_now()
        ranked = self.menu.refresh(now)
        self.timing.refresh_context(now)

        live_unread = {item.id for item in ranked if not item.is_read}
        for item_id in list(self._queued):
            if item_id not in live_unread:
                del self._queued[item_id]

        self.metrics.refreshes += 1
        self.metrics.last_refresh_time = now
        return ranked

    def feed(self) -> list[NotificationItem]:
        """Ranked, blended presentation list."""
        return blend_items(self.menu.snapshot())

    def tiers(self) -> dict[PriorityTier, list[NotificationItem]]:
        """The blended feed bucketed by tier; every tier is present."""
        buckets: dict[PriorityTier, list[NotificationItem]] = {tier: [] for tier in PriorityTier}
        for item in self.feed():
            buckets[item.tier].append(item)
        return buckets

    # =========================================================================
    # Delivery
    # =========================================================================

    def decide(self, item_id: str, now: datetime | None = None) -> DeliveryDecision | None:
        """
        Run the timing policy for one working-set item.

        A suppressed decision with a re-check time is remembered so
        ``deliverable`` skips the item until then.
        """
        item = self.menu.get(item_id)
        if item is None:
            return None

        decision = self.timing.should_deliver_now(item, now)
        if decision.queue_until is not None:
            self._queued[item_id] = decision.queue_until
        else:
            self._queued.pop(item_id, None)
        return decision

    def deliverable(
        self, now: datetime | None = None
    ) -> list[tuple[NotificationItem, DeliveryDecision]]:
        """
        Delivery decisions for unread items, hottest first.

        Items still waiting on an earlier re-check time are skipped, and
        non-critical items are held while batching is scheduled.
        """
        now = ensure_aware(now) if now is not None else utc_now()
        batch_mode = self.taste.batch_mode
        results = []

        for item in self.menu.unread():
            until = self._queued.get(item.id)
            if until is not None and now < until:
                continue
            if should_batch_now(item.tier, batch_mode):
                continue
            decision = self.decide(item.id, now)
            if decision is not None:
                results.append((item, decision))

        return results

    def digest(self, hour: int | None = None, now: datetime | None = None) -> Digest:
        if hour is None:
            hour = self._local(now).hour
        return generate_digest(self.menu.snapshot(), hour)

    def window_status(self, now: datetime | None = None) -> WindowStatus:
        return get_window_status(self.taste.schedule_windows, self._local(now))

    # =========================================================================
    # Event Loop
    # =========================================================================

    async def run(self, channel: EventChannel, stop_event: asyncio.Event | None = None) -> None:
        """
        Consume producer events and refresh on a fixed tick until stopped.

        Args:
            channel: Source of producer events
            stop_event: Set to stop the loop; the current iteration finishes
        """
        stop_event = stop_event if stop_event is not None else asyncio.Event()
        interval = self.settings.refresh_interval_seconds
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        logger.info("Brew engine started (refresh every %.1fs)", interval)

        try:
            while not stop_event.is_set():
                wait = min(max(0.0, next_tick - loop.time()), STOP_POLL_SECONDS)
                event = await channel.consume(timeout=wait)

                try:
                    if event is not None:
                        self.ingest(event)
                    if loop.time() >= next_tick:
                        self.refresh()
                        next_tick = loop.time() + interval
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self.metrics.errors += 1
                    logger.error("Brew engine iteration failed: %s", e)
        finally:
            logger.info("Brew engine stopped")
