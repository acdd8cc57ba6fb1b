"""
Working Set ("the menu").

The bounded, per-session set of live NotificationItems. Items are treated as
immutable values: read/dismiss swap in a new copy, and the decay pass works on
a snapshot that is swapped back under a lock, so a refresh running alongside
read/dismiss calls never loses their changes.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..core.logging import get_logger
from .decay import decay_item
from .models import NotificationItem, PriorityTier

logger = get_logger(__name__)

DEFAULT_MAX_ITEMS = 200


def rank_key(item: NotificationItem) -> tuple[int, float, str]:
    """Hottest first, then newest, then id."""
    return (-item.score, -item.timestamp.timestamp(), item.id)


@dataclass
class MenuStats:
    """Working-set summary for the presentation layer."""

    steam_pressure: int = 0  # Unread items
    daily_intake: int = 0  # Items read this session
    favorite_tier: PriorityTier = PriorityTier.ELEVATED  # Most common tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "steam_pressure": self.steam_pressure,
            "daily_intake": self.daily_intake,
            "favorite_tier": self.favorite_tier.value,
        }


class NotificationMenu:
    """
    Bounded working set keyed by item id.

    When full, adding evicts the lowest-scoring read item, or the
    lowest-scoring unread item if nothing has been read.
    """

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        if max_items < 1:
            raise ValueError(f"max_items must be >= 1, got {max_items}")
        self._max_items = max_items
        self._items: dict[str, NotificationItem] = {}
        self._lock = threading.Lock()
        self._daily_intake = 0

    @property
    def max_items(self) -> int:
        return self._max_items

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[NotificationItem]:
        return iter(self.snapshot())

    def snapshot(self) -> list[NotificationItem]:
        """Current items in insertion order."""
        with self._lock:
            return list(self._items.values())

    def get(self, item_id: str) -> NotificationItem | None:
        return self._items.get(item_id)

    # =========================================================================
    # Mutation
    # =========================================================================

    def add(self, item: NotificationItem) -> bool:
        """
        Add an item unless one with the same id is already present.

        Returns:
            True if added, False for a duplicate
        """
        with self._lock:
            if item.id in self._items:
                return False
            if len(self._items) >= self._max_items:
                self._evict_one()
            self._items[item.id] = item
            return True

    def extend(self, items: Iterable[NotificationItem]) -> int:
        """Add several items; returns how many were new."""
        return sum(1 for item in items if self.add(item))

    def _evict_one(self) -> None:
        # Caller holds the lock
        candidates = [i for i in self._items.values() if i.is_read] or list(self._items.values())
        victim = min(candidates, key=lambda i: (i.score, i.timestamp, i.id))
        del self._items[victim.id]
        logger.debug("Working set full, evicted %s (score=%d)", victim.id, victim.score)

    def mark_read(self, item_id: str) -> bool:
        """
        Mark an item read.

        Returns:
            True if the item exists (already-read items are left unchanged)
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return False
            if not item.is_read:
                self._items[item_id] = replace(item, is_read=True)
                self._daily_intake += 1
            return True

    def dismiss(self, item_id: str) -> NotificationItem | None:
        """Remove an item; returns it, or None if it was not present."""
        with self._lock:
            return self._items.pop(item_id, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def refresh(self, now: datetime | None = None) -> list[NotificationItem]:
        """
        Recompute every item's score from its base score and age.

        Runs on a snapshot; the swap keeps the live read flag and skips
        items dismissed while the pass was running. An item that fails to
        decay keeps its current score.

        Returns:
            The refreshed working set, ranked
        """
        snapshot = self.snapshot()
        decayed: dict[str, NotificationItem] = {}
        for item in snapshot:
            try:
                decayed[item.id] = decay_item(item, now)
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning("Skipping decay for %s: %s", item.id, e)

        with self._lock:
            for item_id, fresh in decayed.items():
                live = self._items.get(item_id)
                if live is None:
                    continue
                self._items[item_id] = replace(fresh, is_read=live.is_read)

        return self.ranked()

    # =========================================================================
    # Views
    # =========================================================================

    def ranked(self) -> list[NotificationItem]:
        return sorted(self.snapshot(), key=rank_key)

    def by_tier(self) -> dict[PriorityTier, list[NotificationItem]]:
        """Ranked items bucketed by tier; every tier is present."""
        buckets: dict[PriorityTier, list[NotificationItem]] = {tier: [] for tier in PriorityTier}
        for item in self.ranked():
            buckets[item.tier].append(item)
        return buckets

    def filter(self, tier: PriorityTier | str | None = None) -> list[NotificationItem]:
        """Ranked items, optionally restricted to one tier."""
        if tier is None or tier == "all":
            return self.ranked()
        tier = PriorityTier(tier)
        return [item for item in self.ranked() if item.tier == tier]

    def unread(self) -> list[NotificationItem]:
        return [item for item in self.ranked() if not item.is_read]

    def stats(self) -> MenuStats:
        items = self.snapshot()
        counts = Counter(item.tier for item in items)

        favorite = PriorityTier.ELEVATED
        if counts:
            top = max(counts.values())
            leaders = [tier for tier in PriorityTier if counts[tier] == top]
            if PriorityTier.ELEVATED not in leaders:
                favorite = leaders[0]

        return MenuStats(
            steam_pressure=sum(1 for item in items if not item.is_read),
            daily_intake=self._daily_intake,
            favorite_tier=favorite,
        )
