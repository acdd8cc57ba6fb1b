"""
Producer Events.

Producers (recognition, market intel, learning sessions, discussions, system)
publish typed events onto an EventChannel; the engine consumes them without
knowing anything about producer internals.

Every event converts itself to a NotificationItem with a deterministic id so
repeated publication is idempotent in the working set.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..core.logging import get_logger
from .models import (
    Actor,
    ContentType,
    NotificationItem,
    NotificationSource,
    Relationship,
    ensure_aware,
    parse_timestamp,
    utc_now,
)
from .scoring import calculate_urgency, score_for_source

logger = get_logger(__name__)

DEFAULT_CHANNEL_SIZE = 500

LEARNING_FRESHNESS = timedelta(days=7)
DISCUSSION_FRESHNESS = timedelta(days=3)
REPLY_FRESHNESS = timedelta(days=1)

REPLY_PREVIEW_CHARS = 100

HIGH_SIGNAL_PRIORITIES = frozenset({"high", "critical"})


def _is_recent(timestamp: datetime, now: datetime, window: timedelta) -> bool:
    return (ensure_aware(now) - ensure_aware(timestamp)) < window


@dataclass
class ProducerEvent:
    """Base for typed producer events."""

    id: str
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.timestamp = parse_timestamp(self.timestamp)

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        """
        Convert to a raw (pre-preference) NotificationItem.

        Returns:
            The item, or None when the event should not be surfaced
        """
        raise NotImplementedError


@dataclass
class RecognitionEvent(ProducerEvent):
    """A toast sent to the user."""

    giver_name: str = ""
    message: str = ""
    value: str | None = None
    expert_areas: tuple[str, ...] = ()
    giver_id: str | None = None
    target_id: str | None = None
    score_hint: float | None = None

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        source = NotificationSource.RECOGNITION
        topics = ["recognition"]
        if self.value:
            topics.append(self.value)
        topics.extend(self.expert_areas)

        metadata: dict[str, Any] = {}
        if self.target_id:
            metadata["targetId"] = self.target_id

        return NotificationItem(
            id=f"{source.value}:{self.id}",
            title=f"Toast from {self.giver_name}",
            body=self.message,
            source=source,
            score=score_for_source(source, self.score_hint),
            topics=tuple(topics),
            timestamp=self.timestamp,
            metadata=metadata,
            actors=(Actor(name=self.giver_name, id=self.giver_id),) if self.giver_name else (),
        )


@dataclass
class MarketSignalEvent(ProducerEvent):
    """A market-intelligence signal."""

    title: str = ""
    summary: str = ""
    domain: str = ""
    priority: str = "medium"

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        source = NotificationSource.MARKET_INTEL
        hint = 80 if self.priority.lower() in HIGH_SIGNAL_PRIORITIES else 40
        return NotificationItem(
            id=f"{source.value}:{self.id}",
            title=self.title,
            body=self.summary,
            source=source,
            score=score_for_source(source, hint),
            topics=("market", self.domain.lower()),
            timestamp=self.timestamp,
        )


@dataclass
class LearningSessionEvent(ProducerEvent):
    """A newly published learning session; only the last week is surfaced."""

    title: str = ""
    subtitle: str | None = None
    speaker_name: str = ""
    topics: tuple[str, ...] = ()

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        now = now if now is not None else utc_now()
        if not _is_recent(self.timestamp, now, LEARNING_FRESHNESS):
            logger.debug("Skipping stale learning session %s", self.id)
            return None

        source = NotificationSource.LEARNING_SESSION
        return NotificationItem(
            id=f"{source.value}:{self.id}",
            title=f"New LOP Session: {self.title}",
            body=self.subtitle or f"With {self.speaker_name}",
            source=source,
            score=score_for_source(source, 60),
            topics=("learning", "session", *self.topics),
            timestamp=self.timestamp,
        )


@dataclass
class DiscussionEvent(ProducerEvent):
    """A community discussion; only open ones from the last 3 days surface."""

    title: str = ""
    author_name: str = ""
    status: str = "open"
    upvote_count: int = 0
    attached_to_type: str | None = None

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        now = now if now is not None else utc_now()
        if self.status != "open" or not _is_recent(self.timestamp, now, DISCUSSION_FRESHNESS):
            return None

        source = NotificationSource.DISCUSSION
        topics = ["discussion", "community"]
        if self.attached_to_type:
            topics.append(self.attached_to_type)

        return NotificationItem(
            id=f"{source.value}:disc:{self.id}",
            title=self.title,
            body=f"{self.author_name} started a discussion",
            source=source,
            score=score_for_source(source, 55 if self.upvote_count > 5 else 35),
            topics=tuple(topics),
            timestamp=self.timestamp,
            link=f"/community/discussions/{self.id}",
            actors=(Actor(name=self.author_name),) if self.author_name else (),
        )


@dataclass
class DiscussionReplyEvent(ProducerEvent):
    """A reply in a discussion; only replies from the last day surface."""

    discussion_id: str = ""
    author_name: str = ""
    body: str = ""
    is_accepted_answer: bool = False

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        now = now if now is not None else utc_now()
        if not _is_recent(self.timestamp, now, REPLY_FRESHNESS):
            return None

        preview = self.body[:REPLY_PREVIEW_CHARS]
        if len(self.body) > REPLY_PREVIEW_CHARS:
            preview += "..."

        source = NotificationSource.DISCUSSION
        return NotificationItem(
            id=f"{source.value}:reply:{self.id}",
            title=f"New reply from {self.author_name}",
            body=preview,
            source=source,
            score=score_for_source(source, 70 if self.is_accepted_answer else 30),
            topics=("reply", "discussion"),
            timestamp=self.timestamp,
            link=f"/community/discussions/{self.discussion_id}",
            actors=(Actor(name=self.author_name),) if self.author_name else (),
        )


@dataclass
class SystemEvent(ProducerEvent):
    """Fully parameterised event scored from its content type and relationship."""

    title: str = ""
    body: str = ""
    source: NotificationSource | str = NotificationSource.SYSTEM
    content_type: ContentType | str = ContentType.SYSTEM_UPDATE
    relationship: Relationship | str = Relationship.SYSTEM
    is_emergency: bool = False
    topics: tuple[str, ...] = ()
    actors: tuple[Actor, ...] = ()
    link: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_item(self, now: datetime | None = None) -> NotificationItem | None:
        source = NotificationSource.parse(self.source)
        return NotificationItem(
            id=f"{source.value}:{self.id}",
            title=self.title,
            body=self.body,
            source=source,
            score=calculate_urgency(self.content_type, self.relationship, self.is_emergency),
            topics=tuple(self.topics),
            timestamp=self.timestamp,
            link=self.link,
            metadata=dict(self.metadata),
            actors=tuple(self.actors),
        )


EVENT_TYPES: dict[str, type[ProducerEvent]] = {
    "recognition": RecognitionEvent,
    "market_signal": MarketSignalEvent,
    "learning_session": LearningSessionEvent,
    "discussion": DiscussionEvent,
    "discussion_reply": DiscussionReplyEvent,
    "system": SystemEvent,
}


def event_from_dict(data: dict[str, Any]) -> ProducerEvent:
    """
    Build a typed event from a ``{"type": ..., ...}`` mapping.

    Raises:
        ValueError: If the type is unknown or the id is missing
    """
    kind = str(data.get("type", "")).replace("-", "_")
    event_cls = EVENT_TYPES.get(kind)
    if event_cls is None:
        raise ValueError(f"Unknown event type: {data.get('type')!r}")
    if not data.get("id"):
        raise ValueError(f"Event of type {kind!r} requires an 'id'")

    kwargs = {k: v for k, v in data.items() if k != "type" and k in event_cls.__dataclass_fields__}
    kwargs["id"] = str(kwargs["id"])
    for key in ("topics", "expert_areas"):
        if key in kwargs:
            kwargs[key] = tuple(kwargs[key] or ())
    if "actors" in kwargs:
        kwargs["actors"] = tuple(Actor.from_dict(a) for a in kwargs["actors"] or [])
    return event_cls(**kwargs)


@dataclass
class ChannelMetrics:
    """Counters for observability."""

    published_total: int = 0
    consumed_total: int = 0
    dropped_total: int = 0
    last_drop_time: float | None = None


class EventChannel:
    """
    Bounded queue between producers and the engine.

    Publishing never blocks: when the channel is full the new event is
    dropped and logged. Consumers await with a timeout.
    """

    def __init__(self, maxsize: int = DEFAULT_CHANNEL_SIZE):
        self._queue: asyncio.Queue[ProducerEvent | NotificationItem] = asyncio.Queue(maxsize=maxsize)
        self.metrics = ChannelMetrics()

    def publish(self, event: ProducerEvent | NotificationItem) -> bool:
        """
        Enqueue an event without waiting.

        Returns:
            True if accepted, False if dropped because the channel is full
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.metrics.dropped_total += 1
            self.metrics.last_drop_time = time.time()
            logger.warning(
                "Backpressure: dropped event %s - channel full",
                event.id,
                extra={"event": "channel_drop", "drops_total": self.metrics.dropped_total},
            )
            return False
        self.metrics.published_total += 1
        return True

    async def consume(self, timeout: float | None = None) -> ProducerEvent | NotificationItem | None:
        """
        Wait for the next event.

        Returns:
            The event, or None if the timeout elapsed first
        """
        try:
            event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        self.metrics.consumed_total += 1
        return event

    def drain(self) -> list[ProducerEvent | NotificationItem]:
        """Take everything currently queued without waiting."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        self.metrics.consumed_total += len(events)
        return events

    def __len__(self) -> int:
        return self._queue.qsize()
