"""
Daily Brew Data Models.

Core data structures shared by scoring, decay, blending, timing and digests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..core.logging import get_logger

logger = get_logger(__name__)

# Tier thresholds on the 0-100 urgency scale
CRITICAL_THRESHOLD = 75
ELEVATED_THRESHOLD = 30

MIN_SCORE = 0
MAX_SCORE = 100


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any, default: datetime | None = None) -> datetime:
    """
    Parse an event timestamp from producer data.

    Accepts datetimes, ISO-8601 strings and epoch seconds or milliseconds.
    Unparseable values fall back to ``default`` (or now).
    """
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            pass
    elif isinstance(value, str) and value:
        try:
            return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass

    if value is not None:
        logger.warning("Unparseable timestamp %r, using fallback", value)
    return default if default is not None else utc_now()


def clamp_score(value: float) -> int:
    """Round half-up and clamp to the 0-100 urgency scale."""
    return int(min(max(round_half_up(value), MIN_SCORE), MAX_SCORE))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (never banker's rounding)."""
    # Small epsilon absorbs float noise such as 1.5 * 45 == 67.49999...
    return math.floor(value + 0.5 + 1e-9)


class NotificationSource(str, Enum):
    """Closed set of event producers."""

    RECOGNITION = "toast"
    MARKET_INTEL = "pulse"
    LEARNING_SESSION = "lop"
    DISCUSSION = "chat"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Any) -> NotificationSource:
        """
        Resolve a producer source tag.

        Accepts wire values ("pulse") and descriptive names ("market-intel").
        Unknown tags resolve to SYSTEM, the lowest-confidence source.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for member in cls:
                if normalized in (member.value, member.name.lower()):
                    return member
        logger.warning("Unknown notification source %r, defaulting to system", value)
        return cls.SYSTEM


class PriorityTier(str, Enum):
    """Priority bucket derived from the urgency score."""

    CRITICAL = "critical"  # score >= 75
    ELEVATED = "elevated"  # 30 <= score < 75
    AMBIENT = "ambient"  # score < 30

    @classmethod
    def from_score(cls, score: float) -> PriorityTier:
        """Map a score onto its tier using the fixed thresholds."""
        if score >= CRITICAL_THRESHOLD:
            return cls.CRITICAL
        if score >= ELEVATED_THRESHOLD:
            return cls.ELEVATED
        return cls.AMBIENT


class Relationship(str, Enum):
    """Relationship between the acting party and the user."""

    MANAGER = "manager"
    REPORT = "report"
    PEER = "peer"
    SYSTEM = "system"


class ContentType(str, Enum):
    """Semantic action carried by an event."""

    MENTION = "mention"
    APPROVAL = "approval"
    DIRECT_MESSAGE = "direct_message"
    TOAST_RECEIVED = "toast_received"
    COMMENT = "comment"
    LIKE = "like"
    SYSTEM_UPDATE = "system_update"
    DEFAULT = "default"


class InteractionAction(str, Enum):
    """Implicit feedback vocabulary."""

    EXPAND = "expand"
    READ = "read"
    IGNORE = "ignore"
    DISMISS = "dismiss"
    SAVE = "save"
    CLICK_THROUGH = "click_through"


class ActivityState(str, Enum):
    """Ambient user activity classification."""

    ACTIVE = "active"  # Normal browsing
    TYPING = "typing"  # Deep focus
    IDLE = "idle"  # No input for 5+ minutes
    SCROLLING = "scrolling"  # Reading content
    MEETING = "meeting"  # Video call detected from window title


class BatchMode(str, Enum):
    """How non-critical items are delivered."""

    REALTIME = "realtime"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class Actor:
    """A party that contributed to an event."""

    name: str
    avatar: str | None = None
    id: str | None = None

    @property
    def key(self) -> str:
        """Identifier used for actor affinity."""
        return self.id or self.name

    @property
    def short_name(self) -> str:
        """First word of the display name."""
        parts = self.name.split()
        return parts[0] if parts else self.name

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        if self.avatar:
            result["avatar"] = self.avatar
        if self.id:
            result["id"] = self.id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str) -> Actor:
        if isinstance(data, str):
            return cls(name=data)
        return cls(name=str(data.get("name", "")), avatar=data.get("avatar"), id=data.get("id"))


@dataclass
class NotificationItem:
    """
    A single event surfaced to the user.

    ``base_score`` is the score at ingestion (after preference weighting) and is
    never discounted; decay always recomputes ``score`` from it and ``timestamp``.
    The tier is derived from ``score`` so the two can never disagree.
    """

    id: str
    title: str
    body: str = ""
    source: NotificationSource = NotificationSource.SYSTEM
    score: int = 0
    topics: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)
    served_at: datetime | None = None
    is_read: bool = False
    link: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    actors: tuple[Actor, ...] = ()
    base_score: int | None = None

    def __post_init__(self) -> None:
        self.score = clamp_score(self.score)
        if self.base_score is None:
            self.base_score = self.score
        else:
            self.base_score = clamp_score(self.base_score)
        self.topics = tuple(t for t in self.topics if isinstance(t, str) and t)
        self.actors = tuple(self.actors)
        self.timestamp = ensure_aware(self.timestamp)
        if self.served_at is not None:
            self.served_at = ensure_aware(self.served_at)

    @property
    def tier(self) -> PriorityTier:
        return PriorityTier.from_score(self.score)

    @property
    def base_tier(self) -> PriorityTier:
        return PriorityTier.from_score(self.base_score or 0)

    @property
    def primary_topic(self) -> str | None:
        return self.topics[0] if self.topics else None

    @property
    def topic_set(self) -> frozenset[str]:
        return frozenset(t.lower() for t in self.topics)

    @property
    def target_id(self) -> str | None:
        """Target/thread reference used for clustering."""
        for key in ("targetId", "target_id", "threadId", "thread_id"):
            value = self.metadata.get(key)
            if value:
                return str(value)
        return None

    @property
    def is_blended(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "source": self.source.value,
            "score": self.score,
            "base_score": self.base_score,
            "tier": self.tier.value,
            "topics": list(self.topics),
            "timestamp": self.timestamp.isoformat(),
            "is_read": self.is_read,
        }
        if self.served_at is not None:
            result["served_at"] = self.served_at.isoformat()
        if self.link:
            result["link"] = self.link
        if self.metadata:
            result["metadata"] = self.metadata
        if self.actors:
            result["actors"] = [a.to_dict() for a in self.actors]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationItem:
        """
        Build an item from producer data.

        Raises:
            ValueError: If the item has no identifier
        """
        item_id = data.get("id")
        if not item_id:
            raise ValueError("Notification item requires an 'id'")

        topics = data.get("topics") or data.get("flavor_notes") or []
        if isinstance(topics, str):
            topics = [topics]

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}

        return cls(
            id=str(item_id),
            title=str(data.get("title", "")),
            body=str(data.get("body", data.get("message", ""))),
            source=NotificationSource.parse(data.get("source")),
            score=_coerce_score(data.get("score", 0)),
            topics=tuple(str(t) for t in topics),
            timestamp=parse_timestamp(data.get("timestamp")),
            served_at=(
                parse_timestamp(data["served_at"]) if data.get("served_at") is not None else None
            ),
            is_read=bool(data.get("is_read", False)),
            link=data.get("link"),
            metadata=metadata,
            actors=tuple(Actor.from_dict(a) for a in data.get("actors") or []),
            base_score=(
                _coerce_score(data["base_score"]) if data.get("base_score") is not None else None
            ),
        )


@dataclass
class BlendedNotification(NotificationItem):
    """
    A presentation-time merge of related items.

    Never persisted; recomputed whenever the working set changes.
    """

    blended_count: int = 0
    blended_actors: tuple[Actor, ...] = ()
    original_items: tuple[NotificationItem, ...] = ()

    @property
    def is_blended(self) -> bool:
        return True

    @property
    def original_ids(self) -> list[str]:
        return [item.id for item in self.original_items]

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["blended_count"] = self.blended_count
        result["blended_actors"] = [a.to_dict() for a in self.blended_actors]
        result["original_ids"] = self.original_ids
        return result


@dataclass
class InteractionSignal:
    """Implicit feedback event, consumed immediately by the taste model."""

    item_id: str
    source: NotificationSource
    action: InteractionAction
    topic: str | None = None
    actor_id: str | None = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class TimingContext:
    """Ambient session state, recomputed on every refresh."""

    activity_state: ActivityState = ActivityState.ACTIVE
    current_page: str = "/"
    current_topics: frozenset[str] = frozenset()
    last_activity_at: datetime = field(default_factory=utc_now)
    is_quiet_hours: bool = False
    focus_mode_until: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "activity_state": self.activity_state.value,
            "current_page": self.current_page,
            "current_topics": sorted(self.current_topics),
            "last_activity_at": self.last_activity_at.isoformat(),
            "is_quiet_hours": self.is_quiet_hours,
            "focus_mode_until": (
                self.focus_mode_until.isoformat() if self.focus_mode_until else None
            ),
        }


@dataclass
class DeliveryDecision:
    """Outcome of the timing policy for one item."""

    deliver: bool
    reason: str
    boost_score: int = 0
    queue_until: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "deliver": self.deliver,
            "reason": self.reason,
            "boost_score": self.boost_score,
        }
        if self.queue_until is not None:
            result["queue_until"] = self.queue_until.isoformat()
        return result


def _coerce_score(value: Any) -> float:
    """Lenient numeric coercion for producer score hints."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Non-numeric score %r, defaulting to 0", value)
        return 0.0
