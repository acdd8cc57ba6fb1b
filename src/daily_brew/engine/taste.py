"""
Taste Model - User Preference Learning.

Tracks implicit interactions to personalize notification scoring.
If a user always ignores market updates, their urgency drifts down.

Affinities live in [-100, 100] per source, topic and actor. The preference
modifier maps the weighted affinity onto a multiplier in [0.5, 1.5]:

    score = source * 0.5 + topic * 0.3 + actor * 0.2
    modifier = 1 + score / 200

State is loaded once per model, merged over defaults, and persisted after
every change. Persistence failures are logged and never surfaced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any
from zoneinfo import ZoneInfo

from ..core.errors import InvalidTimeError, PersistenceError
from ..core.logging import get_logger
from ..core.store import KeyValueStore, MemoryStore
from .models import (
    BatchMode,
    InteractionAction,
    InteractionSignal,
    NotificationSource,
    clamp_score,
    ensure_aware,
    utc_now,
)

logger = get_logger(__name__)

TASTE_STORAGE_KEY = "daily-brew:user-taste"

AFFINITY_MIN = -100.0
AFFINITY_MAX = 100.0

ACTION_WEIGHTS: dict[InteractionAction, float] = {
    InteractionAction.EXPAND: 1.0,  # Mild interest
    InteractionAction.READ: 0.5,  # Read shortly after surfacing
    InteractionAction.IGNORE: -1.0,  # Left untouched for 24h+
    InteractionAction.DISMISS: -2.0,  # Explicitly dismissed
    InteractionAction.SAVE: 3.0,  # Bookmarked
    InteractionAction.CLICK_THROUGH: 5.0,  # Followed through to the source
}

SOURCE_FACTOR = 0.5
TOPIC_FACTOR = 0.3
ACTOR_FACTOR = 0.2


def parse_time_of_day(value: str) -> time:
    """
    Parse an HH:MM string.

    Raises:
        InvalidTimeError: If the string is not a valid 24h time
    """
    if not isinstance(value, str):
        raise InvalidTimeError(str(value))
    parts = value.strip().split(":")
    if len(parts) != 2:
        raise InvalidTimeError(value)
    try:
        return time(hour=int(parts[0]), minute=int(parts[1]))
    except ValueError as e:
        raise InvalidTimeError(value) from e


def minute_of_day(value: time | datetime) -> int:
    return value.hour * 60 + value.minute


def in_time_window(check: int, start: int, end: int) -> bool:
    """
    Minute-of-day window check with overnight wraparound.

    The end minute is exclusive; equal start and end is an empty window.
    """
    if start > end:
        # Overnight window (e.g., 22:00-08:00)
        return check >= start or check < end
    return start <= check < end


def _clamp_affinity(value: float) -> float:
    return min(max(value, AFFINITY_MIN), AFFINITY_MAX)


@dataclass
class ScheduleWindow:
    """A named batched-delivery window."""

    name: str
    start_hour: int
    enabled: bool = True

    def __post_init__(self) -> None:
        self.start_hour = int(self.start_hour) % 24

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "start_hour": self.start_hour, "enabled": self.enabled}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleWindow:
        if not isinstance(data, dict):
            raise TypeError(f"schedule window must be an object, got {type(data).__name__}")
        start = data.get("start_hour", data.get("startHour", 0))
        return cls(name=str(data["name"]), start_hour=int(start), enabled=bool(data.get("enabled", True)))


def _default_windows() -> list[ScheduleWindow]:
    return [
        ScheduleWindow("morning", 8),
        ScheduleWindow("afternoon", 13),
        ScheduleWindow("evening", 18),
    ]


def _default_sources() -> dict[str, float]:
    return {source.value: 0.0 for source in NotificationSource}


@dataclass
class UserTaste:
    """Learned personalization state for one user."""

    by_source: dict[str, float] = field(default_factory=_default_sources)
    by_topic: dict[str, float] = field(default_factory=dict)
    by_actor: dict[str, float] = field(default_factory=dict)
    quiet_hours: dict[str, str] | None = None
    digest_time: str | None = "09:00"
    schedule_windows: list[ScheduleWindow] = field(default_factory=_default_windows)
    batch_mode: BatchMode = BatchMode.REALTIME
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        return {
            "by_source": dict(self.by_source),
            "by_topic": dict(self.by_topic),
            "by_actor": dict(self.by_actor),
            "quiet_hours": dict(self.quiet_hours) if self.quiet_hours else None,
            "digest_time": self.digest_time,
            "schedule_windows": [w.to_dict() for w in self.schedule_windows],
            "batch_mode": self.batch_mode.value,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UserTaste:
        """
        Merge persisted data over defaults.

        Missing fields keep their defaults; malformed fields are dropped with
        a warning rather than failing the load.
        """
        taste = cls()
        if not data:
            return taste

        taste.by_source.update(_affinity_map(data.get("by_source"), "by_source"))
        taste.by_topic.update(_affinity_map(data.get("by_topic"), "by_topic"))
        taste.by_actor.update(_affinity_map(data.get("by_actor"), "by_actor"))

        quiet = data.get("quiet_hours")
        if isinstance(quiet, dict) and "start" in quiet and "end" in quiet:
            try:
                parse_time_of_day(quiet["start"])
                parse_time_of_day(quiet["end"])
                taste.quiet_hours = {"start": quiet["start"], "end": quiet["end"]}
            except InvalidTimeError as e:
                logger.warning("Dropping persisted quiet hours: %s", e)

        if "digest_time" in data:
            taste.digest_time = data["digest_time"]

        windows = data.get("schedule_windows")
        if isinstance(windows, list):
            try:
                taste.schedule_windows = [ScheduleWindow.from_dict(w) for w in windows]
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping persisted schedule windows: %s", e)

        try:
            taste.batch_mode = BatchMode(data.get("batch_mode", BatchMode.REALTIME.value))
        except ValueError:
            logger.warning("Unknown batch mode %r, using realtime", data.get("batch_mode"))

        updated = data.get("updated_at")
        if isinstance(updated, str):
            try:
                taste.updated_at = ensure_aware(datetime.fromisoformat(updated))
            except ValueError:
                pass

        return taste


def _affinity_map(raw: Any, label: str) -> dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    result = {}
    for key, value in raw.items():
        try:
            result[str(key)] = _clamp_affinity(float(value))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric %s affinity for %r", label, key)
    return result


class TasteModel:
    """
    Owns one user's UserTaste and its persistence.

    Usage:
        model = TasteModel(store)
        model.record_interaction(signal)
        score = model.apply_preference(60, NotificationSource.MARKET_INTEL, "market")
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        timezone: ZoneInfo | str | None = None,
        storage_key: str = TASTE_STORAGE_KEY,
    ) -> None:
        self._store = store if store is not None else MemoryStore()
        self._storage_key = storage_key
        if isinstance(timezone, str):
            timezone = ZoneInfo(timezone)
        self._timezone = timezone
        self._taste = self._load()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self) -> UserTaste:
        try:
            data = self._store.get(self._storage_key)
        except PersistenceError as e:
            logger.warning("Failed to load user taste, using defaults: %s", e)
            return UserTaste()
        if data is not None and not isinstance(data, dict):
            logger.warning("Persisted user taste is not an object, using defaults")
            return UserTaste()
        return UserTaste.from_dict(data)

    def _save(self) -> None:
        self._taste.updated_at = utc_now()
        try:
            self._store.set(self._storage_key, self._taste.to_dict())
        except PersistenceError as e:
            logger.warning("Failed to save user taste: %s", e)

    @property
    def taste(self) -> UserTaste:
        return self._taste

    def snapshot(self) -> dict[str, Any]:
        """JSON view of the current taste for presentation."""
        return self._taste.to_dict()

    def reset(self) -> None:
        """Forget everything learned and restore defaults."""
        self._taste = UserTaste()
        self._save()

    # =========================================================================
    # Learning
    # =========================================================================

    def record_interaction(self, signal: InteractionSignal) -> UserTaste:
        """
        Fold one implicit feedback signal into the taste.

        Each present dimension (source, topic, actor) moves by the action's
        weight and is clamped independently. Persists immediately.
        """
        action = InteractionAction(signal.action)
        weight = ACTION_WEIGHTS[action]
        taste = self._taste

        source_key = NotificationSource.parse(signal.source).value
        taste.by_source[source_key] = _clamp_affinity(taste.by_source.get(source_key, 0.0) + weight)

        if signal.topic:
            taste.by_topic[signal.topic] = _clamp_affinity(
                taste.by_topic.get(signal.topic, 0.0) + weight
            )

        if signal.actor_id:
            taste.by_actor[signal.actor_id] = _clamp_affinity(
                taste.by_actor.get(signal.actor_id, 0.0) + weight
            )

        logger.debug(
            "Recorded %s on %s (source=%s topic=%s actor=%s)",
            action.value,
            signal.item_id,
            source_key,
            signal.topic,
            signal.actor_id,
        )
        self._save()
        return taste

    def get_preference_modifier(
        self,
        source: NotificationSource | str,
        topic: str | None = None,
        actor_id: str | None = None,
    ) -> float:
        """
        Multiplier in [0.5, 1.5] for an item's raw score.

        Topic and actor terms are omitted when absent.
        """
        taste = self._taste
        source_key = NotificationSource.parse(source).value

        score = taste.by_source.get(source_key, 0.0) * SOURCE_FACTOR
        if topic:
            score += taste.by_topic.get(topic, 0.0) * TOPIC_FACTOR
        if actor_id:
            score += taste.by_actor.get(actor_id, 0.0) * ACTOR_FACTOR

        return 1 + score / 200

    def apply_preference(
        self,
        base_score: float,
        source: NotificationSource | str,
        topic: str | None = None,
        actor_id: str | None = None,
    ) -> int:
        """Weight a raw urgency score by learned taste; pure read of state."""
        modifier = self.get_preference_modifier(source, topic, actor_id)
        return clamp_score(base_score * modifier)

    # =========================================================================
    # Quiet Hours
    # =========================================================================

    def get_quiet_hours(self) -> dict[str, str] | None:
        quiet = self._taste.quiet_hours
        return dict(quiet) if quiet else None

    def set_quiet_hours(self, start: str, end: str) -> None:
        """
        Set the quiet-hours window.

        Raises:
            InvalidTimeError: If start or end is not HH:MM
        """
        parse_time_of_day(start)
        parse_time_of_day(end)
        self._taste.quiet_hours = {"start": start, "end": end}
        self._save()

    def clear_quiet_hours(self) -> None:
        self._taste.quiet_hours = None
        self._save()

    def _wall_clock(self, now: datetime | None) -> datetime:
        if now is None:
            return datetime.now(tz=self._timezone) if self._timezone else datetime.now()
        if now.tzinfo is not None and self._timezone is not None:
            return now.astimezone(self._timezone)
        return now

    def is_quiet_hours(self, now: datetime | None = None) -> bool:
        """
        Check whether ``now`` falls within quiet hours.

        Aware datetimes are converted to the model's timezone; naive ones
        are taken as wall-clock time.
        """
        quiet = self._taste.quiet_hours
        if not quiet:
            return False

        try:
            start = minute_of_day(parse_time_of_day(quiet["start"]))
            end = minute_of_day(parse_time_of_day(quiet["end"]))
        except InvalidTimeError as e:
            logger.warning("Ignoring malformed quiet hours: %s", e)
            return False

        return in_time_window(minute_of_day(self._wall_clock(now)), start, end)

    # =========================================================================
    # Delivery Preferences
    # =========================================================================

    @property
    def batch_mode(self) -> BatchMode:
        return self._taste.batch_mode

    def set_batch_mode(self, mode: BatchMode | str) -> None:
        self._taste.batch_mode = BatchMode(mode)
        self._save()

    def set_digest_time(self, value: str | None) -> None:
        """
        Set or clear the preferred digest time.

        Raises:
            InvalidTimeError: If value is not HH:MM
        """
        if value is not None:
            parse_time_of_day(value)
        self._taste.digest_time = value
        self._save()

    @property
    def schedule_windows(self) -> list[ScheduleWindow]:
        return list(self._taste.schedule_windows)

    def set_schedule_window(
        self,
        name: str,
        enabled: bool | None = None,
        start_hour: int | None = None,
    ) -> ScheduleWindow:
        """
        Enable, disable or move a named delivery window.

        Raises:
            KeyError: If no window has that name
            ValueError: If start_hour is outside 0-23
        """
        for window in self._taste.schedule_windows:
            if window.name == name:
                break
        else:
            raise KeyError(f"Unknown schedule window: {name}")

        if start_hour is not None:
            if not 0 <= start_hour <= 23:
                raise ValueError(f"start_hour must be 0-23, got {start_hour}")
            window.start_hour = start_hour
        if enabled is not None:
            window.enabled = enabled

        self._save()
        return window
