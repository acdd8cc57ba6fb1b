"""
Daily Brew notification intelligence engine.

Scoring, decay, taste learning, blending, timing and digests for one
user session.
"""

from .blend import blend_items, cluster_key
from .decay import decay_item, freshness_decay
from .events import (
    DiscussionEvent,
    DiscussionReplyEvent,
    EventChannel,
    LearningSessionEvent,
    MarketSignalEvent,
    ProducerEvent,
    RecognitionEvent,
    SystemEvent,
    event_from_dict,
)
from .menu import MenuStats, NotificationMenu
from .models import (
    ActivityState,
    Actor,
    BatchMode,
    BlendedNotification,
    ContentType,
    DeliveryDecision,
    InteractionAction,
    InteractionSignal,
    NotificationItem,
    NotificationSource,
    PriorityTier,
    Relationship,
    TimingContext,
)
from .schedule import Digest, WindowStatus, generate_digest, get_window_status, should_batch_now
from .scoring import calculate_urgency, determine_tier
from .service import BrewEngine
from .taste import ScheduleWindow, TasteModel, UserTaste
from .timing import ActivityTracker, TimingPolicy, extract_page_topics

__all__ = [
    "ActivityState",
    "ActivityTracker",
    "Actor",
    "BatchMode",
    "BlendedNotification",
    "BrewEngine",
    "ContentType",
    "DeliveryDecision",
    "Digest",
    "DiscussionEvent",
    "DiscussionReplyEvent",
    "EventChannel",
    "InteractionAction",
    "InteractionSignal",
    "LearningSessionEvent",
    "MarketSignalEvent",
    "MenuStats",
    "NotificationItem",
    "NotificationMenu",
    "NotificationSource",
    "PriorityTier",
    "ProducerEvent",
    "RecognitionEvent",
    "Relationship",
    "ScheduleWindow",
    "SystemEvent",
    "TasteModel",
    "TimingContext",
    "TimingPolicy",
    "UserTaste",
    "WindowStatus",
    "blend_items",
    "calculate_urgency",
    "cluster_key",
    "decay_item",
    "determine_tier",
    "event_from_dict",
    "extract_page_topics",
    "freshness_decay",
    "generate_digest",
    "get_window_status",
    "should_batch_now",
]
