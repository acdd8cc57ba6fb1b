"""
Daily Brew - notification intelligence engine.

Decides, per user, what to show, how urgently, in what combined form, and
when. Events from heterogeneous producers are scored, weighted by learned
taste, decayed with age, blended into clusters, gated by ambient timing
context and summarized into digests.

Usage as library:
    from daily_brew import BrewEngine, RecognitionEvent

    engine = BrewEngine()
    engine.ingest(RecognitionEvent(id="r1", giver_name="Alice Smith", value="teamwork"))
    feed = engine.feed()

Usage as CLI:
    python -m daily_brew simulate fixtures/morning.yaml
    python -m daily_brew explain fixtures/morning.yaml
    python -m daily_brew taste show

Package structure:
    daily_brew/
    ├── core/           # Config, logging, errors, key-value persistence
    ├── engine/         # Scoring, decay, taste, blend, timing, schedule
    └── cli/            # Command implementations
"""

__version__ = "1.0.0"

from .engine import (
    BrewEngine,
    DiscussionEvent,
    DiscussionReplyEvent,
    EventChannel,
    LearningSessionEvent,
    MarketSignalEvent,
    NotificationItem,
    NotificationSource,
    PriorityTier,
    RecognitionEvent,
    SystemEvent,
)

__all__ = [
    "BrewEngine",
    "DiscussionEvent",
    "DiscussionReplyEvent",
    "EventChannel",
    "LearningSessionEvent",
    "MarketSignalEvent",
    "NotificationItem",
    "NotificationSource",
    "PriorityTier",
    "RecognitionEvent",
    "SystemEvent",
    "__version__",
]
