"""
Freshness Decay.

News goes stale quickly; action items ripen. Critical items lose at most 10%
of their base score, everything else is divided by max(1, age_hours * 0.5).

Decay is always recomputed from the immutable base score and the absolute
event timestamp, so repeated ticks never compound.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime

from .models import (
    NotificationItem,
    PriorityTier,
    clamp_score,
    ensure_aware,
    utc_now,
)

CRITICAL_FLOOR = 0.9
CRITICAL_RATE_PER_HOUR = 0.01
STALE_RATE_PER_HOUR = 0.5


def age_hours(timestamp: datetime, now: datetime | None = None) -> float:
    """Hours elapsed since ``timestamp``; clock skew clamps to zero."""
    now = ensure_aware(now) if now is not None else utc_now()
    elapsed = (now - ensure_aware(timestamp)).total_seconds() / 3600.0
    return max(0.0, elapsed)


def freshness_decay(score: float, tier: PriorityTier, hours: float) -> int:
    """
    Apply the decay curve for ``tier`` to ``score`` at ``hours`` of age.

    Args:
        score: Undecayed base score
        tier: Tier that selects the curve (critical ripens, others stale)
        hours: Age in hours; negative values are treated as zero

    Returns:
        Decayed integer score
    """
    hours = max(0.0, hours)

    if tier == PriorityTier.CRITICAL:
        factor = max(CRITICAL_FLOOR, 1 - hours * CRITICAL_RATE_PER_HOUR)
        # Round up so the 0.9 x base floor holds on integers
        return clamp_score(math.ceil(score * factor - 1e-9))

    divisor = max(1.0, hours * STALE_RATE_PER_HOUR)
    return clamp_score(score / divisor)


def decay_item(item: NotificationItem, now: datetime | None = None) -> NotificationItem:
    """
    Return a copy of ``item`` with score recomputed from base score and age.

    The identifier and every other field are preserved.
    """
    base = item.base_score if item.base_score is not None else item.score
    decayed = freshness_decay(base, item.base_tier, age_hours(item.timestamp, now))
    return replace(item, score=decayed, base_score=base)
