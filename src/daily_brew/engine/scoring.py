"""
Urgency Scoring & Tiering.

Score = clamp(relationship_weight * content_weight + emergency_boost, 0, 100)

Pure and deterministic: identical inputs always yield identical scores.
"""

from __future__ import annotations

from typing import Any

from ..core.logging import get_logger
from .models import (
    ContentType,
    NotificationSource,
    PriorityTier,
    Relationship,
    clamp_score,
)

logger = get_logger(__name__)

RELATIONSHIP_WEIGHTS: dict[Relationship, float] = {
    Relationship.MANAGER: 1.5,
    Relationship.REPORT: 1.2,
    Relationship.PEER: 1.0,
    Relationship.SYSTEM: 0.8,
}

CONTENT_WEIGHTS: dict[ContentType, int] = {
    ContentType.MENTION: 50,
    ContentType.APPROVAL: 45,
    ContentType.DIRECT_MESSAGE: 40,
    ContentType.TOAST_RECEIVED: 30,
    ContentType.COMMENT: 20,
    ContentType.SYSTEM_UPDATE: 15,
    ContentType.LIKE: 5,
    ContentType.DEFAULT: 10,
}

EMERGENCY_BOOST = 50


def _parse_relationship(value: Relationship | str | None) -> Relationship:
    if isinstance(value, Relationship):
        return value
    try:
        return Relationship(str(value).lower())
    except ValueError:
        logger.warning("Unknown relationship %r, treating as peer", value)
        return Relationship.PEER


def _parse_content_type(value: ContentType | str | None) -> ContentType:
    if isinstance(value, ContentType):
        return value
    try:
        return ContentType(str(value).lower())
    except ValueError:
        # Unknown actions get the lowest-confidence weight
        return ContentType.DEFAULT


def calculate_urgency(
    content_type: ContentType | str | None,
    relationship: Relationship | str | None = Relationship.PEER,
    is_emergency: bool = False,
) -> int:
    """
    Compute the 0-100 urgency score for an event.

    Args:
        content_type: Semantic action (mention, approval, ...); unknown -> default
        relationship: Acting party relative to the user; unknown -> peer
        is_emergency: Adds a flat +50 boost

    Returns:
        Integer urgency score
    """
    user_weight = RELATIONSHIP_WEIGHTS[_parse_relationship(relationship)]
    content_weight = CONTENT_WEIGHTS[_parse_content_type(content_type)]
    boost = EMERGENCY_BOOST if is_emergency else 0

    return clamp_score(user_weight * content_weight + boost)


def determine_tier(score: float) -> PriorityTier:
    """critical >= 75, elevated >= 30, else ambient."""
    return PriorityTier.from_score(score)


def default_content_type(source: NotificationSource) -> ContentType:
    """Content type assumed when a producer sends no score hint."""
    if source == NotificationSource.RECOGNITION:
        return ContentType.TOAST_RECEIVED
    return ContentType.SYSTEM_UPDATE


def score_for_source(source: NotificationSource, hint: Any = None) -> int:
    """
    Resolve the base urgency of a producer item.

    A numeric pre-scored hint wins; otherwise the source's default content
    type is scored as coming from a peer.
    """
    if hint is not None:
        try:
            return clamp_score(float(hint))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric score hint %r for %s", hint, source.value)
    return calculate_urgency(default_content_type(source), Relationship.PEER)
