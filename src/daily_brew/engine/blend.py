"""
The Blend - Semantic Clustering.

Groups related items into one presented notification to reduce noise:
same source + same primary tag + same target = one cluster.

    "Alice liked your toast" + "Bob liked your toast" + "Carol liked your toast"
        -> "Alice, Bob +1 others liked"

Blending is a presentation-time reduction. Input items are never mutated and
stay individually addressable for read/dismiss.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import fields

from .models import Actor, BlendedNotification, NotificationItem, clamp_score

GENERAL_TOPIC = "general"
GLOBAL_TARGET = "global"
DEFAULT_ACTION = "interacted"

VOLUME_BONUS_PER_ITEM = 2
VOLUME_BONUS_CAP = 20


def cluster_key(item: NotificationItem) -> tuple[str, str, str]:
    """(source, primary topic, target) grouping key; independent of item order."""
    topic = item.primary_topic or GENERAL_TOPIC
    target = item.target_id or item.link or GLOBAL_TARGET
    return (item.source.value, topic, target)


def _recency_order(items: Iterable[NotificationItem]) -> list[NotificationItem]:
    """Newest first; ties broken by id so the order never depends on input order."""
    by_id = sorted(items, key=lambda i: i.id)
    return sorted(by_id, key=lambda i: i.timestamp, reverse=True)


def _unique_actors(items: Iterable[NotificationItem]) -> list[Actor]:
    seen: set[str] = set()
    actors = []
    for item in items:
        for actor in item.actors:
            if actor.name not in seen:
                seen.add(actor.name)
                actors.append(actor)
    return actors


def blended_title(primary: NotificationItem, actors: list[Actor]) -> str:
    """
    Build the title for a blended cluster.

    One actor keeps the full name, two are joined with "and", more collapse to
    "first, second +N others". The primary item's leading tag is appended
    as the shared action phrase.
    """
    if not actors:
        return primary.title

    names = [a.short_name for a in actors]
    if len(names) == 1:
        subject = actors[0].name
    elif len(names) == 2:
        subject = " and ".join(names)
    else:
        subject = f"{', '.join(names[:2])} +{len(names) - 2} others"

    action = primary.primary_topic or DEFAULT_ACTION
    return f"{subject} {action}"


def merge_cluster(items: list[NotificationItem]) -> BlendedNotification:
    """
    Merge two or more related items into a BlendedNotification.

    Score is the highest constituent score plus a volume bonus of
    min(2 * count, 20), clamped to 100.
    """
    ordered = _recency_order(items)
    primary = ordered[0]
    actors = _unique_actors(ordered)

    max_score = max(i.score for i in ordered)
    volume_bonus = min(len(ordered) * VOLUME_BONUS_PER_ITEM, VOLUME_BONUS_CAP)
    score = clamp_score(max_score + volume_bonus)

    values = {f.name: getattr(primary, f.name) for f in fields(NotificationItem)}
    values.update(
        actors=tuple(actors),
        id=f"blend:{primary.id}",
        title=blended_title(primary, actors),
        score=score,
        base_score=score,
        metadata=dict(primary.metadata),
        is_read=all(i.is_read for i in ordered),
    )

    return BlendedNotification(
        **values,
        blended_count=len(ordered),
        blended_actors=tuple(actors),
        original_items=tuple(ordered),
    )


def _rank_key(item: NotificationItem) -> tuple[int, float, str]:
    return (-item.score, -item.timestamp.timestamp(), item.id)


def blend_items(items: Iterable[NotificationItem]) -> list[NotificationItem]:
    """
    Reduce a working set to its presented form.

    Clusters with two or more members become one BlendedNotification;
    singletons pass through unchanged. The result is sorted by score
    (hottest first), then recency, then id.
    """
    clusters: dict[tuple[str, str, str], list[NotificationItem]] = {}
    for item in items:
        clusters.setdefault(cluster_key(item), []).append(item)

    result: list[NotificationItem] = []
    for members in clusters.values():
        if len(members) >= 2:
            result.append(merge_cluster(members))
        else:
            result.append(members[0])

    return sorted(result, key=_rank_key)
