"""
Ordering rules shared by the nearby feed and search
"""
from datetime import datetime, timezone
from typing import Tuple

from .models import Post

PRIORITY_RANK = {
    "urgent": 1,
    "high": 2,
    "normal": 3,
    "low": 4,
}
UNKNOWN_PRIORITY_RANK = 5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def priority_rank(priority) -> int:
    """Rank of a priority tag; unrecognized values sort last"""
    return PRIORITY_RANK.get(priority, UNKNOWN_PRIORITY_RANK)


def _newest_first(created_at) -> float:
    if created_at is None:
        return float("inf")
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return -(created_at - _EPOCH).total_seconds()


def relevance_key(post: Post) -> Tuple:
    """Emergency first, then priority rank, then newest first"""
    return (
        0 if post.is_emergency else 1,
        priority_rank(post.priority),
        _newest_first(post.created_at),
    )


def nearby_key(post: Post, geographic: bool) -> Tuple:
    """Relevance ordering with distance ascending ahead of recency in geographic mode"""
    emergency, rank, recency = relevance_key(post)
    if geographic:
        return (emergency, rank, post.distance_miles, recency)
    return (emergency, rank, recency)


def popularity_key(post: Post) -> Tuple:
    """Most commented/reacted first, relevance ordering as tiebreak"""
    return (-post.popularity,) + relevance_key(post)


def date_key(post: Post) -> Tuple:
    return (_newest_first(post.created_at),)
