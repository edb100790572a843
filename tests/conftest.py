"""Shared fixtures: a frozen clock, an in-memory store and post/user factories."""

from datetime import datetime, timedelta, timezone

import pytest

from stormneighbor.dependencies import memory_repositories
from stormneighbor.domain.models import Post, User
from stormneighbor.infrastructure.memory import MemoryStore

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

AUSTIN = (30.2672, -97.7431)
ROUND_ROCK = (30.5083, -97.6789)  # ~17 miles north of Austin
DALLAS = (32.7767, -96.7970)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture
def repos(store):
    return memory_repositories(store)


@pytest.fixture
def make_user(store):
    def _make(user_id: int, **kwargs) -> User:
        kwargs.setdefault("first_name", f"User{user_id}")
        kwargs.setdefault("last_name", "Neighbor")
        return store.add_user(User(id=user_id, **kwargs))

    return _make


@pytest.fixture
def make_post(store, clock):
    def _make(user_id: int = 1, minutes_ago: int = 0, **kwargs) -> Post:
        kwargs.setdefault("content", "Something happened on our street")
        kwargs.setdefault("post_type", "general")
        kwargs.setdefault("created_at", clock.now - timedelta(minutes=minutes_ago))
        return store.add_post(Post(id=store.next_id("posts"), user_id=user_id, **kwargs))

    return _make
