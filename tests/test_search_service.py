from datetime import timedelta

import pytest

from stormneighbor.application.search import SearchService
from stormneighbor.application.telemetry import SearchTelemetry
from stormneighbor.config import settings
from stormneighbor.domain.filters import build_search_filters
from stormneighbor.domain.models import SearchFilters, SearchSuggestion, SortBy, TrendingSearch
from stormneighbor.exceptions import ValidationError


class FailingLogRepository:
    """Telemetry sink whose every write fails"""

    def __init__(self):
        self.calls = []

    async def log_query(self, *args):
        self.calls.append("log_query")
        raise RuntimeError("search_queries unavailable")

    async def backfill_stats(self, *args):
        self.calls.append("backfill_stats")
        raise RuntimeError("search_queries unavailable")

    async def upsert_suggestion(self, *args):
        self.calls.append("upsert_suggestion")
        raise RuntimeError("search_suggestions unavailable")


class FakeCache:
    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl=300):
        self.data[key] = value

    def suggestions_key(self, query, city, state, limit):
        return f"s:{query}:{city}:{state}:{limit}"

    def trending_key(self, city, state, limit):
        return f"t:{city}:{state}:{limit}"


def make_service(repos, telemetry_repo=None, cache=None, schedule=None):
    telemetry = SearchTelemetry(telemetry_repo or repos.telemetry_logs)
    return SearchService(
        repos.users,
        repos.posts,
        repos.search_logs,
        repos.saved_searches,
        telemetry,
        cache=cache,
        schedule=schedule,
    )


@pytest.fixture
def service(repos):
    return make_service(repos)


@pytest.fixture
def neighbors(make_user):
    make_user(1, location_city="Austin", address_state="Texas")
    make_user(2, location_city="Austin", address_state="Texas")


@pytest.mark.asyncio
async def test_flood_emergency_search(service, neighbors, make_post):
    hit_title = make_post(user_id=2, title="FLOOD warning", is_emergency=True)
    hit_content = make_post(user_id=2, content="Water rising, flooding on 5th", is_emergency=True)
    make_post(user_id=2, title="Flood cleanup crew", is_emergency=False)
    make_post(user_id=2, title="Power outage", is_emergency=True)

    result = await service.search_posts(
        build_search_filters({"q": "flood", "emergencyOnly": "true"}), user_id=None
    )

    assert {p.id for p in result.posts} == {hit_title.id, hit_content.id}
    assert all(p.is_emergency for p in result.posts)
    assert all(p.match_score == 1.0 for p in result.posts)


@pytest.mark.asyncio
async def test_priority_then_emergency_ordering(service, neighbors, make_post):
    normal = make_post(user_id=2, priority="normal")
    urgent = make_post(user_id=2, priority="urgent", minutes_ago=10)
    high = make_post(user_id=2, priority="high")
    low_emergency = make_post(user_id=2, priority="low", is_emergency=True, minutes_ago=60)
    urgent_emergency = make_post(user_id=2, priority="urgent", is_emergency=True, minutes_ago=90)

    result = await service.search_posts(SearchFilters())

    assert [p.id for p in result.posts] == [
        urgent_emergency.id,
        low_emergency.id,
        urgent.id,
        high.id,
        normal.id,
    ]


@pytest.mark.asyncio
async def test_popularity_sort(service, neighbors, make_post):
    quiet_urgent = make_post(user_id=2, priority="urgent")
    busy = make_post(user_id=2, priority="low", comment_count=3, reaction_count=4)
    medium = make_post(user_id=2, priority="normal", reaction_count=2)

    result = await service.search_posts(SearchFilters(sort_by=SortBy.POPULARITY))

    assert [p.id for p in result.posts] == [busy.id, medium.id, quiet_urgent.id]
    assert result.posts[0].comment_count == 3


@pytest.mark.asyncio
async def test_date_sort_ignores_priority(service, neighbors, make_post):
    old_urgent = make_post(user_id=2, priority="urgent", is_emergency=True, minutes_ago=30)
    new_low = make_post(user_id=2, priority="low")

    result = await service.search_posts(SearchFilters(sort_by=SortBy.DATE))

    assert [p.id for p in result.posts] == [new_low.id, old_urgent.id]


@pytest.mark.asyncio
async def test_structured_filters_are_conjunctive(service, neighbors, make_post, clock):
    match = make_post(user_id=2, post_type="lost_found", priority="high", is_resolved=True)
    make_post(user_id=2, post_type="lost_found", priority="high", is_resolved=False)
    make_post(user_id=2, post_type="general", priority="high", is_resolved=True)
    make_post(user_id=2, post_type="lost_found", priority="low", is_resolved=True)
    make_post(user_id=2, post_type="lost_found", priority="high", is_resolved=True, minutes_ago=60 * 48)

    filters = build_search_filters(
        {
            "types": "lost_found",
            "priorities": "high,urgent",
            "resolved": "resolved",
            "dateFrom": (clock.now - timedelta(days=1)).isoformat(),
        }
    )
    result = await service.search_posts(filters)

    assert [p.id for p in result.posts] == [match.id]


@pytest.mark.asyncio
async def test_inactive_authors_and_expired_posts_are_hidden(service, make_user, make_post, clock):
    make_user(1)
    make_user(3, is_active=False)
    visible = make_post(user_id=1, title="storm")
    make_post(user_id=3, title="storm")
    make_post(user_id=1, title="storm", expires_at=clock.now - timedelta(seconds=1))

    result = await service.search_posts(SearchFilters(query="storm"))

    assert [p.id for p in result.posts] == [visible.id]


@pytest.mark.asyncio
async def test_has_more_is_page_full(service, neighbors, make_post):
    for i in range(3):
        make_post(user_id=2, minutes_ago=i)

    full = await service.search_posts(SearchFilters(limit=3))
    partial = await service.search_posts(SearchFilters(limit=5))

    assert full.meta.has_more is True
    assert partial.meta.has_more is False
    assert partial.meta.result_count == 3


@pytest.mark.asyncio
async def test_scope_is_filled_from_caller_profile(service, neighbors, make_user, make_post):
    make_user(9, location_city="Dallas", address_state="Texas")
    austin = make_post(user_id=2, location_city="Austin", location_state="Texas")
    make_post(user_id=9, location_city="Dallas", location_state="Texas")

    filters = SearchFilters()
    result = await service.search_posts(filters, user_id=1)

    assert [p.id for p in result.posts] == [austin.id]
    assert (filters.city, filters.state) == ("Austin", "Texas")


@pytest.mark.asyncio
async def test_telemetry_failure_does_not_fail_search(repos, neighbors, make_post):
    failing = FailingLogRepository()
    service = make_service(repos, telemetry_repo=failing)
    post = make_post(user_id=2, title="hail", location_city="Austin", location_state="Texas")

    result = await service.search_posts(SearchFilters(query="hail"), user_id=1)

    assert [p.id for p in result.posts] == [post.id]
    assert failing.calls == ["log_query", "backfill_stats", "upsert_suggestion"]


@pytest.mark.asyncio
async def test_telemetry_is_scheduled_not_awaited(repos, store, neighbors):
    scheduled = []
    service = make_service(repos, schedule=lambda func, *args: scheduled.append((func, args)))

    await service.search_posts(SearchFilters(query="ice"), user_id=1)

    assert len(scheduled) == 1
    assert store.search_queries == []

    func, args = scheduled[0]
    await func(*args)
    assert [q.query_text for q in store.search_queries] == ["ice"]


@pytest.mark.asyncio
async def test_identified_search_is_logged_with_stats(service, store, neighbors, make_post):
    make_post(user_id=2, title="tornado siren", location_city="Austin", location_state="Texas")

    await service.search_posts(SearchFilters(query="tornado"), user_id=1)

    [logged] = store.search_queries
    assert logged.user_id == 1
    assert logged.results_count == 1
    assert logged.execution_time_ms is not None
    assert logged.search_city == "Austin"
    assert logged.filters["query"] == "tornado"


@pytest.mark.asyncio
async def test_anonymous_search_is_not_logged(service, store, neighbors):
    await service.search_posts(SearchFilters(query="snow"), user_id=None)

    assert store.search_queries == []
    assert ("snow", "query", "", "") in store.suggestions


@pytest.mark.asyncio
async def test_suggestions_prefix_match_and_order(service, store):
    store.add_suggestion(SearchSuggestion("flood zone", search_count=2))
    store.add_suggestion(SearchSuggestion("Flooding", search_count=9))
    store.add_suggestion(SearchSuggestion("flood map", search_count=2, click_through_rate=0.5))
    store.add_suggestion(SearchSuggestion("flood hidden", search_count=50, is_approved=False))
    store.add_suggestion(SearchSuggestion("flash flood", search_count=40))
    store.add_suggestion(SearchSuggestion("flood dallas", search_count=30, city="Dallas"))
    store.add_trending(TrendingSearch("sandbags", search_count=12))
    store.add_trending(TrendingSearch("generators", search_count=30))
    store.add_trending(TrendingSearch("rare", search_count=5))

    result = await service.get_suggestions("FLOOD", city="Austin", state="Texas")

    assert [s.suggestion_text for s in result.suggestions] == ["Flooding", "flood map", "flood zone"]
    assert result.popular == ["generators", "sandbags"]
    assert result.query == "FLOOD"


@pytest.mark.asyncio
async def test_popular_terms_only_cover_recent_window(service, store, clock):
    window = timedelta(days=settings.POPULAR_TERMS_WINDOW_DAYS)
    store.add_suggestion(SearchSuggestion("flood", search_count=1))
    store.add_trending(TrendingSearch("sandbags", search_count=12))
    store.add_trending(
        TrendingSearch("old news", search_count=500, created_at=clock.now - window - timedelta(days=1))
    )
    store.add_trending(
        TrendingSearch("edge", search_count=20, created_at=clock.now - window + timedelta(hours=1))
    )

    result = await service.get_suggestions("flood")

    assert result.popular == ["edge", "sandbags"]


@pytest.mark.asyncio
async def test_short_suggestion_query_is_empty(service, store):
    store.add_suggestion(SearchSuggestion("flood"))

    result = await service.get_suggestions("f")

    assert result.suggestions == [] and result.popular == []


@pytest.mark.asyncio
async def test_long_suggestion_query_is_rejected(service):
    with pytest.raises(ValidationError):
        await service.get_suggestions("x" * 101)


@pytest.mark.asyncio
async def test_suggestions_are_cached(repos, store):
    cache = FakeCache()
    service = make_service(repos, cache=cache)
    store.add_suggestion(SearchSuggestion("wind", search_count=1))

    first = await service.get_suggestions("wi")
    store.suggestions.clear()
    second = await service.get_suggestions("wi")

    assert [s.suggestion_text for s in second.suggestions] == ["wind"]
    assert second == first


@pytest.mark.asyncio
async def test_trending_uses_caller_location(service, store, neighbors):
    store.add_trending(TrendingSearch("boil notice", city="Austin", is_trending=True, trend_score=2.0))
    store.add_trending(TrendingSearch("heat", is_trending=True, trend_score=5.0, search_count=1))
    store.add_trending(TrendingSearch("heat wave", is_trending=True, trend_score=5.0, search_count=8))
    store.add_trending(TrendingSearch("dallas only", city="Dallas", is_trending=True, trend_score=9.0))
    store.add_trending(TrendingSearch("stale", is_trending=False, trend_score=99.0))

    result = await service.get_trending(user_id=1)

    assert [t.term for t in result.trending] == ["heat wave", "heat", "boil notice"]
    assert (result.location.city, result.location.state) == ("Austin", "Texas")


@pytest.mark.asyncio
async def test_search_users(service, make_user):
    make_user(1, first_name="Maria", last_name="Lopez", location_city="Austin")
    make_user(2, first_name="Tom", last_name="Marion", location_city="Austin")
    make_user(3, first_name="Ann", bio="Retired marine biologist", location_city="Dallas")
    make_user(4, first_name="Mark", is_active=False)

    everyone = await service.search_users("mar")
    in_austin = await service.search_users("mar", city="Austin")

    assert [u.first_name for u in everyone] == ["Ann", "Maria", "Tom"]
    assert [u.id for u in in_austin] == [1, 2]
    assert await service.search_users("m") == []


@pytest.mark.asyncio
async def test_analytics(service, store, neighbors, make_post, clock):
    make_post(user_id=2, title="flood", location_city="Austin", location_state="Texas")
    for user_id in (1, 2):
        await service.search_posts(SearchFilters(query="flood"), user_id=user_id)
    await service.search_posts(SearchFilters(query="volcano"), user_id=1)
    clock.advance(days=10)
    await service.search_posts(SearchFilters(query="volcano"), user_id=2)

    recent = await service.get_analytics(days="3")
    everything = await service.get_analytics(days="30")

    assert recent.period == "3 days"
    assert [t.query_text for t in recent.popular_terms] == []
    assert [(q.query_text, q.frequency) for q in recent.no_results_queries] == [("volcano", 1)]

    [term] = [t for t in everything.popular_terms if t.query_text == "flood"]
    assert term.search_count == 2 and term.unique_users == 2 and term.avg_results == 1.0
    assert [(q.query_text, q.frequency) for q in everything.no_results_queries] == [("volcano", 2)]
    assert sum(bucket.search_count for bucket in everything.search_volume) == 4
