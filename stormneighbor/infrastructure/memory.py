"""
In-memory repositories

Evaluates the same filters and orderings as the SQL repositories, in
Python, with the haversine primitive standing in for a geographic
predicate. Used for DATASTORE=memory and in tests.
"""
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import copy
import itertools

from ..domain.geo import haversine_miles, within_radius
from ..domain.models import (
    LocationMode,
    Post,
    PostAuthor,
    ResolvedFilter,
    ResolvedLocation,
    SavedSearch,
    SearchFilters,
    SearchQueryLog,
    SearchSuggestion,
    SortBy,
    TrendingSearch,
    User,
)
from ..domain.ranking import date_key, nearby_key, popularity_key, relevance_key
from ..domain.repositories import (
    IPostRepository,
    ISavedSearchRepository,
    ISearchLogRepository,
    IUserRepository,
)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _contains(haystack: Optional[str], needle: str) -> bool:
    return haystack is not None and needle.casefold() in haystack.casefold()


def _same_text(left: Optional[str], right: str) -> bool:
    return left is not None and left.casefold() == right.casefold()


def _in_scope(value: Optional[str], wanted: Optional[str]) -> bool:
    """Unscoped rows match every scope; a missing scope matches every row"""
    return wanted is None or value is None or value == wanted


class MemoryStore:
    """Process-local tables shared by the in-memory repositories"""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self.users: Dict[int, User] = {}
        self.posts: Dict[int, Post] = {}
        self.search_queries: List[SearchQueryLog] = []
        self.suggestions: Dict[Tuple[str, str, str, str], SearchSuggestion] = {}
        self.trending: List[TrendingSearch] = []
        self.saved_searches: Dict[int, SavedSearch] = {}
        self._ids = defaultdict(lambda: itertools.count(1))

    def next_id(self, table: str) -> int:
        return next(self._ids[table])

    def now(self) -> datetime:
        return _aware(self.clock())

    def add_user(self, user: User) -> User:
        self.users[user.id] = user
        return user

    def add_post(self, post: Post) -> Post:
        if post.created_at is None:
            post.created_at = self.now()
        post.created_at = _aware(post.created_at)
        post.expires_at = _aware(post.expires_at)
        self.posts[post.id] = post
        return post

    def add_trending(self, row: TrendingSearch) -> TrendingSearch:
        if row.created_at is None:
            row.created_at = self.now()
        self.trending.append(row)
        return row

    def add_suggestion(self, suggestion: SearchSuggestion) -> SearchSuggestion:
        key = (
            suggestion.suggestion_text,
            suggestion.suggestion_type,
            suggestion.city or "",
            suggestion.state or "",
        )
        self.suggestions[key] = suggestion
        return suggestion

    def author_of(self, post: Post) -> Optional[PostAuthor]:
        user = self.users.get(post.user_id)
        if user is None:
            return None
        return PostAuthor(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_image_url=user.profile_image_url,
        )


class MemoryUserRepository(IUserRepository):
    """User repository over a MemoryStore"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Find user by ID"""
        user = self.store.users.get(user_id)
        return copy.copy(user) if user else None

    async def search(
        self,
        query: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: int = 10,
    ) -> List[User]:
        matches = [
            copy.copy(user)
            for user in self.store.users.values()
            if user.is_active
            and (
                _contains(user.first_name, query)
                or _contains(user.last_name, query)
                or _contains(user.bio, query)
            )
            and (city is None or user.location_city == city)
            and (state is None or user.address_state == state)
        ]
        matches.sort(key=lambda u: (u.first_name or "", u.last_name or ""))
        return matches[:limit]


class MemoryPostRepository(IPostRepository):
    """Post repository over a MemoryStore"""

    def __init__(self, store: MemoryStore):
        self.store = store

    def _active_posts(self) -> List[Post]:
        now = self.store.now()
        return [post for post in self.store.posts.values() if post.is_active(now)]

    def _project(self, post: Post, **changes) -> Post:
        return replace(post, author=self.store.author_of(post), **changes)

    async def find_nearby(
        self, location: ResolvedLocation, limit: int, offset: int
    ) -> List[Post]:
        """Active posts visible from a resolved location, ranked"""
        geographic = location.mode == LocationMode.GEOGRAPHIC
        results = []
        for post in self._active_posts():
            distance = 0.0
            if geographic:
                if post.has_point:
                    if not within_radius(
                        location.latitude,
                        location.longitude,
                        post.latitude,
                        post.longitude,
                        location.radius_miles,
                    ):
                        continue
                    distance = haversine_miles(
                        location.latitude, location.longitude, post.latitude, post.longitude
                    )
            elif location.mode == LocationMode.CITY:
                if post.location_city != location.city:
                    continue
                if location.state and post.location_state != location.state:
                    continue
            results.append(self._project(post, distance_miles=distance))

        results.sort(key=lambda post: nearby_key(post, geographic))
        return results[offset:offset + limit]

    def _matches(self, post: Post, filters: SearchFilters) -> bool:
        author = self.store.users.get(post.user_id)
        if author is None or not author.is_active:
            return False
        text = filters.text
        if text and not (_contains(post.title, text) or _contains(post.content, text)):
            return False
        if filters.city and not _same_text(post.location_city, filters.city):
            return False
        if filters.state and not _same_text(post.location_state, filters.state):
            return False
        if filters.post_types and post.post_type not in filters.post_types:
            return False
        if filters.priorities and post.priority not in filters.priorities:
            return False
        if filters.date_from and (post.created_at is None or post.created_at < filters.date_from):
            return False
        if filters.date_to and (post.created_at is None or post.created_at > filters.date_to):
            return False
        if filters.emergency_only and not post.is_emergency:
            return False
        if filters.resolved == ResolvedFilter.RESOLVED and not post.is_resolved:
            return False
        if filters.resolved == ResolvedFilter.UNRESOLVED and post.is_resolved:
            return False
        return True

    async def search(self, filters: SearchFilters) -> List[Post]:
        """Active posts of active authors matching the filters, ranked"""
        results = [
            self._project(post, match_score=1.0)
            for post in self._active_posts()
            if self._matches(post, filters)
        ]
        if filters.sort_by == SortBy.POPULARITY:
            results.sort(key=popularity_key)
        elif filters.sort_by == SortBy.DATE:
            results.sort(key=date_key)
        else:
            results.sort(key=relevance_key)
        return results[filters.offset:filters.offset + filters.limit]


class MemorySearchLogRepository(ISearchLogRepository):
    """Search telemetry repository over a MemoryStore"""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def log_query(
        self,
        user_id: int,
        query_text: Optional[str],
        filters: Dict[str, Any],
        city: Optional[str],
        state: Optional[str],
    ) -> None:
        self.store.search_queries.append(
            SearchQueryLog(
                id=self.store.next_id("search_queries"),
                user_id=user_id,
                query_text=query_text,
                filters=copy.deepcopy(filters),
                search_city=city,
                search_state=state,
                created_at=self.store.now(),
            )
        )

    async def backfill_stats(
        self,
        user_id: int,
        query_text: str,
        result_count: int,
        execution_time_ms: int,
        window_seconds: int,
    ) -> bool:
        cutoff = self.store.now() - timedelta(seconds=window_seconds)
        candidates = [
            row
            for row in self.store.search_queries
            if row.user_id == user_id
            and row.query_text == query_text
            and row.created_at >= cutoff
        ]
        if not candidates:
            return False
        newest = max(candidates, key=lambda row: (row.created_at, row.id))
        newest.results_count = result_count
        newest.execution_time_ms = execution_time_ms
        return True

    async def upsert_suggestion(self, query_text: str, result_count: int) -> None:
        key = (query_text, "query", "", "")
        existing = self.store.suggestions.get(key)
        if existing is None:
            self.store.suggestions[key] = SearchSuggestion(
                suggestion_text=query_text,
                search_count=1,
                result_count=float(result_count),
                updated_at=self.store.now(),
            )
            return
        existing.search_count += 1
        existing.result_count = (existing.result_count + result_count) / 2
        existing.updated_at = self.store.now()

    async def find_suggestions(
        self,
        prefix: str,
        city: Optional[str],
        state: Optional[str],
        limit: int,
    ) -> List[SearchSuggestion]:
        wanted = prefix.casefold()
        matches = [
            copy.copy(s)
            for s in self.store.suggestions.values()
            if s.is_approved
            and s.suggestion_text.casefold().startswith(wanted)
            and _in_scope(s.city, city)
            and _in_scope(s.state, state)
        ]
        matches.sort(key=lambda s: (-s.search_count, -s.click_through_rate))
        return matches[:limit]

    async def find_popular_terms(
        self,
        city: Optional[str],
        state: Optional[str],
        min_count: int,
        window_days: int,
        limit: int,
    ) -> List[str]:
        cutoff = self.store.now() - timedelta(days=window_days)
        best: Dict[str, int] = {}
        for row in self.store.trending:
            if (
                row.search_count > min_count
                and _in_scope(row.city, city)
                and _in_scope(row.state, state)
                and _aware(row.created_at) >= cutoff
            ):
                best[row.search_term] = max(best.get(row.search_term, 0), row.search_count)
        ranked = sorted(best.items(), key=lambda item: -item[1])
        return [term for term, _ in ranked[:limit]]

    async def find_trending(
        self, city: Optional[str], state: Optional[str], limit: int
    ) -> List[TrendingSearch]:
        rows = [
            copy.copy(row)
            for row in self.store.trending
            if row.is_trending and _in_scope(row.city, city) and _in_scope(row.state, state)
        ]
        rows.sort(key=lambda row: (-row.trend_score, -row.search_count))
        return rows[:limit]

    async def analytics(
        self, city: Optional[str], state: Optional[str], days: int
    ) -> Dict[str, List[Dict[str, Any]]]:
        cutoff = self.store.now() - timedelta(days=days)
        rows = [
            row
            for row in self.store.search_queries
            if row.created_at >= cutoff
            and (city is None or row.search_city == city)
            and (state is None or row.search_state == state)
        ]

        def average(values: List[Optional[int]]) -> Optional[float]:
            known = [v for v in values if v is not None]
            return sum(known) / len(known) if known else None

        by_text: Dict[str, List[SearchQueryLog]] = defaultdict(list)
        for row in rows:
            if row.query_text:
                by_text[row.query_text].append(row)
        popular = [
            {
                "query_text": text,
                "search_count": len(group),
                "avg_results": average([r.results_count for r in group]),
                "unique_users": len({r.user_id for r in group if r.user_id is not None}),
            }
            for text, group in by_text.items()
            if len(group) > 1
        ]
        popular.sort(key=lambda entry: -entry["search_count"])

        by_day: Dict[Any, List[SearchQueryLog]] = defaultdict(list)
        for row in rows:
            by_day[row.created_at.date()].append(row)
        volume = [
            {
                "date": day,
                "search_count": len(group),
                "unique_users": len({r.user_id for r in group if r.user_id is not None}),
                "avg_results": average([r.results_count for r in group]),
            }
            for day, group in by_day.items()
        ]
        volume.sort(key=lambda entry: entry["date"], reverse=True)

        zero: Dict[str, int] = defaultdict(int)
        for row in rows:
            if row.results_count == 0 and row.query_text is not None:
                zero[row.query_text] += 1
        no_results = [
            {"query_text": text, "frequency": count}
            for text, count in sorted(zero.items(), key=lambda item: -item[1])
        ]

        return {
            "popular_terms": popular[:20],
            "search_volume": volume,
            "no_results": no_results[:10],
        }


class MemorySavedSearchRepository(ISavedSearchRepository):
    """Saved search repository over a MemoryStore"""

    def __init__(self, store: MemoryStore):
        self.store = store

    def _find_by_name(self, user_id: int, name: str) -> Optional[SavedSearch]:
        for saved in self.store.saved_searches.values():
            if saved.user_id == user_id and saved.name == name:
                return saved
        return None

    async def save(
        self,
        user_id: int,
        name: str,
        description: Optional[str],
        query_text: Optional[str],
        filters: Dict[str, Any],
    ) -> SavedSearch:
        now = self.store.now()
        saved = self._find_by_name(user_id, name)
        if saved is None:
            saved = SavedSearch(
                id=self.store.next_id("saved_searches"),
                user_id=user_id,
                name=name,
                created_at=now,
            )
            self.store.saved_searches[saved.id] = saved
        saved.description = description
        saved.query_text = query_text
        saved.filters = copy.deepcopy(filters)
        saved.is_active = True
        saved.updated_at = now
        return copy.deepcopy(saved)

    async def list_active(self, user_id: int) -> List[SavedSearch]:
        rows = [
            copy.deepcopy(saved)
            for saved in self.store.saved_searches.values()
            if saved.user_id == user_id and saved.is_active
        ]
        rows.sort(key=lambda saved: (saved.updated_at, saved.id), reverse=True)
        return rows

    async def find_active(self, saved_search_id: int, user_id: int) -> Optional[SavedSearch]:
        saved = self.store.saved_searches.get(saved_search_id)
        if saved is None or saved.user_id != user_id or not saved.is_active:
            return None
        return copy.deepcopy(saved)

    async def record_execution(self, saved_search_id: int, result_count: int) -> None:
        saved = self.store.saved_searches.get(saved_search_id)
        if saved is None:
            return
        now = self.store.now()
        saved.last_executed = now
        saved.last_result_count = result_count
        saved.total_results += result_count
        saved.updated_at = now

    async def deactivate(self, saved_search_id: int, user_id: int) -> Optional[str]:
        saved = self.store.saved_searches.get(saved_search_id)
        if saved is None or saved.user_id != user_id or not saved.is_active:
            return None
        saved.is_active = False
        saved.updated_at = self.store.now()
        return saved.name
