"""
Application services - post search, autocomplete, trending and saved searches
"""
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging
import time

from ..cache import RedisCache
from ..config import settings
from ..domain.filters import (
    MAX_CITY_LENGTH,
    MAX_QUERY_LENGTH,
    MAX_STATE_LENGTH,
    build_search_filters,
    parse_int,
)
from ..domain.models import SearchFilters, SearchPage
from ..domain.repositories import (
    IPostRepository,
    ISavedSearchRepository,
    ISearchLogRepository,
    IUserRepository,
)
from ..exceptions import NotFoundError, ValidationError
from ..schemas import (
    AnalyticsResponse,
    SavedSearchCreated,
    SavedSearchResponse,
    SaveSearchRequest,
    ScopeInfo,
    SearchResponse,
    SuggestionItem,
    SuggestionsResponse,
    TrendingItem,
    TrendingResponse,
    UserSearchResult,
)
from .telemetry import SearchTelemetry

logger = logging.getLogger(__name__)

MAX_SUGGESTION_QUERY_LENGTH = 100
MIN_USER_QUERY_LENGTH = 2

# Schedules a coroutine function to run after the response, e.g. BackgroundTasks.add_task
Scheduler = Callable[..., Any]


class SearchService:
    """Business logic for search and saved searches"""

    def __init__(
        self,
        user_repository: IUserRepository,
        post_repository: IPostRepository,
        search_log_repository: ISearchLogRepository,
        saved_search_repository: ISavedSearchRepository,
        telemetry: SearchTelemetry,
        cache: Optional[RedisCache] = None,
        schedule: Optional[Scheduler] = None,
    ):
        self.user_repo = user_repository
        self.post_repo = post_repository
        self.log_repo = search_log_repository
        self.saved_repo = saved_search_repository
        self.telemetry = telemetry
        self.cache = cache
        self.schedule = schedule

    async def _dispatch(self, func: Callable[..., Awaitable[None]], *args) -> None:
        """Hand telemetry to the scheduler, or run it inline when there is none"""
        if self.schedule is not None:
            self.schedule(func, *args)
        else:
            await func(*args)

    async def _fill_scope_from_user(self, user_id: Optional[int], filters: SearchFilters) -> None:
        if user_id is None or (filters.city and filters.state):
            return
        user = await self.user_repo.find_by_id(user_id)
        if user is None:
            return
        filters.city = filters.city or user.location_city
        filters.state = filters.state or user.address_state

    async def _run(self, filters: SearchFilters, user_id: Optional[int]) -> SearchPage:
        started = time.perf_counter()
        posts = await self.post_repo.search(filters)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        page = SearchPage(posts=posts, filters=filters, execution_time_ms=elapsed_ms)
        logger.debug(
            f"Search {filters.text!r} returned {len(posts)} posts in {elapsed_ms}ms"
        )

        await self._dispatch(
            self.telemetry.record_search, user_id, filters, len(posts), elapsed_ms
        )
        return page

    async def search_posts(
        self, filters: SearchFilters, user_id: Optional[int] = None
    ) -> SearchResponse:
        """
        Run a filtered post search

        Missing city/state are taken from the caller's profile. The query is
        recorded for telemetry without blocking the response.
        """
        await self._fill_scope_from_user(user_id, filters)
        page = await self._run(filters, user_id)
        return SearchResponse.from_page(page)

    async def get_suggestions(
        self,
        query: Optional[str],
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: Any = 10,
    ) -> SuggestionsResponse:
        """Autocomplete suggestions plus popular terms for the scope"""
        text = (query or "").strip()
        if len(text) > MAX_SUGGESTION_QUERY_LENGTH:
            raise ValidationError.for_field(
                "q", f"Query must be between 2 and {MAX_SUGGESTION_QUERY_LENGTH} characters"
            )
        if len(text) < settings.SUGGESTION_MIN_QUERY_LENGTH:
            return SuggestionsResponse(suggestions=[], popular=[], query=text)

        limit = min(max(parse_int(limit, 10), 1), settings.MAX_PAGE_SIZE)

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.suggestions_key(text, city, state, limit)
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return SuggestionsResponse(query=text, **cached)

        suggestions = await self.log_repo.find_suggestions(text, city, state, limit)
        popular = await self.log_repo.find_popular_terms(
            city,
            state,
            settings.POPULAR_TERMS_MIN_COUNT,
            settings.POPULAR_TERMS_WINDOW_DAYS,
            settings.POPULAR_TERMS_LIMIT,
        )

        response = SuggestionsResponse(
            suggestions=[SuggestionItem.model_validate(s) for s in suggestions],
            popular=popular,
            query=text,
        )

        if cache_key is not None:
            await self.cache.set(
                cache_key,
                response.model_dump(include={"suggestions", "popular"}),
                settings.CACHE_TTL_SUGGESTIONS,
            )
        return response

    async def get_trending(
        self,
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: Any = 10,
        user_id: Optional[int] = None,
    ) -> TrendingResponse:
        """Trending searches, scoped by the caller's profile when no scope is given"""
        if (not city or not state) and user_id is not None:
            user = await self.user_repo.find_by_id(user_id)
            if user is not None:
                city = city or user.location_city
                state = state or user.address_state

        limit = min(max(parse_int(limit, 10), 1), settings.MAX_PAGE_SIZE)
        location = ScopeInfo(city=city, state=state)

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.trending_key(city, state, limit)
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return TrendingResponse(
                    trending=cached,
                    location=location,
                    generated_at=datetime.now(timezone.utc),
                )

        rows = await self.log_repo.find_trending(city, state, limit)
        trending = [TrendingItem.from_trending(row) for row in rows]

        if cache_key is not None:
            await self.cache.set(
                cache_key,
                [item.model_dump() for item in trending],
                settings.CACHE_TTL_TRENDING,
            )

        return TrendingResponse(
            trending=trending,
            location=location,
            generated_at=datetime.now(timezone.utc),
        )

    async def save_search(self, user_id: int, request: SaveSearchRequest) -> SavedSearchCreated:
        """
        Save a named search; the same name overwrites the earlier definition

        Raises:
            ValidationError: If the filters snapshot would not run as a search
        """
        build_search_filters(
            {"query": request.query, **request.filters},
            settings.DEFAULT_PAGE_SIZE,
            settings.MAX_PAGE_SIZE,
            field_prefix="filters",
        )
        saved = await self.saved_repo.save(
            user_id,
            request.name,
            request.description,
            request.query,
            request.filters,
        )
        logger.info(f"User {user_id} saved search {saved.id} ({saved.name!r})")
        return SavedSearchCreated(id=saved.id, name=saved.name, created_at=saved.created_at)

    async def list_saved_searches(self, user_id: int) -> List[SavedSearchResponse]:
        """Get the caller's active saved searches"""
        rows = await self.saved_repo.list_active(user_id)
        return [SavedSearchResponse.from_saved_search(row) for row in rows]

    async def execute_saved_search(self, user_id: int, saved_search_id: int) -> SearchResponse:
        """
        Re-run a saved search and update its statistics

        Raises:
            NotFoundError: If the search is unknown, soft-deleted or owned by someone else
        """
        saved = await self.saved_repo.find_active(saved_search_id, user_id)
        if saved is None:
            raise NotFoundError("Saved search not found")

        raw: Dict[str, Any] = {"query": saved.query_text}
        raw.update(saved.filters or {})
        filters = build_search_filters(
            raw, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE, field_prefix="filters"
        )

        page = await self._run(filters, user_id)
        await self.saved_repo.record_execution(saved.id, len(page.posts))
        return SearchResponse.from_page(page)

    async def delete_saved_search(self, user_id: int, saved_search_id: int) -> str:
        """Soft-delete a saved search and return its name"""
        name = await self.saved_repo.deactivate(saved_search_id, user_id)
        if name is None:
            raise NotFoundError("Saved search not found")
        logger.info(f"User {user_id} deleted saved search {saved_search_id}")
        return name

    async def search_users(
        self,
        query: Optional[str],
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: Any = 10,
    ) -> List[UserSearchResult]:
        """Active users whose name or bio contains the query"""
        text = (query or "").strip()
        if len(text) < MIN_USER_QUERY_LENGTH:
            return []
        errors = []
        if len(text) > MAX_QUERY_LENGTH:
            errors.append({"field": "q", "message": f"Query must be less than {MAX_QUERY_LENGTH} characters"})
        if city and len(city) > MAX_CITY_LENGTH:
            errors.append({"field": "city", "message": f"City must be less than {MAX_CITY_LENGTH} characters"})
        if state and len(state) > MAX_STATE_LENGTH:
            errors.append({"field": "state", "message": f"State must be less than {MAX_STATE_LENGTH} characters"})
        if errors:
            raise ValidationError("Validation failed", errors)

        limit = min(max(parse_int(limit, 10), 1), settings.MAX_PAGE_SIZE)
        users = await self.user_repo.search(text, city or None, state or None, limit)
        return [UserSearchResult.from_user(user) for user in users]

    async def get_analytics(
        self,
        city: Optional[str] = None,
        state: Optional[str] = None,
        days: Any = 7,
    ) -> AnalyticsResponse:
        """Search analytics over the trailing window of days"""
        days = min(max(parse_int(days, 7), 1), settings.ANALYTICS_MAX_DAYS)
        data = await self.log_repo.analytics(city or None, state or None, days)
        return AnalyticsResponse(
            popular_terms=data["popular_terms"],
            search_volume=data["search_volume"],
            no_results_queries=data["no_results"],
            period=f"{days} days",
            location=ScopeInfo(city=city, state=state),
        )
