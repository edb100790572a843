"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Generic, List, Optional, TypeVar
from datetime import date as DateType, datetime

from .domain.models import Post, ResolvedLocation, SavedSearch, SearchPage, TrendingSearch, User


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


T = TypeVar("T")


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope shared by the search endpoints"""

    success: bool = True
    message: str
    data: T


# Request Schemas
class SaveSearchRequest(CamelModel):
    """Request to save (or overwrite) a named search"""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    query: Optional[str] = Field(None, max_length=200)
    filters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Search name is required")
        return v

    @field_validator("filters", mode="before")
    @classmethod
    def default_filters(cls, v):
        return {} if v is None else v


# Response Schemas
class AuthorInfo(CamelModel):
    """Minimal author projection"""

    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class PostLocation(CamelModel):
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PostResponse(CamelModel):
    """Post as returned by the feed and by search"""

    id: int
    title: Optional[str] = None
    content: str
    post_type: str
    priority: str
    is_emergency: bool
    is_resolved: bool
    location: PostLocation
    images: List[str] = []
    tags: List[str] = []
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[AuthorInfo] = None
    distance_miles: float = 0.0
    comment_count: int = 0
    reaction_count: int = 0
    match_score: float = 1.0

    @classmethod
    def from_post(cls, post: Post) -> "PostResponse":
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            post_type=post.post_type,
            priority=post.priority,
            is_emergency=post.is_emergency,
            is_resolved=post.is_resolved,
            location=PostLocation(
                city=post.location_city,
                state=post.location_state,
                county=post.location_county,
                latitude=post.latitude,
                longitude=post.longitude,
            ),
            images=post.images,
            tags=post.tags,
            expires_at=post.expires_at,
            created_at=post.created_at,
            updated_at=post.updated_at,
            author=AuthorInfo.model_validate(post.author) if post.author else None,
            distance_miles=round(post.distance_miles, 2),
            comment_count=post.comment_count,
            reaction_count=post.reaction_count,
            match_score=post.match_score,
        )


class LocationInfo(CamelModel):
    """Resolved location of the caller"""

    mode: str
    city: Optional[str] = None
    state: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_miles: Optional[float] = None

    @classmethod
    def from_location(cls, location: ResolvedLocation) -> "LocationInfo":
        return cls(
            mode=location.mode.value,
            city=location.city,
            state=location.state,
            latitude=location.latitude,
            longitude=location.longitude,
            radius_miles=location.radius_miles,
        )


class Pagination(CamelModel):
    limit: int
    offset: int
    total: int


class NearbyPostsResponse(CamelModel):
    """Response for the location-scoped feed"""

    posts: List[PostResponse]
    pagination: Pagination
    location: LocationInfo


class SearchMeta(CamelModel):
    query: Optional[str] = None
    filters: Dict[str, Any]
    result_count: int
    execution_time: int
    has_more: bool


class SearchResponse(CamelModel):
    """Ranked search page with its metadata"""

    posts: List[PostResponse]
    meta: SearchMeta

    @classmethod
    def from_page(cls, page: SearchPage) -> "SearchResponse":
        return cls(
            posts=[PostResponse.from_post(post) for post in page.posts],
            meta=SearchMeta(
                query=page.filters.text,
                filters=page.filters.snapshot(),
                result_count=len(page.posts),
                execution_time=page.execution_time_ms,
                has_more=page.has_more,
            ),
        )


class SuggestionItem(CamelModel):
    suggestion_text: str
    suggestion_type: str
    category: Optional[str] = None
    search_count: int = 0


class SuggestionsResponse(CamelModel):
    """Autocomplete suggestions plus popular terms"""

    suggestions: List[SuggestionItem]
    popular: List[str]
    query: str


class TrendingItem(CamelModel):
    term: str
    category: Optional[str] = None
    search_count: int = 0
    trend_score: float = 0.0
    sentiment: Optional[str] = None

    @classmethod
    def from_trending(cls, row: TrendingSearch) -> "TrendingItem":
        return cls(
            term=row.search_term,
            category=row.category,
            search_count=row.search_count,
            trend_score=float(row.trend_score or 0.0),
            sentiment=row.sentiment,
        )


class ScopeInfo(CamelModel):
    city: Optional[str] = None
    state: Optional[str] = None


class TrendingResponse(CamelModel):
    """Trending searches for a scope"""

    trending: List[TrendingItem]
    location: ScopeInfo
    generated_at: datetime


class SavedSearchCreated(CamelModel):
    id: int
    name: str
    created_at: Optional[datetime] = None


class NotificationSettings(CamelModel):
    enabled: bool
    frequency: str


class SavedSearchStats(CamelModel):
    total_results: int
    last_result_count: int
    last_executed: Optional[datetime] = None


class SavedSearchResponse(CamelModel):
    """Saved search with notification preferences and run statistics"""

    id: int
    name: str
    description: Optional[str] = None
    query: Optional[str] = None
    filters: Dict[str, Any]
    notifications: NotificationSettings
    stats: SavedSearchStats
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_saved_search(cls, saved: SavedSearch) -> "SavedSearchResponse":
        return cls(
            id=saved.id,
            name=saved.name,
            description=saved.description,
            query=saved.query_text,
            filters=saved.filters or {},
            notifications=NotificationSettings(
                enabled=saved.notify_new_results,
                frequency=saved.notification_frequency,
            ),
            stats=SavedSearchStats(
                total_results=saved.total_results,
                last_result_count=saved.last_result_count,
                last_executed=saved.last_executed,
            ),
            created_at=saved.created_at,
            updated_at=saved.updated_at,
        )


class UserSearchResult(CamelModel):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    location: ScopeInfo
    match_score: float = 1.0

    @classmethod
    def from_user(cls, user: User) -> "UserSearchResult":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_image=user.profile_image_url,
            bio=user.bio,
            location=ScopeInfo(city=user.location_city, state=user.address_state),
        )


class PopularTerm(CamelModel):
    query_text: str
    search_count: int
    avg_results: Optional[float] = None
    unique_users: int


class VolumeBucket(CamelModel):
    date: DateType
    search_count: int
    unique_users: int
    avg_results: Optional[float] = None


class NoResultQuery(CamelModel):
    query_text: str
    frequency: int


class AnalyticsResponse(CamelModel):
    """Search analytics over a trailing window"""

    popular_terms: List[PopularTerm]
    search_volume: List[VolumeBucket]
    no_results_queries: List[NoResultQuery]
    period: str
    location: ScopeInfo


class HealthResponse(BaseModel):
    """Health check response"""

    status: str
    service: str
    version: str
    datastore: str


class UserSearchResponse(CamelModel):
    users: List[UserSearchResult]
    query: str
    result_count: int


class SavedSearchList(CamelModel):
    saved_searches: List[SavedSearchResponse]
    count: int


class SavedSearchEnvelope(CamelModel):
    saved_search: SavedSearchCreated


class DeletedSavedSearch(CamelModel):
    name: str
