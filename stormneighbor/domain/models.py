"""
Domain models - Core business entities
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class PostType(str, Enum):
    """Community post categories"""
    HELP_REQUEST = "help_request"
    HELP_OFFER = "help_offer"
    LOST_FOUND = "lost_found"
    SAFETY_ALERT = "safety_alert"
    GENERAL = "general"


class Priority(str, Enum):
    """Post priority, ranked urgent > high > normal > low"""
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class ResolvedFilter(str, Enum):
    """Resolution state filter for search"""
    ALL = "all"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class SortBy(str, Enum):
    """Search ordering modes"""
    RELEVANCE = "relevance"
    DATE = "date"
    POPULARITY = "popularity"


class LocationMode(str, Enum):
    """How a caller's feed is scoped"""
    GEOGRAPHIC = "geographic"
    CITY = "city"
    ALL = "all"


@dataclass
class User:
    """User record as seen by this service (read-only)"""
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool = True
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_city: Optional[str] = None
    address_state: Optional[str] = None
    location_radius_miles: Optional[float] = None
    show_city_only: bool = False

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class ResolvedLocation:
    """Effective origin and scope for a nearby-post query"""
    mode: LocationMode
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_miles: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None


@dataclass
class PostAuthor:
    """Minimal author projection used for display"""
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


@dataclass
class Post:
    """Community post with the derived fields a query may attach"""
    id: int
    user_id: int
    content: str
    post_type: str
    title: Optional[str] = None
    priority: str = Priority.NORMAL.value
    is_emergency: bool = False
    is_resolved: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_city: Optional[str] = None
    location_state: Optional[str] = None
    location_county: Optional[str] = None
    images: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[PostAuthor] = None
    distance_miles: float = 0.0
    comment_count: int = 0
    reaction_count: int = 0
    match_score: float = 1.0

    @property
    def has_point(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def is_active(self, now: datetime) -> bool:
        """A post stays active until its expiration timestamp passes"""
        return self.expires_at is None or self.expires_at > now

    @property
    def popularity(self) -> int:
        return self.comment_count + self.reaction_count


@dataclass
class SearchFilters:
    """Free-text query plus structured filters for post search"""
    query: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    post_types: Optional[List[str]] = None
    priorities: Optional[List[str]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    emergency_only: bool = False
    resolved: ResolvedFilter = ResolvedFilter.ALL
    sort_by: SortBy = SortBy.RELEVANCE
    limit: int = 20
    offset: int = 0

    @property
    def text(self) -> Optional[str]:
        """Trimmed free text, None when blank"""
        if self.query is None:
            return None
        stripped = self.query.strip()
        return stripped or None

    def snapshot(self) -> Dict[str, Any]:
        """Serializable filter snapshot, keyed the way clients send filters"""
        return {
            "query": self.query,
            "city": self.city,
            "state": self.state,
            "postTypes": self.post_types,
            "priorities": self.priorities,
            "dateFrom": self.date_from.isoformat() if self.date_from else None,
            "dateTo": self.date_to.isoformat() if self.date_to else None,
            "emergencyOnly": self.emergency_only,
            "resolvedFilter": self.resolved.value,
            "sortBy": self.sort_by.value,
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass
class SearchPage:
    """One page of search results with its execution metadata"""
    posts: List[Post]
    filters: SearchFilters
    execution_time_ms: int

    @property
    def has_more(self) -> bool:
        # Approximate: a full page is assumed to have a successor
        return len(self.posts) == self.filters.limit


@dataclass
class SearchQueryLog:
    """Append-only record of one identified search"""
    id: int
    user_id: Optional[int]
    query_text: Optional[str]
    filters: Dict[str, Any]
    search_city: Optional[str] = None
    search_state: Optional[str] = None
    results_count: Optional[int] = None
    execution_time_ms: Optional[int] = None
    source: str = "manual"
    created_at: Optional[datetime] = None


@dataclass
class SearchSuggestion:
    """Aggregate keyed by (text, type, city, state)"""
    suggestion_text: str
    suggestion_type: str = "query"
    category: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    search_count: int = 0
    result_count: float = 0.0
    click_through_rate: float = 0.0
    is_approved: bool = True
    updated_at: Optional[datetime] = None


@dataclass
class TrendingSearch:
    """Trending aggregate produced by an external batch process"""
    search_term: str
    category: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    search_count: int = 0
    trend_score: float = 0.0
    sentiment: Optional[str] = None
    is_trending: bool = False
    created_at: Optional[datetime] = None


@dataclass
class SavedSearch:
    """A user's named, re-runnable search"""
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    query_text: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    notify_new_results: bool = False
    notification_frequency: str = "daily"
    total_results: int = 0
    last_result_count: int = 0
    last_executed: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
