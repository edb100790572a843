"""
Repository interfaces - Define contracts for data access
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import (
    Post,
    ResolvedLocation,
    SavedSearch,
    SearchFilters,
    SearchSuggestion,
    TrendingSearch,
    User,
)


class IUserRepository(ABC):
    """User repository interface"""

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Find user by ID"""
        pass

    @abstractmethod
    async def search(
        self,
        query: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: int = 10,
    ) -> List[User]:
        """Find active users whose name or bio contains the query"""
        pass


class IPostRepository(ABC):
    """Post repository interface"""

    @abstractmethod
    async def find_nearby(
        self, location: ResolvedLocation, limit: int, offset: int
    ) -> List[Post]:
        """Active posts visible from a resolved location, ranked"""
        pass

    @abstractmethod
    async def search(self, filters: SearchFilters) -> List[Post]:
        """Active posts of active authors matching the filters, ranked"""
        pass


class ISearchLogRepository(ABC):
    """Search telemetry repository interface"""

    @abstractmethod
    async def log_query(
        self,
        user_id: int,
        query_text: Optional[str],
        filters: Dict[str, Any],
        city: Optional[str],
        state: Optional[str],
    ) -> None:
        """Append a search query record"""
        pass

    @abstractmethod
    async def backfill_stats(
        self,
        user_id: int,
        query_text: str,
        result_count: int,
        execution_time_ms: int,
        window_seconds: int,
    ) -> bool:
        """Write counts onto the newest matching row inside the window"""
        pass

    @abstractmethod
    async def upsert_suggestion(self, query_text: str, result_count: int) -> None:
        """Increment the query suggestion aggregate"""
        pass

    @abstractmethod
    async def find_suggestions(
        self,
        prefix: str,
        city: Optional[str],
        state: Optional[str],
        limit: int,
    ) -> List[SearchSuggestion]:
        """Approved suggestions starting with prefix"""
        pass

    @abstractmethod
    async def find_popular_terms(
        self,
        city: Optional[str],
        state: Optional[str],
        min_count: int,
        window_days: int,
        limit: int,
    ) -> List[str]:
        """Frequently searched trending terms"""
        pass

    @abstractmethod
    async def find_trending(
        self, city: Optional[str], state: Optional[str], limit: int
    ) -> List[TrendingSearch]:
        """Rows flagged as trending"""
        pass

    @abstractmethod
    async def analytics(
        self, city: Optional[str], state: Optional[str], days: int
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Popular terms, daily volume and zero-result queries"""
        pass


class ISavedSearchRepository(ABC):
    """Saved search repository interface"""

    @abstractmethod
    async def save(
        self,
        user_id: int,
        name: str,
        description: Optional[str],
        query_text: Optional[str],
        filters: Dict[str, Any],
    ) -> SavedSearch:
        """Create, or overwrite the caller's search with the same name"""
        pass

    @abstractmethod
    async def list_active(self, user_id: int) -> List[SavedSearch]:
        """Active saved searches of a user, most recently updated first"""
        pass

    @abstractmethod
    async def find_active(self, saved_search_id: int, user_id: int) -> Optional[SavedSearch]:
        """Active saved search owned by the user"""
        pass

    @abstractmethod
    async def record_execution(self, saved_search_id: int, result_count: int) -> None:
        """Update rolling statistics after a run"""
        pass

    @abstractmethod
    async def deactivate(self, saved_search_id: int, user_id: int) -> Optional[str]:
        """Soft-delete; returns the name, or None when not found"""
        pass
