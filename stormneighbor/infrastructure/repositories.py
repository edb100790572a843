"""
Repository implementations - Data access layer (PostgreSQL)
"""
from typing import Any, Dict, List, Optional, Union
import asyncpg

from ..domain.models import (
    Post,
    PostAuthor,
    ResolvedLocation,
    SavedSearch,
    SearchFilters,
    SearchSuggestion,
    TrendingSearch,
    User,
)
from ..domain.repositories import (
    IPostRepository,
    ISavedSearchRepository,
    ISearchLogRepository,
    IUserRepository,
)
from .database import Connection, Database
from .queries import build_nearby_query, build_search_query, escape_like

Executor = Union[Database, Connection]

USER_COLUMNS = """
    id, first_name, last_name, profile_image_url, bio, is_active,
    latitude, longitude, location_city, address_state,
    location_radius_miles, show_city_only
"""

SAVED_SEARCH_COLUMNS = """
    id, user_id, name, description, query_text, filters,
    notify_new_results, notification_frequency,
    total_results, last_result_count, last_executed,
    is_active, created_at, updated_at
"""


def _row_to_user(row: Optional[asyncpg.Record]) -> Optional[User]:
    """Convert database row to User model"""
    if not row:
        return None
    data = dict(row)
    for key in ("latitude", "longitude", "location_radius_miles"):
        if data.get(key) is not None:
            data[key] = float(data[key])
    data["is_active"] = bool(data.get("is_active", True))
    data["show_city_only"] = bool(data.get("show_city_only") or False)
    return User(**data)


def _row_to_post(row: asyncpg.Record) -> Post:
    """Convert a joined post row to Post model"""
    return Post(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        content=row["content"],
        post_type=row["post_type"],
        priority=row["priority"],
        is_emergency=bool(row["is_emergency"]),
        is_resolved=bool(row["is_resolved"]),
        latitude=row["latitude"],
        longitude=row["longitude"],
        location_city=row["location_city"],
        location_state=row["location_state"],
        location_county=row["location_county"],
        images=list(row["images"] or []),
        tags=list(row["tags"] or []),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        author=PostAuthor(
            id=row["user_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            profile_image_url=row["profile_image_url"],
        ),
        distance_miles=float(row.get("distance_miles") or 0.0),
        comment_count=int(row["comment_count"]),
        reaction_count=int(row["reaction_count"]),
        match_score=float(row.get("match_score") or 1.0),
    )


def _row_to_saved_search(row: Optional[asyncpg.Record]) -> Optional[SavedSearch]:
    """Convert database row to SavedSearch model"""
    if not row:
        return None
    data = dict(row)
    data["filters"] = data.get("filters") or {}
    return SavedSearch(**data)


class UserRepository(IUserRepository):
    """User repository implementation using PostgreSQL"""

    def __init__(self, db: Executor):
        self.db = db

    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Find user by ID"""
        row = await self.db.fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
            user_id,
        )
        return _row_to_user(row)

    async def search(
        self,
        query: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: int = 10,
    ) -> List[User]:
        """Find active users whose name or bio contains the query"""
        rows = await self.db.fetch_all(
            f"""
            SELECT {USER_COLUMNS}
            FROM users
            WHERE is_active = true
            AND (first_name ILIKE $1 OR last_name ILIKE $1 OR bio ILIKE $1)
            AND ($2::text IS NULL OR location_city = $2)
            AND ($3::text IS NULL OR address_state = $3)
            ORDER BY first_name, last_name
            LIMIT $4
            """,
            f"%{escape_like(query)}%",
            city,
            state,
            limit,
        )
        return [_row_to_user(row) for row in rows]


class PostRepository(IPostRepository):
    """Post read repository implementation using PostgreSQL"""

    def __init__(self, db: Executor, use_postgis: bool = True):
        self.db = db
        self.use_postgis = use_postgis

    async def find_nearby(
        self, location: ResolvedLocation, limit: int, offset: int
    ) -> List[Post]:
        """Active posts visible from a resolved location, ranked"""
        sql, args = build_nearby_query(location, limit, offset, self.use_postgis)
        rows = await self.db.fetch_all(sql, *args)
        return [_row_to_post(row) for row in rows]

    async def search(self, filters: SearchFilters) -> List[Post]:
        """Active posts of active authors matching the filters, ranked"""
        sql, args = build_search_query(filters)
        rows = await self.db.fetch_all(sql, *args)
        return [_row_to_post(row) for row in rows]


class SearchLogRepository(ISearchLogRepository):
    """Search telemetry repository implementation using PostgreSQL"""

    def __init__(self, db: Executor):
        self.db = db

    async def log_query(
        self,
        user_id: int,
        query_text: Optional[str],
        filters: Dict[str, Any],
        city: Optional[str],
        state: Optional[str],
    ) -> None:
        """Append a search query record"""
        await self.db.execute(
            """
            INSERT INTO search_queries (
                user_id, query_text, filters, search_city, search_state, source
            ) VALUES ($1, $2, $3, $4, $5, 'manual')
            """,
            user_id,
            query_text,
            filters,
            city,
            state,
        )

    async def backfill_stats(
        self,
        user_id: int,
        query_text: str,
        result_count: int,
        execution_time_ms: int,
        window_seconds: int,
    ) -> bool:
        """Write counts onto the newest matching row inside the window"""
        status = await self.db.execute(
            """
            UPDATE search_queries
            SET results_count = $1, execution_time_ms = $2
            WHERE id = (
                SELECT id FROM search_queries
                WHERE user_id = $3
                AND query_text = $4
                AND created_at >= NOW() - make_interval(secs => $5)
                ORDER BY created_at DESC, id DESC
                LIMIT 1
            )
            """,
            result_count,
            execution_time_ms,
            user_id,
            query_text,
            float(window_seconds),
        )
        return status == "UPDATE 1"

    async def upsert_suggestion(self, query_text: str, result_count: int) -> None:
        """Increment the query suggestion aggregate"""
        await self.db.execute(
            """
            INSERT INTO search_suggestions (suggestion_text, suggestion_type, search_count, result_count)
            VALUES ($1, 'query', 1, $2)
            ON CONFLICT (suggestion_text, suggestion_type, (COALESCE(city, '')), (COALESCE(state, '')))
            DO UPDATE SET
                search_count = search_suggestions.search_count + 1,
                result_count = (search_suggestions.result_count + EXCLUDED.result_count) / 2,
                updated_at = NOW()
            """,
            query_text,
            float(result_count),
        )

    async def find_suggestions(
        self,
        prefix: str,
        city: Optional[str],
        state: Optional[str],
        limit: int,
    ) -> List[SearchSuggestion]:
        """Approved suggestions starting with prefix"""
        rows = await self.db.fetch_all(
            """
            SELECT suggestion_text, suggestion_type, category, city, state,
                   search_count, result_count, click_through_rate, is_approved, updated_at
            FROM search_suggestions
            WHERE suggestion_text ILIKE $1
            AND is_approved = true
            AND ($2::text IS NULL OR city IS NULL OR city = $2)
            AND ($3::text IS NULL OR state IS NULL OR state = $3)
            ORDER BY search_count DESC, click_through_rate DESC
            LIMIT $4
            """,
            f"{escape_like(prefix)}%",
            city,
            state,
            limit,
        )
        return [SearchSuggestion(**dict(row)) for row in rows]

    async def find_popular_terms(
        self,
        city: Optional[str],
        state: Optional[str],
        min_count: int,
        window_days: int,
        limit: int,
    ) -> List[str]:
        """Frequently searched trending terms"""
        rows = await self.db.fetch_all(
            """
            SELECT search_term
            FROM trending_searches
            WHERE search_count > $1
            AND ($2::text IS NULL OR city IS NULL OR city = $2)
            AND ($3::text IS NULL OR state IS NULL OR state = $3)
            AND created_at >= NOW() - make_interval(days => $4)
            GROUP BY search_term
            ORDER BY MAX(search_count) DESC
            LIMIT $5
            """,
            min_count,
            city,
            state,
            window_days,
            limit,
        )
        return [row["search_term"] for row in rows]

    async def find_trending(
        self, city: Optional[str], state: Optional[str], limit: int
    ) -> List[TrendingSearch]:
        """Rows flagged as trending"""
        rows = await self.db.fetch_all(
            """
            SELECT search_term, category, city, state, search_count,
                   trend_score, sentiment, is_trending, created_at
            FROM trending_searches
            WHERE is_trending = true
            AND ($1::text IS NULL OR city IS NULL OR city = $1)
            AND ($2::text IS NULL OR state IS NULL OR state = $2)
            ORDER BY trend_score DESC, search_count DESC
            LIMIT $3
            """,
            city,
            state,
            limit,
        )
        return [TrendingSearch(**dict(row)) for row in rows]

    async def analytics(
        self, city: Optional[str], state: Optional[str], days: int
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Popular terms, daily volume and zero-result queries"""
        scope = """
            created_at >= NOW() - make_interval(days => $3)
            AND ($1::text IS NULL OR search_city = $1)
            AND ($2::text IS NULL OR search_state = $2)
        """
        popular = await self.db.fetch_all(
            f"""
            SELECT query_text,
                   COUNT(*) AS search_count,
                   AVG(results_count)::double precision AS avg_results,
                   COUNT(DISTINCT user_id) AS unique_users
            FROM search_queries
            WHERE {scope}
            AND query_text IS NOT NULL AND query_text != ''
            GROUP BY query_text
            HAVING COUNT(*) > 1
            ORDER BY search_count DESC
            LIMIT 20
            """,
            city,
            state,
            days,
        )
        volume = await self.db.fetch_all(
            f"""
            SELECT DATE(created_at) AS date,
                   COUNT(*) AS search_count,
                   COUNT(DISTINCT user_id) AS unique_users,
                   AVG(results_count)::double precision AS avg_results
            FROM search_queries
            WHERE {scope}
            GROUP BY DATE(created_at)
            ORDER BY date DESC
            """,
            city,
            state,
            days,
        )
        no_results = await self.db.fetch_all(
            f"""
            SELECT query_text, COUNT(*) AS frequency
            FROM search_queries
            WHERE results_count = 0
            AND {scope}
            AND query_text IS NOT NULL
            GROUP BY query_text
            ORDER BY frequency DESC
            LIMIT 10
            """,
            city,
            state,
            days,
        )
        return {
            "popular_terms": [dict(row) for row in popular],
            "search_volume": [dict(row) for row in volume],
            "no_results": [dict(row) for row in no_results],
        }


class SavedSearchRepository(ISavedSearchRepository):
    """Saved search repository implementation using PostgreSQL"""

    def __init__(self, db: Executor):
        self.db = db

    async def save(
        self,
        user_id: int,
        name: str,
        description: Optional[str],
        query_text: Optional[str],
        filters: Dict[str, Any],
    ) -> SavedSearch:
        """Create, or overwrite the caller's search with the same name"""
        row = await self.db.fetch_one(
            f"""
            INSERT INTO saved_searches (user_id, name, description, query_text, filters)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id, name)
            DO UPDATE SET
                description = EXCLUDED.description,
                query_text = EXCLUDED.query_text,
                filters = EXCLUDED.filters,
                is_active = true,
                updated_at = NOW()
            RETURNING {SAVED_SEARCH_COLUMNS}
            """,
            user_id,
            name,
            description,
            query_text,
            filters,
        )
        return _row_to_saved_search(row)

    async def list_active(self, user_id: int) -> List[SavedSearch]:
        """Active saved searches of a user, most recently updated first"""
        rows = await self.db.fetch_all(
            f"""
            SELECT {SAVED_SEARCH_COLUMNS}
            FROM saved_searches
            WHERE user_id = $1 AND is_active = true
            ORDER BY updated_at DESC
            """,
            user_id,
        )
        return [_row_to_saved_search(row) for row in rows]

    async def find_active(self, saved_search_id: int, user_id: int) -> Optional[SavedSearch]:
        """Active saved search owned by the user"""
        row = await self.db.fetch_one(
            f"""
            SELECT {SAVED_SEARCH_COLUMNS}
            FROM saved_searches
            WHERE id = $1 AND user_id = $2 AND is_active = true
            """,
            saved_search_id,
            user_id,
        )
        return _row_to_saved_search(row)

    async def record_execution(self, saved_search_id: int, result_count: int) -> None:
        """Update rolling statistics after a run"""
        await self.db.execute(
            """
            UPDATE saved_searches
            SET last_executed = NOW(),
                last_result_count = $1,
                total_results = total_results + $1,
                updated_at = NOW()
            WHERE id = $2
            """,
            result_count,
            saved_search_id,
        )

    async def deactivate(self, saved_search_id: int, user_id: int) -> Optional[str]:
        """Soft-delete; returns the name, or None when not found"""
        row = await self.db.fetch_one(
            """
            UPDATE saved_searches
            SET is_active = false, updated_at = NOW()
            WHERE id = $1 AND user_id = $2 AND is_active = true
            RETURNING name
            """,
            saved_search_id,
            user_id,
        )
        return row["name"] if row else None
