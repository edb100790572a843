"""
Database connection and utilities for StormNeighbor
"""
import asyncpg
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional
import json
import logging

from ..config import settings
from ..exceptions import DatastoreError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def translate_errors() -> AsyncIterator[None]:
    """Re-raise driver and socket failures as DatastoreError"""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.error(f"Datastore failure: {e}")
        raise DatastoreError(str(e)) from e


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode json/jsonb columns into Python objects"""
    for typename in ("json", "jsonb"):
        await conn.set_type_codec(
            typename, encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
        )


class Connection:
    """One acquired connection with the same helpers as Database"""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def fetch_one(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row"""
        async with translate_errors():
            return await self.conn.fetchrow(query, *args)

    async def fetch_all(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all rows"""
        async with translate_errors():
            return await self.conn.fetch(query, *args)

    async def fetch_val(self, query: str, *args) -> Any:
        """Fetch the first column of the first row"""
        async with translate_errors():
            return await self.conn.fetchval(query, *args)

    async def execute(self, query: str, *args) -> str:
        """Execute a query without returning results"""
        async with translate_errors():
            return await self.conn.execute(query, *args)


class Database:
    """PostgreSQL database connection manager using asyncpg"""

    def __init__(self):
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Create database connection pool"""
        try:
            self.pool = await asyncpg.create_pool(
                settings.DATABASE_URL,
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_SIZE,
                command_timeout=settings.DB_COMMAND_TIMEOUT,
                init=_init_connection,
            )
            logger.info(f"Database pool created with size {settings.DB_POOL_SIZE}")

            if settings.DB_INIT_SCHEMA:
                await self._init_schema()
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Connection]:
        """Acquire one connection, released on every exit path"""
        if self.pool is None:
            raise DatastoreError("Database pool is not initialized")
        async with translate_errors():
            conn = await self.pool.acquire()
        try:
            yield Connection(conn)
        finally:
            await self.pool.release(conn)

    async def fetch_one(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch a single row"""
        async with self.connection() as conn:
            return await conn.fetch_one(query, *args)

    async def fetch_all(self, query: str, *args) -> List[asyncpg.Record]:
        """Fetch all rows"""
        async with self.connection() as conn:
            return await conn.fetch_all(query, *args)

    async def fetch_val(self, query: str, *args) -> Any:
        """Fetch the first column of the first row"""
        async with self.connection() as conn:
            return await conn.fetch_val(query, *args)

    async def execute(self, query: str, *args) -> str:
        """Execute a query without returning results"""
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def ping(self) -> bool:
        """Check that the pool can run a trivial query"""
        if self.pool is None:
            return False
        try:
            return await self.fetch_val("SELECT 1") == 1
        except DatastoreError:
            return False

    async def _init_schema(self):
        """Initialize database schema"""
        async with self.connection() as conn:
            if settings.USE_POSTGIS:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS postgis")

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id SERIAL PRIMARY KEY,
                    first_name VARCHAR(100),
                    last_name VARCHAR(100),
                    profile_image_url VARCHAR(500),
                    bio TEXT,
                    is_active BOOLEAN DEFAULT TRUE,
                    latitude DOUBLE PRECISION,
                    longitude DOUBLE PRECISION,
                    location_city VARCHAR(100),
                    address_state VARCHAR(50),
                    location_radius_miles DECIMAL(4,1) DEFAULT 10.0,
                    show_city_only BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS posts (
                    id SERIAL PRIMARY KEY,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title VARCHAR(200),
                    content TEXT NOT NULL,
                    post_type VARCHAR(50) NOT NULL,
                    priority VARCHAR(20) DEFAULT 'normal',
                    is_emergency BOOLEAN DEFAULT FALSE,
                    is_resolved BOOLEAN DEFAULT FALSE,
                    latitude DOUBLE PRECISION,
                    longitude DOUBLE PRECISION,
                    location_city VARCHAR(100),
                    location_state VARCHAR(50),
                    location_county VARCHAR(100),
                    images TEXT[],
                    tags TEXT[],
                    expires_at TIMESTAMP WITH TIME ZONE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id SERIAL PRIMARY KEY,
                    post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    content TEXT NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS reactions (
                    id SERIAL PRIMARY KEY,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    post_id INTEGER REFERENCES posts(id) ON DELETE CASCADE,
                    comment_id INTEGER REFERENCES comments(id) ON DELETE CASCADE,
                    reaction_type VARCHAR(20) NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS search_queries (
                    id BIGSERIAL PRIMARY KEY,
                    user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
                    query_text VARCHAR(200),
                    filters JSONB,
                    search_city VARCHAR(100),
                    search_state VARCHAR(50),
                    results_count INTEGER,
                    execution_time_ms INTEGER,
                    source VARCHAR(20) DEFAULT 'manual',
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS search_suggestions (
                    id SERIAL PRIMARY KEY,
                    suggestion_text VARCHAR(200) NOT NULL,
                    suggestion_type VARCHAR(20) NOT NULL DEFAULT 'query',
                    category VARCHAR(50),
                    city VARCHAR(100),
                    state VARCHAR(50),
                    search_count INTEGER DEFAULT 0,
                    result_count DOUBLE PRECISION DEFAULT 0,
                    click_through_rate DOUBLE PRECISION DEFAULT 0,
                    is_approved BOOLEAN DEFAULT TRUE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS trending_searches (
                    id SERIAL PRIMARY KEY,
                    search_term VARCHAR(200) NOT NULL,
                    category VARCHAR(50),
                    city VARCHAR(100),
                    state VARCHAR(50),
                    search_count INTEGER DEFAULT 0,
                    trend_score DOUBLE PRECISION DEFAULT 0,
                    sentiment VARCHAR(20),
                    is_trending BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS saved_searches (
                    id SERIAL PRIMARY KEY,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name VARCHAR(100) NOT NULL,
                    description VARCHAR(500),
                    query_text VARCHAR(200),
                    filters JSONB DEFAULT '{}'::jsonb,
                    notify_new_results BOOLEAN DEFAULT FALSE,
                    notification_frequency VARCHAR(20) DEFAULT 'daily',
                    total_results INTEGER DEFAULT 0,
                    last_result_count INTEGER DEFAULT 0,
                    last_executed TIMESTAMP WITH TIME ZONE,
                    is_active BOOLEAN DEFAULT TRUE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                    CONSTRAINT saved_searches_user_id_name_key UNIQUE (user_id, name)
                )
            """)

            # NULL city/state must collide, so the conflict key uses COALESCE
            await conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_search_suggestions_key
                ON search_suggestions (
                    suggestion_text, suggestion_type, (COALESCE(city, '')), (COALESCE(state, ''))
                )
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_posts_location_city
                ON posts (location_city, location_state)
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_posts_created_at
                ON posts (created_at DESC)
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_search_queries_text_created
                ON search_queries (query_text, created_at DESC)
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_comments_post ON comments (post_id)
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_reactions_post ON reactions (post_id)
            """)

            logger.info("Database schema initialized")


# Global database instance
db = Database()
