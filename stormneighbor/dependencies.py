"""
FastAPI dependencies - caller identity, repositories and services
"""
from dataclasses import dataclass
from fastapi import BackgroundTasks, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from typing import AsyncIterator, Optional
import logging

from .application.posts import PostService
from .application.search import SearchService
from .application.telemetry import SearchTelemetry
from .cache import RedisCache, get_cache
from .config import settings
from .domain.repositories import (
    IPostRepository,
    ISavedSearchRepository,
    ISearchLogRepository,
    IUserRepository,
)
from .infrastructure.database import db
from .infrastructure.memory import (
    MemoryPostRepository,
    MemorySavedSearchRepository,
    MemorySearchLogRepository,
    MemoryStore,
    MemoryUserRepository,
)
from .infrastructure.repositories import (
    PostRepository,
    SavedSearchRepository,
    SearchLogRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Backing store for DATASTORE=memory
memory_store = MemoryStore()


def decode_token(token: str) -> Optional[int]:
    """Decode a bearer token and return the caller's user id, None when invalid"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        return None

    user_id = payload.get("sub", payload.get("userId"))
    try:
        return int(user_id)
    except (TypeError, ValueError):
        return None


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """
    Validate JWT token and return the caller's user id
    """
    user_id = decode_token(credentials.credentials) if credentials else None
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


async def get_current_user_id_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[int]:
    """
    Optional authentication - returns None if no valid token provided
    """
    if not credentials:
        return None
    return decode_token(credentials.credentials)


@dataclass
class Repositories:
    """Repositories for one request; telemetry_logs outlives the request connection"""

    users: IUserRepository
    posts: IPostRepository
    search_logs: ISearchLogRepository
    saved_searches: ISavedSearchRepository
    telemetry_logs: ISearchLogRepository


def memory_repositories(store: MemoryStore) -> Repositories:
    search_logs = MemorySearchLogRepository(store)
    return Repositories(
        users=MemoryUserRepository(store),
        posts=MemoryPostRepository(store),
        search_logs=search_logs,
        saved_searches=MemorySavedSearchRepository(store),
        telemetry_logs=search_logs,
    )


async def get_repositories() -> AsyncIterator[Repositories]:
    """
    Acquire one connection for the request and release it on every exit path
    """
    if settings.DATASTORE == "memory":
        yield memory_repositories(memory_store)
        return

    async with db.connection() as conn:
        yield Repositories(
            users=UserRepository(conn),
            posts=PostRepository(conn, use_postgis=settings.USE_POSTGIS),
            search_logs=SearchLogRepository(conn),
            saved_searches=SavedSearchRepository(conn),
            telemetry_logs=SearchLogRepository(db),
        )


def get_post_service(repos: Repositories = Depends(get_repositories)) -> PostService:
    """Get post service instance"""
    return PostService(repos.users, repos.posts)


def get_search_service(
    background_tasks: BackgroundTasks,
    repos: Repositories = Depends(get_repositories),
    cache: RedisCache = Depends(get_cache),
) -> SearchService:
    """Get search service instance; telemetry runs after the response"""
    telemetry = SearchTelemetry(
        repos.telemetry_logs,
        backfill_window_seconds=settings.SEARCH_STATS_BACKFILL_WINDOW_SECONDS,
    )
    return SearchService(
        repos.users,
        repos.posts,
        repos.search_logs,
        repos.saved_searches,
        telemetry,
        cache=cache,
        schedule=background_tasks.add_task,
    )
