"""
Search routes
"""
from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from ...application.search import SearchService
from ...config import settings
from ...dependencies import (
    get_current_user_id,
    get_current_user_id_optional,
    get_search_service,
)
from ...domain.filters import build_search_filters
from ...schemas import (
    AnalyticsResponse,
    ApiResponse,
    DeletedSavedSearch,
    SavedSearchEnvelope,
    SavedSearchList,
    SaveSearchRequest,
    SearchResponse,
    SuggestionsResponse,
    TrendingResponse,
    UserSearchResponse,
)

router = APIRouter(prefix="/search", tags=["Search"])


@router.get("", response_model=ApiResponse[SearchResponse])
async def search_posts(
    q: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    types: Optional[str] = Query(None),
    priorities: Optional[str] = Query(None),
    dateFrom: Optional[str] = Query(None),
    dateTo: Optional[str] = Query(None),
    emergencyOnly: Optional[str] = Query(None),
    resolved: Optional[str] = Query(None),
    sortBy: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Search posts by free text and structured filters

    Requires authentication. All filters are validated together by
    SearchParams so every bad parameter is reported at once; limit and
    offset are lenient.
    """
    filters = build_search_filters(
        {
            "q": q,
            "query": query,
            "city": city,
            "state": state,
            "types": types,
            "priorities": priorities,
            "dateFrom": dateFrom,
            "dateTo": dateTo,
            "emergencyOnly": emergencyOnly,
            "resolved": resolved,
            "sortBy": sortBy,
            "limit": limit,
            "offset": offset,
        },
        settings.DEFAULT_PAGE_SIZE,
        settings.MAX_PAGE_SIZE,
    )
    results = await search_service.search_posts(filters, user_id)
    return ApiResponse(message="Search completed successfully", data=results)


@router.get("/suggestions", response_model=ApiResponse[SuggestionsResponse])
async def get_search_suggestions(
    q: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Autocomplete suggestions for a partial query

    Public endpoint.
    """
    results = await search_service.get_suggestions(q, city, state, limit)
    return ApiResponse(message="Suggestions retrieved successfully", data=results)


@router.get("/trending", response_model=ApiResponse[TrendingResponse])
async def get_trending_searches(
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    user_id: Optional[int] = Depends(get_current_user_id_optional),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Trending searches for a city/state

    Public endpoint (authentication optional; the caller's location is used
    when no scope is given).
    """
    results = await search_service.get_trending(city, state, limit, user_id)
    return ApiResponse(message="Trending searches retrieved successfully", data=results)


@router.get("/users", response_model=ApiResponse[UserSearchResponse])
async def search_users(
    q: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Find neighbors by name or bio

    Requires authentication.
    """
    users = await search_service.search_users(q, city, state, limit)
    return ApiResponse(
        message="User search completed",
        data=UserSearchResponse(users=users, query=(q or "").strip(), result_count=len(users)),
    )


@router.get("/analytics", response_model=ApiResponse[AnalyticsResponse])
async def get_search_analytics(
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    days: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Search analytics over the last days

    Requires authentication.
    """
    results = await search_service.get_analytics(city, state, days)
    return ApiResponse(message="Search analytics retrieved successfully", data=results)


@router.post(
    "/saved",
    response_model=ApiResponse[SavedSearchEnvelope],
    status_code=status.HTTP_201_CREATED,
)
async def save_search(
    request: SaveSearchRequest,
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Save a search under a name (re-saving a name overwrites it)

    Requires authentication.
    """
    saved = await search_service.save_search(user_id, request)
    return ApiResponse(message="Search saved successfully", data=SavedSearchEnvelope(saved_search=saved))


@router.get("/saved", response_model=ApiResponse[SavedSearchList])
async def get_saved_searches(
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Get the caller's saved searches

    Requires authentication.
    """
    saved = await search_service.list_saved_searches(user_id)
    return ApiResponse(
        message="Saved searches retrieved successfully",
        data=SavedSearchList(saved_searches=saved, count=len(saved)),
    )


@router.post("/saved/{saved_search_id}/execute", response_model=ApiResponse[SearchResponse])
async def execute_saved_search(
    saved_search_id: int,
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Re-run a saved search

    Requires authentication.
    """
    results = await search_service.execute_saved_search(user_id, saved_search_id)
    return ApiResponse(message="Saved search executed successfully", data=results)


@router.delete("/saved/{saved_search_id}", response_model=ApiResponse[DeletedSavedSearch])
async def delete_saved_search(
    saved_search_id: int,
    user_id: int = Depends(get_current_user_id),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Delete (deactivate) a saved search

    Requires authentication.
    """
    name = await search_service.delete_saved_search(user_id, saved_search_id)
    return ApiResponse(message="Saved search deleted successfully", data=DeletedSavedSearch(name=name))
