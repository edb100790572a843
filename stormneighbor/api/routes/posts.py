"""
Post feed routes
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional

from ...application.posts import PostService
from ...config import settings
from ...dependencies import get_current_user_id, get_post_service
from ...domain.filters import parse_page
from ...schemas import NearbyPostsResponse

router = APIRouter(prefix="/posts", tags=["Posts"])


@router.get("", response_model=NearbyPostsResponse)
async def get_nearby_posts(
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    post_service: PostService = Depends(get_post_service),
):
    """
    Get active posts near the caller's stored location

    Malformed limit/offset fall back to defaults instead of failing.
    """
    page_limit, page_offset = parse_page(
        limit, offset, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE
    )
    return await post_service.get_nearby_posts(user_id, page_limit, page_offset)
