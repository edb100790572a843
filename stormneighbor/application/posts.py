"""
Application services - location-scoped post feed
"""
import logging

from ..domain.location import resolve_location
from ..domain.repositories import IPostRepository, IUserRepository
from ..exceptions import NotFoundError
from ..schemas import LocationInfo, NearbyPostsResponse, Pagination, PostResponse

logger = logging.getLogger(__name__)


class PostService:
    """Nearby post feed for a user"""

    def __init__(self, user_repository: IUserRepository, post_repository: IPostRepository):
        self.user_repo = user_repository
        self.post_repo = post_repository

    async def get_nearby_posts(self, user_id: int, limit: int, offset: int) -> NearbyPostsResponse:
        """
        Get active posts visible from the user's resolved location

        Args:
            user_id: Caller whose profile location scopes the feed
            limit: Page size, already coerced by the caller
            offset: Page offset, already coerced by the caller

        Raises:
            NotFoundError: If the user does not exist
        """
        user = await self.user_repo.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        location = resolve_location(user)
        logger.debug(f"Nearby posts for user {user_id} in {location.mode.value} mode")

        posts = await self.post_repo.find_nearby(location, limit, offset)

        return NearbyPostsResponse(
            posts=[PostResponse.from_post(post) for post in posts],
            pagination=Pagination(limit=limit, offset=offset, total=len(posts)),
            location=LocationInfo.from_location(location),
        )
