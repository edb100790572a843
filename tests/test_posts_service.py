from datetime import timedelta

import pytest

from stormneighbor.application.posts import PostService
from stormneighbor.exceptions import NotFoundError
from tests.conftest import AUSTIN, DALLAS, ROUND_ROCK


@pytest.fixture
def service(repos):
    return PostService(repos.users, repos.posts)


@pytest.mark.asyncio
async def test_city_mode_returns_city_posts_with_zero_distance(service, make_user, make_post):
    make_user(1, location_city="Austin", address_state="Texas")
    make_user(2)
    local = make_post(user_id=2, location_city="Austin", location_state="Texas")
    pinned = make_post(
        user_id=2, location_city="Austin", location_state="Texas", latitude=AUSTIN[0], longitude=AUSTIN[1]
    )
    make_post(user_id=2, location_city="Austin", location_state="Minnesota")
    make_post(user_id=2, location_city="Dallas", location_state="Texas")

    result = await service.get_nearby_posts(1, 20, 0)

    assert result.location.mode == "city"
    assert {p.id for p in result.posts} == {local.id, pinned.id}
    assert all(p.distance_miles == 0 for p in result.posts)


@pytest.mark.asyncio
async def test_geographic_mode_applies_radius(service, make_user, make_post):
    make_user(1, latitude=AUSTIN[0], longitude=AUSTIN[1], location_radius_miles=10)
    make_user(2)
    inside = make_post(user_id=2, latitude=AUSTIN[0] + 0.01, longitude=AUSTIN[1])
    outside = make_post(user_id=2, latitude=ROUND_ROCK[0], longitude=ROUND_ROCK[1])
    far = make_post(user_id=2, latitude=DALLAS[0], longitude=DALLAS[1])
    unplaced = make_post(user_id=2)

    result = await service.get_nearby_posts(1, 20, 0)
    ids = {p.id for p in result.posts}

    assert inside.id in ids
    assert outside.id not in ids and far.id not in ids
    assert unplaced.id in ids
    by_id = {p.id: p for p in result.posts}
    assert 0 < by_id[inside.id].distance_miles < 1
    assert by_id[unplaced.id].distance_miles == 0


@pytest.mark.asyncio
async def test_wider_radius_includes_more_posts(service, make_user, make_post):
    make_user(1, latitude=AUSTIN[0], longitude=AUSTIN[1], location_radius_miles=25)
    make_user(2)
    nearby = make_post(user_id=2, latitude=ROUND_ROCK[0], longitude=ROUND_ROCK[1])

    result = await service.get_nearby_posts(1, 20, 0)

    assert [p.id for p in result.posts] == [nearby.id]


@pytest.mark.asyncio
async def test_ordering_emergency_priority_distance_recency(service, make_user, make_post):
    make_user(1, latitude=AUSTIN[0], longitude=AUSTIN[1], location_radius_miles=50)
    make_user(2)
    low = make_post(user_id=2, priority="low", minutes_ago=1)
    emergency_low = make_post(user_id=2, priority="low", is_emergency=True, minutes_ago=100)
    urgent_far = make_post(
        user_id=2, priority="urgent", latitude=ROUND_ROCK[0], longitude=ROUND_ROCK[1]
    )
    urgent_near = make_post(
        user_id=2, priority="urgent", latitude=AUSTIN[0], longitude=AUSTIN[1], minutes_ago=50
    )
    normal_new = make_post(user_id=2, priority="normal", latitude=AUSTIN[0], longitude=AUSTIN[1])
    normal_old = make_post(
        user_id=2, priority="normal", latitude=AUSTIN[0], longitude=AUSTIN[1], minutes_ago=30
    )
    odd = make_post(user_id=2, priority="whenever")

    result = await service.get_nearby_posts(1, 20, 0)

    assert [p.id for p in result.posts] == [
        emergency_low.id,
        urgent_near.id,
        urgent_far.id,
        normal_new.id,
        normal_old.id,
        low.id,
        odd.id,
    ]


@pytest.mark.asyncio
async def test_expired_posts_are_excluded(service, make_user, make_post, clock):
    make_user(1)
    make_user(2)
    expired = make_post(user_id=2, expires_at=clock.now - timedelta(minutes=1))
    live = make_post(user_id=2, expires_at=clock.now + timedelta(days=1))
    forever = make_post(user_id=2)

    result = await service.get_nearby_posts(1, 20, 0)

    ids = {p.id for p in result.posts}
    assert expired.id not in ids
    assert ids == {live.id, forever.id}


@pytest.mark.asyncio
async def test_pagination(service, make_user, make_post):
    make_user(1)
    make_user(2)
    posts = [make_post(user_id=2, minutes_ago=i) for i in range(5)]

    first = await service.get_nearby_posts(1, 2, 0)
    last = await service.get_nearby_posts(1, 2, 4)

    assert [p.id for p in first.posts] == [posts[0].id, posts[1].id]
    assert [p.id for p in last.posts] == [posts[4].id]
    assert first.pagination.total == 2


@pytest.mark.asyncio
async def test_author_projection_is_attached(service, make_user, make_post):
    make_user(1)
    make_user(2, first_name="Ada", last_name="Lovelace", profile_image_url="https://img/ada.png")
    make_post(user_id=2)

    result = await service.get_nearby_posts(1, 20, 0)

    author = result.posts[0].author
    assert (author.first_name, author.last_name) == ("Ada", "Lovelace")
    assert author.profile_image_url == "https://img/ada.png"


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(service):
    with pytest.raises(NotFoundError):
        await service.get_nearby_posts(404, 20, 0)
