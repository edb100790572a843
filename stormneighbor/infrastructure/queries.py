"""
Parameterized SQL builders for the nearby feed and post search

Every caller-supplied value travels as a $n argument; only fixed SQL
fragments are concatenated.
"""
from typing import Any, List, Tuple

from ..domain.geo import EARTH_RADIUS_MILES
from ..domain.models import LocationMode, ResolvedFilter, ResolvedLocation, SearchFilters, SortBy
from ..domain.ranking import PRIORITY_RANK, UNKNOWN_PRIORITY_RANK

METERS_PER_MILE = 1609.344

PRIORITY_ORDER = (
    "CASE p.priority "
    + " ".join(f"WHEN '{name}' THEN {rank}" for name, rank in PRIORITY_RANK.items())
    + f" ELSE {UNKNOWN_PRIORITY_RANK} END"
)

POST_COLUMNS = """
    p.id, p.user_id, p.title, p.content, p.post_type, p.priority,
    p.is_emergency, p.is_resolved, p.latitude, p.longitude,
    p.location_city, p.location_state, p.location_county,
    p.images, p.tags, p.expires_at, p.created_at, p.updated_at,
    u.first_name, u.last_name, u.profile_image_url,
    COALESCE(c.comment_count, 0) AS comment_count,
    COALESCE(r.reaction_count, 0) AS reaction_count
"""

POST_JOINS = """
    FROM posts p
    JOIN users u ON u.id = p.user_id
    LEFT JOIN (
        SELECT post_id, COUNT(*) AS comment_count FROM comments GROUP BY post_id
    ) c ON c.post_id = p.id
    LEFT JOIN (
        SELECT post_id, COUNT(*) AS reaction_count FROM reactions GROUP BY post_id
    ) r ON r.post_id = p.id
"""

NOT_EXPIRED = "(p.expires_at IS NULL OR p.expires_at > NOW())"
NO_POINT = "(p.latitude IS NULL OR p.longitude IS NULL)"


class Params:
    """Collects query arguments and hands out their $n placeholders"""

    def __init__(self):
        self.args: List[Any] = []

    def add(self, value: Any) -> str:
        self.args.append(value)
        return f"${len(self.args)}"


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so the text matches literally"""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _postgis_distance(params: Params, location: ResolvedLocation) -> Tuple[str, str]:
    origin = (
        f"ST_MakePoint({params.add(location.longitude)}::double precision, "
        f"{params.add(location.latitude)}::double precision)::geography"
    )
    point = "ST_MakePoint(p.longitude, p.latitude)::geography"
    meters = params.add(METERS_PER_MILE)
    distance = (
        f"CASE WHEN {NO_POINT} THEN 0 "
        f"ELSE ST_Distance({point}, {origin}) / {meters}::double precision END"
    )
    radius = params.add(location.radius_miles)
    within = (
        f"({NO_POINT} OR ST_DWithin({point}, {origin}, "
        f"{radius}::double precision * {meters}::double precision))"
    )
    return distance, within


def _haversine_distance(params: Params, location: ResolvedLocation) -> Tuple[str, str]:
    lat = params.add(location.latitude)
    lon = params.add(location.longitude)
    earth = params.add(EARTH_RADIUS_MILES)
    half_chord = (
        f"(sin(radians(p.latitude - {lat}::double precision) / 2) ^ 2 "
        f"+ cos(radians({lat}::double precision)) * cos(radians(p.latitude)) "
        f"* sin(radians(p.longitude - {lon}::double precision) / 2) ^ 2)"
    )
    distance = (
        f"CASE WHEN {NO_POINT} THEN 0 "
        f"ELSE {earth}::double precision * 2 * atan2(sqrt({half_chord}), "
        f"sqrt(GREATEST(0, 1 - {half_chord}))) END"
    )
    radius = params.add(location.radius_miles)
    within = f"({distance}) <= {radius}::double precision"
    return distance, within


def build_nearby_query(
    location: ResolvedLocation, limit: int, offset: int, use_postgis: bool = True
) -> Tuple[str, List[Any]]:
    """
    Build the ranked nearby-posts query for a resolved location

    Returns:
        (sql, args) ready for asyncpg
    """
    params = Params()
    conditions = [NOT_EXPIRED]
    order = ["p.is_emergency DESC", PRIORITY_ORDER]

    if location.mode == LocationMode.GEOGRAPHIC:
        if use_postgis:
            distance, within = _postgis_distance(params, location)
        else:
            distance, within = _haversine_distance(params, location)
        conditions.append(within)
        order.append("distance_miles ASC")
    else:
        distance = "0"
        if location.mode == LocationMode.CITY:
            conditions.append(f"p.location_city = {params.add(location.city)}")
            if location.state:
                conditions.append(f"p.location_state = {params.add(location.state)}")

    order.append("p.created_at DESC NULLS LAST")

    sql = (
        f"SELECT {POST_COLUMNS}, ({distance})::double precision AS distance_miles "
        f"{POST_JOINS} "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY {', '.join(order)} "
        f"LIMIT {params.add(limit)} OFFSET {params.add(offset)}"
    )
    return sql, params.args


def build_search_query(filters: SearchFilters) -> Tuple[str, List[Any]]:
    """
    Build the filtered, ranked post search

    Every structured filter is ANDed; the free text matches title or
    content as a case-insensitive substring.
    """
    params = Params()
    conditions = ["u.is_active = TRUE", NOT_EXPIRED]

    text = filters.text
    if text:
        pattern = params.add(f"%{escape_like(text)}%")
        conditions.append(f"(p.title ILIKE {pattern} OR p.content ILIKE {pattern})")

    if filters.city:
        conditions.append(f"LOWER(p.location_city) = LOWER({params.add(filters.city)})")
    if filters.state:
        conditions.append(f"LOWER(p.location_state) = LOWER({params.add(filters.state)})")
    if filters.post_types:
        conditions.append(f"p.post_type = ANY({params.add(list(filters.post_types))}::text[])")
    if filters.priorities:
        conditions.append(f"p.priority = ANY({params.add(list(filters.priorities))}::text[])")
    if filters.date_from:
        conditions.append(f"p.created_at >= {params.add(filters.date_from)}")
    if filters.date_to:
        conditions.append(f"p.created_at <= {params.add(filters.date_to)}")
    if filters.emergency_only:
        conditions.append("p.is_emergency = TRUE")
    if filters.resolved == ResolvedFilter.RESOLVED:
        conditions.append("p.is_resolved = TRUE")
    elif filters.resolved == ResolvedFilter.UNRESOLVED:
        conditions.append("p.is_resolved = FALSE")

    relevance = ["p.is_emergency DESC", PRIORITY_ORDER, "p.created_at DESC NULLS LAST"]
    if filters.sort_by == SortBy.POPULARITY:
        order = ["(COALESCE(c.comment_count, 0) + COALESCE(r.reaction_count, 0)) DESC"] + relevance
    elif filters.sort_by == SortBy.DATE:
        order = ["p.created_at DESC NULLS LAST"]
    else:
        order = relevance

    # No scoring yet; every hit carries the same placeholder score
    sql = (
        f"SELECT {POST_COLUMNS}, 1.0::double precision AS match_score "
        f"{POST_JOINS} "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY {', '.join(order)} "
        f"LIMIT {params.add(filters.limit)} OFFSET {params.add(filters.offset)}"
    )
    return sql, params.args
