"""
Parsing of wire-level search parameters into SearchFilters

Query-string values arrive as strings; saved searches store the same keys in
a JSON snapshot. Both are validated by SearchParams through
build_search_filters.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from ..exceptions import ValidationError
from .models import PostType, Priority, ResolvedFilter, SearchFilters, SortBy

MAX_QUERY_LENGTH = 200
MAX_CITY_LENGTH = 100
MAX_STATE_LENGTH = 50

# OFFSET is bound as int8; deeper pages are empty anyway
MAX_OFFSET = 1_000_000

POST_TYPES = {t.value for t in PostType}
PRIORITIES = {p.value for p in Priority}

# Field -> accepted keys, query-string name first where both exist
WIRE_KEYS = {
    "query": ("q", "query"),
    "city": ("city",),
    "state": ("state",),
    "post_types": ("postTypes", "types"),
    "priorities": ("priorities",),
    "date_from": ("dateFrom",),
    "date_to": ("dateTo",),
    "emergency_only": ("emergencyOnly",),
    "resolved": ("resolvedFilter", "resolved"),
    "sort_by": ("sortBy",),
}

# Field -> name reported in {field, message} errors
ERROR_FIELDS = {
    "query": "q",
    "post_types": "types",
    "date_from": "dateFrom",
    "date_to": "dateTo",
    "emergency_only": "emergencyOnly",
    "sort_by": "sortBy",
}

CHOICES = {
    "post_types": ("post type", POST_TYPES),
    "priorities": ("priority", PRIORITIES),
}


def parse_int(value: Any, default: int) -> int:
    """Lenient integer parsing; anything unparseable yields the default"""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def parse_page(
    limit: Any,
    offset: Any,
    default_limit: int = 20,
    max_limit: int = 100,
    max_offset: int = MAX_OFFSET,
) -> Tuple[int, int]:
    """
    Coerce limit/offset instead of rejecting them.

    Malformed values fall back to (default_limit, 0). A limit below 1,
    including 0, also falls back to default_limit; larger limits are clamped
    to max_limit. A negative offset becomes 0 and a huge one is clamped to
    max_offset.
    """
    page_limit = parse_int(limit, default_limit)
    if page_limit < 1:
        page_limit = default_limit
    page_limit = min(page_limit, max_limit)
    page_offset = min(max(parse_int(offset, 0), 0), max_offset)
    return page_limit, page_offset


def parse_csv(value: Any) -> Optional[List[str]]:
    """
    Comma-separated string or list of strings into trimmed values

    Meant for pydantic validators: any other shape raises PydanticCustomError
    so it is reported against the field being validated.
    """
    if value is None:
        return None
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise PydanticCustomError("csv_item", "List entries must be strings")
        items = list(value)
    else:
        raise PydanticCustomError(
            "csv_type", "Must be a comma-separated string or a list of strings"
        )
    cleaned = [item.strip() for item in items if item.strip()]
    return cleaned or None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class SearchParams(BaseModel):
    """Search parameters from a query string or a saved-search snapshot"""

    model_config = ConfigDict(extra="ignore")

    query: Optional[str] = Field(None, max_length=MAX_QUERY_LENGTH)
    city: Optional[str] = Field(None, max_length=MAX_CITY_LENGTH)
    state: Optional[str] = Field(None, max_length=MAX_STATE_LENGTH)
    post_types: Optional[List[str]] = None
    priorities: Optional[List[str]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    emergency_only: bool = False
    resolved: ResolvedFilter = ResolvedFilter.ALL
    sort_by: SortBy = SortBy.RELEVANCE

    @model_validator(mode="before")
    @classmethod
    def collect_keys(cls, data: Any) -> Any:
        # Blank values count as absent, so a blank q falls back to query
        if not isinstance(data, Mapping):
            return data
        collected = {}
        for field, keys in WIRE_KEYS.items():
            for key in keys:
                if not _is_blank(data.get(key)):
                    collected[field] = data[key]
                    break
        return collected

    @field_validator("query", "city", "state", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("post_types", "priorities", mode="before")
    @classmethod
    def split_choices(cls, value: Any, info: ValidationInfo) -> Optional[List[str]]:
        items = parse_csv(value)
        if items:
            label, allowed = CHOICES[info.field_name]
            unknown = [item for item in items if item not in allowed]
            if unknown:
                raise PydanticCustomError(
                    "invalid_choice",
                    "Invalid {label}: {values}",
                    {"label": label, "values": ", ".join(unknown)},
                )
        return items

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def _field_errors(
    exc: PydanticValidationError, field_prefix: Optional[str]
) -> List[Dict[str, str]]:
    errors = []
    for error in exc.errors():
        if error["loc"]:
            name = str(error["loc"][0])
            field = ERROR_FIELDS.get(name, name)
            if field_prefix:
                field = f"{field_prefix}.{field}"
        else:
            field = field_prefix or "filters"
        errors.append({"field": field, "message": error["msg"]})
    return errors


def build_search_filters(
    raw: Mapping[str, Any],
    default_limit: int = 20,
    max_limit: int = 100,
    field_prefix: Optional[str] = None,
) -> SearchFilters:
    """
    Validate raw search parameters and build SearchFilters

    Accepts both the query-string names (q, types, resolved) and the
    snapshot names (query, postTypes, resolvedFilter). Paging is lenient and
    never fails validation.

    Raises:
        ValidationError: with one {field, message} entry per bad parameter,
            field names prefixed with field_prefix when given
    """
    try:
        params = SearchParams.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", _field_errors(exc, field_prefix)) from exc

    limit, offset = parse_page(raw.get("limit"), raw.get("offset"), default_limit, max_limit)

    return SearchFilters(
        query=params.query or None,
        city=params.city or None,
        state=params.state or None,
        post_types=params.post_types,
        priorities=params.priorities,
        date_from=params.date_from,
        date_to=params.date_to,
        emergency_only=params.emergency_only,
        resolved=params.resolved,
        sort_by=params.sort_by,
        limit=limit,
        offset=offset,
    )
