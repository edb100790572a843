from datetime import datetime, timezone

import pytest

from stormneighbor.domain.filters import MAX_OFFSET, build_search_filters, parse_page
from stormneighbor.domain.models import ResolvedFilter, SortBy
from stormneighbor.exceptions import ValidationError


@pytest.mark.parametrize(
    "limit, offset, expected",
    [
        (None, None, (20, 0)),
        ("abc", "xyz", (20, 0)),
        ("5", "10", (5, 10)),
        ("0", "-4", (20, 0)),
        ("500", "3", (100, 3)),
        ("20", "1" + "0" * 20, (20, MAX_OFFSET)),
        ("9" * 30, "1e20", (100, 0)),
    ],
)
def test_paging_is_lenient(limit, offset, expected):
    assert parse_page(limit, offset, 20, 100) == expected


def test_query_string_parameters():
    filters = build_search_filters(
        {
            "q": "  flood ",
            "types": "safety_alert, help_request",
            "priorities": "urgent",
            "dateFrom": "2026-04-01T00:00:00Z",
            "emergencyOnly": "true",
            "resolved": "unresolved",
            "sortBy": "popularity",
            "limit": "5",
        }
    )

    assert filters.text == "flood"
    assert filters.post_types == ["safety_alert", "help_request"]
    assert filters.priorities == ["urgent"]
    assert filters.date_from == datetime(2026, 4, 1, tzinfo=timezone.utc)
    assert filters.emergency_only is True
    assert filters.resolved == ResolvedFilter.UNRESOLVED
    assert filters.sort_by == SortBy.POPULARITY
    assert filters.limit == 5


def test_snapshot_names_are_accepted():
    filters = build_search_filters(
        {"query": "tree down", "postTypes": ["general"], "resolvedFilter": "resolved"}
    )

    assert filters.text == "tree down"
    assert filters.post_types == ["general"]
    assert filters.resolved == ResolvedFilter.RESOLVED


def test_snapshot_round_trips():
    first = build_search_filters({"q": "ice", "priorities": "high,urgent", "sortBy": "date"})

    rebuilt = build_search_filters(first.snapshot())

    assert rebuilt == first


def test_invalid_parameters_are_collected():
    with pytest.raises(ValidationError) as excinfo:
        build_search_filters(
            {
                "q": "x" * 201,
                "types": "weather",
                "priorities": "critical",
                "dateTo": "yesterday",
                "resolved": "maybe",
                "sortBy": "random",
            }
        )

    fields = {error["field"] for error in excinfo.value.details}
    assert fields == {"q", "types", "priorities", "dateTo", "resolved", "sortBy"}
    assert excinfo.value.status == 400


def test_long_city_and_state_are_rejected():
    with pytest.raises(ValidationError) as excinfo:
        build_search_filters({"city": "c" * 101, "state": "s" * 51})

    assert {e["field"] for e in excinfo.value.details} == {"city", "state"}


@pytest.mark.parametrize("q", [None, "", "   "])
def test_blank_q_falls_back_to_query(q):
    filters = build_search_filters({"q": q, "query": "downed lines"})

    assert filters.text == "downed lines"


def test_q_wins_over_query():
    assert build_search_filters({"q": "hail", "query": "snow"}).text == "hail"


@pytest.mark.parametrize("value", [5, 1.5, {"a": "b"}, ["general", 3]])
def test_list_filters_reject_other_shapes(value):
    with pytest.raises(ValidationError) as excinfo:
        build_search_filters({"postTypes": value})

    assert [e["field"] for e in excinfo.value.details] == ["types"]


def test_naive_dates_are_utc_and_flags_parse():
    filters = build_search_filters(
        {"dateTo": "2026-04-02T12:00:00", "emergencyOnly": "false", "sortBy": ""}
    )

    assert filters.date_to == datetime(2026, 4, 2, 12, tzinfo=timezone.utc)
    assert filters.emergency_only is False
    assert filters.sort_by == SortBy.RELEVANCE


def test_bad_boolean_is_reported():
    with pytest.raises(ValidationError) as excinfo:
        build_search_filters({"emergencyOnly": "sometimes"})

    assert excinfo.value.details[0]["field"] == "emergencyOnly"


def test_field_prefix_is_applied():
    with pytest.raises(ValidationError) as excinfo:
        build_search_filters({"resolvedFilter": "maybe"}, field_prefix="filters")

    assert excinfo.value.details[0]["field"] == "filters.resolved"
