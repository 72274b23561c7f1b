from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from config import Configuration
from models import Amenity, FilterState, SearchCriteria
from services.search import EstablishmentSearch, SearchError, build_criteria, parse_establishments, rpc_params
from services.supabase import SupabaseClient, SupabaseError


def _cfg(**overrides) -> Configuration:
    return Configuration(supabase_url="https://example.supabase.co", supabase_anon_key="anon-key-123456", **overrides)


def _row(**overrides) -> dict:
    row = {
        "id": "a1",
        "name": "Kahve Dunyasi",
        "amenity": "cafe",
        "dist_meters": 420.5,
        "average_rating": 4.2,
        "review_count": 12,
        "cuisine_tags": ["coffee", "dessert"],
        "opening_hours": "Mo-Su 08:00-23:00",
    }
    row.update(overrides)
    return row


def test_blank_text_becomes_no_filter() -> None:
    cfg = _cfg()
    assert build_criteria(FilterState(search_text=""), cfg).text is None
    assert build_criteria(FilterState(search_text="   "), cfg).text is None
    assert build_criteria(FilterState(search_text=" pizza "), cfg).text == "pizza"


def test_popular_resolves_to_review_threshold() -> None:
    cfg = _cfg(popular_min_reviews=25)
    assert build_criteria(FilterState(popular_only=False), cfg).min_review_count == 0
    assert build_criteria(FilterState(popular_only=True), cfg).min_review_count == 25


def test_amenity_all_means_no_amenity_filter() -> None:
    cfg = _cfg()
    assert build_criteria(FilterState(amenity=Amenity.ALL), cfg).amenity is None
    assert build_criteria(FilterState(amenity="cafe"), cfg).amenity == "cafe"


def test_criteria_carries_location_and_paging() -> None:
    criteria = build_criteria(FilterState(min_rating=4), _cfg())
    assert criteria.origin_lat == pytest.approx(39.87)
    assert criteria.origin_long == pytest.approx(32.75)
    assert criteria.radius_meters == 5000
    assert criteria.page_size == 50
    assert criteria.page_offset == 0
    assert criteria.min_rating == 4.0


def test_rpc_params_normalize_text_again() -> None:
    criteria = SearchCriteria(origin_lat=1.0, origin_long=2.0, radius_meters=100, text="  ")
    params = rpc_params(criteria)
    assert params["search_text"] is None
    assert params["user_lat"] == 1.0
    assert params["user_long"] == 2.0
    assert params["page_number"] == 0


def test_parse_establishments_keeps_order_and_skips_rows_without_id() -> None:
    rows = [_row(id="a"), _row(id=None, name="ghost"), _row(id="b", opening_hours="", cuisine_tags=None)]
    parsed = parse_establishments(rows)
    assert [e.id for e in parsed] == ["a", "b"]
    assert parsed[0].cuisine_tags == ("coffee", "dessert")
    assert parsed[0].distance_meters == pytest.approx(420.5)
    assert parsed[1].opening_hours is None
    assert parsed[1].cuisine_tags == ()


def test_parse_establishments_rejects_non_list_payload() -> None:
    assert parse_establishments(None) == []
    with pytest.raises(SearchError):
        parse_establishments({"message": "oops"})


def test_search_wraps_backend_errors() -> None:
    client = MagicMock()
    client.get_establishments.side_effect = SupabaseError("upstream 500: boom")
    search = EstablishmentSearch(client)
    with pytest.raises(SearchError) as info:
        search(build_criteria(FilterState(), _cfg()))
    assert "boom" in info.value.message
    assert client.get_establishments.call_count == 1


def test_search_passes_resolved_params() -> None:
    client = MagicMock()
    client.get_establishments.return_value = [_row()]
    search = EstablishmentSearch(client)
    results = search.search(build_criteria(FilterState(search_text="latte", amenity="cafe", popular_only=True), _cfg()))

    params = client.get_establishments.call_args[0][0]
    assert params["search_text"] == "latte"
    assert params["filter_amenity"] == "cafe"
    assert params["min_review_count"] == 10
    assert [e.name for e in results] == ["Kahve Dunyasi"]


def _response(status: int, body=None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


def test_supabase_rpc_posts_with_key_headers() -> None:
    session = MagicMock()
    session.post.return_value = _response(200, [_row()])
    client = SupabaseClient(_cfg(), session=session)

    assert client.rpc("get_establishments", {"page_size": 5}) == [_row()]
    args, kwargs = session.post.call_args
    assert args[0] == "https://example.supabase.co/rest/v1/rpc/get_establishments"
    assert kwargs["headers"]["apikey"] == "anon-key-123456"
    assert kwargs["headers"]["Authorization"] == "Bearer anon-key-123456"
    assert kwargs["json"] == {"page_size": 5}
    assert kwargs["timeout"] == 15


def test_supabase_rpc_reports_postgrest_message() -> None:
    session = MagicMock()
    session.post.return_value = _response(400, {"message": "function not found"})
    client = SupabaseClient(_cfg(), session=session)
    with pytest.raises(SupabaseError, match="upstream 400: function not found"):
        client.rpc("missing", {})


def test_supabase_rpc_network_and_json_errors() -> None:
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    client = SupabaseClient(_cfg(), session=session)
    with pytest.raises(SupabaseError, match="request error"):
        client.rpc("get_establishments", {})

    session.post.side_effect = None
    session.post.return_value = _response(200, ValueError("bad json"))
    with pytest.raises(SupabaseError, match="invalid json"):
        client.rpc("get_establishments", {})
