from __future__ import annotations

from unittest.mock import MagicMock

from config import Configuration
from services.details import fetch_details, parse_details


PAYLOAD = {
    "name": "Mado",
    "amenity": "cafe",
    "distance_meters": 733.2,
    "stats": {"rating": 4.4, "count": 37},
    "opening_hours": "Mo-Su 09:00-23:00",
    "phone": "+90 312 000 00 00",
    "location": {"latitude": 39.871, "longitude": 32.751},
    "menu": {
        "Desserts": [
            {"name": "Baklava", "price": 180, "description": "Pistachio"},
            {"name": "Kunefe", "price": 210},
            {"price": 10},
        ],
        "Drinks": "not-a-list",
    },
    "reviews": [
        {"id": 7, "user_name": "ayse", "rating": 5, "comment": "Great", "is_verified": True, "created_at": "2024-05-01T10:00:00Z"},
        {"user_name": "no id"},
    ],
}


def test_parse_details_maps_nested_fields() -> None:
    d = parse_details("est-1", PAYLOAD)
    assert d is not None
    assert d.id == "est-1"
    assert d.rating == 4.4
    assert d.review_count == 37
    assert (d.latitude, d.longitude) == (39.871, 32.751)
    assert list(d.menu) == ["Desserts"]
    assert [i.name for i in d.menu["Desserts"]] == ["Baklava", "Kunefe"]
    assert d.menu["Desserts"][0].description == "Pistachio"
    assert [r.id for r in d.reviews] == ["7"]
    assert d.reviews[0].is_verified


def test_parse_details_missing_record() -> None:
    assert parse_details("x", None) is None
    assert parse_details("x", {}) is None


def test_fetch_details_uses_configured_origin() -> None:
    client = MagicMock()
    client.get_establishment_details.return_value = PAYLOAD
    cfg = Configuration(origin_lat=41.0, origin_long=29.0)

    d = fetch_details(client, cfg, "est-9")

    assert d is not None and d.name == "Mado"
    client.get_establishment_details.assert_called_once_with("est-9", lat=41.0, long=29.0)
