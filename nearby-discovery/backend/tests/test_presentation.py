from __future__ import annotations

from datetime import datetime

from models import MenuItem
from services.presentation import (
    format_distance,
    format_rating,
    hours_hint,
    menu_preview,
    open_status_label,
)


NOON = datetime(2024, 1, 1, 12, 0)


def test_status_labels() -> None:
    assert open_status_label("Mo-Su 08:00-22:00", NOON).text == "Open Now"
    assert open_status_label("Mo-Su 08:00-22:00", NOON).tone == "open"
    assert open_status_label("Mo-Su 18:00-22:00", NOON).text == "Closed"
    assert open_status_label(None, NOON).text == "No hours info"
    assert open_status_label("by appointment", NOON).text == "Hours available"


def test_distance_and_rating_labels() -> None:
    assert format_distance(845.4) == "845m"
    assert format_distance(1000) == "1.0km"
    assert format_distance(2349) == "2.3km"
    assert format_rating(0) == "New"
    assert format_rating(4.26) == "4.3"
    assert hours_hint("24/7") == "Has hours"
    assert hours_hint(None) == "No hours info"


def test_menu_preview_collapsed_and_expanded() -> None:
    menu = {
        "Burgers": [MenuItem(name=f"Burger {i}", price=200.0 + i) for i in range(5)],
        "Drinks": [MenuItem(name="Ayran", price=30.0)],
    }
    collapsed = menu_preview(menu)
    assert list(collapsed) == ["Burgers"]
    assert [i.name for i in collapsed["Burgers"]] == ["Burger 0", "Burger 1", "Burger 2"]

    expanded = menu_preview(menu, expanded=True)
    assert list(expanded) == ["Burgers", "Drinks"]
    assert len(expanded["Burgers"]) == 5
    assert menu_preview({}) == {}
