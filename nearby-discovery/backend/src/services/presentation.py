from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from models import MenuItem, OpenState
from services.schedule import evaluate


COLLAPSED_MENU_ITEMS = 3


@dataclass(frozen=True)
class StatusLabel:
    text: str
    tone: str  # "open" | "closed" | "neutral"


def open_status_label(hours: Optional[str], at: datetime) -> StatusLabel:
    if hours is None or not hours.strip():
        return StatusLabel("No hours info", "neutral")
    state = evaluate(hours, at)
    if state is OpenState.OPEN:
        return StatusLabel("Open Now", "open")
    if state is OpenState.CLOSED:
        return StatusLabel("Closed", "closed")
    return StatusLabel("Hours available", "neutral")


def hours_hint(hours: Optional[str]) -> str:
    return "Has hours" if hours else "No hours info"


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


def format_rating(average: float) -> str:
    return f"{average:.1f}" if average > 0 else "New"


def menu_preview(menu: Dict[str, List[MenuItem]], expanded: bool = False) -> Dict[str, List[MenuItem]]:
    """Collapsed menus show the first category and its first few items."""
    if expanded:
        return {category: list(items) for category, items in menu.items()}
    for category, items in menu.items():
        return {category: list(items[:COLLAPSED_MENU_ITEMS])}
    return {}
