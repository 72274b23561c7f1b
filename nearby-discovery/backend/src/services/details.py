from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger

from config import Configuration
from models import EstablishmentDetails, MenuItem, Review
from services.supabase import SupabaseClient
from utils import to_float, to_int


def _parse_menu(value: Any) -> Dict[str, List[MenuItem]]:
    if not isinstance(value, dict):
        return {}
    menu: Dict[str, List[MenuItem]] = {}
    for category, items in value.items():
        if not isinstance(items, list):
            continue
        parsed: list[MenuItem] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            price = item.get("price")
            parsed.append(
                MenuItem(
                    name=str(item["name"]),
                    price=(to_float(price) if price is not None else None),
                    description=(str(item["description"]) if item.get("description") else None),
                )
            )
        menu[str(category)] = parsed
    return menu


def _parse_reviews(value: Any) -> List[Review]:
    if not isinstance(value, list):
        return []
    reviews: list[Review] = []
    for r in value:
        if not isinstance(r, dict) or r.get("id") is None:
            continue
        reviews.append(
            Review(
                id=str(r["id"]),
                user_name=str(r.get("user_name") or "Anonymous"),
                rating=to_float(r.get("rating")),
                comment=str(r.get("comment") or ""),
                created_at=r.get("created_at"),
                is_verified=bool(r.get("is_verified")),
                media_url=r.get("media_url") or None,
            )
        )
    return reviews


def parse_details(establishment_id: str, payload: Any) -> Optional[EstablishmentDetails]:
    if not isinstance(payload, dict) or not payload:
        return None
    stats = payload.get("stats") or {}
    location = payload.get("location") or {}
    lat = location.get("latitude")
    lon = location.get("longitude")
    hours = payload.get("opening_hours") or None
    return EstablishmentDetails(
        id=str(payload.get("id") or establishment_id),
        name=str(payload.get("name") or "Unknown"),
        amenity=str(payload.get("amenity") or ""),
        distance_meters=to_float(payload.get("distance_meters")),
        rating=to_float(stats.get("rating")),
        review_count=to_int(stats.get("count")),
        opening_hours=(str(hours) if hours else None),
        phone=payload.get("phone") or None,
        latitude=(to_float(lat) if lat is not None else None),
        longitude=(to_float(lon) if lon is not None else None),
        menu=_parse_menu(payload.get("menu")),
        reviews=_parse_reviews(payload.get("reviews")),
    )


def fetch_details(client: SupabaseClient, cfg: Configuration, establishment_id: str) -> Optional[EstablishmentDetails]:
    """Load one establishment with its menu and latest reviews; None when missing."""
    payload = client.get_establishment_details(establishment_id, lat=cfg.origin_lat, long=cfg.origin_long)
    details = parse_details(establishment_id, payload)
    if details is None:
        logger.info("establishment {} not found", establishment_id)
    return details
