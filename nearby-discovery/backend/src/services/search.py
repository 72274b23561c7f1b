from __future__ import annotations

from typing import Any, Dict, List

from loguru import logger

from config import Configuration
from models import Amenity, FilterState, RawEstablishment, SearchCriteria
from services.supabase import SupabaseClient, SupabaseError
from utils import normalize_text, to_float, to_int


class SearchError(RuntimeError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def build_criteria(filters: FilterState, cfg: Configuration, *, page_offset: int = 0) -> SearchCriteria:
    """Resolve the server-side part of a filter snapshot into query parameters."""
    amenity = None if filters.amenity is Amenity.ALL else filters.amenity.value
    min_reviews = cfg.popular_min_reviews if filters.popular_only else 0
    return SearchCriteria(
        origin_lat=cfg.origin_lat,
        origin_long=cfg.origin_long,
        radius_meters=cfg.search_radius_meters,
        text=normalize_text(filters.search_text),
        amenity=amenity,
        min_rating=filters.min_rating,
        min_review_count=min_reviews,
        page_size=cfg.page_size,
        page_offset=page_offset,
    )


def rpc_params(criteria: SearchCriteria) -> Dict[str, Any]:
    return {
        "user_lat": criteria.origin_lat,
        "user_long": criteria.origin_long,
        "radius_meters": criteria.radius_meters,
        "search_text": normalize_text(criteria.text),
        "filter_amenity": criteria.amenity,
        "min_rating": criteria.min_rating,
        "min_review_count": criteria.min_review_count,
        "page_size": criteria.page_size,
        "page_number": criteria.page_offset,
    }


def _parse_tags(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(str(x) for x in value if x is not None)
    return ()


def parse_establishments(rows: Any) -> List[RawEstablishment]:
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise SearchError(f"unexpected search payload: {type(rows).__name__}")

    results: list[RawEstablishment] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        est_id = row.get("id")
        if est_id is None:
            logger.debug("skipping establishment without id: {}", row.get("name"))
            continue
        hours = row.get("opening_hours") or None
        results.append(
            RawEstablishment(
                id=str(est_id),
                name=str(row.get("name") or "Unknown"),
                amenity=str(row.get("amenity") or ""),
                distance_meters=to_float(row.get("dist_meters")),
                average_rating=to_float(row.get("average_rating")),
                review_count=to_int(row.get("review_count")),
                cuisine_tags=_parse_tags(row.get("cuisine_tags")),
                opening_hours=(str(hours) if hours else None),
            )
        )
    return results


class EstablishmentSearch:
    """Issues one ``get_establishments`` query per criteria snapshot."""

    def __init__(self, client: SupabaseClient) -> None:
        self.client = client

    def search(self, criteria: SearchCriteria) -> List[RawEstablishment]:
        params = rpc_params(criteria)
        try:
            rows = self.client.get_establishments(params)
        except SupabaseError as exc:
            logger.warning("establishment search failed: {}", exc)
            raise SearchError(str(exc)) from exc
        results = parse_establishments(rows)
        logger.debug("search text={!r} amenity={} results={}", params["search_text"], criteria.amenity, len(results))
        return results

    __call__ = search
