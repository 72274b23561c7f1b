from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from config import Configuration
from models import DiscoverySnapshot, EstablishmentDetails, FilterState, RawEstablishment
from services.coordinator import DiscoveryCoordinator
from services.details import fetch_details
from services.presentation import format_distance, format_rating, hours_hint, menu_preview, open_status_label
from services.projector import project
from services.search import EstablishmentSearch, SearchError, build_criteria
from services.supabase import SupabaseClient, SupabaseError


load_dotenv()

app = FastAPI(title="Nearby Discovery")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

FILTER_FIELDS = ("search_text", "amenity", "min_rating", "popular_only", "open_now_only")


def get_config() -> Configuration:
    return Configuration.from_env()


def get_client(cfg: Configuration = Depends(get_config)) -> SupabaseClient:
    try:
        cfg.require_supabase()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return SupabaseClient(cfg)


def get_search(client: SupabaseClient = Depends(get_client)) -> Callable[..., Any]:
    return EstablishmentSearch(client)


def get_clock(cfg: Configuration = Depends(get_config)) -> Callable[[], datetime]:
    tz = cfg.tzinfo()
    return lambda: datetime.now(tz)


class EstablishmentPayload(BaseModel):
    id: str
    name: str
    amenity: str
    distance_meters: float
    distance_label: str
    average_rating: float
    rating_label: str
    review_count: int
    cuisine_tags: List[str] = []
    opening_hours: Optional[str] = None
    hours_hint: str
    status: str
    status_tone: str


class DiscoveryResponse(BaseModel):
    items: List[EstablishmentPayload]
    count: int
    raw_count: int
    filters: Dict[str, Any]
    evaluated_at: str


class MenuItemPayload(BaseModel):
    name: str
    price: Optional[float] = None
    description: Optional[str] = None


class ReviewPayload(BaseModel):
    id: str
    user_name: str
    rating: float
    comment: str
    created_at: Optional[str] = None
    is_verified: bool = False
    media_url: Optional[str] = None


class DetailsPayload(BaseModel):
    id: str
    name: str
    amenity: str
    distance_meters: float
    distance_label: str
    rating: float
    rating_label: str
    review_count: int
    opening_hours: Optional[str] = None
    status: str
    status_tone: str
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    menu: Dict[str, List[MenuItemPayload]] = {}
    menu_categories: int = 0
    reviews: List[ReviewPayload] = []


def _filters_dict(filters: FilterState) -> Dict[str, Any]:
    return {
        "search_text": filters.search_text,
        "amenity": filters.amenity.value,
        "min_rating": filters.min_rating,
        "popular_only": filters.popular_only,
        "open_now_only": filters.open_now_only,
    }


def to_payload(e: RawEstablishment, now: datetime) -> EstablishmentPayload:
    label = open_status_label(e.opening_hours, now)
    return EstablishmentPayload(
        id=e.id,
        name=e.name,
        amenity=e.amenity,
        distance_meters=e.distance_meters,
        distance_label=format_distance(e.distance_meters),
        average_rating=e.average_rating,
        rating_label=format_rating(e.average_rating),
        review_count=e.review_count,
        cuisine_tags=list(e.cuisine_tags),
        opening_hours=e.opening_hours,
        hours_hint=hours_hint(e.opening_hours),
        status=label.text,
        status_tone=label.tone,
    )


def details_payload(d: EstablishmentDetails, now: datetime, *, expanded: bool) -> DetailsPayload:
    label = open_status_label(d.opening_hours, now)
    menu = menu_preview(d.menu, expanded=expanded)
    return DetailsPayload(
        id=d.id,
        name=d.name,
        amenity=d.amenity,
        distance_meters=d.distance_meters,
        distance_label=format_distance(d.distance_meters),
        rating=d.rating,
        rating_label=format_rating(d.rating),
        review_count=d.review_count,
        opening_hours=d.opening_hours,
        status=label.text,
        status_tone=label.tone,
        phone=d.phone,
        latitude=d.latitude,
        longitude=d.longitude,
        menu={
            category: [MenuItemPayload(name=i.name, price=i.price, description=i.description) for i in items]
            for category, items in menu.items()
        },
        menu_categories=len(d.menu),
        reviews=[
            ReviewPayload(
                id=r.id,
                user_name=r.user_name,
                rating=r.rating,
                comment=r.comment,
                created_at=r.created_at,
                is_verified=r.is_verified,
                media_url=r.media_url,
            )
            for r in d.reviews
        ],
    )


def snapshot_message(snap: DiscoverySnapshot, now: datetime) -> Dict[str, Any]:
    return {
        "type": "snapshot",
        "status": snap.status.value,
        "is_loading": snap.is_loading,
        "last_error": snap.last_error,
        "request_seq": snap.request_seq,
        "filters": _filters_dict(snap.filters),
        "items": [to_payload(e, now).model_dump() for e in snap.view],
    }


@app.get("/healthz")
def healthz(cfg: Configuration = Depends(get_config)) -> dict:
    logger.info("cfg: {}", cfg.log_summary())
    return {"status": "ok"}


@app.get("/establishments", response_model=DiscoveryResponse)
async def list_establishments(
    q: str = "",
    amenity: str = "all",
    min_rating: float = 0.0,
    popular: bool = False,
    open_now: bool = True,
    cfg: Configuration = Depends(get_config),
    search: Callable[..., Any] = Depends(get_search),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DiscoveryResponse:
    try:
        filters = FilterState(
            search_text=q,
            amenity=amenity,
            min_rating=min_rating,
            popular_only=popular,
            open_now_only=open_now,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    criteria = build_criteria(filters, cfg)
    try:
        raw = await asyncio.to_thread(search, criteria)
    except SearchError as exc:
        raise HTTPException(status_code=502, detail=exc.message)

    now = clock()
    view = project(raw, filters.open_now_only, now)
    logger.info(
        "discovery text={!r} amenity={} min_rating={} popular={} open_now={} raw={} shown={}",
        criteria.text,
        criteria.amenity,
        criteria.min_rating,
        filters.popular_only,
        filters.open_now_only,
        len(raw),
        len(view),
    )
    return DiscoveryResponse(
        items=[to_payload(e, now) for e in view],
        count=len(view),
        raw_count=len(raw),
        filters=_filters_dict(filters),
        evaluated_at=now.isoformat(),
    )


@app.get("/establishments/{establishment_id}", response_model=DetailsPayload)
async def establishment_details(
    establishment_id: str,
    expanded: bool = False,
    cfg: Configuration = Depends(get_config),
    client: SupabaseClient = Depends(get_client),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DetailsPayload:
    try:
        details = await asyncio.to_thread(fetch_details, client, cfg, establishment_id)
    except SupabaseError as exc:
        logger.warning("details failed for {}: {}", establishment_id, exc)
        raise HTTPException(status_code=502, detail=str(exc))
    if details is None:
        raise HTTPException(status_code=404, detail="establishment not found")
    return details_payload(details, clock(), expanded=expanded)


def handle_message(coordinator: DiscoveryCoordinator, message: Any) -> Optional[str]:
    """Apply one client message; returns an error string when it is rejected."""
    if not isinstance(message, dict):
        return "message must be a JSON object"
    kind = message.get("type")
    if kind == "filters":
        changes = {k: message[k] for k in FILTER_FIELDS if k in message}
        if not changes:
            return "no filter fields in message"
        try:
            coordinator.set_filters(**changes)
        except (TypeError, ValueError) as exc:
            return str(exc)
    elif kind == "retry":
        coordinator.retry()
    elif kind == "refresh":
        coordinator.refresh_clock()
    else:
        return f"unknown message type: {kind!r}"
    return None


async def _pump(websocket: WebSocket, outbox: "asyncio.Queue[Dict[str, Any]]") -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


@app.websocket("/discover")
async def discover(
    websocket: WebSocket,
    cfg: Configuration = Depends(get_config),
    search: Callable[..., Any] = Depends(get_search),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> None:
    """Live discovery session; one coordinator per connection."""
    await websocket.accept()
    outbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
    coordinator = DiscoveryCoordinator(cfg, search, clock=clock)
    coordinator.subscribe(lambda snap: outbox.put_nowait(snapshot_message(snap, clock())))
    sender = asyncio.create_task(_pump(websocket, outbox))
    coordinator.start()
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                outbox.put_nowait({"type": "error", "message": "invalid json"})
                continue
            error = handle_message(coordinator, message)
            if error:
                outbox.put_nowait({"type": "error", "message": error})
    except WebSocketDisconnect:
        logger.info("discover session closed after {} queries ({} stale)", coordinator.queries_issued, coordinator.stale_responses)
    finally:
        coordinator.close()
        sender.cancel()
        (outcome,) = await asyncio.gather(sender, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.warning("discover sender stopped: {}", outcome)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
