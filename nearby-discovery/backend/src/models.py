"""Data models for the nearby discovery pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class Amenity(str, Enum):
    ALL = "all"
    RESTAURANT = "restaurant"
    CAFE = "cafe"


RATING_STEPS: Tuple[float, ...] = (0.0, 3.0, 4.0, 4.5)


class OpenState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    UNKNOWN = "unknown"


class QueryStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(frozen=True)
class FilterState:
    search_text: str = ""
    amenity: Amenity = Amenity.ALL
    min_rating: float = 0.0
    popular_only: bool = False
    open_now_only: bool = True

    def __post_init__(self) -> None:
        try:
            amenity = Amenity(self.amenity)
        except ValueError:
            raise ValueError(f"unknown amenity: {self.amenity!r}") from None
        try:
            rating = float(self.min_rating)
        except (TypeError, ValueError):
            raise ValueError(f"invalid min_rating: {self.min_rating!r}") from None
        if rating not in RATING_STEPS:
            raise ValueError(f"min_rating must be one of {RATING_STEPS}, got {rating}")
        text = "" if self.search_text is None else self.search_text
        if not isinstance(text, str):
            raise ValueError(f"search_text must be a string, got {self.search_text!r}")
        for name in ("popular_only", "open_now_only"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be true or false, got {getattr(self, name)!r}")
        object.__setattr__(self, "amenity", amenity)
        object.__setattr__(self, "min_rating", rating)
        object.__setattr__(self, "search_text", text)

    def server_key(self) -> Tuple[str, Amenity, float, bool]:
        """Fields evaluated by the backend; open_now_only is evaluated locally."""
        return (self.search_text, self.amenity, self.min_rating, self.popular_only)

    def with_changes(self, **changes: Any) -> "FilterState":
        return replace(self, **changes)


@dataclass(frozen=True)
class RawEstablishment:
    id: str
    name: str
    amenity: str
    distance_meters: float
    average_rating: float = 0.0
    review_count: int = 0
    cuisine_tags: Tuple[str, ...] = ()
    opening_hours: Optional[str] = None


@dataclass(frozen=True)
class SearchCriteria:
    origin_lat: float
    origin_long: float
    radius_meters: int
    text: Optional[str] = None
    amenity: Optional[str] = None
    min_rating: float = 0.0
    min_review_count: int = 0
    page_size: int = 50
    page_offset: int = 0


@dataclass(frozen=True)
class ViewModel:
    items: Tuple[RawEstablishment, ...] = ()

    def __iter__(self) -> Iterator[RawEstablishment]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def ids(self) -> List[str]:
        return [item.id for item in self.items]


@dataclass(frozen=True)
class DiscoverySnapshot:
    filters: FilterState
    view: ViewModel
    status: QueryStatus
    is_loading: bool
    last_error: Optional[str] = None
    request_seq: int = 0


@dataclass
class MenuItem:
    name: str
    price: Optional[float] = None
    description: Optional[str] = None


@dataclass
class Review:
    id: str
    user_name: str
    rating: float
    comment: str = ""
    created_at: Optional[str] = None
    is_verified: bool = False
    media_url: Optional[str] = None


@dataclass
class EstablishmentDetails:
    id: str
    name: str
    amenity: str
    distance_meters: float
    rating: float = 0.0
    review_count: int = 0
    opening_hours: Optional[str] = None
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    menu: Dict[str, List[MenuItem]] = field(default_factory=dict)
    reviews: List[Review] = field(default_factory=list)
