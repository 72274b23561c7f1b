from __future__ import annotations

import os
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from utils import mask_secret


class Configuration(BaseModel):
    # Supabase
    supabase_url: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    supabase_timeout: int = Field(default=15)

    # Search defaults (origin is fixed until device location is wired in)
    origin_lat: float = Field(default=39.87)
    origin_long: float = Field(default=32.75)
    search_radius_meters: int = Field(default=5000)
    page_size: int = Field(default=50)

    # Filtering pipeline
    debounce_ms: int = Field(default=600)
    popular_min_reviews: int = Field(default=10)
    timezone: str = Field(default="Europe/Istanbul")
    clock_refresh_seconds: float = Field(default=60.0)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "supabase_url": os.getenv("SUPABASE_URL"),
            "supabase_anon_key": os.getenv("SUPABASE_ANON_KEY"),
            "supabase_timeout": os.getenv("SUPABASE_TIMEOUT"),
            "origin_lat": os.getenv("ORIGIN_LAT"),
            "origin_long": os.getenv("ORIGIN_LONG"),
            "search_radius_meters": os.getenv("SEARCH_RADIUS_METERS"),
            "page_size": os.getenv("PAGE_SIZE"),
            "debounce_ms": os.getenv("DEBOUNCE_MS"),
            "popular_min_reviews": os.getenv("POPULAR_MIN_REVIEWS"),
            "timezone": os.getenv("DISCOVERY_TIMEZONE"),
            "clock_refresh_seconds": os.getenv("CLOCK_REFRESH_SECONDS"),
        }

        for k, v in env_map.items():
            if v is None or v == "":
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_supabase(self) -> None:
        if not self.supabase_url:
            raise ValueError("SUPABASE_URL is required")
        if not self.supabase_anon_key:
            raise ValueError("SUPABASE_ANON_KEY is required")

    @property
    def debounce_seconds(self) -> float:
        return max(self.debounce_ms, 0) / 1000.0

    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def log_summary(self) -> str:
        return (
            "supabase=%s timeout=%s origin=%.4f,%.4f radius_m=%s page_size=%s debounce_ms=%s tz=%s anon_key=%s"
            % (
                self.supabase_url or "unset",
                self.supabase_timeout,
                self.origin_lat,
                self.origin_long,
                self.search_radius_meters,
                self.page_size,
                self.debounce_ms,
                self.timezone,
                mask_secret(self.supabase_anon_key),
            )
        )
