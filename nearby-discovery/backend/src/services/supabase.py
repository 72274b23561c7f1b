from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from loguru import logger

from config import Configuration


class SupabaseError(RuntimeError):
    pass


class SupabaseClient:
    """Thin PostgREST RPC client; retries are left to the caller."""

    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = (cfg.supabase_url or "").rstrip("/")
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        key = self.cfg.supabase_anon_key or ""
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "apikey": key,
            "Authorization": f"Bearer {key}",
        }

    def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base}/rest/v1/rpc/{function}"
        try:
            resp = self.session.post(
                url,
                headers=self._headers(),
                json=params,
                timeout=self.cfg.supabase_timeout,
            )
        except requests.RequestException as exc:
            raise SupabaseError(f"request error: {exc}") from exc

        if not resp.ok:
            raise SupabaseError(f"upstream {resp.status_code}: {_error_message(resp)}")

        try:
            return resp.json()
        except ValueError:
            raise SupabaseError("invalid json response") from None

    def get_establishments(self, params: Dict[str, Any]) -> Any:
        logger.debug("rpc get_establishments params={}", params)
        return self.rpc("get_establishments", params)

    def get_establishment_details(self, establishment_id: str, *, lat: float, long: float) -> Any:
        return self.rpc(
            "get_establishment_details",
            {"input_id": establishment_id, "user_lat": lat, "user_long": long},
        )


def _error_message(resp: requests.Response) -> str:
    # PostgREST reports {"message": ..., "code": ...}
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])[:300]
    return resp.text[:300]
