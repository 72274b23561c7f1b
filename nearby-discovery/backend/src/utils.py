"""Utility helpers for the discovery backend."""

from __future__ import annotations

from typing import Any, Optional


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "unset"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def normalize_text(text: Optional[str]) -> Optional[str]:
    """Collapse blank search text to None so it never becomes an empty-string match."""
    if text is None:
        return None
    cleaned = text.strip()
    return cleaned or None


def to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
