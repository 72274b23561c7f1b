from __future__ import annotations

import pytest

from config import Configuration


def test_from_env_reads_and_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "abcdefghijklmnop")
    monkeypatch.setenv("DEBOUNCE_MS", "250")
    monkeypatch.setenv("POPULAR_MIN_REVIEWS", "")

    cfg = Configuration.from_env({"page_size": 20, "timezone": None})

    assert cfg.supabase_url == "https://proj.supabase.co"
    assert cfg.debounce_ms == 250
    assert cfg.debounce_seconds == pytest.approx(0.25)
    assert cfg.popular_min_reviews == 10
    assert cfg.page_size == 20
    assert cfg.timezone == "Europe/Istanbul"


def test_require_supabase() -> None:
    with pytest.raises(ValueError, match="SUPABASE_URL"):
        Configuration().require_supabase()
    with pytest.raises(ValueError, match="SUPABASE_ANON_KEY"):
        Configuration(supabase_url="https://x.supabase.co").require_supabase()


def test_log_summary_masks_key() -> None:
    cfg = Configuration(supabase_url="https://x.supabase.co", supabase_anon_key="abcdefghijklmnop")
    summary = cfg.log_summary()
    assert "abcd...mnop" in summary
    assert "abcdefghijklmnop" not in summary
