"""Tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from astrolabe.core.config import Settings, get_settings


def test_defaults() -> None:
    settings = Settings()
    assert settings.snippet_quota_bytes == 5 * 1024 * 1024
    assert settings.render_debounce_ms == 1500
    assert settings.render_debounce_seconds == 1.5
    assert settings.date_format == "smart"
    assert (settings.sort_by, settings.sort_order) == ("modified", "desc")


def test_yaml_sections_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n"
        "  snippet_quota_bytes: 1024\n"
        "performance:\n"
        "  render_debounce_ms: 500\n"
        "formatting:\n"
        "  date_format: iso\n"
        "fetch:\n"
        "  timeout_seconds: 5\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ASTRO_CONFIG", str(config))
    monkeypatch.setenv("ASTRO_RENDER_DEBOUNCE_MS", "2000")

    settings = get_settings()
    assert settings.snippet_quota_bytes == 1024
    assert settings.render_debounce_ms == 2000
    assert settings.date_format == "iso"
    assert settings.fetch_timeout_seconds == 5
    assert settings.snippets_path == tmp_path / "snippets.db"


def test_render_debounce_is_bounded() -> None:
    with pytest.raises(ValidationError):
        Settings(render_debounce_ms=100)
    with pytest.raises(ValidationError):
        Settings(render_debounce_ms=5000)
    with pytest.raises(ValidationError):
        Settings(date_format="weekday")
