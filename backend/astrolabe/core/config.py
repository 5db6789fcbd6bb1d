"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "ASTRO_"
DEFAULT_CONFIG_PATH = Path("~/.config/astrolabe/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "snippets_path"): "snippets_path",
    ("storage", "datasets_path"): "datasets_path",
    ("storage", "snippet_quota_bytes"): "snippet_quota_bytes",
    ("performance", "render_debounce_ms"): "render_debounce_ms",
    ("performance", "autosave_debounce_ms"): "autosave_debounce_ms",
    ("formatting", "date_format"): "date_format",
    ("formatting", "custom_date_format"): "custom_date_format",
    ("listing", "sort_by"): "sort_by",
    ("listing", "sort_order"): "sort_order",
    ("fetch", "timeout_seconds"): "fetch_timeout_seconds",
    ("ingest", "type_sample_size"): "type_sample_size",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    snippets_path: Path = Field(default=Path.home() / ".astrolabe" / "snippets.db")
    datasets_path: Path = Field(default=Path.home() / ".astrolabe" / "datasets.db")
    snippet_quota_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    render_debounce_ms: int = Field(default=1500, ge=300, le=3000)
    autosave_debounce_ms: int = Field(default=1000, ge=0)
    date_format: Literal["smart", "locale", "iso", "custom"] = "smart"
    custom_date_format: str = "yyyy-MM-dd HH:mm"
    sort_by: Literal["name", "created", "modified", "size"] = "modified"
    sort_order: Literal["asc", "desc"] = "desc"
    fetch_timeout_seconds: float = 30.0
    type_sample_size: int = Field(default=100, gt=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("snippets_path", "datasets_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("store paths must be a path or string")

    @property
    def render_debounce_seconds(self) -> float:
        return self.render_debounce_ms / 1000

    @property
    def autosave_debounce_seconds(self) -> float:
        return self.autosave_debounce_ms / 1000

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with ASTRO_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
