"""Application settings management for readlater."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "settings.yaml"
ENV_SETTINGS_PATH = "READLATER_SETTINGS"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"


@dataclass
class FetchSettings:
    """Limits and headers applied to every upstream article fetch."""

    timeout_seconds: float = 20.0
    max_bytes: int = 5 * 1024 * 1024
    user_agent: str = DEFAULT_USER_AGENT
    accept: str = DEFAULT_ACCEPT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE
    chunk_size: int = 16 * 1024


@dataclass
class CacheSettings:
    """Bounds for the in-process extracted-article cache."""

    max_entries: int = 128


@dataclass
class AppSettings:
    """Top-level application settings loaded from YAML."""

    database_url: str = "sqlite:///readlater.db"
    fetch: FetchSettings = field(default_factory=FetchSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)


class SettingsError(RuntimeError):
    """Raised when there is an issue loading settings."""


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise SettingsError(f"Settings file not found at {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise SettingsError("Settings file must define a mapping at the root level")
    return data


def _parse_fetch(entry: Dict[str, Any]) -> FetchSettings:
    if not isinstance(entry, dict):
        raise SettingsError("'fetch' must be a mapping of configuration values")

    try:
        timeout = float(entry.get("timeout_seconds", 20.0))
        max_bytes = int(entry.get("max_bytes", 5 * 1024 * 1024))
        chunk_size = int(entry.get("chunk_size", 16 * 1024))
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"Invalid numeric value in 'fetch': {exc}") from exc

    if timeout <= 0:
        raise SettingsError("'fetch.timeout_seconds' must be positive")
    if max_bytes <= 0:
        raise SettingsError("'fetch.max_bytes' must be positive")

    return FetchSettings(
        timeout_seconds=timeout,
        max_bytes=max_bytes,
        user_agent=str(entry.get("user_agent", DEFAULT_USER_AGENT)),
        accept=str(entry.get("accept", DEFAULT_ACCEPT)),
        accept_language=str(entry.get("accept_language", DEFAULT_ACCEPT_LANGUAGE)),
        chunk_size=max(1024, chunk_size),
    )


def _parse_cache(entry: Dict[str, Any]) -> CacheSettings:
    if not isinstance(entry, dict):
        raise SettingsError("'cache' must be a mapping of configuration values")
    return CacheSettings(max_entries=int(entry.get("max_entries", 128)))


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load application settings from YAML into ``AppSettings``.

    ``path`` defaults to the value of the ``READLATER_SETTINGS`` environment variable
    and falls back to ``config/settings.yaml`` relative to the project root.
    """

    if path is None:
        env_path = os.environ.get(ENV_SETTINGS_PATH)
        if env_path:
            path = Path(env_path)
        else:
            path = DEFAULT_SETTINGS_PATH

    data = _load_yaml(path)

    database_url = str(data.get("database_url", "sqlite:///readlater.db"))

    fetch_raw = data.get("fetch", {})
    fetch_settings = _parse_fetch(fetch_raw) if fetch_raw else FetchSettings()

    cache_raw = data.get("cache", {})
    cache_settings = _parse_cache(cache_raw) if cache_raw else CacheSettings()

    return AppSettings(
        database_url=database_url,
        fetch=fetch_settings,
        cache=cache_settings,
    )


__all__ = [
    "AppSettings",
    "CacheSettings",
    "FetchSettings",
    "SettingsError",
    "load_settings",
]
