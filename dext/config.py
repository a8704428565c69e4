"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from dext.services.aggregation import EngineSettings
from dext.services.catalog_http import DEFAULT_BASE_URL, PokeApiConfig

DEFAULT_SNAPSHOT_PATH = Path("./var/pokemon_list.json")
DEFAULT_USER_AGENT = "Dext/1.0"


@dataclass(slots=True)
class Config:
    """Top-level application configuration."""

    api_base_url: str
    page_limit: int
    full_index_limit: int
    species_id_ceiling: int
    search_result_cap: int
    search_enrich_count: int
    snapshot_path: Path
    http_timeout_sec: float
    fanout_limit: int | None
    user_agent: str
    log_level: str

    def engine_settings(self) -> EngineSettings:
        return EngineSettings(
            page_limit=self.page_limit,
            full_index_limit=self.full_index_limit,
            species_id_ceiling=self.species_id_ceiling,
            search_result_cap=self.search_result_cap,
            search_enrich_count=self.search_enrich_count,
            fanout_limit=self.fanout_limit,
        )

    def api_config(self) -> PokeApiConfig:
        return PokeApiConfig(
            base_url=self.api_base_url,
            timeout_seconds=self.http_timeout_sec,
            user_agent=self.user_agent,
        )


def _optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    if not stripped and default is None:
        return None
    if not stripped:
        return default
    return stripped


def _parse_url_env(name: str, default: str) -> str:
    value = _optional_env(name, default) or default
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(f"{name} must be a valid HTTP(S) URL")
    return value.rstrip("/")


def _parse_int_env(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer value") from None
    if minimum is not None and value < minimum:
        raise RuntimeError(f"{name} must be greater than or equal to {minimum}")
    return value


def _parse_float_env(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = _optional_env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number") from None
    if value <= minimum:
        raise RuntimeError(f"{name} must be greater than {minimum:g}")
    return value


def load_config(env_file: str | None = None) -> Config:
    """Load configuration from the provided .env file (or default location)."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    fanout_raw = _parse_int_env("FANOUT_LIMIT", 0, minimum=0)
    snapshot_raw = _optional_env("SNAPSHOT_PATH")

    return Config(
        api_base_url=_parse_url_env("POKEAPI_BASE_URL", DEFAULT_BASE_URL),
        page_limit=_parse_int_env("PAGE_LIMIT", 20, minimum=1),
        full_index_limit=_parse_int_env("FULL_INDEX_LIMIT", 2000, minimum=1),
        species_id_ceiling=_parse_int_env("SPECIES_ID_CEILING", 1025, minimum=1),
        search_result_cap=_parse_int_env("SEARCH_RESULT_CAP", 50, minimum=1),
        search_enrich_count=_parse_int_env("SEARCH_ENRICH_COUNT", 20, minimum=0),
        snapshot_path=Path(snapshot_raw) if snapshot_raw else DEFAULT_SNAPSHOT_PATH,
        http_timeout_sec=_parse_float_env("HTTP_TIMEOUT_SEC", 15.0),
        fanout_limit=fanout_raw or None,
        user_agent=_optional_env("USER_AGENT", DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT,
        log_level=(_optional_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )


__all__ = ["Config", "load_config"]
