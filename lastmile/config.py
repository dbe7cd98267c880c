"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. explicit path passed to ``load_config``
2. ./lastmile.yaml (working directory)
3. ~/.lastmile/config.yaml (user home)

Environment variables override YAML: LASTMILE_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file is found the defaults below are used (env overrides still apply).
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_ENV_PREFIX = "LASTMILE_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class WarehouseConfig(BaseModel):
    """Origin of every delivery route."""

    address: str = ""


class AIConfig(BaseModel):
    """Generative address standardization settings."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 512
    max_attempts: int = 5
    attempt_timeout_seconds: float = 20.0
    backoff_seconds: float = 5.0
    concurrency: int = 10


class GeocodeConfig(BaseModel):
    """Mapping provider (TomTom) endpoints and retry budget."""

    api_key: str = ""
    geocode_url: str = "https://api.tomtom.com/search/2/geocode"
    routing_url: str = "https://api.tomtom.com/routing/1/calculateRoute"
    country_set: str = "VN"
    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 10.0
    request_timeout_seconds: float = 15.0
    concurrency: int = 2


class RouteCacheConfig(BaseModel):
    """Route cache staleness window, symmetric around now."""

    window_hours: float = 1.0


class FeedConfig(BaseModel):
    """External order feed and order-status service."""

    source: str = "default"
    orders_url: str = ""
    status_url: str = ""
    request_timeout_seconds: float = 15.0
    status_concurrency: int = 10
    status_map: dict[str, str] = {
        "Chờ xác nhận giao/lấy hàng": "awaiting",
        "Đang giao": "in-transit",
        "Hoàn thành": "completed",
    }


class SchedulerSettings(BaseModel):
    """Worklist ordering thresholds."""

    page_size: int = 10
    far_distance_km: float = 100.0
    imminent_window_minutes: int = 120


class NotesConfig(BaseModel):
    """Delivery note deadline arithmetic."""

    average_travel_minutes: int = 15
    buffer_minutes: int = 15


class PipelineConfig(BaseModel):
    """Address resolution pipeline behavior."""

    timezone: str = "Asia/Ho_Chi_Minh"
    overdue_after_minutes: int = 15
    express_address: str = "CHUYỂN PHÁT NHANH"

    @field_validator("overdue_after_minutes")
    @classmethod
    def non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("overdue_after_minutes must be >= 0")
        return value


class LoggingConfig(BaseModel):
    """Process logging, applied by ``open_dispatch_service``."""

    level: str = "INFO"
    format: str = "text"


class DispatchConfig(BaseModel):
    """Top-level configuration for the dispatch pipeline."""

    warehouse: WarehouseConfig = WarehouseConfig()
    ai: AIConfig = AIConfig()
    geocode: GeocodeConfig = GeocodeConfig()
    route_cache: RouteCacheConfig = RouteCacheConfig()
    feed: FeedConfig = FeedConfig()
    scheduler: SchedulerSettings = SchedulerSettings()
    notes: NotesConfig = NotesConfig()
    pipeline: PipelineConfig = PipelineConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "lastmile.yaml",
        Path.cwd() / "lastmile.yml",
        Path.home() / ".lastmile" / "config.yaml",
        Path.home() / ".lastmile" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply LASTMILE_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix so ``route_cache`` wins over a
    hypothetical ``route`` section. For example,
    ``LASTMILE_ROUTE_CACHE_WINDOW_HOURS`` maps to section ``route_cache``,
    field ``window_hours``.
    """
    known_sections = sorted(
        DispatchConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        suffix = key[len(_ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Pydantic coerces the raw string to the field type.
            data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> DispatchConfig:
    """Load dispatch configuration from YAML with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.lastmile/).

    Returns:
        Validated DispatchConfig (defaults when no file is found).

    Raises:
        FileNotFoundError: If an explicit path does not exist.
    """
    raw_data: dict[str, Any] = {}
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path, encoding="utf-8") as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return DispatchConfig(**data)
