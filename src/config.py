"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. explicit path (CLI --config flag or REVIEWPULSE_CONFIG)
2. ./reviewpulse.yaml (working directory)
3. ~/.reviewpulse/config.yaml (user home)

Environment variables override YAML: REVIEWPULSE_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file exists the defaults below apply.
"""

import logging
import os
import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "REVIEWPULSE_"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class SchedulingConfig(BaseModel):
    """Daily sync window and manual-refresh cooldown."""

    sync_hour: int = Field(default=3, ge=0, le=23)
    sync_timezone: str = "Europe/Paris"
    manual_refresh_cooldown_hours: int = Field(default=24, ge=0)
    max_transaction_attempts: int = Field(default=3, ge=1)
    stuck_job_threshold_minutes: int = Field(default=30, ge=1)

    @field_validator("sync_timezone")
    @classmethod
    def known_zone(cls, value: str) -> str:
        """Reject zone names zoneinfo cannot resolve."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{value}'") from e
        return value

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.manual_refresh_cooldown_hours)


class PlanConfig(BaseModel):
    """Default source quota granted per plan at registration."""

    free_max_sources: int = Field(default=1, ge=1)
    premium_max_sources: int = Field(default=10, ge=1)

    def max_sources_for(self, plan_type: str) -> int:
        """Return the default quota for a plan name (FREE / PREMIUM)."""
        if plan_type.upper() == "PREMIUM":
            return self.premium_max_sources
        return self.free_max_sources


class MetricsConfig(BaseModel):
    """Thresholds for the success-metric funnel."""

    activation_window_days: int = Field(default=7, ge=0)
    retention_window_days: int = Field(default=28, ge=1)
    retention_login_threshold: int = Field(default=3, ge=1)
    time_to_value_target_minutes: int = Field(default=10, ge=1)


class PaginationConfig(BaseModel):
    """Page size defaults for list endpoints."""

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)


class ServerConfig(BaseModel):
    """HTTP server process settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"
    allowed_origins: str = ""

    def cors_origins(self) -> list[str]:
        """Comma-separated allowed_origins as a list; empty disables CORS."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


class ReviewPulseConfig(BaseModel):
    """Top-level configuration for the ReviewPulse backend."""

    scheduling: SchedulingConfig = SchedulingConfig()
    plans: PlanConfig = PlanConfig()
    metrics: MetricsConfig = MetricsConfig()
    pagination: PaginationConfig = PaginationConfig()
    server: ServerConfig = ServerConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "reviewpulse.yaml",
        Path.cwd() / "reviewpulse.yml",
        Path.home() / ".reviewpulse" / "config.yaml",
        Path.home() / ".reviewpulse" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(
    data: dict[str, Any], environ: dict[str, str] | None = None
) -> dict[str, Any]:
    """Apply REVIEWPULSE_<SECTION>_<KEY> env var overrides to config data.

    For example, ``REVIEWPULSE_SCHEDULING_SYNC_HOUR=4`` maps to section
    ``scheduling``, field ``sync_hour``.

    Args:
        data: Parsed YAML config dict.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Config dict with env var overrides applied.
    """
    env = os.environ if environ is None else environ
    known_sections = sorted(
        ReviewPulseConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
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
        section_data = data.setdefault(matched_section, {})
        if isinstance(section_data, dict):
            try:
                section_data[matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    section_data[matched_field] = value.lower() == "true"
                else:
                    section_data[matched_field] = value
    return data


def load_config(config_path: str | None = None) -> ReviewPulseConfig:
    """Load ReviewPulse configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.reviewpulse/).

    Returns:
        Parsed and validated ReviewPulseConfig (defaults when no file exists).

    Raises:
        FileNotFoundError: If an explicit path does not exist.
    """
    raw_data: dict[str, Any] = {}
    explicit = config_path or os.environ.get(f"{ENV_PREFIX}CONFIG", "").strip() or None
    if explicit:
        path: Path | None = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {explicit}")
    else:
        path = _find_config_file()

    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return ReviewPulseConfig(**data)


@lru_cache(maxsize=1)
def get_config() -> ReviewPulseConfig:
    """Process-wide configuration, loaded once."""
    return load_config()
