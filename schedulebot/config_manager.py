"""Configuration management for schedulebot."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .exceptions import ConfigError
from .models import CalendarSource, ScheduleConfig
from .timezone_utils import DEFAULT_TIMEZONE, get_zone

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCHEDULEBOT_"
TRUTHY = ("1", "true", "yes", "on")


def _env(key: str) -> str | None:
    value = os.environ.get(ENV_PREFIX + key)
    if value is None:
        return None
    value = value.strip()
    return value or None


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.warning("Failed to read .env file %s", self.env_file_path, exc_info=True)
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from SCHEDULEBOT_* environment variables.

        Recognizes:
        - SCHEDULEBOT_CAL_URL -> 'calendar'
        - SCHEDULEBOT_PLAN_URLS (comma separated) -> 'plans'
        - SCHEDULEBOT_NAME -> 'name'
        - SCHEDULEBOT_TIMEZONE -> 'timezone'
        - SCHEDULEBOT_REQUEST_TIMEOUT / SCHEDULEBOT_MAX_RETRIES -> fetch settings
        - SCHEDULEBOT_DEDUPE_PLAN_OVERRIDES / SCHEDULEBOT_EXPAND_PLAN_RULES -> flags
        """
        cfg: dict[str, Any] = {}

        cal_url = _env("CAL_URL")
        if cal_url:
            cfg["calendar"] = {"name": "calendar", "url": cal_url}

        plan_urls = _env("PLAN_URLS")
        if plan_urls:
            urls = [u.strip() for u in plan_urls.split(",") if u.strip()]
            cfg["plans"] = [{"name": f"plan-{i + 1}", "url": url} for i, url in enumerate(urls)]

        name = _env("NAME")
        if name:
            cfg["name"] = name

        timezone = _env("TIMEZONE")
        if timezone:
            cfg["timezone"] = get_zone(timezone).key

        for key, field in (("REQUEST_TIMEOUT", "request_timeout"), ("MAX_RETRIES", "max_retries")):
            raw = _env(key)
            if raw is None:
                continue
            try:
                cfg[field] = int(raw)
            except ValueError:
                logger.warning("Invalid %s%s=%r; ignoring", ENV_PREFIX, key, raw)

        for key, field in (
            ("DEDUPE_PLAN_OVERRIDES", "dedupe_plan_overrides"),
            ("EXPAND_PLAN_RULES", "expand_plan_rules"),
        ):
            raw = _env(key)
            if raw is not None:
                cfg[field] = raw.lower() in TRUTHY

        return cfg

    def load_config(self) -> ScheduleConfig:
        """Load .env file and build a validated ScheduleConfig from the environment.

        Raises:
            ConfigError: If the resulting configuration is invalid
        """
        self.load_env_file()
        raw = self.build_config_from_env()
        try:
            return ScheduleConfig(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e


def require_calendar(config: ScheduleConfig) -> CalendarSource:
    """The primary calendar source, which every schedule needs.

    Raises:
        ConfigError: If no primary calendar is configured
    """
    if config.calendar is None:
        raise ConfigError(f"{ENV_PREFIX}CAL_URL is not set")
    return config.calendar


def get_default_timezone(fallback: str = DEFAULT_TIMEZONE) -> str:
    """Configured IANA timezone, validated, or ``fallback``."""
    return get_zone(_env("TIMEZONE"), fallback).key
