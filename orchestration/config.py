"""Configuration helpers for the orchestration client."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Every field can be overridden through the environment (or a `.env` file next
    to the package, loaded on import). The transport and deployment resolver
    read their defaults from here unless given explicit values.
    """

    base_url: str = os.getenv(
        "AICORE_BASE_URL", "https://api.ai.prod.eu-central-1.aws.ml.hana.ondemand.com/v2"
    )
    auth_token: Optional[str] = os.getenv("AICORE_AUTH_TOKEN")
    resource_group: str = os.getenv("AICORE_RESOURCE_GROUP", "default")
    request_timeout: float = _get_env_float("ORCHESTRATION_TIMEOUT", 60.0)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Apply a basic logging setup for scripts using the client.

    The library itself never configures logging; call this from an entrypoint.
    """

    resolved = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
