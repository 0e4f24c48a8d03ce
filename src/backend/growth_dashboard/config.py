"""
Environment driven settings for the growth dashboard.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class EventSourceConfig(BaseModel):
    database_url: Optional[str] = None
    rest_url: Optional[str] = None
    rest_api_key: Optional[str] = None
    table_name: str = "analytics_events"
    request_timeout_seconds: int = 10


class WindowConfig(BaseModel):
    lookback_days: int = 30
    """How far back the dashboard looks, in days."""

    row_limit: int = 5000
    """Maximum rows fetched per window; newest rows win."""


class GrowthDashboardConfig(BaseModel):
    source: EventSourceConfig = EventSourceConfig()
    window: WindowConfig = WindowConfig()
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_config(use_dotenv: Optional[bool] = None) -> GrowthDashboardConfig:
    if use_dotenv is None:
        use_dotenv = _env_bool("GROWTH_LOAD_DOTENV", True)
    if use_dotenv:
        load_dotenv()

    cfg = GrowthDashboardConfig()
    cfg.source = EventSourceConfig(
        database_url=os.getenv("GROWTH_DATABASE_URL", cfg.source.database_url),
        rest_url=os.getenv("GROWTH_REST_URL", cfg.source.rest_url),
        rest_api_key=os.getenv("GROWTH_REST_API_KEY", cfg.source.rest_api_key),
        table_name=os.getenv("GROWTH_EVENTS_TABLE", cfg.source.table_name),
        request_timeout_seconds=_env_int(
            "GROWTH_REQUEST_TIMEOUT_SECONDS", cfg.source.request_timeout_seconds
        ),
    )
    cfg.window = WindowConfig(
        lookback_days=_env_int("GROWTH_LOOKBACK_DAYS", cfg.window.lookback_days),
        row_limit=_env_int("GROWTH_ROW_LIMIT", cfg.window.row_limit),
    )
    cfg.log_level = os.getenv("GROWTH_LOG_LEVEL", cfg.log_level).upper()
    return cfg


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("backend.growth_dashboard")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s", "%Y-%m-%d %H:%M:%S")
        )
        logger.addHandler(console_handler)

    return logger
