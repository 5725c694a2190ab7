"""Centralised configuration helper.

Exposes a :class:`Settings` container populated from environment variables
(after loading the project ``.env`` through *python-dotenv*).  The desktop
settings screen owns these values; the sync core only reads them, so every
component receives the same :class:`Settings` instance through its
constructor instead of calling ``os.getenv`` itself.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parents[2]

_DEFAULT_DATA_DIR = Path.home() / ".stockflow"


def _truthy(value: str | None, default: bool = False) -> bool:  # noqa: D401 – small helper
    """Return *True* when *value* looks like an affirmative string."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:  # noqa: D401 – simple data container
    """Lightweight settings container populated from environment variables."""

    # Runtime flags -----------------------------------------------------
    testing: bool

    # Remote API --------------------------------------------------------
    api_base_url: str
    request_timeout: float  # seconds, ordinary data calls
    probe_timeout: float  # seconds, health probe only

    # Sync behaviour ----------------------------------------------------
    sync_interval: float  # seconds
    auto_sync: bool
    offline_mode: bool  # forced offline, never probes

    # Inventory rules ---------------------------------------------------
    low_stock_threshold: int

    # Local persistence -------------------------------------------------
    database_url: str
    queue_max_size: int  # 0 means unbounded

    # Misc
    log_level: str
    metrics_port: int  # 0 disables the Prometheus endpoint of the daemon

    @property
    def connection_check_interval(self) -> float:
        """Probe twice per sync interval, but never more often than every 5 seconds."""
        return max(5.0, self.sync_interval / 2)

    # Helper for the settings screen / tests to override values at runtime
    def override(self, **kwargs: Any) -> None:
        for key, value in kwargs.items():
            if not hasattr(self, key):
                raise AttributeError(f"Settings has no attribute '{key}'")
            setattr(self, key, value)


def _default_database_url() -> str:
    return f"sqlite:///{_DEFAULT_DATA_DIR / 'offline.db'}"


def _load_settings() -> Settings:  # noqa: D401 – helper
    """Populate :class:`Settings` from environment variables."""

    env_path = _REPO_ROOT / ".env"
    if env_path.exists():
        # Explicit process env wins over the project file
        load_dotenv(env_path, override=False)

    testing = _truthy(os.getenv("TESTING"))

    return Settings(
        testing=testing,
        api_base_url=os.getenv("STOCKFLOW_API_URL", "http://localhost:8080/api").rstrip("/"),
        request_timeout=float(os.getenv("STOCKFLOW_REQUEST_TIMEOUT", "10")),
        probe_timeout=float(os.getenv("STOCKFLOW_PROBE_TIMEOUT", "5")),
        sync_interval=float(os.getenv("STOCKFLOW_SYNC_INTERVAL", "60")),
        auto_sync=_truthy(os.getenv("STOCKFLOW_AUTO_SYNC"), default=True),
        offline_mode=_truthy(os.getenv("STOCKFLOW_OFFLINE_MODE")),
        low_stock_threshold=int(os.getenv("STOCKFLOW_LOW_STOCK_THRESHOLD", "10")),
        database_url=os.getenv("STOCKFLOW_DATABASE_URL") or _default_database_url(),
        queue_max_size=int(os.getenv("STOCKFLOW_QUEUE_MAX_SIZE", "0")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        metrics_port=int(os.getenv("STOCKFLOW_METRICS_PORT", "0")),
    )


def _validate(settings: Settings) -> None:  # noqa: D401 – helper
    """Reject values the sync core cannot work with."""

    problems = []
    if settings.request_timeout <= 0:
        problems.append("STOCKFLOW_REQUEST_TIMEOUT must be > 0")
    if settings.probe_timeout <= 0:
        problems.append("STOCKFLOW_PROBE_TIMEOUT must be > 0")
    if settings.sync_interval <= 0:
        problems.append("STOCKFLOW_SYNC_INTERVAL must be > 0")
    if settings.low_stock_threshold < 0:
        problems.append("STOCKFLOW_LOW_STOCK_THRESHOLD must be >= 0")
    if settings.queue_max_size < 0:
        problems.append("STOCKFLOW_QUEUE_MAX_SIZE must be >= 0")

    if problems:
        raise RuntimeError("Invalid stockflow configuration: " + "; ".join(problems))

    if settings.probe_timeout >= settings.request_timeout:
        logger.warning(
            "Probe timeout (%ss) is not shorter than the request timeout (%ss); "
            "connectivity detection will be slow",
            settings.probe_timeout,
            settings.request_timeout,
        )


def get_settings() -> Settings:  # noqa: D401 – public accessor
    """Return :class:`Settings` instance loaded from environment."""

    settings = _load_settings()
    _validate(settings)
    return settings


__all__ = [
    "Settings",
    "get_settings",
]
