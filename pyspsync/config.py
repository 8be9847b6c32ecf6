"""Configuration for PySpSync.

Every setting comes from the environment so the tool can run unattended
inside CI workflows. A module-level ``config`` instance is shared by the
CLI and the API client.
"""

import os
from typing import Optional

from .exceptions import SpSyncConfigError
from .utils import DEFAULT_TIMEOUT, GRAPH_API_URL

ENV_PREFIX = "SPSYNC_"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int) -> int:
    """Read an integer setting, falling back to ``default`` when unset or invalid."""
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = _env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Config:
    """Settings for a sync run, read from ``SPSYNC_*`` environment variables."""

    def __init__(self) -> None:
        self.reload()

    def reload(self) -> None:
        """Re-read all settings from the environment."""
        self.access_token: Optional[str] = _env("ACCESS_TOKEN")
        self.graph_url: str = _env("GRAPH_URL") or GRAPH_API_URL
        self.drive_id: Optional[str] = _env("DRIVE_ID")
        self.folder_id: Optional[str] = _env("FOLDER_ID")
        self.delay_ms: int = max(0, _env_int("DELAY", 0))
        self.timeout: float = _env_float("TIMEOUT", DEFAULT_TIMEOUT)

        self.upload_max_retries: int = _env_int("UPLOAD_MAX_RETRIES", 2)
        self.upload_base_delay_ms: int = _env_int("UPLOAD_BASE_DELAY", 1000)
        self.download_max_retries: int = _env_int("DOWNLOAD_MAX_RETRIES", 3)
        self.download_base_delay_ms: int = _env_int("DOWNLOAD_BASE_DELAY", 2000)
        self.publish_max_retries: int = _env_int("PUBLISH_MAX_RETRIES", 5)
        self.publish_base_delay_ms: int = _env_int("PUBLISH_BASE_DELAY", 1000)

    def is_configured(self) -> bool:
        """Check whether an access token is available."""
        return bool(self.access_token)

    def require(self, **values: Optional[str]) -> None:
        """Raise if any of the given settings is missing.

        Examples:
            >>> config.require(drive_id=config.drive_id)
        """
        missing = [name for name, value in values.items() if not value]
        if missing:
            names = ", ".join(
                f"{name} ({ENV_PREFIX}{name.upper()})" for name in sorted(missing)
            )
            raise SpSyncConfigError(f"Missing required setting(s): {names}")


config = Config()
