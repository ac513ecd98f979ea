"""Settings for pillbox.

Each setting is resolved from an environment variable first, then from
``<data_dir>/config.json``, then falls back to a default.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class Settings:
    """Resolved pillbox settings.

    Args:
        data_dir: Where the credential file and config.json live.
        downloads_dir: Default destination for downloaded files.
        timeout: HTTP timeout in seconds.
    """

    data_dir: Path
    downloads_dir: Path
    timeout: float = DEFAULT_TIMEOUT

    @property
    def store_path(self) -> Path:
        return self.data_dir / "credentials.json"


def _is_real_value(val: str | None) -> bool:
    """Check if an env var value is a real setting (not a placeholder)."""
    if not val:
        return False
    return not val.startswith("${")


def _load_config(data_dir: Path) -> dict:
    """Load <data_dir>/config.json if it exists."""
    path = data_dir / "config.json"
    try:
        if path.exists():
            config = json.loads(path.read_text())
            if isinstance(config, dict):
                return config
            logger.warning("Ignoring %s: top-level value is not an object", path)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
    return {}


def _resolve(env_var: str, config_key: str, config: dict) -> str:
    """Resolve a setting: env var first (skip placeholders), then config file."""
    val = os.environ.get(env_var, "")
    if _is_real_value(val):
        return val
    val = config.get(config_key, "")
    return str(val) if val not in (None, "") else ""


def _parse_timeout(raw: str) -> float:
    try:
        timeout = float(raw)
    except ValueError:
        logger.warning("Invalid timeout %r, using %.0fs", raw, DEFAULT_TIMEOUT)
        return DEFAULT_TIMEOUT
    if timeout <= 0:
        logger.warning("Timeout must be positive, using %.0fs", DEFAULT_TIMEOUT)
        return DEFAULT_TIMEOUT
    return timeout


def load_settings() -> Settings:
    """Build Settings from PILLBOX_* env vars and config.json.

    Environment variables:
        PILLBOX_HOME: data directory (default ~/.pillbox)
        PILLBOX_DOWNLOADS_DIR: download destination (default ~/Downloads)
        PILLBOX_TIMEOUT: HTTP timeout in seconds (default 10)
    """
    home = os.environ.get("PILLBOX_HOME", "")
    data_dir = Path(home).expanduser() if _is_real_value(home) else Path.home() / ".pillbox"
    config = _load_config(data_dir)

    downloads = _resolve("PILLBOX_DOWNLOADS_DIR", "downloadsDir", config)
    downloads_dir = Path(downloads).expanduser() if downloads else Path.home() / "Downloads"

    timeout_raw = _resolve("PILLBOX_TIMEOUT", "timeout", config)
    timeout = _parse_timeout(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT

    return Settings(data_dir=data_dir, downloads_dir=downloads_dir, timeout=timeout)
