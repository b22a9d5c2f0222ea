"""Configuration management for memsync.

Settings are resolved from environment variables first, then from the config
file at ``~/.config/memsync/config`` (simple ``KEY=value`` lines), then from
built-in defaults.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .utils import DEFAULT_BATCH_CONCURRENCY, DEFAULT_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com"

ACCESS_TOKEN_KEY = "MEMSYNC_ACCESS_TOKEN"
API_URL_KEY = "MEMSYNC_API_URL"
DATA_DIR_KEY = "MEMSYNC_DATA_DIR"
STATE_DIR_KEY = "MEMSYNC_STATE_DIR"
BATCH_CONCURRENCY_KEY = "MEMSYNC_BATCH_CONCURRENCY"
DEBOUNCE_SECONDS_KEY = "MEMSYNC_DEBOUNCE_SECONDS"


class Config:
    """Resolved memsync settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file.
                Defaults to ~/.config/memsync
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "memsync"
        self.config_dir = config_dir

    def get_config_path(self) -> Path:
        """Path of the config file."""
        return self.config_dir / "config"

    def _read_file(self) -> dict[str, str]:
        """Read KEY=value pairs from the config file."""
        path = self.get_config_path()
        if not path.exists():
            return {}

        values: dict[str, str] = {}
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip()
        except OSError as e:
            logger.warning(f"Failed to read config file {path}: {e}")
        return values

    def _get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = os.environ.get(key)
        if value:
            return value
        return self._read_file().get(key, default)

    def _write_value(self, key: str, value: Optional[str]) -> None:
        values = self._read_file()
        if value is None:
            values.pop(key, None)
        else:
            values[key] = value

        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.get_config_path()
        with open(path, "w", encoding="utf-8") as f:
            for k, v in sorted(values.items()):
                f.write(f"{k}={v}\n")
        # Token lives here, keep it private
        os.chmod(path, 0o600)

    @property
    def access_token(self) -> Optional[str]:
        """Bearer token for the Drive API."""
        return self._get(ACCESS_TOKEN_KEY)

    @property
    def api_url(self) -> str:
        """Base URL of the Drive API."""
        return (self._get(API_URL_KEY) or DEFAULT_API_URL).rstrip("/")

    @property
    def data_dir(self) -> Path:
        """Directory of the local note store."""
        value = self._get(DATA_DIR_KEY)
        if value:
            return Path(value).expanduser()
        return Path.home() / ".local" / "share" / "memsync" / "notes"

    @property
    def state_dir(self) -> Path:
        """Directory where sync snapshots are kept."""
        value = self._get(STATE_DIR_KEY)
        if value:
            return Path(value).expanduser()
        return self.config_dir / "sync_state"

    @property
    def batch_concurrency(self) -> int:
        """Number of concurrent transfers in batched phases."""
        value = self._get(BATCH_CONCURRENCY_KEY)
        try:
            return max(1, int(value)) if value else DEFAULT_BATCH_CONCURRENCY
        except ValueError:
            logger.warning(f"Invalid {BATCH_CONCURRENCY_KEY}={value!r}, using default")
            return DEFAULT_BATCH_CONCURRENCY

    @property
    def debounce_seconds(self) -> float:
        """Debounce delay for triggered sync passes."""
        value = self._get(DEBOUNCE_SECONDS_KEY)
        try:
            return max(0.0, float(value)) if value else DEFAULT_DEBOUNCE_SECONDS
        except ValueError:
            logger.warning(f"Invalid {DEBOUNCE_SECONDS_KEY}={value!r}, using default")
            return DEFAULT_DEBOUNCE_SECONDS

    def is_configured(self) -> bool:
        """Whether an access token is available."""
        return bool(self.access_token)

    def save_access_token(self, token: str) -> None:
        """Persist the access token to the config file."""
        self._write_value(ACCESS_TOKEN_KEY, token)

    def clear_access_token(self) -> None:
        """Remove the stored access token."""
        self._write_value(ACCESS_TOKEN_KEY, None)


config = Config()
