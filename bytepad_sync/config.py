"""Configuration management for Bytepad Sync."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_data_dir, user_log_dir

__all__ = [
    "Config",
    "GistSyncSettings",
    "setup_logging",
    "DEFAULT_API_URL",
    "DEFAULT_SYNC_INTERVAL_MINUTES",
    "DEFAULT_DEBOUNCE_SECONDS",
]

logger = logging.getLogger(__name__)

APP_NAME = "Bytepad Sync"
APP_AUTHOR = "Bytepad"

DEFAULT_API_URL = "https://api.github.com"

DEFAULT_SYNC_INTERVAL_MINUTES = 5
DEFAULT_DEBOUNCE_SECONDS = 30

# Last-attempt status values
STATUS_IDLE = "idle"
STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass
class GistSyncSettings:
    """Gist sync configuration plus last-attempt bookkeeping.

    The credential is held in memory only; it is persisted through the
    system keychain, never in config.json.
    """

    enabled: bool = False
    remote_id: Optional[str] = None
    auto_sync: bool = False
    sync_interval_minutes: int = DEFAULT_SYNC_INTERVAL_MINUTES
    debounce_seconds: int = DEFAULT_DEBOUNCE_SECONDS
    last_sync_at: Optional[str] = None
    last_sync_status: str = STATUS_IDLE
    last_sync_error: Optional[str] = None
    credential: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.credential and self.remote_id)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("credential", None)
        return data


@dataclass
class Config:
    """Main configuration object."""

    api_url: str = DEFAULT_API_URL
    gist: GistSyncSettings = field(default_factory=GistSyncSettings)
    data_file: Optional[str] = None
    debug_mode: bool = False

    @classmethod
    def get_config_dir(cls) -> Path:
        """Get the configuration directory path."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory path (local collections file)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        """Get the config file path."""
        return cls.get_config_dir() / "config.json"

    @property
    def data_path(self) -> Path:
        if self.data_file:
            return Path(self.data_file).expanduser()
        return self.get_data_dir() / "bytepad-data.json"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config from file, or return defaults.

        ``GITHUB_TOKEN`` and ``GIST_ID`` environment variables override the
        stored credential and Gist id.
        """
        config_file = path or cls.get_config_file()
        config = cls()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    config = cls._from_dict(json.load(f))
            except (OSError, ValueError, TypeError) as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
                config = cls()

        token = os.getenv("GITHUB_TOKEN")
        if token:
            config.gist.credential = token
        gist_id = os.getenv("GIST_ID")
        if gist_id:
            config.gist.remote_id = gist_id
        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary."""
        gist_data = dict(data.pop("gist", None) or {})
        gist_data.pop("credential", None)
        gist_fields = GistSyncSettings.__dataclass_fields__
        return cls(
            gist=GistSyncSettings(
                **{k: v for k, v in gist_data.items() if k in gist_fields}
            ),
            **{
                k: v
                for k, v in data.items()
                if k in cls.__dataclass_fields__ and k != "gist"
            },
        )

    def to_dict(self) -> dict:
        return {
            "api_url": self.api_url,
            "gist": self.gist.to_dict(),
            "data_file": self.data_file,
            "debug_mode": self.debug_mode,
        }

    def save(self, path: Optional[Path] = None) -> None:
        """Save config to file (without the credential)."""
        config_file = path or self.get_config_file()
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Config saved to {config_file}")


LOG_FILE_NAME = "bytepad-sync.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

# Libraries that are chatty at INFO; they stay at WARNING unless debugging
NOISY_LOGGERS = ("urllib3", "requests", "apscheduler")

_installed_handlers: list[logging.Handler] = []


def setup_logging(debug: bool = False, log_dir: Optional[Path] = None) -> Path:
    """Log to a rotating file in the log dir and to stderr.

    Safe to call more than once: handlers from an earlier call are
    replaced, not duplicated.

    Returns:
        Path of the log file
    """
    log_dir = log_dir or Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    stream_handler = logging.StreamHandler()
    for handler in (file_handler, stream_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)
        _installed_handlers.append(handler)

    root.setLevel(logging.DEBUG if debug else logging.INFO)
    library_level = logging.DEBUG if debug else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.debug(f"Logging to {log_file}")
    return log_file
