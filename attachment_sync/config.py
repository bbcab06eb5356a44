"""Settings, settings file and logging setup."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ATTACHMENT_SYNC_CONFIG"
DEFAULT_CONFIG_PATH = "attachment_sync.json"

DEFAULT_FILE_TYPES = [
    "jpg", "jpeg", "png", "gif", "bmp", "webp", "svg", "ico", "tiff",
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "mp4",
]


class Settings(BaseModel):
    """User settings."""

    clipboard_auto_upload: bool = True
    drag_auto_upload: bool = True
    auto_upload_file_types: list[str] = Field(default_factory=lambda: list(DEFAULT_FILE_TYPES))
    skip_duplicate_files: bool = False
    uploader_type: str = "amazon-s3"
    uploader_config: dict[str, Any] = Field(default_factory=dict)
    upload_concurrency: int = Field(default=1, ge=1)
    download_concurrency: int = Field(default=3, ge=1)
    delete_concurrency: int = Field(default=1, ge=1)
    attachment_folder: str = "./attachments"
    debug_logging: bool = False


ConfigChangeListener = Callable[[dict[str, Any]], None]


class ConfigurationManager:
    """Owns the settings and tells listeners when they change."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None, settings: Optional[Settings] = None):
        self.config_path = Path(config_path) if config_path else None
        self.settings = settings or Settings()
        self._listeners: list[ConfigChangeListener] = []

    @classmethod
    def from_env(cls, config_path: Optional[Union[str, Path]] = None) -> "ConfigurationManager":
        """Create a manager for the given path, $ATTACHMENT_SYNC_CONFIG or the default file."""
        path = config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
        manager = cls(path)
        manager.load_settings()
        return manager

    def load_settings(self) -> Settings:
        """Load settings from disk, merged over the defaults.

        A missing file means defaults. A malformed file is logged and ignored.
        """
        if self.config_path is None or not self.config_path.exists():
            logger.debug(f"No settings file at {self.config_path}, using defaults")
            return self.settings

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load settings from {self.config_path}: {e}")
            return self.settings

        if not isinstance(data, dict):
            logger.error(f"Settings file {self.config_path} does not hold an object")
            return self.settings

        self.settings = Settings(**{**self.settings.model_dump(), **data})
        return self.settings

    def save_settings(self, changes: dict[str, Any], notify: bool = True) -> Settings:
        """Merge changes into the settings, persist them and notify listeners.

        Args:
            changes: Partial settings
            notify: Whether to call the change listeners

        Returns:
            The new settings
        """
        self.settings = Settings(**{**self.settings.model_dump(), **changes})

        if self.config_path is not None:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.settings.model_dump(), f, indent=2, ensure_ascii=False)

        if notify:
            for listener in list(self._listeners):
                listener(changes)
        return self.settings

    def add_config_change_listener(self, listener: ConfigChangeListener) -> None:
        self._listeners.append(listener)

    def remove_config_change_listener(self, listener: ConfigChangeListener) -> bool:
        if listener in self._listeners:
            self._listeners.remove(listener)
            return True
        return False

    def get_settings(self) -> Settings:
        return self.settings.model_copy(deep=True)

    def get_current_storage_service(self) -> str:
        return self.settings.uploader_type

    def get_current_storage_config(self) -> dict[str, Any]:
        return dict(self.settings.uploader_config)

    def get_public_domain(self) -> str:
        config = self.settings.uploader_config
        domain = config.get("public_domain") or config.get("public_url") or ""
        if not domain and self.settings.uploader_type == "webdav" and config.get("endpoint"):
            base_path = (config.get("base_path") or "").strip("/")
            domain = config["endpoint"].rstrip("/") + (f"/{base_path}" if base_path else "")
        return domain

    def get_auto_upload_file_types(self) -> list[str]:
        return list(self.settings.auto_upload_file_types)


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the command line and the API server."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
