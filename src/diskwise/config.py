"""User settings for diskwise."""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from diskwise.models import SortKey, paths_equal

logger = logging.getLogger(__name__)

CONFIG_DIR = Path("~/.diskwise").expanduser()
CONFIG_FILE = CONFIG_DIR / "config.json"
MAX_RECENT_FOLDERS = 10


class RecentFolder(BaseModel):
    """A recently visited folder."""

    path: str
    last_accessed: datetime = Field(default_factory=datetime.now)


class Settings(BaseModel):
    """Persisted user preferences."""

    cache_dir: str = Field(
        str(CONFIG_DIR / "scan-cache"), description="Where scan results are cached"
    )
    cache_expiration_days: int = Field(7, ge=0, description="Days before a cached scan expires")
    show_hidden: bool = Field(True, description="List hidden files and folders")
    show_files: bool = Field(True, description="List files, not only folders")
    sort_by: SortKey = Field(SortKey.SIZE, description="Listing order")
    sort_descending: bool = Field(True, description="Reverse the listing order")
    max_workers: Optional[int] = Field(
        None, ge=1, description="Scanner threads (default: CPU count)"
    )
    recent_folders: list[RecentFolder] = Field(default_factory=list)

    @property
    def cache_expiration(self) -> timedelta:
        return timedelta(days=self.cache_expiration_days)

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()


def load_settings(config_file: Path = CONFIG_FILE) -> Settings:
    """Load settings from disk, falling back to defaults."""
    if not config_file.exists():
        return Settings()

    try:
        return Settings.model_validate_json(config_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", config_file, e)
        return Settings()


def save_settings(settings: Settings, config_file: Path = CONFIG_FILE) -> bool:
    """Save settings to disk."""
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
        return True
    except OSError:
        return False


def add_recent_folder(settings: Settings, path: str) -> None:
    """Move ``path`` to the front of the recent folders list."""
    settings.recent_folders = [r for r in settings.recent_folders if not paths_equal(r.path, path)]
    settings.recent_folders.insert(0, RecentFolder(path=path))
    del settings.recent_folders[MAX_RECENT_FOLDERS:]
