"""Tests for settings persistence."""

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from diskwise.config import (
    MAX_RECENT_FOLDERS,
    Settings,
    add_recent_folder,
    load_settings,
    save_settings,
)
from diskwise.models import SortKey


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.cache_expiration_days == 7
        assert settings.cache_expiration == timedelta(days=7)
        assert settings.sort_by == SortKey.SIZE
        assert settings.sort_descending
        assert settings.show_hidden
        assert settings.max_workers is None
        assert settings.cache_path.name == "scan-cache"

    def test_cache_path_expands_user(self):
        settings = Settings(cache_dir="~/somewhere")
        assert settings.cache_path == Path.home() / "somewhere"

    def test_rejects_zero_workers(self):
        with pytest.raises(ValidationError):
            Settings(max_workers=0)

    def test_rejects_negative_expiration(self):
        with pytest.raises(ValidationError):
            Settings(cache_expiration_days=-1)


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "none.json") == Settings()

    def test_round_trip(self, tmp_path):
        config_file = tmp_path / "sub" / "config.json"
        settings = Settings(cache_expiration_days=3, sort_by=SortKey.NAME, max_workers=4)
        add_recent_folder(settings, "/data")

        assert save_settings(settings, config_file)
        loaded = load_settings(config_file)
        assert loaded.cache_expiration_days == 3
        assert loaded.sort_by == SortKey.NAME
        assert loaded.max_workers == 4
        assert [r.path for r in loaded.recent_folders] == ["/data"]

    def test_corrupt_file_gives_defaults(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{broken")
        assert load_settings(config_file) == Settings()

    def test_invalid_values_give_defaults(self, tmp_path):
        config_file = tmp_path / "config.json"
        config_file.write_text('{"sort_by": "colour"}')
        assert load_settings(config_file).sort_by == SortKey.SIZE

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        assert not save_settings(Settings(), blocker / "config.json")


class TestRecentFolders:
    def test_most_recent_first(self):
        settings = Settings()
        add_recent_folder(settings, "/a")
        add_recent_folder(settings, "/b")
        assert [r.path for r in settings.recent_folders] == ["/b", "/a"]

    def test_revisit_moves_to_front(self):
        settings = Settings()
        for path in ["/a", "/b", "/A"]:
            add_recent_folder(settings, path)
        assert [r.path for r in settings.recent_folders] == ["/A", "/b"]

    def test_capped(self):
        settings = Settings()
        for i in range(MAX_RECENT_FOLDERS + 5):
            add_recent_folder(settings, f"/folder{i}")
        assert len(settings.recent_folders) == MAX_RECENT_FOLDERS
        assert settings.recent_folders[0].path == f"/folder{MAX_RECENT_FOLDERS + 4}"
