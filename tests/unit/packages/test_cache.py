"""Unit tests for cache management."""

import os
import tempfile
from pathlib import Path

import pytest

from marlintool.packages.cache import CACHE_DIR_ENV, Cache, repo_name_from_url


class TestRepoNameFromUrl:
    """Test cases for deriving mirror names from repository URLs."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://github.com/MarlinFirmware/Marlin.git", "Marlin"),
            ("https://github.com/MarlinFirmware/Marlin", "Marlin"),
            ("https://github.com/MarlinFirmware/Marlin/", "Marlin"),
            ("git@github.com:olikraus/U8glib_Arduino.git", "U8glib_Arduino"),
            ("/srv/git/anet-board.git", "anet-board"),
            ("https://example.com/libs/lib.v2.git", "lib.v2"),
        ],
    )
    def test_derives_last_segment_without_extension(self, url, expected):
        assert repo_name_from_url(url) == expected

    @pytest.mark.parametrize("url", ["", "/", "https://example.com/.."])
    def test_rejects_urls_without_name(self, url):
        with pytest.raises(ValueError, match="Cannot derive"):
            repo_name_from_url(url)


class TestCache:
    """Test cases for Cache class."""

    def test_init_default_directory(self, monkeypatch):
        """Test initialization with default directory."""
        monkeypatch.delenv(CACHE_DIR_ENV, raising=False)
        cache = Cache()
        assert cache.project_dir == Path.cwd().resolve()
        assert cache.cache_root == cache.project_dir / ".cache"

    def test_init_custom_directory(self, monkeypatch):
        """Test initialization with custom project directory."""
        monkeypatch.delenv(CACHE_DIR_ENV, raising=False)
        with tempfile.TemporaryDirectory() as temp_dir:
            project_dir = Path(temp_dir)
            cache = Cache(project_dir)
            assert cache.project_dir == project_dir.resolve()
            assert cache.cache_root == project_dir.resolve() / ".cache"

    def test_init_with_env_override(self):
        """Test cache directory override via environment variable."""
        with tempfile.TemporaryDirectory() as temp_dir:
            cache_dir = Path(temp_dir) / "custom_cache"
            os.environ[CACHE_DIR_ENV] = str(cache_dir)

            try:
                cache = Cache()
                assert cache.cache_root == cache_dir.resolve()
            finally:
                del os.environ[CACHE_DIR_ENV]

    def test_explicit_cache_root_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CACHE_DIR_ENV, str(tmp_path / "from_env"))
        cache = Cache(tmp_path, cache_root=tmp_path / "explicit")
        assert cache.cache_root == (tmp_path / "explicit").resolve()

    def test_cache_root_is_created_lazily(self, tmp_path):
        cache = Cache(tmp_path, cache_root=tmp_path / ".cache")
        assert not cache.cache_root.exists()
        cache.get_file_path("arduino.tar.xz")
        assert not cache.cache_root.exists()
        cache.ensure_root()
        assert cache.cache_root.is_dir()

    def test_file_and_mirror_paths_are_flat(self, tmp_path):
        cache = Cache(tmp_path, cache_root=tmp_path / ".cache")
        assert cache.get_file_path("arduino-1.8.5-linux64.tar.xz") == cache.cache_root / "arduino-1.8.5-linux64.tar.xz"
        assert cache.get_mirror_path("Marlin") == cache.cache_root / "Marlin"

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "..\\evil"])
    def test_rejects_names_that_escape_the_cache(self, tmp_path, name):
        cache = Cache(tmp_path)
        with pytest.raises(ValueError):
            cache.get_file_path(name)
        with pytest.raises(ValueError):
            cache.get_mirror_path(name)

    def test_is_cached(self, tmp_path):
        cache = Cache(tmp_path, cache_root=tmp_path / ".cache")
        cache.ensure_root()
        (cache.cache_root / "file.zip").write_bytes(b"zip")
        (cache.cache_root / "Marlin").mkdir()

        assert cache.is_file_cached("file.zip")
        assert not cache.is_file_cached("Marlin")
        assert cache.is_mirror_cached("Marlin")
        assert not cache.is_mirror_cached("file.zip")

    def test_list_entries_skips_hidden_partials(self, tmp_path):
        cache = Cache(tmp_path, cache_root=tmp_path / ".cache")
        assert cache.list_entries() == []
        cache.ensure_root()
        (cache.cache_root / "b.zip").write_bytes(b"")
        (cache.cache_root / "A").mkdir()
        (cache.cache_root / ".b.zip.x.partial").write_bytes(b"")
        assert cache.list_entries() == ["A", "b.zip"]

    def test_purge(self, tmp_path):
        cache = Cache(tmp_path, cache_root=tmp_path / ".cache")
        assert cache.purge() is False
        cache.ensure_root()
        (cache.cache_root / "Marlin").mkdir()
        assert cache.purge() is True
        assert not cache.cache_root.exists()
