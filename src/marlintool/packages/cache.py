"""Cache root management for marlintool.

The cache root holds everything that is expensive to fetch again and that
should survive a rebuild of the environment.

Cache Structure:
    .cache/
    ├── arduino-1.8.5-linux64.tar.xz    # Downloaded files, flat, keyed by name
    ├── Marlin/                         # Bare mirror, one per repository name
    │   ├── HEAD
    │   ├── objects/
    │   └── refs/
    └── LiquidCrystal_I2C/

Downloaded files are keyed by destination filename only, and mirrors by the
repository name derived from their URL, so two URLs with the same basename
share an entry.

The cache root is not locked. Running two marlintool processes against the
same cache root at the same time is unsupported: two fetches into the same
bare mirror may corrupt it.
"""

import os
import shutil
from pathlib import Path
from typing import List, Optional

from .package import PackageError

CACHE_DIR_ENV = "MARLINTOOL_CACHE_DIR"


class CacheCorruptionError(PackageError):
    """Raised when a cache entry exists but does not have the expected shape.

    The fix is to purge the cache (``marlintool clean-cache``), not to retry.
    """

    pass


def repo_name_from_url(url: str) -> str:
    """Derive a repository name from its URL.

    Takes the last path segment and strips its extension.

    Examples:
        >>> repo_name_from_url("https://github.com/MarlinFirmware/Marlin.git")
        'Marlin'
        >>> repo_name_from_url("git@github.com:olikraus/U8glib_Arduino.git")
        'U8glib_Arduino'

    Args:
        url: Repository URL or local path

    Returns:
        Repository name

    Raises:
        ValueError: If no name can be derived
    """
    segment = url.strip().rstrip("/").rsplit("/", 1)[-1]
    segment = segment.rsplit(":", 1)[-1]
    name = os.path.splitext(segment)[0]
    if not name or name in (".", ".."):
        raise ValueError(f"Cannot derive a repository name from URL: {url!r}")
    return name


def _validate_entry_name(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Invalid cache entry name: {name!r}")


class Cache:
    """Manages the marlintool cache directory.

    The cache lives in the project directory (``.cache/``) unless the
    MARLINTOOL_CACHE_DIR environment variable or an explicit ``cache_root``
    points somewhere else. The directory is created lazily on first write.
    """

    def __init__(self, project_dir: Optional[Path] = None, cache_root: Optional[Path] = None):
        """Initialize cache manager.

        Args:
            project_dir: Project directory. If None, uses current directory.
            cache_root: Explicit cache directory. Takes precedence over the
                environment variable.
        """
        if project_dir is None:
            project_dir = Path.cwd()

        self.project_dir = Path(project_dir).resolve()

        cache_env = os.environ.get(CACHE_DIR_ENV)
        if cache_root is not None:
            self.cache_root = Path(cache_root).resolve()
        elif cache_env:
            self.cache_root = Path(cache_env).resolve()
        else:
            self.cache_root = self.project_dir / ".cache"

    def ensure_root(self) -> Path:
        """Create the cache root if it doesn't exist yet."""
        self.cache_root.mkdir(parents=True, exist_ok=True)
        return self.cache_root

    def get_file_path(self, destination_name: str) -> Path:
        """Get path where a downloaded file is stored.

        Args:
            destination_name: File name (e.g., 'arduino-1.8.5-linux64.tar.xz')

        Returns:
            Path to the cached file
        """
        _validate_entry_name(destination_name)
        return self.cache_root / destination_name

    def get_mirror_path(self, repo_name: str) -> Path:
        """Get path where the bare mirror of a repository is stored.

        Args:
            repo_name: Repository name as returned by repo_name_from_url()

        Returns:
            Path to the mirror directory
        """
        _validate_entry_name(repo_name)
        return self.cache_root / repo_name

    def is_file_cached(self, destination_name: str) -> bool:
        """Check if a file has already been downloaded."""
        return self.get_file_path(destination_name).is_file()

    def is_mirror_cached(self, repo_name: str) -> bool:
        """Check if a mirror directory exists for a repository."""
        return self.get_mirror_path(repo_name).is_dir()

    def list_entries(self) -> List[str]:
        """List cached files and mirrors, skipping hidden partial entries."""
        if not self.cache_root.is_dir():
            return []
        return sorted(p.name for p in self.cache_root.iterdir() if not p.name.startswith("."))

    def purge(self) -> bool:
        """Remove the whole cache directory.

        Returns:
            True if something was removed
        """
        if not self.cache_root.exists():
            return False
        shutil.rmtree(self.cache_root)
        return True
