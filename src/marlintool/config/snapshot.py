"""Named snapshots of the Marlin configuration files.

A snapshot is a directory ``configuration/<name>/`` holding copies of the
user-edited configuration headers. Snapshots live outside the Marlin
checkout, so they survive a forced refresh of the sources. Nothing prunes
them.
"""

import logging
import shutil
from pathlib import Path
from typing import List, Sequence

CONFIGURATION_FILES = ("Configuration.h", "Configuration_adv.h")


class SnapshotError(Exception):
    """Base exception for configuration snapshot errors."""

    pass


class SnapshotNotFoundError(SnapshotError):
    """Raised when restoring a snapshot that was never backed up."""

    def __init__(self, name: str, path: Path):
        super().__init__(f"Backup {path} not found! (snapshot '{name}')")
        self.name = name
        self.path = path


class ConfigurationMissingError(SnapshotError):
    """Raised when a configuration file to copy does not exist."""

    def __init__(self, path: Path):
        super().__init__(f"Configuration file not found: {path}")
        self.path = path


def validate_snapshot_name(name: str) -> str:
    """Check that a snapshot name maps to exactly one directory.

    Raises:
        ValueError: For empty names, '.'/'..' and names with path separators
    """
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Invalid snapshot name: {name!r}")
    return name


class ConfigSnapshotStore:
    """Saves and restores the configuration files under a snapshot name."""

    def __init__(
        self,
        snapshot_root: Path,
        live_dir: Path,
        files: Sequence[str] = CONFIGURATION_FILES,
    ):
        """Initialize snapshot store.

        Args:
            snapshot_root: Directory holding one sub-directory per snapshot
            live_dir: Directory of the live configuration files (Marlin/Marlin)
            files: File names that make up a snapshot
        """
        self.snapshot_root = Path(snapshot_root)
        self.live_dir = Path(live_dir)
        self.files = tuple(files)

    def snapshot_dir(self, name: str) -> Path:
        return self.snapshot_root / validate_snapshot_name(name)

    def exists(self, name: str) -> bool:
        return self.snapshot_dir(name).is_dir()

    def list_snapshots(self) -> List[str]:
        """Return the names of all snapshots, sorted."""
        if not self.snapshot_root.is_dir():
            return []
        return sorted(p.name for p in self.snapshot_root.iterdir() if p.is_dir())

    def backup(self, name: str) -> Path:
        """Copy the live configuration files into a snapshot.

        All source files are checked before anything is copied, so a
        snapshot is either complete or not written at all.

        Args:
            name: Snapshot name (by convention a timestamp)

        Returns:
            Path to the snapshot directory

        Raises:
            ConfigurationMissingError: If a live configuration file is missing
        """
        target = self.snapshot_dir(name)
        sources = [self.live_dir / filename for filename in self.files]
        for source in sources:
            if not source.is_file():
                raise ConfigurationMissingError(source)

        logging.info("Saving Marlin configuration")
        for filename in self.files:
            logging.info(f'  "{filename}"')
        logging.info(f'to "{target}"')

        target.mkdir(parents=True, exist_ok=True)
        for source in sources:
            shutil.copy2(source, target / source.name)
        return target

    def restore(self, name: str) -> Path:
        """Copy the files of a snapshot over the live configuration files.

        Existing live files are overwritten. Nothing is written when the
        snapshot is missing or incomplete.

        Args:
            name: Snapshot name

        Returns:
            Path to the snapshot directory

        Raises:
            SnapshotNotFoundError: If no snapshot with that name exists
            ConfigurationMissingError: If the snapshot lacks one of the files
        """
        source_dir = self.snapshot_dir(name)
        if not source_dir.is_dir():
            raise SnapshotNotFoundError(name, source_dir)

        sources = [source_dir / filename for filename in self.files]
        for source in sources:
            if not source.is_file():
                raise ConfigurationMissingError(source)

        logging.info("Restoring Marlin configuration")
        for filename in self.files:
            logging.info(f'  "{filename}"')
        logging.info(f'from "{source_dir}"')

        self.live_dir.mkdir(parents=True, exist_ok=True)
        for source in sources:
            shutil.copy2(source, self.live_dir / source.name)
        return source_dir
