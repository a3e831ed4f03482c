"""
Provisioning orchestrator.

This module sequences the cache components to set up and refresh a Marlin
build environment:

1. Fetch the Arduino IDE archive through the download cache and unpack it
2. Install every configured library from a working clone of its mirror
3. Install the board hardware definition, if one is configured
4. Clone Marlin, or refresh an existing checkout while keeping the user's
   configuration files
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from marlintool.config import ConfigSnapshotStore, Dependency, ToolConfig
from marlintool.packages.archive_utils import ArchiveExtractor
from marlintool.packages.cache import Cache
from marlintool.packages.downloader import DownloadCache
from marlintool.packages.git_mirror import GitMirrorCache
from marlintool.packages.package import IGitBackend
from marlintool.packages.toolchain import ArduinoToolchain

SNAPSHOT_NAME_FORMAT = "%Y-%m-%d-%H-%M-%S"


class ProvisioningError(Exception):
    """Raised when a provisioning step cannot be completed."""

    pass


def _replace_path(source: Path, dest: Path) -> None:
    """Move ``source`` to ``dest``, removing whatever is at ``dest`` first."""
    if dest.is_dir() and not dest.is_symlink():
        shutil.rmtree(dest)
    elif dest.exists() or dest.is_symlink():
        dest.unlink()
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(dest))


def clean_environment(config: ToolConfig) -> List[Path]:
    """Remove the Arduino install, the Marlin sources and the build directory.

    Configuration snapshots and the cache are kept.

    Returns:
        The directories that were removed
    """
    removed = []
    for path in (config.arduino_dir, config.marlin_dir, config.build_dir):
        if path.exists():
            shutil.rmtree(path)
            removed.append(path)
    return removed


def clean_cache(cache: Cache) -> bool:
    """Remove every cached download and mirror."""
    return cache.purge()


class ProvisioningOrchestrator:
    """Sets up the toolchain, libraries, hardware definition and Marlin sources."""

    def __init__(
        self,
        config: ToolConfig,
        cache: Cache,
        downloads: DownloadCache,
        mirrors: GitMirrorCache,
        git: IGitBackend,
        toolchain: ArduinoToolchain,
        extractor: ArchiveExtractor,
        snapshots: Optional[ConfigSnapshotStore] = None,
    ):
        self.config = config
        self.cache = cache
        self.downloads = downloads
        self.mirrors = mirrors
        self.git = git
        self.toolchain = toolchain
        self.extractor = extractor
        self.snapshots = snapshots or ConfigSnapshotStore(config.configuration_dir, config.marlin_config_dir)

    def setup_environment(self) -> None:
        """Install the toolchain, the libraries and the hardware definition."""
        logging.info(f'Setting up build environment in "{self.config.arduino_dir}" ...')
        self.install_toolchain()
        self.install_dependencies()
        self.install_hardware_definition()

    def install_toolchain(self) -> Path:
        """Download (or take from cache) and unpack the Arduino IDE."""
        logging.info("Getting Arduino environment...")
        return self.toolchain.install(self.downloads, self.extractor)

    def install_dependencies(self) -> List[Path]:
        """Install every configured library into the toolchain's libraries directory.

        Returns:
            Installed library directories
        """
        logging.info("Getting libraries...")
        installed = []
        for dependency in self.config.dependencies:
            installed.append(self.install_dependency(dependency))
        return installed

    def install_dependency(self, dependency: Dependency) -> Path:
        """Install one library, keeping only its configured sub-directory.

        Raises:
            ProvisioningError: If the sub-directory does not exist in the repository
        """
        clone = self.mirrors.get_working_clone(dependency.url)
        try:
            source = clone / dependency.subpath if dependency.subpath else clone
            if not source.exists():
                raise ProvisioningError(f"'{dependency.subpath}' not found in {dependency.url}")
            if not dependency.subpath:
                shutil.rmtree(clone / ".git", ignore_errors=True)

            target = self.toolchain.libraries_dir / dependency.name
            _replace_path(source, target)
        finally:
            shutil.rmtree(clone, ignore_errors=True)
        return target

    def install_hardware_definition(self) -> Optional[Path]:
        """Install the board hardware definition into the toolchain's hardware directory.

        Returns:
            The hardware directory, or None if no hardware definition is configured

        Raises:
            ProvisioningError: If the repository has no hardware/ directory
        """
        if not self.config.hardware_definition_repo:
            return None

        logging.info("Getting board hardware definition...")
        clone = self.mirrors.get_working_clone(self.config.hardware_definition_repo)
        try:
            hardware = clone / "hardware"
            if not hardware.is_dir():
                raise ProvisioningError(f"No hardware directory in {self.config.hardware_definition_repo}")

            logging.info("  Moving board hardware definition into arduino directory...")
            for item in hardware.iterdir():
                _replace_path(item, self.toolchain.hardware_dir / item.name)
        finally:
            shutil.rmtree(clone, ignore_errors=True)
        return self.toolchain.hardware_dir

    def get_firmware(self) -> Path:
        """Clone Marlin (at the configured branch, if any) into the Marlin directory.

        Raises:
            ProvisioningError: If the Marlin directory already exists
        """
        logging.info("Getting Marlin...")
        marlin_dir = self.config.marlin_dir
        if marlin_dir.exists():
            raise ProvisioningError(f"{marlin_dir} already exists. Use 'marlintool fetch' to update it.")

        clone = self.mirrors.get_working_clone(
            self.config.marlin_repository_url, self.config.marlin_repository_branch or None
        )
        marlin_dir.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(clone), str(marlin_dir))
        return marlin_dir

    def refresh_firmware(self, snapshot_name: Optional[str] = None) -> str:
        """Reset Marlin to the head of its upstream branch, keeping the configuration.

        The configuration files are backed up first, local commits and edits
        are discarded by a hard reset, and the configuration is restored.

        Args:
            snapshot_name: Name of the backup. If None, the current timestamp.

        Returns:
            Name of the snapshot that was taken and restored

        Raises:
            ProvisioningError: If there is no Marlin checkout
        """
        marlin_dir = self.config.marlin_dir
        if not (marlin_dir / ".git").exists():
            raise ProvisioningError(f"No Marlin checkout in {marlin_dir}. Use 'marlintool marlin' first.")

        snapshot_name = snapshot_name or datetime.now().strftime(SNAPSHOT_NAME_FORMAT)
        self.snapshots.backup(snapshot_name)

        logging.info(f'Fetching most recent Marlin from "{self.config.marlin_repository_url}" ...')
        # The checkout's origin is the local mirror, bring that up to date first
        self.mirrors.get_mirror(self.config.marlin_repository_url)
        branch = self.git.fetch_and_reset(marlin_dir)
        logging.debug(f"Reset {marlin_dir} to origin/{branch}")

        self.snapshots.restore(snapshot_name)
        return snapshot_name

    def clean(self) -> List[Path]:
        """Remove the Arduino install, the Marlin sources and the build directory."""
        return clean_environment(self.config)

    def clean_cache(self) -> bool:
        """Remove the download and mirror cache."""
        return clean_cache(self.cache)
