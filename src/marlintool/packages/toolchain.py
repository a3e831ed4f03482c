"""Arduino IDE toolchain layout and installation.

The Arduino IDE is shipped as one archive per platform. This module knows
how the archive is named and where the executable, the libraries directory
and the hardware directory end up once it is unpacked.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .archive_utils import ArchiveExtractor
from .downloader import DownloadCache
from .platform_utils import PlatformDetector

DEFAULT_BASE_URL = "https://downloads.arduino.cc"


@dataclass(frozen=True)
class ToolchainLayout:
    """Platform dependent names and paths of an Arduino IDE install."""

    archive_name: str
    executable: Path
    hardware_dir: Path
    libraries_dir: Path


def get_toolchain_layout(version: str, arduino_dir: Path, system: str, suffix: str) -> ToolchainLayout:
    """Compute the archive name and install paths for a platform.

    Args:
        version: Arduino IDE version (e.g., '1.8.5')
        arduino_dir: Install directory
        system: 'linux' or 'darwin'
        suffix: Archive suffix from PlatformDetector

    Returns:
        ToolchainLayout for that platform
    """
    if system == "darwin":
        java_dir = arduino_dir / "Arduino.app" / "Contents" / "Java"
        return ToolchainLayout(
            archive_name=f"arduino-{version}-macosx.zip",
            executable=arduino_dir / "Arduino.app" / "Contents" / "MacOS" / "Arduino",
            hardware_dir=java_dir / "hardware",
            libraries_dir=java_dir / "libraries",
        )

    return ToolchainLayout(
        archive_name=f"arduino-{version}-{suffix}.tar.xz",
        executable=arduino_dir / "arduino",
        hardware_dir=arduino_dir / "hardware",
        libraries_dir=arduino_dir / "libraries",
    )


class ArduinoToolchain:
    """Manages the Arduino IDE install used to build Marlin."""

    def __init__(
        self,
        version: str,
        arduino_dir: Path,
        base_url: str = DEFAULT_BASE_URL,
        layout: Optional[ToolchainLayout] = None,
    ):
        """Initialize toolchain manager.

        Args:
            version: Arduino IDE version
            arduino_dir: Install directory
            base_url: Download server
            layout: Explicit layout. If None, detected from the host platform.
        """
        self.version = version
        self.arduino_dir = Path(arduino_dir)
        self.base_url = base_url.rstrip("/")
        if layout is None:
            system, suffix = PlatformDetector.detect_arduino_platform()
            layout = get_toolchain_layout(version, self.arduino_dir, system, suffix)
        self.layout = layout

    @property
    def archive_name(self) -> str:
        return self.layout.archive_name

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.layout.archive_name}"

    @property
    def executable(self) -> Path:
        return self.layout.executable

    @property
    def hardware_dir(self) -> Path:
        return self.layout.hardware_dir

    @property
    def libraries_dir(self) -> Path:
        return self.layout.libraries_dir

    def is_installed(self) -> bool:
        """Check if the Arduino executable is present."""
        return self.executable.is_file()

    def install(self, downloads: DownloadCache, extractor: ArchiveExtractor) -> Path:
        """Fetch the archive (from cache if possible) and unpack a clean install.

        Any previous install in the toolchain directory is removed first.

        Returns:
            Path to the install directory
        """
        archive = downloads.fetch(self.url, self.archive_name)

        if self.arduino_dir.exists():
            shutil.rmtree(self.arduino_dir)
        (self.arduino_dir / "portable").mkdir(parents=True)

        extractor.extract(archive, self.arduino_dir)
        logging.debug(f"Arduino {self.version} unpacked into {self.arduino_dir}")
        return self.arduino_dir
