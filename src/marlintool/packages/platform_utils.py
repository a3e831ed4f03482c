"""Platform Detection Utilities.

This module detects the host platform to pick the right Arduino IDE download.

Supported Platforms:
    - Linux: linux64, linux32, linuxarm
    - macOS: macosx
"""

import platform
from typing import Tuple

from .package import PackageError


class PlatformError(PackageError):
    """Raised when platform detection fails or platform is unsupported."""

    pass


class PlatformDetector:
    """Detects the current platform and architecture for toolchain selection."""

    @staticmethod
    def detect_arduino_platform() -> Tuple[str, str]:
        """Detect the current platform in the Arduino IDE download naming.

        Returns:
            Tuple of (system, archive suffix)
            System: 'linux' or 'darwin'
            Suffix: 'linux64', 'linux32', 'linuxarm' or 'macosx'

        Raises:
            PlatformError: If platform is not supported
        """
        system = platform.system().lower()
        machine = platform.machine().lower()

        if system == "darwin":
            return "darwin", "macosx"

        if system != "linux":
            raise PlatformError(f"Unsupported platform: {platform.system()}")

        if machine.startswith("arm") or machine == "aarch64":
            return "linux", "linuxarm"
        elif machine in ("i386", "i486", "i586", "i686"):
            return "linux", "linux32"
        elif machine in ("x86_64", "amd64"):
            return "linux", "linux64"

        raise PlatformError(f"Unsupported platform architecture: {platform.machine()}")
