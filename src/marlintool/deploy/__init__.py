"""
Firmware build and upload for marlintool.

This module runs the Arduino executable to verify or upload a Marlin build.
"""

from .deployer import BuildResult, DeploymentError, FirmwareBuilder

__all__ = [
    "FirmwareBuilder",
    "BuildResult",
    "DeploymentError",
]
