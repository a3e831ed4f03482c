"""
Provisioning for marlintool.

This module sets up the Arduino toolchain, libraries, board hardware
definition and the Marlin sources.
"""

from .orchestrator import ProvisioningError, ProvisioningOrchestrator

__all__ = [
    "ProvisioningOrchestrator",
    "ProvisioningError",
]
