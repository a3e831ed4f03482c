"""marlintool - provisioning and build helper for Marlin firmware."""

__version__ = "0.1.0"
