"""Checks for external tools that must be installed."""

import shutil
from typing import Iterable, List

from .package import PackageError


class PrerequisiteError(PackageError):
    """Raised when a required external tool is not installed."""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        super().__init__(message)
        self.missing = list(missing)


def find_missing_tools(tools: Iterable[str]) -> List[str]:
    """Return the tools from ``tools`` that are not on PATH."""
    return [tool for tool in tools if shutil.which(tool) is None]


def check_tools(*tools: str) -> None:
    """Make sure every tool is installed.

    Raises:
        PrerequisiteError: Naming the required tools and the first missing one
    """
    missing = find_missing_tools(tools)
    if missing:
        raise PrerequisiteError(
            "The following tools must be installed:\n"
            + f"  {' '.join(tools)}\n"
            + f"  Failed to find {missing[0]}",
            missing=missing,
        )


def check_any_tool(*tools: str) -> str:
    """Make sure at least one of ``tools`` is installed.

    Returns:
        The first tool found

    Raises:
        PrerequisiteError: If none is installed
    """
    for tool in tools:
        if shutil.which(tool) is not None:
            return tool
    raise PrerequisiteError(f"Neither {' nor '.join(tools)} were found installed", missing=tools)
