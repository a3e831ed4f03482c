"""Abstract base classes for the fetch-and-cache collaborators.

The download cache and the git mirror cache never talk to the network
directly. They go through the small interfaces defined here so that the
backends (requests, curl/wget, the git executable) can be swapped out, and
so that tests can inject fakes that count network operations.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class PackageError(Exception):
    """Base exception for package and cache errors."""

    pass


class IFetcher(ABC):
    """Interface for HTTP(S) file fetchers."""

    @abstractmethod
    def download(self, url: str, dest_path: Path) -> Path:
        """Download ``url`` into ``dest_path``.

        Args:
            url: URL to download from
            dest_path: File to write (its parent directory must exist)

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If the transfer fails
        """
        pass


class IGitBackend(ABC):
    """Interface for the git operations the mirror cache relies on."""

    @abstractmethod
    def clone_mirror(self, url: str, dest: Path) -> None:
        """Create a bare mirror of ``url`` at ``dest``."""
        pass

    @abstractmethod
    def fetch_prune(self, mirror: Path) -> None:
        """Fetch all branches and tags into ``mirror``, pruning refs deleted upstream."""
        pass

    @abstractmethod
    def is_bare_repository(self, path: Path) -> bool:
        """Return True if ``path`` is a bare git repository."""
        pass

    @abstractmethod
    def clone_local(self, source: Path, dest: Path, branch: Optional[str] = None) -> None:
        """Clone a local repository into ``dest``.

        Args:
            source: Local repository (usually a mirror)
            dest: Target directory (must be absent or empty)
            branch: If set, clone only this branch and check it out
        """
        pass

    @abstractmethod
    def fetch_and_reset(self, checkout: Path) -> str:
        """Fetch ``origin`` and hard-reset the checked out branch to its upstream.

        Returns:
            Name of the branch that was reset
        """
        pass

    @abstractmethod
    def current_branch(self, checkout: Path) -> str:
        """Return the name of the branch checked out in ``checkout``."""
        pass
