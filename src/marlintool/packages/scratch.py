"""Per-invocation scratch space.

Every marlintool invocation gets one private temporary directory. Downloads
land there before they are promoted into the cache, and working clones are
created there before they are moved to their install location. The
directory is removed when the invocation ends, whichever way it ends.
SIGTERM ends the process without unwinding unless a handler turns it into
SystemExit, which the marlintool CLI installs (cli.handle_sigterm).

Usage:
    with ScratchSpace() as scratch:
        clone_dir = scratch.make_dir("Marlin-")
        ...
"""

import logging
import shutil
import sys
import tempfile
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

from .package import PackageError

SCRATCH_PREFIX = "marlintool."


class ScratchSpaceError(PackageError):
    """Raised when the scratch directory cannot be created or is not acquired."""

    pass


class ScratchSpace:
    """Exclusively owned temporary directory with guaranteed cleanup."""

    def __init__(self, base_dir: Optional[Path] = None, prefix: str = SCRATCH_PREFIX):
        """Initialize scratch space.

        Args:
            base_dir: Parent directory. If None, uses the OS temp root.
            prefix: Prefix of the randomized directory name
        """
        self.base_dir = base_dir
        self.prefix = prefix
        self._path: Optional[Path] = None

    @property
    def path(self) -> Path:
        """Path of the acquired scratch directory.

        Raises:
            ScratchSpaceError: If acquire() has not been called
        """
        if self._path is None:
            raise ScratchSpaceError("Scratch space has not been acquired")
        return self._path

    @property
    def is_acquired(self) -> bool:
        return self._path is not None

    def acquire(self) -> Path:
        """Create the scratch directory.

        Returns:
            Path to the new, empty directory

        Raises:
            ScratchSpaceError: If the directory cannot be created
        """
        if self._path is not None:
            return self._path

        try:
            created = tempfile.mkdtemp(
                prefix=self.prefix,
                dir=str(self.base_dir) if self.base_dir is not None else None,
            )
        except OSError as e:
            raise ScratchSpaceError(f"Failed to create scratch directory: {e}") from e

        self._path = Path(created)
        logging.debug(f"Acquired scratch directory {self._path}")
        return self._path

    def release(self) -> None:
        """Delete the scratch directory and everything in it.

        Errors are logged and never raised.
        """
        if self._path is None:
            return

        path = self._path
        self._path = None

        def _log_error(function, failed_path, exc):
            if isinstance(exc, tuple):
                exc = exc[1]
            logging.warning(f"Could not remove {failed_path} during scratch cleanup: {exc}")

        if path.exists():
            if sys.version_info >= (3, 12):
                shutil.rmtree(path, onexc=_log_error)
            else:
                shutil.rmtree(path, onerror=_log_error)
        logging.debug(f"Released scratch directory {path}")

    def make_dir(self, prefix: str = "") -> Path:
        """Create a unique, empty sub-directory of the scratch space.

        Args:
            prefix: Name prefix, useful when reading leftovers in verbose mode

        Returns:
            Path to the new directory
        """
        return Path(tempfile.mkdtemp(prefix=prefix, dir=str(self.path)))

    def __enter__(self) -> "ScratchSpace":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.release()
