"""File downloads and the download cache.

This module provides the two interchangeable fetch backends (requests and
curl/wget) and the DownloadCache that sits in front of them. A cached file
is always complete: downloads are written into the scratch space and only
become visible in the cache through an atomic rename.
"""

import errno
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from .cache import Cache, CacheCorruptionError
from .package import IFetcher, PackageError
from .scratch import ScratchSpace


class DownloadError(PackageError):
    """Raised when a download fails."""

    pass


class RequestsFetcher(IFetcher):
    """Downloads files with requests, showing a progress bar."""

    def __init__(self, chunk_size: int = 8192, show_progress: bool = True, timeout: int = 30):
        """Initialize fetcher.

        Args:
            chunk_size: Size of chunks for streaming the response body
            show_progress: Whether to show a progress bar
            timeout: Connect/read timeout in seconds
        """
        self.chunk_size = chunk_size
        self.show_progress = show_progress
        self.timeout = timeout

    def download(self, url: str, dest_path: Path) -> Path:
        """Download a file from a URL.

        Args:
            url: URL to download from
            dest_path: Destination file path

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If download fails
        """
        dest_path = Path(dest_path)

        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()

            total_size = int(response.headers.get("content-length", 0))

            progress_bar = None
            if self.show_progress and total_size > 0:
                filename = Path(urlparse(url).path).name
                progress_bar = tqdm(
                    total=total_size,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                    desc=f"Downloading {filename}",
                )

            try:
                with open(dest_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            if progress_bar:
                                progress_bar.update(len(chunk))
            finally:
                if progress_bar:
                    progress_bar.close()

            return dest_path

        except requests.RequestException as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e


class CommandFetcher(IFetcher):
    """Downloads files by running curl or wget."""

    TOOLS = ("curl", "wget")

    def __init__(self, tool: Optional[str] = None, verbose: bool = False):
        """Initialize fetcher.

        Args:
            tool: 'curl' or 'wget'. If None, uses whichever is installed,
                preferring curl.
            verbose: Whether to let the tool print its own progress

        Raises:
            DownloadError: If the tool is unknown
        """
        if tool is not None and tool not in self.TOOLS:
            raise DownloadError(f"Unsupported download tool: {tool}")
        self.tool = tool
        self.verbose = verbose

    def resolve_tool(self) -> str:
        """Find the executable to use.

        Raises:
            DownloadError: If neither curl nor wget is installed
        """
        candidates = (self.tool,) if self.tool else self.TOOLS
        for candidate in candidates:
            path = shutil.which(candidate)
            if path:
                return path
        raise DownloadError(f"Neither {' nor '.join(candidates)} were found installed")

    def build_command(self, executable: str, url: str, dest_path: Path) -> list[str]:
        """Build the download command line."""
        if Path(executable).name.startswith("wget"):
            cmd = [executable, "-O", str(dest_path), url]
            if not self.verbose:
                cmd.insert(1, "-q")
        else:
            # --fail so HTTP errors become a non-zero exit code
            cmd = [executable, "--fail", "--location", "-o", str(dest_path), url]
            if not self.verbose:
                cmd.insert(1, "--silent")
        return cmd

    def download(self, url: str, dest_path: Path) -> Path:
        executable = self.resolve_tool()
        cmd = self.build_command(executable, url, Path(dest_path))
        logging.debug(f"Running: {' '.join(cmd)}")

        result = subprocess.run(
            cmd,
            stdout=None if self.verbose else subprocess.PIPE,
            stderr=None if self.verbose else subprocess.PIPE,
            text=True,
        )
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise DownloadError(
                f"Failed to download {url}: {Path(executable).name} exited with {result.returncode}"
                + (f"\n{detail}" if detail else "")
            )
        return Path(dest_path)


def create_fetcher(name: str = "requests", show_progress: bool = True, verbose: bool = False) -> IFetcher:
    """Create a fetch backend by name.

    Args:
        name: 'requests', 'curl', 'wget' or 'command' (curl or wget, whichever is found)
        show_progress: Progress bar for the requests backend
        verbose: Let command-line tools print their output

    Returns:
        Fetcher instance

    Raises:
        DownloadError: If the backend name is unknown
    """
    if name == "requests":
        return RequestsFetcher(show_progress=show_progress)
    if name == "command":
        return CommandFetcher(verbose=verbose)
    if name in CommandFetcher.TOOLS:
        return CommandFetcher(tool=name, verbose=verbose)
    raise DownloadError(f"Unknown downloader '{name}'. Use one of: requests, curl, wget, command")


class DownloadCache:
    """Serves downloaded files from the cache, fetching them on a miss.

    Entries are keyed by destination filename only. There is no freshness
    check: a changed URL with an unchanged destination name keeps serving the
    old file until the cache is purged.
    """

    def __init__(self, cache: Cache, scratch: ScratchSpace, fetcher: IFetcher):
        """Initialize download cache.

        Args:
            cache: Cache root
            scratch: Acquired scratch space for in-progress downloads
            fetcher: Backend used on a cache miss
        """
        self.cache = cache
        self.scratch = scratch
        self.fetcher = fetcher

    def fetch(self, url: str, destination_name: str) -> Path:
        """Get a file, downloading it only if it isn't cached yet.

        Args:
            url: Source URL, only used on a miss
            destination_name: Cache key and final file name

        Returns:
            Path to the cached file

        Raises:
            DownloadError: If the download fails
            CacheCorruptionError: If the cache entry exists but is not a file
        """
        cached_path = self.cache.get_file_path(destination_name)
        if cached_path.is_file():
            logging.info(f"  Retrieving {destination_name} from cache...")
            return cached_path

        if cached_path.exists() or cached_path.is_symlink():
            raise CacheCorruptionError(
                f"Cache entry {cached_path} exists but is not a regular file. "
                + "Purge the cache and try again."
            )

        logging.info(f"  Downloading from {url}...")
        download_dir = self.scratch.make_dir("download-")
        temp_file = download_dir / destination_name
        self.fetcher.download(url, temp_file)

        if not temp_file.is_file():
            raise DownloadError(f"Failed to download {url}: no file was written")

        self.cache.ensure_root()
        self._promote(temp_file, cached_path)
        return cached_path

    @staticmethod
    def _promote(temp_file: Path, cached_path: Path) -> None:
        """Move a finished download to its final cache name.

        A plain rename when scratch and cache share a filesystem. Otherwise
        the file is first copied to a hidden name beside the final one, then
        renamed, so the final name never shows a partial file.
        """
        try:
            os.replace(temp_file, cached_path)
            return
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise

        fd, partial_name = tempfile.mkstemp(prefix=f".{cached_path.name}.", suffix=".partial", dir=str(cached_path.parent))
        os.close(fd)
        partial = Path(partial_name)
        try:
            shutil.copyfile(temp_file, partial)
            os.replace(partial, cached_path)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        temp_file.unlink(missing_ok=True)
