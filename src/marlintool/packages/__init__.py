"""Package management for marlintool.

This module handles the fetch-and-cache layer: the scratch space, the
download cache, the git mirror cache, archive extraction and the Arduino
toolchain layout.
"""

from .archive_utils import ArchiveExtractor, ExtractionError
from .cache import Cache, CacheCorruptionError, repo_name_from_url
from .downloader import CommandFetcher, DownloadCache, DownloadError, RequestsFetcher, create_fetcher
from .git_mirror import GitClient, GitError, GitMirrorCache
from .package import IFetcher, IGitBackend, PackageError
from .platform_utils import PlatformDetector, PlatformError
from .prerequisites import PrerequisiteError, check_any_tool, check_tools
from .scratch import ScratchSpace, ScratchSpaceError
from .toolchain import ArduinoToolchain, ToolchainLayout, get_toolchain_layout

__all__ = [
    "IFetcher",
    "IGitBackend",
    "PackageError",
    "Cache",
    "CacheCorruptionError",
    "repo_name_from_url",
    "ScratchSpace",
    "ScratchSpaceError",
    "DownloadCache",
    "DownloadError",
    "RequestsFetcher",
    "CommandFetcher",
    "create_fetcher",
    "GitClient",
    "GitError",
    "GitMirrorCache",
    "ArchiveExtractor",
    "ExtractionError",
    "PlatformDetector",
    "PlatformError",
    "PrerequisiteError",
    "check_tools",
    "check_any_tool",
    "ArduinoToolchain",
    "ToolchainLayout",
    "get_toolchain_layout",
]
