"""
Command-line interface for marlintool.

This module provides the `marlintool` CLI tool for setting up a Marlin build
environment and building or uploading the firmware.
"""

import argparse
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, NoReturn, Optional, Tuple

from marlintool import __version__
from marlintool.cli_utils import BannerFormatter, ErrorFormatter, setup_logging
from marlintool.config import (
    DEFAULT_PARAMS_FILE,
    ConfigError,
    ConfigSnapshotStore,
    ConfigurationMissingError,
    SnapshotError,
    SnapshotNotFoundError,
    ToolConfig,
)
from marlintool.deploy import DeploymentError, FirmwareBuilder
from marlintool.packages import (
    ArchiveExtractor,
    ArduinoToolchain,
    Cache,
    CacheCorruptionError,
    DownloadCache,
    DownloadError,
    GitClient,
    GitError,
    GitMirrorCache,
    PackageError,
    PrerequisiteError,
    ScratchSpace,
    check_any_tool,
    check_tools,
    create_fetcher,
)
from marlintool.provision import ProvisioningError, ProvisioningOrchestrator
from marlintool.provision.orchestrator import clean_cache, clean_environment

MISSING_PARAMS_MESSAGE = """Can't find {params}!

Please rename the "{params}.example" file placed in the
same directory as this script to "{params}" and edit
if necessary."""

# External tools each command needs before it touches the cache
REQUIRED_TOOLS: Dict[str, Tuple[str, ...]] = {
    "setup": ("git",),
    "marlin": ("git",),
    "fetch": ("git",),
}


@dataclass
class CommandArgs:
    """Arguments shared by every command."""

    command: str
    params: Path
    port: Optional[str] = None
    name: Optional[str] = None
    quiet: bool = False
    verbose: bool = False


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with status 1 on invalid arguments."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def handle_sigterm(signum: int, frame: object) -> None:
    """Turn SIGTERM into SystemExit so context managers (the scratch space) unwind."""
    logging.warning("Received SIGTERM, cleaning up")
    sys.exit(128 + signum)


def load_config(args: CommandArgs) -> ToolConfig:
    """Load the params file, exiting with status 1 if it is missing or invalid."""
    try:
        config = ToolConfig.load(args.params)
    except ConfigError as e:
        if not args.params.exists():
            BannerFormatter.print_banner(
                MISSING_PARAMS_MESSAGE.format(params=args.params.name),
                center=False,
                file=sys.stderr,
            )
            sys.exit(1)
        ErrorFormatter.handle_error("Invalid configuration", e)
    return config.with_port(args.port)


def check_prerequisites(args: CommandArgs, config: ToolConfig) -> None:
    """Make sure the external tools the command relies on are installed."""
    tools = REQUIRED_TOOLS.get(args.command, ())
    if tools:
        check_tools(*tools)
    if args.command == "setup":
        if config.downloader in ("curl", "wget"):
            check_tools(config.downloader)
        elif config.downloader == "command":
            check_any_tool("curl", "wget")


def create_orchestrator(config: ToolConfig, scratch: ScratchSpace, args: CommandArgs) -> ProvisioningOrchestrator:
    """Wire the cache components for one invocation."""
    cache = Cache(config.project_dir, cache_root=config.cache_dir)
    fetcher = create_fetcher(config.downloader, show_progress=not args.quiet, verbose=args.verbose)
    git = GitClient(verbose=args.verbose)
    return ProvisioningOrchestrator(
        config=config,
        cache=cache,
        downloads=DownloadCache(cache, scratch, fetcher),
        mirrors=GitMirrorCache(cache, scratch, git, strict_update=config.strict_mirror_update),
        git=git,
        toolchain=ArduinoToolchain(config.arduino_toolchain_version, config.arduino_dir, config.toolchain_base_url),
        extractor=ArchiveExtractor(show_progress=not args.quiet),
    )


def setup_command(args: CommandArgs, config: ToolConfig) -> int:
    """Download and configure the toolchain and the libraries for building Marlin."""
    with ScratchSpace() as scratch:
        create_orchestrator(config, scratch, args).setup_environment()
    ErrorFormatter.print_success(f"Build environment ready in {config.arduino_dir}")
    return 0


def marlin_command(args: CommandArgs, config: ToolConfig) -> int:
    """Download the Marlin sources."""
    with ScratchSpace() as scratch:
        marlin_dir = create_orchestrator(config, scratch, args).get_firmware()
    ErrorFormatter.print_success(f"Marlin sources in {marlin_dir}")
    return 0


def fetch_command(args: CommandArgs, config: ToolConfig) -> int:
    """Update an existing Marlin clone, keeping the configuration."""
    with ScratchSpace() as scratch:
        snapshot = create_orchestrator(config, scratch, args).refresh_firmware()
    ErrorFormatter.print_success(f"Marlin updated, configuration kept (backup '{snapshot}')")
    return 0


def _builder(args: CommandArgs, config: ToolConfig) -> FirmwareBuilder:
    toolchain = ArduinoToolchain(config.arduino_toolchain_version, config.arduino_dir, config.toolchain_base_url)
    return FirmwareBuilder(config, toolchain.executable, verbose=args.verbose)


def verify_command(args: CommandArgs, config: ToolConfig) -> int:
    """Build without uploading."""
    result = _builder(args, config).verify()
    if not result.success:
        ErrorFormatter.print_error("Build failed!", result.message)
        return 1
    ErrorFormatter.print_success(result.message)
    return 0


def upload_command(args: CommandArgs, config: ToolConfig) -> int:
    """Build and upload Marlin."""
    result = _builder(args, config).upload(config.port)
    if not result.success:
        ErrorFormatter.print_error("Upload failed!", result.message)
        return 1
    ErrorFormatter.print_success(f"{result.message} ({result.port})")
    return 0


def _snapshot_store(config: ToolConfig) -> ConfigSnapshotStore:
    return ConfigSnapshotStore(config.configuration_dir, config.marlin_config_dir)


def backup_command(args: CommandArgs, config: ToolConfig) -> int:
    """Backup the Marlin configuration to the named snapshot."""
    assert args.name is not None
    target = _snapshot_store(config).backup(args.name)
    ErrorFormatter.print_success(f"Configuration saved to {target}")
    return 0


def restore_command(args: CommandArgs, config: ToolConfig) -> int:
    """Restore the named snapshot into the Marlin directory."""
    assert args.name is not None
    source = _snapshot_store(config).restore(args.name)
    ErrorFormatter.print_success(f"Configuration restored from {source}")
    return 0


def snapshots_command(args: CommandArgs, config: ToolConfig) -> int:
    """List the configuration snapshots."""
    for name in _snapshot_store(config).list_snapshots():
        print(name)
    return 0


def clean_command(args: CommandArgs, config: ToolConfig) -> int:
    """Remove the Marlin sources, the Arduino toolchain and the build directory."""
    for path in clean_environment(config):
        print(f"Removed {path}")
    return 0


def clean_cache_command(args: CommandArgs, config: ToolConfig) -> int:
    """Remove the download and mirror cache."""
    cache = Cache(config.project_dir, cache_root=config.cache_dir)
    if clean_cache(cache):
        print(f"Removed {cache.cache_root}")
    return 0


COMMANDS: Dict[str, Callable[[CommandArgs, ToolConfig], int]] = {
    "setup": setup_command,
    "marlin": marlin_command,
    "fetch": fetch_command,
    "verify": verify_command,
    "upload": upload_command,
    "backup": backup_command,
    "restore": restore_command,
    "snapshots": snapshots_command,
    "clean": clean_command,
    "clean-cache": clean_cache_command,
}


def run_command(args: CommandArgs) -> NoReturn:
    """Run a command and exit with its status.

    Every error is reported with the offending path or URL, and ends the
    process with status 1.
    """
    config = load_config(args)

    try:
        check_prerequisites(args, config)
        sys.exit(COMMANDS[args.command](args, config))
    except PrerequisiteError as e:
        ErrorFormatter.handle_error("Missing prerequisite", e)
    except SnapshotNotFoundError as e:
        ErrorFormatter.handle_error("Snapshot not found", e)
    except ConfigurationMissingError as e:
        ErrorFormatter.handle_error("Configuration file missing", e)
    except CacheCorruptionError as e:
        ErrorFormatter.handle_error("Cache corrupted", e)
    except (DownloadError, GitError) as e:
        ErrorFormatter.handle_error("Transfer failed", e)
    except (ProvisioningError, DeploymentError, PackageError, SnapshotError, ValueError) as e:
        ErrorFormatter.handle_error("Operation failed", e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = _ArgumentParser(
        prog="marlintool",
        description="Builds and installs Marlin 3D printer firmware.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"marlintool {__version__}",
    )
    parser.add_argument(
        "--params",
        type=Path,
        default=Path(DEFAULT_PARAMS_FILE),
        help=f"Params file (default: ./{DEFAULT_PARAMS_FILE})",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Don't print status messages",
    )
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print the output of sub-processes",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run", parser_class=_ArgumentParser)

    subparsers.add_parser(
        "setup",
        help="Download and configure the toolchain and the necessary libraries for building Marlin",
    )
    subparsers.add_parser("marlin", help="Download Marlin sources")
    subparsers.add_parser("fetch", help="Update an existing Marlin clone")
    subparsers.add_parser("verify", help="Build without uploading")

    upload_parser = subparsers.add_parser("upload", help="Build and upload Marlin")
    upload_parser.add_argument(
        "-p",
        "--port",
        default=None,
        help="Serial port for uploading the firmware (overrides the params file)",
    )

    backup_parser = subparsers.add_parser("backup", help="Backup the Marlin configuration to the named backup")
    backup_parser.add_argument("name", help="Backup name")

    restore_parser = subparsers.add_parser(
        "restore",
        help="Restore the given configuration into the Marlin directory",
    )
    restore_parser.add_argument("name", help="Backup name")

    subparsers.add_parser("snapshots", help="List configuration backups")
    subparsers.add_parser("clean", help="Remove Marlin sources, Arduino toolchain and build directory")
    subparsers.add_parser("clean-cache", help="Clean up the download cache")

    return parser


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """marlintool - Marlin firmware build environment manager."""
    parser = create_parser()
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    args = CommandArgs(
        command=parsed_args.command,
        params=parsed_args.params,
        port=getattr(parsed_args, "port", None),
        name=getattr(parsed_args, "name", None),
        quiet=parsed_args.quiet,
        verbose=parsed_args.verbose,
    )
    setup_logging(verbose=args.verbose, quiet=args.quiet)
    signal.signal(signal.SIGTERM, handle_sigterm)
    run_command(args)


if __name__ == "__main__":
    main()
