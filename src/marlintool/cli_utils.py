"""CLI utility functions for marlintool.

This module provides common utilities used across CLI commands including:
- Logging setup for the quiet/verbose switches
- Error handling and formatting
- Banner messages
"""

import logging
import sys
from typing import NoReturn, Optional, TextIO

LOG_FORMAT = "%(message)s"
VERBOSE_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def setup_logging(verbose: bool = False, quiet: bool = False, stream: Optional[TextIO] = None) -> None:
    """Configure the root logger for the command line.

    Status messages go to stderr at INFO level. Quiet mode keeps warnings
    and errors only, verbose mode adds debug output such as the commands
    being run.

    Args:
        verbose: Show debug messages
        quiet: Show warnings and errors only
        stream: Output stream (default: stderr)
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_marlintool", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(VERBOSE_LOG_FORMAT if verbose else LOG_FORMAT))
    console_handler._marlintool = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Download failed")
            message: Error message details, including the offending path or URL
        """
        print(file=sys.stderr)
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}", file=sys.stderr)
        print(file=sys.stderr)
        print(message, file=sys.stderr)
        print(file=sys.stderr)

    @staticmethod
    def print_success(message: str) -> None:
        """Print formatted success message."""
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        """Print formatted warning message."""
        print(file=sys.stderr)
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}", file=sys.stderr)

    @staticmethod
    def handle_error(title: str, error: BaseException, exit_code: int = 1) -> NoReturn:
        """Print an expected error and exit.

        Args:
            title: Error title
            error: The exception to report
            exit_code: Process exit code
        """
        ErrorFormatter.print_error(title, str(error))
        sys.exit(exit_code)

    @staticmethod
    def handle_keyboard_interrupt() -> NoReturn:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> NoReturn:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:", file=sys.stderr)
            print(traceback.format_exc(), file=sys.stderr)

        sys.exit(1)


class BannerFormatter:
    """Formats and displays banner messages with borders."""

    DEFAULT_WIDTH = 80
    DEFAULT_BORDER_CHAR = "="

    @staticmethod
    def format_banner(
        message: str,
        width: int = DEFAULT_WIDTH,
        border_char: str = DEFAULT_BORDER_CHAR,
        center: bool = True,
    ) -> str:
        """Format a banner message with top and bottom borders.

        Args:
            message: The message to display (can be multi-line)
            width: Width of the banner in characters (default: 80)
            border_char: Character to use for borders (default: "=")
            center: Whether to center text (default: True)

        Returns:
            Formatted banner string with borders
        """
        lines = message.split("\n")
        border = border_char * width
        formatted_lines = [border]

        for line in lines:
            if center:
                padding = (width - len(line)) // 2
                formatted_line = " " * padding + line
            else:
                formatted_line = "  " + line

            formatted_lines.append(formatted_line)

        formatted_lines.append(border)
        return "\n".join(formatted_lines)

    @staticmethod
    def print_banner(
        message: str,
        width: int = DEFAULT_WIDTH,
        border_char: str = DEFAULT_BORDER_CHAR,
        center: bool = True,
        file: Optional[TextIO] = None,
    ) -> None:
        """Print a banner message with top and bottom borders."""
        print(file=file)
        print(BannerFormatter.format_banner(message, width=width, border_char=border_char, center=center), file=file)
