"""
Firmware build and upload through the Arduino executable.

The Arduino IDE doubles as a command-line builder. Its output is not
interpreted, only its exit code.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from marlintool.config import ToolConfig
from marlintool.packages.prerequisites import PrerequisiteError


@dataclass
class BuildResult:
    """Result of a verify or upload run."""

    success: bool
    returncode: int
    message: str
    port: Optional[str] = None


class DeploymentError(Exception):
    """Raised when a build or upload cannot be started."""

    pass


class FirmwareBuilder:
    """Verifies and uploads Marlin builds."""

    def __init__(self, config: ToolConfig, executable: Path, verbose: bool = False):
        """Initialize firmware builder.

        Args:
            config: Tool configuration (board, sketch, build directory)
            executable: Arduino executable
            verbose: Whether to pass --verbose to the Arduino executable
        """
        self.config = config
        self.executable = Path(executable)
        self.verbose = verbose

    def build_command(self, mode: str, port: Optional[str] = None) -> List[str]:
        """Build the Arduino command line.

        Args:
            mode: 'verify' or 'upload'
            port: Serial port, required for 'upload'
        """
        if mode not in ("verify", "upload"):
            raise DeploymentError(f"Unknown build mode: {mode}")

        cmd = [str(self.executable), f"--{mode}"]
        if mode == "upload":
            cmd += ["--port", str(port)]
        if self.verbose:
            cmd.append("--verbose")
        cmd += [
            "--board",
            self.config.board_string,
            str(self.config.sketch_path),
            "--pref",
            f"build.path={self.config.build_dir}",
        ]
        return cmd

    def verify(self) -> BuildResult:
        """Build without uploading."""
        logging.info("Verifying build ...")
        return self._run("verify")

    def upload(self, port: Optional[str] = None) -> BuildResult:
        """Build and upload.

        Args:
            port: Serial port. If None, uses the configured port.

        Raises:
            DeploymentError: If no port is known
        """
        port = port or self.config.port
        if not port:
            raise DeploymentError("No serial port configured. Use --port or set 'port' in the params file.")
        logging.info(f'Building and uploading Marlin build from "{self.config.build_dir}" ...')
        return self._run("upload", port)

    def _run(self, mode: str, port: Optional[str] = None) -> BuildResult:
        if not self.executable.is_file():
            raise PrerequisiteError(
                f"Arduino executable not found at {self.executable}. Run 'marlintool setup' first.",
                missing=[str(self.executable)],
            )
        if not self.config.sketch_path.is_file():
            raise DeploymentError(f"Marlin sketch not found at {self.config.sketch_path}. Run 'marlintool marlin' first.")

        self.config.build_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(mode, port)
        logging.debug(f"Running: {' '.join(cmd)}")

        result = subprocess.run(cmd)
        if result.returncode == 0:
            return BuildResult(success=True, returncode=0, message=f"{mode.capitalize()} successful", port=port)
        return BuildResult(
            success=False,
            returncode=result.returncode,
            message=f"Arduino {mode} failed with exit code {result.returncode}",
            port=port,
        )
