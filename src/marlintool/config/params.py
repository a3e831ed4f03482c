"""
marlintool.params configuration parser.

The params file is an INI file that describes the toolchain, the firmware
repository, the board and the libraries to install. It is read once at
startup into a ToolConfig that is handed to every component.

Example marlintool.params:
    [marlintool]
    arduino_toolchain_version = 1.8.5
    marlin_repository_url = https://github.com/MarlinFirmware/Marlin.git
    marlin_repository_branch = 1.1.x
    hardware_definition_repo = https://github.com/SkyNet3D/anet-board.git
    board_string = anet:avr:anet
    port = /dev/ttyUSB0

    [dependencies]
    LiquidCrystal_I2C = https://github.com/kiyoshigawa/LiquidCrystal_I2C.git, LiquidCrystal_I2C

Usage:
    config = ToolConfig.load(Path("marlintool.params"))
    print(config.marlin_dir)
"""

import configparser
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

DEFAULT_PARAMS_FILE = "marlintool.params"
MAIN_SECTION = "marlintool"
DEPENDENCIES_SECTION = "dependencies"


class ConfigError(Exception):
    """Exception raised for missing or invalid params files."""

    pass


@dataclass(frozen=True)
class Dependency:
    """A library installed into the toolchain's libraries directory.

    Attributes:
        name: Directory name under the libraries directory
        url: Git repository URL
        subpath: Directory inside the repository to install ('' for the whole repository)
    """

    name: str
    url: str
    subpath: str = ""

    @classmethod
    def parse(cls, name: str, value: str) -> "Dependency":
        """Parse a '<url>[, <subpath>]' entry of the dependencies section."""
        parts = [part.strip() for part in value.split(",")]
        if not parts[0]:
            raise ConfigError(f"Dependency '{name}' has no repository URL")
        if len(parts) > 2:
            raise ConfigError(f"Dependency '{name}' must be '<url>, <subpath>', got: {value!r}")
        subpath = parts[1].strip("/") if len(parts) == 2 else ""
        if ".." in Path(subpath).parts:
            raise ConfigError(f"Dependency '{name}' subpath must stay inside the repository: {subpath!r}")
        return cls(name=name, url=parts[0], subpath=subpath)


@dataclass(frozen=True)
class ToolConfig:
    """Immutable tool configuration.

    Relative paths in the params file are resolved against project_dir.
    """

    project_dir: Path
    arduino_toolchain_version: str
    marlin_repository_url: str
    board_string: str
    arduino_dir: Path
    marlin_dir: Path
    build_dir: Path
    configuration_dir: Path
    marlin_repository_branch: str = ""
    hardware_definition_repo: str = ""
    port: str = ""
    toolchain_base_url: str = "https://downloads.arduino.cc"
    downloader: str = "requests"
    strict_mirror_update: bool = False
    cache_dir: Optional[Path] = None
    dependencies: List[Dependency] = field(default_factory=list)

    REQUIRED_FIELDS = ("arduino_toolchain_version", "marlin_repository_url", "board_string")
    DOWNLOADERS = ("requests", "curl", "wget", "command")

    @property
    def sketch_path(self) -> Path:
        """The Marlin sketch handed to the Arduino executable."""
        return self.marlin_dir / "Marlin" / "Marlin.ino"

    @property
    def marlin_config_dir(self) -> Path:
        """Directory holding the live Configuration.h files."""
        return self.marlin_dir / "Marlin"

    def with_port(self, port: Optional[str]) -> "ToolConfig":
        """Return a copy with the serial port overridden (no-op for None)."""
        if not port:
            return self
        return replace(self, port=port)

    @classmethod
    def load(cls, params_path: Path) -> "ToolConfig":
        """Read a params file.

        Args:
            params_path: Path to the params file

        Returns:
            ToolConfig

        Raises:
            ConfigError: If the file doesn't exist, cannot be parsed, or is
                missing required fields
        """
        params_path = Path(params_path)
        if not params_path.is_file():
            raise ConfigError(f"Can't find {params_path}")

        parser = configparser.ConfigParser(interpolation=None)
        # Dependency names are directory names, keep their case
        parser.optionxform = str  # type: ignore[assignment, method-assign]

        try:
            parser.read(params_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigError(f"Failed to parse {params_path}: {e}") from e

        return cls.from_parser(parser, params_path.resolve().parent, source=str(params_path))

    @classmethod
    def from_parser(
        cls, parser: configparser.ConfigParser, project_dir: Path, source: str = DEFAULT_PARAMS_FILE
    ) -> "ToolConfig":
        """Build a ToolConfig from an already parsed params file."""
        if MAIN_SECTION not in parser:
            raise ConfigError(f"Section [{MAIN_SECTION}] not found in {source}")

        section = parser[MAIN_SECTION]
        values = {key.lower(): value.strip() for key, value in section.items()}

        missing = [name for name in cls.REQUIRED_FIELDS if not values.get(name)]
        if missing:
            raise ConfigError(f"Missing required fields in {source}: {', '.join(missing)}")

        downloader = values.get("downloader", "requests") or "requests"
        if downloader not in cls.DOWNLOADERS:
            raise ConfigError(
                f"Invalid downloader '{downloader}' in {source}. "
                + f"Use one of: {', '.join(cls.DOWNLOADERS)}"
            )

        strict_value = values.get("strict_mirror_update", "").lower()
        if strict_value and strict_value not in parser.BOOLEAN_STATES:
            raise ConfigError(f"Invalid strict_mirror_update in {source}: {strict_value!r}")
        strict = parser.BOOLEAN_STATES.get(strict_value, False)

        def path_value(key: str, default: str) -> Path:
            return (project_dir / (values.get(key) or default)).resolve()

        dependencies = []
        if DEPENDENCIES_SECTION in parser:
            for name, value in parser[DEPENDENCIES_SECTION].items():
                if "/" in name or "\\" in name or name in (".", ".."):
                    raise ConfigError(f"Invalid dependency name in {source}: {name!r}")
                dependencies.append(Dependency.parse(name, value))

        return cls(
            project_dir=project_dir,
            arduino_toolchain_version=values["arduino_toolchain_version"],
            marlin_repository_url=values["marlin_repository_url"],
            board_string=values["board_string"],
            arduino_dir=path_value("arduino_dir", "arduino"),
            marlin_dir=path_value("marlin_dir", "Marlin"),
            build_dir=path_value("build_dir", "build"),
            configuration_dir=path_value("configuration_dir", "configuration"),
            marlin_repository_branch=values.get("marlin_repository_branch", ""),
            hardware_definition_repo=values.get("hardware_definition_repo", ""),
            port=values.get("port", ""),
            toolchain_base_url=values.get("toolchain_base_url") or "https://downloads.arduino.cc",
            downloader=downloader,
            strict_mirror_update=strict,
            cache_dir=path_value("cache_dir", "") if values.get("cache_dir") else None,
            dependencies=dependencies,
        )
