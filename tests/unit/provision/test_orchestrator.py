"""Unit tests for the provisioning orchestrator."""

from dataclasses import replace
from pathlib import Path

import pytest

from marlintool.config import ConfigurationMissingError, Dependency, ToolConfig
from marlintool.packages.archive_utils import ArchiveExtractor
from marlintool.packages.cache import Cache
from marlintool.packages.downloader import DownloadCache, DownloadError
from marlintool.packages.git_mirror import GitMirrorCache
from marlintool.packages.scratch import ScratchSpace
from marlintool.packages.toolchain import ArduinoToolchain, get_toolchain_layout
from marlintool.provision import ProvisioningError, ProvisioningOrchestrator
from marlintool.provision.orchestrator import clean_cache, clean_environment
from marlintool_testing import FakeFetcher, FakeGit, arduino_tarball

TOOLCHAIN_URL = "https://downloads.arduino.cc/arduino-1.8.5-linux64.tar.xz"
MARLIN_URL = "https://github.com/MarlinFirmware/Marlin.git"
HARDWARE_URL = "https://github.com/SkyNet3D/anet-board.git"
LCD_URL = "https://github.com/kiyoshigawa/LiquidCrystal_I2C.git"
TMC_URL = "https://github.com/teemuatlut/TMC2130Stepper.git"

MARLIN_TREE = {
    "Marlin/Marlin.ino": "// Marlin 1.1.8\n",
    "Marlin/Configuration.h": "#define MOTHERBOARD BOARD_RAMPS_14_EFB\n",
    "Marlin/Configuration_adv.h": "#define E0_AUTO_FAN_PIN -1\n",
}


def make_remotes():
    return {
        MARLIN_URL: dict(MARLIN_TREE),
        HARDWARE_URL: {"hardware/anet/avr/boards.txt": "anet.name=Anet V1.0\n", "README.md": "anet"},
        LCD_URL: {"LiquidCrystal_I2C/LiquidCrystal_I2C.h": "// lcd\n", "examples/demo.ino": ""},
        TMC_URL: {"src/TMC2130Stepper.h": "// tmc\n", "library.properties": "name=TMC2130Stepper\n"},
    }


@pytest.fixture
def config(tmp_path):
    project = tmp_path / "printer"
    return ToolConfig(
        project_dir=project,
        arduino_toolchain_version="1.8.5",
        marlin_repository_url=MARLIN_URL,
        board_string="anet:avr:anet",
        arduino_dir=project / "arduino",
        marlin_dir=project / "Marlin",
        build_dir=project / "build",
        configuration_dir=project / "configuration",
        hardware_definition_repo=HARDWARE_URL,
        dependencies=[
            Dependency("LiquidCrystal_I2C", LCD_URL, "LiquidCrystal_I2C"),
            Dependency("TMC2130Stepper", TMC_URL),
        ],
    )


class Harness:
    """Orchestrator wired to fakes, with the pieces exposed for assertions."""

    def __init__(self, config: ToolConfig, scratch: ScratchSpace, fetcher=None, git=None):
        self.config = config
        self.scratch = scratch
        self.fetcher = fetcher or FakeFetcher({TOOLCHAIN_URL: arduino_tarball()})
        self.git = git or FakeGit(make_remotes())
        self.cache = Cache(config.project_dir)
        layout = get_toolchain_layout("1.8.5", config.arduino_dir, "linux", "linux64")
        self.toolchain = ArduinoToolchain("1.8.5", config.arduino_dir, layout=layout)
        self.orchestrator = ProvisioningOrchestrator(
            config=config,
            cache=self.cache,
            downloads=DownloadCache(self.cache, scratch, self.fetcher),
            mirrors=GitMirrorCache(self.cache, scratch, self.git),
            git=self.git,
            toolchain=self.toolchain,
            extractor=ArchiveExtractor(show_progress=False),
        )


@pytest.fixture
def harness(tmp_path, config):
    with ScratchSpace(base_dir=tmp_path) as scratch:
        yield Harness(config, scratch)


class TestSetupEnvironment:
    """Test cases for toolchain, library and hardware installation."""

    def test_setup_installs_everything(self, harness):
        harness.orchestrator.setup_environment()

        libraries = harness.toolchain.libraries_dir
        assert harness.toolchain.is_installed()
        assert (libraries / "Servo" / "Servo.h").is_file()
        assert (libraries / "LiquidCrystal_I2C" / "LiquidCrystal_I2C.h").read_text() == "// lcd\n"
        assert not (libraries / "LiquidCrystal_I2C" / "examples").exists()
        assert (libraries / "TMC2130Stepper" / "src" / "TMC2130Stepper.h").is_file()
        assert not (libraries / "TMC2130Stepper" / ".git").exists()
        assert (harness.toolchain.hardware_dir / "anet" / "avr" / "boards.txt").is_file()
        assert (harness.toolchain.hardware_dir / "arduino" / "avr" / "boards.txt").is_file()
        assert not (harness.toolchain.hardware_dir / "README.md").exists()

    def test_setup_populates_cache(self, harness):
        harness.orchestrator.setup_environment()

        assert harness.cache.list_entries() == [
            "LiquidCrystal_I2C",
            "TMC2130Stepper",
            "anet-board",
            "arduino-1.8.5-linux64.tar.xz",
        ]

    def test_working_clones_do_not_outlive_installation(self, harness):
        harness.orchestrator.setup_environment()

        leftovers = [p for p in harness.scratch.path.rglob("*") if p.is_file()]
        assert leftovers == []

    def test_second_setup_reuses_cache(self, harness):
        harness.orchestrator.setup_environment()
        harness.orchestrator.setup_environment()

        assert harness.fetcher.calls == [TOOLCHAIN_URL]
        assert sorted(harness.git.clones) == sorted([HARDWARE_URL, LCD_URL, TMC_URL])
        assert len(harness.git.fetches) == 3

    def test_second_setup_works_offline(self, tmp_path, config):
        with ScratchSpace(base_dir=tmp_path) as scratch:
            Harness(config, scratch).orchestrator.setup_environment()

        offline_git = FakeGit(make_remotes())
        offline_git.fail_fetch = True
        with ScratchSpace(base_dir=tmp_path) as scratch:
            offline = Harness(config, scratch, fetcher=FakeFetcher({}, fail=True), git=offline_git)
            offline.orchestrator.setup_environment()

        assert offline.fetcher.calls == []
        assert offline_git.clones == []
        assert offline.toolchain.is_installed()

    def test_failed_toolchain_download(self, tmp_path, config):
        with ScratchSpace(base_dir=tmp_path) as scratch:
            harness = Harness(config, scratch, fetcher=FakeFetcher({}, fail=True))
            with pytest.raises(DownloadError, match=TOOLCHAIN_URL):
                harness.orchestrator.setup_environment()
        assert harness.cache.list_entries() == []
        assert not config.arduino_dir.exists()

    def test_missing_dependency_subpath(self, tmp_path, config, harness):
        harness.orchestrator.install_toolchain()
        dependency = Dependency("Broken", LCD_URL, "does/not/exist")

        with pytest.raises(ProvisioningError, match="'does/not/exist' not found in"):
            harness.orchestrator.install_dependency(dependency)

        assert not (harness.toolchain.libraries_dir / "Broken").exists()
        assert [p for p in harness.scratch.path.rglob("*") if p.is_file()] == []

    def test_dependency_replaces_previous_install(self, harness):
        harness.orchestrator.install_toolchain()
        stale = harness.toolchain.libraries_dir / "LiquidCrystal_I2C"
        stale.mkdir(parents=True)
        (stale / "old.h").write_text("old")

        harness.orchestrator.install_dependencies()

        assert not (stale / "old.h").exists()
        assert (stale / "LiquidCrystal_I2C.h").is_file()

    def test_no_hardware_definition(self, tmp_path, config):
        config = replace(config, hardware_definition_repo="")
        with ScratchSpace(base_dir=tmp_path) as scratch:
            harness = Harness(config, scratch)
            assert harness.orchestrator.install_hardware_definition() is None
        assert HARDWARE_URL not in harness.git.clones

    def test_hardware_repository_without_hardware_directory(self, tmp_path, config):
        remotes = make_remotes()
        remotes[HARDWARE_URL] = {"README.md": "nothing here"}
        with ScratchSpace(base_dir=tmp_path) as scratch:
            harness = Harness(config, scratch, git=FakeGit(remotes))
            with pytest.raises(ProvisioningError, match="No hardware directory"):
                harness.orchestrator.install_hardware_definition()


class TestFirmware:
    """Test cases for getting and refreshing the Marlin sources."""

    def test_get_firmware(self, harness, config):
        marlin_dir = harness.orchestrator.get_firmware()

        assert marlin_dir == config.marlin_dir
        assert config.sketch_path.read_text() == "// Marlin 1.1.8\n"
        assert harness.git.local_clones[0][2] is None

    def test_get_firmware_at_branch(self, tmp_path, config):
        config = replace(config, marlin_repository_branch="1.1.x")
        with ScratchSpace(base_dir=tmp_path) as scratch:
            harness = Harness(config, scratch)
            harness.orchestrator.get_firmware()
        assert harness.git.local_clones[0][2] == "1.1.x"

    def test_get_firmware_refuses_existing_directory(self, harness, config):
        config.marlin_dir.mkdir(parents=True)
        (config.marlin_dir / "keep.txt").write_text("mine")

        with pytest.raises(ProvisioningError, match="already exists"):
            harness.orchestrator.get_firmware()
        assert (config.marlin_dir / "keep.txt").read_text() == "mine"

    def test_refresh_keeps_configuration(self, harness, config):
        harness.orchestrator.get_firmware()
        live = config.marlin_config_dir
        (live / "Configuration.h").write_text("#define MOTHERBOARD BOARD_ANET_10\n")
        (live / "scratch.txt").write_text("local junk")
        harness.git.remotes[MARLIN_URL]["Marlin/Marlin.ino"] = "// Marlin 1.1.9\n"

        name = harness.orchestrator.refresh_firmware("before-refresh")

        assert name == "before-refresh"
        assert config.sketch_path.read_text() == "// Marlin 1.1.9\n"
        assert (live / "Configuration.h").read_text() == "#define MOTHERBOARD BOARD_ANET_10\n"
        assert not (live / "scratch.txt").exists()
        snapshot = config.configuration_dir / "before-refresh" / "Configuration.h"
        assert snapshot.read_text() == "#define MOTHERBOARD BOARD_ANET_10\n"
        assert harness.git.resets == [config.marlin_dir]

    def test_refresh_uses_timestamp_name(self, harness, config):
        harness.orchestrator.get_firmware()

        name = harness.orchestrator.refresh_firmware()

        assert len(name) == len("2018-01-02-03-04-05")
        assert (config.configuration_dir / name).is_dir()

    def test_refresh_without_checkout(self, harness):
        with pytest.raises(ProvisioningError, match="No Marlin checkout"):
            harness.orchestrator.refresh_firmware()
        assert harness.git.resets == []

    def test_refresh_with_missing_configuration_does_not_reset(self, harness, config):
        harness.orchestrator.get_firmware()
        (config.marlin_config_dir / "Configuration_adv.h").unlink()

        with pytest.raises(ConfigurationMissingError):
            harness.orchestrator.refresh_firmware()
        assert harness.git.resets == []


class TestClean:
    """Test cases for clean_environment and clean_cache."""

    def test_clean_environment_keeps_snapshots_and_cache(self, harness, config):
        harness.orchestrator.setup_environment()
        harness.orchestrator.get_firmware()
        config.build_dir.mkdir()
        harness.orchestrator.snapshots.backup("keep")

        removed = clean_environment(config)

        assert removed == [config.arduino_dir, config.marlin_dir, config.build_dir]
        assert not config.arduino_dir.exists()
        assert (config.configuration_dir / "keep").is_dir()
        assert harness.cache.is_file_cached("arduino-1.8.5-linux64.tar.xz")

    def test_clean_environment_on_empty_project(self, config):
        assert clean_environment(config) == []

    def test_clean_cache(self, harness):
        harness.orchestrator.install_toolchain()

        assert clean_cache(harness.cache) is True
        assert not harness.cache.cache_root.exists()
        assert harness.orchestrator.clean_cache() is False

    def test_clean_delegates(self, harness, config):
        config.build_dir.mkdir(parents=True)
        assert harness.orchestrator.clean() == [config.build_dir]


def test_orchestrator_defaults_snapshot_store(harness, config):
    store = harness.orchestrator.snapshots
    assert store.snapshot_root == config.configuration_dir
    assert store.live_dir == Path(config.marlin_dir) / "Marlin"
