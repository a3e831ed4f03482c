"""Archive Extraction Utilities.

This module extracts the Arduino IDE archives: .tar.xz (and other tar
compressions) on Linux, .zip on macOS. The format is picked from the file
extension.
"""

import shutil
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import Optional

from .package import PackageError

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")


class ExtractionError(PackageError):
    """Raised when archive extraction fails."""

    pass


def archive_format(archive_path: Path) -> str:
    """Detect the archive format from the file name.

    Returns:
        'zip' or 'tar'

    Raises:
        ExtractionError: If the extension is not supported
    """
    name = archive_path.name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith(TAR_SUFFIXES):
        return "tar"
    raise ExtractionError(f"Unsupported archive format: {archive_path.name}")


class ArchiveExtractor:
    """Extracts .zip and tar archives into a target directory."""

    def __init__(self, show_progress: bool = True):
        """Initialize archive extractor.

        Args:
            show_progress: Whether to print what is being extracted
        """
        self.show_progress = show_progress

    def extract(self, archive_path: Path, target_dir: Path, strip_root: Optional[bool] = None) -> Path:
        """Extract an archive.

        Args:
            archive_path: Archive file
            target_dir: Directory to extract contents into (created if needed)
            strip_root: If True and the archive holds a single top-level
                directory, extract that directory's contents instead
                (like ``tar --strip 1``). If None, tar archives are stripped and
                zip archives are not.

        Returns:
            The target directory

        Raises:
            ExtractionError: If the archive is missing, unsupported or broken
        """
        archive_path = Path(archive_path)
        target_dir = Path(target_dir)

        if not archive_path.is_file():
            raise ExtractionError(f"Archive not found: {archive_path}")

        fmt = archive_format(archive_path)
        if strip_root is None:
            strip_root = fmt == "tar"

        if self.show_progress:
            print(f"  Unpacking {archive_path.name} (this might take a while)...")

        target_dir.mkdir(parents=True, exist_ok=True)
        temp_extract = target_dir.parent / f".temp_extract_{archive_path.name}"
        if temp_extract.exists():
            shutil.rmtree(temp_extract)
        temp_extract.mkdir(parents=True)

        try:
            if fmt == "zip":
                self._extract_zip(archive_path, temp_extract)
            else:
                self._extract_tar(archive_path, temp_extract)

            extracted_items = list(temp_extract.iterdir())
            if strip_root and len(extracted_items) == 1 and extracted_items[0].is_dir():
                source_dir = extracted_items[0]
            else:
                source_dir = temp_extract

            for item in source_dir.iterdir():
                dest = target_dir / item.name
                if dest.is_dir() and not dest.is_symlink():
                    shutil.rmtree(dest)
                elif dest.exists() or dest.is_symlink():
                    dest.unlink()
                shutil.move(str(item), str(dest))

        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e
        finally:
            if temp_extract.exists():
                shutil.rmtree(temp_extract, ignore_errors=True)

        return target_dir

    def _extract_tar(self, archive_path: Path, dest_dir: Path) -> None:
        with tarfile.open(archive_path, "r:*") as tar:
            if hasattr(tarfile, "tar_filter"):
                tar.extractall(dest_dir, filter="tar")
            else:
                tar.extractall(dest_dir)

    def _extract_zip(self, archive_path: Path, dest_dir: Path) -> None:
        # zipfile drops unix permission bits, restore them so the
        # extracted executables stay executable.
        with zipfile.ZipFile(archive_path, "r") as zip_file:
            for info in zip_file.infolist():
                extracted = Path(zip_file.extract(info, dest_dir))
                mode = (info.external_attr >> 16) & 0o7777
                if mode and not info.is_dir():
                    extracted.chmod(mode | stat.S_IRUSR)
