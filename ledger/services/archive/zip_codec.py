"""
Archive packaging.

Packs a staging directory into one portable file and back. The export
codec only sees the ArchiveCodec interface, so hosts can swap in another
container format.
"""

import zipfile
from abc import ABC, abstractmethod
from pathlib import Path

import structlog


logger = structlog.get_logger(__name__)


class ArchiveError(Exception):
    """The archive could not be written or read."""
    pass


class ArchiveCodec(ABC):
    """Directory <-> single file. Both methods are blocking."""

    @abstractmethod
    def pack(self, source_dir: Path, archive_path: Path) -> Path:
        """
        Write every file under source_dir into archive_path.

        Raises:
            ArchiveError: If the archive cannot be written
        """
        pass

    @abstractmethod
    def unpack(self, archive_path: Path, dest_dir: Path) -> Path:
        """
        Extract archive_path into dest_dir.

        Raises:
            ArchiveError: If the archive is unreadable or unsafe
        """
        pass


class ZipArchiveCodec(ArchiveCodec):
    """ZIP container with paths stored relative to the source directory."""

    def pack(self, source_dir: Path, archive_path: Path) -> Path:
        source_dir = Path(source_dir)
        archive_path = Path(archive_path)
        try:
            with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as zf:
                for path in sorted(source_dir.rglob("*")):
                    if path.is_file():
                        zf.write(path, path.relative_to(source_dir).as_posix())
        except OSError as e:
            raise ArchiveError(f"Failed to write archive {archive_path.name}: {e}") from e

        logger.debug("archive_packed", archive=str(archive_path))
        return archive_path

    def unpack(self, archive_path: Path, dest_dir: Path) -> Path:
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        root = dest_dir.resolve()
        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                for member in zf.infolist():
                    target = (root / member.filename).resolve()
                    if target != root and root not in target.parents:
                        raise ArchiveError(f"Archive entry escapes destination: {member.filename}")
                zf.extractall(root)
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Not a valid archive: {archive_path.name}") from e
        except OSError as e:
            raise ArchiveError(f"Failed to read archive {archive_path.name}: {e}") from e

        logger.debug("archive_unpacked", archive=str(archive_path))
        return dest_dir
