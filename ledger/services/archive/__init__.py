"""Archive packaging package."""

from ledger.services.archive.zip_codec import ArchiveCodec, ArchiveError, ZipArchiveCodec

__all__ = ["ArchiveCodec", "ArchiveError", "ZipArchiveCodec"]
