"""
Export / Import Codec

Moves the whole ledger in and out of one portable archive:

    ledger_export_<yyyyMMdd_HHmmss>.zip
        ledger.csv
        images/<yyyyMMdd_HHmmss>_<amount>.jpg

EXPORT writes every transaction as one CSV row (attachments as image
files) into a staging directory, then packs it. The staging directory is
always removed and a partially written archive is never left behind,
whether the export fails or is cancelled.

IMPORT unpacks into a scratch directory, reads the first CSV it finds and
processes rows strictly in file order. Each row is independent:
- malformed row -> counted as failed, import continues
- duplicate of a stored record or of an earlier row in the same file
  (import policy) -> counted as skipped
- otherwise -> saved, attachment loaded from images/ if present, category
  registered

DESIGN DECISION: Import is append-only per row. Rows saved before a
cancellation or a fatal error stay saved; there is no rollback. Importing
the same archive again is safe because every committed row is then
skipped as a duplicate.

Progress is reported through an optional (label, fraction) callback. It is
advisory only: fractions never decrease and stay within [0, 1].
"""

import asyncio
import csv
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from uuid import UUID

import structlog

from ledger.audit.logger import AuditLogger
from ledger.categories.registry import CategoryRegistry
from ledger.config.settings import AppSettings
from ledger.dedup.detector import DuplicatePolicy, find_duplicate
from ledger.models.transaction import ImportResult, RowError, Transaction
from ledger.services.archive import ArchiveCodec, ArchiveError, ZipArchiveCodec
from ledger.services.storage import LedgerStorageInterface, StorageError
from ledger.transfer.csv_format import (
    ATTACHMENT_STAMP_FORMAT,
    RowParseError,
    attachment_filename,
    parse_row,
    read_csv,
    transaction_to_row,
    write_csv,
)


logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str, float], None]


class ProgressReporter:
    """Forwards progress to a callback, clamped to [0, 1] and never decreasing."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self.fraction = 0.0

    def report(self, label: str, fraction: float) -> None:
        self.fraction = max(self.fraction, min(1.0, max(0.0, fraction)))
        if self._callback is not None:
            self._callback(label, self.fraction)


class ExportImportCodec:
    """
    Bulk export and import of the ledger through an archive codec.

    Usage:
        codec = ExportImportCodec(storage, registry, settings=settings.app)
        archive = await codec.export(Path("~/Downloads").expanduser())
        result = await codec.import_archive(archive)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        registry: CategoryRegistry,
        archive_codec: Optional[ArchiveCodec] = None,
        settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        work_dir: Optional[Path] = None,
    ):
        """
        Args:
            work_dir: Parent for staging/scratch directories (system temp
                directory when None)
        """
        self._storage = storage
        self._registry = registry
        self._archive = archive_codec if archive_codec is not None else ZipArchiveCodec()
        self._settings = settings if settings is not None else AppSettings()
        self._audit = audit_logger if audit_logger is not None else AuditLogger()
        self._work_dir = work_dir

    def _make_scratch_dir(self, prefix: str) -> Path:
        if self._work_dir is not None:
            self._work_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=self._work_dir))

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _stage(self, transactions: list[Transaction], staging: Path, progress: ProgressReporter) -> None:
        """Write the CSV and attachment files into the staging directory."""
        images_dir = staging / self._settings.export_images_dirname
        images_dir.mkdir()

        used_names: set[str] = set()
        rows = []
        total = len(transactions)
        for index, txn in enumerate(transactions):
            progress.report(f"Exporting {index + 1}/{total}", 0.1 + 0.7 * index / total)

            name = ""
            if txn.attachment:
                suffix = 1
                name = attachment_filename(txn.occurred_at, txn.amount)
                while name in used_names:
                    suffix += 1
                    name = attachment_filename(txn.occurred_at, txn.amount, suffix)
                used_names.add(name)
                (images_dir / name).write_bytes(txn.attachment)

            rows.append(transaction_to_row(txn, name))

        write_csv(staging / self._settings.export_csv_filename, rows)

    def _pack(self, staging: Path, partial_path: Path, archive_path: Path) -> Path:
        """Pack to a side file, then move it into place in one step."""
        self._archive.pack(staging, partial_path)
        os.replace(partial_path, archive_path)
        return archive_path

    @staticmethod
    async def _discard_after(packing: asyncio.Future, *paths: Path) -> None:
        """Wait for an abandoned pack to stop, then delete whatever it wrote."""
        # A worker thread cannot be interrupted; it may still move the archive into place
        await asyncio.wait({packing})
        if not packing.cancelled() and packing.exception() is not None:
            logger.info("export_pack_abandoned", error=str(packing.exception()))
        for path in paths:
            path.unlink(missing_ok=True)
        logger.info("export_cancelled", archive=str(paths[-1]))

    async def export(
        self,
        output_dir: Path,
        progress: Optional[ProgressCallback] = None,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Path:
        """
        Export every transaction into an archive in output_dir.

        Returns:
            Path of the written archive

        Raises:
            ArchiveError: If the archive cannot be written
            StorageError: If transactions cannot be listed
        """
        reporter = ProgressReporter(progress)
        reporter.report("Preparing export", 0.0)

        output_dir = Path(output_dir)
        stamp = (now or datetime.now()).strftime(ATTACHMENT_STAMP_FORMAT)
        archive_path = output_dir / f"ledger_export_{stamp}.zip"
        partial_path = output_dir / f".{archive_path.name}.partial"

        transactions = await self._storage.list_transactions()
        staging = self._make_scratch_dir("ledger_export_")
        try:
            self._stage(transactions, staging, reporter)
            reporter.report("Creating archive", 0.8)
            packing = asyncio.ensure_future(
                asyncio.to_thread(self._pack, staging, partial_path, archive_path)
            )
            try:
                await asyncio.shield(packing)
            except asyncio.CancelledError:
                await self._discard_after(packing, partial_path, archive_path)
                raise
        except OSError as e:
            partial_path.unlink(missing_ok=True)
            raise ArchiveError(f"Export failed: {e}") from e
        except BaseException:
            # The final path only ever holds a complete archive
            partial_path.unlink(missing_ok=True)
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        reporter.report("Done", 1.0)
        logger.info("export_completed", archive=str(archive_path), count=len(transactions))
        await self._audit.log_export_completed(
            archive_path=str(archive_path),
            transaction_count=len(transactions),
            correlation_id=correlation_id,
        )
        return archive_path

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    @staticmethod
    def _find_csv(directory: Path) -> Path:
        candidates = sorted(p for p in directory.rglob("*.csv") if p.is_file())
        if not candidates:
            raise ArchiveError("No CSV file found in archive")
        return candidates[0]

    @staticmethod
    def _load_attachment(images_dir: Path, name: str) -> Optional[bytes]:
        """Read an attachment; a missing or unreadable file is tolerated."""
        if not name:
            return None
        path = images_dir / Path(name).name
        try:
            return path.read_bytes()
        except OSError:
            logger.info("import_attachment_missing", attachment=name)
            return None

    async def _register_category(self, txn: Transaction, correlation_id: Optional[UUID]) -> None:
        is_new = self._registry.get(txn.kind, txn.main_category, txn.sub_category) is None
        category = self._registry.add_or_update(txn.kind, txn.main_category, txn.sub_category)
        await self._storage.save_category(category)
        if is_new:
            await self._audit.log_category_created(
                kind=txn.kind.value,
                main_category=txn.main_category,
                sub_category=txn.sub_category,
                correlation_id=correlation_id,
            )

    async def import_archive(
        self,
        archive_path: Path,
        progress: Optional[ProgressCallback] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """
        Import an exported archive.

        Append-only: if the call is cancelled or fails part-way, rows
        already saved remain saved. The scratch directory is always
        removed.

        Returns:
            ImportResult where total == imported + skipped + failed

        Raises:
            ArchiveError: Unreadable archive or no CSV inside (nothing is
                imported in that case)
        """
        reporter = ProgressReporter(progress)
        reporter.report("Reading archive", 0.0)

        scratch = self._make_scratch_dir("ledger_import_")
        try:
            await asyncio.to_thread(self._archive.unpack, Path(archive_path), scratch)
            csv_path = self._find_csv(scratch)
            images_dir = csv_path.parent / self._settings.export_images_dirname
            try:
                _, rows = read_csv(csv_path)
            except (csv.Error, UnicodeDecodeError) as e:
                raise ArchiveError(f"Unreadable CSV file: {e}") from e
            reporter.report("Importing", 0.2)

            result = await self._import_rows(rows, images_dir, reporter, correlation_id)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        reporter.report("Done", 1.0)
        logger.info("import_completed", **result.model_dump(exclude={"errors"}))
        await self._audit.log_import_completed(
            counts=result.model_dump(exclude={"errors"}),
            correlation_id=correlation_id,
        )
        return result

    async def _import_rows(
        self,
        rows: list[tuple[int, list[str]]],
        images_dir: Path,
        reporter: ProgressReporter,
        correlation_id: Optional[UUID],
    ) -> ImportResult:
        policy = DuplicatePolicy.bulk_import(self._settings)
        # Earlier rows of this batch are matched against too
        known = await self._storage.list_transactions()
        result = ImportResult()
        total = len(rows)

        for row_number, fields in rows:
            result.total += 1
            reporter.report(f"Importing {row_number}/{total}", 0.3 + 0.6 * row_number / total)

            try:
                parsed = parse_row(fields)
            except RowParseError as e:
                await self._record_failure(result, row_number, str(e), correlation_id)
                continue

            candidate = parsed.transaction
            duplicate = find_duplicate(candidate, known, policy)
            if duplicate is not None:
                result.skipped += 1
                await self._audit.log_duplicate_skipped(
                    existing_id=duplicate.id,
                    amount=str(candidate.amount),
                    policy=policy.name,
                    correlation_id=correlation_id,
                )
                continue

            candidate.attachment = self._load_attachment(images_dir, parsed.attachment_name)
            try:
                await self._storage.save_transaction(candidate)
            except StorageError as e:
                await self._record_failure(result, row_number, f"Save failed: {e}", correlation_id)
                continue

            known.append(candidate)
            result.imported += 1
            try:
                await self._register_category(candidate, correlation_id)
            except StorageError as e:
                # The row is saved; only its category usage is not persisted
                logger.warning("import_category_save_failed", row_number=row_number, error=str(e))

        return result

    async def _record_failure(
        self,
        result: ImportResult,
        row_number: int,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        result.failed += 1
        result.errors.append(RowError(row_number=row_number, reason=reason))
        logger.warning("import_row_failed", row_number=row_number, reason=reason)
        await self._audit.log_import_row_failed(
            row_number=row_number,
            reason=reason,
            correlation_id=correlation_id,
        )
