"""
CSV import ledger.

A batch is identified by the SHA-256 of its raw bytes, so re-uploading the
same file is rejected. Rows are computed one at a time, each inside its own
SAVEPOINT: a bad row is rolled back and counted without disturbing the rest.
The import log is inserted first and finalised in the same transaction as the
orders, so a batch that dies half way leaves nothing behind.
"""

import csv
import hashlib
import io
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import TaxLedgerError
from core.query_logger import log_query_performance
from modules.tax.services import TaxCalculationEngine
from modules.tax.utils.input_validation import normalize_timestamp

from ..exceptions.order_exceptions import (
    DuplicateImportError,
    ImportNotFoundError,
    ImportRowError,
    InvalidImportFileError,
)
from ..models import ImportLog, Order
from .order_service import build_order

logger = logging.getLogger(__name__)

# Accepted header spellings, lower-cased
COLUMN_ALIASES = {
    "lat": ("lat", "latitude"),
    "lon": ("lon", "lng", "longitude"),
    "subtotal": ("subtotal",),
    "timestamp": ("timestamp",),
}
REQUIRED_COLUMNS = ("lat", "lon", "subtotal")

MAX_REPORTED_ERRORS = 100
# Beyond this many failures per batch, row failures are logged at DEBUG
ROW_WARNING_LIMIT = 20


@dataclass
class ImportOutcome:
    log: ImportLog
    errors: List[ImportRowError] = field(default_factory=list)


class ImportService:
    def __init__(self, db: Session):
        self.db = db
        self.engine = TaxCalculationEngine(db)

    def import_batch(self, file_bytes: bytes, filename: str) -> ImportOutcome:
        started = time.perf_counter()
        size = len(file_bytes)

        if size == 0:
            raise InvalidImportFileError("file is empty", filename)
        if size > settings.max_upload_size_bytes:
            raise InvalidImportFileError(
                f"file exceeds {settings.max_upload_size_mb} MB", filename
            )

        file_hash = hashlib.sha256(file_bytes).hexdigest()
        existing = self.db.query(ImportLog).filter(ImportLog.file_hash == file_hash).first()
        if existing:
            logger.warning(f"Duplicate upload of {filename}: already imported as {existing.id}")
            raise DuplicateImportError(file_hash, existing.id, filename)

        try:
            text = file_bytes.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise InvalidImportFileError("file is not UTF-8 text", filename)

        reader = csv.DictReader(io.StringIO(text, newline=""))
        try:
            fieldnames = reader.fieldnames
        except csv.Error as e:
            raise InvalidImportFileError(f"unreadable header row: {e}", filename)
        columns = self._map_columns(fieldnames, filename)

        import_log = ImportLog(
            filename=filename,
            file_hash=file_hash,
            file_size_bytes=size,
        )
        try:
            self.db.add(import_log)
            self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent upload of the same bytes
            self.db.rollback()
            winner = self.db.query(ImportLog).filter(ImportLog.file_hash == file_hash).first()
            logger.warning(f"Duplicate upload of {filename} detected on insert")
            raise DuplicateImportError(file_hash, winner.id if winner else None, filename)

        imported = 0
        errors: List[ImportRowError] = []
        failed = 0
        import_time = normalize_timestamp()

        try:
            with log_query_performance(f"import {filename}"):
                for row_number, row, reason in self._read_rows(reader):
                    if reason is None:
                        reason = self._import_row(row, columns, import_log.id, import_time)
                    if reason is None:
                        imported += 1
                        continue

                    failed += 1
                    if len(errors) < MAX_REPORTED_ERRORS:
                        errors.append(ImportRowError(row=row_number, reason=reason))
                    level = logging.WARNING if failed <= ROW_WARNING_LIMIT else logging.DEBUG
                    logger.log(level, f"{filename} row {row_number} skipped: {reason}")

            import_log.rows_imported = imported
            import_log.rows_failed = failed
            import_log.processing_time_ms = int((time.perf_counter() - started) * 1000)
            self.db.commit()
            self.db.refresh(import_log)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Import of {filename} aborted: {str(e)}")
            raise

        logger.info(
            f"Import {import_log.id} ({filename}) completed: {imported} imported, "
            f"{failed} failed in {import_log.processing_time_ms} ms"
        )
        return ImportOutcome(log=import_log, errors=errors)

    @staticmethod
    def _read_rows(reader: csv.DictReader):
        """
        Yield (row_number, row, parse_error). A line the csv module cannot
        parse becomes a failed row instead of ending the batch.
        """
        row_number = 1  # header
        while True:
            row_number += 1
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                yield row_number, None, f"malformed CSV line: {e}"
            else:
                yield row_number, row, None

    @staticmethod
    def _map_columns(fieldnames: Optional[List[str]], filename: str) -> Dict[str, str]:
        """Map canonical column names to the header spelling used in the file."""
        if not fieldnames:
            raise InvalidImportFileError("missing header row", filename)

        by_lower = {}
        for name in fieldnames:
            if name is not None:
                by_lower.setdefault(name.strip().lower(), name)

        columns = {}
        for canonical, aliases in COLUMN_ALIASES.items():
            for alias in aliases:
                if alias in by_lower:
                    columns[canonical] = by_lower[alias]
                    break

        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise InvalidImportFileError(
                f"missing required column(s): {', '.join(missing)}", filename
            )
        return columns

    def _import_row(self, row, columns, import_id, import_time) -> Optional[str]:
        """Compute and insert one row. Returns the failure reason, or None."""

        def value(key):
            raw = row.get(columns[key]) if key in columns else None
            return raw.strip() if isinstance(raw, str) else raw

        timestamp = value("timestamp") or import_time
        try:
            with self.db.begin_nested():
                result = self.engine.compute(value("lat"), value("lon"), value("subtotal"), timestamp)
                self.db.add(build_order(result, import_id=import_id))
                self.db.flush()
        except TaxLedgerError as e:
            return e.message
        except SQLAlchemyError as e:
            return f"storage error: {e.__class__.__name__}"
        return None

    def rollback(self, import_id: str) -> int:
        """Delete an import and, by cascade, every order it created."""
        import_log = self.get_import(import_id)
        removed = self.db.query(Order).filter(Order.import_id == import_id).count()
        try:
            self.db.delete(import_log)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Rollback of import {import_id} failed: {str(e)}")
            raise

        logger.info(f"Import {import_id} rolled back: {removed} orders removed")
        return removed

    def list_imports(self, limit: int = 50) -> List[ImportLog]:
        return (
            self.db.query(ImportLog)
            .order_by(ImportLog.created_at.desc(), ImportLog.id)
            .limit(limit)
            .all()
        )

    def get_import(self, import_id: str) -> ImportLog:
        import_log = self.db.get(ImportLog, import_id)
        if import_log is None:
            raise ImportNotFoundError(import_id)
        return import_log
