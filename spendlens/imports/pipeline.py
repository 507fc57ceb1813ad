"""Batch import pipeline: parse → merge → dedup → persist → report.

Files in a batch are parsed independently on a small thread pool. Parsing
touches no shared state, so a bad file only ever produces an error entry
in its own report. Everything after parsing (in-batch dedup, the store
existence check, the batch write, per-file accounting) runs once per
batch on the calling thread.

The existence check is an optimisation: the UNIQUE constraint on
transactions.dedup_hash is what guarantees identity. A row that another
import writes between our check and our insert comes back from
Repository.insert_transactions_batch() as not written and is reported as
a skipped duplicate.
"""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from spendlens.config import Config
from spendlens.database.models import ImportBatch, Transaction
from spendlens.parsers.base import SheetParseError, build_transaction
from spendlens.parsers.detect import detect_parser, load_sheet_rows

if TYPE_CHECKING:
    from spendlens.database.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_WORKERS = 4

SUPPORTED_EXTENSIONS = {".xlsx", ".xlsm"}


@dataclass
class FilePayload:
    """One uploaded file: its name and raw bytes."""
    file_name: str
    content: bytes

    @classmethod
    def from_path(cls, path: Path | str) -> FilePayload:
        path = Path(path)
        return cls(file_name=path.name, content=path.read_bytes())


@dataclass
class FileImportOutcome:
    """Per-file import report."""
    file_name: str
    rows_parsed: int = 0
    inserted: int = 0
    skipped_duplicates: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BatchImportOutcome:
    """Aggregate report for one import_batch() call."""
    total_files: int
    total_rows_parsed: int
    total_inserted: int
    total_skipped_duplicates: int
    file_results: list[FileImportOutcome]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ParsedFile:
    """Transactions extracted from one file, before dedup."""
    file_name: str
    transactions: list[Transaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    failed: bool = False


def parse_file(payload: FilePayload, config: Config | None = None) -> ParsedFile:
    """Detect, extract and hash one file. Never raises.

    A file-level failure (unreadable workbook, unknown layout) comes back
    as ``failed=True`` with a single "Error: ..." entry.
    """
    file_name = payload.file_name
    logger.info("Parsing file: %s", file_name)
    try:
        rows = load_sheet_rows(payload.content)
        parser, header_row = detect_parser(rows, config)
        parsed_rows = parser.parse(rows, header_row)
    except SheetParseError as e:
        logger.error("Error parsing file %s: %s", file_name, e)
        return ParsedFile(file_name=file_name, errors=[f"Error: {e}"], failed=True)
    except Exception as e:
        logger.exception("Unexpected error parsing file %s", file_name)
        return ParsedFile(file_name=file_name, errors=[f"Error: {e}"], failed=True)

    errors = list(parser.errors)
    transactions: list[Transaction] = []
    for row in parsed_rows:
        try:
            transactions.append(build_transaction(row))
        except ValueError as e:
            errors.append(f"Row {row.row_number}: {e}")

    if parser.suppressed_count:
        logger.info(
            "Suppressed %d tagged row(s) in %s", parser.suppressed_count, file_name,
        )
    if parser.skipped_count:
        logger.debug(
            "Skipped %d row(s) without a usable date, description or amount in %s",
            parser.skipped_count, file_name,
        )
    if errors:
        logger.warning("Errors parsing file %s: %s", file_name, errors)

    return ParsedFile(file_name=file_name, transactions=transactions, errors=errors)


class ImportPipeline:
    """Orchestrate a multi-file import against the repository.

    Args:
        repo: Storage collaborator. Only existing_hashes(),
            insert_transactions_batch() and insert_import_batch() are used.
        config: Optional Config (header scan window, suppressed tags,
            worker count).
        max_workers: Overrides the configured parse pool size.
    """

    def __init__(
        self,
        repo: Repository,
        config: Config | None = None,
        max_workers: int | None = None,
    ):
        self.repo = repo
        self.config = config
        if max_workers is None:
            max_workers = config.import_workers if config else DEFAULT_IMPORT_WORKERS
        if max_workers < 1:
            raise ValueError("max_workers must be a positive integer")
        self.max_workers = max_workers

    def parse_files(self, files: list[FilePayload]) -> list[ParsedFile]:
        """Parse files concurrently. Results keep the input order."""
        if not files:
            return []
        workers = min(self.max_workers, len(files))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="spendlens-parse") as pool:
            return list(pool.map(lambda f: parse_file(f, self.config), files))

    def import_batch(self, files: list[FilePayload]) -> BatchImportOutcome:
        """Import a batch of statement files.

        Returns a report even when every file fails to parse.

        Raises:
            sqlite3.Error: If the existence check or the batch write fails.
                Nothing from the batch is committed in that case.
        """
        logger.info("Starting import for %d files", len(files))
        parsed_files = self.parse_files(files)

        # In-batch dedup: first occurrence in file order wins.
        unique: dict[str, Transaction] = {}
        owner: dict[str, int] = {}
        for file_idx, parsed in enumerate(parsed_files):
            for txn in parsed.transactions:
                existing = unique.get(txn.dedup_hash)
                if existing is None:
                    unique[txn.dedup_hash] = txn
                    owner[txn.dedup_hash] = file_idx
                    continue
                logger.info(
                    "Duplicate transaction within batch - hash %s: %s | %s | %s (in %s)",
                    txn.dedup_hash, txn.date, txn.merchant, txn.amount,
                    parsed.file_name,
                )

        # Against-store dedup
        already_stored = self.repo.existing_hashes(set(unique))
        for dedup_hash in already_stored:
            txn = unique[dedup_hash]
            logger.info(
                "Duplicate transaction found in database - hash %s: %s | %s | %s",
                dedup_hash, txn.date, txn.merchant, txn.amount,
            )
        new_txns = [t for h, t in unique.items() if h not in already_stored]

        inserted_hashes = self.repo.insert_transactions_batch(new_txns) if new_txns else set()

        file_results: list[FileImportOutcome] = []
        for file_idx, parsed in enumerate(parsed_files):
            if parsed.failed:
                file_results.append(
                    FileImportOutcome(file_name=parsed.file_name, errors=parsed.errors)
                )
                continue
            rows_parsed = len(parsed.transactions)
            inserted = sum(
                1 for h in {t.dedup_hash for t in parsed.transactions}
                if h in inserted_hashes and owner[h] == file_idx
            )
            file_results.append(
                FileImportOutcome(
                    file_name=parsed.file_name,
                    rows_parsed=rows_parsed,
                    inserted=inserted,
                    skipped_duplicates=rows_parsed - inserted,
                    errors=parsed.errors,
                )
            )

        outcome = BatchImportOutcome(
            total_files=len(files),
            total_rows_parsed=sum(r.rows_parsed for r in file_results),
            total_inserted=sum(r.inserted for r in file_results),
            total_skipped_duplicates=sum(r.skipped_duplicates for r in file_results),
            file_results=file_results,
        )
        logger.info(
            "Import completed: %d files, %d rows parsed, %d inserted, %d duplicates",
            outcome.total_files, outcome.total_rows_parsed,
            outcome.total_inserted, outcome.total_skipped_duplicates,
        )
        self._record_batch(outcome)
        return outcome

    def _record_batch(self, outcome: BatchImportOutcome) -> None:
        # The transactions are already committed; a failure here only loses
        # the history entry shown by `spendlens status`.
        try:
            self.repo.insert_import_batch(ImportBatch(
                total_files=outcome.total_files,
                total_rows_parsed=outcome.total_rows_parsed,
                total_inserted=outcome.total_inserted,
                total_skipped_duplicates=outcome.total_skipped_duplicates,
            ))
        except sqlite3.Error:
            logger.exception("Failed to record import batch history")
