"""Repository: CRUD operations against SQLite using raw SQL.

All methods take/return dataclass instances from models.py.
Connection management uses a single connection with WAL mode enabled.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from decimal import Decimal
from pathlib import Path

from .models import ImportBatch, Transaction

logger = logging.getLogger(__name__)

_TXN_COLUMNS = (
    "id, date, merchant, amount, balance, receipt_id, bonus_points,"
    " raw_description, user_tag, layout, dedup_hash, is_subscription,"
    " imported_at"
)


def _dec(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _to_dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    sql_text = sql_file.read_text(encoding="utf-8")
                    for statement in sql_text.split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                    logger.debug("Applied migration %s", sql_file.name)
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Transactions ────────────────────────────────────────

    def existing_hashes(self, hashes: set[str] | list[str]) -> set[str]:
        """Return the subset of ``hashes`` already stored.

        Chunked to stay within SQLite's variable limit.
        """
        candidates = list(hashes)
        if not candidates:
            return set()
        result: set[str] = set()
        chunk_size = 500
        for i in range(0, len(candidates), chunk_size):
            chunk = candidates[i : i + chunk_size]
            ph = ",".join("?" * len(chunk))
            rows = self.conn.execute(
                f"SELECT dedup_hash FROM transactions WHERE dedup_hash IN ({ph})",
                chunk,
            ).fetchall()
            result.update(r[0] for r in rows)
        return result

    def insert_transactions_batch(self, txns: list[Transaction]) -> set[str]:
        """Insert multiple transactions atomically.

        Either every row is written or none is. A row whose dedup_hash is
        already present (written by a concurrent import after our existence
        check) is left out rather than failing the batch.

        Returns:
            The dedup hashes that were actually written.
        """
        if not txns:
            return set()
        written: set[str] = set()
        try:
            self.conn.execute("BEGIN")
            for t in txns:
                cur = self.conn.execute(
                    f"INSERT INTO transactions ({_TXN_COLUMNS})"
                    " VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)"
                    " ON CONFLICT(dedup_hash) DO NOTHING",
                    self._transaction_params(t),
                )
                if cur.rowcount == 1:
                    written.add(t.dedup_hash)
                else:
                    logger.info(
                        "Late duplicate on write (hash %s), skipped", t.dedup_hash,
                    )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return written

    def get_transaction_by_hash(self, dedup_hash: str) -> Transaction | None:
        row = self.conn.execute(
            "SELECT * FROM transactions WHERE dedup_hash = ?", (dedup_hash,)
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def get_all_transactions(self) -> list[Transaction]:
        rows = self.conn.execute(
            "SELECT * FROM transactions ORDER BY date, rowid"
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def get_recent_transactions(self, limit: int) -> list[Transaction]:
        """The ``limit`` most recent transactions, newest first."""
        rows = self.conn.execute(
            "SELECT * FROM transactions ORDER BY date DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def get_transactions_between(
        self, date_from: date, date_to: date
    ) -> list[Transaction]:
        """All transactions dated within [date_from, date_to]."""
        rows = self.conn.execute(
            "SELECT * FROM transactions WHERE date >= ? AND date <= ?"
            " ORDER BY date, rowid",
            (date_from.isoformat(), date_to.isoformat()),
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def get_spending_between(
        self, date_from: date, date_to: date
    ) -> list[Transaction]:
        """Outflows only (amount < 0) dated within [date_from, date_to]."""
        rows = self.conn.execute(
            "SELECT * FROM transactions"
            " WHERE date >= ? AND date <= ? AND CAST(amount AS REAL) < 0"
            " ORDER BY date, rowid",
            (date_from.isoformat(), date_to.isoformat()),
        ).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def get_earliest_spending_date(self) -> date | None:
        row = self.conn.execute(
            "SELECT MIN(date) FROM transactions WHERE CAST(amount AS REAL) < 0"
        ).fetchone()
        return date.fromisoformat(row[0]) if row[0] else None

    def set_subscription_flag(
        self, merchant: str, flag: bool, date_from: date, date_to: date
    ) -> int:
        """Set is_subscription on a merchant's rows in a date window.

        Returns the number of rows updated.
        """
        cur = self.conn.execute(
            "UPDATE transactions SET is_subscription = ?"
            " WHERE merchant = ? AND date >= ? AND date <= ?",
            (int(flag), merchant, date_from.isoformat(), date_to.isoformat()),
        )
        self.conn.commit()
        return cur.rowcount

    def count_transactions(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]

    def delete_all_transactions(self) -> int:
        """Remove every transaction. Returns how many rows were deleted."""
        count = self.count_transactions()
        self.conn.execute("DELETE FROM transactions")
        self.conn.commit()
        return count

    # ── Import batches ──────────────────────────────────────

    def insert_import_batch(self, batch: ImportBatch) -> ImportBatch:
        self.conn.execute(
            "INSERT INTO import_batches"
            " (id, total_files, total_rows_parsed, total_inserted,"
            "  total_skipped_duplicates, created_at)"
            " VALUES (?,?,?,?,?,?)",
            (batch.id, batch.total_files, batch.total_rows_parsed,
             batch.total_inserted, batch.total_skipped_duplicates,
             batch.created_at),
        )
        self.conn.commit()
        return batch

    def get_status_counts(self) -> dict:
        """Counts for the `spendlens status` command."""
        row = self.conn.execute(
            "SELECT"
            "  (SELECT COUNT(*) FROM transactions) AS total_txns,"
            "  (SELECT COUNT(*) FROM transactions WHERE layout = 'A') AS debit_txns,"
            "  (SELECT COUNT(*) FROM transactions WHERE layout = 'B') AS credit_txns,"
            "  (SELECT COUNT(*) FROM transactions WHERE is_subscription = 1) AS subscription_txns,"
            "  (SELECT COUNT(*) FROM import_batches) AS total_batches,"
            "  (SELECT MAX(created_at) FROM import_batches) AS last_import"
        ).fetchone()
        return dict(row)

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _transaction_params(t: Transaction) -> tuple:
        return (
            t.id, t.date.isoformat(), t.merchant, _dec(t.amount),
            _dec(t.balance), t.receipt_id, _dec(t.bonus_points),
            t.raw_description, t.user_tag, t.layout, t.dedup_hash,
            int(t.is_subscription), t.imported_at,
        )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            date=date.fromisoformat(row["date"]),
            merchant=row["merchant"],
            amount=Decimal(row["amount"]),
            balance=_to_dec(row["balance"]),
            receipt_id=row["receipt_id"],
            bonus_points=_to_dec(row["bonus_points"]),
            raw_description=row["raw_description"],
            user_tag=row["user_tag"],
            layout=row["layout"],
            dedup_hash=row["dedup_hash"],
            is_subscription=bool(row["is_subscription"]),
            imported_at=row["imported_at"],
        )
