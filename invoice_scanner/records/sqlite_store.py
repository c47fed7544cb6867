"""SQLite-backed invoice record store.

Single-table keyed layout:

    pk         OWNER#<owner_id>          primary partition ("my invoices")
    sk         INVOICE#<record_id>       primary sort key
    status_pk  STATUS#<status>           secondary partition ("all in state X")
    created_sk <created_at>#<record_id>  creation-time sort key for both

The full record is kept as a JSON document in ``item``; the key columns are
derived from it on every write so the status index can never lag behind the
record itself.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from invoice_scanner.records.base import RecordStore
from invoice_scanner.records.pagination import (
    MAX_PAGE_SIZE,
    Page,
    PageRequest,
    decode_cursor,
    encode_cursor,
)
from invoice_scanner.records.schema import (
    InvoiceRecord,
    InvoiceStatus,
    StatusPatch,
    apply_patch,
    format_timestamp,
    utc_now,
)
from invoice_scanner.shared.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS invoices (
    pk TEXT NOT NULL,
    sk TEXT NOT NULL,
    status_pk TEXT NOT NULL,
    created_sk TEXT NOT NULL,
    id TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    item TEXT NOT NULL,
    PRIMARY KEY (pk, sk),
    CHECK (status IN ('UPLOADED', 'PROCESSING', 'COMPLETED', 'FAILED'))
)
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_owner_created ON invoices(pk, created_sk)",
    "CREATE INDEX IF NOT EXISTS idx_status_created ON invoices(status_pk, created_sk)",
)


def owner_partition(owner_id: str) -> str:
    return f"OWNER#{owner_id}"


def record_sort_key(record_id: str) -> str:
    return f"INVOICE#{record_id}"


def status_partition(status: InvoiceStatus) -> str:
    return f"STATUS#{status.value}"


class SQLiteRecordStore(RecordStore):
    """Record store persisted in one SQLite table.

    One connection is shared behind a lock; every status change is an
    ``UPDATE ... WHERE status = <expected>`` inside an immediate transaction,
    which is the only concurrency control the pipeline relies on.
    """

    def __init__(self, db_path: str = "invoices.db") -> None:
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file, or ':memory:'
        """
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._init_database()

    def _init_database(self) -> None:
        with self._lock:
            self._conn.execute(_SCHEMA)
            for statement in _INDEXES:
                self._conn.execute(statement)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def health_check(self) -> bool:
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.warning(f"Record store health check failed: {e}")
            return False

    def create(self, record: InvoiceRecord) -> None:
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO invoices (pk, sk, status_pk, created_sk, id, status, updated_at, item)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        owner_partition(record.owner_id),
                        record_sort_key(record.id),
                        status_partition(record.status),
                        record.sort_key,
                        record.id,
                        record.status.value,
                        format_timestamp(record.updated_at),
                        record.model_dump_json(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise AlreadyExistsError(f"Invoice {record.id} already exists") from e

        logger.info(f"Invoice created: {record.id} (owner={record.owner_id})")

    def get(self, record_id: str, owner_id: str) -> InvoiceRecord:
        with self._lock:
            row = self._conn.execute(
                "SELECT item FROM invoices WHERE pk = ? AND sk = ?",
                (owner_partition(owner_id), record_sort_key(record_id)),
            ).fetchone()

        if row is None:
            raise NotFoundError("Invoice not found")
        return InvoiceRecord.model_validate_json(row[0])

    def update(
        self,
        record_id: str,
        owner_id: str,
        patch: StatusPatch,
        expected_status: InvoiceStatus | None = None,
    ) -> InvoiceRecord:
        key = (owner_partition(owner_id), record_sort_key(record_id))

        with self._transaction() as conn:
            row = conn.execute("SELECT item FROM invoices WHERE pk = ? AND sk = ?", key).fetchone()
            if row is None:
                raise NotFoundError("Invoice not found")

            current = InvoiceRecord.model_validate_json(row[0])
            if current.status not in patch.allowed_from or (
                expected_status is not None and current.status is not expected_status
            ):
                raise ConflictError(
                    f"Invoice {record_id} is {current.status.value}; "
                    f"cannot move to {patch.target_status.value}"
                )

            updated = apply_patch(current, patch, utc_now())
            cursor = conn.execute(
                """
                UPDATE invoices
                SET status_pk = ?, status = ?, updated_at = ?, item = ?
                WHERE pk = ? AND sk = ? AND status = ?
                """,
                (
                    status_partition(updated.status),
                    updated.status.value,
                    format_timestamp(updated.updated_at),
                    updated.model_dump_json(),
                    *key,
                    current.status.value,
                ),
            )
            if cursor.rowcount != 1:
                raise ConflictError(f"Invoice {record_id} changed concurrently")

        logger.info(
            f"Invoice {record_id} moved {current.status.value} -> {updated.status.value}"
        )
        return updated

    def list_by_owner(self, owner_id: str, request: PageRequest) -> Page[InvoiceRecord]:
        clauses = ["pk = ?"]
        params: list[object] = [owner_partition(owner_id)]
        if request.status is not None:
            clauses.append("status = ?")
            params.append(request.status.value)
        return self._query_page(clauses, params, request.limit, request.cursor)

    def list_by_status(
        self,
        status: InvoiceStatus,
        limit: int = 50,
        cursor: str | None = None,
    ) -> Page[InvoiceRecord]:
        return self._query_page(["status_pk = ?"], [status_partition(status)], limit, cursor)

    def _query_page(
        self,
        clauses: list[str],
        params: list[object],
        limit: int,
        cursor: str | None,
    ) -> Page[InvoiceRecord]:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if cursor:
            clauses = [*clauses, "created_sk < ?"]
            params = [*params, decode_cursor(cursor)]

        sql = (
            f"SELECT item FROM invoices WHERE {' AND '.join(clauses)} "
            "ORDER BY created_sk DESC LIMIT ?"
        )
        with self._lock:
            # One extra row tells us whether another page exists
            rows = self._conn.execute(sql, (*params, limit + 1)).fetchall()

        items = [InvoiceRecord.model_validate_json(row[0]) for row in rows[:limit]]
        next_cursor = encode_cursor(items[-1].sort_key) if len(rows) > limit else None
        return Page[InvoiceRecord](items=items, next_cursor=next_cursor, count=len(items))
