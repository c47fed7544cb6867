"""Reconciliation sweep for abandoned PROCESSING records.

If the host kills a pipeline invocation between the PROCESSING claim and a
terminal write, nothing else would ever move that record again. The sweep
pages through the PROCESSING status index and fails every record whose
processing started longer ago than the staleness threshold. Failed records
are resubmitted by re-uploading, never re-driven automatically.
"""

import logging
from datetime import timedelta

from invoice_scanner.records.base import RecordStore
from invoice_scanner.records.schema import InvoiceStatus, MarkFailed, utc_now
from invoice_scanner.shared import metrics
from invoice_scanner.shared.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


class StaleProcessingSweeper:
    """Marks PROCESSING records older than a threshold as FAILED."""

    def __init__(self, store: RecordStore, stale_after: timedelta, batch_size: int = 100) -> None:
        self.store = store
        self.stale_after = stale_after
        self.batch_size = batch_size

    def sweep(self) -> int:
        """Run one pass over the PROCESSING index.

        Returns:
            Number of records moved to FAILED by this pass
        """
        now = utc_now()
        cutoff = now - self.stale_after
        swept = 0
        cursor: str | None = None

        while True:
            page = self.store.list_by_status(
                InvoiceStatus.PROCESSING, limit=self.batch_size, cursor=cursor
            )
            for record in page.items:
                started = record.processing_started_at or record.updated_at
                if started > cutoff:
                    continue

                age = int((now - started).total_seconds())
                try:
                    self.store.update(
                        record.id,
                        record.owner_id,
                        MarkFailed(
                            error=f"Processing abandoned: no result after {age}s",
                            processing_completed_at=now,
                        ),
                        expected_status=InvoiceStatus.PROCESSING,
                    )
                except (ConflictError, NotFoundError):
                    # Finished (or vanished) between listing and update
                    continue

                swept += 1
                metrics.stale_records_swept_total.inc()
                logger.warning(f"Invoice {record.id} stuck in PROCESSING for {age}s; marked FAILED")

            if page.next_cursor is None:
                break
            cursor = page.next_cursor

        logger.info(f"Reconciliation sweep complete: {swept} stale record(s) failed")
        return swept
