"""Invoice processing pipeline.

Drives one invoice through its status state machine per blob notification:

    UPLOADED -> PROCESSING -> COMPLETED | FAILED

1. Resolve the notification's object key to (owner, record id).
2. Conditionally move UPLOADED -> PROCESSING. This write is the lock:
   at most one delivery of the same notification gets past it.
3. Check the stored object against the declared size, read it back and
   run OCR under the OCR retry policy.
4. Reduce OCR blocks to a text corpus and a confidence score.
5. Run structuring under its (smaller) retry policy.
6. Persist COMPLETED with the merged extracted data.
7. On any failure after step 2, make a best-effort FAILED write before
   returning or re-raising, so a record is never silently left PROCESSING.

Safe to run concurrently for different records; instances hold no mutable
state besides their injected collaborators.
Record store calls run in worker threads so a writer waiting on the SQLite
lock never blocks the event loop.
"""

import asyncio
import logging
import tempfile
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import TypeVar

from invoice_scanner.extraction.base import ExtractionProvider
from invoice_scanner.extraction.schema import InvoiceData
from invoice_scanner.ocr.base import OCRResult, OCRService, build_corpus, mean_confidence
from invoice_scanner.pipeline.notifications import BlobNotification
from invoice_scanner.pipeline.retry import RetryPolicy
from invoice_scanner.records.base import RecordStore
from invoice_scanner.records.schema import (
    MAX_FILE_SIZE_BYTES,
    ExtractedInvoiceData,
    InvoiceRecord,
    InvoiceStatus,
    MarkCompleted,
    MarkFailed,
    MarkProcessing,
    utc_now,
)
from invoice_scanner.shared import metrics
from invoice_scanner.shared.errors import (
    BlobReadError,
    ConflictError,
    NotFoundError,
    ProcessingError,
)
from invoice_scanner.storage.keys import resolve_object_key
from invoice_scanner.storage.service import BlobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_ERROR_LENGTH = 1000

_SUFFIXES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/tiff": ".tiff",
    "image/bmp": ".bmp",
}


class ProcessingOutcome(str, Enum):
    """What a single notification delivery did."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # record already claimed or terminal
    DROPPED = "dropped"  # no matching record


class InvoiceProcessor:
    """Runs the OCR -> structuring pipeline for blob notifications."""

    def __init__(
        self,
        store: RecordStore,
        blob_store: BlobStore,
        ocr_service: OCRService,
        extraction_service: ExtractionProvider,
        ocr_policy: RetryPolicy,
        extraction_policy: RetryPolicy,
        upload_prefix: str,
    ) -> None:
        self.store = store
        self.blob_store = blob_store
        self.ocr_service = ocr_service
        self.extraction_service = extraction_service
        self.ocr_policy = ocr_policy
        self.extraction_policy = extraction_policy
        self.upload_prefix = upload_prefix

    async def handle(self, notification: BlobNotification) -> ProcessingOutcome:
        """Process one blob notification.

        Returns:
            The outcome of this delivery

        Raises:
            Exception: Unexpected errors, re-raised after the record was
                marked FAILED (best effort)
        """
        outcome = await self._handle(notification)
        metrics.pipeline_outcomes_total.labels(outcome=outcome.value).inc()
        return outcome

    async def _handle(self, notification: BlobNotification) -> ProcessingOutcome:
        reference = resolve_object_key(
            notification.object_key, self.upload_prefix, bucket=notification.bucket
        )
        if reference is None:
            logger.warning(f"Dropping notification for unrecognised key: {notification.object_key}")
            return ProcessingOutcome.DROPPED

        try:
            record = await asyncio.to_thread(
                self.store.get, reference.record_id, reference.owner_id
            )
        except NotFoundError:
            logger.warning(
                f"Dropping notification for {reference.object_key}: no matching record yet"
            )
            return ProcessingOutcome.DROPPED

        if record.blob_key != reference.object_key:
            logger.warning(
                f"Dropping notification for {reference.object_key}: "
                f"record {record.id} expects {record.blob_key}"
            )
            return ProcessingOutcome.DROPPED

        if record.status is not InvoiceStatus.UPLOADED:
            logger.info(f"Invoice {record.id} is already {record.status.value}; skipping")
            return ProcessingOutcome.SKIPPED

        try:
            record = await asyncio.to_thread(
                self.store.update,
                record.id,
                record.owner_id,
                MarkProcessing(processing_started_at=utc_now()),
                expected_status=InvoiceStatus.UPLOADED,
            )
        except ConflictError:
            logger.info(f"Invoice {record.id} was claimed by another delivery; skipping")
            return ProcessingOutcome.SKIPPED

        return await self._process(record)

    async def _process(self, record: InvoiceRecord) -> ProcessingOutcome:
        logger.info(f"Processing invoice {record.id} ({record.file_name})")
        stage = "OCR"
        try:
            ocr_result = await self._timed(
                "ocr",
                self.ocr_policy,
                lambda: asyncio.to_thread(self._run_ocr, record),
            )
            corpus = build_corpus(ocr_result.blocks)
            confidence = mean_confidence(ocr_result.blocks)

            stage = "Structuring"
            if corpus:
                structured = await self._timed(
                    "structuring",
                    self.extraction_policy,
                    lambda: asyncio.to_thread(
                        self.extraction_service.extract_invoice_fields, corpus
                    ),
                )
            else:
                logger.warning(f"Invoice {record.id}: OCR found no text; completing empty")
                structured = InvoiceData()

            stage = "Persisting result"
            extracted = ExtractedInvoiceData.model_validate(
                {
                    **structured.model_dump(),
                    "confidence": {
                        "overall": confidence,
                        "fields": structured.field_confidence,
                    },
                }
            )
            await asyncio.to_thread(
                self.store.update,
                record.id,
                record.owner_id,
                MarkCompleted(extracted_data=extracted, processing_completed_at=utc_now()),
                expected_status=InvoiceStatus.PROCESSING,
            )

        except ConflictError:
            logger.warning(f"Invoice {record.id} left PROCESSING concurrently; result discarded")
            return ProcessingOutcome.SKIPPED
        except ProcessingError as e:
            written = await self._mark_failed(record, f"{stage} failed: {e.message}")
            return ProcessingOutcome.FAILED if written else ProcessingOutcome.SKIPPED
        except Exception as e:
            logger.exception(f"Unexpected error processing invoice {record.id}")
            await self._mark_failed(record, f"{stage} failed unexpectedly: {e}")
            raise

        logger.info(f"Invoice {record.id} COMPLETED (confidence={confidence})")
        return ProcessingOutcome.COMPLETED

    async def _timed(
        self,
        capability: str,
        policy: RetryPolicy,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        start = time.monotonic()
        try:
            return await policy.run(call, operation=capability)
        finally:
            metrics.capability_duration_seconds.labels(capability=capability).observe(
                time.monotonic() - start
            )

    def _run_ocr(self, record: InvoiceRecord) -> OCRResult:
        """Download the document to a temp file and run OCR on it."""
        _check_size(record, self.blob_store.object_size(record.blob_key))
        content = self.blob_store.download_bytes(record.blob_key)
        _check_size(record, len(content))

        suffix = _SUFFIXES.get(record.mime_type, ".bin")
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
            tmp.write(content)
            tmp_path = Path(tmp.name)

        try:
            return self.ocr_service.analyze_document(tmp_path, record.mime_type)
        finally:
            tmp_path.unlink(missing_ok=True)

    async def _mark_failed(self, record: InvoiceRecord, error: str) -> bool:
        """Best-effort PROCESSING -> FAILED write. Never raises."""
        try:
            await asyncio.to_thread(
                self.store.update,
                record.id,
                record.owner_id,
                MarkFailed(
                    error=error[:_MAX_ERROR_LENGTH] or "Processing failed",
                    processing_completed_at=utc_now(),
                ),
                expected_status=InvoiceStatus.PROCESSING,
            )
        except ConflictError:
            logger.warning(f"Invoice {record.id} left PROCESSING before it could be failed")
            return False
        except Exception:
            logger.exception(f"Failed to record FAILED status for invoice {record.id}")
            return False

        logger.error(f"Invoice {record.id} FAILED: {error}")
        return True


def _check_size(record: InvoiceRecord, size: int) -> None:
    """Reject objects the upload grant did not describe.

    Presigned PUT URLs do not bind the content length, so the stored size is
    checked against the limit and the size declared when the grant was issued.
    """
    if size > MAX_FILE_SIZE_BYTES:
        raise BlobReadError(
            f"Uploaded object is {size} bytes; the limit is {MAX_FILE_SIZE_BYTES} bytes"
        )
    if size != record.file_size:
        raise BlobReadError(
            f"Uploaded object is {size} bytes; {record.file_size} bytes were declared"
        )
