"""Explicit wiring of collaborators.

Capability handles are built once per process and passed by reference into
the pipeline and the query/upload services; nothing is held in module-level
globals.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from invoice_scanner.extraction.factory import create_extraction_service
from invoice_scanner.ocr.factory import create_ocr_service
from invoice_scanner.pipeline.processor import InvoiceProcessor
from invoice_scanner.pipeline.reconcile import StaleProcessingSweeper
from invoice_scanner.pipeline.retry import extraction_retry_policy, ocr_retry_policy
from invoice_scanner.query.service import InvoiceQueryService
from invoice_scanner.records.base import RecordStore
from invoice_scanner.records.sqlite_store import SQLiteRecordStore
from invoice_scanner.shared.config import Settings
from invoice_scanner.storage.service import BlobStore
from invoice_scanner.uploads.service import UploadService

logger = logging.getLogger(__name__)


@dataclass
class ApiServices:
    """Collaborators needed by the HTTP adapter."""

    settings: Settings
    store: RecordStore
    blob_store: BlobStore
    uploads: UploadService
    queries: InvoiceQueryService


def build_api_services(
    settings: Settings,
    store: RecordStore | None = None,
    blob_store: BlobStore | None = None,
) -> ApiServices:
    store = store or SQLiteRecordStore(settings.record_store_path)
    blob_store = blob_store or BlobStore(settings)
    return ApiServices(
        settings=settings,
        store=store,
        blob_store=blob_store,
        uploads=UploadService(store, blob_store, settings),
        queries=InvoiceQueryService(store, settings),
    )


def build_processor(settings: Settings, store: RecordStore, blob_store: BlobStore) -> InvoiceProcessor:
    """Build the pipeline with the configured OCR and structuring providers."""
    return InvoiceProcessor(
        store=store,
        blob_store=blob_store,
        ocr_service=create_ocr_service(settings),
        extraction_service=create_extraction_service(settings),
        ocr_policy=ocr_retry_policy(settings),
        extraction_policy=extraction_retry_policy(settings),
        upload_prefix=settings.upload_prefix,
    )


def build_sweeper(settings: Settings, store: RecordStore) -> StaleProcessingSweeper:
    return StaleProcessingSweeper(
        store,
        stale_after=timedelta(seconds=settings.stale_processing_seconds),
        batch_size=settings.reconcile_batch_size,
    )
