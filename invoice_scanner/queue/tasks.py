"""Async task definitions for invoice processing.

Uses arq (async Redis queue) for background task processing:
- ``process_blob_notification``: one new object -> one pipeline run
- ``process_blob_event``: a raw S3/MinIO event document, split per object
- ``reconcile_stale_invoices``: periodic sweep of abandoned PROCESSING records

Notifications are delivered at least once; the pipeline's conditional
status write makes redelivery harmless.

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import asyncio
import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from invoice_scanner.container import build_processor, build_sweeper
from invoice_scanner.pipeline.notifications import BlobNotification, parse_event
from invoice_scanner.pipeline.processor import InvoiceProcessor
from invoice_scanner.pipeline.reconcile import StaleProcessingSweeper
from invoice_scanner.records.sqlite_store import SQLiteRecordStore
from invoice_scanner.shared.config import get_settings
from invoice_scanner.storage.service import BlobStore

logger = logging.getLogger(__name__)


async def process_blob_notification(
    ctx: dict[str, Any],
    bucket: str,
    object_key: str,
) -> str:
    """Run the pipeline for one uploaded object.

    Args:
        ctx: arq context (contains the processor built at startup)
        bucket: Bucket the object was written to
        object_key: Object key as delivered by the blob store

    Returns:
        Processing outcome value (completed, failed, skipped or dropped)
    """
    processor: InvoiceProcessor = ctx["processor"]
    notification = BlobNotification(bucket=bucket, object_key=object_key)

    logger.info(f"Job {ctx.get('job_id')}: handling {bucket}/{object_key}")
    outcome = await processor.handle(notification)
    logger.info(f"Job {ctx.get('job_id')}: {bucket}/{object_key} -> {outcome.value}")
    return outcome.value


async def process_blob_event(ctx: dict[str, Any], event: dict[str, Any]) -> list[str]:
    """Run the pipeline for every object in an S3-style event document."""
    processor: InvoiceProcessor = ctx["processor"]
    outcomes = []
    for notification in parse_event(event):
        outcome = await processor.handle(notification)
        outcomes.append(outcome.value)
    return outcomes


async def reconcile_stale_invoices(ctx: dict[str, Any]) -> int:
    """Fail PROCESSING records whose pipeline run was abandoned."""
    sweeper: StaleProcessingSweeper = ctx["sweeper"]
    return await asyncio.to_thread(sweeper.sweep)


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup hook - initialize services.

    Called once when worker starts. Builds the record store, blob store,
    pipeline and sweeper once and shares them across jobs.
    """
    logger.info("Initializing worker services...")
    settings = get_settings()
    store = SQLiteRecordStore(settings.record_store_path)
    blob_store = BlobStore(settings)

    ctx["settings"] = settings
    ctx["store"] = store
    ctx["blob_store"] = blob_store
    ctx["processor"] = build_processor(settings, store, blob_store)
    ctx["sweeper"] = build_sweeper(settings, store)
    logger.info("Worker services initialized")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown hook - cleanup resources."""
    logger.info("Worker shutting down...")
    store = ctx.get("store")
    if store is not None:
        store.close()


class WorkerSettings:
    """arq worker settings.

    Defines the worker configuration including:
    - Task functions to register
    - The reconciliation cron schedule
    - Redis connection settings
    - Job timeout and concurrency
    """

    functions = [process_blob_notification, process_blob_event, reconcile_stale_invoices]
    cron_jobs = [
        cron(reconcile_stale_invoices, minute={0, 15, 30, 45}, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown

    # These will be set from environment
    redis_settings: RedisSettings | None = None
    max_jobs = 10
    job_timeout = 600

    @classmethod
    def get_redis_settings(cls) -> RedisSettings:
        """Get Redis settings from configuration."""
        return RedisSettings.from_dsn(get_settings().redis_url)
