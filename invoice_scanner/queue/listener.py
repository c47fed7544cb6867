"""Bridge from MinIO bucket notifications to the arq queue.

Listens for ``s3:ObjectCreated:*`` events under the upload prefix and
enqueues one ``process_blob_notification`` job per object. The job id is
derived from bucket and key, so a notification redelivered while its job is
still queued is not enqueued twice.

Run with: python -m invoice_scanner.queue.listener
"""

import asyncio
import logging
from collections.abc import Iterator
from typing import Any

from arq import create_pool
from arq.connections import ArqRedis

from invoice_scanner.pipeline.notifications import parse_event
from invoice_scanner.queue.tasks import WorkerSettings
from invoice_scanner.shared.config import get_settings
from invoice_scanner.shared.logging_setup import configure_logging
from invoice_scanner.storage.service import BlobStore

logger = logging.getLogger(__name__)


async def enqueue_event(redis: ArqRedis, event: dict[str, Any]) -> int:
    """Enqueue one job per object in an event document.

    Returns:
        Number of jobs newly enqueued
    """
    enqueued = 0
    for notification in parse_event(event):
        job = await redis.enqueue_job(
            "process_blob_notification",
            notification.bucket,
            notification.object_key,
            _job_id=f"{notification.bucket}:{notification.object_key}",
        )
        if job is None:
            logger.info(f"Job for {notification.object_key} already queued; skipping")
            continue
        enqueued += 1
        logger.info(f"Enqueued job {job.job_id}")
    return enqueued


async def listen(blob_store: BlobStore, redis: ArqRedis, prefix: str) -> None:
    """Forward upload events until the notification stream closes."""
    events: Iterator[dict[str, Any]] = blob_store.listen_for_uploads(prefix)
    logger.info(f"Listening for uploads in {blob_store.bucket}/{prefix}")
    while True:
        event = await asyncio.to_thread(next, events, None)
        if event is None:
            logger.warning("Notification stream closed")
            return
        await enqueue_event(redis, event)


async def run() -> None:
    settings = get_settings()
    configure_logging(settings)
    redis = await create_pool(WorkerSettings.get_redis_settings())
    try:
        await listen(BlobStore(settings), redis, settings.upload_prefix)
    finally:
        await redis.close()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
