"""Blob-creation notifications consumed by the pipeline.

MinIO (like S3) delivers events as ``{"Records": [{"s3": {...}}]}`` with
URL-encoded object keys; one event document may carry several records.
"""

import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class BlobNotification(BaseModel):
    """A new object appeared in the blob store.

    Attributes:
        bucket: Bucket the object was written to
        object_key: Object key as delivered (may still be URL-encoded)
        event_name: Source event name, informational only
    """

    bucket: str
    object_key: str
    event_name: str | None = None


def parse_event(event: dict[str, Any]) -> list[BlobNotification]:
    """Split an S3/MinIO event document into per-object notifications.

    Malformed records are skipped with a warning.
    """
    notifications: list[BlobNotification] = []
    for record in event.get("Records") or []:
        try:
            s3 = record["s3"]
            notifications.append(
                BlobNotification(
                    bucket=s3["bucket"]["name"],
                    object_key=s3["object"]["key"],
                    event_name=record.get("eventName"),
                )
            )
        except (KeyError, TypeError) as e:
            logger.warning(f"Skipping malformed notification record: {e!r}")
    return notifications
