"""Invoice record model, status lifecycle and typed status patches.

The record store only accepts mutations expressed as one of the patch
classes below. Each patch names the status it moves a record into and the
statuses it may move it out of, so a caller can never write an arbitrary
field set or move a record backwards.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from invoice_scanner.extraction.schema import InvoiceData

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024

ALLOWED_MIME_TYPES: dict[str, str] = {
    "application/pdf": "application/pdf",
    "image/jpeg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "image/png": "image/png",
    "image/tiff": "image/tiff",
    "image/bmp": "image/bmp",
}

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp; lexicographic order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=UTC)


class InvoiceStatus(str, Enum):
    """Processing lifecycle. COMPLETED and FAILED are terminal."""

    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (InvoiceStatus.COMPLETED, InvoiceStatus.FAILED)


class ConfidenceSummary(BaseModel):
    """Overall OCR confidence plus optional per-field scores."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    overall: float = Field(..., ge=0, le=1)
    fields: dict[str, float] = Field(default_factory=dict)


class ExtractedInvoiceData(InvoiceData):
    """Structured fields merged with the confidence summary."""

    confidence: ConfidenceSummary


class InvoiceRecord(BaseModel):
    """Canonical metadata for one uploaded document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    owner_id: str

    file_name: str
    file_size: int = Field(..., ge=1, le=MAX_FILE_SIZE_BYTES)
    mime_type: str
    blob_key: str

    status: InvoiceStatus = InvoiceStatus.UPLOADED
    created_at: datetime
    updated_at: datetime
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    error: str | None = None

    extracted_data: ExtractedInvoiceData | None = None

    @model_validator(mode="after")
    def _check_payload_matches_status(self) -> "InvoiceRecord":
        if (self.extracted_data is not None) != (self.status is InvoiceStatus.COMPLETED):
            raise ValueError("extracted_data must be present exactly when status is COMPLETED")
        if (self.error is not None) != (self.status is InvoiceStatus.FAILED):
            raise ValueError("error must be present exactly when status is FAILED")
        return self

    @property
    def sort_key(self) -> str:
        """Position in creation-time order; ties broken by id."""
        return f"{format_timestamp(self.created_at)}#{self.id}"


class StatusPatch(BaseModel):
    """Base class for the closed set of record mutations."""

    target_status: ClassVar[InvoiceStatus]
    allowed_from: ClassVar[tuple[InvoiceStatus, ...]]


class MarkProcessing(StatusPatch):
    """UPLOADED -> PROCESSING. The concurrency gate for a record."""

    target_status: ClassVar[InvoiceStatus] = InvoiceStatus.PROCESSING
    allowed_from: ClassVar[tuple[InvoiceStatus, ...]] = (InvoiceStatus.UPLOADED,)

    processing_started_at: datetime


class MarkCompleted(StatusPatch):
    """PROCESSING -> COMPLETED. Writes extracted_data exactly once."""

    target_status: ClassVar[InvoiceStatus] = InvoiceStatus.COMPLETED
    allowed_from: ClassVar[tuple[InvoiceStatus, ...]] = (InvoiceStatus.PROCESSING,)

    extracted_data: ExtractedInvoiceData
    processing_completed_at: datetime


class MarkFailed(StatusPatch):
    """PROCESSING -> FAILED with a human-readable cause."""

    target_status: ClassVar[InvoiceStatus] = InvoiceStatus.FAILED
    allowed_from: ClassVar[tuple[InvoiceStatus, ...]] = (InvoiceStatus.PROCESSING,)

    error: str = Field(..., min_length=1)
    processing_completed_at: datetime


def apply_patch(record: InvoiceRecord, patch: StatusPatch, now: datetime) -> InvoiceRecord:
    """Return a copy of ``record`` with ``patch`` applied.

    ``updated_at`` never moves backwards even if the clock does.
    """
    changes = patch.model_dump()
    changes["status"] = patch.target_status
    changes["updated_at"] = max(now, record.updated_at)
    if isinstance(patch, MarkCompleted):
        changes["extracted_data"] = patch.extracted_data
    return record.model_copy(update=changes)
