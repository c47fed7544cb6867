"""Upload grant operation.

Validates the declared file, creates the UPLOADED record and returns a
time-limited presigned PUT URL for the blob key embedding the record id.
The record always exists before the client can write the blob, so the
pipeline never sees a blob without a record it could claim.
"""

import logging
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from invoice_scanner.records.base import RecordStore
from invoice_scanner.records.schema import (
    ALLOWED_MIME_TYPES,
    MAX_FILE_SIZE_BYTES,
    InvoiceRecord,
    InvoiceStatus,
    utc_now,
)
from invoice_scanner.shared import metrics
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import CapabilityUnavailable, ValidationError
from invoice_scanner.storage.keys import build_object_key
from invoice_scanner.storage.service import BlobStore

logger = logging.getLogger(__name__)


class UploadRequest(BaseModel):
    """Declared properties of the file the client intends to upload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., ge=1, le=MAX_FILE_SIZE_BYTES)
    mime_type: str

    @field_validator("file_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("fileName must not be blank")
        return value

    @field_validator("mime_type")
    @classmethod
    def _allowed_mime_type(cls, value: str) -> str:
        normalized = ALLOWED_MIME_TYPES.get(value.strip().lower())
        if normalized is None:
            raise ValueError("Invalid file type. Supported types: PDF, JPEG, PNG, TIFF, BMP")
        return normalized


class UploadGrant(BaseModel):
    """Upload grant handed back to the client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    upload_url: str
    record_id: str
    blob_key: str
    expires_in_seconds: int


def validate_upload_request(payload: dict) -> UploadRequest:
    """Validate a raw upload request.

    Raises:
        ValidationError: Describing the first invalid field
    """
    try:
        return UploadRequest.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "request"
        raise ValidationError(f"Invalid request: {field}: {first.get('msg')}") from e


class UploadService:
    """Issues upload grants and creates the matching records."""

    def __init__(self, store: RecordStore, blob_store: BlobStore, settings: Settings) -> None:
        self.store = store
        self.blob_store = blob_store
        self.settings = settings

    def request_upload_grant(self, owner_id: str, request: UploadRequest) -> UploadGrant:
        """Create an UPLOADED record and a presigned upload URL for it.

        Args:
            owner_id: Verified identity of the uploader
            request: Validated upload request

        Returns:
            UploadGrant with URL, record id and blob key

        Raises:
            ValidationError: If owner_id is empty
            CapabilityUnavailable: If the blob store cannot issue a grant
        """
        if not owner_id:
            raise ValidationError("Owner id is required")

        record_id = str(uuid.uuid4())
        blob_key = build_object_key(
            self.settings.upload_prefix, owner_id, record_id, request.file_name
        )
        now = utc_now()
        record = InvoiceRecord(
            id=record_id,
            owner_id=owner_id,
            file_name=request.file_name,
            file_size=request.file_size,
            mime_type=request.mime_type,
            blob_key=blob_key,
            status=InvoiceStatus.UPLOADED,
            created_at=now,
            updated_at=now,
        )
        self.store.create(record)

        expires = self.settings.upload_grant_expires_seconds
        grant = self.blob_store.create_upload_grant(blob_key, expires_seconds=expires)
        if not grant.success or not grant.url:
            logger.error(f"Upload grant failed for invoice {record_id}: {grant.error}")
            raise CapabilityUnavailable(f"Could not create upload URL: {grant.error}")

        metrics.upload_grants_total.labels(mime_type=request.mime_type).inc()
        metrics.upload_declared_size_bytes.observe(request.file_size)
        logger.info(
            f"Upload grant issued for invoice {record_id} "
            f"(owner={owner_id}, {request.file_size} bytes, expires in {expires}s)"
        )

        return UploadGrant(
            upload_url=grant.url,
            record_id=record_id,
            blob_key=blob_key,
            expires_in_seconds=expires,
        )
