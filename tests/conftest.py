"""Shared fixtures for unit tests.

Provides an in-memory record store, an in-memory blob store and a record
factory so pipeline and query tests run without MinIO, Redis or OCR engines.
"""

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from invoice_scanner.records.schema import (
    ConfidenceSummary,
    ExtractedInvoiceData,
    InvoiceRecord,
    InvoiceStatus,
    utc_now,
)
from invoice_scanner.records.sqlite_store import SQLiteRecordStore
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import BlobReadError
from invoice_scanner.storage.keys import build_object_key
from invoice_scanner.storage.service import UploadGrantResult


class InMemoryBlobStore:
    """Blob store double keeping objects in a dict."""

    bucket = "invoices"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.grants: list[tuple[str, int]] = []
        self.healthy = True
        self.grant_error: str | None = None

    def health_check(self) -> bool:
        return self.healthy

    def create_upload_grant(self, object_name: str, expires_seconds: int) -> UploadGrantResult:
        if self.grant_error:
            return UploadGrantResult(success=False, error=self.grant_error)
        self.grants.append((object_name, expires_seconds))
        return UploadGrantResult(
            success=True,
            url=f"http://blob.test/{self.bucket}/{object_name}?X-Amz-Signature=test",
            object_name=object_name,
            expires_in_seconds=expires_seconds,
        )

    def object_size(self, object_name: str, bucket: str | None = None) -> int:
        if object_name not in self.objects:
            raise BlobReadError(f"Object not found: {self.bucket}/{object_name}")
        return len(self.objects[object_name])

    def download_bytes(self, object_name: str, bucket: str | None = None) -> bytes:
        if object_name not in self.objects:
            raise BlobReadError(f"Object not found: {self.bucket}/{object_name}")
        return self.objects[object_name]


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: in-memory store, zero backoff."""
    return Settings(
        storage_access_key="test-access-key",
        storage_secret_key="test-secret-key",
        record_store_path=":memory:",
        ocr_base_delay_seconds=0,
        extraction_base_delay_seconds=0,
    )


@pytest.fixture
def store() -> Iterator[SQLiteRecordStore]:
    """Fresh in-memory record store."""
    record_store = SQLiteRecordStore(":memory:")
    yield record_store
    record_store.close()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def make_record(store: SQLiteRecordStore) -> Callable[..., InvoiceRecord]:
    """Factory inserting a record in any status, with a consistent payload."""
    counter = {"n": 0}
    base_time = utc_now() - timedelta(hours=1)

    def _make(
        owner_id: str = "user-1",
        status: InvoiceStatus = InvoiceStatus.UPLOADED,
        created_at: datetime | None = None,
        file_name: str = "invoice.pdf",
        mime_type: str = "application/pdf",
        extracted: dict[str, Any] | None = None,
        error: str | None = None,
        processing_started_at: datetime | None = None,
        record_id: str | None = None,
    ) -> InvoiceRecord:
        counter["n"] += 1
        record_id = record_id or f"rec-{counter['n']:04d}"
        created = created_at or base_time + timedelta(seconds=counter["n"])

        fields: dict[str, Any] = {}
        if status is not InvoiceStatus.UPLOADED:
            fields["processing_started_at"] = processing_started_at or created
        if status is InvoiceStatus.COMPLETED:
            fields["processing_completed_at"] = created + timedelta(seconds=5)
            fields["extracted_data"] = ExtractedInvoiceData.model_validate(
                {
                    **(extracted or {}),
                    "confidence": ConfidenceSummary(overall=0.9),
                }
            )
        if status is InvoiceStatus.FAILED:
            fields["processing_completed_at"] = created + timedelta(seconds=5)
            fields["error"] = error or "OCR failed: unreadable"

        record = InvoiceRecord(
            id=record_id,
            owner_id=owner_id,
            file_name=file_name,
            file_size=2048,
            mime_type=mime_type,
            blob_key=build_object_key("uploads/", owner_id, record_id, file_name),
            status=status,
            created_at=created,
            updated_at=created,
            **fields,
        )
        store.create(record)
        return record

    return _make


@pytest.fixture
def completed_extraction() -> dict[str, Any]:
    return {
        "vendor_name": "Acme",
        "invoice_number": "INV-001",
        "total_amount": Decimal("100.00"),
        "currency": "USD",
    }
