"""Unit tests for upload grant issuance.

Tests cover:
- Declared size, name and type validation
- Record creation before the grant
- Blob store failures
"""

from typing import Any

import pytest

from invoice_scanner.records.schema import InvoiceStatus
from invoice_scanner.records.sqlite_store import SQLiteRecordStore
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import CapabilityUnavailable, ValidationError
from invoice_scanner.storage.keys import resolve_object_key
from invoice_scanner.uploads.service import UploadService, validate_upload_request


@pytest.fixture
def upload_service(
    store: SQLiteRecordStore, blob_store: Any, settings: Settings
) -> UploadService:
    return UploadService(store, blob_store, settings)


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "fileName": "inv.pdf",
        "fileSize": 2048,
        "mimeType": "application/pdf",
    }
    payload.update(overrides)
    return payload


class TestValidateUploadRequest:
    """Test request validation."""

    def test_valid_request(self) -> None:
        request = validate_upload_request(_payload())

        assert request.file_name == "inv.pdf"
        assert request.file_size == 2048
        assert request.mime_type == "application/pdf"

    def test_maximum_size_accepted(self) -> None:
        assert validate_upload_request(_payload(fileSize=10485760)).file_size == 10485760

    @pytest.mark.parametrize("size", [0, -1, 10485761])
    def test_size_out_of_range(self, size: int) -> None:
        with pytest.raises(ValidationError, match="fileSize"):
            validate_upload_request(_payload(fileSize=size))

    def test_jpg_alias_normalized(self) -> None:
        assert validate_upload_request(_payload(mimeType="image/jpg")).mime_type == "image/jpeg"

    @pytest.mark.parametrize("mime_type", ["text/plain", "image/gif", ""])
    def test_unsupported_type(self, mime_type: str) -> None:
        with pytest.raises(ValidationError, match="Invalid file type"):
            validate_upload_request(_payload(mimeType=mime_type))

    @pytest.mark.parametrize("file_name", ["", "   "])
    def test_blank_file_name(self, file_name: str) -> None:
        with pytest.raises(ValidationError, match="fileName"):
            validate_upload_request(_payload(fileName=file_name))

    def test_missing_field(self) -> None:
        payload = _payload()
        del payload["mimeType"]

        with pytest.raises(ValidationError, match="mimeType"):
            validate_upload_request(payload)


class TestRequestUploadGrant:
    """Test the grant operation."""

    def test_creates_uploaded_record(
        self, upload_service: UploadService, store: SQLiteRecordStore, blob_store: Any
    ) -> None:
        grant = upload_service.request_upload_grant(
            "user-1", validate_upload_request(_payload(fileName="my invoice.pdf"))
        )

        record = store.get(grant.record_id, "user-1")
        assert record.status is InvoiceStatus.UPLOADED
        assert record.file_name == "my invoice.pdf"
        assert record.blob_key == grant.blob_key
        assert record.extracted_data is None
        assert grant.expires_in_seconds == 300
        assert blob_store.grants == [(grant.blob_key, 300)]
        assert grant.upload_url.startswith("http://blob.test/")

    def test_blob_key_resolves_to_record(self, upload_service: UploadService) -> None:
        grant = upload_service.request_upload_grant("user-1", validate_upload_request(_payload()))

        reference = resolve_object_key(grant.blob_key, "uploads/")

        assert reference is not None
        assert (reference.owner_id, reference.record_id) == ("user-1", grant.record_id)

    def test_each_grant_gets_new_record(self, upload_service: UploadService) -> None:
        request = validate_upload_request(_payload())

        first = upload_service.request_upload_grant("user-1", request)
        second = upload_service.request_upload_grant("user-1", request)

        assert first.record_id != second.record_id
        assert first.blob_key != second.blob_key

    def test_empty_owner_rejected(self, upload_service: UploadService) -> None:
        with pytest.raises(ValidationError):
            upload_service.request_upload_grant("", validate_upload_request(_payload()))

    def test_blob_store_failure(
        self, upload_service: UploadService, blob_store: Any
    ) -> None:
        blob_store.grant_error = "connection refused"

        with pytest.raises(CapabilityUnavailable, match="connection refused"):
            upload_service.request_upload_grant("user-1", validate_upload_request(_payload()))

    def test_grant_serializes_camel_case(self, upload_service: UploadService) -> None:
        grant = upload_service.request_upload_grant("user-1", validate_upload_request(_payload()))

        dumped = grant.model_dump(by_alias=True)

        assert set(dumped) == {"uploadUrl", "recordId", "blobKey", "expiresInSeconds"}
