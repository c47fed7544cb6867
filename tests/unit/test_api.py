"""Unit tests for the invoice API.

Tests cover:
- Health, readiness and metrics endpoints
- Upload grant requests and validation
- Listing, lookup, statistics and search through the response envelope
"""

from collections.abc import Callable
from typing import Any

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from invoice_scanner.api.main import create_app
from invoice_scanner.container import build_api_services
from invoice_scanner.records.schema import InvoiceRecord, InvoiceStatus
from invoice_scanner.records.sqlite_store import SQLiteRecordStore
from invoice_scanner.shared.config import Settings

OWNER = {"X-Owner-Id": "user-1"}


@pytest.fixture
def client(settings: Settings, store: SQLiteRecordStore, blob_store: Any) -> TestClient:
    """Create test client backed by in-memory stores."""
    services = build_api_services(settings, store=store, blob_store=blob_store)
    return TestClient(create_app(settings, services))


class TestHealth:
    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "invoice-scanner"

    def test_health_reports_environment(
        self, settings: Settings, store: SQLiteRecordStore, blob_store: Any
    ) -> None:
        production = settings.model_copy(update={"environment": "production"})
        services = build_api_services(production, store=store, blob_store=blob_store)

        response = TestClient(create_app(production, services)).get("/health")

        assert response.json()["environment"] == "production"

    def test_readiness_check(self, client: TestClient) -> None:
        response = client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"ready": True, "record_store": True, "blob_store": True}

    def test_not_ready_without_blob_store(self, client: TestClient, blob_store: Any) -> None:
        blob_store.healthy = False

        response = client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["ready"] is False

    def test_metrics_endpoint(self, client: TestClient) -> None:
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == status.HTTP_200_OK
        assert "http_requests_total" in response.text


class TestUpload:
    """Test POST /api/v1/invoices."""

    def test_upload_grant(self, client: TestClient, store: SQLiteRecordStore) -> None:
        response = client.post(
            "/api/v1/invoices",
            json={"fileName": "inv.pdf", "fileSize": 2048, "mimeType": "application/pdf"},
            headers=OWNER,
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Upload URL generated successfully"
        data = body["data"]
        assert data["uploadUrl"].startswith("http://blob.test/")
        assert data["expiresInSeconds"] == 300
        assert store.get(data["recordId"], "user-1").status is InvoiceStatus.UPLOADED

    def test_upload_too_large(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/invoices",
            json={"fileName": "inv.pdf", "fileSize": 10485761, "mimeType": "application/pdf"},
            headers=OWNER,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body == {"success": False, "error": body["error"], "code": "VALIDATION_ERROR"}
        assert "fileSize" in body["error"]

    def test_upload_bad_type(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/invoices",
            json={"fileName": "notes.txt", "fileSize": 10, "mimeType": "text/plain"},
            headers=OWNER,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Invalid file type" in response.json()["error"]

    def test_upload_requires_identity(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/invoices",
            json={"fileName": "inv.pdf", "fileSize": 2048, "mimeType": "application/pdf"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_blob_store_unavailable(self, client: TestClient, blob_store: Any) -> None:
        blob_store.grant_error = "connection refused"

        response = client.post(
            "/api/v1/invoices",
            json={"fileName": "inv.pdf", "fileSize": 2048, "mimeType": "application/pdf"},
            headers=OWNER,
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["code"] == "CAPABILITY_UNAVAILABLE"


class TestQueries:
    """Test the read endpoints."""

    def test_list_pages_with_cursor(
        self, client: TestClient, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        records = [make_record() for _ in range(3)]
        seen: list[str] = []
        params: dict[str, Any] = {"limit": 1}

        while True:
            response = client.get("/api/v1/invoices", params=params, headers=OWNER)
            assert response.status_code == status.HTTP_200_OK
            data = response.json()["data"]
            assert data["count"] == 1
            seen.extend(item["id"] for item in data["items"])
            if "nextCursor" not in data:
                break
            params = {"limit": 1, "cursor": data["nextCursor"]}

        assert seen == [r.id for r in reversed(records)]

    def test_list_status_filter(
        self, client: TestClient, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        make_record()
        failed = make_record(status=InvoiceStatus.FAILED)

        response = client.get("/api/v1/invoices", params={"status": "FAILED"}, headers=OWNER)

        items = response.json()["data"]["items"]
        assert [item["id"] for item in items] == [failed.id]
        assert items[0]["error"] == "OCR failed: unreadable"

    @pytest.mark.parametrize("limit", [0, 101])
    def test_list_limit_bounds(self, client: TestClient, limit: int) -> None:
        response = client.get("/api/v1/invoices", params={"limit": limit}, headers=OWNER)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_list_bad_cursor(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices", params={"cursor": "garbage"}, headers=OWNER)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Invalid pagination cursor"

    def test_get_invoice(
        self, client: TestClient, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        record = make_record(
            status=InvoiceStatus.COMPLETED, extracted={"vendor_name": "Acme", "currency": "USD"}
        )

        response = client.get(f"/api/v1/invoices/{record.id}", headers=OWNER)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["status"] == "COMPLETED"
        assert data["extractedData"]["vendorName"] == "Acme"
        assert data["extractedData"]["confidence"]["overall"] == 0.9

    def test_get_other_owners_invoice(
        self, client: TestClient, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        record = make_record(owner_id="user-2")

        response = client.get(f"/api/v1/invoices/{record.id}", headers=OWNER)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {
            "success": False,
            "error": "Invoice not found",
            "code": "NOT_FOUND",
        }

    def test_stats(self, client: TestClient, make_record: Callable[..., InvoiceRecord]) -> None:
        make_record()
        make_record(status=InvoiceStatus.COMPLETED, extracted={"total_amount": "12.5", "currency": "EUR"})

        response = client.get("/api/v1/invoices/stats", headers=OWNER)

        data = response.json()["data"]
        assert data["totalInvoices"] == 2
        assert data["byStatus"]["completed"]["count"] == 1
        assert data["totalsByCurrency"] == {"EUR": "12.5"}

    def test_search(self, client: TestClient, make_record: Callable[..., InvoiceRecord]) -> None:
        match = make_record(status=InvoiceStatus.COMPLETED, extracted={"vendor_name": "Acme"})
        make_record(status=InvoiceStatus.COMPLETED, extracted={"vendor_name": "Globex"})

        response = client.get("/api/v1/invoices/search", params={"q": "acm"}, headers=OWNER)

        data = response.json()["data"]
        assert [item["id"] for item in data["items"]] == [match.id]
        assert data["searchTerm"] == "acm"

    def test_search_requires_term(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices/search", headers=OWNER)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Search term is required"
