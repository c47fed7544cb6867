"""FastAPI application for invoice uploads and queries.

Thin HTTP adapter over the upload and query services:
- Upload grants (presigned PUT URL + UPLOADED record)
- Paginated listing, lookup, statistics and search per owner
- Health and readiness checks for Kubernetes
- Prometheus metrics for monitoring

Identity verification happens upstream; the verified owner id arrives in
the ``X-Owner-Id`` header.

Run with: uvicorn invoice_scanner.api.main:create_app --factory

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import time
from typing import Any

from fastapi import Body, Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from invoice_scanner.api.envelope import (
    handle_domain_error,
    handle_request_validation_error,
    handle_unexpected_error,
    success_response,
)
from invoice_scanner.container import ApiServices, build_api_services
from invoice_scanner.records.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PageRequest
from invoice_scanner.records.schema import InvoiceStatus
from invoice_scanner.shared import metrics
from invoice_scanner.shared.config import Settings, get_settings
from invoice_scanner.shared.errors import AuthenticationError, InvoiceScannerError
from invoice_scanner.shared.logging_setup import configure_logging
from invoice_scanner.uploads.service import validate_upload_request


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str
    environment: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    record_store: bool
    blob_store: bool


def get_services(request: Request) -> ApiServices:
    return request.app.state.services


def get_owner_id(x_owner_id: str | None = Header(None)) -> str:
    """Verified owner identity forwarded by the authenticating gateway."""
    if not x_owner_id or not x_owner_id.strip():
        raise AuthenticationError("User not authenticated")
    return x_owner_id.strip()


def create_app(settings: Settings | None = None, services: ApiServices | None = None) -> FastAPI:
    """Build the API with explicitly injected services.

    Args:
        settings: Application settings (read from the environment if omitted)
        services: Pre-built collaborators (built from settings if omitted)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings)
    services = services or build_api_services(settings)

    app = FastAPI(
        title="Invoice Scanner",
        description="Invoice upload, asynchronous OCR/structuring and query API",
        version=settings.service_version,
    )
    app.state.services = services

    app.add_exception_handler(InvoiceScannerError, handle_domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Track request count and duration by method, endpoint and status."""
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        metrics.http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
        ).inc()
        metrics.http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check() -> HealthResponse:
        """Liveness probe."""
        return HealthResponse(
            status="healthy",
            version=settings.service_version,
            service=settings.service_name,
            environment=settings.environment,
        )

    @app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
    def readiness_check(
        response: Response, svc: ApiServices = Depends(get_services)  # noqa: B008
    ) -> ReadinessResponse:
        """Readiness probe: record store and blob store must both answer."""
        store_ok = svc.store.health_check()
        blob_ok = svc.blob_store.health_check()
        if not (store_ok and blob_ok):
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(ready=store_ok and blob_ok, record_store=store_ok, blob_store=blob_ok)

    @app.get("/metrics", tags=["Monitoring"])
    def get_metrics() -> Response:
        """Prometheus metrics endpoint."""
        metrics_data, content_type = metrics.get_metrics()
        return Response(content=metrics_data, media_type=content_type)

    @app.post("/api/v1/invoices", tags=["Invoices"])
    def request_upload(
        payload: dict[str, Any] = Body(...),  # noqa: B008
        owner_id: str = Depends(get_owner_id),  # noqa: B008
        svc: ApiServices = Depends(get_services),  # noqa: B008
    ) -> JSONResponse:
        """Create an invoice record and return a presigned upload URL.

        Body: ``{"fileName": str, "fileSize": int (1..10485760), "mimeType": str}``.
        The client then PUTs the file to ``uploadUrl``; processing starts when
        the blob store reports the new object.
        """
        upload_request = validate_upload_request(payload)
        grant = svc.uploads.request_upload_grant(owner_id, upload_request)
        return success_response(
            grant, "Upload URL generated successfully", status_code=status.HTTP_201_CREATED
        )

    @app.get("/api/v1/invoices", tags=["Invoices"])
    def list_invoices(
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        cursor: str | None = Query(None),
        status_filter: InvoiceStatus | None = Query(None, alias="status"),
        owner_id: str = Depends(get_owner_id),  # noqa: B008
        svc: ApiServices = Depends(get_services),  # noqa: B008
    ) -> JSONResponse:
        """Newest-first page of the caller's invoices."""
        page = svc.queries.list_invoices(
            owner_id, PageRequest(limit=limit, cursor=cursor, status=status_filter)
        )
        return success_response(page, "Invoices retrieved successfully")

    @app.get("/api/v1/invoices/stats", tags=["Invoices"])
    def invoice_stats(
        owner_id: str = Depends(get_owner_id),  # noqa: B008
        svc: ApiServices = Depends(get_services),  # noqa: B008
    ) -> JSONResponse:
        """Counts by status and totals by currency (eventually consistent)."""
        return success_response(
            svc.queries.get_stats(owner_id), "Invoice statistics retrieved successfully"
        )

    @app.get("/api/v1/invoices/search", tags=["Invoices"])
    def search_invoices(
        q: str = Query(""),
        owner_id: str = Depends(get_owner_id),  # noqa: B008
        svc: ApiServices = Depends(get_services),  # noqa: B008
    ) -> JSONResponse:
        """Substring search over recent COMPLETED invoices."""
        return success_response(svc.queries.search(owner_id, q), "Search completed successfully")

    @app.get("/api/v1/invoices/{invoice_id}", tags=["Invoices"])
    def get_invoice(
        invoice_id: str,
        owner_id: str = Depends(get_owner_id),  # noqa: B008
        svc: ApiServices = Depends(get_services),  # noqa: B008
    ) -> JSONResponse:
        """Full invoice record, including extracted data once COMPLETED."""
        record = svc.queries.get_invoice(owner_id, invoice_id)
        return success_response(record, "Invoice retrieved successfully")

    return app
