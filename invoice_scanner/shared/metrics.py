"""Prometheus metrics for the API and the processing pipeline.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Upload grants issued
- Pipeline outcomes and capability call durations
- Stale records swept by reconciliation

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Upload metrics
upload_grants_total = Counter(
    "invoice_upload_grants_total",
    "Total upload grants issued",
    ["mime_type"],
)

upload_declared_size_bytes = Histogram(
    "invoice_upload_declared_size_bytes",
    "Declared size of granted uploads in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)

# Pipeline metrics
pipeline_outcomes_total = Counter(
    "invoice_pipeline_outcomes_total",
    "Blob notifications handled by outcome",
    ["outcome"],  # completed, failed, skipped, dropped
)

capability_duration_seconds = Histogram(
    "invoice_capability_duration_seconds",
    "External capability call duration in seconds (all attempts)",
    ["capability"],  # ocr, structuring
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0),
)

stale_records_swept_total = Counter(
    "invoice_stale_records_swept_total",
    "PROCESSING records marked FAILED by the reconciliation sweep",
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
