"""Shared configuration management for the invoice scanner.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-scanner",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # OCR provider configuration
    ocr_provider: Literal["tesseract", "paddleocr"] = Field(
        default="tesseract",
        description="OCR provider: tesseract (CPU), paddleocr (GPU-accelerated)",
    )
    pdf_render_dpi: int = Field(
        default=300,
        ge=72,
        description="Resolution used when rasterising PDF pages for Tesseract",
    )

    # Extraction (structuring) provider configuration
    extraction_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Structuring provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model used for structuring",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for extraction (e.g., qwen2.5:7b, llama3.1:8b)",
    )

    # Blob storage configuration (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=True,
        description="Enable the S3-compatible blob store (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoices",
        description="Bucket receiving invoice uploads",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )
    upload_prefix: str = Field(
        default="uploads/",
        description="Key prefix under which upload grants are issued and notifications consumed",
    )
    upload_grant_expires_seconds: int = Field(
        default=300,
        ge=1,
        le=604800,
        description="Lifetime of a presigned upload URL",
    )

    # Record store configuration
    record_store_path: str = Field(
        default="invoices.db",
        description="SQLite database path for invoice records (':memory:' for ephemeral)",
    )

    # Queue configuration (arq / Redis)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL used by the arq worker",
    )
    queue_max_jobs: int = Field(
        default=10,
        ge=1,
        description="Maximum concurrent jobs per worker",
    )
    queue_job_timeout: int = Field(
        default=600,
        ge=1,
        description="Overall invocation deadline for one job, in seconds",
    )

    # Capability retry policies
    ocr_max_attempts: int = Field(default=3, ge=1, description="OCR attempts before FAILED")
    ocr_base_delay_seconds: float = Field(
        default=1.0, ge=0, description="First OCR backoff delay, doubled per attempt"
    )
    ocr_timeout_seconds: float = Field(
        default=120.0, gt=0, description="Deadline for a single OCR call"
    )
    extraction_max_attempts: int = Field(
        default=2, ge=1, description="Structuring attempts before FAILED"
    )
    extraction_base_delay_seconds: float = Field(
        default=2.0, ge=0, description="First structuring backoff delay, doubled per attempt"
    )
    extraction_timeout_seconds: float = Field(
        default=120.0, gt=0, description="Deadline for a single structuring call"
    )

    # Reconciliation sweep
    stale_processing_seconds: int = Field(
        default=900,
        ge=1,
        description="Age after which a PROCESSING record is considered abandoned",
    )
    reconcile_batch_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Records inspected per page by the reconciliation sweep",
    )

    # Query windows
    search_window: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Most recent COMPLETED records scanned by free-text search",
    )
    stats_window: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Per-status records read when computing statistics",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
