"""Exception hierarchy for the invoice scanner.

Every error carries a stable machine-readable ``code`` and an HTTP-like
``status_code`` so the API layer can render the response envelope without
knowing about individual failure modes.
"""

import asyncio


class InvoiceScannerError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(InvoiceScannerError):
    """The caller's identity is missing."""

    code = "UNAUTHORIZED"
    status_code = 401


class ValidationError(InvoiceScannerError):
    """Malformed or out-of-range input. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(InvoiceScannerError):
    """Record absent, or not owned by the caller. Never retried."""

    code = "NOT_FOUND"
    status_code = 404


class AlreadyExistsError(InvoiceScannerError):
    """A record with the same id already exists."""

    code = "ALREADY_EXISTS"
    status_code = 409


class ConflictError(InvoiceScannerError):
    """A conditional status write found an unexpected current status."""

    code = "CONFLICT"
    status_code = 409


class ProcessingError(InvoiceScannerError):
    """OCR, structuring or blob read failure.

    Args:
        message: Human-readable cause, persisted on FAILED records
        transient: Whether retrying the same call may succeed
    """

    code = "PROCESSING_ERROR"
    status_code = 500

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class OCRError(ProcessingError):
    """The OCR capability rejected or failed on a document."""


class ExtractionError(ProcessingError):
    """The structuring capability failed or returned unusable output."""


class BlobReadError(ProcessingError):
    """The uploaded object could not be read back from the blob store."""


class CapabilityUnavailable(ProcessingError):
    """An external service is unreachable. Always retryable."""

    code = "CAPABILITY_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str) -> None:
        super().__init__(message, transient=True)


class CapabilityTimeout(CapabilityUnavailable):
    """A single capability call exceeded its own deadline."""


def is_transient_error(exc: BaseException) -> bool:
    """Return True when retrying the failed call may succeed."""
    if isinstance(exc, ProcessingError):
        return exc.transient
    return isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError))


__all__ = [
    "AlreadyExistsError",
    "AuthenticationError",
    "BlobReadError",
    "CapabilityTimeout",
    "CapabilityUnavailable",
    "ConflictError",
    "ExtractionError",
    "InvoiceScannerError",
    "NotFoundError",
    "OCRError",
    "ProcessingError",
    "ValidationError",
    "is_transient_error",
]
