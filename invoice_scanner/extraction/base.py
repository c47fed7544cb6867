"""Abstract base class for structuring (extraction) providers.

Enables switching between different extraction providers (OpenAI, Ollama)
while maintaining consistent interface and type safety.

Providers do not retry on their own: they classify failures into
``ExtractionError`` (optionally transient) or ``CapabilityUnavailable`` and
leave retries to the pipeline's retry policy.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any

from invoice_scanner.extraction.schema import InvoiceData
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import ExtractionError

EXTRACTION_FIELDS = (
    "invoice_number, invoice_date (YYYY-MM-DD), due_date (YYYY-MM-DD), "
    "vendor_name, vendor_address, vendor_phone, vendor_email, "
    "customer_name, customer_address, subtotal, tax_amount, total_amount, "
    "currency (ISO 4217), line_items (array of {description, quantity, unit_price, "
    "total_price, tax_rate}), payment_terms, notes, "
    "field_confidence (object mapping field name to a 0-1 score)"
)


class ExtractionProvider(ABC):
    """Abstract base class for invoice structuring providers.

    Example implementations:
    - OpenAIExtractionProvider: Uses OpenAI API (cloud-based)
    - OllamaExtractionProvider: Uses a self-hosted Ollama server
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def extract_invoice_fields(self, ocr_text: str) -> InvoiceData:
        """Extract structured invoice data from OCR text.

        Missing fields are returned as None; that is not an error.

        Args:
            ocr_text: Plain-text corpus from the OCR stage

        Returns:
            Structured invoice data

        Raises:
            ExtractionError: If the capability failed or returned unusable output
            CapabilityUnavailable: If the capability could not be reached
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier for logging/metrics."""


def parse_json_response(response_text: str) -> dict[str, Any]:
    """Extract and parse a JSON object from an LLM response.

    Handles markdown code fences and leading/trailing prose.

    Raises:
        ExtractionError: If no JSON object can be recovered (transient)
    """
    candidates = []
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", response_text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    braced = re.search(r"\{[\s\S]*\}", response_text)
    if braced:
        candidates.append(braced.group(0))
    candidates.append(response_text.strip())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ExtractionError("Structuring response did not contain a JSON object", transient=True)
