"""Ollama-based structuring provider for self-hosted LLM inference.

Uses local Ollama server for structured data extraction from OCR text.
Supports data sovereignty requirements by running entirely on-premises.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import logging

import httpx

from invoice_scanner.extraction.base import (
    EXTRACTION_FIELDS,
    ExtractionProvider,
    parse_json_response,
)
from invoice_scanner.extraction.schema import InvoiceData
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import CapabilityUnavailable, ExtractionError

logger = logging.getLogger(__name__)


class OllamaExtractionProvider(ExtractionProvider):
    """Ollama-based structuring provider for self-hosted LLM inference.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.extraction_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except Exception:
            return False

    def extract_invoice_fields(self, ocr_text: str) -> InvoiceData:
        """Extract structured invoice data from OCR text using Ollama.

        Args:
            ocr_text: Raw text from OCR engine

        Returns:
            Structured invoice data

        Raises:
            ExtractionError: On unusable input/output or a 4xx/5xx response
            CapabilityUnavailable: If the server cannot be reached or times out
        """
        if not ocr_text or not ocr_text.strip():
            raise ExtractionError("Empty OCR text provided")

        try:
            response = self._client.post(
                f"{self._base_url}/api/generate",
                json={
                    "model": self._model,
                    "prompt": self._build_extraction_prompt(ocr_text),
                    "stream": False,
                    "format": "json",
                    "options": {
                        "temperature": 0,  # Deterministic output
                        "num_predict": 2048,
                    },
                },
            )
            response.raise_for_status()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise CapabilityUnavailable(f"Ollama unavailable: {e}") from e
        except httpx.HTTPStatusError as e:
            transient = e.response.status_code >= 500
            raise ExtractionError(f"Ollama returned {e.response.status_code}", transient) from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Ollama request failed: {e}", transient=True) from e

        response_text: str = response.json().get("response", "")
        invoice_dict = parse_json_response(response_text)
        return InvoiceData.model_validate(invoice_dict)

    def _build_extraction_prompt(self, ocr_text: str) -> str:
        """Build prompt for LLM extraction with a few-shot example.

        Args:
            ocr_text: Raw OCR text

        Returns:
            Formatted prompt string
        """
        example_input = (
            "INVOICE #INV-12345 Date: January 15, 2024 Bill To: ABC Corp "
            "From: XYZ Suppliers 2 x Widget $500.00 Subtotal: $1,000.00 Tax: $100.00 "
            "Total: $1,100.00"
        )
        example_output = (
            '{"invoice_number": "INV-12345", "invoice_date": "2024-01-15", '
            '"vendor_name": "XYZ Suppliers", "customer_name": "ABC Corp", '
            '"subtotal": 1000.00, "tax_amount": 100.00, "total_amount": 1100.00, '
            '"currency": "USD", "line_items": [{"description": "Widget", "quantity": 2, '
            '"unit_price": 500.00, "total_price": 1000.00, "tax_rate": null}]}'
        )

        return f"""You are an invoice data extraction assistant. \
Extract invoice information from OCR text and return ONLY valid JSON.

FIELDS (use null for missing fields):
{EXTRACTION_FIELDS}

EXAMPLE:
Input: "{example_input}"
Output: {example_output}

INSTRUCTIONS:
- "Seller:"/"From:" = vendor, "Client:"/"Bill To:" = customer
- Convert dates: MM/DD/YYYY -> YYYY-MM-DD
- Convert European decimals: 211,77 -> 211.77
- Return ONLY JSON, no explanation

INPUT:
{ocr_text}

OUTPUT:"""
