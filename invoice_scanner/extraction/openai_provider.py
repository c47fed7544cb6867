"""OpenAI-based structuring provider for invoice field extraction.

Uses OpenAI API for structured data extraction from OCR text.
Based on OpenAI function calling / structured outputs pattern.

Transport failures are classified so the pipeline's retry policy can decide:
connection problems, timeouts, rate limits and 5xx are retryable;
authentication and bad requests are not.
"""

import json
import logging
import os
from typing import Any

import openai
from openai import OpenAI

from invoice_scanner.extraction.base import EXTRACTION_FIELDS, ExtractionProvider
from invoice_scanner.extraction.schema import InvoiceData
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import CapabilityUnavailable, ExtractionError

logger = logging.getLogger(__name__)

_NULLABLE_STRING = {"type": ["string", "null"]}
_NULLABLE_NUMBER = {"type": ["number", "null"]}


class OpenAIExtractionProvider(ExtractionProvider):
    """OpenAI-based structuring provider.

    Uses OpenAI API with function calling for structured outputs.
    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI extraction provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def _get_client(self) -> OpenAI:
        api_key = os.getenv("OPENAI_API_KEY")
        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(api_key=api_key, max_retries=0)
        return self._client

    def extract_invoice_fields(self, ocr_text: str) -> InvoiceData:
        """Extract structured invoice data from OCR text using OpenAI.

        Args:
            ocr_text: Raw text from OCR engine

        Returns:
            Structured invoice data

        Raises:
            ExtractionError: On unusable input/output or a rejected request
            CapabilityUnavailable: On connection failures, timeouts or throttling
        """
        if not self.is_available():
            raise ExtractionError("OPENAI_API_KEY environment variable not set")

        if not ocr_text or not ocr_text.strip():
            raise ExtractionError("Empty OCR text provided")

        try:
            response = self._get_client().chat.completions.create(  # type: ignore[call-overload]
                model=self.settings.openai_model,
                messages=[
                    {
                        "role": "system",
                        "content": "You are an invoice data extraction assistant.",
                    },
                    {"role": "user", "content": self._build_extraction_prompt(ocr_text)},
                ],
                functions=[self._get_invoice_schema()],
                function_call={"name": "extract_invoice_data"},
                temperature=0,  # Deterministic output
            )
        except (openai.APIConnectionError, openai.RateLimitError) as e:
            raise CapabilityUnavailable(f"OpenAI unavailable: {e}") from e
        except openai.InternalServerError as e:
            raise ExtractionError(f"OpenAI server error: {e}", transient=True) from e
        except openai.APIStatusError as e:
            raise ExtractionError(f"OpenAI rejected the request: {e}") from e

        message = response.choices[0].message
        if message.function_call is None:
            raise ExtractionError("No function call in API response", transient=True)

        try:
            invoice_dict = json.loads(message.function_call.arguments)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Malformed function arguments: {e}", transient=True) from e

        logger.debug(f"OpenAI returned fields: {sorted(invoice_dict)}")
        return InvoiceData.model_validate(invoice_dict)

    def _build_extraction_prompt(self, ocr_text: str) -> str:
        """Build prompt for LLM extraction.

        Args:
            ocr_text: Raw OCR text

        Returns:
            Formatted prompt string
        """
        return f"""Extract invoice information from OCR text and return structured data.

Fields: {EXTRACTION_FIELDS}

Instructions:
- "Seller:"/"From:"/"Vendor:" = vendor, "Client:"/"Bill To:" = customer
- Parse dates to YYYY-MM-DD ("02/23/2021" -> "2021-02-23")
- European decimals: "211,77" -> 211.77 (comma is decimal separator)
- "Net worth" = subtotal, "Gross worth"/"Total" = total_amount
- Report currency only when a symbol or code is visible ("$" -> "USD", "EUR" -> "EUR")
- Return null for any field not clearly present; never guess

OCR Text:
{ocr_text}"""

    def _get_invoice_schema(self) -> dict[str, Any]:
        """Get OpenAI function calling schema for InvoiceData.

        Returns:
            Function definition dict for OpenAI API
        """
        return {
            "name": "extract_invoice_data",
            "description": "Extract structured invoice data from OCR text",
            "parameters": {
                "type": "object",
                "properties": {
                    "invoice_number": _NULLABLE_STRING,
                    "invoice_date": {"type": ["string", "null"], "format": "date"},
                    "due_date": {"type": ["string", "null"], "format": "date"},
                    "vendor_name": _NULLABLE_STRING,
                    "vendor_address": _NULLABLE_STRING,
                    "vendor_phone": _NULLABLE_STRING,
                    "vendor_email": _NULLABLE_STRING,
                    "customer_name": _NULLABLE_STRING,
                    "customer_address": _NULLABLE_STRING,
                    "subtotal": _NULLABLE_NUMBER,
                    "tax_amount": _NULLABLE_NUMBER,
                    "total_amount": _NULLABLE_NUMBER,
                    "currency": _NULLABLE_STRING,
                    "line_items": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "description": _NULLABLE_STRING,
                                "quantity": _NULLABLE_NUMBER,
                                "unit_price": _NULLABLE_NUMBER,
                                "total_price": _NULLABLE_NUMBER,
                                "tax_rate": _NULLABLE_NUMBER,
                            },
                        },
                    },
                    "payment_terms": _NULLABLE_STRING,
                    "notes": _NULLABLE_STRING,
                    "field_confidence": {
                        "type": "object",
                        "additionalProperties": {"type": "number", "minimum": 0, "maximum": 1},
                    },
                },
            },
        }
