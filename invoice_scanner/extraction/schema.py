"""Invoice data models for structured extraction.

Structuring capabilities are best-effort: a field that cannot be parsed is
dropped (left as None) instead of failing the whole document. Keys may be
supplied in snake_case or camelCase.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_AMOUNT_NOISE = re.compile(r"[^\d,.\-]")


def parse_amount(value: Any) -> Decimal | None:
    """Parse a monetary or numeric value into a Decimal.

    Accepts numbers and strings such as "$1,100.00", "EUR 850.00" or the
    European "211,77". Returns None for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if not isinstance(value, str):
        return None

    cleaned = _AMOUNT_NOISE.sub("", value)
    if not cleaned:
        return None
    if "," in cleaned and "." in cleaned:
        # Whichever separator comes last is the decimal point
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        head, _, tail = cleaned.rpartition(",")
        cleaned = f"{head.replace(',', '')}.{tail}" if len(tail) != 3 else cleaned.replace(",", "")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_date(value: Any) -> date | None:
    """Parse an ISO date or datetime string. Returns None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%d.%m.%Y", "%B %d, %Y", "%b %d, %Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


class LineItem(BaseModel):
    """Single invoice line."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    description: str | None = Field(None, description="Line description")
    quantity: Decimal | None = Field(None, description="Quantity")
    unit_price: Decimal | None = Field(None, description="Price per unit")
    total_price: Decimal | None = Field(None, description="Line total")
    tax_rate: Decimal | None = Field(None, description="Tax rate applied to the line")

    @field_validator("quantity", "unit_price", "total_price", "tax_rate", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> Decimal | None:
        return parse_amount(value)


class InvoiceData(BaseModel):
    """Structured invoice data produced by a structuring capability.

    Schema based on common invoice fields found in financial documents.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    invoice_number: str | None = Field(None, description="Unique invoice identifier")
    invoice_date: date | None = Field(None, description="Date invoice was issued")
    due_date: date | None = Field(None, description="Payment due date")

    # Vendor information
    vendor_name: str | None = Field(None, description="Vendor/supplier company name")
    vendor_address: str | None = Field(None, description="Vendor address")
    vendor_phone: str | None = Field(None, description="Vendor phone number")
    vendor_email: str | None = Field(None, description="Vendor email address")

    # Customer information
    customer_name: str | None = Field(None, description="Customer/buyer company name")
    customer_address: str | None = Field(None, description="Customer address")

    # Financial details
    subtotal: Decimal | None = Field(None, description="Subtotal before tax")
    tax_amount: Decimal | None = Field(None, description="Tax amount")
    total_amount: Decimal | None = Field(None, description="Total amount including tax")
    currency: str | None = Field(None, description="Currency code (ISO 4217)")

    line_items: list[LineItem] = Field(default_factory=list, description="Invoice lines")

    payment_terms: str | None = Field(None, description="Payment terms")
    notes: str | None = Field(None, description="Free-form notes")

    # Per-field confidence as reported by the structuring capability
    field_confidence: dict[str, float] = Field(default_factory=dict)

    @field_validator("invoice_date", "due_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> date | None:
        return parse_date(value)

    @field_validator("subtotal", "tax_amount", "total_amount", mode="before")
    @classmethod
    def _lenient_amount(cls, value: Any) -> Decimal | None:
        return parse_amount(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        code = value.strip().upper()
        return code if re.fullmatch(r"[A-Z]{3}", code) else None

    @field_validator("line_items", mode="before")
    @classmethod
    def _drop_malformed_lines(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, (dict, LineItem))]

    @field_validator("field_confidence", mode="before")
    @classmethod
    def _clamp_confidences(cls, value: Any) -> dict[str, float]:
        if not isinstance(value, dict):
            return {}
        scores: dict[str, float] = {}
        for name, score in value.items():
            if isinstance(score, (int, float)) and not isinstance(score, bool):
                scores[str(name)] = min(max(float(score), 0.0), 1.0)
        return scores

    @field_validator(
        "invoice_number",
        "vendor_name",
        "vendor_address",
        "vendor_phone",
        "vendor_email",
        "customer_name",
        "customer_address",
        "payment_terms",
        "notes",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
