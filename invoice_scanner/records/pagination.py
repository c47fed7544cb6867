"""Cursor-based pagination for creation-time ordered queries.

A cursor is the URL-safe base64 encoding of the last returned record's sort
key (``"<created_at>#<id>"``). Resuming strictly after that key makes pages
reproducible even while newer records are being inserted ahead of them;
offsets are never used.
"""

import base64
import binascii
import json
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from invoice_scanner.records.schema import InvoiceStatus
from invoice_scanner.shared.errors import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

T = TypeVar("T")


def encode_cursor(sort_key: str) -> str:
    """Serialize a sort position into an opaque token."""
    payload = json.dumps({"k": sort_key}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> str:
    """Recover the sort position from a token produced by ``encode_cursor``.

    Raises:
        ValidationError: If the token is not a cursor this service issued
    """
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ValidationError("Invalid pagination cursor") from e

    sort_key = payload.get("k") if isinstance(payload, dict) else None
    if not isinstance(sort_key, str) or "#" not in sort_key:
        raise ValidationError("Invalid pagination cursor")
    return sort_key


class PageRequest(BaseModel):
    """Parameters of an owner-scoped listing."""

    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    cursor: str | None = None
    status: InvoiceStatus | None = None


class Page(BaseModel, Generic[T]):
    """One page of results; ``next_cursor`` is set only when more exist."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[T]
    next_cursor: str | None = None
    count: int
