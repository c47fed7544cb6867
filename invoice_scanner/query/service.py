"""Owner-scoped read views over the record store.

Listing and lookup delegate to the store's keyed access patterns. Search and
statistics are deliberately simple:

- Search is a case-insensitive substring scan over the owner's most recent
  COMPLETED records (bounded by ``search_window``). It is not an inverted
  index; older matches outside the window are not found.
- Statistics reduce bounded per-status queries client-side. They are
  eventually consistent and flag every count whose window was exhausted.
"""

import logging
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from invoice_scanner.records.base import RecordStore
from invoice_scanner.records.pagination import Page, PageRequest
from invoice_scanner.records.schema import InvoiceRecord, InvoiceStatus
from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import ValidationError

logger = logging.getLogger(__name__)


class StatusCount(BaseModel):
    """Count of records in one status within the stats window."""

    count: int
    truncated: bool = False


class InvoiceStats(BaseModel):
    """Aggregate view of an owner's invoices."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_invoices: int
    by_status: dict[str, StatusCount]
    totals_by_currency: dict[str, Decimal] = Field(default_factory=dict)
    last_processed_at: datetime | None = None


class SearchResult(BaseModel):
    """Matching COMPLETED records, newest first."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: list[InvoiceRecord]
    count: int
    search_term: str


def searchable_text(record: InvoiceRecord) -> str:
    """Lower-cased text searched for a record: vendor, number, customer, lines."""
    data = record.extracted_data
    if data is None:
        return ""
    parts = [data.vendor_name, data.invoice_number, data.customer_name]
    parts.extend(item.description for item in data.line_items)
    return " ".join(part for part in parts if part).lower()


class InvoiceQueryService:
    """List, get, stats and search for one owner's invoices."""

    def __init__(self, store: RecordStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    def list_invoices(self, owner_id: str, request: PageRequest) -> Page[InvoiceRecord]:
        page = self.store.list_by_owner(owner_id, request)
        logger.info(
            f"Listed {page.count} invoice(s) for owner {owner_id} "
            f"(status={request.status.value if request.status else 'any'}, "
            f"more={page.next_cursor is not None})"
        )
        return page

    def get_invoice(self, owner_id: str, record_id: str) -> InvoiceRecord:
        """Fetch one invoice; NotFoundError covers records owned by others."""
        return self.store.get(record_id, owner_id)

    def get_stats(self, owner_id: str) -> InvoiceStats:
        window = self.settings.stats_window
        by_status: dict[str, StatusCount] = {}
        completed: list[InvoiceRecord] = []

        for status in InvoiceStatus:
            page = self.store.list_by_owner(owner_id, PageRequest(limit=window, status=status))
            by_status[status.value.lower()] = StatusCount(
                count=page.count, truncated=page.next_cursor is not None
            )
            if status is InvoiceStatus.COMPLETED:
                completed = page.items

        totals: dict[str, Decimal] = {}
        for record in completed:
            data = record.extracted_data
            if data is None or data.total_amount is None:
                continue
            currency = data.currency or "UNKNOWN"
            totals[currency] = totals.get(currency, Decimal("0")) + data.total_amount

        completion_times = [r.processing_completed_at for r in completed if r.processing_completed_at]

        return InvoiceStats(
            total_invoices=sum(entry.count for entry in by_status.values()),
            by_status=by_status,
            totals_by_currency=totals,
            last_processed_at=max(completion_times) if completion_times else None,
        )

    def search(self, owner_id: str, query: str) -> SearchResult:
        """Substring search over the recent COMPLETED window.

        Raises:
            ValidationError: If the query is empty
        """
        term = (query or "").strip()
        if not term:
            raise ValidationError("Search term is required")

        page = self.store.list_by_owner(
            owner_id,
            PageRequest(limit=self.settings.search_window, status=InvoiceStatus.COMPLETED),
        )
        needle = term.lower()
        matches = [record for record in page.items if needle in searchable_text(record)]

        logger.info(
            f"Search '{term}' for owner {owner_id}: {len(matches)} of {page.count} scanned"
        )
        return SearchResult(items=matches, count=len(matches), search_term=term)
