"""Unit tests for cursor-based pagination.

Tests cover:
- Walking pages until the cursor is exhausted
- Stability while newer records are inserted
- Rejection of malformed cursors
"""

from collections.abc import Callable

import pytest
from pydantic import ValidationError as PydanticValidationError

from invoice_scanner.records.pagination import PageRequest, decode_cursor, encode_cursor
from invoice_scanner.records.schema import InvoiceRecord, InvoiceStatus, utc_now
from invoice_scanner.records.sqlite_store import SQLiteRecordStore
from invoice_scanner.shared.errors import ValidationError


def _walk(store: SQLiteRecordStore, owner_id: str, limit: int) -> list[list[str]]:
    pages: list[list[str]] = []
    cursor: str | None = None
    while True:
        page = store.list_by_owner(owner_id, PageRequest(limit=limit, cursor=cursor))
        pages.append([r.id for r in page.items])
        if page.next_cursor is None:
            return pages
        cursor = page.next_cursor


class TestCursor:
    """Test cursor encoding."""

    def test_cursor_is_opaque_and_reversible(self) -> None:
        cursor = encode_cursor("2024-01-15T10:00:00.000000Z#abc")

        assert "#" not in cursor
        assert decode_cursor(cursor) == "2024-01-15T10:00:00.000000Z#abc"

    @pytest.mark.parametrize("cursor", ["not-base64!!", "e30", "eyJrIjogMX0"])
    def test_malformed_cursor_rejected(self, cursor: str) -> None:
        """Should reject garbage, '{}' and '{"k": 1}'."""
        with pytest.raises(ValidationError, match="Invalid pagination cursor"):
            decode_cursor(cursor)

    def test_limit_bounds(self) -> None:
        with pytest.raises(PydanticValidationError):
            PageRequest(limit=0)
        with pytest.raises(PydanticValidationError):
            PageRequest(limit=101)
        assert PageRequest().limit == 20


class TestOwnerListing:
    """Test paging through an owner's records."""

    def test_limit_one_over_three_records(
        self, store: SQLiteRecordStore, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        """Should return one record per page and no cursor after the last."""
        first, second, third = make_record(), make_record(), make_record()

        pages = _walk(store, "user-1", limit=1)

        assert pages == [[third.id], [second.id], [first.id]]

    def test_pages_are_complete_and_disjoint(
        self, store: SQLiteRecordStore, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        records = [make_record() for _ in range(45)]
        make_record(owner_id="user-2")

        pages = _walk(store, "user-1", limit=20)

        assert [len(p) for p in pages] == [20, 20, 5]
        flattened = [record_id for page in pages for record_id in page]
        assert flattened == [r.id for r in reversed(records)]

    def test_exact_multiple_has_no_empty_trailing_page(
        self, store: SQLiteRecordStore, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        for _ in range(4):
            make_record()

        pages = _walk(store, "user-1", limit=2)

        assert [len(p) for p in pages] == [2, 2]

    def test_new_records_do_not_shift_later_pages(
        self, store: SQLiteRecordStore, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        """Should neither repeat nor skip records when newer ones arrive mid-walk."""
        records = [make_record() for _ in range(6)]

        first = store.list_by_owner("user-1", PageRequest(limit=3))
        newer = make_record(created_at=utc_now())
        second = store.list_by_owner(
            "user-1", PageRequest(limit=3, cursor=first.next_cursor)
        )

        seen = [r.id for r in first.items] + [r.id for r in second.items]
        assert seen == [r.id for r in reversed(records)]
        assert newer.id not in seen
        assert second.next_cursor is None

    def test_same_timestamp_ordered_by_id(
        self, store: SQLiteRecordStore, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        created = utc_now()
        make_record(record_id="a", created_at=created)
        make_record(record_id="b", created_at=created)

        pages = _walk(store, "user-1", limit=1)

        assert pages == [["b"], ["a"]]

    def test_status_filtered_paging(
        self, store: SQLiteRecordStore, make_record: Callable[..., InvoiceRecord]
    ) -> None:
        failed = [make_record(status=InvoiceStatus.FAILED) for _ in range(3)]
        make_record()

        page = store.list_by_owner("user-1", PageRequest(limit=2, status=InvoiceStatus.FAILED))
        rest = store.list_by_owner(
            "user-1",
            PageRequest(limit=2, status=InvoiceStatus.FAILED, cursor=page.next_cursor),
        )

        assert [r.id for r in page.items + rest.items] == [r.id for r in reversed(failed)]
        assert rest.next_cursor is None

    def test_malformed_cursor_in_listing(self, store: SQLiteRecordStore) -> None:
        with pytest.raises(ValidationError):
            store.list_by_owner("user-1", PageRequest(cursor="garbage"))
