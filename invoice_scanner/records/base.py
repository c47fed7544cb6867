"""Abstract base class for invoice record stores.

Defines the interface every storage backend implements, enabling dependency
injection of the store into the pipeline, upload and query services.

Key design:
- Primary access pattern "all invoices of an owner": records are addressed
  by (owner, record id) and listed newest-first by creation time.
- Operational access pattern "all records in state X": a secondary key of
  (status, creation time) that moves with every status change.
"""

from abc import ABC, abstractmethod

from invoice_scanner.records.pagination import Page, PageRequest
from invoice_scanner.records.schema import InvoiceRecord, InvoiceStatus, StatusPatch


class RecordStore(ABC):
    """Canonical owner of invoice metadata and status."""

    @abstractmethod
    def create(self, record: InvoiceRecord) -> None:
        """Insert a new record atomically.

        Raises:
            AlreadyExistsError: If the record id is already taken
        """

    @abstractmethod
    def get(self, record_id: str, owner_id: str) -> InvoiceRecord:
        """Fetch a record owned by ``owner_id``.

        Raises:
            NotFoundError: If absent or owned by someone else
        """

    @abstractmethod
    def update(
        self,
        record_id: str,
        owner_id: str,
        patch: StatusPatch,
        expected_status: InvoiceStatus | None = None,
    ) -> InvoiceRecord:
        """Apply a status patch as a single conditional write.

        The write succeeds only when the current status is one the patch may
        move out of (and equals ``expected_status`` when given). The status
        index moves in the same write.

        Returns:
            The updated record

        Raises:
            NotFoundError: If no such record exists for the owner
            ConflictError: If the current status does not permit the patch
        """

    @abstractmethod
    def list_by_owner(self, owner_id: str, request: PageRequest) -> Page[InvoiceRecord]:
        """Newest-first page of an owner's records, optionally narrowed by status.

        Raises:
            ValidationError: If the cursor is malformed
        """

    @abstractmethod
    def list_by_status(
        self,
        status: InvoiceStatus,
        limit: int = 50,
        cursor: str | None = None,
    ) -> Page[InvoiceRecord]:
        """Newest-first page of records in ``status`` across all owners."""

    def health_check(self) -> bool:
        """Check that the backing store answers queries."""
        return True
