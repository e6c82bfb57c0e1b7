"""
Data Store Interface
====================

The kernel talks to persistence only through these two abstractions:

- LedgerStore: long-lived handle injected once into the services
- LedgerSession: one tenant-scoped unit of work

Writes made through a session commit together when the
`async with store.transaction(tenant_id)` block exits cleanly and are
discarded when it raises (including cancellation).
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncContextManager, List, Optional, Tuple
from uuid import UUID

from ..models.activity import ActivityLogEntry
from ..models.ar import ARInvoice, ARPayment, InvoiceFilters
from ..models.coa import Account
from ..models.journal import JournalEntry, JournalFilters, JournalLine


class LedgerSession(ABC):
    """Tenant-scoped transactional session"""

    tenant_id: str

    # ==================== Chart of Accounts (read-only) ====================

    @abstractmethod
    async def fetch_account(self, account_id: UUID) -> Optional[Account]:
        ...

    @abstractmethod
    async def fetch_account_by_code(self, code: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def fetch_accounts(self, active_only: bool = True) -> List[Account]:
        """Accounts ordered by code"""

    # ==================== Journal entries ====================

    @abstractmethod
    async def journal_number_exists(
        self,
        journal_number: str,
        exclude_id: Optional[UUID] = None
    ) -> bool:
        ...

    @abstractmethod
    async def insert_journal(self, entry: JournalEntry) -> None:
        """
        Insert header and lines.

        Raises DuplicateNumberError / AlreadyReversedError when the
        number or reversed_from back-reference is already taken.
        """

    @abstractmethod
    async def update_journal(self, entry: JournalEntry) -> None:
        """Persist header fields (number, date, memo, status, timestamps)"""

    @abstractmethod
    async def replace_journal_lines(self, journal_id: UUID, lines: List[JournalLine]) -> None:
        """Delete the existing line set and insert the given one"""

    @abstractmethod
    async def fetch_journal(
        self,
        journal_id: UUID,
        for_update: bool = False
    ) -> Optional[JournalEntry]:
        """Header plus lines (ordered by sort_order, joined to account code/name)"""

    @abstractmethod
    async def delete_journal(self, journal_id: UUID) -> None:
        """Delete header, cascading to lines"""

    @abstractmethod
    async def find_reversal_of(self, journal_id: UUID) -> Optional[JournalEntry]:
        """Entry whose reversed_from points at journal_id, if any"""

    @abstractmethod
    async def query_journals(
        self,
        filters: JournalFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[JournalEntry], int]:
        """
        Filtered page ordered by journal_date desc, created_at desc.

        Returns (entries with lines, total matching count).
        """

    # ==================== AR invoices ====================

    @abstractmethod
    async def insert_invoice(self, invoice: ARInvoice) -> None:
        """Raises DuplicateNumberError when the invoice number is taken"""

    @abstractmethod
    async def fetch_invoice(
        self,
        invoice_id: UUID,
        for_update: bool = False
    ) -> Optional[ARInvoice]:
        """With for_update the invoice row stays locked until the transaction ends"""

    @abstractmethod
    async def update_invoice(self, invoice: ARInvoice) -> None:
        """
        Persist amount_paid, status and updated_at.

        Raises ExceedsBalanceError if amount_paid would exceed amount_total.
        """

    @abstractmethod
    async def query_invoices(
        self,
        filters: InvoiceFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[ARInvoice], int]:
        """Filtered page ordered by date_issued desc, created_at desc"""

    @abstractmethod
    async def fetch_open_invoices(self, customer_id: Optional[UUID] = None) -> List[ARInvoice]:
        """All open/partial invoices ordered by due_date"""

    # ==================== AR payments (append-only) ====================

    @abstractmethod
    async def insert_payment(self, payment: ARPayment) -> None:
        ...

    @abstractmethod
    async def fetch_payments(
        self,
        invoice_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
        since: Optional[date] = None
    ) -> List[ARPayment]:
        """Payments newest first (payment_date desc, created_at desc)"""

    @abstractmethod
    async def count_payments(self, invoice_id: UUID) -> int:
        ...

    # ==================== Activity log ====================

    @abstractmethod
    async def insert_activity(self, entry: ActivityLogEntry) -> None:
        ...


class LedgerStore(ABC):
    """Long-lived store handle"""

    @abstractmethod
    def transaction(self, tenant_id: str) -> AsyncContextManager[LedgerSession]:
        """Open an atomic unit of work scoped to tenant_id"""

    async def close(self) -> None:
        """Release resources held by the store"""
