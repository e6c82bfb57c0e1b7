"""
In-Memory Ledger Store
======================

Process-local LedgerStore used by the test-suite, demos and embedders that
do not need PostgreSQL.

Transactions are serialised by a single asyncio.Lock. Each transaction works
on shallow copies of the tables and deep-copies a row before changing it;
the working set replaces the committed state only when the block exits
cleanly, so any exception or cancellation rolls back.
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from ..constants import OPEN_INVOICE_STATUSES
from ..exceptions import (
    AlreadyReversedError,
    DuplicateNumberError,
    ExceedsBalanceError,
    NotFoundError,
)
from ..models.activity import ActivityLogEntry
from ..models.ar import ARInvoice, ARPayment, InvoiceFilters
from ..models.coa import Account
from ..models.journal import JournalEntry, JournalFilters, JournalLine
from .base import LedgerSession, LedgerStore

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class _Tables:
    accounts: Dict[UUID, Account] = field(default_factory=dict)
    journals: Dict[UUID, JournalEntry] = field(default_factory=dict)
    invoices: Dict[UUID, ARInvoice] = field(default_factory=dict)
    payments: Dict[UUID, ARPayment] = field(default_factory=dict)
    activity: List[ActivityLogEntry] = field(default_factory=list)

    def working_copy(self) -> "_Tables":
        return _Tables(
            accounts=dict(self.accounts),
            journals=dict(self.journals),
            invoices=dict(self.invoices),
            payments=dict(self.payments),
            activity=list(self.activity),
        )


def _matches_search(search: Optional[str], *values: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.lower()
    return any(value and needle in value.lower() for value in values)


def _in_range(value: date, start: Optional[date], end: Optional[date]) -> bool:
    if start and value < start:
        return False
    if end and value > end:
        return False
    return True


class _MemorySession(LedgerSession):

    def __init__(self, tables: _Tables, tenant_id: str):
        self._t = tables
        self.tenant_id = tenant_id

    def _mine(self, rows: Iterable):
        return [row for row in rows if row.tenant_id == self.tenant_id]

    def _own(self, table: Dict, key: UUID):
        """Private copy of a committed row, swapped into this working set before mutation"""
        row = copy.deepcopy(table[key])
        table[key] = row
        return row

    # ==================== Chart of Accounts ====================

    async def fetch_account(self, account_id: UUID) -> Optional[Account]:
        account = self._t.accounts.get(account_id)
        if account is None or account.tenant_id != self.tenant_id:
            return None
        return copy.deepcopy(account)

    async def fetch_account_by_code(self, code: str) -> Optional[Account]:
        for account in self._mine(self._t.accounts.values()):
            if account.code == code:
                return copy.deepcopy(account)
        return None

    async def fetch_accounts(self, active_only: bool = True) -> List[Account]:
        accounts = [
            a for a in self._mine(self._t.accounts.values())
            if a.is_active or not active_only
        ]
        return copy.deepcopy(sorted(accounts, key=lambda a: a.code))

    # ==================== Journal entries ====================

    async def journal_number_exists(
        self,
        journal_number: str,
        exclude_id: Optional[UUID] = None
    ) -> bool:
        return any(
            entry.journal_number == journal_number and entry.id != exclude_id
            for entry in self._mine(self._t.journals.values())
        )

    def _check_journal_unique(self, entry: JournalEntry) -> None:
        for other in self._t.journals.values():
            if other.id == entry.id:
                continue
            if other.tenant_id == entry.tenant_id and other.journal_number == entry.journal_number:
                raise DuplicateNumberError(
                    f"Journal number {entry.journal_number} already exists",
                    {"journal_number": entry.journal_number}
                )
            if entry.reversed_from and other.reversed_from == entry.reversed_from:
                raise AlreadyReversedError(details={"journal_id": entry.reversed_from})

    def _join_accounts(self, entry: JournalEntry) -> JournalEntry:
        for line in entry.lines:
            account = self._t.accounts.get(line.account_id)
            if account:
                line.account_code = account.code
                line.account_name = account.name
        entry.lines.sort(key=lambda line: line.sort_order)
        return entry

    async def insert_journal(self, entry: JournalEntry) -> None:
        self._check_journal_unique(entry)
        self._t.journals[entry.id] = copy.deepcopy(entry)

    async def update_journal(self, entry: JournalEntry) -> None:
        stored = self._t.journals.get(entry.id)
        if stored is None or stored.tenant_id != self.tenant_id:
            raise NotFoundError("Journal entry", entry.id)
        self._check_journal_unique(entry)
        stored = self._own(self._t.journals, entry.id)
        stored.journal_number = entry.journal_number
        stored.journal_date = entry.journal_date
        stored.memo = entry.memo
        stored.status = entry.status
        stored.posted_at = entry.posted_at
        stored.updated_at = entry.updated_at

    async def replace_journal_lines(self, journal_id: UUID, lines: List[JournalLine]) -> None:
        stored = self._t.journals.get(journal_id)
        if stored is None or stored.tenant_id != self.tenant_id:
            raise NotFoundError("Journal entry", journal_id)
        stored = self._own(self._t.journals, journal_id)
        stored.lines = copy.deepcopy(list(lines))

    async def fetch_journal(
        self,
        journal_id: UUID,
        for_update: bool = False
    ) -> Optional[JournalEntry]:
        entry = self._t.journals.get(journal_id)
        if entry is None or entry.tenant_id != self.tenant_id:
            return None
        return self._join_accounts(copy.deepcopy(entry))

    async def delete_journal(self, journal_id: UUID) -> None:
        entry = self._t.journals.get(journal_id)
        if entry is not None and entry.tenant_id == self.tenant_id:
            del self._t.journals[journal_id]

    async def find_reversal_of(self, journal_id: UUID) -> Optional[JournalEntry]:
        for entry in self._mine(self._t.journals.values()):
            if entry.reversed_from == journal_id:
                return copy.deepcopy(entry)
        return None

    async def query_journals(
        self,
        filters: JournalFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[JournalEntry], int]:
        rows = [
            entry for entry in self._mine(self._t.journals.values())
            if _matches_search(filters.search, entry.journal_number, entry.memo)
            and (filters.status is None or entry.status == filters.status)
            and _in_range(entry.journal_date, filters.date_from, filters.date_to)
        ]
        rows.sort(key=lambda e: (e.journal_date, e.created_at or _EPOCH), reverse=True)
        page = rows[offset:offset + limit]
        return [self._join_accounts(copy.deepcopy(e)) for e in page], len(rows)

    # ==================== AR invoices ====================

    async def insert_invoice(self, invoice: ARInvoice) -> None:
        for other in self._mine(self._t.invoices.values()):
            if other.invoice_number == invoice.invoice_number:
                raise DuplicateNumberError(
                    f"Invoice number {invoice.invoice_number} already exists",
                    {"invoice_number": invoice.invoice_number}
                )
        stored = copy.deepcopy(invoice)
        stored.payments = []
        self._t.invoices[invoice.id] = stored

    async def fetch_invoice(
        self,
        invoice_id: UUID,
        for_update: bool = False
    ) -> Optional[ARInvoice]:
        invoice = self._t.invoices.get(invoice_id)
        if invoice is None or invoice.tenant_id != self.tenant_id:
            return None
        return copy.deepcopy(invoice)

    async def update_invoice(self, invoice: ARInvoice) -> None:
        stored = self._t.invoices.get(invoice.id)
        if stored is None or stored.tenant_id != self.tenant_id:
            raise NotFoundError("Invoice", invoice.id)
        if invoice.amount_paid > stored.amount_total:
            raise ExceedsBalanceError(details={"invoice_id": invoice.id})
        stored = self._own(self._t.invoices, invoice.id)
        stored.amount_paid = invoice.amount_paid
        stored.status = invoice.status
        stored.updated_at = invoice.updated_at

    async def query_invoices(
        self,
        filters: InvoiceFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[ARInvoice], int]:
        rows = [
            inv for inv in self._mine(self._t.invoices.values())
            if _matches_search(filters.search, inv.invoice_number, inv.memo)
            and (filters.status is None or inv.status == filters.status)
            and (filters.customer_id is None or inv.customer_id == filters.customer_id)
            and _in_range(inv.date_issued, filters.date_from, filters.date_to)
        ]
        rows.sort(key=lambda i: (i.date_issued, i.created_at or _EPOCH), reverse=True)
        return copy.deepcopy(rows[offset:offset + limit]), len(rows)

    async def fetch_open_invoices(self, customer_id: Optional[UUID] = None) -> List[ARInvoice]:
        rows = [
            inv for inv in self._mine(self._t.invoices.values())
            if inv.status in OPEN_INVOICE_STATUSES
            and (customer_id is None or inv.customer_id == customer_id)
        ]
        rows.sort(key=lambda i: (i.due_date, i.invoice_number))
        return copy.deepcopy(rows)

    # ==================== AR payments ====================

    async def insert_payment(self, payment: ARPayment) -> None:
        self._t.payments[payment.id] = copy.deepcopy(payment)

    async def fetch_payments(
        self,
        invoice_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
        since: Optional[date] = None
    ) -> List[ARPayment]:
        rows = [
            p for p in self._mine(self._t.payments.values())
            if (invoice_id is None or p.invoice_id == invoice_id)
            and (customer_id is None or p.customer_id == customer_id)
            and (since is None or p.payment_date >= since)
        ]
        rows.sort(key=lambda p: (p.payment_date, p.created_at or _EPOCH), reverse=True)
        result = copy.deepcopy(rows)
        for payment in result:
            invoice = self._t.invoices.get(payment.invoice_id)
            payment.invoice_number = invoice.invoice_number if invoice else None
        return result

    async def count_payments(self, invoice_id: UUID) -> int:
        return sum(
            1 for p in self._mine(self._t.payments.values())
            if p.invoice_id == invoice_id
        )

    # ==================== Activity log ====================

    async def insert_activity(self, entry: ActivityLogEntry) -> None:
        self._t.activity.append(copy.deepcopy(entry))


class InMemoryLedgerStore(LedgerStore):
    """
    LedgerStore backed by Python dictionaries.

    Usage:
        store = InMemoryLedgerStore()
        store.load_accounts([Account(...), ...])
        facade = LedgerFacade(store)
    """

    def __init__(self, accounts: Optional[Iterable[Account]] = None):
        self._tables = _Tables()
        self._lock = asyncio.Lock()
        if accounts:
            self.load_accounts(accounts)

    def load_accounts(self, accounts: Iterable[Account]) -> None:
        """Seed chart-of-accounts reference data (maintained outside the kernel)"""
        for account in accounts:
            self._tables.accounts[account.id] = copy.deepcopy(account)

    def set_account_active(self, account_id: UUID, is_active: bool) -> None:
        self._tables.accounts[account_id].is_active = is_active

    @property
    def activity(self) -> List[ActivityLogEntry]:
        """Committed activity log entries, oldest first"""
        return list(self._tables.activity)

    @asynccontextmanager
    async def transaction(self, tenant_id: str) -> AsyncIterator[LedgerSession]:
        async with self._lock:
            working = self._tables.working_copy()
            yield _MemorySession(working, str(tenant_id))
            self._tables = working
