"""
Ledger Facade
=============

Provides a simplified, unified interface to the ledger kernel for use by
calling code (UI handlers, report jobs).

This is the primary interface that external callers should use. All
services share one injected store; every method takes the tenant context
first, accepts an optional timeout and returns plain dictionaries.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from uuid import UUID

from ..config import settings
from ..context import TenantContext
from ..exceptions import OperationTimeoutError
from ..models.ar import ApplyPaymentRequest, CreateInvoiceRequest, InvoiceFilters
from ..models.journal import CreateJournalRequest, JournalFilters, UpdateJournalRequest
from ..money import format_money
from ..services import (
    ActivityLogger,
    ActivitySink,
    ARService,
    CoAService,
    JournalService,
    ReversalService,
)
from ..services.activity_log import collect_activity, flush_activity
from ..store.base import LedgerStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerFacade:
    """
    Unified facade for the ledger kernel.

    Provides simplified methods for:
    - Chart of accounts lookup
    - Journal entry lifecycle and reversal
    - AR invoices, payments and aging
    """

    def __init__(
        self,
        store: LedgerStore,
        activity_sink: Optional[ActivitySink] = None,
        default_timeout: Optional[float] = None,
        account_cache_ttl: Optional[float] = None
    ):
        self.store = store
        self.default_timeout = (
            default_timeout if default_timeout is not None
            else settings.ledger.OPERATION_TIMEOUT
        )

        activity = ActivityLogger(activity_sink)
        self.coa = CoAService(store, ttl=account_cache_ttl)
        self.journal = JournalService(store, self.coa, activity)
        self.reversal = ReversalService(store, activity)
        self.ar = ARService(store, self.coa, self.journal, activity)

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.default_timeout

    async def _run(self, operation: Awaitable[T], timeout: Optional[float], name: str) -> T:
        """
        Await an operation under a timeout.

        Expiry cancels the operation, which rolls back its open transaction.
        Activity is recorded after the operation returns, outside the timeout.
        """
        timeout = self._timeout(timeout)
        with collect_activity() as pending:
            try:
                result = await asyncio.wait_for(operation, timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"{name} timed out after {timeout}s")
                raise OperationTimeoutError(
                    f"{name} timed out after {timeout}s",
                    {"operation": name, "timeout": timeout}
                ) from e
        await flush_activity(pending)
        return result

    # ==================== Chart of Accounts ====================

    async def get_chart_of_accounts(
        self,
        ctx: TenantContext,
        active_only: bool = True,
        timeout: Optional[float] = None
    ) -> List[Dict]:
        """Get accounts for a tenant ordered by code."""
        accounts = await self._run(
            self.coa.list_accounts(ctx, active_only=active_only), timeout, "get_chart_of_accounts"
        )
        return [account.to_dict() for account in accounts]

    # ==================== Journal entries ====================

    async def create_journal(
        self,
        ctx: TenantContext,
        request: CreateJournalRequest,
        timeout: Optional[float] = None
    ) -> Dict:
        entry = await self._run(self.journal.create_journal(ctx, request), timeout, "create_journal")
        return entry.to_dict()

    async def update_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        request: UpdateJournalRequest,
        timeout: Optional[float] = None
    ) -> Dict:
        entry = await self._run(
            self.journal.update_journal(ctx, journal_id, request), timeout, "update_journal"
        )
        return entry.to_dict()

    async def post_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        timeout: Optional[float] = None
    ) -> Dict:
        entry = await self._run(self.journal.post_journal(ctx, journal_id), timeout, "post_journal")
        return entry.to_dict()

    async def delete_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        timeout: Optional[float] = None
    ) -> Dict:
        await self._run(self.journal.delete_journal(ctx, journal_id), timeout, "delete_journal")
        return {"success": True, "journal_id": str(journal_id)}

    async def get_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        timeout: Optional[float] = None
    ) -> Dict:
        entry = await self._run(self.journal.get_journal(ctx, journal_id), timeout, "get_journal")
        return entry.to_dict()

    async def list_journals(
        self,
        ctx: TenantContext,
        filters: Optional[JournalFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> Dict:
        result = await self._run(
            self.journal.list_journals(ctx, filters, page, limit), timeout, "list_journals"
        )
        return result.to_dict()

    async def reverse_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        reversal_date: date,
        memo: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> Dict:
        entry = await self._run(
            self.reversal.reverse_journal(ctx, journal_id, reversal_date, memo),
            timeout, "reverse_journal"
        )
        return entry.to_dict()

    # ==================== AR ====================

    async def create_invoice(
        self,
        ctx: TenantContext,
        request: CreateInvoiceRequest,
        timeout: Optional[float] = None
    ) -> Dict:
        invoice = await self._run(self.ar.create_invoice(ctx, request), timeout, "create_invoice")
        return invoice.to_dict()

    async def get_invoice(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        timeout: Optional[float] = None
    ) -> Dict:
        invoice = await self._run(self.ar.get_invoice(ctx, invoice_id), timeout, "get_invoice")
        return invoice.to_dict(include_payments=True)

    async def apply_payment(
        self,
        ctx: TenantContext,
        request: ApplyPaymentRequest,
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Apply a payment.

        The timeout is handed to ARService so that expiry after the payment
        has committed is reported as a ledger warning instead of an error.
        """
        result = await self.ar.apply_payment(ctx, request, timeout=self._timeout(timeout))
        return result.to_dict()

    async def void_invoice(
        self,
        ctx: TenantContext,
        invoice_id: UUID,
        timeout: Optional[float] = None
    ) -> Dict:
        invoice = await self._run(self.ar.void_invoice(ctx, invoice_id), timeout, "void_invoice")
        return invoice.to_dict()

    async def list_invoices(
        self,
        ctx: TenantContext,
        filters: Optional[InvoiceFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
        as_of_date: Optional[date] = None,
        timeout: Optional[float] = None
    ) -> Dict:
        result = await self._run(
            self.ar.list_invoices(ctx, filters, page, limit, as_of_date), timeout, "list_invoices"
        )
        return result.to_dict()

    async def get_ar_aging(
        self,
        ctx: TenantContext,
        as_of_date: Optional[date] = None,
        customer_id: Optional[UUID] = None,
        timeout: Optional[float] = None
    ) -> Dict:
        report = await self._run(
            self.ar.get_aging_report(ctx, as_of_date, customer_id), timeout, "get_ar_aging"
        )
        return report.to_dict()

    async def get_customer_detail(
        self,
        ctx: TenantContext,
        customer_id: UUID,
        as_of_date: Optional[date] = None,
        timeout: Optional[float] = None
    ) -> Dict:
        detail = await self._run(
            self.ar.get_customer_detail(ctx, customer_id, as_of_date), timeout, "get_customer_detail"
        )
        return detail.to_dict()

    async def get_total_outstanding(
        self,
        ctx: TenantContext,
        customer_id: Optional[UUID] = None,
        timeout: Optional[float] = None
    ) -> str:
        total = await self._run(
            self.ar.get_total_outstanding(ctx, customer_id), timeout, "get_total_outstanding"
        )
        return format_money(total)
