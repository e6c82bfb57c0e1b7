"""
Accounts Receivable Service
===========================

Manages accounts receivable (money owed to us by customers):
- Invoice lifecycle (open -> partial -> paid, or void)
- Payment applications, optionally posted to the general ledger
- Aging reports and open-balance summaries
- Customer receivable detail

apply_payment runs in two phases:
1. payment insert + invoice balance update, one transaction with the
   invoice row locked
2. (optional) linked cash-receipt journal, a separate transaction started
   after the invoice lock is released

A phase 2 failure never unwinds phase 1. It is reported on PaymentResult.
Activity for both phases is recorded after the call, outside the timeout.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID, uuid4

from ..config import settings
from ..constants import ActivityAction, EntityType, InvoiceStatus, ReferenceType
from ..context import TenantContext
from ..exceptions import (
    AccountsUnavailableError,
    AlreadyPaidError,
    AlreadyVoidError,
    DependencyError,
    ExceedsBalanceError,
    HasPaymentsError,
    InvoiceVoidError,
    LedgerError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from ..models.ar import (
    ARInvoice,
    ARPayment,
    CreateInvoiceRequest,
    ApplyPaymentRequest,
    PaymentResult,
    InvoiceFilters,
    InvoicePage,
    CustomerARDetail,
)
from ..models.journal import CreateJournalRequest, JournalLineInput
from ..money import ZERO, format_money, money_sum
from ..reports.ar_aging import ARAgingGenerator, ARAgingReport, summarize_open_invoices
from ..store.base import LedgerStore
from ..validators import DoubleEntryValidator, page_window
from .activity_log import ActivityLogger, collect_activity, flush_activity
from .coa_service import CoAService
from .journal_service import JournalService

logger = logging.getLogger(__name__)


class ARService:
    """
    Accounts Receivable Service.

    Manages:
    - Recording invoices
    - Applying customer payments
    - Voiding untouched invoices
    - Aging reports and summaries
    """

    def __init__(
        self,
        store: LedgerStore,
        coa_service: CoAService,
        journal_service: JournalService,
        activity: Optional[ActivityLogger] = None,
        validator: Optional[DoubleEntryValidator] = None
    ):
        self.store = store
        self.coa = coa_service
        self.journal_service = journal_service
        self.activity = activity or ActivityLogger()
        self.validator = validator or DoubleEntryValidator()
        self.aging = ARAgingGenerator()

    # ==================== Invoices ====================

    async def create_invoice(
        self,
        ctx: TenantContext,
        request: CreateInvoiceRequest
    ) -> ARInvoice:
        """
        Create a new AR invoice in status open with nothing paid.

        Raises:
            ValidationError, DuplicateNumberError
        """
        errors = request.validate()
        if errors:
            raise ValidationError(errors=errors)

        now = datetime.now(timezone.utc)
        invoice = ARInvoice(
            id=uuid4(),
            tenant_id=ctx.tenant_id,
            invoice_number=request.invoice_number,
            customer_id=request.customer_id,
            date_issued=request.date_issued,
            due_date=request.due_date,
            amount_total=request.amount_total,
            amount_paid=ZERO,
            status=InvoiceStatus.OPEN,
            memo=request.memo,
            created_by=ctx.actor,
            created_at=now,
            updated_at=now,
        )

        async with self.store.transaction(ctx.tenant_id) as session:
            await session.insert_invoice(invoice)

        logger.info(
            f"Invoice created: {invoice.invoice_number} id={invoice.id} "
            f"tenant={ctx.tenant_id} amount={format_money(invoice.amount_total)}"
        )
        await self.activity.log(
            ctx, EntityType.AR_INVOICE, invoice.id, ActivityAction.CREATE,
            after=invoice.to_dict()
        )
        return invoice

    async def get_invoice(
        self,
        ctx: TenantContext,
        invoice_id: UUID
    ) -> ARInvoice:
        """Invoice with its payments, newest first."""
        async with self.store.transaction(ctx.tenant_id) as session:
            invoice = await session.fetch_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)
            invoice.payments = await session.fetch_payments(invoice_id=invoice.id)
        return invoice

    async def void_invoice(
        self,
        ctx: TenantContext,
        invoice_id: UUID
    ) -> ARInvoice:
        """
        Void an invoice that has no payments.

        Raises:
            NotFoundError, HasPaymentsError, AlreadyVoidError
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            invoice = await session.fetch_invoice(invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)

            payment_count = await session.count_payments(invoice.id)
            if payment_count > 0:
                raise HasPaymentsError(
                    f"Cannot void invoice {invoice.invoice_number} with {payment_count} payment(s)",
                    {"invoice_id": invoice.id, "payment_count": payment_count}
                )
            if invoice.status == InvoiceStatus.VOID:
                raise AlreadyVoidError(
                    f"Invoice {invoice.invoice_number} is already void",
                    {"invoice_id": invoice.id}
                )

            before_status = invoice.status
            invoice.status = InvoiceStatus.VOID
            invoice.updated_at = datetime.now(timezone.utc)
            await session.update_invoice(invoice)

        logger.info(f"Invoice voided: {invoice.invoice_number} id={invoice.id} tenant={ctx.tenant_id}")
        await self.activity.log(
            ctx, EntityType.AR_INVOICE, invoice.id, ActivityAction.VOID,
            before={"status": before_status.value},
            after={"status": invoice.status.value}
        )
        return invoice

    # ==================== Payments ====================

    async def apply_payment(
        self,
        ctx: TenantContext,
        request: ApplyPaymentRequest,
        timeout: Optional[float] = None
    ) -> PaymentResult:
        """
        Apply a customer payment to an invoice.

        Args:
            ctx: Tenant context
            request: ApplyPaymentRequest
            timeout: Overall budget in seconds. Expiry during phase 1 rolls
                the payment back and raises OperationTimeoutError; expiry
                during phase 2 is reported as a ledger_error.

        Returns:
            PaymentResult (payment_applied is always True on return)

        Raises:
            NotFoundError, InvoiceVoidError, AlreadyPaidError,
            ValidationError, ExceedsBalanceError, OperationTimeoutError
        """
        with collect_activity() as pending:
            result = await self._apply_payment(ctx, request, timeout)
        await flush_activity(pending)
        return result

    async def _apply_payment(
        self,
        ctx: TenantContext,
        request: ApplyPaymentRequest,
        timeout: Optional[float]
    ) -> PaymentResult:
        """Both phases; activity is buffered by the caller and recorded afterwards."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        try:
            payment, invoice, before = await asyncio.wait_for(
                self._record_payment(ctx, request), timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Payment on invoice {request.invoice_id} timed out, rolled back")
            raise OperationTimeoutError(
                f"Payment application timed out after {timeout}s",
                {"invoice_id": request.invoice_id}
            ) from e

        logger.info(
            f"Payment applied: {format_money(payment.amount)} to {invoice.invoice_number} "
            f"status={invoice.status.value} tenant={ctx.tenant_id}"
        )
        await self.activity.log(
            ctx, EntityType.AR_PAYMENT, payment.id, ActivityAction.CREATE,
            after=payment.to_dict()
        )
        await self.activity.log(
            ctx, EntityType.AR_INVOICE, invoice.id, ActivityAction.UPDATE,
            before=before, after=invoice.to_dict()
        )

        result = PaymentResult(
            payment=payment,
            invoice=invoice,
            payment_applied=True,
            ledger_requested=request.post_journal_entry,
        )
        if not request.post_journal_entry:
            return result

        remaining = None
        if deadline is not None:
            remaining = max(deadline - loop.time(), 0)

        try:
            entry = await asyncio.wait_for(
                self._post_payment_journal(ctx, payment, invoice), remaining
            )
        except asyncio.TimeoutError:
            result.ledger_error = OperationTimeoutError(
                "Ledger posting timed out",
                {"payment_id": payment.id}
            )
        except LedgerError as e:
            result.ledger_error = e
        except Exception as e:
            logger.exception(f"Ledger posting for payment {payment.id} raised")
            result.ledger_error = DependencyError(
                f"Ledger posting failed: {e}",
                {"payment_id": payment.id}
            )
        else:
            result.ledger_posted = True
            result.journal_id = entry.id
            result.journal_number = entry.journal_number
            return result

        logger.warning(
            f"Payment {payment.id} recorded but ledger posting failed: "
            f"{result.ledger_error.code} {result.ledger_error.message}"
        )
        return result

    async def _record_payment(
        self,
        ctx: TenantContext,
        request: ApplyPaymentRequest
    ) -> Tuple[ARPayment, ARInvoice, dict]:
        """Phase 1: insert payment and update invoice under the invoice row lock."""
        async with self.store.transaction(ctx.tenant_id) as session:
            invoice = await session.fetch_invoice(request.invoice_id, for_update=True)
            if invoice is None:
                raise NotFoundError("Invoice", request.invoice_id)
            if invoice.status == InvoiceStatus.VOID:
                raise InvoiceVoidError(
                    f"Cannot apply payment to voided invoice {invoice.invoice_number}",
                    {"invoice_id": invoice.id}
                )
            if invoice.status == InvoiceStatus.PAID:
                raise AlreadyPaidError(
                    f"Invoice {invoice.invoice_number} is already paid",
                    {"invoice_id": invoice.id}
                )

            errors = request.validate()
            if errors:
                raise ValidationError(errors=errors)

            if request.amount > invoice.balance_due:
                raise ExceedsBalanceError(
                    f"Payment amount {format_money(request.amount)} exceeds balance due "
                    f"{format_money(invoice.balance_due)}",
                    {
                        "invoice_id": invoice.id,
                        "amount": format_money(request.amount),
                        "balance_due": format_money(invoice.balance_due),
                    }
                )

            before = invoice.to_dict()
            now = datetime.now(timezone.utc)
            payment = ARPayment(
                id=uuid4(),
                tenant_id=ctx.tenant_id,
                invoice_id=invoice.id,
                customer_id=invoice.customer_id,
                payment_date=request.payment_date,
                amount=request.amount,
                method=request.method,
                reference=request.reference,
                notes=request.notes,
                created_by=ctx.actor,
                created_at=now,
                invoice_number=invoice.invoice_number,
            )
            await session.insert_payment(payment)

            invoice.amount_paid += payment.amount
            invoice.status = self.validator.invoice_status_for(
                invoice.amount_total, invoice.amount_paid, invoice.status
            )
            invoice.updated_at = now
            await session.update_invoice(invoice)

        return payment, invoice, before

    async def _post_payment_journal(
        self,
        ctx: TenantContext,
        payment: ARPayment,
        invoice: ARInvoice
    ):
        """Phase 2: debit cash, credit AR, referencing the payment."""
        cash_code = settings.ledger.CASH_ACCOUNT
        ar_code = settings.ledger.AR_ACCOUNT
        cash_account = await self.coa.get_account_by_code(ctx, cash_code)
        ar_account = await self.coa.get_account_by_code(ctx, ar_code)

        missing = [
            code for code, account in ((cash_code, cash_account), (ar_code, ar_account))
            if account is None or not account.is_active
        ]
        if missing:
            raise AccountsUnavailableError(
                f"Ledger accounts missing or inactive: {', '.join(missing)}",
                {"account_codes": missing}
            )

        request = CreateJournalRequest(
            journal_number=f"{settings.ledger.AR_PAYMENT_PREFIX}-{str(payment.id)[:8]}",
            journal_date=payment.payment_date,
            memo=f"Payment received - Invoice {invoice.invoice_number}",
            lines=[
                JournalLineInput(
                    account_id=cash_account.id,
                    debit=payment.amount,
                    description=f"Payment received - {payment.method}",
                    reference_type=ReferenceType.AR_PAYMENT.value,
                    reference_id=payment.id,
                    sort_order=0,
                ),
                JournalLineInput(
                    account_id=ar_account.id,
                    credit=payment.amount,
                    description=f"Payment applied to Invoice {invoice.invoice_number}",
                    reference_type=ReferenceType.AR_INVOICE.value,
                    reference_id=invoice.id,
                    sort_order=1,
                ),
            ],
        )
        return await self.journal_service.create_posted_journal(ctx, request)

    # ==================== Queries ====================

    async def list_invoices(
        self,
        ctx: TenantContext,
        filters: Optional[InvoiceFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
        as_of_date: Optional[date] = None
    ) -> InvoicePage:
        """
        List invoices with filtering.

        The summary covers every open/partial invoice of the tenant, not
        just the returned page.
        """
        page, limit, offset = page_window(page, limit)
        async with self.store.transaction(ctx.tenant_id) as session:
            invoices, total = await session.query_invoices(filters or InvoiceFilters(), limit, offset)
            open_invoices = await session.fetch_open_invoices()

        return InvoicePage(
            invoices=invoices,
            total=total,
            page=page,
            limit=limit,
            summary=summarize_open_invoices(open_invoices, as_of_date),
        )

    async def get_aging_report(
        self,
        ctx: TenantContext,
        as_of_date: Optional[date] = None,
        customer_id: Optional[UUID] = None
    ) -> ARAgingReport:
        """
        Generate AR Aging Report.

        Args:
            ctx: Tenant context
            as_of_date: Date for aging calculation (default: today)
            customer_id: Filter by specific customer

        Returns:
            ARAgingReport with aging buckets
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            invoices = await session.fetch_open_invoices(customer_id)
        return self.aging.generate(ctx.tenant_id, invoices, as_of_date)

    async def get_customer_detail(
        self,
        ctx: TenantContext,
        customer_id: UUID,
        as_of_date: Optional[date] = None
    ) -> CustomerARDetail:
        """Open invoices by due date, recent payments and open balance for one customer."""
        if as_of_date is None:
            as_of_date = date.today()
        since = as_of_date - timedelta(days=settings.ledger.RECENT_PAYMENT_DAYS)

        async with self.store.transaction(ctx.tenant_id) as session:
            open_invoices = await session.fetch_open_invoices(customer_id)
            payments = await session.fetch_payments(customer_id=customer_id, since=since)

        return CustomerARDetail(
            customer_id=customer_id,
            open_invoices=open_invoices,
            recent_payments=payments,
            total_open_balance=money_sum(inv.balance_due for inv in open_invoices),
        )

    async def get_total_outstanding(
        self,
        ctx: TenantContext,
        customer_id: Optional[UUID] = None
    ) -> Decimal:
        """Total open receivable balance, optionally for one customer."""
        async with self.store.transaction(ctx.tenant_id) as session:
            invoices = await session.fetch_open_invoices(customer_id)
        return money_sum(inv.balance_due for inv in invoices)
