"""
Accounts Receivable Tests
=========================

Invoices, payment application (with optional ledger posting), voiding
and listing.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.constants import InvoiceStatus, JournalStatus, ReferenceType
from ledger_kernel.context import TenantContext
from ledger_kernel.exceptions import (
    AccountsUnavailableError,
    AlreadyPaidError,
    AlreadyVoidError,
    DependencyError,
    DuplicateNumberError,
    ExceedsBalanceError,
    HasPaymentsError,
    InvoiceVoidError,
    NotFoundError,
    ValidationError,
)
from ledger_kernel.models.ar import ApplyPaymentRequest, InvoiceFilters
from ledger_kernel.models.journal import JournalFilters
from ledger_kernel.services.ar_service import ARService
from ledger_kernel.services.journal_service import JournalService

from .conftest import TEST_USER_ID, create_test_invoice


def payment(invoice_id, amount, post=False, payment_date=None, method="bank_transfer"):
    return ApplyPaymentRequest(
        invoice_id=invoice_id,
        amount=Decimal(str(amount)),
        payment_date=payment_date or date.today(),
        method=method,
        post_journal_entry=post,
    )


class BrokenJournalService(JournalService):
    async def create_posted_journal(self, ctx, request):
        raise RuntimeError("driver error")


class TestCreateInvoice:

    @pytest.mark.asyncio
    async def test_new_invoice_is_open(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"))

        assert invoice.status == InvoiceStatus.OPEN
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.balance_due == Decimal("1000.00")
        assert invoice.created_by == ctx.actor

    @pytest.mark.asyncio
    async def test_duplicate_number_rejected(self, ar_service, ctx):
        await create_test_invoice(ar_service, ctx, invoice_number="INV-001")
        with pytest.raises(DuplicateNumberError):
            await create_test_invoice(ar_service, ctx, invoice_number="INV-001")

    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, ar_service, ctx):
        with pytest.raises(ValidationError):
            await create_test_invoice(ar_service, ctx, amount_total=Decimal("0"))
        with pytest.raises(ValidationError):
            await create_test_invoice(ar_service, ctx, amount_total=Decimal("-5"))

    @pytest.mark.asyncio
    async def test_field_limits(self, ar_service, ctx):
        with pytest.raises(ValidationError) as exc:
            await create_test_invoice(
                ar_service, ctx, invoice_number="I" * 101, memo="m" * 1001
            )
        assert len(exc.value.errors) == 2


class TestApplyPayment:
    """Payment application without ledger posting."""

    @pytest.mark.asyncio
    async def test_partial_then_full_payment(self, ar_service, ctx):
        """Invoice 1000: pay 400 -> partial, pay 600 -> paid."""
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"))

        first = await ar_service.apply_payment(ctx, payment(invoice.id, 400))
        assert first.payment_applied
        assert first.invoice.status == InvoiceStatus.PARTIAL
        assert first.invoice.amount_paid == Decimal("400.00")
        assert first.invoice.balance_due == Decimal("600.00")

        second = await ar_service.apply_payment(ctx, payment(invoice.id, 600))
        assert second.invoice.status == InvoiceStatus.PAID
        assert second.invoice.balance_due == Decimal("0.00")

        stored = await ar_service.get_invoice(ctx, invoice.id)
        assert stored.status == InvoiceStatus.PAID
        assert len(stored.payments) == 2

    @pytest.mark.asyncio
    async def test_paid_invoice_rejects_payment(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"))
        await ar_service.apply_payment(ctx, payment(invoice.id, 1000))

        with pytest.raises(AlreadyPaidError):
            await ar_service.apply_payment(ctx, payment(invoice.id, "0.01"))

    @pytest.mark.asyncio
    async def test_overpayment_rejected_and_nothing_recorded(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"))
        await ar_service.apply_payment(ctx, payment(invoice.id, 400))

        with pytest.raises(ExceedsBalanceError) as exc:
            await ar_service.apply_payment(ctx, payment(invoice.id, 700))
        assert exc.value.details["balance_due"] == "600.00"

        stored = await ar_service.get_invoice(ctx, invoice.id)
        assert stored.amount_paid == Decimal("400.00")
        assert len(stored.payments) == 1

    @pytest.mark.asyncio
    async def test_void_invoice_rejects_payment(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)
        await ar_service.void_invoice(ctx, invoice.id)

        with pytest.raises(InvoiceVoidError):
            await ar_service.apply_payment(ctx, payment(invoice.id, 10))

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, ar_service, ctx):
        with pytest.raises(NotFoundError):
            await ar_service.apply_payment(ctx, payment(uuid4(), 10))

    @pytest.mark.asyncio
    async def test_invalid_payment_fields(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)

        with pytest.raises(ValidationError):
            await ar_service.apply_payment(ctx, payment(invoice.id, 0))
        with pytest.raises(ValidationError):
            await ar_service.apply_payment(ctx, payment(invoice.id, 10, method=" "))

    @pytest.mark.asyncio
    async def test_payments_listed_newest_first(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"))
        today = date.today()
        await ar_service.apply_payment(ctx, payment(invoice.id, 100, payment_date=today - timedelta(days=5)))
        await ar_service.apply_payment(ctx, payment(invoice.id, 200, payment_date=today))
        await ar_service.apply_payment(ctx, payment(invoice.id, 300, payment_date=today - timedelta(days=2)))

        stored = await ar_service.get_invoice(ctx, invoice.id)
        assert [p.amount for p in stored.payments] == [
            Decimal("200.00"), Decimal("300.00"), Decimal("100.00")
        ]
        assert all(p.invoice_number == invoice.invoice_number for p in stored.payments)

    @pytest.mark.asyncio
    async def test_no_journal_unless_requested(self, ar_service, journal_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)
        result = await ar_service.apply_payment(ctx, payment(invoice.id, 100))

        assert not result.ledger_requested
        assert not result.ledger_posted
        assert result.journal_id is None
        assert (await journal_service.list_journals(ctx)).total == 0


class TestPaymentLedgerPosting:
    """Cash receipt journal linked to a payment."""

    @pytest.mark.asyncio
    async def test_posts_cash_receipt(
        self, ar_service, journal_service, ctx, cash_account_id, ar_account_id
    ):
        """Debit Cash / credit AR, posted, referencing payment and invoice."""
        invoice = await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("1000"), invoice_number="INV-777"
        )
        result = await ar_service.apply_payment(
            ctx, payment(invoice.id, 250, post=True, method="cash")
        )

        assert result.ledger_requested
        assert result.ledger_posted
        assert result.ledger_error is None
        assert result.journal_number == f"AR-PMT-{str(result.payment.id)[:8]}"

        entry = await journal_service.get_journal(ctx, result.journal_id)
        assert entry.status == JournalStatus.POSTED
        assert entry.memo == "Payment received - Invoice INV-777"
        assert entry.journal_date == result.payment.payment_date

        debit_line, credit_line = entry.lines
        assert debit_line.account_id == cash_account_id
        assert debit_line.debit == Decimal("250.00")
        assert debit_line.description == "Payment received - cash"
        assert debit_line.reference_type == ReferenceType.AR_PAYMENT.value
        assert debit_line.reference_id == result.payment.id

        assert credit_line.account_id == ar_account_id
        assert credit_line.credit == Decimal("250.00")
        assert credit_line.description == "Payment applied to Invoice INV-777"
        assert credit_line.reference_type == ReferenceType.AR_INVOICE.value
        assert credit_line.reference_id == invoice.id

    @pytest.mark.asyncio
    async def test_missing_accounts_keep_payment(
        self, ar_service, journal_service, store, ctx, ar_account_id
    ):
        """With AR deactivated the payment stands and the posting failure is reported."""
        store.set_account_active(ar_account_id, False)
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"))

        result = await ar_service.apply_payment(ctx, payment(invoice.id, 400, post=True))

        assert result.payment_applied
        assert result.ledger_requested
        assert not result.ledger_posted
        assert isinstance(result.ledger_error, AccountsUnavailableError)
        assert result.ledger_error.details["account_codes"] == ["1200"]

        stored = await ar_service.get_invoice(ctx, invoice.id)
        assert stored.amount_paid == Decimal("400.00")
        assert stored.status == InvoiceStatus.PARTIAL
        assert (await journal_service.list_journals(ctx)).total == 0

    @pytest.mark.asyncio
    async def test_unexpected_posting_error_keeps_payment(
        self, store, coa_service, activity, ar_service, ctx
    ):
        """A raw driver error during posting is reported, not raised."""
        broken_ar = ARService(store, coa_service, BrokenJournalService(store, coa_service), activity)
        invoice = await create_test_invoice(ar_service, ctx, amount_total=Decimal("100"))

        result = await broken_ar.apply_payment(ctx, payment(invoice.id, 40, post=True))

        assert result.payment_applied
        assert not result.ledger_posted
        assert isinstance(result.ledger_error, DependencyError)
        assert result.ledger_error.code == "DEPENDENCY_FAILED"
        assert "driver error" in result.ledger_error.message
        assert result.to_dict()["ledger_error"]["details"]["payment_id"] == str(result.payment.id)

        stored = await ar_service.get_invoice(ctx, invoice.id)
        assert stored.amount_paid == Decimal("40.00")
        assert len(stored.payments) == 1

    @pytest.mark.asyncio
    async def test_journal_listed_with_payment_prefix(self, ar_service, journal_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)
        await ar_service.apply_payment(ctx, payment(invoice.id, 100, post=True))

        page = await journal_service.list_journals(ctx, JournalFilters(search="ar-pmt"))
        assert page.total == 1


class TestVoidInvoice:

    @pytest.mark.asyncio
    async def test_void_untouched_invoice(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)
        voided = await ar_service.void_invoice(ctx, invoice.id)

        assert voided.status == InvoiceStatus.VOID
        assert (await ar_service.get_total_outstanding(ctx)) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_void_with_payments_rejected(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)
        await ar_service.apply_payment(ctx, payment(invoice.id, 10))

        with pytest.raises(HasPaymentsError) as exc:
            await ar_service.void_invoice(ctx, invoice.id)
        assert exc.value.details["payment_count"] == 1

    @pytest.mark.asyncio
    async def test_void_twice_rejected(self, ar_service, ctx):
        invoice = await create_test_invoice(ar_service, ctx)
        await ar_service.void_invoice(ctx, invoice.id)
        with pytest.raises(AlreadyVoidError):
            await ar_service.void_invoice(ctx, invoice.id)

    @pytest.mark.asyncio
    async def test_void_unknown(self, ar_service, ctx):
        with pytest.raises(NotFoundError):
            await ar_service.void_invoice(ctx, uuid4())


class TestListInvoices:

    @pytest.mark.asyncio
    async def test_summary_covers_all_open_invoices(self, ar_service, ctx):
        """Summary is tenant-wide, not limited to the page or filter."""
        today = date.today()
        overdue = await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("300"),
            date_issued=today - timedelta(days=60), due_date=today - timedelta(days=10)
        )
        await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("500"), due_date=today + timedelta(days=15)
        )
        await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("200"), due_date=today + timedelta(days=45)
        )
        paid = await create_test_invoice(ar_service, ctx, amount_total=Decimal("50"))
        await ar_service.apply_payment(ctx, payment(paid.id, 50))
        await ar_service.apply_payment(ctx, payment(overdue.id, 100))

        page = await ar_service.list_invoices(ctx, page=1, limit=1, as_of_date=today)

        assert page.total == 4
        assert len(page.invoices) == 1
        assert page.summary.total_open_balance == Decimal("900.00")
        assert page.summary.total_overdue == Decimal("200.00")
        assert page.summary.next_30_days == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_filters(self, ar_service, ctx):
        customer = uuid4()
        today = date.today()
        await create_test_invoice(
            ar_service, ctx, invoice_number="INV-ACME-1", customer_id=customer, memo="Consulting"
        )
        await create_test_invoice(
            ar_service, ctx, invoice_number="INV-2", customer_id=customer,
            date_issued=today - timedelta(days=40)
        )
        other = await create_test_invoice(ar_service, ctx, invoice_number="INV-3", memo="acme hardware")
        await ar_service.void_invoice(ctx, other.id)

        by_search = await ar_service.list_invoices(ctx, InvoiceFilters(search="ACME"))
        assert {i.invoice_number for i in by_search.invoices} == {"INV-ACME-1", "INV-3"}

        by_customer = await ar_service.list_invoices(ctx, InvoiceFilters(customer_id=customer))
        assert by_customer.total == 2

        by_status = await ar_service.list_invoices(ctx, InvoiceFilters(status=InvoiceStatus.VOID))
        assert [i.invoice_number for i in by_status.invoices] == ["INV-3"]

        by_date = await ar_service.list_invoices(
            ctx, InvoiceFilters(date_from=today - timedelta(days=7))
        )
        assert {i.invoice_number for i in by_date.invoices} == {"INV-ACME-1", "INV-3"}

    @pytest.mark.asyncio
    async def test_ordered_by_issue_date_desc(self, ar_service, ctx):
        today = date.today()
        await create_test_invoice(ar_service, ctx, invoice_number="A", date_issued=today - timedelta(days=3))
        await create_test_invoice(ar_service, ctx, invoice_number="B", date_issued=today)
        await create_test_invoice(ar_service, ctx, invoice_number="C", date_issued=today - timedelta(days=1))

        page = await ar_service.list_invoices(ctx)
        assert [i.invoice_number for i in page.invoices] == ["B", "C", "A"]

    @pytest.mark.asyncio
    async def test_tenant_isolation(self, ar_service, ctx, other_ctx):
        invoice = await create_test_invoice(ar_service, ctx)

        page = await ar_service.list_invoices(other_ctx)
        assert page.total == 0
        assert page.summary.total_open_balance == Decimal("0.00")
        with pytest.raises(NotFoundError):
            await ar_service.get_invoice(other_ctx, invoice.id)


class TestCustomerDetail:

    @pytest.mark.asyncio
    async def test_customer_detail(self, ar_service, ctx):
        customer = uuid4()
        today = date.today()
        later = await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("400"), customer_id=customer,
            invoice_number="INV-LATER", due_date=today + timedelta(days=20)
        )
        await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("100"), customer_id=customer,
            invoice_number="INV-SOONER", due_date=today + timedelta(days=5)
        )
        settled = await create_test_invoice(
            ar_service, ctx, amount_total=Decimal("70"), customer_id=customer
        )
        await create_test_invoice(ar_service, ctx, amount_total=Decimal("999"))

        await ar_service.apply_payment(ctx, payment(later.id, 150))
        await ar_service.apply_payment(ctx, payment(settled.id, 70))
        await ar_service.apply_payment(
            ctx, payment(later.id, 50, payment_date=today - timedelta(days=120))
        )

        detail = await ar_service.get_customer_detail(ctx, customer, as_of_date=today)

        assert [i.invoice_number for i in detail.open_invoices] == ["INV-SOONER", "INV-LATER"]
        assert detail.total_open_balance == Decimal("300.00")
        assert len(detail.recent_payments) == 2
        assert detail.to_dict()["total_open_balance"] == "300.00"

    @pytest.mark.asyncio
    async def test_total_outstanding(self, ar_service, ctx):
        customer = uuid4()
        first = await create_test_invoice(ar_service, ctx, amount_total=Decimal("1000"), customer_id=customer)
        await create_test_invoice(ar_service, ctx, amount_total=Decimal("250"))
        await ar_service.apply_payment(ctx, payment(first.id, 400))

        assert await ar_service.get_total_outstanding(ctx) == Decimal("850.00")
        assert await ar_service.get_total_outstanding(ctx, customer) == Decimal("600.00")


class TestTenantIds:

    def test_uuid_tenant_normalised_to_string(self):
        tenant = uuid4()
        uuid_ctx = TenantContext(tenant_id=tenant, actor_user_id=TEST_USER_ID)
        assert uuid_ctx.tenant_id == str(tenant)

    @pytest.mark.asyncio
    async def test_uuid_tenant_reads_back_its_rows(self, ar_service, ctx):
        uuid_ctx = TenantContext(tenant_id=uuid4(), actor_user_id=TEST_USER_ID)
        invoice = await create_test_invoice(ar_service, uuid_ctx, amount_total=Decimal("80"))

        stored = await ar_service.get_invoice(uuid_ctx, invoice.id)
        assert stored.tenant_id == uuid_ctx.tenant_id
        assert (await ar_service.list_invoices(uuid_ctx)).total == 1
        assert await ar_service.get_total_outstanding(uuid_ctx) == Decimal("80.00")

        with pytest.raises(NotFoundError):
            await ar_service.get_invoice(ctx, invoice.id)
