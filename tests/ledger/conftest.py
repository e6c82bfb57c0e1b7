"""
Fixtures for Ledger Kernel Tests
================================

Provides pytest fixtures for:
- In-memory ledger store seeded with a Chart of Accounts
- Test tenant / actor context
- Service instances wired over the store
- Helpers to create journals and invoices
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import pytest

from ledger_kernel.constants import AccountType
from ledger_kernel.context import TenantContext
from ledger_kernel.integration.facade import LedgerFacade
from ledger_kernel.models.ar import ARInvoice, CreateInvoiceRequest
from ledger_kernel.models.coa import Account
from ledger_kernel.models.journal import (
    CreateJournalRequest,
    JournalEntry,
    JournalLineInput,
)
from ledger_kernel.services.activity_log import ActivityLogger, MemoryActivitySink
from ledger_kernel.services.ar_service import ARService
from ledger_kernel.services.coa_service import CoAService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.store.memory import InMemoryLedgerStore

# Test configuration
TEST_TENANT_ID = "test-tenant-ledger"
OTHER_TENANT_ID = "other-tenant-ledger"
TEST_USER_ID = "test-user-1"

# (code, name, type, is_active)
CHART_OF_ACCOUNTS = [
    # Assets
    ("1010", "Cash", AccountType.ASSET, True),
    ("1020", "Bank", AccountType.ASSET, True),
    ("1200", "Accounts Receivable", AccountType.ASSET, True),
    # Liabilities
    ("2000", "Accounts Payable", AccountType.LIABILITY, True),
    # Equity
    ("3000", "Owner Equity", AccountType.EQUITY, True),
    # Revenue
    ("4000", "Sales Revenue", AccountType.REVENUE, True),
    # Expenses
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE, True),
    ("6100", "Rent Expense", AccountType.EXPENSE, True),
    ("6900", "Legacy Expense", AccountType.EXPENSE, False),
]


def build_accounts(tenant_id: str) -> List[Account]:
    """Build a fresh chart of accounts for a tenant."""
    return [
        Account(
            id=uuid4(),
            tenant_id=tenant_id,
            code=code,
            name=name,
            type=account_type,
            is_active=is_active,
        )
        for code, name, account_type, is_active in CHART_OF_ACCOUNTS
    ]


@pytest.fixture
def tenant_id():
    """Get test tenant ID."""
    return TEST_TENANT_ID


@pytest.fixture
def ctx(tenant_id):
    """Tenant/actor context for the test tenant."""
    return TenantContext(tenant_id=tenant_id, actor_user_id=TEST_USER_ID)


@pytest.fixture
def other_ctx():
    """Context of a second tenant, for isolation checks."""
    return TenantContext(tenant_id=OTHER_TENANT_ID, actor_user_id="other-user")


@pytest.fixture
def accounts(tenant_id):
    return build_accounts(tenant_id) + build_accounts(OTHER_TENANT_ID)


@pytest.fixture
def setup_coa(accounts, tenant_id) -> Dict[str, UUID]:
    """
    Chart of Accounts for the test tenant.
    Returns dict of account codes to account IDs.
    """
    return {acc.code: acc.id for acc in accounts if acc.tenant_id == tenant_id}


@pytest.fixture
def store(accounts):
    """In-memory store seeded with both tenants' accounts."""
    return InMemoryLedgerStore(accounts)


@pytest.fixture
def cash_account_id(setup_coa):
    """Get Cash account ID."""
    return setup_coa["1010"]


@pytest.fixture
def bank_account_id(setup_coa):
    """Get Bank account ID."""
    return setup_coa["1020"]


@pytest.fixture
def ar_account_id(setup_coa):
    """Get Accounts Receivable ID."""
    return setup_coa["1200"]


@pytest.fixture
def revenue_account_id(setup_coa):
    """Get Sales Revenue account ID."""
    return setup_coa["4000"]


@pytest.fixture
def rent_account_id(setup_coa):
    """Get Rent Expense account ID."""
    return setup_coa["6100"]


@pytest.fixture
def inactive_account_id(setup_coa):
    """Get the deactivated Legacy Expense account ID."""
    return setup_coa["6900"]


@pytest.fixture
def activity_sink():
    return MemoryActivitySink()


@pytest.fixture
def activity(activity_sink):
    return ActivityLogger(activity_sink)


@pytest.fixture
def coa_service(store):
    """Get CoAService instance (cache disabled so account toggles are seen)."""
    return CoAService(store, ttl=0)


@pytest.fixture
def journal_service(store, coa_service, activity):
    """Get JournalService instance."""
    return JournalService(store, coa_service, activity)


@pytest.fixture
def reversal_service(store, activity):
    """Get ReversalService instance."""
    return ReversalService(store, activity)


@pytest.fixture
def ar_service(store, coa_service, journal_service, activity):
    """Get ARService instance."""
    return ARService(store, coa_service, journal_service, activity)


@pytest.fixture
def facade(store, activity_sink):
    """Get LedgerFacade instance."""
    return LedgerFacade(store, activity_sink=activity_sink, account_cache_ttl=0)


# Helper functions for tests
async def create_test_journal(
    journal_service: JournalService,
    ctx: TenantContext,
    debit_account_id: UUID,
    credit_account_id: UUID,
    amount: Decimal = Decimal("500.00"),
    post: bool = True,
    journal_number: Optional[str] = None,
    journal_date: Optional[date] = None,
    memo: Optional[str] = None,
    credit_amount: Optional[Decimal] = None
) -> JournalEntry:
    """
    Create a two-line test journal entry (debit one account, credit another).
    Posted unless post=False.
    """
    request = CreateJournalRequest(
        journal_number=journal_number or f"JV-TEST-{uuid4().hex[:8].upper()}",
        journal_date=journal_date or date.today(),
        memo=memo or "Test journal",
        lines=[
            JournalLineInput(
                account_id=debit_account_id,
                debit=amount,
                description="Debit line",
            ),
            JournalLineInput(
                account_id=credit_account_id,
                credit=credit_amount if credit_amount is not None else amount,
                description="Credit line",
            ),
        ],
    )
    entry = await journal_service.create_journal(ctx, request)
    if post:
        entry = await journal_service.post_journal(ctx, entry.id)
    return entry


async def create_test_invoice(
    ar_service: ARService,
    ctx: TenantContext,
    amount_total: Decimal = Decimal("1000.00"),
    invoice_number: Optional[str] = None,
    customer_id: Optional[UUID] = None,
    date_issued: Optional[date] = None,
    due_date: Optional[date] = None,
    memo: Optional[str] = None
) -> ARInvoice:
    """Create a test AR invoice (due in 30 days unless given)."""
    issued = date_issued or date.today()
    request = CreateInvoiceRequest(
        invoice_number=invoice_number or f"INV-{uuid4().hex[:8].upper()}",
        customer_id=customer_id or uuid4(),
        date_issued=issued,
        due_date=due_date or issued + timedelta(days=30),
        amount_total=amount_total,
        memo=memo,
    )
    return await ar_service.create_invoice(ctx, request)
