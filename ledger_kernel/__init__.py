"""
Ledger Kernel
=============

Multi-tenant general-ledger core with:
- Double-entry journal entries (draft -> posted -> reversed)
- Reversal engine (balancing counter-entries)
- Accounts Receivable invoices and payments
- AR aging and open-balance summaries

Core Principles:
- Posted entries are immutable; corrections go through reversals
- Every operation is scoped by an explicit tenant/actor context
- Fixed-point Decimal money throughout
- Persistence behind an injected transactional store

Usage:
    from ledger_kernel import LedgerFacade, PostgresLedgerStore, TenantContext

    store = await PostgresLedgerStore.connect()
    facade = LedgerFacade(store)
    ctx = TenantContext(tenant_id, user_id)
    await facade.post_journal(ctx, journal_id)
"""

__version__ = "1.0.0"

# Context / errors
from .context import TenantContext
from .exceptions import (
    ErrorKind,
    LedgerError,
    ValidationError,
    TooFewLinesError,
    MixedLineError,
    NegativeAmountError,
    EmptyLineError,
    InactiveAccountError,
    NotFoundError,
    DuplicateNumberError,
    AlreadyReversedError,
    AlreadyVoidError,
    AlreadyPaidError,
    InvoiceVoidError,
    UnbalancedError,
    ExceedsBalanceError,
    HasPaymentsError,
    NotDraftError,
    NotPostedError,
    DependencyError,
    AccountsUnavailableError,
    StoreUnavailableError,
    OperationTimeoutError,
)

# Constants
from .constants import (
    AccountType,
    JournalStatus,
    InvoiceStatus,
    AgingBucket,
    ReferenceType,
    EntityType,
    ActivityAction,
)

# Models
from .models import (
    Account,
    JournalEntry,
    JournalLine,
    JournalLineInput,
    CreateJournalRequest,
    UpdateJournalRequest,
    JournalFilters,
    JournalPage,
    ARInvoice,
    ARPayment,
    CreateInvoiceRequest,
    ApplyPaymentRequest,
    PaymentResult,
    InvoiceFilters,
    InvoicePage,
    ARSummary,
    CustomerARDetail,
    ActivityLogEntry,
)

# Stores
from .store import (
    LedgerStore,
    LedgerSession,
    InMemoryLedgerStore,
    PostgresLedgerStore,
    apply_schema,
)

# Services
from .services import (
    CoAService,
    JournalService,
    ReversalService,
    ARService,
    ActivityLogger,
    StoreActivitySink,
    LoggingActivitySink,
    MemoryActivitySink,
)

# Reports
from .reports import ARAgingReport, ARAgingGenerator

# Integration (main entry point)
from .integration import LedgerFacade

__all__ = [
    # Context / errors
    "TenantContext",
    "ErrorKind",
    "LedgerError",
    "ValidationError",
    "TooFewLinesError",
    "MixedLineError",
    "NegativeAmountError",
    "EmptyLineError",
    "InactiveAccountError",
    "NotFoundError",
    "DuplicateNumberError",
    "AlreadyReversedError",
    "AlreadyVoidError",
    "AlreadyPaidError",
    "InvoiceVoidError",
    "UnbalancedError",
    "ExceedsBalanceError",
    "HasPaymentsError",
    "NotDraftError",
    "NotPostedError",
    "DependencyError",
    "AccountsUnavailableError",
    "StoreUnavailableError",
    "OperationTimeoutError",
    # Constants
    "AccountType",
    "JournalStatus",
    "InvoiceStatus",
    "AgingBucket",
    "ReferenceType",
    "EntityType",
    "ActivityAction",
    # Models
    "Account",
    "JournalEntry",
    "JournalLine",
    "JournalLineInput",
    "CreateJournalRequest",
    "UpdateJournalRequest",
    "JournalFilters",
    "JournalPage",
    "ARInvoice",
    "ARPayment",
    "CreateInvoiceRequest",
    "ApplyPaymentRequest",
    "PaymentResult",
    "InvoiceFilters",
    "InvoicePage",
    "ARSummary",
    "CustomerARDetail",
    "ActivityLogEntry",
    # Stores
    "LedgerStore",
    "LedgerSession",
    "InMemoryLedgerStore",
    "PostgresLedgerStore",
    "apply_schema",
    # Services
    "CoAService",
    "JournalService",
    "ReversalService",
    "ARService",
    "ActivityLogger",
    "StoreActivitySink",
    "LoggingActivitySink",
    "MemoryActivitySink",
    # Reports
    "ARAgingReport",
    "ARAgingGenerator",
    # Integration
    "LedgerFacade",
]
