"""
Ledger Kernel Models
"""
from .coa import Account
from .journal import (
    JournalEntry,
    JournalLine,
    JournalLineInput,
    CreateJournalRequest,
    UpdateJournalRequest,
    JournalFilters,
    JournalPage,
)
from .ar import (
    ARInvoice,
    ARPayment,
    CreateInvoiceRequest,
    ApplyPaymentRequest,
    PaymentResult,
    InvoiceFilters,
    InvoicePage,
    ARSummary,
    CustomerARDetail,
)
from .activity import ActivityLogEntry

__all__ = [
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
]
