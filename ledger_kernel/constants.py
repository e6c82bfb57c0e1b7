"""
Ledger Kernel Constants
"""
from enum import Enum


class AccountType(str, Enum):
    """Chart of Accounts types"""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class JournalStatus(str, Enum):
    """Journal entry status

    DRAFT:    Editable, header and lines may be replaced
    POSTED:   Permanent, included in ledger balances
    REVERSED: Posted entry negated by a reversal entry (terminal)
    """
    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"


class InvoiceStatus(str, Enum):
    """AR invoice status"""
    OPEN = "open"
    PARTIAL = "partial"
    PAID = "paid"
    VOID = "void"


# Invoices that still carry a receivable balance
OPEN_INVOICE_STATUSES = (InvoiceStatus.OPEN, InvoiceStatus.PARTIAL)


class AgingBucket(str, Enum):
    """Aging report buckets"""
    CURRENT = "current"
    DAYS_1_30 = "1-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_OVER_90 = "90+"


class ReferenceType(str, Enum):
    """Source document types a journal line can point at"""
    AR_PAYMENT = "ar_payment"
    AR_INVOICE = "ar_invoice"


class EntityType(str, Enum):
    """Entities recorded in the activity log"""
    JOURNAL_ENTRY = "journal_entry"
    AR_INVOICE = "ar_invoice"
    AR_PAYMENT = "ar_payment"


class ActivityAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    POST = "post"
    REVERSE = "reverse"
    VOID = "void"


# Legal journal status transitions. POSTED -> REVERSED is only reachable
# through the reversal engine, see can_transition().
JOURNAL_TRANSITIONS = {
    JournalStatus.DRAFT: (JournalStatus.DRAFT, JournalStatus.POSTED),
    JournalStatus.POSTED: (JournalStatus.REVERSED,),
    JournalStatus.REVERSED: (),
}
