"""
Accounts Receivable Models
"""
from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from ..config import settings
from ..constants import InvoiceStatus, OPEN_INVOICE_STATUSES
from ..exceptions import LedgerError
from ..money import ZERO, format_money, to_money


@dataclass
class ARPayment:
    """Payment applied to an AR invoice (append-only)"""
    id: UUID
    tenant_id: str
    invoice_id: UUID
    customer_id: UUID
    payment_date: date
    amount: Decimal
    method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    # Joined field
    invoice_number: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "invoice_id": str(self.invoice_id),
            "invoice_number": self.invoice_number,
            "customer_id": str(self.customer_id),
            "payment_date": self.payment_date.isoformat(),
            "amount": format_money(self.amount),
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ARInvoice:
    """Accounts Receivable invoice"""
    id: UUID
    tenant_id: str
    invoice_number: str
    customer_id: UUID
    date_issued: date
    due_date: date
    amount_total: Decimal
    amount_paid: Decimal = ZERO
    status: InvoiceStatus = InvoiceStatus.OPEN
    memo: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Loaded separately by get_invoice
    payments: List[ARPayment] = field(default_factory=list)

    @property
    def balance_due(self) -> Decimal:
        """Remaining unpaid amount"""
        return self.amount_total - self.amount_paid

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INVOICE_STATUSES

    def days_past_due(self, as_of: Optional[date] = None) -> int:
        return ((as_of or date.today()) - self.due_date).days

    def is_overdue(self, as_of: Optional[date] = None) -> bool:
        return self.is_open and self.days_past_due(as_of) > 0

    def to_dict(self, include_payments: bool = False) -> dict:
        data = {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "invoice_number": self.invoice_number,
            "customer_id": str(self.customer_id),
            "date_issued": self.date_issued.isoformat(),
            "due_date": self.due_date.isoformat(),
            "amount_total": format_money(self.amount_total),
            "amount_paid": format_money(self.amount_paid),
            "balance_due": format_money(self.balance_due),
            "status": self.status.value,
            "memo": self.memo,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_payments:
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


@dataclass
class CreateInvoiceRequest:
    """Request for creating an AR invoice"""
    invoice_number: str
    customer_id: UUID
    date_issued: date
    due_date: date
    amount_total: Decimal
    memo: Optional[str] = None

    def __post_init__(self):
        self.amount_total = to_money(self.amount_total)

    def validate(self) -> List[str]:
        limits = settings.ledger
        errors = []
        if not self.invoice_number or not self.invoice_number.strip():
            errors.append("Invoice number is required")
        elif len(self.invoice_number) > limits.MAX_NUMBER_LENGTH:
            errors.append(f"Invoice number must be at most {limits.MAX_NUMBER_LENGTH} characters")
        if not self.customer_id:
            errors.append("Customer is required")
        if not self.date_issued:
            errors.append("Issue date is required")
        if not self.due_date:
            errors.append("Due date is required")
        if self.amount_total < Decimal("0.01"):
            errors.append("Invoice amount must be greater than 0")
        if self.memo is not None and len(self.memo) > limits.MAX_MEMO_LENGTH:
            errors.append(f"Memo must be at most {limits.MAX_MEMO_LENGTH} characters")
        return errors


@dataclass
class ApplyPaymentRequest:
    """Request for applying a customer payment to an invoice"""
    invoice_id: UUID
    amount: Decimal
    payment_date: date
    method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    post_journal_entry: bool = False

    def __post_init__(self):
        self.amount = to_money(self.amount)

    def validate(self) -> List[str]:
        errors = []
        if self.amount < Decimal("0.01"):
            errors.append("Payment amount must be greater than 0")
        if not self.method or not self.method.strip():
            errors.append("Payment method is required")
        if not self.payment_date:
            errors.append("Payment date is required")
        if self.reference is not None and len(self.reference) > 255:
            errors.append("Reference must be at most 255 characters")
        if self.notes is not None and len(self.notes) > settings.ledger.MAX_MEMO_LENGTH:
            errors.append(f"Notes must be at most {settings.ledger.MAX_MEMO_LENGTH} characters")
        return errors


@dataclass
class PaymentResult:
    """
    Outcome of apply_payment.

    The payment is the primary guarantee; the linked ledger posting is
    best-effort and reported separately.
    """
    payment: ARPayment
    invoice: ARInvoice
    payment_applied: bool = True
    ledger_requested: bool = False
    ledger_posted: bool = False
    journal_id: Optional[UUID] = None
    journal_number: Optional[str] = None
    ledger_error: Optional[LedgerError] = None

    def to_dict(self) -> dict:
        return {
            "payment_applied": self.payment_applied,
            "ledger_requested": self.ledger_requested,
            "ledger_posted": self.ledger_posted,
            "journal_id": str(self.journal_id) if self.journal_id else None,
            "journal_number": self.journal_number,
            "ledger_error": self.ledger_error.to_dict() if self.ledger_error else None,
            "payment": self.payment.to_dict(),
            "invoice": self.invoice.to_dict(),
        }


@dataclass
class InvoiceFilters:
    search: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    customer_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@dataclass
class ARSummary:
    """Open-balance totals over open/partial invoices"""
    total_open_balance: Decimal = ZERO
    total_overdue: Decimal = ZERO
    next_30_days: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "total_open_balance": format_money(self.total_open_balance),
            "total_overdue": format_money(self.total_overdue),
            "next_30_days": format_money(self.next_30_days),
        }


@dataclass
class InvoicePage:
    invoices: List[ARInvoice]
    total: int
    page: int
    limit: int
    summary: ARSummary

    def to_dict(self) -> dict:
        return {
            "invoices": [invoice.to_dict() for invoice in self.invoices],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "summary": self.summary.to_dict(),
        }


@dataclass
class CustomerARDetail:
    """Receivable position of one customer"""
    customer_id: UUID
    open_invoices: List[ARInvoice] = field(default_factory=list)
    recent_payments: List[ARPayment] = field(default_factory=list)
    total_open_balance: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "customer_id": str(self.customer_id),
            "open_invoices": [invoice.to_dict() for invoice in self.open_invoices],
            "recent_payments": [payment.to_dict() for payment in self.recent_payments],
            "total_open_balance": format_money(self.total_open_balance),
        }
