"""
AR Aging / Summary Projector
============================

Read-only projections over invoice state:
- Aging buckets by days past due (current, 1-30, 31-60, 61-90, 90+)
- Open-balance summary (open, overdue, due within the next 30 days)

Only open and partial invoices carry a receivable balance; paid and void
invoices are ignored.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from dataclasses import dataclass, field
from uuid import UUID

from ..config import settings
from ..constants import AgingBucket, OPEN_INVOICE_STATUSES
from ..models.ar import ARInvoice, ARSummary
from ..money import ZERO, format_money


def bucket_for(days_past_due: int) -> AgingBucket:
    """Assign a days-past-due count to an aging bucket."""
    if days_past_due <= 0:
        return AgingBucket.CURRENT
    elif days_past_due <= 30:
        return AgingBucket.DAYS_1_30
    elif days_past_due <= 60:
        return AgingBucket.DAYS_31_60
    elif days_past_due <= 90:
        return AgingBucket.DAYS_61_90
    return AgingBucket.DAYS_OVER_90


@dataclass
class ARAgingRow:
    """Single row in AR Aging report"""
    customer_id: Optional[UUID]
    current: Decimal = ZERO
    days_1_30: Decimal = ZERO
    days_31_60: Decimal = ZERO
    days_61_90: Decimal = ZERO
    days_over_90: Decimal = ZERO
    total: Decimal = ZERO

    def add(self, bucket: AgingBucket, amount: Decimal) -> None:
        if bucket == AgingBucket.CURRENT:
            self.current += amount
        elif bucket == AgingBucket.DAYS_1_30:
            self.days_1_30 += amount
        elif bucket == AgingBucket.DAYS_31_60:
            self.days_31_60 += amount
        elif bucket == AgingBucket.DAYS_61_90:
            self.days_61_90 += amount
        else:
            self.days_over_90 += amount
        self.total += amount

    def buckets(self) -> Dict[str, Decimal]:
        return {
            AgingBucket.CURRENT.value: self.current,
            AgingBucket.DAYS_1_30.value: self.days_1_30,
            AgingBucket.DAYS_31_60.value: self.days_31_60,
            AgingBucket.DAYS_61_90.value: self.days_61_90,
            AgingBucket.DAYS_OVER_90.value: self.days_over_90,
        }

    def to_dict(self) -> dict:
        data = {
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "total": format_money(self.total),
        }
        data.update({key: format_money(value) for key, value in self.buckets().items()})
        return data


@dataclass
class ARAgingDetail:
    """Per-invoice line of the aging report"""
    invoice_id: UUID
    invoice_number: str
    customer_id: UUID
    due_date: date
    days_past_due: int
    bucket: AgingBucket
    balance_due: Decimal

    def to_dict(self) -> dict:
        return {
            "invoice_id": str(self.invoice_id),
            "invoice_number": self.invoice_number,
            "customer_id": str(self.customer_id),
            "due_date": self.due_date.isoformat(),
            "days_past_due": self.days_past_due,
            "bucket": self.bucket.value,
            "balance_due": format_money(self.balance_due),
        }


@dataclass
class ARAgingReport:
    """AR Aging Report"""
    tenant_id: str
    as_of_date: date
    rows: List[ARAgingRow] = field(default_factory=list)
    totals: ARAgingRow = field(default_factory=lambda: ARAgingRow(None))
    details: List[ARAgingDetail] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def buckets(self) -> Dict[str, Decimal]:
        return self.totals.buckets()

    def to_dict(self) -> dict:
        return {
            "tenant_id": str(self.tenant_id),
            "as_of_date": self.as_of_date.isoformat(),
            "buckets": {key: format_money(value) for key, value in self.buckets.items()},
            "total": format_money(self.totals.total),
            "rows": [row.to_dict() for row in self.rows],
            "details": [detail.to_dict() for detail in self.details],
            "generated_at": self.generated_at.isoformat(),
        }


class ARAgingGenerator:
    """Builds ARAgingReport from invoice state."""

    def generate(
        self,
        tenant_id: str,
        invoices: Iterable[ARInvoice],
        as_of_date: Optional[date] = None
    ) -> ARAgingReport:
        if as_of_date is None:
            as_of_date = date.today()

        report = ARAgingReport(tenant_id=tenant_id, as_of_date=as_of_date)
        customer_aging: Dict[UUID, ARAgingRow] = {}

        for invoice in sorted(invoices, key=lambda inv: (inv.due_date, inv.invoice_number)):
            if invoice.status not in OPEN_INVOICE_STATUSES:
                continue
            outstanding = invoice.balance_due
            if outstanding <= ZERO:
                continue

            days_past_due = invoice.days_past_due(as_of_date)
            bucket = bucket_for(days_past_due)

            if invoice.customer_id not in customer_aging:
                customer_aging[invoice.customer_id] = ARAgingRow(customer_id=invoice.customer_id)
            customer_aging[invoice.customer_id].add(bucket, outstanding)
            report.totals.add(bucket, outstanding)

            report.details.append(
                ARAgingDetail(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    customer_id=invoice.customer_id,
                    due_date=invoice.due_date,
                    days_past_due=days_past_due,
                    bucket=bucket,
                    balance_due=outstanding,
                )
            )

        # Largest exposure first
        report.rows = sorted(customer_aging.values(), key=lambda row: row.total, reverse=True)
        return report


def summarize_open_invoices(
    invoices: Iterable[ARInvoice],
    as_of_date: Optional[date] = None,
    due_soon_days: Optional[int] = None
) -> ARSummary:
    """
    Open-balance totals over open/partial invoices.

    total_overdue counts due_date < as_of_date; next_30_days counts
    as_of_date <= due_date <= as_of_date + due_soon_days.
    """
    if as_of_date is None:
        as_of_date = date.today()
    if due_soon_days is None:
        due_soon_days = settings.ledger.DUE_SOON_DAYS
    horizon = as_of_date + timedelta(days=due_soon_days)

    summary = ARSummary()
    for invoice in invoices:
        if invoice.status not in OPEN_INVOICE_STATUSES:
            continue
        balance = invoice.balance_due
        summary.total_open_balance += balance
        if invoice.due_date < as_of_date:
            summary.total_overdue += balance
        elif invoice.due_date <= horizon:
            summary.next_30_days += balance
    return summary
