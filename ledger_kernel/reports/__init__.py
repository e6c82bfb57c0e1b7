"""
Ledger Kernel Report Generators
"""
from .ar_aging import (
    ARAgingRow,
    ARAgingDetail,
    ARAgingReport,
    ARAgingGenerator,
    bucket_for,
    summarize_open_invoices,
)

__all__ = [
    "ARAgingRow",
    "ARAgingDetail",
    "ARAgingReport",
    "ARAgingGenerator",
    "bucket_for",
    "summarize_open_invoices",
]
