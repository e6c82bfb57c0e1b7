"""
Ledger Kernel Validators
"""
from .double_entry_validator import (
    DoubleEntryValidator,
    validate_line_set,
    calculate_totals,
    is_balanced,
    can_transition,
    invoice_status_for,
)
from .pagination import page_window

__all__ = [
    "DoubleEntryValidator",
    "validate_line_set",
    "calculate_totals",
    "is_balanced",
    "can_transition",
    "invoice_status_for",
    "page_window",
]
