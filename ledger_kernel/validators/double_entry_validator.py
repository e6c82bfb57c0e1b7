"""
Double-Entry Bookkeeping Validator
==================================

Pure checks shared by the journal store, the reversal engine and the AR
ledger. Nothing here touches the data store.
"""
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple

from ..config import settings
from ..constants import InvoiceStatus, JournalStatus, JOURNAL_TRANSITIONS
from ..exceptions import (
    EmptyLineError,
    MixedLineError,
    NegativeAmountError,
    TooFewLinesError,
)
from ..money import ZERO, money_sum, to_money


def validate_line_set(lines: Sequence) -> None:
    """
    Check the shape of a journal line set.

    Rules enforced:
    1. Every journal must have at least 2 lines
    2. Amounts must be non-negative
    3. Each line must have either debit or credit (not both, not neither)

    Raises the first violation found.
    """
    if len(lines) < 2:
        raise TooFewLinesError()

    for idx, line in enumerate(lines, 1):
        if line.debit < 0 or line.credit < 0:
            raise NegativeAmountError(f"Line {idx}: Debit and credit must be non-negative")
        if line.debit > 0 and line.credit > 0:
            raise MixedLineError(f"Line {idx}: A line cannot have both debit and credit")
        if line.debit == 0 and line.credit == 0:
            raise EmptyLineError(f"Line {idx}: A line must have either debit or credit")


def calculate_totals(lines: Iterable) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Calculate totals from lines.

    Returns:
        Tuple of (total_debit, total_credit, difference)
    """
    lines = list(lines)
    total_debit = money_sum(line.debit for line in lines)
    total_credit = money_sum(line.credit for line in lines)
    return total_debit, total_credit, abs(total_debit - total_credit)


def is_balanced(lines: Iterable, epsilon: Optional[Decimal] = None) -> bool:
    """True if |sum(debit) - sum(credit)| < epsilon."""
    if epsilon is None:
        epsilon = settings.ledger.BALANCE_TOLERANCE
    _, _, difference = calculate_totals(lines)
    return difference < epsilon


def can_transition(
    current: JournalStatus,
    target: JournalStatus,
    via_reversal: bool = False
) -> bool:
    """
    Journal state machine.

    draft -> draft and draft -> posted are always legal. posted -> reversed
    is legal only as a side effect of creating a reversal entry. Nothing
    leaves reversed.
    """
    if target not in JOURNAL_TRANSITIONS.get(current, ()):
        return False
    if current == JournalStatus.POSTED and target == JournalStatus.REVERSED:
        return via_reversal
    return True


def invoice_status_for(
    amount_total: Decimal,
    amount_paid: Decimal,
    current: InvoiceStatus = InvoiceStatus.OPEN,
    epsilon: Optional[Decimal] = None
) -> InvoiceStatus:
    """Derive invoice status from its amounts. void is never overridden."""
    if current == InvoiceStatus.VOID:
        return InvoiceStatus.VOID
    if epsilon is None:
        epsilon = settings.ledger.BALANCE_TOLERANCE
    if to_money(amount_total) - to_money(amount_paid) <= epsilon:
        return InvoiceStatus.PAID
    if amount_paid > ZERO:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.OPEN


class DoubleEntryValidator:
    """
    Validator for double-entry bookkeeping rules bound to a tolerance.

    Thin object wrapper over the module functions so services can hold a
    configured instance.
    """

    def __init__(self, tolerance: Optional[Decimal] = None):
        """
        Initialize validator.

        Args:
            tolerance: Acceptable debit/credit difference
                      (default from settings)
        """
        self.tolerance = to_money(tolerance) if tolerance is not None \
            else settings.ledger.BALANCE_TOLERANCE

    def validate_lines(self, lines: Sequence) -> None:
        validate_line_set(lines)

    def calculate_totals(self, lines: Iterable) -> Tuple[Decimal, Decimal, Decimal]:
        return calculate_totals(lines)

    def is_balanced(self, lines: Iterable) -> bool:
        return is_balanced(lines, self.tolerance)

    def can_transition(
        self,
        current: JournalStatus,
        target: JournalStatus,
        via_reversal: bool = False
    ) -> bool:
        return can_transition(current, target, via_reversal)

    def invoice_status_for(
        self,
        amount_total: Decimal,
        amount_paid: Decimal,
        current: InvoiceStatus = InvoiceStatus.OPEN
    ) -> InvoiceStatus:
        return invoice_status_for(amount_total, amount_paid, current, self.tolerance)
