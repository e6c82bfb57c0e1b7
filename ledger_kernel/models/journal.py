"""
Journal Entry Models
"""
from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from ..config import settings
from ..constants import JournalStatus
from ..money import ZERO, format_money, money_sum, to_money


@dataclass
class JournalLineInput:
    """Input for creating a journal line"""
    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None
    department_id: Optional[UUID] = None
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    sort_order: Optional[int] = None

    def __post_init__(self):
        """Normalise amounts to fixed-point; sign rules live in the validator"""
        self.debit = to_money(self.debit)
        self.credit = to_money(self.credit)


@dataclass
class JournalLine:
    """Journal line entity"""
    id: UUID
    journal_id: UUID
    account_id: UUID
    sort_order: int
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None
    department_id: Optional[UUID] = None
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None

    # Joined fields
    account_code: Optional[str] = None
    account_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "journal_id": str(self.journal_id),
            "account_id": str(self.account_id),
            "account_code": self.account_code,
            "account_name": self.account_name,
            "sort_order": self.sort_order,
            "debit": format_money(self.debit),
            "credit": format_money(self.credit),
            "description": self.description,
            "department_id": str(self.department_id) if self.department_id else None,
            "reference_type": self.reference_type,
            "reference_id": str(self.reference_id) if self.reference_id else None,
        }


@dataclass
class JournalEntry:
    """Journal entry entity (header + owned lines)"""
    id: UUID
    tenant_id: str
    journal_number: str
    journal_date: date
    memo: Optional[str] = None
    status: JournalStatus = JournalStatus.DRAFT
    posted_at: Optional[datetime] = None
    reversed_from: Optional[UUID] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    lines: List[JournalLine] = field(default_factory=list)

    @property
    def total_debit(self) -> Decimal:
        return money_sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> Decimal:
        return money_sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debit - self.total_credit) < settings.ledger.BALANCE_TOLERANCE

    @property
    def is_reversal(self) -> bool:
        """True if this journal is a reversal of another journal."""
        return self.reversed_from is not None

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "journal_number": self.journal_number,
            "date": self.journal_date.isoformat(),
            "memo": self.memo,
            "status": self.status.value,
            "posted_at": self.posted_at.isoformat() if self.posted_at else None,
            "reversed_from": str(self.reversed_from) if self.reversed_from else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "total_debit": format_money(self.total_debit),
            "total_credit": format_money(self.total_credit),
            "is_balanced": self.is_balanced,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


def _header_errors(journal_number, memo, lines) -> List[str]:
    limits = settings.ledger
    errors = []
    if journal_number is not None:
        if not journal_number.strip():
            errors.append("Journal number is required")
        elif len(journal_number) > limits.MAX_NUMBER_LENGTH:
            errors.append(f"Journal number must be at most {limits.MAX_NUMBER_LENGTH} characters")
    if memo is not None and len(memo) > limits.MAX_MEMO_LENGTH:
        errors.append(f"Memo must be at most {limits.MAX_MEMO_LENGTH} characters")
    for idx, line in enumerate(lines or [], 1):
        if line.description and len(line.description) > limits.MAX_DESCRIPTION_LENGTH:
            errors.append(
                f"Line {idx}: description must be at most {limits.MAX_DESCRIPTION_LENGTH} characters"
            )
    return errors


@dataclass
class CreateJournalRequest:
    """Request for creating a draft journal entry"""
    journal_number: str
    journal_date: date
    memo: Optional[str] = None
    lines: List[JournalLineInput] = field(default_factory=list)

    def validate(self) -> List[str]:
        """Validate header fields (line amounts are checked by the validator)"""
        errors = []
        if self.journal_number is None:
            errors.append("Journal number is required")
        if not self.journal_date:
            errors.append("Journal date is required")
        errors.extend(_header_errors(self.journal_number, self.memo, self.lines))
        return errors


@dataclass
class UpdateJournalRequest:
    """
    Partial update of a draft entry.

    Header fields left as None are unchanged. When lines is given the
    whole line set is replaced.
    """
    journal_number: Optional[str] = None
    journal_date: Optional[date] = None
    memo: Optional[str] = None
    lines: Optional[List[JournalLineInput]] = None

    def validate(self) -> List[str]:
        return _header_errors(self.journal_number, self.memo, self.lines)


@dataclass
class JournalFilters:
    search: Optional[str] = None
    status: Optional[JournalStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@dataclass
class JournalPage:
    entries: List[JournalEntry]
    total: int
    page: int
    limit: int

    def to_dict(self) -> dict:
        return {
            "entries": [entry.to_dict(include_lines=False) for entry in self.entries],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
        }
