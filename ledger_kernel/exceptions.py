"""
Ledger Kernel Errors
====================

Every failure raised by the kernel is a LedgerError carrying a stable
kind and code plus a human-readable message.

Kinds:
- VALIDATION:    malformed input, never partially applied
- NOT_FOUND:     entity missing in the caller's tenant scope
- CONFLICT:      transition illegal given current state, re-fetch before retry
- BUSINESS_RULE: wrong lifecycle stage or amount rule violated
- DEPENDENCY:    accounts missing/inactive, store unreachable, timeout
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BUSINESS_RULE = "BUSINESS_RULE"
    DEPENDENCY = "DEPENDENCY"


class LedgerError(Exception):
    """Base ledger exception."""

    kind: ErrorKind = ErrorKind.DEPENDENCY
    code: str = "LEDGER_ERROR"
    default_message: str = "Ledger operation failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": {key: _jsonable(value) for key, value in self.details.items()},
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return str(value)


# ==================== Validation ====================

class ValidationError(LedgerError):
    """Raised when input is malformed. Carries every message found."""

    kind = ErrorKind.VALIDATION
    code = "VALIDATION_FAILED"
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors or [message or self.default_message])
        if message is None:
            message = "; ".join(self.errors)
        details = dict(details or {})
        details.setdefault("errors", self.errors)
        super().__init__(message, details)


class TooFewLinesError(ValidationError):
    code = "TOO_FEW_LINES"
    default_message = "Journal must have at least 2 lines for double-entry bookkeeping"


class MixedLineError(ValidationError):
    code = "MIXED_LINE"
    default_message = "A line cannot have both debit and credit amounts"


class NegativeAmountError(ValidationError):
    code = "NEGATIVE_AMOUNT"
    default_message = "Debit and credit must be non-negative"


class EmptyLineError(ValidationError):
    code = "EMPTY_LINE"
    default_message = "A line must have either a debit or credit amount"


class InactiveAccountError(ValidationError):
    code = "INACTIVE_ACCOUNT"
    default_message = "Account is inactive"


# ==================== Not found ====================

class NotFoundError(LedgerError):
    """Raised when the referenced entity does not exist in the tenant scope."""

    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any = None):
        message = f"{entity} not found"
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        super().__init__(message, {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


# ==================== Conflict ====================

class DuplicateNumberError(LedgerError):
    kind = ErrorKind.CONFLICT
    code = "DUPLICATE_NUMBER"
    default_message = "Number already exists"


class AlreadyReversedError(LedgerError):
    kind = ErrorKind.CONFLICT
    code = "ALREADY_REVERSED"
    default_message = "This journal entry has already been reversed"


class AlreadyVoidError(LedgerError):
    kind = ErrorKind.CONFLICT
    code = "ALREADY_VOID"
    default_message = "Invoice is already void"


class AlreadyPaidError(LedgerError):
    kind = ErrorKind.CONFLICT
    code = "ALREADY_PAID"
    default_message = "Invoice is already paid"


class InvoiceVoidError(LedgerError):
    kind = ErrorKind.CONFLICT
    code = "VOID"
    default_message = "Cannot apply payment to voided invoice"


# ==================== Business rules ====================

class UnbalancedError(LedgerError):
    kind = ErrorKind.BUSINESS_RULE
    code = "UNBALANCED"
    default_message = "Total debits must equal total credits"


class ExceedsBalanceError(LedgerError):
    kind = ErrorKind.BUSINESS_RULE
    code = "EXCEEDS_BALANCE"
    default_message = "Payment amount exceeds balance due"


class HasPaymentsError(LedgerError):
    kind = ErrorKind.BUSINESS_RULE
    code = "HAS_PAYMENTS"
    default_message = "Cannot void invoice with payments"


class NotDraftError(LedgerError):
    kind = ErrorKind.BUSINESS_RULE
    code = "NOT_DRAFT"
    default_message = "Only draft journal entries can be changed"


class NotPostedError(LedgerError):
    kind = ErrorKind.BUSINESS_RULE
    code = "NOT_POSTED"
    default_message = "Only posted journal entries can be reversed"


# ==================== Dependency ====================

class DependencyError(LedgerError):
    kind = ErrorKind.DEPENDENCY
    code = "DEPENDENCY_FAILED"


class AccountsUnavailableError(DependencyError):
    code = "ACCOUNTS_UNAVAILABLE"
    default_message = "Required ledger accounts are missing or inactive"


class StoreUnavailableError(DependencyError):
    code = "STORE_UNAVAILABLE"
    default_message = "Data store is unreachable"


class OperationTimeoutError(DependencyError):
    code = "TIMEOUT"
    default_message = "Operation timed out"
