"""
Ledger Kernel Services
"""
from .coa_service import CoAService
from .journal_service import JournalService
from .reversal_service import ReversalService
from .ar_service import ARService
from .activity_log import (
    ActivityLogger,
    ActivitySink,
    StoreActivitySink,
    LoggingActivitySink,
    MemoryActivitySink,
)

__all__ = [
    "CoAService",
    "JournalService",
    "ReversalService",
    "ARService",
    "ActivityLogger",
    "ActivitySink",
    "StoreActivitySink",
    "LoggingActivitySink",
    "MemoryActivitySink",
]
