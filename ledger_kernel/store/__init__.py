"""
Ledger Kernel Data Stores
"""
from .base import LedgerStore, LedgerSession
from .memory import InMemoryLedgerStore
from .postgres import PostgresLedgerStore
from .schema import SCHEMA_SQL, apply_schema

__all__ = [
    "LedgerStore",
    "LedgerSession",
    "InMemoryLedgerStore",
    "PostgresLedgerStore",
    "SCHEMA_SQL",
    "apply_schema",
]
