"""
Ledger Kernel Integration Layer

Single entry point for callers of the kernel.
"""
from .facade import LedgerFacade

__all__ = [
    "LedgerFacade",
]
