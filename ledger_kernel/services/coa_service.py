"""
Chart of Accounts Service
=========================

Read-only registry of ledger accounts used to validate journal lines and
to resolve the fixed cash/AR accounts for payment postings.

Accounts are maintained by an external module, so a per-tenant snapshot is
cached and shared across concurrent callers until its TTL expires.
"""
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import UUID

from ..config import settings
from ..context import TenantContext
from ..exceptions import InactiveAccountError, NotFoundError
from ..models.coa import Account
from ..store.base import LedgerSession, LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class _Snapshot:
    expires_at: float
    by_id: Dict[UUID, Account]
    by_code: Dict[str, Account]


class CoAService:
    """
    Chart of Accounts Service

    Responsibilities:
    - Account lookup by id and by code
    - Active chart listing
    - Line account validation (exists + active)

    Every method accepts an optional open session so callers already inside
    a transaction can resolve accounts without opening a second one.
    """

    def __init__(self, store: LedgerStore, ttl: Optional[float] = None):
        """
        Initialize with the ledger store.

        Args:
            store: LedgerStore handle
            ttl: Cache lifetime in seconds (default from settings, 0 disables)
        """
        self.store = store
        self.ttl = settings.ledger.ACCOUNT_CACHE_TTL if ttl is None else ttl
        self._cache: Dict[str, _Snapshot] = {}

    def invalidate(self, tenant_id: Optional[str] = None) -> None:
        """Drop cached accounts for one tenant, or all tenants."""
        if tenant_id is None:
            self._cache.clear()
        else:
            self._cache.pop(str(tenant_id), None)

    async def _snapshot(
        self,
        ctx: TenantContext,
        session: Optional[LedgerSession] = None
    ) -> _Snapshot:
        cached = self._cache.get(ctx.tenant_id)
        if cached and cached.expires_at > time.monotonic():
            return cached

        if session is not None:
            accounts = await session.fetch_accounts(active_only=False)
        else:
            async with self.store.transaction(ctx.tenant_id) as own_session:
                accounts = await own_session.fetch_accounts(active_only=False)

        snapshot = _Snapshot(
            expires_at=time.monotonic() + self.ttl,
            by_id={account.id: account for account in accounts},
            by_code={account.code: account for account in accounts},
        )
        if self.ttl > 0:
            self._cache[ctx.tenant_id] = snapshot
        logger.debug(f"Loaded {len(accounts)} accounts for tenant {ctx.tenant_id}")
        return snapshot

    async def get_account_by_id(
        self,
        ctx: TenantContext,
        account_id: UUID,
        session: Optional[LedgerSession] = None
    ) -> Optional[Account]:
        """Get account by ID."""
        snapshot = await self._snapshot(ctx, session)
        return snapshot.by_id.get(account_id)

    async def get_account_by_code(
        self,
        ctx: TenantContext,
        code: str,
        session: Optional[LedgerSession] = None
    ) -> Optional[Account]:
        """
        Get account by code.

        Args:
            ctx: Tenant context
            code: Account code (e.g., "1010")

        Returns:
            Account if found, None otherwise
        """
        snapshot = await self._snapshot(ctx, session)
        return snapshot.by_code.get(code)

    async def list_accounts(
        self,
        ctx: TenantContext,
        active_only: bool = True,
        session: Optional[LedgerSession] = None
    ) -> List[Account]:
        """Chart of accounts ordered by code."""
        snapshot = await self._snapshot(ctx, session)
        accounts = [
            account for account in snapshot.by_id.values()
            if account.is_active or not active_only
        ]
        return sorted(accounts, key=lambda account: account.code)

    async def require_active_account(
        self,
        ctx: TenantContext,
        account_id: UUID,
        session: Optional[LedgerSession] = None
    ) -> Account:
        """
        Resolve a line account.

        Raises:
            NotFoundError: account does not exist in the tenant
            InactiveAccountError: account exists but is deactivated
        """
        account = await self.get_account_by_id(ctx, account_id, session)
        if account is None:
            raise NotFoundError("Account", account_id)
        if not account.is_active:
            raise InactiveAccountError(
                f"Account {account.code} ({account.name}) is inactive",
                details={"account_id": account_id, "code": account.code}
            )
        return account
