"""
PostgreSQL Ledger Store
=======================

asyncpg-backed LedgerStore. The pool is created once and injected; every
unit of work acquires one connection, opens one transaction and sets the
tenant for row-level security.

Constraint violations are translated into kernel errors:
- uq_journal_entries_number / uq_ar_invoices_number -> DuplicateNumberError
- uq_journal_entries_reversed_from                  -> AlreadyReversedError
- ck_ar_invoices_amount_paid                        -> ExceedsBalanceError
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, List, Optional, Tuple
from uuid import UUID

import asyncpg

from ..config import settings
from ..constants import AccountType, InvoiceStatus, JournalStatus, OPEN_INVOICE_STATUSES
from ..exceptions import (
    AlreadyReversedError,
    DuplicateNumberError,
    ExceedsBalanceError,
    StoreUnavailableError,
)
from ..models.activity import ActivityLogEntry
from ..models.ar import ARInvoice, ARPayment, InvoiceFilters
from ..models.coa import Account
from ..models.journal import JournalEntry, JournalFilters, JournalLine
from ..money import to_money
from .base import LedgerSession, LedgerStore

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (
    OSError,
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
)


async def _commit(txn) -> None:
    """
    Commit a transaction, finishing even if the awaiting task is cancelled.

    Once COMMIT is on the wire the server decides the outcome; the
    cancellation is absorbed and the unit of work completes normally.
    """
    commit = asyncio.ensure_future(txn.commit())
    try:
        await asyncio.shield(commit)
    except asyncio.CancelledError:
        logger.warning("Cancelled during COMMIT, waiting for the server to finish")
        await commit


_JOURNAL_COLUMNS = """
    id, tenant_id, journal_number, journal_date, memo, status,
    posted_at, reversed_from, created_by, created_at, updated_at
"""

_INVOICE_COLUMNS = """
    id, tenant_id, invoice_number, customer_id, date_issued, due_date,
    amount_total, amount_paid, status, memo, created_by, created_at, updated_at
"""


# ==================== Row mapping ====================

def _account_from_row(row) -> Account:
    return Account(
        id=row["id"],
        tenant_id=row["tenant_id"],
        code=row["code"],
        name=row["name"],
        type=AccountType(row["type"]),
        is_active=row["is_active"],
        parent_id=row["parent_id"],
        created_at=row["created_at"],
    )


def _journal_from_row(row, lines: Optional[List[JournalLine]] = None) -> JournalEntry:
    return JournalEntry(
        id=row["id"],
        tenant_id=row["tenant_id"],
        journal_number=row["journal_number"],
        journal_date=row["journal_date"],
        memo=row["memo"],
        status=JournalStatus(row["status"]),
        posted_at=row["posted_at"],
        reversed_from=row["reversed_from"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        lines=lines or [],
    )


def _line_from_row(row) -> JournalLine:
    return JournalLine(
        id=row["id"],
        journal_id=row["journal_id"],
        account_id=row["account_id"],
        sort_order=row["sort_order"],
        debit=to_money(row["debit"]),
        credit=to_money(row["credit"]),
        description=row["description"],
        department_id=row["department_id"],
        reference_type=row["reference_type"],
        reference_id=row["reference_id"],
        account_code=row["account_code"],
        account_name=row["account_name"],
    )


def _invoice_from_row(row) -> ARInvoice:
    return ARInvoice(
        id=row["id"],
        tenant_id=row["tenant_id"],
        invoice_number=row["invoice_number"],
        customer_id=row["customer_id"],
        date_issued=row["date_issued"],
        due_date=row["due_date"],
        amount_total=to_money(row["amount_total"]),
        amount_paid=to_money(row["amount_paid"]),
        status=InvoiceStatus(row["status"]),
        memo=row["memo"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _payment_from_row(row) -> ARPayment:
    return ARPayment(
        id=row["id"],
        tenant_id=row["tenant_id"],
        invoice_id=row["invoice_id"],
        customer_id=row["customer_id"],
        payment_date=row["payment_date"],
        amount=to_money(row["amount"]),
        method=row["method"],
        reference=row["reference"],
        notes=row["notes"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        invoice_number=row["invoice_number"],
    )


def _translate_unique_violation(e: asyncpg.UniqueViolationError, details: dict) -> Exception:
    if e.constraint_name == "uq_journal_entries_reversed_from":
        return AlreadyReversedError(details=details)
    return DuplicateNumberError(details=details)


class _PostgresSession(LedgerSession):

    def __init__(self, conn, tenant_id: str):
        self.conn = conn
        self.tenant_id = tenant_id

    # ==================== Chart of Accounts ====================

    async def fetch_account(self, account_id: UUID) -> Optional[Account]:
        row = await self.conn.fetchrow(
            """
            SELECT id, tenant_id, code, name, type, is_active, parent_id, created_at
            FROM chart_of_accounts
            WHERE tenant_id = $1 AND id = $2
            """,
            self.tenant_id, account_id
        )
        return _account_from_row(row) if row else None

    async def fetch_account_by_code(self, code: str) -> Optional[Account]:
        row = await self.conn.fetchrow(
            """
            SELECT id, tenant_id, code, name, type, is_active, parent_id, created_at
            FROM chart_of_accounts
            WHERE tenant_id = $1 AND code = $2
            """,
            self.tenant_id, code
        )
        return _account_from_row(row) if row else None

    async def fetch_accounts(self, active_only: bool = True) -> List[Account]:
        rows = await self.conn.fetch(
            """
            SELECT id, tenant_id, code, name, type, is_active, parent_id, created_at
            FROM chart_of_accounts
            WHERE tenant_id = $1 AND (is_active OR NOT $2)
            ORDER BY code
            """,
            self.tenant_id, active_only
        )
        return [_account_from_row(row) for row in rows]

    # ==================== Journal entries ====================

    async def journal_number_exists(
        self,
        journal_number: str,
        exclude_id: Optional[UUID] = None
    ) -> bool:
        return await self.conn.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM journal_entries
                WHERE tenant_id = $1 AND journal_number = $2
                  AND ($3::uuid IS NULL OR id <> $3)
            )
            """,
            self.tenant_id, journal_number, exclude_id
        )

    async def insert_journal(self, entry: JournalEntry) -> None:
        try:
            await self.conn.execute(
                """
                INSERT INTO journal_entries (
                    id, tenant_id, journal_number, journal_date, memo, status,
                    posted_at, reversed_from, created_by, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                """,
                entry.id,
                self.tenant_id,
                entry.journal_number,
                entry.journal_date,
                entry.memo,
                entry.status.value,
                entry.posted_at,
                entry.reversed_from,
                entry.created_by,
                entry.created_at,
                entry.updated_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise _translate_unique_violation(
                e, {"journal_number": entry.journal_number, "journal_id": entry.reversed_from}
            ) from e
        await self._insert_lines(entry.id, entry.lines)

    async def _insert_lines(self, journal_id: UUID, lines: List[JournalLine]) -> None:
        await self.conn.executemany(
            """
            INSERT INTO journal_entry_lines (
                id, journal_id, account_id, sort_order, debit, credit,
                description, department_id, reference_type, reference_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            """,
            [
                (
                    line.id, journal_id, line.account_id, line.sort_order,
                    line.debit, line.credit, line.description,
                    line.department_id, line.reference_type, line.reference_id,
                )
                for line in lines
            ]
        )

    async def update_journal(self, entry: JournalEntry) -> None:
        try:
            await self.conn.execute(
                """
                UPDATE journal_entries
                SET journal_number = $3, journal_date = $4, memo = $5,
                    status = $6, posted_at = $7, updated_at = $8
                WHERE tenant_id = $1 AND id = $2
                """,
                self.tenant_id,
                entry.id,
                entry.journal_number,
                entry.journal_date,
                entry.memo,
                entry.status.value,
                entry.posted_at,
                entry.updated_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise _translate_unique_violation(e, {"journal_number": entry.journal_number}) from e

    async def replace_journal_lines(self, journal_id: UUID, lines: List[JournalLine]) -> None:
        await self.conn.execute(
            "DELETE FROM journal_entry_lines WHERE journal_id = $1",
            journal_id
        )
        await self._insert_lines(journal_id, lines)

    async def _fetch_lines(self, journal_ids: List[UUID]) -> dict:
        rows = await self.conn.fetch(
            """
            SELECT l.id, l.journal_id, l.account_id, l.sort_order, l.debit, l.credit,
                   l.description, l.department_id, l.reference_type, l.reference_id,
                   c.code AS account_code, c.name AS account_name
            FROM journal_entry_lines l
            JOIN chart_of_accounts c ON c.id = l.account_id
            WHERE l.journal_id = ANY($1::uuid[])
            ORDER BY l.journal_id, l.sort_order
            """,
            journal_ids
        )
        by_journal = {journal_id: [] for journal_id in journal_ids}
        for row in rows:
            by_journal[row["journal_id"]].append(_line_from_row(row))
        return by_journal

    async def fetch_journal(
        self,
        journal_id: UUID,
        for_update: bool = False
    ) -> Optional[JournalEntry]:
        lock = " FOR UPDATE" if for_update else ""
        row = await self.conn.fetchrow(
            f"""
            SELECT {_JOURNAL_COLUMNS}
            FROM journal_entries
            WHERE tenant_id = $1 AND id = $2{lock}
            """,
            self.tenant_id, journal_id
        )
        if not row:
            return None
        lines = await self._fetch_lines([journal_id])
        return _journal_from_row(row, lines[journal_id])

    async def delete_journal(self, journal_id: UUID) -> None:
        await self.conn.execute(
            "DELETE FROM journal_entries WHERE tenant_id = $1 AND id = $2",
            self.tenant_id, journal_id
        )

    async def find_reversal_of(self, journal_id: UUID) -> Optional[JournalEntry]:
        row = await self.conn.fetchrow(
            f"""
            SELECT {_JOURNAL_COLUMNS}
            FROM journal_entries
            WHERE tenant_id = $1 AND reversed_from = $2
            """,
            self.tenant_id, journal_id
        )
        return _journal_from_row(row) if row else None

    async def query_journals(
        self,
        filters: JournalFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[JournalEntry], int]:
        conditions = ["tenant_id = $1"]
        params = [self.tenant_id]
        param_idx = 2

        if filters.date_from:
            conditions.append(f"journal_date >= ${param_idx}")
            params.append(filters.date_from)
            param_idx += 1

        if filters.date_to:
            conditions.append(f"journal_date <= ${param_idx}")
            params.append(filters.date_to)
            param_idx += 1

        if filters.status:
            conditions.append(f"status = ${param_idx}")
            params.append(filters.status.value)
            param_idx += 1

        if filters.search:
            conditions.append(
                f"(journal_number ILIKE ${param_idx} OR memo ILIKE ${param_idx})"
            )
            params.append(f"%{filters.search}%")
            param_idx += 1

        where_clause = " AND ".join(conditions)

        total = await self.conn.fetchval(
            f"SELECT COUNT(*) FROM journal_entries WHERE {where_clause}",
            *params
        )
        rows = await self.conn.fetch(
            f"""
            SELECT {_JOURNAL_COLUMNS}
            FROM journal_entries
            WHERE {where_clause}
            ORDER BY journal_date DESC, created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
            """,
            *params, limit, offset
        )
        lines = await self._fetch_lines([row["id"] for row in rows])
        return [_journal_from_row(row, lines[row["id"]]) for row in rows], total

    # ==================== AR invoices ====================

    async def insert_invoice(self, invoice: ARInvoice) -> None:
        try:
            await self.conn.execute(
                """
                INSERT INTO ar_invoices (
                    id, tenant_id, invoice_number, customer_id, date_issued, due_date,
                    amount_total, amount_paid, status, memo, created_by, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                """,
                invoice.id,
                self.tenant_id,
                invoice.invoice_number,
                invoice.customer_id,
                invoice.date_issued,
                invoice.due_date,
                invoice.amount_total,
                invoice.amount_paid,
                invoice.status.value,
                invoice.memo,
                invoice.created_by,
                invoice.created_at,
                invoice.updated_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateNumberError(
                f"Invoice number {invoice.invoice_number} already exists",
                {"invoice_number": invoice.invoice_number}
            ) from e

    async def fetch_invoice(
        self,
        invoice_id: UUID,
        for_update: bool = False
    ) -> Optional[ARInvoice]:
        lock = " FOR UPDATE" if for_update else ""
        row = await self.conn.fetchrow(
            f"""
            SELECT {_INVOICE_COLUMNS}
            FROM ar_invoices
            WHERE tenant_id = $1 AND id = $2{lock}
            """,
            self.tenant_id, invoice_id
        )
        return _invoice_from_row(row) if row else None

    async def update_invoice(self, invoice: ARInvoice) -> None:
        try:
            await self.conn.execute(
                """
                UPDATE ar_invoices
                SET amount_paid = $3, status = $4, updated_at = $5
                WHERE tenant_id = $1 AND id = $2
                """,
                self.tenant_id,
                invoice.id,
                invoice.amount_paid,
                invoice.status.value,
                invoice.updated_at,
            )
        except asyncpg.CheckViolationError as e:
            raise ExceedsBalanceError(details={"invoice_id": invoice.id}) from e

    async def query_invoices(
        self,
        filters: InvoiceFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[ARInvoice], int]:
        conditions = ["tenant_id = $1"]
        params = [self.tenant_id]
        param_idx = 2

        if filters.status:
            conditions.append(f"status = ${param_idx}")
            params.append(filters.status.value)
            param_idx += 1

        if filters.customer_id:
            conditions.append(f"customer_id = ${param_idx}")
            params.append(filters.customer_id)
            param_idx += 1

        if filters.date_from:
            conditions.append(f"date_issued >= ${param_idx}")
            params.append(filters.date_from)
            param_idx += 1

        if filters.date_to:
            conditions.append(f"date_issued <= ${param_idx}")
            params.append(filters.date_to)
            param_idx += 1

        if filters.search:
            conditions.append(
                f"(invoice_number ILIKE ${param_idx} OR memo ILIKE ${param_idx})"
            )
            params.append(f"%{filters.search}%")
            param_idx += 1

        where_clause = " AND ".join(conditions)

        total = await self.conn.fetchval(
            f"SELECT COUNT(*) FROM ar_invoices WHERE {where_clause}",
            *params
        )
        rows = await self.conn.fetch(
            f"""
            SELECT {_INVOICE_COLUMNS}
            FROM ar_invoices
            WHERE {where_clause}
            ORDER BY date_issued DESC, created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
            """,
            *params, limit, offset
        )
        return [_invoice_from_row(row) for row in rows], total

    async def fetch_open_invoices(self, customer_id: Optional[UUID] = None) -> List[ARInvoice]:
        rows = await self.conn.fetch(
            f"""
            SELECT {_INVOICE_COLUMNS}
            FROM ar_invoices
            WHERE tenant_id = $1
              AND status = ANY($2::text[])
              AND ($3::uuid IS NULL OR customer_id = $3)
            ORDER BY due_date, invoice_number
            """,
            self.tenant_id,
            [status.value for status in OPEN_INVOICE_STATUSES],
            customer_id
        )
        return [_invoice_from_row(row) for row in rows]

    # ==================== AR payments ====================

    async def insert_payment(self, payment: ARPayment) -> None:
        await self.conn.execute(
            """
            INSERT INTO ar_payments (
                id, tenant_id, invoice_id, customer_id, payment_date, amount,
                method, reference, notes, created_by, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            """,
            payment.id,
            self.tenant_id,
            payment.invoice_id,
            payment.customer_id,
            payment.payment_date,
            payment.amount,
            payment.method,
            payment.reference,
            payment.notes,
            payment.created_by,
            payment.created_at,
        )

    async def fetch_payments(
        self,
        invoice_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
        since: Optional[date] = None
    ) -> List[ARPayment]:
        rows = await self.conn.fetch(
            """
            SELECT p.id, p.tenant_id, p.invoice_id, p.customer_id, p.payment_date,
                   p.amount, p.method, p.reference, p.notes, p.created_by, p.created_at,
                   i.invoice_number
            FROM ar_payments p
            JOIN ar_invoices i ON i.id = p.invoice_id
            WHERE p.tenant_id = $1
              AND ($2::uuid IS NULL OR p.invoice_id = $2)
              AND ($3::uuid IS NULL OR p.customer_id = $3)
              AND ($4::date IS NULL OR p.payment_date >= $4)
            ORDER BY p.payment_date DESC, p.created_at DESC
            """,
            self.tenant_id, invoice_id, customer_id, since
        )
        return [_payment_from_row(row) for row in rows]

    async def count_payments(self, invoice_id: UUID) -> int:
        return await self.conn.fetchval(
            "SELECT COUNT(*) FROM ar_payments WHERE tenant_id = $1 AND invoice_id = $2",
            self.tenant_id, invoice_id
        )

    # ==================== Activity log ====================

    async def insert_activity(self, entry: ActivityLogEntry) -> None:
        await self.conn.execute(
            """
            INSERT INTO activity_log (
                id, tenant_id, actor_user_id, entity, entity_id, action, diff, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8)
            """,
            entry.id,
            self.tenant_id,
            str(entry.actor_user_id),
            entry.entity.value,
            entry.entity_id,
            entry.action.value,
            json.dumps(entry.diff, default=str),
            entry.created_at,
        )


class PostgresLedgerStore(LedgerStore):
    """
    LedgerStore over an asyncpg connection pool.

    Usage:
        store = await PostgresLedgerStore.connect()
        facade = LedgerFacade(store)
    """

    def __init__(self, pool):
        """
        Initialize with database pool.

        Args:
            pool: asyncpg connection pool (owned by the caller)
        """
        self.pool = pool
        self._owns_pool = False

    @classmethod
    async def connect(cls, dsn: Optional[str] = None) -> "PostgresLedgerStore":
        """Create a pool from settings.db and wrap it."""
        try:
            pool = await asyncpg.create_pool(
                dsn or settings.db.url,
                min_size=settings.db.min_pool_size,
                max_size=settings.db.max_pool_size,
                command_timeout=settings.db.command_timeout,
            )
        except _CONNECTION_ERRORS as e:
            logger.error(f"Could not connect to ledger database: {e}")
            raise StoreUnavailableError(str(e)) from e
        store = cls(pool)
        store._owns_pool = True
        logger.info("Ledger store connected")
        return store

    @asynccontextmanager
    async def transaction(self, tenant_id: str) -> AsyncIterator[LedgerSession]:
        try:
            async with self.pool.acquire() as conn:
                txn = conn.transaction()
                await txn.start()
                try:
                    # Set tenant context for RLS
                    await conn.execute(
                        "SELECT set_config('app.tenant_id', $1, true)",
                        str(tenant_id)
                    )
                    yield _PostgresSession(conn, str(tenant_id))
                except BaseException:
                    await txn.rollback()
                    raise
                await _commit(txn)
        except _CONNECTION_ERRORS as e:
            logger.error(f"Ledger store unavailable: {e}")
            raise StoreUnavailableError(str(e)) from e

    async def close(self) -> None:
        if self._owns_pool:
            await self.pool.close()
