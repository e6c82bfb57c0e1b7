"""
Journal Service
===============

Core service for creating and managing journal entries.

Key Features:
- Atomic journal creation (header + lines in one transaction)
- Draft editing with full line-set replacement
- Posting guarded by the double-entry balance check
- Draft-only deletion
- Filtered, paginated listing with derived totals

State machine: draft --post--> posted --reverse--> reversed
(reversal lives in ReversalService)
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from ..constants import ActivityAction, EntityType, JournalStatus
from ..context import TenantContext
from ..exceptions import (
    DuplicateNumberError,
    NotDraftError,
    NotFoundError,
    UnbalancedError,
    ValidationError,
)
from ..models.journal import (
    JournalEntry,
    JournalLine,
    JournalLineInput,
    CreateJournalRequest,
    UpdateJournalRequest,
    JournalFilters,
    JournalPage,
)
from ..money import format_money
from ..store.base import LedgerSession, LedgerStore
from ..validators import DoubleEntryValidator, page_window
from .activity_log import ActivityLogger
from .coa_service import CoAService

logger = logging.getLogger(__name__)


class JournalService:
    """
    Journal Entry Service

    Responsibilities:
    - Create draft journal entries (atomic)
    - Update / delete drafts
    - Post drafts after re-checking balance
    - Query journal entries
    """

    def __init__(
        self,
        store: LedgerStore,
        coa_service: CoAService,
        activity: Optional[ActivityLogger] = None,
        validator: Optional[DoubleEntryValidator] = None
    ):
        """
        Initialize with store and CoA service.

        Args:
            store: LedgerStore handle
            coa_service: Chart of Accounts service for line account checks
            activity: Activity logger (optional)
            validator: Double-entry validator (default tolerance from settings)
        """
        self.store = store
        self.coa = coa_service
        self.activity = activity or ActivityLogger()
        self.validator = validator or DoubleEntryValidator()

    # ==================== Create ====================

    async def create_journal(
        self,
        ctx: TenantContext,
        request: CreateJournalRequest
    ) -> JournalEntry:
        """
        Create a draft journal entry with lines.

        Drafts may be unbalanced; balance is enforced by post_journal.

        Raises:
            ValidationError: malformed header or line set
            NotFoundError / InactiveAccountError: bad line account
            DuplicateNumberError: journal number already used in the tenant
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            entry = await self._insert(ctx, session, request, post=False)

        logger.info(
            f"Journal created: {entry.journal_number} id={entry.id} "
            f"tenant={ctx.tenant_id} lines={len(entry.lines)}"
        )
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, entry.id, ActivityAction.CREATE,
            after=entry.to_dict()
        )
        return entry

    async def create_posted_journal(
        self,
        ctx: TenantContext,
        request: CreateJournalRequest
    ) -> JournalEntry:
        """
        Create and post a journal entry in a single transaction.

        Used for system postings (AR cash receipts) that never sit in draft.
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            entry = await self._insert(ctx, session, request, post=True)

        logger.info(
            f"Journal posted: {entry.journal_number} id={entry.id} "
            f"tenant={ctx.tenant_id} total={format_money(entry.total_debit)}"
        )
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, entry.id, ActivityAction.CREATE,
            after=entry.to_dict()
        )
        return entry

    async def _insert(
        self,
        ctx: TenantContext,
        session: LedgerSession,
        request: CreateJournalRequest,
        post: bool
    ) -> JournalEntry:
        errors = request.validate()
        if errors:
            raise ValidationError(errors=errors)

        self.validator.validate_lines(request.lines)

        journal_id = uuid4()
        lines = await self._build_lines(ctx, session, journal_id, request.lines)

        if await session.journal_number_exists(request.journal_number):
            raise DuplicateNumberError(
                f"Journal number {request.journal_number} already exists",
                {"journal_number": request.journal_number}
            )

        now = datetime.now(timezone.utc)
        entry = JournalEntry(
            id=journal_id,
            tenant_id=ctx.tenant_id,
            journal_number=request.journal_number,
            journal_date=request.journal_date,
            memo=request.memo,
            status=JournalStatus.DRAFT,
            created_by=ctx.actor,
            created_at=now,
            updated_at=now,
            lines=lines,
        )

        if post:
            self._ensure_balanced(entry)
            entry.status = JournalStatus.POSTED
            entry.posted_at = now

        await session.insert_journal(entry)
        return entry

    async def _build_lines(
        self,
        ctx: TenantContext,
        session: LedgerSession,
        journal_id: UUID,
        inputs: List[JournalLineInput]
    ) -> List[JournalLine]:
        """Resolve line accounts (must exist and be active) and assign sort order."""
        lines = []
        for idx, line_input in enumerate(inputs, 1):
            account = await self.coa.require_active_account(ctx, line_input.account_id, session)
            lines.append(
                JournalLine(
                    id=uuid4(),
                    journal_id=journal_id,
                    account_id=account.id,
                    sort_order=line_input.sort_order if line_input.sort_order is not None else idx,
                    debit=line_input.debit,
                    credit=line_input.credit,
                    description=line_input.description,
                    department_id=line_input.department_id,
                    reference_type=line_input.reference_type,
                    reference_id=line_input.reference_id,
                    account_code=account.code,
                    account_name=account.name,
                )
            )
        lines.sort(key=lambda line: line.sort_order)
        return lines

    def _ensure_balanced(self, entry: JournalEntry) -> None:
        total_debit, total_credit, difference = self.validator.calculate_totals(entry.lines)
        if not self.validator.is_balanced(entry.lines):
            raise UnbalancedError(
                f"Journal is not balanced: "
                f"Total Debit={total_debit:,.2f}, Total Credit={total_credit:,.2f}, "
                f"Difference={difference:,.2f}",
                {
                    "total_debit": format_money(total_debit),
                    "total_credit": format_money(total_credit),
                }
            )

    async def _load(
        self,
        session: LedgerSession,
        journal_id: UUID,
        for_update: bool = False
    ) -> JournalEntry:
        entry = await session.fetch_journal(journal_id, for_update=for_update)
        if entry is None:
            raise NotFoundError("Journal entry", journal_id)
        return entry

    def _ensure_draft(self, entry: JournalEntry, action: str) -> None:
        if not self.validator.can_transition(entry.status, JournalStatus.DRAFT):
            raise NotDraftError(
                f"Cannot {action} journal {entry.journal_number}: status is {entry.status.value}",
                {"journal_id": entry.id, "status": entry.status.value}
            )

    # ==================== Update ====================

    async def update_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        request: UpdateJournalRequest
    ) -> JournalEntry:
        """
        Patch a draft entry's header and/or replace its whole line set.

        Raises:
            NotFoundError, NotDraftError, ValidationError, DuplicateNumberError
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            entry = await self._load(session, journal_id, for_update=True)
            self._ensure_draft(entry, "update")
            before = entry.to_dict()

            errors = request.validate()
            if errors:
                raise ValidationError(errors=errors)

            if request.journal_number is not None and request.journal_number != entry.journal_number:
                if await session.journal_number_exists(request.journal_number, exclude_id=entry.id):
                    raise DuplicateNumberError(
                        f"Journal number {request.journal_number} already exists",
                        {"journal_number": request.journal_number}
                    )
                entry.journal_number = request.journal_number
            if request.journal_date is not None:
                entry.journal_date = request.journal_date
            if request.memo is not None:
                entry.memo = request.memo

            if request.lines is not None:
                self.validator.validate_lines(request.lines)
                entry.lines = await self._build_lines(ctx, session, entry.id, request.lines)
                await session.replace_journal_lines(entry.id, entry.lines)

            entry.updated_at = datetime.now(timezone.utc)
            await session.update_journal(entry)

        logger.info(f"Journal updated: {entry.journal_number} id={entry.id} tenant={ctx.tenant_id}")
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, entry.id, ActivityAction.UPDATE,
            before=before, after=entry.to_dict()
        )
        return entry

    # ==================== Post ====================

    async def post_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID
    ) -> JournalEntry:
        """
        Post a draft entry.

        Balance is recomputed over the stored lines; this check is never
        skipped.

        Raises:
            NotFoundError, NotDraftError, UnbalancedError
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            entry = await self._load(session, journal_id, for_update=True)
            if not self.validator.can_transition(entry.status, JournalStatus.POSTED):
                raise NotDraftError(
                    f"Cannot post journal {entry.journal_number}: status is {entry.status.value}",
                    {"journal_id": entry.id, "status": entry.status.value}
                )
            self._ensure_balanced(entry)

            now = datetime.now(timezone.utc)
            entry.status = JournalStatus.POSTED
            entry.posted_at = now
            entry.updated_at = now
            await session.update_journal(entry)

        logger.info(
            f"Journal posted: {entry.journal_number} id={entry.id} "
            f"tenant={ctx.tenant_id} total={format_money(entry.total_debit)}"
        )
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, entry.id, ActivityAction.POST,
            before={"status": JournalStatus.DRAFT.value},
            after={"status": entry.status.value, "posted_at": entry.posted_at.isoformat()}
        )
        return entry

    # ==================== Delete ====================

    async def delete_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID
    ) -> None:
        """Delete a draft entry and its lines."""
        async with self.store.transaction(ctx.tenant_id) as session:
            entry = await self._load(session, journal_id, for_update=True)
            self._ensure_draft(entry, "delete")
            await session.delete_journal(entry.id)

        logger.info(f"Journal deleted: {entry.journal_number} id={entry.id} tenant={ctx.tenant_id}")
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, entry.id, ActivityAction.DELETE,
            before=entry.to_dict()
        )

    # ==================== Query ====================

    async def get_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID
    ) -> JournalEntry:
        """
        Get journal entry with lines joined to account code/name.

        Raises:
            NotFoundError
        """
        async with self.store.transaction(ctx.tenant_id) as session:
            return await self._load(session, journal_id)

    async def list_journals(
        self,
        ctx: TenantContext,
        filters: Optional[JournalFilters] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> JournalPage:
        """
        List journal entries with filtering.

        Args:
            ctx: Tenant context
            filters: search (number/memo substring), status, date range
            page: 1-based page number
            limit: Page size (default 25, max 100)

        Returns:
            JournalPage ordered by date desc, created_at desc; each entry
            carries its lines so total_debit/total_credit are derived.
        """
        page, limit, offset = page_window(page, limit)
        async with self.store.transaction(ctx.tenant_id) as session:
            entries, total = await session.query_journals(filters or JournalFilters(), limit, offset)
        return JournalPage(entries=entries, total=total, page=page, limit=limit)
