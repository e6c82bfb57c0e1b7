"""
Reversal Service
================

Negates a posted journal entry with a new, immediately posted entry whose
lines mirror the original with debit and credit swapped.

Double reversal is detected through the reversed_from back-reference,
never by guessing from the reversal's journal number.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from ..config import settings
from ..constants import ActivityAction, EntityType, JournalStatus
from ..context import TenantContext
from ..exceptions import (
    AlreadyReversedError,
    NotFoundError,
    NotPostedError,
    ValidationError,
)
from ..models.journal import JournalEntry, JournalLine
from ..store.base import LedgerSession, LedgerStore
from ..validators import DoubleEntryValidator
from .activity_log import ActivityLogger

logger = logging.getLogger(__name__)


class ReversalService:
    """
    Reversal Service

    Responsibilities:
    - Mirror a posted entry with debit and credit swapped
    - Mark the original reversed in the same transaction
    - Refuse a second reversal of the same entry
    """

    def __init__(
        self,
        store: LedgerStore,
        activity: Optional[ActivityLogger] = None,
        validator: Optional[DoubleEntryValidator] = None
    ):
        self.store = store
        self.activity = activity or ActivityLogger()
        self.validator = validator or DoubleEntryValidator()

    async def reverse_journal(
        self,
        ctx: TenantContext,
        journal_id: UUID,
        reversal_date: date,
        memo: Optional[str] = None
    ) -> JournalEntry:
        """
        Reverse a posted journal entry.

        Creates the reversal (posted), links it via reversed_from and marks
        the original as reversed, all in one transaction.

        Args:
            ctx: Tenant context
            journal_id: Original journal UUID
            reversal_date: Date of the reversing entry
            memo: Reversal memo (default "Reversal of {number}")

        Returns:
            The new reversing JournalEntry

        Raises:
            NotFoundError, AlreadyReversedError, NotPostedError, ValidationError
        """
        errors = []
        if not reversal_date:
            errors.append("Reversal date is required")
        if memo is not None and len(memo) > settings.ledger.MAX_MEMO_LENGTH:
            errors.append(f"Memo must be at most {settings.ledger.MAX_MEMO_LENGTH} characters")
        if errors:
            raise ValidationError(errors=errors)

        async with self.store.transaction(ctx.tenant_id) as session:
            original = await session.fetch_journal(journal_id, for_update=True)
            if original is None:
                raise NotFoundError("Journal entry", journal_id)

            existing = await session.find_reversal_of(original.id)
            if existing is not None:
                raise AlreadyReversedError(
                    f"Journal {original.journal_number} has already been reversed "
                    f"by {existing.journal_number}",
                    {"journal_id": original.id, "reversal_id": existing.id}
                )

            if not self.validator.can_transition(
                original.status, JournalStatus.REVERSED, via_reversal=True
            ):
                raise NotPostedError(
                    f"Cannot reverse journal {original.journal_number}: "
                    f"status is {original.status.value}",
                    {"journal_id": original.id, "status": original.status.value}
                )

            reversal_number = await self._reversal_number(session, original.journal_number)
            now = datetime.now(timezone.utc)
            reversal_id = uuid4()

            reversal = JournalEntry(
                id=reversal_id,
                tenant_id=ctx.tenant_id,
                journal_number=reversal_number,
                journal_date=reversal_date,
                memo=memo or f"Reversal of {original.journal_number}",
                status=JournalStatus.POSTED,
                posted_at=now,
                reversed_from=original.id,
                created_by=ctx.actor,
                created_at=now,
                updated_at=now,
                lines=[
                    JournalLine(
                        id=uuid4(),
                        journal_id=reversal_id,
                        account_id=line.account_id,
                        sort_order=line.sort_order,
                        # Swap debit and credit
                        debit=line.credit,
                        credit=line.debit,
                        description=f"Reversal: {line.description}" if line.description else "Reversal",
                        department_id=line.department_id,
                        reference_type=line.reference_type,
                        reference_id=line.reference_id,
                        account_code=line.account_code,
                        account_name=line.account_name,
                    )
                    for line in original.lines
                ],
            )
            await session.insert_journal(reversal)

            original.status = JournalStatus.REVERSED
            original.updated_at = now
            await session.update_journal(original)

        logger.info(
            f"Journal reversed: {original.journal_number} -> {reversal.journal_number} "
            f"tenant={ctx.tenant_id}"
        )
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, reversal.id, ActivityAction.CREATE,
            after=reversal.to_dict()
        )
        await self.activity.log(
            ctx, EntityType.JOURNAL_ENTRY, original.id, ActivityAction.REVERSE,
            before={"status": JournalStatus.POSTED.value},
            after={"status": original.status.value, "reversal_id": str(reversal.id)}
        )
        return reversal

    async def _reversal_number(self, session: LedgerSession, journal_number: str) -> str:
        """
        Derive "{number}-REV", falling back to "-REV-2", "-REV-3", ... when an
        unrelated entry already holds the candidate.
        """
        suffix = settings.ledger.REVERSAL_SUFFIX
        max_length = settings.ledger.MAX_NUMBER_LENGTH
        candidate = f"{journal_number[:max_length - len(suffix)]}{suffix}"
        attempt = 1
        while await session.journal_number_exists(candidate):
            attempt += 1
            tail = f"{suffix}-{attempt}"
            candidate = f"{journal_number[:max_length - len(tail)]}{tail}"
        return candidate
