"""
Journal Reversal Tests
======================
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.constants import JournalStatus
from ledger_kernel.exceptions import (
    AlreadyReversedError,
    NotFoundError,
    NotPostedError,
    ValidationError,
)
from ledger_kernel.models.journal import CreateJournalRequest, JournalLineInput
from ledger_kernel.money import money_sum

from .conftest import create_test_journal


class TestReverseJournal:
    """Happy-path reversal."""

    @pytest.mark.asyncio
    async def test_reversal_swaps_lines(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        """
        Original: debit Cash 500, credit Revenue 500
        Reversal: debit Revenue 500, credit Cash 500
        """
        original = await create_test_journal(
            journal_service, ctx, cash_account_id, revenue_account_id,
            amount=Decimal("500"), journal_number="JV-ORIG"
        )

        reversal = await reversal_service.reverse_journal(ctx, original.id, date.today())

        assert reversal.status == JournalStatus.POSTED
        assert reversal.posted_at is not None
        assert reversal.reversed_from == original.id
        assert reversal.is_reversal
        assert reversal.journal_number == "JV-ORIG-REV"
        assert reversal.memo == "Reversal of JV-ORIG"

        by_account = {line.account_id: line for line in reversal.lines}
        assert by_account[cash_account_id].credit == Decimal("500.00")
        assert by_account[cash_account_id].debit == Decimal("0.00")
        assert by_account[revenue_account_id].debit == Decimal("500.00")
        assert by_account[revenue_account_id].credit == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_original_marked_reversed(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        original = await create_test_journal(journal_service, ctx, cash_account_id, revenue_account_id)
        await reversal_service.reverse_journal(ctx, original.id, date.today())

        stored = await journal_service.get_journal(ctx, original.id)
        assert stored.status == JournalStatus.REVERSED
        assert stored.posted_at == original.posted_at

    @pytest.mark.asyncio
    async def test_line_descriptions_prefixed(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        request = CreateJournalRequest(
            journal_number="JV-DESC",
            journal_date=date.today(),
            lines=[
                JournalLineInput(account_id=cash_account_id, debit=Decimal("75"), description="Cash sale"),
                JournalLineInput(account_id=revenue_account_id, credit=Decimal("75")),
            ],
        )
        draft = await journal_service.create_journal(ctx, request)
        await journal_service.post_journal(ctx, draft.id)

        reversal = await reversal_service.reverse_journal(ctx, draft.id, date.today())
        assert [line.description for line in reversal.lines] == ["Reversal: Cash sale", "Reversal"]

    @pytest.mark.asyncio
    async def test_preserves_line_metadata(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        """Department and reference carry over, order is kept."""
        department_id = uuid4()
        reference_id = uuid4()
        request = CreateJournalRequest(
            journal_number="JV-META",
            journal_date=date.today(),
            lines=[
                JournalLineInput(
                    account_id=cash_account_id, debit=Decimal("40"),
                    department_id=department_id,
                    reference_type="ar_invoice", reference_id=reference_id,
                ),
                JournalLineInput(account_id=revenue_account_id, credit=Decimal("40")),
            ],
        )
        draft = await journal_service.create_journal(ctx, request)
        await journal_service.post_journal(ctx, draft.id)

        reversal = await reversal_service.reverse_journal(ctx, draft.id, date.today())
        stored = await journal_service.get_journal(ctx, reversal.id)

        first = stored.lines[0]
        assert first.account_id == cash_account_id
        assert first.department_id == department_id
        assert first.reference_type == "ar_invoice"
        assert first.reference_id == reference_id
        assert first.account_code == "1010"

    @pytest.mark.asyncio
    async def test_custom_memo_and_date(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        original = await create_test_journal(journal_service, ctx, cash_account_id, revenue_account_id)
        reversal_date = date.today() + timedelta(days=1)

        reversal = await reversal_service.reverse_journal(
            ctx, original.id, reversal_date, memo="Wrong customer"
        )
        assert reversal.memo == "Wrong customer"
        assert reversal.journal_date == reversal_date

    @pytest.mark.asyncio
    async def test_original_plus_reversal_nets_to_zero(
        self, journal_service, reversal_service, ctx,
        cash_account_id, bank_account_id, revenue_account_id
    ):
        request = CreateJournalRequest(
            journal_number="JV-SPLIT",
            journal_date=date.today(),
            lines=[
                JournalLineInput(account_id=cash_account_id, debit=Decimal("300")),
                JournalLineInput(account_id=bank_account_id, debit=Decimal("200")),
                JournalLineInput(account_id=revenue_account_id, credit=Decimal("500")),
            ],
        )
        draft = await journal_service.create_journal(ctx, request)
        await journal_service.post_journal(ctx, draft.id)
        reversal = await reversal_service.reverse_journal(ctx, draft.id, date.today())

        original = await journal_service.get_journal(ctx, draft.id)
        for account_id in (cash_account_id, bank_account_id, revenue_account_id):
            net = money_sum(
                line.debit - line.credit
                for line in original.lines + reversal.lines
                if line.account_id == account_id
            )
            assert net == Decimal("0.00")

        assert reversal.is_balanced


class TestReversalGuards:
    """Reversal error cases."""

    @pytest.mark.asyncio
    async def test_double_reversal_rejected(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        """A second reversal is reported as already reversed, not as not-posted."""
        original = await create_test_journal(journal_service, ctx, cash_account_id, revenue_account_id)
        await reversal_service.reverse_journal(ctx, original.id, date.today())

        with pytest.raises(AlreadyReversedError):
            await reversal_service.reverse_journal(ctx, original.id, date.today())

        page = await journal_service.list_journals(ctx)
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_draft_cannot_be_reversed(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        draft = await create_test_journal(
            journal_service, ctx, cash_account_id, revenue_account_id, post=False
        )
        with pytest.raises(NotPostedError):
            await reversal_service.reverse_journal(ctx, draft.id, date.today())

        stored = await journal_service.get_journal(ctx, draft.id)
        assert stored.status == JournalStatus.DRAFT

    @pytest.mark.asyncio
    async def test_reversal_itself_can_be_reversed(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        original = await create_test_journal(
            journal_service, ctx, cash_account_id, revenue_account_id, journal_number="JV-X"
        )
        reversal = await reversal_service.reverse_journal(ctx, original.id, date.today())
        again = await reversal_service.reverse_journal(ctx, reversal.id, date.today())

        assert again.journal_number == "JV-X-REV-REV"
        assert again.reversed_from == reversal.id

    @pytest.mark.asyncio
    async def test_unknown_journal(self, reversal_service, ctx):
        with pytest.raises(NotFoundError):
            await reversal_service.reverse_journal(ctx, uuid4(), date.today())

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_reverse(
        self, journal_service, reversal_service, ctx, other_ctx,
        cash_account_id, revenue_account_id
    ):
        original = await create_test_journal(journal_service, ctx, cash_account_id, revenue_account_id)
        with pytest.raises(NotFoundError):
            await reversal_service.reverse_journal(other_ctx, original.id, date.today())

    @pytest.mark.asyncio
    async def test_missing_date_rejected(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        original = await create_test_journal(journal_service, ctx, cash_account_id, revenue_account_id)
        with pytest.raises(ValidationError):
            await reversal_service.reverse_journal(ctx, original.id, None)

    @pytest.mark.asyncio
    async def test_memo_too_long_rejected(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        original = await create_test_journal(journal_service, ctx, cash_account_id, revenue_account_id)
        with pytest.raises(ValidationError):
            await reversal_service.reverse_journal(ctx, original.id, date.today(), memo="m" * 1001)


class TestReversalNumbering:

    @pytest.mark.asyncio
    async def test_taken_suffix_falls_back(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        """An unrelated entry holding NUM-REV pushes the reversal to NUM-REV-2."""
        original = await create_test_journal(
            journal_service, ctx, cash_account_id, revenue_account_id, journal_number="JV-7"
        )
        await create_test_journal(
            journal_service, ctx, cash_account_id, revenue_account_id, journal_number="JV-7-REV"
        )

        reversal = await reversal_service.reverse_journal(ctx, original.id, date.today())
        assert reversal.journal_number == "JV-7-REV-2"

    @pytest.mark.asyncio
    async def test_long_number_truncated_to_fit(
        self, journal_service, reversal_service, ctx, cash_account_id, revenue_account_id
    ):
        number = "J" * 100
        original = await create_test_journal(
            journal_service, ctx, cash_account_id, revenue_account_id, journal_number=number
        )
        reversal = await reversal_service.reverse_journal(ctx, original.id, date.today())

        assert len(reversal.journal_number) == 100
        assert reversal.journal_number.endswith("-REV")
