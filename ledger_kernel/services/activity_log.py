"""
Activity Log
============

Fire-and-forget audit trail. Services call ActivityLogger.log() after a
mutation has committed; a failing sink is logged and never surfaces to the
caller, since the audit trail is not part of the ledger's correctness
contract.

Inside collect_activity() entries are buffered instead of recorded, so code
that runs an operation under a timeout can record them with flush_activity()
once the operation has returned.
"""
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple
from uuid import UUID

from ..constants import ActivityAction, EntityType
from ..context import TenantContext
from ..models.activity import ActivityLogEntry
from ..store.base import LedgerStore

logger = logging.getLogger(__name__)

PendingActivity = List[Tuple["ActivityLogger", ActivityLogEntry]]

_pending: ContextVar[Optional[PendingActivity]] = ContextVar(
    "ledger_kernel_pending_activity", default=None
)


class ActivitySink(Protocol):
    async def record(self, entry: ActivityLogEntry) -> None:
        ...


class StoreActivitySink:
    """Writes entries to the store's activity_log table in their own transaction"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def record(self, entry: ActivityLogEntry) -> None:
        async with self.store.transaction(entry.tenant_id) as session:
            await session.insert_activity(entry)


class LoggingActivitySink:
    """Emits entries on a logger instead of persisting them"""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logging.getLogger("ledger_kernel.activity")

    async def record(self, entry: ActivityLogEntry) -> None:
        self.log.info(
            f"activity tenant={entry.tenant_id} actor={entry.actor_user_id} "
            f"{entry.entity.value}:{entry.entity_id} {entry.action.value}"
        )


class MemoryActivitySink:
    """Keeps entries in a list (tests, embedding)"""

    def __init__(self):
        self.entries: List[ActivityLogEntry] = []

    async def record(self, entry: ActivityLogEntry) -> None:
        self.entries.append(entry)


class ActivityLogger:

    def __init__(self, sink: Optional[ActivitySink] = None):
        self.sink = sink

    async def log(
        self,
        ctx: TenantContext,
        entity: EntityType,
        entity_id: UUID,
        action: ActivityAction,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None
    ) -> Optional[ActivityLogEntry]:
        if self.sink is None:
            return None

        entry = ActivityLogEntry(
            tenant_id=ctx.tenant_id,
            actor_user_id=ctx.actor,
            entity=entity,
            entity_id=entity_id,
            action=action,
            before=before,
            after=after,
        )
        if not await self.record(entry):
            return None
        return entry

    async def record(self, entry: ActivityLogEntry) -> bool:
        """Hand an entry to the sink, or buffer it inside collect_activity()."""
        pending = _pending.get()
        if pending is not None:
            pending.append((self, entry))
            return True
        try:
            await self.sink.record(entry)
        except Exception:
            logger.exception(
                f"Failed to record activity {entry.action.value} on "
                f"{entry.entity.value} {entry.entity_id}"
            )
            return False
        return True


@contextmanager
def collect_activity() -> Iterator[PendingActivity]:
    """Buffer activity logged by the enclosed code, including tasks it starts."""
    pending: PendingActivity = []
    token = _pending.set(pending)
    try:
        yield pending
    finally:
        _pending.reset(token)


async def flush_activity(pending: PendingActivity) -> None:
    """Record buffered entries in the order they were logged."""
    for activity, entry in pending:
        await activity.record(entry)
