"""
Activity Log Models
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from ..constants import ActivityAction, EntityType


@dataclass
class ActivityLogEntry:
    """Append-only audit record written after a successful mutation"""
    tenant_id: str
    actor_user_id: str
    entity: EntityType
    entity_id: UUID
    action: ActivityAction
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def diff(self) -> Dict[str, Any]:
        diff = {}
        if self.before is not None:
            diff["before"] = self.before
        if self.after is not None:
            diff["after"] = self.after
        return diff

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "actor_user_id": str(self.actor_user_id),
            "entity": self.entity.value,
            "entity_id": str(self.entity_id),
            "action": self.action.value,
            "diff": self.diff,
            "created_at": self.created_at.isoformat(),
        }
