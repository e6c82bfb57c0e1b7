"""
Chart of Accounts Models
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from ..constants import AccountType


@dataclass
class Account:
    """Chart of Accounts entity (reference data, read-only for the kernel)"""
    id: UUID
    tenant_id: str
    code: str
    name: str
    type: AccountType
    is_active: bool = True
    parent_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "code": self.code,
            "name": self.name,
            "type": self.type.value,
            "is_active": self.is_active,
            "parent_id": str(self.parent_id) if self.parent_id else None,
        }
