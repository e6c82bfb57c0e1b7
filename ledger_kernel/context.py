"""
Tenant / actor context threaded through every kernel operation.

The kernel never authenticates; callers resolve the tenant and acting user
and hand them in explicitly.
"""
from dataclasses import dataclass
from typing import Union
from uuid import UUID

from .exceptions import ValidationError


@dataclass(frozen=True)
class TenantContext:
    tenant_id: Union[UUID, str]
    actor_user_id: Union[UUID, str]

    def __post_init__(self):
        errors = []
        if not self.tenant_id or not str(self.tenant_id).strip():
            errors.append("tenant_id is required")
        if not self.actor_user_id or not str(self.actor_user_id).strip():
            errors.append("actor_user_id is required")
        if errors:
            raise ValidationError(errors=errors)
        # Rows are stamped and scoped by the string form
        object.__setattr__(self, "tenant_id", str(self.tenant_id))

    @property
    def actor(self) -> str:
        return str(self.actor_user_id)
