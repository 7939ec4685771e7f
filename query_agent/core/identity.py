"""
Caller identity and capability checks.

The web layer resolves authentication and hands the core an `Identity`.
Capabilities come from explicit permission claims; a few roles imply
capabilities on their own.
"""

from typing import FrozenSet, Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Capabilities:
    SYSTEM_ADMIN = "system:admin"
    HR_ADMIN = "hr:admin"
    HR_READ = "hr:read"
    HR_WRITE = "hr:write"
    PAYROLL_READ = "payroll:read"
    DEPARTMENT_MANAGER = "department:manager"


class Roles:
    ADMIN = "Admin"
    SYSTEM_ADMIN = "SystemAdmin"
    HR_ADMIN = "HrAdmin"


_SUPER_ROLES = {Roles.ADMIN.lower(), Roles.SYSTEM_ADMIN.lower()}
_HR_ADMIN_GRANTS = {Capabilities.HR_ADMIN, Capabilities.HR_READ, Capabilities.HR_WRITE}


def _split_claims(values: Iterable[str]) -> FrozenSet[str]:
    items = set()
    for value in values:
        for part in str(value).split(","):
            part = part.strip()
            if part:
                items.add(part.lower())
    return frozenset(items)


class Identity(BaseModel):
    """Authenticated caller as seen by the validators and the executor."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    tenant_id: Optional[UUID] = None
    organization_unit_id: Optional[UUID] = None
    roles: FrozenSet[str] = Field(default_factory=frozenset)
    permissions: FrozenSet[str] = Field(default_factory=frozenset)

    @field_validator("roles", "permissions", mode="before")
    @classmethod
    def _normalize(cls, value):
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return _split_claims(value)

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_role(self, role: str) -> bool:
        return role.lower() in self.roles

    def has_capability(self, capability: str) -> bool:
        """
        Check a capability against permission claims and implied roles.

        Admin/SystemAdmin roles hold every capability. The HrAdmin role
        holds hr:admin, hr:read and hr:write.
        """
        if capability.lower() in self.permissions:
            return True
        if self.roles & _SUPER_ROLES:
            return True
        return capability in _HR_ADMIN_GRANTS and self.has_role(Roles.HR_ADMIN)

    @property
    def is_elevated(self) -> bool:
        return self.has_capability(Capabilities.SYSTEM_ADMIN) or self.has_capability(
            Capabilities.HR_ADMIN
        )
