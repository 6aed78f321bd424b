"""Resolved caller identity shared across contexts.

Authentication lives outside this platform: every request arrives with an
actor already resolved by the session layer. Contexts only need the id, the
role and the organization the actor belongs to.
"""

from dataclasses import dataclass
from enum import Enum


class ActorRole(Enum):
    PATIENT = "patient"
    ORGANIZATION_OPERATOR = "organization_operator"
    PLATFORM_ADMIN = "platform_admin"


@dataclass(frozen=True)
class Actor:
    id: str
    role: ActorRole
    organization_id: str | None = None

    @property
    def is_patient(self) -> bool:
        return self.role is ActorRole.PATIENT

    @property
    def is_platform_admin(self) -> bool:
        return self.role is ActorRole.PLATFORM_ADMIN

    def belongs_to(self, organization_id: str | None) -> bool:
        """True when the actor may see data owned by ``organization_id``."""
        if self.is_platform_admin:
            return True
        return organization_id is not None and str(self.organization_id) == str(organization_id)
