"""Organization directory — display names used to enrich order listings.

Fed by the platform's organization registry; the ordering context only
reads names from it and never fails a listing because a name is missing.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


class OrganizationKind(Enum):
    ASSOCIATION = "association"
    SUPPLIER = "supplier"
    ENTERPRISE = "enterprise"


@ordering.projection
class OrganizationDirectory:
    organization_id = Identifier(identifier=True, required=True)
    name = String(required=True, max_length=255)
    kind = String(max_length=50, choices=OrganizationKind, default=OrganizationKind.ASSOCIATION.value)
    updated_at = DateTime()


def register_organization(organization_id: str, name: str, kind: str = OrganizationKind.ASSOCIATION.value) -> None:
    """Insert or rename an organization in the directory."""
    repo = current_domain.repository_for(OrganizationDirectory)
    try:
        entry = repo.get(organization_id)
        entry.name = name
        entry.kind = kind
        entry.updated_at = datetime.now(UTC)
    except ObjectNotFoundError:
        entry = OrganizationDirectory(
            organization_id=organization_id,
            name=name,
            kind=kind,
            updated_at=datetime.now(UTC),
        )
    repo.add(entry)


def display_names(organization_ids) -> dict[str, str]:
    """Map each known id to its display name; unknown ids are left out."""
    repo = current_domain.repository_for(OrganizationDirectory)
    names = {}
    for organization_id in {str(i) for i in organization_ids if i}:
        try:
            names[organization_id] = repo.get(organization_id).name
        except ObjectNotFoundError:
            continue
    return names
