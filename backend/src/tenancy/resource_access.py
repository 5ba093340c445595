"""Ownership port and role-specific resource rules.

validate_resource_access combines three gates: the resource belongs to the
caller's tenant, the caller's static permissions include the required one,
and the caller's profession allows that resource type. This module holds
the ownership port and the profession rule registry used by the last gate.

Adding a profession rule:
    @register_role_rule(Profession.MAGISTRAT)
    def magistrat_rule(resource_type, owner, context):
        return resource_type != "deliberation" or owner.owner_user_id == context.user_id
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from authz.professions import Profession

from .context import TenantContext


@dataclass(frozen=True)
class ResourceOwner:
    """Who a resource belongs to."""
    tenant_id: str
    owner_user_id: Optional[UUID] = None


class ResourceOwnershipPort(ABC):
    """Lookup of resource ownership, implemented by the owning service."""

    @abstractmethod
    def get_owner(self, resource_type: str, resource_id: Any) -> Optional[ResourceOwner]:
        """Owner of the resource, or None if it does not exist."""


RoleRule = Callable[[str, ResourceOwner, TenantContext], bool]

ROLE_RULES: Dict[str, RoleRule] = {}

STUDENT_RESOURCE_TYPES = frozenset({"cours", "exercice", "jurisprudence_publique"})


def register_role_rule(profession: Profession) -> Callable[[RoleRule], RoleRule]:
    def decorator(rule: RoleRule) -> RoleRule:
        ROLE_RULES[Profession(profession).value] = rule
        return rule
    return decorator


def _owned_by(owner: ResourceOwner, context: TenantContext) -> bool:
    return owner.owner_user_id is not None and owner.owner_user_id == context.user_id


@register_role_rule(Profession.AVOCAT)
def avocat_rule(resource_type: str, owner: ResourceOwner, context: TenantContext) -> bool:
    # Lawyers only reach client dossiers they handle
    return resource_type != "dossier_client" or _owned_by(owner, context)


@register_role_rule(Profession.NOTAIRE)
def notaire_rule(resource_type: str, owner: ResourceOwner, context: TenantContext) -> bool:
    # Deeds and the minutier are personal to the notary's office
    return resource_type not in ("acte_authentique", "minutier") or _owned_by(owner, context)


@register_role_rule(Profession.HUISSIER)
def huissier_rule(resource_type: str, owner: ResourceOwner, context: TenantContext) -> bool:
    return resource_type != "exploit" or _owned_by(owner, context)


@register_role_rule(Profession.ETUDIANT)
def etudiant_rule(resource_type: str, owner: ResourceOwner, context: TenantContext) -> bool:
    return resource_type in STUDENT_RESOURCE_TYPES


def role_rule_allows(resource_type: str, owner: ResourceOwner, context: TenantContext) -> bool:
    """Apply the caller's profession rule; professions without one are allowed."""
    rule = ROLE_RULES.get(context.user_role)
    if rule is None:
        return True
    return rule(resource_type, owner, context)
