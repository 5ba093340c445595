"""Permission catalog and role assignment registry.

RoleCatalog owns every durable authorization fact: roles, permissions,
role-permission links, role assignments and primary professions.

Each mutating operation runs in exactly one transaction (session_scope).
Readers therefore see either the whole role-plus-permission graph or
nothing of it, and a failed custom role creation leaves no role row behind.
Cache invalidation for affected users joins the same transaction.
"""

import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from models.base import utcnow
from models.role import Permission, Role, RolePermission, normalize_actions
from models.role_assignment import RoleAssignment, UserProfile

from .cache import PermissionCache
from .errors import EvaluationFailure, RoleConflict, RoleNotFound
from .professions import (
    DEFAULT_PROFESSION,
    DEFAULT_ROLE_PERMISSIONS,
    SYSTEM_ROLE_NAMES,
    Profession,
)
from .schemas import (
    AccessContext,
    EffectivePermission,
    OrganizationContext,
    PermissionDefinition,
    RoleAssignmentView,
    RoleDefinition,
    RoleSchema,
)

logger = logging.getLogger(__name__)

OrgRef = Union[OrganizationContext, UUID, None]


def _org_id(org_context: OrgRef) -> Optional[UUID]:
    if isinstance(org_context, OrganizationContext):
        return org_context.organization_id
    return org_context


def _same_org(column, organization_id: Optional[UUID]):
    """Equality that treats NULL organization as a value of its own."""
    if organization_id is None:
        return column.is_(None)
    return column == organization_id


def _global_or_org(column, organization_id: Optional[UUID]):
    """NULL (global) or equal to the given organization."""
    if organization_id is None:
        return column.is_(None)
    return or_(column.is_(None), column == organization_id)


class RoleCatalog:
    """Durable store of roles, permissions and role assignments."""

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: Optional[PermissionCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._cache = cache
        self._clock = clock

    # ------------------------------------------------------------------
    # Role assignment registry
    # ------------------------------------------------------------------

    def assign_role(
        self,
        user_id: UUID,
        role_id: UUID,
        org_context: OrgRef = None,
        assigned_by: Optional[UUID] = None,
        expires_at: Optional[datetime] = None,
    ) -> None:
        """Assign a role to a user, optionally inside one organization.

        Raises:
            RoleNotFound: If the role does not exist or is inactive
            RoleConflict: If an active, unexpired assignment already exists
                for the same (user, role, organization)
            ValueError: If expires_at is not in the future
        """
        organization_id = _org_id(org_context)
        now = self._clock()
        if expires_at is not None and expires_at <= now:
            raise ValueError("expires_at must be in the future")

        try:
            with session_scope(self._session_factory) as session:
                role = session.execute(
                    select(Role).where(Role.id == role_id, Role.is_active.is_(True))
                ).scalar_one_or_none()
                if role is None:
                    raise RoleNotFound(f"Role {role_id} not found or inactive")

                current = session.execute(
                    select(RoleAssignment).where(
                        RoleAssignment.user_id == user_id,
                        RoleAssignment.role_id == role_id,
                        _same_org(RoleAssignment.organization_id, organization_id),
                        RoleAssignment.is_active.is_(True),
                    )
                ).scalars().all()
                for assignment in current:
                    if not assignment.is_expired(now):
                        raise RoleConflict(
                            f"User {user_id} already holds role {role_id} in organization {organization_id}"
                        )
                    # Retire the lapsed assignment so the new one is the only active row
                    assignment.is_active = False
                    assignment.deactivated_at = now
                session.flush()

                session.add(RoleAssignment(
                    user_id=user_id,
                    role_id=role_id,
                    organization_id=organization_id,
                    assigned_by=assigned_by,
                    assigned_at=now,
                    expires_at=expires_at,
                    is_active=True,
                ))
                session.flush()
                self._invalidate(session, user_id)
        except IntegrityError as e:
            raise RoleConflict(
                f"User {user_id} already holds role {role_id} in organization {organization_id}"
            ) from e

        logger.info(
            f"Role {role_id} assigned to user {user_id}",
            extra={"user_id": str(user_id), "org_id": str(organization_id) if organization_id else None},
        )

    def revoke_role(self, user_id: UUID, role_id: UUID, organization_id: Optional[UUID] = None) -> bool:
        """Soft-deactivate a user's active assignment.

        Returns:
            True if an active assignment was deactivated, False if there was none
        """
        now = self._clock()
        with session_scope(self._session_factory) as session:
            assignments = session.execute(
                select(RoleAssignment).where(
                    RoleAssignment.user_id == user_id,
                    RoleAssignment.role_id == role_id,
                    _same_org(RoleAssignment.organization_id, organization_id),
                    RoleAssignment.is_active.is_(True),
                )
            ).scalars().all()
            for assignment in assignments:
                assignment.is_active = False
                assignment.deactivated_at = now
            if assignments:
                session.flush()
                self._invalidate(session, user_id)

        if assignments:
            logger.info(f"Role {role_id} revoked from user {user_id}", extra={"user_id": str(user_id)})
        return bool(assignments)

    def get_user_roles(self, user_id: UUID) -> List[RoleAssignmentView]:
        """Roles held through active, unexpired assignments of active roles."""
        now = self._clock()
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(Role, RoleAssignment)
                .join(RoleAssignment, RoleAssignment.role_id == Role.id)
                .where(
                    RoleAssignment.user_id == user_id,
                    RoleAssignment.is_active.is_(True),
                    Role.is_active.is_(True),
                    or_(RoleAssignment.expires_at.is_(None), RoleAssignment.expires_at > now),
                )
                .order_by(Role.profession, Role.name)
            ).all()
            return [
                RoleAssignmentView(
                    id=role.id,
                    name=role.name,
                    profession=role.profession,
                    description=role.description,
                    organization_id=assignment.organization_id,
                    is_custom=role.is_custom,
                    is_active=assignment.is_active,
                    assigned_at=assignment.assigned_at,
                    expires_at=assignment.expires_at,
                )
                for role, assignment in rows
            ]

    def has_active_role(self, user_id: UUID, profession: Profession, organization_id: Optional[UUID] = None) -> bool:
        """True if the user holds a role of this profession valid for the organization."""
        now = self._clock()
        with session_scope(self._session_factory) as session:
            found = session.execute(
                select(RoleAssignment.id)
                .join(Role, Role.id == RoleAssignment.role_id)
                .where(
                    RoleAssignment.user_id == user_id,
                    RoleAssignment.is_active.is_(True),
                    Role.is_active.is_(True),
                    Role.profession == Profession(profession).value,
                    or_(RoleAssignment.expires_at.is_(None), RoleAssignment.expires_at > now),
                    _global_or_org(Role.organization_id, organization_id),
                    _global_or_org(RoleAssignment.organization_id, organization_id),
                )
                .limit(1)
            ).first()
            return found is not None

    def next_assignment_expiry(self, user_id: UUID) -> Optional[datetime]:
        """Earliest expiry among the user's active, unexpired assignments."""
        now = self._clock()
        with session_scope(self._session_factory) as session:
            return session.execute(
                select(func.min(RoleAssignment.expires_at)).where(
                    RoleAssignment.user_id == user_id,
                    RoleAssignment.is_active.is_(True),
                    RoleAssignment.expires_at > now,
                )
            ).scalar()

    # ------------------------------------------------------------------
    # Primary profession
    # ------------------------------------------------------------------

    def get_primary_profession(self, user_id: UUID) -> Profession:
        """Profession of the user's primary profile, or the least privileged default."""
        with session_scope(self._session_factory) as session:
            value = session.execute(
                select(UserProfile.profession)
                .where(UserProfile.user_id == user_id, UserProfile.is_primary.is_(True))
                .order_by(UserProfile.created_at)
                .limit(1)
            ).scalar_one_or_none()

        if value is None:
            return DEFAULT_PROFESSION
        try:
            return Profession(value)
        except ValueError:
            logger.warning(f"Unknown primary profession '{value}' for user {user_id}")
            return DEFAULT_PROFESSION

    def set_primary_profession(self, user_id: UUID, profession: Profession) -> None:
        profession = Profession(profession)
        with session_scope(self._session_factory) as session:
            profiles = session.execute(
                select(UserProfile).where(UserProfile.user_id == user_id)
            ).scalars().all()
            target = None
            for profile in profiles:
                profile.is_primary = profile.profession == profession.value
                if profile.is_primary:
                    target = profile
            if target is None:
                session.add(UserProfile(user_id=user_id, profession=profession.value, is_primary=True))
            self._invalidate(session, user_id)

    # ------------------------------------------------------------------
    # Permission catalog
    # ------------------------------------------------------------------

    def find_or_create_permission(self, session: Session, definition: Union[PermissionDefinition, dict]) -> Permission:
        """Reuse the permission with the same resource, scope and action set, or create it."""
        if isinstance(definition, dict):
            definition = PermissionDefinition.model_validate(definition)
        actions = normalize_actions(definition.actions)
        actions_key = ",".join(actions)
        scope = definition.scope.value

        permission = session.execute(
            select(Permission).where(
                Permission.resource == definition.resource,
                Permission.scope == scope,
                Permission.actions_key == actions_key,
            )
        ).scalar_one_or_none()
        if permission is not None:
            return permission

        permission = Permission(
            resource=definition.resource,
            actions=actions,
            actions_key=actions_key,
            scope=scope,
            conditions=_conditions_payload(definition),
            description=f"{definition.resource} {', '.join(actions)} permission",
        )
        session.add(permission)
        session.flush()
        return permission

    def create_custom_role(self, organization_id: UUID, role_definition: RoleDefinition, created_by: UUID) -> RoleSchema:
        """Create an organization-specific role with its permissions, all or nothing.

        Raises:
            RoleConflict: If the organization already has a role with this
                name and profession
        """
        try:
            with session_scope(self._session_factory) as session:
                existing = session.execute(
                    select(Role.id).where(
                        Role.name == role_definition.name.strip(),
                        Role.profession == role_definition.profession.value,
                        Role.organization_id == organization_id,
                    )
                ).first()
                if existing is not None:
                    raise RoleConflict(
                        f"Role '{role_definition.name}' already exists in organization {organization_id}"
                    )

                role = Role(
                    name=role_definition.name,
                    profession=role_definition.profession.value,
                    description=role_definition.description,
                    organization_id=organization_id,
                    is_custom=True,
                    is_active=True,
                    created_by=created_by,
                )
                session.add(role)
                session.flush()

                linked = []
                for definition in role_definition.permissions:
                    permission = self.find_or_create_permission(session, definition)
                    if permission.id in {p.id for p, _ in linked}:
                        logger.warning(
                            f"Duplicate permission {definition.resource} in role '{role_definition.name}' ignored"
                        )
                        continue
                    conditions = _conditions_payload(definition) or []
                    session.add(RolePermission(role_id=role.id, permission_id=permission.id, conditions=conditions))
                    linked.append((permission, conditions))
                session.flush()

                result = RoleSchema(
                    id=role.id,
                    name=role.name,
                    profession=role.profession,
                    description=role.description,
                    organization_id=role.organization_id,
                    is_custom=role.is_custom,
                    is_active=role.is_active,
                    created_at=role.created_at,
                    updated_at=role.updated_at,
                    permissions=[
                        _effective(permission, conditions) for permission, conditions in linked
                    ],
                )
        except IntegrityError as e:
            raise RoleConflict(f"Role '{role_definition.name}' conflicts with an existing role") from e

        logger.info(
            f"Custom role created: {role_definition.name} for organization {organization_id}",
            extra={"org_id": str(organization_id), "user_id": str(created_by)},
        )
        return result

    def deactivate_role(self, role_id: UUID) -> None:
        """Deactivate a role; roles are never deleted.

        Raises:
            RoleNotFound: If the role does not exist
        """
        with session_scope(self._session_factory) as session:
            role = session.get(Role, role_id)
            if role is None:
                raise RoleNotFound(f"Role {role_id} not found")
            role.is_active = False
            holders = session.execute(
                select(RoleAssignment.user_id).where(RoleAssignment.role_id == role_id).distinct()
            ).scalars().all()
            for user_id in holders:
                self._invalidate(session, user_id)

        logger.info(f"Role {role_id} deactivated")

    def get_effective_permissions(self, user_id: UUID, context: AccessContext) -> List[EffectivePermission]:
        """Permissions reachable through the user's active roles for this context.

        Only roles of the context's active profession that are global or
        bound to the context organization contribute. System admin roles
        always do; an organization's own admin roles only inside it.

        Raises:
            EvaluationFailure: If the store cannot be read
        """
        now = self._clock()
        organization_id = context.organization_id
        active_role = context.active_role.value if context.active_role else None

        stmt = (
            select(Permission, RolePermission.conditions)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(RoleAssignment, RoleAssignment.role_id == Role.id)
            .where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.is_active.is_(True),
                Role.is_active.is_(True),
                or_(RoleAssignment.expires_at.is_(None), RoleAssignment.expires_at > now),
                or_(
                    and_(Role.profession == Profession.ADMIN.value, Role.organization_id.is_(None)),
                    and_(
                        or_(Role.profession == active_role, Role.profession == Profession.ADMIN.value),
                        _global_or_org(Role.organization_id, organization_id),
                        _global_or_org(RoleAssignment.organization_id, organization_id),
                    ),
                ),
            )
            .order_by(Permission.resource, Permission.scope)
        )

        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(stmt).all()
                permissions = []
                seen = set()
                for permission, link_conditions in rows:
                    conditions = link_conditions if link_conditions is not None else permission.conditions
                    key = (permission.id, json.dumps(conditions, sort_keys=True, default=str))
                    if key in seen:
                        continue
                    seen.add(key)
                    permissions.append(_effective(permission, conditions))
                return permissions
        except SQLAlchemyError as e:
            raise EvaluationFailure(f"Could not load permissions for user {user_id}: {e}") from e

    def initialize_default_roles(self) -> Dict[str, int]:
        """Seed the standard role of every profession with its permission set.

        Idempotent: missing roles, permissions and links are created, existing
        ones are left alone, so re-running never duplicates a link.
        """
        logger.info("Initializing default roles and permissions...")
        stats = {"roles_created": 0, "permissions_linked": 0}

        with session_scope(self._session_factory) as session:
            for profession, definitions in DEFAULT_ROLE_PERMISSIONS.items():
                name = SYSTEM_ROLE_NAMES[profession]
                role = session.execute(
                    select(Role).where(
                        Role.name == name,
                        Role.profession == profession.value,
                        Role.organization_id.is_(None),
                    )
                ).scalar_one_or_none()
                if role is None:
                    role = Role(
                        name=name,
                        profession=profession.value,
                        description=f"Standard role for {profession.value}",
                        organization_id=None,
                        is_custom=False,
                        is_active=True,
                    )
                    session.add(role)
                    session.flush()
                    stats["roles_created"] += 1

                linked_ids = set(session.execute(
                    select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
                ).scalars().all())

                for definition in definitions:
                    permission = self.find_or_create_permission(session, definition)
                    if permission.id in linked_ids:
                        continue
                    session.add(RolePermission(role_id=role.id, permission_id=permission.id, conditions=[]))
                    linked_ids.add(permission.id)
                    stats["permissions_linked"] += 1
                session.flush()

        logger.info(
            f"Default roles initialized: {stats['roles_created']} roles created, "
            f"{stats['permissions_linked']} permissions linked"
        )
        return stats

    def _invalidate(self, session: Session, user_id: UUID) -> None:
        if self._cache is not None:
            self._cache.invalidate_user(user_id, session=session)


def _conditions_payload(definition: PermissionDefinition) -> Optional[list]:
    if not definition.conditions:
        return None
    return [condition.model_dump() for condition in definition.conditions]


def _effective(permission: Permission, conditions) -> EffectivePermission:
    return EffectivePermission(
        id=permission.id,
        resource=permission.resource,
        actions=list(permission.actions or []),
        scope=permission.scope,
        conditions=conditions,
        description=permission.description,
    )
