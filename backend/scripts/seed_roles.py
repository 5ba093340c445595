#!/usr/bin/env python
"""Seed script for the standard professional roles.

Creates missing tables, seeds the standard role of every profession with
its default permission set and, when ADMIN_USER_ID is given, grants that
user the system administrator role. Safe to run repeatedly.

Usage:
    python backend/scripts/seed_roles.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    ADMIN_USER_ID: User UUID to receive the administrator role (optional)
"""

import os
import sys
from pathlib import Path

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from uuid import UUID

from sqlalchemy import select

from authz.catalog import RoleCatalog
from authz.errors import RoleConflict
from authz.professions import SYSTEM_ROLE_NAMES, Profession
from database import SessionLocal, init_db, session_scope
from models.role import Role
from observability.logging_config import configure_logging


def main():
    """Seed default roles and the optional initial administrator."""
    configure_logging(json_format=False)

    admin_id = None
    admin_id_str = os.getenv("ADMIN_USER_ID")
    if admin_id_str:
        try:
            admin_id = UUID(admin_id_str)
        except ValueError:
            print(f"ERROR: Invalid ADMIN_USER_ID format: {admin_id_str}")
            sys.exit(1)

    init_db()
    catalog = RoleCatalog(SessionLocal)
    stats = catalog.initialize_default_roles()
    print(f"SUCCESS: {stats['roles_created']} roles created, {stats['permissions_linked']} permissions linked")

    if admin_id is None:
        return

    with session_scope(SessionLocal) as session:
        admin_role_id = session.execute(
            select(Role.id).where(
                Role.name == SYSTEM_ROLE_NAMES[Profession.ADMIN],
                Role.organization_id.is_(None),
            )
        ).scalar_one()

    try:
        catalog.assign_role(admin_id, admin_role_id)
        catalog.set_primary_profession(admin_id, Profession.ADMIN)
        print(f"SUCCESS: Administrator role granted to {admin_id}")
    except RoleConflict:
        print(f"User {admin_id} already holds the administrator role")


if __name__ == "__main__":
    main()
