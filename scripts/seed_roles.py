"""Seed script: populate the roles table with each role's permission set.

Usage:
    python scripts/seed_roles.py

Set DB_URL and DB_NAME in your environment or .env before running. Safe to
re-run; existing roles get their permissions replaced.
"""

import asyncio
import logging

from bug_tracker.config import get_settings
from bug_tracker.db.repository import RoleRepository
from bug_tracker.db.session import Database

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

_BUG_WORK = ["canCreateBug", "canAddComments"]
_TRIAGE = ["canEditAnyBug", "canClassifyAnyBug", "canReassignAnyBug", "canCloseAnyBug"]

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "User": [],
    "Developer": _BUG_WORK,
    "Business Analyst": _BUG_WORK + _TRIAGE,
    "Quality Analyst": _BUG_WORK + ["canEditAnyBug", "canCloseAnyBug"],
    "Product Manager": _BUG_WORK + ["canClassifyAnyBug", "canListUsers"],
    "Technical Manager": _BUG_WORK + _TRIAGE + ["canListUsers", "canEditAnyUser"],
    "Admin": _BUG_WORK + _TRIAGE + ["canListUsers", "canEditAnyUser"],
}


async def seed() -> None:
    database = Database(get_settings())
    try:
        async with database.session() as session:
            roles = RoleRepository(session)
            for name, permissions in ROLE_PERMISSIONS.items():
                await roles.upsert_role(name, {p: True for p in permissions})
                logger.info("Seeded role %s (%d permissions)", name, len(permissions))
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
