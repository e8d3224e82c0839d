"""Seed development database with a user, API key, and a protected workflow.

Usage:
    python -m workflowguard.scripts.seed_dev
"""

from __future__ import annotations

import asyncio
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.config import settings
from workflowguard.database import async_session_factory, init_db
from workflowguard.models.api_key import ApiKey
from workflowguard.models.user import User
from workflowguard.models.workflow import Workflow
from workflowguard.versioning.service import VersionHistoryService

# Fixed dev API key — known to local tooling and manual testing
DEV_API_KEY = "wg_dev_test_key_abc123"
DEV_USER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
DEV_WORKFLOW_ID = uuid.UUID("00000000-0000-4000-8000-000000000101")

SAMPLE_WORKFLOW = {
    "name": "Lead nurture",
    "actions": [
        {"id": "a1", "type": "DELAY", "settings": {"delayMillis": 86_400_000}},
        {"id": "a2", "type": "SEND_EMAIL", "settings": {"emailId": 101}},
    ],
}


async def seed() -> None:
    if settings.environment == "dev":
        await init_db()
    async with async_session_factory() as db:
        await _seed_user(db)
        await _seed_api_key(db)
        await _seed_workflow(db)
        await db.commit()
    print("\nSeed complete.")


async def _seed_user(db: AsyncSession) -> None:
    if await db.get(User, DEV_USER_ID):
        print(f"  user     {DEV_USER_ID} already exists, skipping")
        return

    db.add(User(id=DEV_USER_ID, email="dev@workflowguard.local", name="Dev User"))
    await db.flush()
    print(f"  user     {DEV_USER_ID} created (Dev User)")


async def _seed_api_key(db: AsyncSession) -> None:
    key_hash = ApiKey.hash_key(DEV_API_KEY, settings.api_key_salt)

    result = await db.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
    if result.scalar_one_or_none():
        print(f"  key      {DEV_API_KEY[:16]}... already exists, skipping")
        return

    db.add(ApiKey(user_id=DEV_USER_ID, key_hash=key_hash, name="dev-seed", is_active=True))
    await db.flush()
    print(f"  key      {DEV_API_KEY[:16]}... created")


async def _seed_workflow(db: AsyncSession) -> None:
    workflow = await db.get(Workflow, DEV_WORKFLOW_ID)
    if workflow is None:
        workflow = Workflow(
            id=DEV_WORKFLOW_ID,
            external_id="hs-1001",
            name=SAMPLE_WORKFLOW["name"],
            owner_id=DEV_USER_ID,
        )
        db.add(workflow)
        await db.flush()
        print(f"  workflow {DEV_WORKFLOW_ID} created ({workflow.name})")

    _, created = await VersionHistoryService(db).create_initial_version_if_missing(
        workflow, str(DEV_USER_ID), SAMPLE_WORKFLOW
    )
    print(f"  version  initial protection {'created' if created else 'already exists, skipping'}")


if __name__ == "__main__":
    print("Seeding WorkflowGuard dev database...")
    print(f"  DB: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'configured'}")
    asyncio.run(seed())
