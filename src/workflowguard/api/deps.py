"""Shared FastAPI dependencies — authentication and workflow access."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.config import settings
from workflowguard.database import get_db
from workflowguard.exceptions import NotFoundError
from workflowguard.models.api_key import KEY_PREFIX, ApiKey
from workflowguard.models.user import User
from workflowguard.models.workflow import Workflow


async def get_current_user(
    authorization: str = Header(..., alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve ``Authorization: Bearer wg_...`` to the key's user.

    Raises 401 if the key is missing, malformed, or inactive.
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must start with 'Bearer '.",
        )

    raw_key = authorization.removeprefix("Bearer ").strip()
    if not raw_key.startswith(KEY_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid API key format. Keys must start with '{KEY_PREFIX}'.",
        )

    result = await db.execute(
        select(ApiKey).where(
            ApiKey.key_hash == ApiKey.hash_key(raw_key, settings.api_key_salt),
            ApiKey.is_active.is_(True),
        )
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or inactive API key.",
        )

    await db.execute(
        update(ApiKey)
        .where(ApiKey.id == api_key.id)
        .values(last_used_at=datetime.now(timezone.utc))
    )

    user = await db.get(User, api_key.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found for this API key.",
        )
    return user


async def ensure_workflow_access(
    db: AsyncSession,
    workflow_id: uuid.UUID,
    user: User,
) -> Workflow:
    """Return the workflow if *user* owns it.

    Someone else's workflow is reported as missing, same as an unknown id.
    """
    workflow = await db.get(Workflow, workflow_id)
    if workflow is None or workflow.owner_id != user.id:
        raise NotFoundError("Workflow", workflow_id)
    return workflow


async def get_owned_workflow(
    workflow_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Workflow:
    return await ensure_workflow_access(db, workflow_id, user)
