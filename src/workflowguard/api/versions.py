"""Version-scoped endpoints — /v1/workflow-versions/..."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.api.deps import ensure_workflow_access, get_current_user
from workflowguard.api.schemas import CompareResponse, VersionResponse
from workflowguard.database import get_db
from workflowguard.models.user import User
from workflowguard.versioning.service import VersionHistoryService

router = APIRouter(prefix="/v1/workflow-versions", tags=["versions"])


@router.get("/compare/{base_id}/{other_id}", response_model=CompareResponse)
async def compare_versions(
    base_id: uuid.UUID,
    other_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CompareResponse:
    service = VersionHistoryService(db)
    result = await service.compare_versions(base_id, other_id)
    await ensure_workflow_access(db, result.base.workflow_id, user)
    await ensure_workflow_access(db, result.other.workflow_id, user)
    return CompareResponse.from_result(result)


@router.get("/{version_id}", response_model=VersionResponse)
async def get_version(
    version_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> VersionResponse:
    version = await VersionHistoryService(db).get_version(version_id)
    await ensure_workflow_access(db, version.workflow_id, user)
    return VersionResponse.from_model(version)


@router.delete("/{version_id}", response_model=VersionResponse)
async def delete_version(
    version_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> VersionResponse:
    """Administrative purge. Returns the deleted version."""
    service = VersionHistoryService(db)
    version = await service.get_version(version_id)
    await ensure_workflow_access(db, version.workflow_id, user)
    await service.delete_version(version_id, str(user.id))
    return VersionResponse.from_model(version)
