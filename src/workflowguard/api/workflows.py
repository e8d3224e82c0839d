"""Workflow-scoped version history endpoints — /v1/workflows/..."""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.api.deps import get_current_user, get_owned_workflow
from workflowguard.api.schemas import (
    ApprovalRequestBody,
    ApprovalResponse,
    ChangeNotificationRequest,
    ComplianceReportResponse,
    CreateVersionRequest,
    HistoryEntryResponse,
    HistoryResponse,
    InitialProtectionRequest,
    InitialProtectionResponse,
    MessageResponse,
    RestoreResponse,
    RollbackResponse,
    VersionResponse,
)
from workflowguard.config import settings
from workflowguard.database import get_db
from workflowguard.models.user import User
from workflowguard.models.workflow import Workflow
from workflowguard.versioning.service import VersionHistoryService

router = APIRouter(prefix="/v1/workflows", tags=["workflows"])


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

@router.post(
    "/{workflow_id}/versions",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_version(
    body: CreateVersionRequest,
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> VersionResponse:
    version = await VersionHistoryService(db).create_version(
        workflow.id, str(user.id), body.data, body.snapshot_type
    )
    return VersionResponse.from_model(version)


@router.post("/{workflow_id}/initial-protection", response_model=InitialProtectionResponse)
async def start_protection(
    body: InitialProtectionRequest | None = None,
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InitialProtectionResponse:
    version, created = await VersionHistoryService(db).create_initial_version_if_missing(
        workflow, str(user.id), body.initial_data if body else None
    )
    return InitialProtectionResponse(created=created, version=VersionResponse.from_model(version))


@router.post(
    "/{workflow_id}/automated-backup",
    response_model=VersionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_automated_backup(
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> VersionResponse:
    backup = await VersionHistoryService(db).create_automated_backup(workflow.id, str(user.id))
    return VersionResponse.from_model(backup)


@router.get("/{workflow_id}/versions/latest", response_model=VersionResponse)
async def get_latest_version(
    workflow: Workflow = Depends(get_owned_workflow),
    db: AsyncSession = Depends(get_db),
) -> VersionResponse:
    latest = await VersionHistoryService(db).get_latest_version(workflow.id)
    return VersionResponse.from_model(latest)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@router.get("/{workflow_id}/history", response_model=HistoryResponse)
async def get_history(
    limit: int = Query(default=settings.history_limit, ge=1, le=500),
    workflow: Workflow = Depends(get_owned_workflow),
    db: AsyncSession = Depends(get_db),
) -> HistoryResponse:
    entries = await VersionHistoryService(db).find_history(workflow.id, limit)
    return HistoryResponse(history=[HistoryEntryResponse.from_entry(e) for e in entries])


@router.get("/by-external-id/{external_id}/history", response_model=HistoryResponse)
async def get_history_by_external_id(
    external_id: str,
    limit: int = Query(default=settings.history_limit, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> HistoryResponse:
    entries = await VersionHistoryService(db).find_history_by_external_id(
        external_id, user.id, limit
    )
    return HistoryResponse(history=[HistoryEntryResponse.from_entry(e) for e in entries])


# ---------------------------------------------------------------------------
# Restore / rollback
# ---------------------------------------------------------------------------

@router.post("/{workflow_id}/rollback/{version_id}", response_model=RestoreResponse)
async def restore_version(
    version_id: uuid.UUID,
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RestoreResponse:
    result = await VersionHistoryService(db).restore_version(workflow.id, version_id, str(user.id))
    return RestoreResponse(
        message=result.message,
        version=VersionResponse.from_model(result.restored_version),
    )


@router.post("/{workflow_id}/rollback", response_model=RollbackResponse)
async def rollback_workflow(
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RollbackResponse:
    result = await VersionHistoryService(db).rollback_workflow(workflow.id, str(user.id))
    version = result.rollback_version
    return RollbackResponse(
        message=result.message,
        version=VersionResponse.from_model(version) if version else None,
    )


# ---------------------------------------------------------------------------
# Notifications, approvals, reports
# ---------------------------------------------------------------------------

@router.post("/{workflow_id}/change-notification", response_model=MessageResponse)
async def create_change_notification(
    body: ChangeNotificationRequest,
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await VersionHistoryService(db).create_change_notification(
        workflow.id, str(user.id), body.changes
    )
    return MessageResponse(message="Change notification recorded")


@router.post(
    "/{workflow_id}/approval-request",
    response_model=ApprovalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_approval_request(
    body: ApprovalRequestBody,
    workflow: Workflow = Depends(get_owned_workflow),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApprovalResponse:
    request = await VersionHistoryService(db).create_approval_request(
        workflow.id, str(user.id), body.requested_changes
    )
    return ApprovalResponse(id=request.id, status=request.status)


@router.get("/{workflow_id}/compliance-report", response_model=ComplianceReportResponse)
async def get_compliance_report(
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    workflow: Workflow = Depends(get_owned_workflow),
    db: AsyncSession = Depends(get_db),
) -> ComplianceReportResponse:
    report = await VersionHistoryService(db).generate_compliance_report(
        workflow.id, start_date, end_date
    )
    return ComplianceReportResponse.model_validate(report.to_dict())
