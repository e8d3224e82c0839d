"""Request/response models for the version history API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from workflowguard.config import settings
from workflowguard.models.workflow_version import SnapshotType, WorkflowVersion
from workflowguard.versioning.diff import ChangeSet, canonical_json
from workflowguard.versioning.service import ComparedVersions, HistoryEntry


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_snapshot_size(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is not None:
        size = len(canonical_json(data).encode())
        if size > settings.max_snapshot_bytes:
            raise ValueError(
                f"snapshot exceeds {settings.max_snapshot_bytes}B limit ({size} bytes)"
            )
    return data


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateVersionRequest(CamelModel):
    data: dict[str, Any]
    snapshot_type: SnapshotType = SnapshotType.MANUAL_SAVE

    @field_validator("data")
    @classmethod
    def validate_data_size(cls, v: dict[str, Any]) -> dict[str, Any]:
        return _check_snapshot_size(v)


class InitialProtectionRequest(CamelModel):
    initial_data: dict[str, Any] | None = None

    @field_validator("initial_data")
    @classmethod
    def validate_initial_data_size(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        return _check_snapshot_size(v)


class ChangeNotificationRequest(CamelModel):
    changes: dict[str, Any]


class ApprovalRequestBody(CamelModel):
    requested_changes: dict[str, Any]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ChangeSetResponse(CamelModel):
    added: int
    modified: int
    removed: int

    @classmethod
    def from_changes(cls, changes: ChangeSet) -> ChangeSetResponse:
        return cls(added=changes.added, modified=changes.modified, removed=changes.removed)


class VersionResponse(CamelModel):
    id: str
    workflow_id: str
    version_number: int
    snapshot_type: str
    created_by: str
    created_at: datetime
    data: Any

    @classmethod
    def from_model(cls, version: WorkflowVersion) -> VersionResponse:
        return cls(
            id=str(version.id),
            workflow_id=str(version.workflow_id),
            version_number=version.version_number,
            snapshot_type=version.snapshot_type,
            created_by=version.created_by,
            created_at=version.created_at,
            data=version.data,
        )


class InitialProtectionResponse(CamelModel):
    created: bool
    version: VersionResponse


class HistoryEntryResponse(CamelModel):
    id: str
    workflow_id: str
    version_number: int
    date: datetime
    type: str
    initiator: str
    notes: str
    changes: ChangeSetResponse
    status: str
    selected: bool = False
    data: Any = None

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> HistoryEntryResponse:
        return cls(
            id=str(entry.id),
            workflow_id=str(entry.workflow_id),
            version_number=entry.version_number,
            date=entry.created_at,
            type=entry.snapshot_type,
            initiator=entry.created_by,
            notes=entry.change_summary,
            changes=ChangeSetResponse.from_changes(entry.changes),
            status=entry.status,
            data=entry.data,
        )


class HistoryResponse(CamelModel):
    history: list[HistoryEntryResponse]


class RestoreResponse(CamelModel):
    message: str
    version: VersionResponse


class RollbackResponse(CamelModel):
    message: str
    version: VersionResponse | None = None


class MessageResponse(CamelModel):
    message: str


class ApprovalResponse(CamelModel):
    id: str
    status: str


class CompareResponse(CamelModel):
    base_version: VersionResponse
    other_version: VersionResponse
    changes: ChangeSetResponse
    summary: str
    has_changes: bool

    @classmethod
    def from_result(cls, result: ComparedVersions) -> CompareResponse:
        return cls(
            base_version=VersionResponse.from_model(result.base),
            other_version=VersionResponse.from_model(result.other),
            changes=ChangeSetResponse.from_changes(result.comparison.changes),
            summary=result.comparison.summary,
            has_changes=result.comparison.has_changes,
        )


class ReportPeriod(CamelModel):
    start_date: datetime
    end_date: datetime


class ReportSummaryResponse(CamelModel):
    total_versions: int
    total_changes: int
    automated_backups: int
    manual_saves: int
    system_backups: int
    unique_users: int
    compliance_score: int


class ReportVersionResponse(CamelModel):
    id: str
    version_number: int
    snapshot_type: str
    created_by: str
    created_at: datetime
    changes: ChangeSetResponse


class AuditTrailResponse(CamelModel):
    id: str
    action: str
    user_id: str | None = None
    user_name: str
    timestamp: datetime
    old_value: Any = None
    new_value: Any = None


class ComplianceReportResponse(CamelModel):
    workflow_id: str
    workflow_name: str
    report_period: ReportPeriod
    summary: ReportSummaryResponse
    versions: list[ReportVersionResponse]
    audit_trail: list[AuditTrailResponse]
    recommendations: list[str]
