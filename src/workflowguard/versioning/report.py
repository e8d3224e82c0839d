"""Compliance reports over a workflow's version history and audit trail."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.exceptions import NotFoundError
from workflowguard.models.workflow import Workflow
from workflowguard.models.workflow_version import SnapshotType, WorkflowVersion
from workflowguard.versioning.audit import AuditLogSink
from workflowguard.versioning.diff import ChangeSet, calculate_changes, load_payload
from workflowguard.versioning.store import SnapshotStore

logger = logging.getLogger(__name__)

# Points per item; the total is clamped to [0, 100].
SCORE_WEIGHTS: dict[str, int] = {
    "automated_backups": 20,
    "manual_saves": 15,
    "system_backups": 10,
    "audit_entries": 5,
}
MAX_SCORE = 100

MIN_AUTOMATED_BACKUPS = 5
MIN_UNIQUE_USERS = 2
MIN_CHANGE_ENTRY_RATIO = 0.3

RECOMMEND_MORE_BACKUPS = "Consider increasing automated backup frequency for better compliance"
RECOMMEND_REVIEWS = "Consider implementing review processes for workflow changes"
RECOMMEND_CHANGE_TRACKING = "Improve change tracking and documentation for compliance"

UNKNOWN_USER = "Unknown"


class _Snapshot(Protocol):
    snapshot_type: str


class _AuditEntry(Protocol):
    action: str
    user_id: str | None


# ---------------------------------------------------------------------------
# Report shape
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReportSummary:
    total_versions: int
    total_changes: int
    automated_backups: int
    manual_saves: int
    system_backups: int
    unique_users: int
    compliance_score: int


@dataclass(frozen=True)
class ReportVersion:
    id: uuid.UUID
    version_number: int
    snapshot_type: str
    created_by: str
    created_at: datetime
    changes: ChangeSet


@dataclass(frozen=True)
class AuditTrailEntry:
    id: uuid.UUID
    action: str
    user_id: str | None
    user_name: str
    timestamp: datetime
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class ComplianceReport:
    workflow_id: uuid.UUID
    workflow_name: str
    start_date: datetime
    end_date: datetime
    summary: ReportSummary
    versions: list[ReportVersion] = field(default_factory=list)
    audit_trail: list[AuditTrailEntry] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict in the API's camelCase shape."""
        s = self.summary
        return {
            "workflowId": str(self.workflow_id),
            "workflowName": self.workflow_name,
            "reportPeriod": {
                "startDate": self.start_date.isoformat(),
                "endDate": self.end_date.isoformat(),
            },
            "summary": {
                "totalVersions": s.total_versions,
                "totalChanges": s.total_changes,
                "automatedBackups": s.automated_backups,
                "manualSaves": s.manual_saves,
                "systemBackups": s.system_backups,
                "uniqueUsers": s.unique_users,
                "complianceScore": s.compliance_score,
            },
            "versions": [
                {
                    "id": str(v.id),
                    "versionNumber": v.version_number,
                    "snapshotType": v.snapshot_type,
                    "createdBy": v.created_by,
                    "createdAt": v.created_at.isoformat(),
                    "changes": v.changes.to_dict(),
                }
                for v in self.versions
            ],
            "auditTrail": [
                {
                    "id": str(e.id),
                    "action": e.action,
                    "userId": e.user_id,
                    "userName": e.user_name,
                    "timestamp": e.timestamp.isoformat(),
                    "oldValue": e.old_value,
                    "newValue": e.new_value,
                }
                for e in self.audit_trail
            ],
            "recommendations": list(self.recommendations),
        }


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def compute_compliance_score(
    automated_backups: int,
    manual_saves: int,
    system_backups: int,
    audit_entries: int,
) -> int:
    raw = (
        automated_backups * SCORE_WEIGHTS["automated_backups"]
        + manual_saves * SCORE_WEIGHTS["manual_saves"]
        + system_backups * SCORE_WEIGHTS["system_backups"]
        + audit_entries * SCORE_WEIGHTS["audit_entries"]
    )
    return max(0, min(MAX_SCORE, raw))


def count_unique_users(audit_entries: Sequence[_AuditEntry]) -> int:
    # Entries without an actor (system writes) don't count as a reviewer.
    return len({e.user_id for e in audit_entries if e.user_id})


def build_recommendations(
    versions: Sequence[_Snapshot],
    audit_entries: Sequence[_AuditEntry],
) -> list[str]:
    recommendations: list[str] = []

    automated = sum(1 for v in versions if v.snapshot_type == SnapshotType.AUTO_BACKUP.value)
    if automated < MIN_AUTOMATED_BACKUPS:
        recommendations.append(RECOMMEND_MORE_BACKUPS)

    if count_unique_users(audit_entries) < MIN_UNIQUE_USERS:
        recommendations.append(RECOMMEND_REVIEWS)

    change_entries = sum(1 for e in audit_entries if "change" in e.action)
    if change_entries < len(audit_entries) * MIN_CHANGE_ENTRY_RATIO:
        recommendations.append(RECOMMEND_CHANGE_TRACKING)

    return recommendations


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class ComplianceReportGenerator:
    """Builds a ``ComplianceReport`` for one workflow and time window."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._store = SnapshotStore(db)
        self._audit = AuditLogSink(db)

    async def generate(
        self,
        workflow_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> ComplianceReport:
        start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ValueError("startDate must not be after endDate")

        workflow = await self._db.get(Workflow, workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)

        versions = list(await self._store.find_in_range(workflow_id, start, end))
        audit_entries = list(await self._audit.find_for_workflow(workflow_id, start, end))

        rows = await self._version_rows(workflow_id, versions)
        names = await self._audit.display_names(e.user_id for e in audit_entries)

        automated = _count_type(versions, SnapshotType.AUTO_BACKUP)
        manual = _count_type(versions, SnapshotType.MANUAL_SAVE)
        system = _count_type(versions, SnapshotType.SYSTEM_BACKUP)

        summary = ReportSummary(
            total_versions=len(versions),
            total_changes=len(audit_entries),
            automated_backups=automated,
            manual_saves=manual,
            system_backups=system,
            unique_users=count_unique_users(audit_entries),
            compliance_score=compute_compliance_score(
                automated, manual, system, len(audit_entries)
            ),
        )

        logger.info(
            "Compliance report for workflow %s: %d versions, %d audit entries, score %d",
            workflow_id,
            summary.total_versions,
            summary.total_changes,
            summary.compliance_score,
        )

        return ComplianceReport(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            start_date=start,
            end_date=end,
            summary=summary,
            versions=rows,
            audit_trail=[
                AuditTrailEntry(
                    id=e.id,
                    action=e.action,
                    user_id=e.user_id,
                    user_name=names.get(e.user_id or "", UNKNOWN_USER),
                    timestamp=e.timestamp,
                    old_value=e.old_value,
                    new_value=e.new_value,
                )
                for e in audit_entries
            ],
            recommendations=build_recommendations(versions, audit_entries),
        )

    async def _version_rows(
        self,
        workflow_id: uuid.UUID,
        versions: list[WorkflowVersion],
    ) -> list[ReportVersion]:
        if not versions:
            return []

        # Predecessors may sit before the window, so diff against full history.
        newest = max(v.version_number for v in versions)
        history = list(await self._store.find_up_to(workflow_id, newest))
        previous_by_number: dict[int, WorkflowVersion | None] = {}
        prior: WorkflowVersion | None = None
        for version in history:
            previous_by_number[version.version_number] = prior
            prior = version

        rows = []
        for version in versions:
            previous = previous_by_number.get(version.version_number)
            changes = calculate_changes(
                load_payload(version.data),
                load_payload(previous.data) if previous else None,
            )
            rows.append(
                ReportVersion(
                    id=version.id,
                    version_number=version.version_number,
                    snapshot_type=version.snapshot_type,
                    created_by=version.created_by,
                    created_at=version.created_at,
                    changes=changes,
                )
            )
        return rows


def _count_type(versions: Sequence[_Snapshot], snapshot_type: SnapshotType) -> int:
    return sum(1 for v in versions if v.snapshot_type == snapshot_type.value)
