"""Version history service — every way a workflow snapshot gets created.

All pathways (manual save, initial protection, scheduled backup, restore,
rollback) funnel into ``_append_version``: read the current max version
number, write ``max + 1``. History is never edited; restore and rollback
copy an older payload forward as a new version, so undoing a rollback is
just another restore.

Audit entries that accompany a version write are best-effort. The version
is written first; the audit entry is then written in its own savepoint and
a failure is logged, not raised.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.config import settings
from workflowguard.exceptions import InvalidStateError, NotFoundError
from workflowguard.models.workflow import Workflow
from workflowguard.models.workflow_version import SnapshotType, WorkflowVersion
from workflowguard.versioning import audit as actions
from workflowguard.versioning.audit import AuditLogSink
from workflowguard.versioning.diff import (
    ChangeSet,
    VersionComparison,
    calculate_changes,
    change_summary,
    compare_versions as diff_versions,
    copy_payload,
    load_payload,
)
from workflowguard.versioning.report import ComplianceReport, ComplianceReportGenerator
from workflowguard.versioning.store import SnapshotStore

logger = logging.getLogger(__name__)

RESTORED_MESSAGE = "Workflow restored successfully"
ROLLED_BACK_MESSAGE = "Workflow rolled back successfully"
EARLIEST_VERSION_MESSAGE = (
    "No previous version to rollback to. The workflow is already at its earliest version."
)
NO_HISTORY_MESSAGE = "No previous snapshot exists for this workflow. Rollback is not possible."


@dataclass(frozen=True)
class HistoryEntry:
    """One row of a workflow's history as shown to users."""

    id: uuid.UUID
    workflow_id: uuid.UUID
    version_number: int
    snapshot_type: str
    created_by: str
    created_at: datetime
    data: Any
    changes: ChangeSet
    change_summary: str
    status: str  # "active" for the newest version, else "inactive"


@dataclass(frozen=True)
class RestoreResult:
    message: str
    restored_version: WorkflowVersion


@dataclass(frozen=True)
class RollbackResult:
    message: str
    rollback_version: WorkflowVersion | None = None


@dataclass(frozen=True)
class ComparedVersions:
    base: WorkflowVersion
    other: WorkflowVersion
    comparison: VersionComparison


@dataclass(frozen=True)
class ApprovalRequest:
    id: str = "pending"
    status: str = "created"
    requested_changes: dict[str, Any] = field(default_factory=dict)


class VersionHistoryService:
    """Orchestrates snapshot creation and history reads for one DB session.

    The service flushes but never commits; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._store = SnapshotStore(db)
        self._audit = AuditLogSink(db)

    @property
    def store(self) -> SnapshotStore:
        return self._store

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_workflow(self, workflow_id: uuid.UUID) -> Workflow:
        workflow = await self._db.get(Workflow, workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    async def get_version(self, version_id: uuid.UUID) -> WorkflowVersion:
        version = await self._store.find_by_id(version_id)
        if version is None:
            raise NotFoundError("Workflow version", version_id)
        return version

    async def get_latest_version(self, workflow_id: uuid.UUID) -> WorkflowVersion:
        await self.get_workflow(workflow_id)
        latest = await self._store.find_latest(workflow_id)
        if latest is None:
            raise NotFoundError(
                "Workflow version",
                workflow_id,
                message=f"No versions found for workflow {workflow_id}",
            )
        return latest

    async def list_versions(
        self,
        workflow_id: uuid.UUID,
        limit: int | None = None,
    ) -> Sequence[WorkflowVersion]:
        await self.get_workflow(workflow_id)
        return await self._store.find_all(workflow_id, limit)

    # ------------------------------------------------------------------
    # Creating versions
    # ------------------------------------------------------------------

    async def create_version(
        self,
        workflow_id: uuid.UUID,
        user_id: str,
        data: dict[str, Any] | None,
        snapshot_type: SnapshotType | str,
    ) -> WorkflowVersion:
        """Append a snapshot of *data* as the workflow's next version."""
        snapshot_type = SnapshotType(snapshot_type)
        await self.get_workflow(workflow_id)

        version = await self._append_version(
            workflow_id, user_id, copy_payload(data) or {}, snapshot_type
        )
        await self._record(
            action=actions.VERSION_CREATED,
            workflow_id=workflow_id,
            user_id=user_id,
            new_value={
                "versionId": str(version.id),
                "versionNumber": version.version_number,
                "snapshotType": snapshot_type.value,
            },
        )
        return version

    async def create_initial_version(
        self,
        workflow: Workflow,
        user_id: str,
        initial_data: dict[str, Any] | None = None,
    ) -> WorkflowVersion:
        """Take the first snapshot when protection starts on a workflow."""
        data = copy_payload(initial_data) or {
            "externalId": workflow.external_id,
            "name": workflow.name,
            "status": "active",
            "initialProtection": True,
            "protectedAt": datetime.now(timezone.utc).isoformat(),
        }
        version = await self._append_version(
            workflow.id, user_id, data, SnapshotType.INITIAL_PROTECTION
        )
        await self._record(
            action=actions.INITIAL_PROTECTION,
            workflow_id=workflow.id,
            user_id=user_id,
            new_value={
                "versionId": str(version.id),
                "versionNumber": version.version_number,
            },
        )
        logger.info("Protection started for workflow %s (%s)", workflow.id, workflow.name)
        return version

    async def create_initial_version_if_missing(
        self,
        workflow: Workflow,
        user_id: str,
        initial_data: dict[str, Any] | None = None,
    ) -> tuple[WorkflowVersion, bool]:
        """Return ``(version, created)``; reuses the latest version if any exists."""
        latest = await self._store.find_latest(workflow.id)
        if latest is not None:
            return latest, False
        return await self.create_initial_version(workflow, user_id, initial_data), True

    async def create_automated_backup(
        self,
        workflow_id: uuid.UUID,
        user_id: str | None = None,
    ) -> WorkflowVersion:
        """Re-persist the latest snapshot as an ``Auto Backup`` version.

        Raises:
            NotFoundError: The workflow has no version to back up yet.
        """
        user_id = user_id or settings.system_user_id
        await self.get_workflow(workflow_id)

        latest = await self._store.find_latest(workflow_id)
        if latest is None:
            raise NotFoundError(
                "Workflow version",
                workflow_id,
                message=f"No workflow snapshot found to back up for {workflow_id}",
            )

        backup = await self._append_version(
            workflow_id,
            user_id,
            copy_payload(latest.data) or {},
            SnapshotType.AUTO_BACKUP,
            version_number=latest.version_number + 1,
        )
        await self._record(
            action=actions.AUTOMATED_BACKUP_CREATED,
            workflow_id=workflow_id,
            user_id=user_id,
            new_value={
                "versionId": str(backup.id),
                "versionNumber": backup.version_number,
            },
        )
        return backup

    # ------------------------------------------------------------------
    # Restore / rollback
    # ------------------------------------------------------------------

    async def restore_version(
        self,
        workflow_id: uuid.UUID,
        version_id: uuid.UUID,
        user_id: str,
    ) -> RestoreResult:
        """Append a copy of *version_id*'s payload as a ``Restore`` version.

        The target must belong to *workflow_id*.
        """
        await self.get_workflow(workflow_id)
        target = await self._store.find_by_id(version_id)
        if target is None or target.workflow_id != workflow_id:
            raise NotFoundError("Workflow version", version_id)

        latest = await self._store.find_latest(workflow_id)
        restored = await self._append_version(
            workflow_id,
            user_id,
            copy_payload(target.data),
            SnapshotType.RESTORE,
            version_number=(latest.version_number + 1) if latest else 1,
        )
        await self._record(
            action=actions.RESTORE,
            workflow_id=workflow_id,
            user_id=user_id,
            old_value=_version_ref(latest) if latest else None,
            new_value={
                **_version_ref(restored),
                "restoredFromVersionId": str(target.id),
                "restoredFromVersionNumber": target.version_number,
            },
        )
        return RestoreResult(message=RESTORED_MESSAGE, restored_version=restored)

    async def rollback_workflow(
        self,
        workflow_id: uuid.UUID,
        user_id: str,
    ) -> RollbackResult:
        """Append a copy of the second-newest version's payload.

        No history raises ``InvalidStateError``; a single version is a
        no-op returning ``rollback_version=None``.
        """
        await self.get_workflow(workflow_id)
        latest = await self._store.find_latest(workflow_id)
        if latest is None:
            raise InvalidStateError(NO_HISTORY_MESSAGE)

        previous = await self._store.find_previous(workflow_id, latest.version_number)
        if previous is None:
            return RollbackResult(message=EARLIEST_VERSION_MESSAGE)

        rolled_back = await self._append_version(
            workflow_id,
            user_id,
            copy_payload(previous.data),
            SnapshotType.ROLLBACK,
            version_number=latest.version_number + 1,
        )
        await self._record(
            action=actions.ROLLBACK,
            workflow_id=workflow_id,
            user_id=user_id,
            old_value=_version_ref(latest),
            new_value={
                **_version_ref(rolled_back),
                "rolledBackToVersionId": str(previous.id),
                "rolledBackToVersionNumber": previous.version_number,
            },
        )
        return RollbackResult(message=ROLLED_BACK_MESSAGE, rollback_version=rolled_back)

    # ------------------------------------------------------------------
    # History & comparison
    # ------------------------------------------------------------------

    async def find_history(
        self,
        workflow_id: uuid.UUID,
        limit: int | None = None,
    ) -> list[HistoryEntry]:
        """Newest-first history, each entry diffed against its predecessor."""
        await self.get_workflow(workflow_id)
        versions = list(await self._store.find_all(workflow_id, limit))
        if not versions:
            return []

        # The oldest row on the page may still have a predecessor beyond the cap.
        predecessors: list[WorkflowVersion | None] = list(versions[1:])
        predecessors.append(
            await self._store.find_previous(workflow_id, versions[-1].version_number)
        )

        entries: list[HistoryEntry] = []
        for index, (version, previous) in enumerate(zip(versions, predecessors)):
            data = load_payload(version.data)
            changes = calculate_changes(data, load_payload(previous.data) if previous else None)
            entries.append(
                HistoryEntry(
                    id=version.id,
                    workflow_id=version.workflow_id,
                    version_number=version.version_number,
                    snapshot_type=version.snapshot_type,
                    created_by=version.created_by,
                    created_at=version.created_at,
                    data=data,
                    changes=changes,
                    change_summary=change_summary(changes),
                    status="active" if index == 0 else "inactive",
                )
            )
        return entries

    async def find_history_by_external_id(
        self,
        external_id: str,
        owner_id: uuid.UUID,
        limit: int | None = None,
    ) -> list[HistoryEntry]:
        """History for a workflow looked up by its HubSpot id; empty if unknown."""
        result = await self._db.execute(
            select(Workflow).where(
                Workflow.external_id == external_id,
                Workflow.owner_id == owner_id,
            )
        )
        workflow = result.scalar_one_or_none()
        if workflow is None:
            logger.info("No workflow found for external id %s", external_id)
            return []
        return await self.find_history(workflow.id, limit)

    async def compare_versions(
        self,
        base_version_id: uuid.UUID,
        other_version_id: uuid.UUID,
    ) -> ComparedVersions:
        base = await self.get_version(base_version_id)
        other = await self.get_version(other_version_id)
        return ComparedVersions(
            base=base,
            other=other,
            comparison=diff_versions(base.data, other.data),
        )

    async def generate_compliance_report(
        self,
        workflow_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> ComplianceReport:
        return await ComplianceReportGenerator(self._db).generate(workflow_id, start, end)

    # ------------------------------------------------------------------
    # Notifications & approvals
    # ------------------------------------------------------------------

    async def create_change_notification(
        self,
        workflow_id: uuid.UUID,
        user_id: str,
        changes: dict[str, Any],
    ) -> None:
        await self.get_workflow(workflow_id)
        await self._audit.append(
            action=actions.CHANGE_NOTIFICATION_SENT,
            workflow_id=workflow_id,
            user_id=user_id,
            new_value=changes,
        )
        logger.info("Change notification recorded for workflow %s", workflow_id)

    async def create_approval_request(
        self,
        workflow_id: uuid.UUID,
        user_id: str,
        requested_changes: dict[str, Any],
    ) -> ApprovalRequest:
        await self.get_workflow(workflow_id)
        request = ApprovalRequest(requested_changes=requested_changes)
        await self._audit.append(
            action=actions.APPROVAL_REQUEST_CREATED,
            workflow_id=workflow_id,
            user_id=user_id,
            new_value={
                "approvalRequestId": request.id,
                "requestedChanges": requested_changes,
            },
        )
        return request

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def delete_version(self, version_id: uuid.UUID, user_id: str) -> WorkflowVersion:
        """Purge one version.

        Leaves a gap in the numbering; later versions keep their numbers
        and rollback still finds its target by ordering.
        """
        version = await self.get_version(version_id)
        ref = {**_version_ref(version), "snapshotType": version.snapshot_type}
        await self._store.remove(version_id)
        await self._record(
            action=actions.VERSION_DELETED,
            workflow_id=version.workflow_id,
            user_id=user_id,
            old_value=ref,
        )
        logger.warning(
            "Version %d of workflow %s deleted by %s",
            version.version_number,
            version.workflow_id,
            user_id,
        )
        return version

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _append_version(
        self,
        workflow_id: uuid.UUID,
        user_id: str,
        data: dict[str, Any],
        snapshot_type: SnapshotType,
        version_number: int | None = None,
    ) -> WorkflowVersion:
        if version_number is None:
            version_number = await self._store.next_version_number(workflow_id)
        version = await self._store.create(
            workflow_id=workflow_id,
            version_number=version_number,
            snapshot_type=snapshot_type,
            created_by=user_id,
            data=data,
        )
        logger.info(
            "Created %s version %d for workflow %s",
            snapshot_type.value,
            version.version_number,
            workflow_id,
        )
        return version

    async def _record(self, **entry: Any) -> None:
        """Best-effort audit append; failures are logged and dropped."""
        try:
            await self._audit.append(**entry)
        except Exception:
            logger.exception(
                "Failed to write audit entry %s for workflow %s",
                entry.get("action"),
                entry.get("workflow_id"),
            )


def _version_ref(version: WorkflowVersion) -> dict[str, Any]:
    return {"versionId": str(version.id), "versionNumber": version.version_number}
