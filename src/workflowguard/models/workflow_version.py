"""Workflow version model — immutable snapshot of a workflow definition."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workflowguard.models.base import Base, UUIDPrimaryKeyMixin


class SnapshotType(str, Enum):
    """Provenance of a snapshot."""

    INITIAL_PROTECTION = "Initial Protection"
    MANUAL_SAVE = "Manual Save"
    AUTO_BACKUP = "Auto Backup"
    SYSTEM_BACKUP = "System Backup"
    RESTORE = "Restore"
    ROLLBACK = "Rollback"


class WorkflowVersion(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "workflow_versions"
    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "version_number", name="uq_workflow_versions_workflow_number"
        ),
    )

    workflow_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("workflows.id"), nullable=False, index=True
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_type: Mapped[str] = mapped_column(String, nullable=False)
    # User id, or the configured system actor for scheduled snapshots
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WorkflowVersion(workflow_id={self.workflow_id}, "
            f"version_number={self.version_number}, snapshot_type='{self.snapshot_type}')>"
        )
