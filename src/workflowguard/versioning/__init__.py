"""Version history core: snapshot store, diffing, rollback and reports."""

from workflowguard.models.workflow_version import SnapshotType
from workflowguard.versioning.audit import AuditLogSink
from workflowguard.versioning.diff import (
    STEP_CONTAINER_KEYS,
    ChangeSet,
    VersionComparison,
    calculate_changes,
    change_summary,
    compare_versions,
    extract_steps,
    steps_equal,
)
from workflowguard.versioning.report import (
    SCORE_WEIGHTS,
    ComplianceReport,
    ComplianceReportGenerator,
    build_recommendations,
    compute_compliance_score,
)
from workflowguard.versioning.service import (
    HistoryEntry,
    RestoreResult,
    RollbackResult,
    VersionHistoryService,
)
from workflowguard.versioning.store import SnapshotStore

__all__ = [
    "STEP_CONTAINER_KEYS",
    "SCORE_WEIGHTS",
    "AuditLogSink",
    "ChangeSet",
    "ComplianceReport",
    "ComplianceReportGenerator",
    "HistoryEntry",
    "RestoreResult",
    "RollbackResult",
    "SnapshotStore",
    "SnapshotType",
    "VersionComparison",
    "VersionHistoryService",
    "build_recommendations",
    "calculate_changes",
    "change_summary",
    "compare_versions",
    "compute_compliance_score",
    "extract_steps",
    "steps_equal",
]
