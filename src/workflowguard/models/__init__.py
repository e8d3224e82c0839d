"""SQLAlchemy ORM models for WorkflowGuard."""

from workflowguard.models.api_key import ApiKey
from workflowguard.models.audit_log import AuditLog
from workflowguard.models.base import Base
from workflowguard.models.user import User
from workflowguard.models.workflow import Workflow
from workflowguard.models.workflow_version import SnapshotType, WorkflowVersion

__all__ = [
    "ApiKey",
    "AuditLog",
    "Base",
    "SnapshotType",
    "User",
    "Workflow",
    "WorkflowVersion",
]
