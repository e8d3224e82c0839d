"""Audit log sink — append-only record of actions taken on workflows."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.models.audit_log import AuditLog
from workflowguard.models.user import User

logger = logging.getLogger(__name__)

WORKFLOW_ENTITY = "workflow"

# Actions written by the version history core
VERSION_CREATED = "version_created"
INITIAL_PROTECTION = "initial_protection"
AUTOMATED_BACKUP_CREATED = "automated_backup_created"
RESTORE = "restore"
ROLLBACK = "rollback"
VERSION_DELETED = "version_deleted"
CHANGE_NOTIFICATION_SENT = "change_notification_sent"
APPROVAL_REQUEST_CREATED = "approval_request_created"


class AuditLogSink:
    """Writes and reads ``AuditLog`` rows scoped to workflows."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def append(
        self,
        *,
        action: str,
        workflow_id: uuid.UUID | str,
        user_id: str | None,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Append one entry inside its own savepoint.

        A failure rolls back only this entry; earlier writes in the session
        are untouched.
        """
        entry = AuditLog(
            action=action,
            entity_type=WORKFLOW_ENTITY,
            entity_id=str(workflow_id),
            user_id=user_id,
            old_value=old_value,
            new_value=new_value,
        )
        async with self._db.begin_nested():
            self._db.add(entry)
        return entry

    async def find_for_workflow(
        self,
        workflow_id: uuid.UUID | str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Sequence[AuditLog]:
        """Entries for a workflow, oldest first, optionally within ``[start, end]``."""
        query = select(AuditLog).where(
            AuditLog.entity_type == WORKFLOW_ENTITY,
            AuditLog.entity_id == str(workflow_id),
        )
        if start is not None:
            query = query.where(AuditLog.timestamp >= start)
        if end is not None:
            query = query.where(AuditLog.timestamp <= end)
        result = await self._db.execute(query.order_by(AuditLog.timestamp.asc()))
        return result.scalars().all()

    async def display_names(self, user_ids: Iterable[str | None]) -> dict[str, str]:
        """Map user ids to display names; unknown or non-user ids are omitted."""
        ids: set[uuid.UUID] = set()
        for raw in user_ids:
            if not raw:
                continue
            try:
                ids.add(uuid.UUID(str(raw)))
            except ValueError:
                # e.g. the "system" actor
                continue
        if not ids:
            return {}

        result = await self._db.execute(select(User).where(User.id.in_(ids)))
        return {str(user.id): user.display_name for user in result.scalars().all()}
