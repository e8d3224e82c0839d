"""Snapshot store — append-only persistence of workflow versions."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.config import settings
from workflowguard.exceptions import ConflictError
from workflowguard.models.workflow_version import SnapshotType, WorkflowVersion

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and appends ``WorkflowVersion`` rows for one DB session.

    The store never updates a row. ``remove`` exists for administrative
    purges only.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create(
        self,
        workflow_id: uuid.UUID,
        version_number: int,
        snapshot_type: SnapshotType | str,
        created_by: str,
        data: dict[str, Any],
    ) -> WorkflowVersion:
        """Append a version numbered exactly one past the current max.

        Raises:
            ConflictError: *version_number* is out of sequence, or another
                writer claimed it first. The insert is rolled back to its
                savepoint so the session stays usable for a retry.
        """
        expected = await self.next_version_number(workflow_id)
        if version_number != expected:
            raise ConflictError(workflow_id, version_number, expected_version_number=expected)

        version = WorkflowVersion(
            workflow_id=workflow_id,
            version_number=version_number,
            snapshot_type=SnapshotType(snapshot_type).value,
            created_by=created_by,
            data=data,
        )
        try:
            async with self._db.begin_nested():
                self._db.add(version)
        except IntegrityError as exc:
            logger.warning(
                "Concurrent snapshot for workflow %s lost the race for version %d",
                workflow_id,
                version_number,
            )
            raise ConflictError(workflow_id, version_number) from exc

        logger.debug(
            "Stored version %d (%s) for workflow %s",
            version.version_number,
            version.snapshot_type,
            workflow_id,
        )
        return version

    async def next_version_number(self, workflow_id: uuid.UUID) -> int:
        result = await self._db.execute(
            select(func.max(WorkflowVersion.version_number)).where(
                WorkflowVersion.workflow_id == workflow_id
            )
        )
        current_max = result.scalar()
        return (current_max or 0) + 1

    async def find_latest(self, workflow_id: uuid.UUID) -> WorkflowVersion | None:
        result = await self._db.execute(
            select(WorkflowVersion)
            .where(WorkflowVersion.workflow_id == workflow_id)
            .order_by(WorkflowVersion.version_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_all(
        self,
        workflow_id: uuid.UUID,
        limit: int | None = None,
    ) -> Sequence[WorkflowVersion]:
        """Newest first, capped at *limit* (default ``settings.history_limit``)."""
        result = await self._db.execute(
            select(WorkflowVersion)
            .where(WorkflowVersion.workflow_id == workflow_id)
            .order_by(WorkflowVersion.version_number.desc())
            .limit(limit or settings.history_limit)
        )
        return result.scalars().all()

    async def find_by_id(self, version_id: uuid.UUID) -> WorkflowVersion | None:
        result = await self._db.execute(
            select(WorkflowVersion).where(WorkflowVersion.id == version_id)
        )
        return result.scalar_one_or_none()

    async def find_previous(
        self,
        workflow_id: uuid.UUID,
        version_number: int,
    ) -> WorkflowVersion | None:
        """Highest-numbered version strictly below *version_number*.

        Found by ordering, so it tolerates gaps left by purges.
        """
        result = await self._db.execute(
            select(WorkflowVersion)
            .where(
                WorkflowVersion.workflow_id == workflow_id,
                WorkflowVersion.version_number < version_number,
            )
            .order_by(WorkflowVersion.version_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count(self, workflow_id: uuid.UUID) -> int:
        result = await self._db.execute(
            select(func.count())
            .select_from(WorkflowVersion)
            .where(WorkflowVersion.workflow_id == workflow_id)
        )
        return result.scalar() or 0

    async def find_in_range(
        self,
        workflow_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> Sequence[WorkflowVersion]:
        """Versions created within ``[start, end]``, oldest first."""
        result = await self._db.execute(
            select(WorkflowVersion)
            .where(
                WorkflowVersion.workflow_id == workflow_id,
                WorkflowVersion.created_at >= start,
                WorkflowVersion.created_at <= end,
            )
            .order_by(WorkflowVersion.created_at.asc(), WorkflowVersion.version_number.asc())
        )
        return result.scalars().all()

    async def find_up_to(
        self,
        workflow_id: uuid.UUID,
        version_number: int,
    ) -> Sequence[WorkflowVersion]:
        """All versions numbered ``<= version_number``, oldest first."""
        result = await self._db.execute(
            select(WorkflowVersion)
            .where(
                WorkflowVersion.workflow_id == workflow_id,
                WorkflowVersion.version_number <= version_number,
            )
            .order_by(WorkflowVersion.version_number.asc())
        )
        return result.scalars().all()

    async def workflow_ids_with_versions(self) -> Sequence[uuid.UUID]:
        result = await self._db.execute(select(WorkflowVersion.workflow_id).distinct())
        return result.scalars().all()

    async def remove(self, version_id: uuid.UUID) -> bool:
        """Delete one version. Returns False if it did not exist."""
        result = await self._db.execute(
            delete(WorkflowVersion).where(WorkflowVersion.id == version_id)
        )
        return (result.rowcount or 0) > 0
