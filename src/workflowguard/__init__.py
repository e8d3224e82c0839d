"""WorkflowGuard — snapshot, version and restore HubSpot workflows.

The version history core keeps an append-only log of workflow snapshots,
diffs adjacent snapshots on demand, restores or rolls back by appending new
snapshots, and aggregates history plus audit entries into compliance reports.

Quick start::

    from workflowguard.database import async_session_factory
    from workflowguard.versioning import VersionHistoryService, SnapshotType

    async with async_session_factory() as db:
        service = VersionHistoryService(db)
        version = await service.create_version(
            workflow_id, user_id, {"actions": []}, SnapshotType.MANUAL_SAVE
        )
        await db.commit()
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
