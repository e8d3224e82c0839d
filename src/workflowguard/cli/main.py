"""WorkflowGuard CLI entry point.

Commands::

    workflowguard backup --workflow ID   — snapshot one workflow as an Auto Backup
    workflowguard backup --all           — back up every workflow with history
    workflowguard report --workflow ID --start ISO --end ISO
                                         — print a compliance report as JSON
    workflowguard serve                  — run the HTTP API
    workflowguard init-db                — create tables (dev only)

``backup --all`` is meant to be run from cron.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workflowguard.config import settings
from workflowguard.exceptions import WorkflowGuardError
from workflowguard.versioning.service import VersionHistoryService
from workflowguard.versioning.store import SnapshotStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# backup command
# ---------------------------------------------------------------------------

async def run_backups(
    session_factory: async_sessionmaker[AsyncSession],
    workflow_ids: list[uuid.UUID] | None,
    user_id: str,
) -> tuple[int, int]:
    """Back up each workflow in its own transaction.

    ``workflow_ids=None`` means every workflow that has at least one version.
    Returns ``(succeeded, failed)``; one failure does not stop the rest.
    """
    if workflow_ids is None:
        async with session_factory() as db:
            workflow_ids = list(await SnapshotStore(db).workflow_ids_with_versions())

    succeeded = failed = 0
    for workflow_id in workflow_ids:
        async with session_factory() as db:
            try:
                backup = await VersionHistoryService(db).create_automated_backup(
                    workflow_id, user_id
                )
                await db.commit()
            except WorkflowGuardError as exc:
                await db.rollback()
                failed += 1
                logger.warning("Backup of workflow %s failed: %s", workflow_id, exc.message)
                print(f"  FAIL  {workflow_id}: {exc.message}")
                continue
            except SQLAlchemyError as exc:
                await db.rollback()
                failed += 1
                logger.exception("Backup of workflow %s hit a database error", workflow_id)
                print(f"  FAIL  {workflow_id}: database error ({type(exc).__name__})")
                continue
        succeeded += 1
        print(f"  OK    {workflow_id} -> version {backup.version_number}")
    return succeeded, failed


def cmd_backup(args: argparse.Namespace) -> None:
    """Execute the ``backup`` command."""
    from workflowguard.database import async_session_factory

    workflow_ids = None if args.all else [args.workflow]
    succeeded, failed = asyncio.run(
        run_backups(async_session_factory, workflow_ids, args.user or settings.system_user_id)
    )
    print(f"\n{succeeded} backup(s) created, {failed} failed")
    if failed:
        sys.exit(1)


# ---------------------------------------------------------------------------
# report command
# ---------------------------------------------------------------------------

async def build_report(
    session_factory: async_sessionmaker[AsyncSession],
    workflow_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> dict:
    async with session_factory() as db:
        report = await VersionHistoryService(db).generate_compliance_report(
            workflow_id, start, end
        )
    return report.to_dict()


def cmd_report(args: argparse.Namespace) -> None:
    """Execute the ``report`` command — print the report as JSON."""
    from workflowguard.database import async_session_factory

    try:
        report = asyncio.run(
            build_report(async_session_factory, args.workflow, args.start, args.end)
        )
    except (WorkflowGuardError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(report, indent=2))


# ---------------------------------------------------------------------------
# serve command
# ---------------------------------------------------------------------------

def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run(
        "workflowguard.main:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# init-db command
# ---------------------------------------------------------------------------

def cmd_init_db(args: argparse.Namespace) -> None:
    from workflowguard.database import init_db

    asyncio.run(init_db())
    print("Tables created.")


def _iso_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 datetime: {value!r}") from None


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="workflowguard",
        description="WorkflowGuard CLI — version history for HubSpot workflows",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # backup subcommand
    backup_parser = subparsers.add_parser(
        "backup",
        help="Create Auto Backup snapshots",
    )
    target = backup_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--workflow", type=uuid.UUID, help="Workflow id to back up")
    target.add_argument(
        "--all",
        action="store_true",
        help="Back up every workflow that has at least one version",
    )
    backup_parser.add_argument(
        "--user",
        default=None,
        help=f"Actor recorded on the backup (default: {settings.system_user_id})",
    )

    # report subcommand
    report_parser = subparsers.add_parser(
        "report",
        help="Print a compliance report as JSON",
    )
    report_parser.add_argument("--workflow", type=uuid.UUID, required=True)
    report_parser.add_argument("--start", type=_iso_datetime, required=True)
    report_parser.add_argument("--end", type=_iso_datetime, required=True)

    # serve subcommand
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    # init-db subcommand
    subparsers.add_parser(
        "init-db",
        help="Create database tables (dev only; use Alembic in production)",
    )

    parsed = parser.parse_args(argv)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(level=settings.log_level)

    if parsed.command == "backup":
        cmd_backup(parsed)
    elif parsed.command == "report":
        cmd_report(parsed)
    elif parsed.command == "serve":
        cmd_serve(parsed)
    elif parsed.command == "init-db":
        cmd_init_db(parsed)


if __name__ == "__main__":
    main()
