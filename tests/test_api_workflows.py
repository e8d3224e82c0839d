"""Tests for workflow endpoints — /v1/workflows/{id}/..."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from workflowguard.config import settings
from workflowguard.exceptions import ConflictError
from workflowguard.models.user import User
from workflowguard.models.workflow import Workflow
from workflowguard.versioning.service import (
    EARLIEST_VERSION_MESSAGE,
    NO_HISTORY_MESSAGE,
    ROLLED_BACK_MESSAGE,
    VersionHistoryService,
)

A1 = {"actions": [{"id": "a1", "type": "DELAY"}]}
A2 = {"actions": [{"id": "a1", "type": "DELAY"}, {"id": "a2", "type": "EMAIL"}]}


async def _save(client: AsyncClient, headers: dict, workflow: Workflow, data: dict) -> dict:
    resp = await client.post(
        f"/v1/workflows/{workflow.id}/versions",
        json={"data": data, "snapshotType": "Manual Save"},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Meta & auth
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_rejects_non_bearer_header(client: AsyncClient, test_workflow: Workflow):
    resp = await client.get(
        f"/v1/workflows/{test_workflow.id}/history",
        headers={"Authorization": "Basic abc"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_rejects_wrong_key_prefix(client: AsyncClient, test_workflow: Workflow):
    resp = await client.get(
        f"/v1/workflows/{test_workflow.id}/history",
        headers={"Authorization": "Bearer ak_something"},
    )
    assert resp.status_code == 401
    assert "wg_" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_rejects_unknown_key(client: AsyncClient, test_workflow: Workflow):
    resp = await client.get(
        f"/v1/workflows/{test_workflow.id}/history",
        headers={"Authorization": "Bearer wg_not_a_real_key"},
    )
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_version(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow, test_user: User
):
    body = await _save(client, auth_headers, test_workflow, A1)

    assert body["versionNumber"] == 1
    assert body["snapshotType"] == "Manual Save"
    assert body["workflowId"] == str(test_workflow.id)
    assert body["createdBy"] == str(test_user.id)
    assert body["data"] == A1


@pytest.mark.asyncio
async def test_create_version_rejects_unknown_snapshot_type(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow
):
    resp = await client.post(
        f"/v1/workflows/{test_workflow.id}/versions",
        json={"data": A1, "snapshotType": "Nightly Dump"},
        headers=auth_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_version_rejects_oversized_snapshot(
    client: AsyncClient,
    auth_headers: dict,
    test_workflow: Workflow,
    monkeypatch: pytest.MonkeyPatch,
):
    monkeypatch.setattr(settings, "max_snapshot_bytes", 64)
    resp = await client.post(
        f"/v1/workflows/{test_workflow.id}/versions",
        json={"data": {"actions": [{"id": str(i)} for i in range(20)]}},
        headers=auth_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_workflow_is_404(client: AsyncClient, auth_headers: dict):
    resp = await client.post(
        f"/v1/workflows/{uuid.uuid4()}/versions",
        json={"data": A1},
        headers=auth_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"].startswith("Workflow not found")


@pytest.mark.asyncio
async def test_someone_elses_workflow_is_404(
    client: AsyncClient,
    auth_headers: dict,
    db_session: AsyncSession,
    other_user: User,
):
    foreign = Workflow(id=uuid.uuid4(), external_id="hs-9", name="Theirs", owner_id=other_user.id)
    db_session.add(foreign)
    await db_session.flush()

    resp = await client.get(f"/v1/workflows/{foreign.id}/history", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_initial_protection_is_created_once(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow
):
    url = f"/v1/workflows/{test_workflow.id}/initial-protection"

    first = await client.post(url, headers=auth_headers)
    assert first.status_code == 200
    assert first.json()["created"] is True
    assert first.json()["version"]["snapshotType"] == "Initial Protection"
    assert first.json()["version"]["data"]["externalId"] == "hs-1001"

    second = await client.post(url, json={"initialData": A1}, headers=auth_headers)
    assert second.json()["created"] is False
    assert second.json()["version"]["id"] == first.json()["version"]["id"]


@pytest.mark.asyncio
async def test_automated_backup(client: AsyncClient, auth_headers: dict, test_workflow: Workflow):
    url = f"/v1/workflows/{test_workflow.id}/automated-backup"

    resp = await client.post(url, headers=auth_headers)
    assert resp.status_code == 404

    await _save(client, auth_headers, test_workflow, A1)
    resp = await client.post(url, headers=auth_headers)
    assert resp.status_code == 201
    assert resp.json()["snapshotType"] == "Auto Backup"
    assert resp.json()["versionNumber"] == 2


@pytest.mark.asyncio
async def test_latest_version(client: AsyncClient, auth_headers: dict, test_workflow: Workflow):
    url = f"/v1/workflows/{test_workflow.id}/versions/latest"
    assert (await client.get(url, headers=auth_headers)).status_code == 404

    await _save(client, auth_headers, test_workflow, A1)
    await _save(client, auth_headers, test_workflow, A2)
    resp = await client.get(url, headers=auth_headers)
    assert resp.json()["versionNumber"] == 2


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_history(client: AsyncClient, auth_headers: dict, test_workflow: Workflow):
    await _save(client, auth_headers, test_workflow, A1)
    await _save(client, auth_headers, test_workflow, A2)

    resp = await client.get(f"/v1/workflows/{test_workflow.id}/history", headers=auth_headers)
    assert resp.status_code == 200
    history = resp.json()["history"]

    assert [h["versionNumber"] for h in history] == [2, 1]
    assert [h["status"] for h in history] == ["active", "inactive"]
    assert history[0]["type"] == "Manual Save"
    assert history[0]["notes"] == "1 step(s) added"
    assert history[0]["changes"] == {"added": 1, "modified": 0, "removed": 0}
    assert history[0]["selected"] is False


@pytest.mark.asyncio
async def test_history_limit(client: AsyncClient, auth_headers: dict, test_workflow: Workflow):
    for data in (A1, A2, A1):
        await _save(client, auth_headers, test_workflow, data)

    resp = await client.get(
        f"/v1/workflows/{test_workflow.id}/history",
        params={"limit": 1},
        headers=auth_headers,
    )
    history = resp.json()["history"]
    assert len(history) == 1
    assert history[0]["changes"]["removed"] == 1


@pytest.mark.asyncio
async def test_history_by_external_id(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow
):
    await _save(client, auth_headers, test_workflow, A1)

    resp = await client.get("/v1/workflows/by-external-id/hs-1001/history", headers=auth_headers)
    assert [h["versionNumber"] for h in resp.json()["history"]] == [1]

    resp = await client.get("/v1/workflows/by-external-id/hs-nope/history", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["history"] == []


# ---------------------------------------------------------------------------
# Restore / rollback
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rollback_states(client: AsyncClient, auth_headers: dict, test_workflow: Workflow):
    url = f"/v1/workflows/{test_workflow.id}/rollback"

    resp = await client.post(url, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == NO_HISTORY_MESSAGE

    await _save(client, auth_headers, test_workflow, A1)
    resp = await client.post(url, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": EARLIEST_VERSION_MESSAGE, "version": None}

    await _save(client, auth_headers, test_workflow, A2)
    resp = await client.post(url, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == ROLLED_BACK_MESSAGE
    assert resp.json()["version"]["snapshotType"] == "Rollback"
    assert resp.json()["version"]["data"] == A1


@pytest.mark.asyncio
async def test_restore(
    client: AsyncClient,
    auth_headers: dict,
    test_workflow: Workflow,
    other_workflow: Workflow,
):
    v1 = await _save(client, auth_headers, test_workflow, A1)
    await _save(client, auth_headers, test_workflow, A2)

    resp = await client.post(
        f"/v1/workflows/{test_workflow.id}/rollback/{v1['id']}", headers=auth_headers
    )
    assert resp.status_code == 200
    assert resp.json()["version"]["versionNumber"] == 3
    assert resp.json()["version"]["snapshotType"] == "Restore"
    assert resp.json()["version"]["data"] == A1

    # A version id from another workflow is not restorable here
    resp = await client.post(
        f"/v1/workflows/{other_workflow.id}/rollback/{v1['id']}", headers=auth_headers
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Notifications, approvals, reports
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_change_notification_and_approval(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow
):
    resp = await client.post(
        f"/v1/workflows/{test_workflow.id}/change-notification",
        json={"changes": {"name": "renamed"}},
        headers=auth_headers,
    )
    assert resp.status_code == 200

    resp = await client.post(
        f"/v1/workflows/{test_workflow.id}/approval-request",
        json={"requestedChanges": {"name": "renamed"}},
        headers=auth_headers,
    )
    assert resp.status_code == 201
    assert resp.json() == {"id": "pending", "status": "created"}


@pytest.mark.asyncio
async def test_compliance_report(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow
):
    await _save(client, auth_headers, test_workflow, A1)
    now = datetime.now(timezone.utc)

    resp = await client.get(
        f"/v1/workflows/{test_workflow.id}/compliance-report",
        params={
            "startDate": (now - timedelta(days=1)).isoformat(),
            "endDate": (now + timedelta(hours=1)).isoformat(),
        },
        headers=auth_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["workflowName"] == "Lead nurture"
    assert body["summary"]["totalVersions"] == 1
    assert body["summary"]["manualSaves"] == 1
    assert body["summary"]["complianceScore"] == 20
    assert body["auditTrail"][0]["userName"] == "Olivia Owner"


@pytest.mark.asyncio
async def test_compliance_report_rejects_inverted_range(
    client: AsyncClient, auth_headers: dict, test_workflow: Workflow
):
    now = datetime.now(timezone.utc)
    resp = await client.get(
        f"/v1/workflows/{test_workflow.id}/compliance-report",
        params={"startDate": now.isoformat(), "endDate": (now - timedelta(days=1)).isoformat()},
        headers=auth_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_conflict_maps_to_409(
    client: AsyncClient,
    auth_headers: dict,
    test_workflow: Workflow,
    monkeypatch: pytest.MonkeyPatch,
):
    async def racing_create(self, workflow_id, user_id, data, snapshot_type):
        raise ConflictError(workflow_id, 2)

    monkeypatch.setattr(VersionHistoryService, "create_version", racing_create)

    resp = await client.post(
        f"/v1/workflows/{test_workflow.id}/versions",
        json={"data": A1},
        headers=auth_headers,
    )
    assert resp.status_code == 409
    assert "already exists" in resp.json()["detail"]
