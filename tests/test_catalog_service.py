import asyncio
import json
from datetime import datetime, timezone

import pytest

from praetor_monitor.catalog.service import CatalogService, parse_variables
from praetor_monitor.core.exceptions import InvalidVariablesError
from praetor_monitor.telemetry.schemas import OutcomeStatus
from praetor_monitor.telemetry.store import TelemetryStore

PROJECTS = "/api/v1/projects"
PROJECT = {"id": 3, "name": "infra", "scm_url": "https://git.example/infra.git", "modified_at": "2024-05-01T08:00:00Z"}


def run(coro_fn):
    return asyncio.run(coro_fn())


def test_parse_variables():
    assert parse_variables(None) == {}
    assert parse_variables("   ") == {}
    assert parse_variables('{"ansible_user": "deploy", "port": 22}') == {"ansible_user": "deploy", "port": 22}

    with pytest.raises(InvalidVariablesError):
        parse_variables("{not json")
    with pytest.raises(InvalidVariablesError):
        parse_variables("[1, 2]")


def test_sync_reported_failure_leaves_project_untouched(platform, make_client):
    platform.on("GET", PROJECTS, (200, {"items": [PROJECT]}))
    platform.on("POST", "/api/v1/projects/3/sync", (500, {"success": False, "error": "auth failed"}))
    client = make_client(platform)

    async def scenario():
        store = TelemetryStore(client)
        await store.refresh_projects()
        outcome = await CatalogService(client, store).sync_project(3)
        await client.close()
        return store, outcome

    store, outcome = run(scenario)
    assert outcome.status == OutcomeStatus.REPORTED_FAILURE
    assert "auth failed" in outcome.message
    assert store.projects[0].modified_at == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    assert len(platform.calls("GET", PROJECTS)) == 1


def test_sync_success_refreshes_projects(platform, make_client):
    synced = dict(PROJECT, modified_at="2024-06-01T08:00:00Z")
    platform.on("GET", PROJECTS, (200, {"items": [PROJECT]}), (200, {"items": [synced]}))
    platform.on(
        "POST",
        "/api/v1/projects/3/sync",
        (200, {"success": True, "revision": "abc123def456\n", "commit_msg": "Fix inventory\n"}),
    )
    client = make_client(platform)

    async def scenario():
        store = TelemetryStore(client)
        await store.refresh_projects()
        outcome = await CatalogService(client, store).sync_project(3)
        await client.close()
        return store, outcome

    store, outcome = run(scenario)
    assert outcome.ok
    assert outcome.message == "Sync successful: abc123de Fix inventory"
    assert store.projects[0].modified_at.month == 6


def test_sync_request_failure(platform, make_client):
    platform.on("POST", "/api/v1/projects/3/sync", (404, {"error": "project not found"}))
    client = make_client(platform)

    async def scenario():
        outcome = await CatalogService(client).sync_project(3)
        await client.close()
        return outcome

    outcome = run(scenario)
    assert outcome.status == OutcomeStatus.REQUEST_FAILED
    assert "project not found" in outcome.message


def test_invalid_host_variables_make_no_request(platform, make_client):
    client = make_client(platform)

    async def scenario():
        outcomes = [
            await CatalogService(client).create_host(1, "web01", '{"port": 22'),
            await CatalogService(client).create_host(1, "web01", "[1, 2]"),
        ]
        await client.close()
        return outcomes

    outcomes = run(scenario)
    assert [o.status for o in outcomes] == [OutcomeStatus.INVALID_INPUT, OutcomeStatus.INVALID_INPUT]
    assert "Invalid JSON" in outcomes[0].message
    assert "JSON object" in outcomes[1].message
    assert platform.requests == []


def test_create_host_sends_variables(platform, make_client):
    platform.on("POST", "/api/v1/inventories/1/hosts", (201, {"id": 11, "inventory_id": 1, "name": "web01"}))
    client = make_client(platform)

    async def scenario():
        outcome = await CatalogService(client).create_host(1, " web01 ", '{"ansible_host": "10.0.0.5"}')
        await client.close()
        return outcome

    outcome = run(scenario)
    assert outcome.ok
    assert outcome.data.id == 11
    body = json.loads(platform.requests[0].content)
    assert body == {"name": "web01", "variables": {"ansible_host": "10.0.0.5"}}


def test_template_requires_every_field(platform, make_client):
    client = make_client(platform)
    service = CatalogService(client)

    async def scenario():
        missing_playbook = await service.create_template("site", 1, 2, "  ")
        missing_inventory = await service.update_template(9, "site", 1, None, "site.yml")
        await client.close()
        return missing_playbook, missing_inventory

    missing_playbook, missing_inventory = run(scenario)
    assert missing_playbook.status == OutcomeStatus.INVALID_INPUT
    assert missing_inventory.status == OutcomeStatus.INVALID_INPUT
    assert platform.requests == []


def test_create_template_refreshes_store(platform, make_client):
    platform.on("POST", "/api/v1/job-templates", (201, {"id": 4, "name": "site", "project_id": 1, "inventory_id": 2, "playbook": "site.yml"}))
    platform.on("GET", "/api/v1/job-templates", (200, {"items": [{"id": 4, "name": "site"}]}))
    client = make_client(platform)

    async def scenario():
        store = TelemetryStore(client)
        outcome = await CatalogService(client, store).create_template("site", 1, 2, "site.yml")
        await client.close()
        return store, outcome

    store, outcome = run(scenario)
    assert outcome.ok
    assert [t.id for t in store.templates] == [4]


def test_create_project_and_inventory(platform, make_client):
    platform.on("POST", PROJECTS, (201, {"id": 5, "name": "infra", "scm_url": "https://git.example/infra.git"}))
    platform.on("POST", "/api/v1/inventories", (201, {"id": 6, "name": "prod"}))
    client = make_client(platform)
    service = CatalogService(client)

    async def scenario():
        project = await service.create_project("infra", "https://git.example/infra.git")
        inventory = await service.create_inventory("prod")
        blank = await service.create_inventory("  ")
        await client.close()
        return project, inventory, blank

    project, inventory, blank = run(scenario)
    assert project.ok and inventory.ok
    assert blank.status == OutcomeStatus.INVALID_INPUT
    assert json.loads(platform.calls("POST", PROJECTS)[0].content) == {
        "name": "infra",
        "scm_url": "https://git.example/infra.git",
        "scm_type": "git",
        "organization_id": 1,
    }


def test_delete_host_and_group_membership(platform, make_client):
    platform.on("DELETE", "/api/v1/hosts/11", (204, None))
    platform.on("DELETE", "/api/v1/hosts/12", (404, {"error": "not found"}))
    platform.on("POST", "/api/v1/inventories/1/groups", (201, {"id": 5, "inventory_id": 1, "name": "web"}))
    platform.on("POST", "/api/v1/groups/5/hosts", (201, None))
    platform.on("GET", "/api/v1/groups/5/hosts", (200, [{"id": 11, "name": "web01"}]))
    client = make_client(platform)
    service = CatalogService(client)

    async def scenario():
        results = [
            await service.delete_host(11),
            await service.delete_host(12),
            await service.create_group(1, "web"),
            await service.add_host_to_group(5, 11),
        ]
        members = await service.group_hosts(5)
        await client.close()
        return results, members

    results, members = run(scenario)
    assert [r.status for r in results] == [
        OutcomeStatus.SUCCEEDED,
        OutcomeStatus.REQUEST_FAILED,
        OutcomeStatus.SUCCEEDED,
        OutcomeStatus.SUCCEEDED,
    ]
    assert [h.name for h in members] == ["web01"]
