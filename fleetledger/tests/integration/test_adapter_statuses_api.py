from __future__ import annotations

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from fleetledger.apps.api.main import create_app
from fleetledger.domain.models import AdapterStatus
from fleetledger.persistence.db import SessionLocal
from fleetledger.tests.utils.resources import new_tenant_id, purge_tenant, seed_resource, tenant_headers


def _report(adapter: str = "a1", generation: int = 1, **statuses: str) -> dict:
    return {
        "adapter": adapter,
        "observed_generation": generation,
        "observed_time": "2026-03-01T10:00:00Z",
        "conditions": [{"type": name, "status": status} for name, status in statuses.items()],
        "data": {"nodes": 3},
        "metadata": {"job_name": "provision-c1", "job_namespace": "adapters", "attempt": 1},
    }


async def _live_rows(resource_id: str) -> int:
    async with SessionLocal() as session:
        result = await session.execute(
            select(func.count())
            .select_from(AdapterStatus)
            .where(AdapterStatus.resource_id == resource_id, AdapterStatus.deleted_at.is_(None))
        )
        return int(result.scalar() or 0)


@pytest.mark.asyncio
async def test_report_scenario_stores_discards_and_refreshes() -> None:
    tenant_id = new_tenant_id()
    headers = tenant_headers(tenant_id)
    cluster_id = await seed_resource(tenant_id=tenant_id)
    url = f"/v1/clusters/{cluster_id}/statuses"
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            first = await client.post(url, json=_report(Available="True", Applied="True", Health="True"), headers=headers)
            assert first.status_code == 201
            stored = first.json()["data"]
            assert stored["created_time"] == stored["last_report_time"]
            assert stored["metadata"]["job_name"] == "provision-c1"
            original = {item["type"]: item["last_transition_time"] for item in stored["conditions"]}

            second = await client.post(url, json=_report(Available="Unknown", Applied="True", Health="True"), headers=headers)
            assert second.status_code == 204

            listing = await client.get(url, headers=headers)
            assert listing.status_code == 200
            page = listing.json()["data"]
            assert page["total"] == 1
            assert page["items"][0]["conditions"] == stored["conditions"]

            await asyncio.sleep(0.01)
            third = await client.post(
                url, json=_report(generation=2, Available="False", Applied="True", Health="True"), headers=headers
            )
            assert third.status_code == 200
            updated = third.json()["data"]
            by_type = {item["type"]: item["last_transition_time"] for item in updated["conditions"]}
            assert by_type["Available"] != original["Available"]
            assert by_type["Applied"] == original["Applied"]
            assert by_type["Health"] == original["Health"]
            assert updated["created_time"] == stored["created_time"]
            assert updated["observed_generation"] == 2
        assert await _live_rows(cluster_id) == 1
    finally:
        await purge_tenant(tenant_id)


@pytest.mark.asyncio
async def test_invalid_condition_documents_are_rejected() -> None:
    tenant_id = new_tenant_id()
    headers = tenant_headers(tenant_id)
    cluster_id = await seed_resource(tenant_id=tenant_id)
    url = f"/v1/clusters/{cluster_id}/statuses"
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            injected = await client.post(
                url,
                json=_report(**{"Available": "True", "Applied": "True", "Health": "True", "Ready'; DROP TABLE x; --": "True"}),
                headers=headers,
            )
            assert injected.status_code == 400
            error = injected.json()["error"]
            assert error["code"] == "INVALID_CONDITION_TYPE"
            assert error["details"]["field"] == "type"

            bad_status = await client.post(url, json=_report(Available="Maybe", Applied="True", Health="True"), headers=headers)
            assert bad_status.status_code == 400
            assert bad_status.json()["error"]["code"] == "INVALID_CONDITION_STATUS"

            duplicate = _report(Available="True", Applied="True", Health="True")
            duplicate["conditions"].append({"type": "Health", "status": "False"})
            response = await client.post(url, json=duplicate, headers=headers)
            assert response.status_code == 400
            assert response.json()["error"]["code"] == "DUPLICATE_CONDITION_TYPE"
        assert await _live_rows(cluster_id) == 0
    finally:
        await purge_tenant(tenant_id)


@pytest.mark.asyncio
async def test_reports_for_unknown_or_foreign_resources_are_not_found() -> None:
    tenant_id = new_tenant_id()
    other_tenant = new_tenant_id()
    cluster_id = await seed_resource(tenant_id=tenant_id)
    body = _report(Available="True", Applied="True", Health="True")
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            missing = await client.post("/v1/clusters/nope/statuses", json=body, headers=tenant_headers(tenant_id))
            assert missing.status_code == 404
            foreign = await client.post(f"/v1/clusters/{cluster_id}/statuses", json=body, headers=tenant_headers(other_tenant))
            assert foreign.status_code == 404
            # The id exists, but as a Cluster rather than a NodePool.
            wrong_kind = await client.post(f"/v1/nodepools/{cluster_id}/statuses", json=body, headers=tenant_headers(tenant_id))
            assert wrong_kind.status_code == 404
    finally:
        await purge_tenant(tenant_id)


@pytest.mark.asyncio
async def test_concurrent_first_reports_produce_one_row() -> None:
    tenant_id = new_tenant_id()
    headers = tenant_headers(tenant_id)
    cluster_id = await seed_resource(tenant_id=tenant_id)
    url = f"/v1/clusters/{cluster_id}/statuses"
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            responses = await asyncio.gather(
                *[
                    client.post(url, json=_report(Available="True", Applied="True", Health="True"), headers=headers)
                    for _ in range(5)
                ]
            )
        assert sorted(response.status_code for response in responses).count(201) == 1
        assert all(response.status_code in {200, 201} for response in responses)
        assert await _live_rows(cluster_id) == 1
    finally:
        await purge_tenant(tenant_id)


@pytest.mark.asyncio
async def test_deleting_a_resource_frees_the_adapter_key() -> None:
    tenant_id = new_tenant_id()
    headers = tenant_headers(tenant_id)
    cluster_id = await seed_resource(tenant_id=tenant_id)
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            created = await client.post(
                f"/v1/clusters/{cluster_id}/statuses",
                json=_report(Available="True", Applied="True", Health="True"),
                headers=headers,
            )
            assert created.status_code == 201
            deleted = await client.delete(f"/v1/clusters/{cluster_id}", headers=headers)
            assert deleted.status_code == 204
            assert (await client.get(f"/v1/clusters/{cluster_id}", headers=headers)).status_code == 404
        assert await _live_rows(cluster_id) == 0
    finally:
        await purge_tenant(tenant_id)
