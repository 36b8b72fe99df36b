from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from fleetledger.apps.api.main import create_app
from fleetledger.tests.utils.resources import new_tenant_id, purge_tenant, seed_resource, tenant_headers


@pytest.mark.asyncio
async def test_spec_changes_bump_generation_and_label_edits_do_not() -> None:
    tenant_id = new_tenant_id()
    resource_id = await seed_resource(tenant_id=tenant_id, name="c-patch")
    headers = tenant_headers(tenant_id)
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            response = await client.patch(
                f"/v1/clusters/{resource_id}", json={"spec": {"region": "eu-west-1"}}, headers=headers
            )
            assert response.status_code == 200, response.text
            data = response.json()["data"]
            assert data["generation"] == 2
            assert data["spec"] == {"region": "eu-west-1"}
            assert data["updated_by"] == "tests"

            response = await client.patch(
                f"/v1/clusters/{resource_id}", json={"labels": {"environment": "staging"}}, headers=headers
            )
            assert response.status_code == 200
            data = response.json()["data"]
            assert data["generation"] == 2
            assert data["labels"] == {"environment": "staging"}

            # Resubmitting the same spec is not a desired-state change.
            response = await client.patch(
                f"/v1/clusters/{resource_id}", json={"spec": {"region": "eu-west-1"}}, headers=headers
            )
            assert response.json()["data"]["generation"] == 2

            fetched = await client.get(f"/v1/clusters/{resource_id}", headers=headers)
            assert fetched.json()["data"]["generation"] == 2
    finally:
        await purge_tenant(tenant_id)


@pytest.mark.asyncio
async def test_patch_rejects_status_and_foreign_tenants() -> None:
    tenant_id = new_tenant_id()
    other_tenant = new_tenant_id()
    resource_id = await seed_resource(tenant_id=tenant_id, name="c-owned")
    try:
        async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
            foreign = await client.patch(
                f"/v1/clusters/{resource_id}", json={"spec": {}}, headers=tenant_headers(other_tenant)
            )
            assert foreign.status_code == 404
            assert foreign.json()["error"]["code"] == "NOT_FOUND"

            seeded_status = await client.patch(
                f"/v1/clusters/{resource_id}",
                json={"status_conditions": []},
                headers=tenant_headers(tenant_id),
            )
            assert seeded_status.status_code == 422
    finally:
        await purge_tenant(tenant_id)
