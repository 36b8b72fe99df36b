from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from fleetledger.apps.api.main import create_app


HEADERS = {"X-Tenant-Id": "t-unit"}


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


@pytest.mark.asyncio
async def test_health_is_enveloped_with_request_id() -> None:
    async with _client() as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["data"] == {"status": "ok"}
    assert payload["meta"] == {"request_id": "req-123", "api_version": "v1"}
    assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_missing_tenant_header_is_unauthorized() -> None:
    async with _client() as client:
        response = await client.get("/v1/clusters")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_unknown_collection_is_not_found() -> None:
    async with _client() as client:
        response = await client.get("/v1/gadgets", headers=HEADERS)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "UNKNOWN_RESOURCE_KIND"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("search", "code"),
    [
        ("spec = '{}'", "INVALID_SEARCH_FIELD"),
        ("status.conditions.ready = 'True'", "INVALID_CONDITION_TYPE"),
        ("status.conditions.Ready = 'Invalid'", "INVALID_CONDITION_STATUS"),
        ("status.conditions.Ready != 'True'", "UNSUPPORTED_SEARCH_OPERATOR"),
        ("name = 'a' or status.conditions.Ready = 'True'", "UNSUPPORTED_CONDITION_PLACEMENT"),
        ("name = ", "SEARCH_SYNTAX_ERROR"),
    ],
)
async def test_invalid_search_is_a_bad_request(search: str, code: str) -> None:
    async with _client() as client:
        response = await client.get("/v1/clusters", params={"search": search}, headers=HEADERS)
    assert response.status_code == 400
    payload = response.json()
    assert payload["error"]["code"] == code
    assert payload["meta"]["api_version"] == "v1"


@pytest.mark.asyncio
async def test_invalid_search_reports_offending_fields() -> None:
    async with _client() as client:
        response = await client.get("/v1/clusters", params={"search": "spec = '{}'"}, headers=HEADERS)
    assert response.json()["error"]["details"] == {"fields": ["spec"]}


@pytest.mark.asyncio
async def test_report_body_schema_errors_are_422() -> None:
    async with _client() as client:
        response = await client.post(
            "/v1/clusters/c-1/statuses",
            json={"adapter": "a1", "observed_generation": -1, "conditions": []},
            headers=HEADERS,
        )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"
