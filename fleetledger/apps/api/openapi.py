from __future__ import annotations

from typing import Any

from fleetledger.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response(
        "Invalid search or condition document",
        _error_example(
            code="INVALID_SEARCH_FIELD",
            message="spec is not a valid search field",
            details={"fields": ["spec"]},
        ),
    ),
    401: _response(
        "Missing tenant context",
        _error_example(code="AUTH_UNAUTHORIZED", message="X-Tenant-Id header is required"),
    ),
    404: _response(
        "Unknown resource kind or resource",
        _error_example(code="NOT_FOUND", message="Resource not found"),
    ),
    422: _response(
        "Request body failed schema validation",
        _error_example(code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    ),
    500: _response(
        "Storage failure",
        _error_example(code="STORAGE_ERROR", message="Database error while storing adapter status"),
    ),
    503: _response(
        "Deadline exceeded",
        _error_example(code="RECONCILE_TIMEOUT", message="Adapter status reconciliation exceeded 10.0s"),
    ),
}
