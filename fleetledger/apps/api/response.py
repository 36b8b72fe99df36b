from __future__ import annotations

from typing import Any, Generic, Sequence, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel


API_VERSION = "v1"
REQUEST_ID_HEADER = "X-Request-Id"

T = TypeVar("T")


class Meta(BaseModel):
    request_id: str
    api_version: str = API_VERSION


class Envelope(BaseModel, Generic[T]):
    data: T
    meta: Meta


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorEnvelope(BaseModel):
    error: ErrorBody
    meta: Meta


class Page(BaseModel, Generic[T]):
    # Offset pagination block shared by resource and adapter status listings.
    kind: str
    page: int
    size: int
    total: int
    items: list[T]


def request_id_for(request: Request) -> str:
    # The middleware stamps every request; fall back for handlers invoked without it.
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
    return request_id


def envelope(request: Request, data: Any) -> Envelope[Any]:
    return Envelope(data=data, meta=Meta(request_id=request_id_for(request)))


def page_envelope(
    request: Request, *, kind: str, page: int, items: Sequence[Any], total: int
) -> Envelope[Any]:
    block = Page(kind=kind, page=page, size=len(items), total=total, items=list(items))
    return envelope(request, block)


def error_payload(
    request: Request,
    *,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body = ErrorEnvelope(
        error=ErrorBody(code=code, message=message, details=details or None),
        meta=Meta(request_id=request_id_for(request)),
    )
    return body.model_dump(exclude_none=True)
