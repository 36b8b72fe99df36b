from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from fleetledger.apps.api.errors import fleet_http_exception
from fleetledger.core.config import get_settings
from fleetledger.core.errors import UnknownResourceKindError
from fleetledger.persistence.db import get_session
from fleetledger.services.kinds import ResourceKind, ResourceKindRegistry, registry_from_settings
from fleetledger.services.search.compiler import SearchQueryCompiler
from fleetledger.services.status.reconciler import AdapterStatusReconciler
from fleetledger.services.status.validation import MandatoryConditionValidator


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Tenant-bound caller identity used to scope every resource query.
    tenant_id: str
    subject_id: str = "anonymous"


def get_principal(
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_subject_id: str | None = Header(default=None, alias="X-Subject-Id"),
) -> Principal:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "AUTH_UNAUTHORIZED", "message": "X-Tenant-Id header is required"},
        )
    return Principal(tenant_id=tenant_id, subject_id=(x_subject_id or "").strip() or "anonymous")


@lru_cache
def get_kind_registry() -> ResourceKindRegistry:
    return registry_from_settings(get_settings())


def get_resource_kind(
    plural: str,
    registry: ResourceKindRegistry = Depends(get_kind_registry),
) -> ResourceKind:
    try:
        return registry.by_plural(plural)
    except UnknownResourceKindError as exc:
        raise fleet_http_exception(exc) from exc


def get_reconciler(
    registry: ResourceKindRegistry = Depends(get_kind_registry),
) -> AdapterStatusReconciler:
    settings = get_settings()
    validator = MandatoryConditionValidator(registry.mandatory_conditions())
    return AdapterStatusReconciler(
        validator=validator,
        discard_stale_generations=settings.discard_stale_generations,
        timeout_s=settings.reconcile_timeout_s,
    )


def get_search_compiler() -> SearchQueryCompiler:
    return SearchQueryCompiler(max_length=get_settings().search_max_length)


class Pagination(BaseModel):
    page: int
    size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


def get_pagination(
    page: int = Query(default=1, ge=1),
    size: int | None = Query(default=None, ge=1),
) -> Pagination:
    settings = get_settings()
    # Clamp oversized pages instead of rejecting them.
    resolved = min(size or settings.list_default_page_size, settings.list_max_page_size)
    return Pagination(page=page, size=resolved)
