from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetledger.apps.api.deps import (
    Pagination,
    Principal,
    get_db,
    get_kind_registry,
    get_pagination,
    get_principal,
    get_resource_kind,
    get_search_compiler,
)
from fleetledger.apps.api.errors import fleet_http_exception
from fleetledger.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetledger.apps.api.response import Envelope, Page, envelope, page_envelope
from fleetledger.core.config import get_settings
from fleetledger.core.errors import SearchError
from fleetledger.domain.models import Resource
from fleetledger.persistence.repos import adapter_statuses as adapter_status_repo
from fleetledger.persistence.repos import resources as resources_repo
from fleetledger.services.kinds import ResourceKind, ResourceKindRegistry
from fleetledger.services.search.compiler import SearchQueryCompiler


logger = logging.getLogger(__name__)

router = APIRouter(tags=["resources"], responses=DEFAULT_ERROR_RESPONSES)

_NAME_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"


class ResourceResponse(BaseModel):
    id: str
    kind: str
    name: str
    spec: dict[str, Any]
    labels: dict[str, str] | None = None
    generation: int
    owner_id: str | None = None
    owner_kind: str | None = None
    status_conditions: list[dict[str, Any]] = Field(default_factory=list)
    created_by: str
    updated_by: str
    created_at: str | None = None
    updated_at: str | None = None


class ResourceCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=63, pattern=_NAME_PATTERN)
    spec: dict[str, Any] = Field(default_factory=dict)
    labels: dict[str, str] | None = None
    owner_id: str | None = None

    # Status is owned by the orchestrator and adapters; clients cannot seed it.
    model_config = {"extra": "forbid"}


class ResourcePatchRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=63, pattern=_NAME_PATTERN)
    spec: dict[str, Any] | None = None
    labels: dict[str, str] | None = None

    # Ownership and status are not patchable.
    model_config = {"extra": "forbid"}


def _to_response(resource: Resource) -> ResourceResponse:
    return ResourceResponse(
        id=resource.id,
        kind=resource.kind,
        name=resource.name,
        spec=resource.spec or {},
        labels=resource.labels,
        generation=resource.generation,
        owner_id=resource.owner_id,
        owner_kind=resource.owner_kind,
        status_conditions=resource.status_conditions or [],
        created_by=resource.created_by,
        updated_by=resource.updated_by,
        created_at=resource.created_at.isoformat() if resource.created_at else None,
        updated_at=resource.updated_at.isoformat() if resource.updated_at else None,
    )


def _not_found(kind: ResourceKind) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "NOT_FOUND", "message": f"{kind.name} not found"},
    )


async def load_resource(
    db: AsyncSession, *, principal: Principal, kind: ResourceKind, resource_id: str
) -> Resource:
    try:
        resource = await resources_repo.get_for_tenant(
            db, tenant_id=principal.tenant_id, kind=kind.name, resource_id=resource_id
        )
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching resource") from exc
    if resource is None:
        # Use 404 to avoid leaking cross-tenant resource existence.
        raise _not_found(kind)
    return resource


@router.get(
    "/{plural}",
    response_model=Envelope[Page[ResourceResponse]],
)
async def list_resources(
    request: Request,
    search: str | None = Query(default=None),
    kind: ResourceKind = Depends(get_resource_kind),
    pagination: Pagination = Depends(get_pagination),
    compiler: SearchQueryCompiler = Depends(get_search_compiler),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Envelope[Page[ResourceResponse]]:
    try:
        compiled = compiler.compile_string(search)
    except SearchError as exc:
        raise fleet_http_exception(exc) from exc
    timeout_s = get_settings().search_timeout_s
    try:
        rows, total = await asyncio.wait_for(
            resources_repo.search_resources(
                db,
                tenant_id=principal.tenant_id,
                kind=kind.name,
                where=compiled.clause(),
                offset=pagination.offset,
                limit=pagination.size,
            ),
            timeout=timeout_s or None,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("resources.search_timeout", extra={"kind": kind.name, "timeout_s": timeout_s})
        raise HTTPException(
            status_code=503,
            detail={"code": "SEARCH_TIMEOUT", "message": f"Search exceeded {timeout_s}s"},
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("resources.search_failed", extra={"kind": kind.name})
        raise HTTPException(status_code=500, detail="Database error while searching resources") from exc
    return page_envelope(
        request,
        kind=f"{kind.name}List",
        page=pagination.page,
        items=[_to_response(row) for row in rows],
        total=total,
    )


@router.post(
    "/{plural}",
    status_code=201,
    response_model=Envelope[ResourceResponse],
)
async def create_resource(
    request: Request,
    payload: ResourceCreateRequest,
    kind: ResourceKind = Depends(get_resource_kind),
    registry: ResourceKindRegistry = Depends(get_kind_registry),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Envelope[ResourceResponse]:
    owner_id: str | None = None
    if kind.owner_kind:
        if not payload.owner_id:
            raise HTTPException(
                status_code=400,
                detail={
                    "code": "OWNER_REQUIRED",
                    "message": f"{kind.name} requires an owner_id of kind {kind.owner_kind}",
                    "field": "owner_id",
                },
            )
        # Owners must be live resources of the same tenant.
        await load_resource(
            db, principal=principal, kind=registry.get(kind.owner_kind), resource_id=payload.owner_id
        )
        owner_id = payload.owner_id
    elif payload.owner_id:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "OWNER_NOT_ALLOWED",
                "message": f"{kind.name} cannot have an owner",
                "field": "owner_id",
            },
        )
    try:
        resource = await resources_repo.create_resource(
            db,
            tenant_id=principal.tenant_id,
            kind=kind.name,
            name=payload.name,
            spec=payload.spec,
            labels=payload.labels,
            owner_id=owner_id,
            owner_kind=kind.owner_kind,
            actor=principal.subject_id,
        )
        await db.commit()
        await db.refresh(resource)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("resources.create_failed", extra={"kind": kind.name})
        raise HTTPException(status_code=500, detail="Database error while creating resource") from exc
    logger.info("resources.created", extra={"kind": kind.name, "resource_id": resource.id})
    return envelope(request, _to_response(resource))


@router.get(
    "/{plural}/{resource_id}",
    response_model=Envelope[ResourceResponse],
)
async def get_resource(
    request: Request,
    resource_id: str,
    kind: ResourceKind = Depends(get_resource_kind),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Envelope[ResourceResponse]:
    resource = await load_resource(db, principal=principal, kind=kind, resource_id=resource_id)
    return envelope(request, _to_response(resource))


@router.patch(
    "/{plural}/{resource_id}",
    response_model=Envelope[ResourceResponse],
)
async def patch_resource(
    request: Request,
    resource_id: str,
    payload: ResourcePatchRequest,
    kind: ResourceKind = Depends(get_resource_kind),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Envelope[ResourceResponse]:
    resource = await load_resource(db, principal=principal, kind=kind, resource_id=resource_id)
    previous_generation = resource.generation
    try:
        await resources_repo.update_resource(
            db,
            resource,
            name=payload.name,
            spec=payload.spec,
            labels=payload.labels,
            actor=principal.subject_id,
        )
        await db.commit()
        await db.refresh(resource)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("resources.update_failed", extra={"kind": kind.name, "resource_id": resource_id})
        raise HTTPException(status_code=500, detail="Database error while updating resource") from exc
    logger.info(
        "resources.updated",
        extra={
            "kind": kind.name,
            "resource_id": resource_id,
            "generation": resource.generation,
            "generation_bumped": resource.generation != previous_generation,
        },
    )
    return envelope(request, _to_response(resource))


@router.delete("/{plural}/{resource_id}", status_code=204)
async def delete_resource(
    resource_id: str,
    kind: ResourceKind = Depends(get_resource_kind),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    resource = await load_resource(db, principal=principal, kind=kind, resource_id=resource_id)
    try:
        await resources_repo.soft_delete(db, resource)
        removed = await adapter_status_repo.soft_delete_for_resource(
            db, resource_type=kind.name, resource_id=resource.id
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("resources.delete_failed", extra={"kind": kind.name, "resource_id": resource_id})
        raise HTTPException(status_code=500, detail="Database error while deleting resource") from exc
    logger.info(
        "resources.deleted",
        extra={"kind": kind.name, "resource_id": resource_id, "adapter_statuses": removed},
    )
    return Response(status_code=204)
