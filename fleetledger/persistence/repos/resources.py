from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from fleetledger.domain.models import Resource


def _live_filter(tenant_id: str, kind: str) -> list[Any]:
    # Tenant scoping prevents cross-tenant leakage; deleted rows are invisible.
    return [
        Resource.tenant_id == tenant_id,
        Resource.kind == kind,
        Resource.deleted_at.is_(None),
    ]


async def create_resource(
    session: AsyncSession,
    *,
    tenant_id: str,
    kind: str,
    name: str,
    spec: dict[str, Any],
    labels: dict[str, str] | None = None,
    owner_id: str | None = None,
    owner_kind: str | None = None,
    status_conditions: list[dict[str, Any]] | None = None,
    actor: str = "system",
    resource_id: str | None = None,
) -> Resource:
    resource = Resource(
        id=resource_id or str(uuid4()),
        tenant_id=tenant_id,
        kind=kind,
        name=name,
        spec=spec,
        labels=labels,
        generation=1,
        owner_id=owner_id,
        owner_kind=owner_kind,
        status_conditions=status_conditions,
        created_by=actor,
        updated_by=actor,
    )
    session.add(resource)
    await session.flush()
    return resource


async def get_for_tenant(
    session: AsyncSession, *, tenant_id: str, kind: str, resource_id: str
) -> Resource | None:
    # Return None for tenant mismatch to keep 404 semantics.
    result = await session.execute(
        select(Resource).where(*_live_filter(tenant_id, kind), Resource.id == resource_id)
    )
    return result.scalar_one_or_none()


async def search_resources(
    session: AsyncSession,
    *,
    tenant_id: str,
    kind: str,
    where: ColumnElement[bool] | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> tuple[list[Resource], int]:
    filters = _live_filter(tenant_id, kind)
    if where is not None:
        filters.append(where)
    total = await session.execute(select(func.count()).select_from(Resource).where(*filters))
    stmt = select(Resource).where(*filters).order_by(Resource.created_at, Resource.id).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all()), int(total.scalar() or 0)


async def soft_delete(session: AsyncSession, resource: Resource) -> None:
    resource.deleted_at = func.now()
    await session.flush()


def next_generation(resource: Resource, spec: dict[str, Any] | None) -> int:
    # Generation tracks desired-state changes only; name and label edits keep it.
    if spec is None or spec == (resource.spec or {}):
        return resource.generation
    return resource.generation + 1


async def update_resource(
    session: AsyncSession,
    resource: Resource,
    *,
    name: str | None = None,
    spec: dict[str, Any] | None = None,
    labels: dict[str, str] | None = None,
    actor: str = "system",
) -> Resource:
    resource.generation = next_generation(resource, spec)
    if name is not None:
        resource.name = name
    if spec is not None:
        resource.spec = spec
    if labels is not None:
        resource.labels = labels
    resource.updated_by = actor
    resource.updated_at = func.now()
    await session.flush()
    return resource
