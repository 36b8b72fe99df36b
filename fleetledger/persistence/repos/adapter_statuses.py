from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleetledger.domain.models import AdapterStatus


def _live_key_filter(resource_type: str, resource_id: str) -> list[Any]:
    # Soft-deleted rows never participate in lookups or the uniqueness constraint.
    return [
        AdapterStatus.resource_type == resource_type,
        AdapterStatus.resource_id == resource_id,
        AdapterStatus.deleted_at.is_(None),
    ]


async def get_for_key(
    session: AsyncSession,
    *,
    resource_type: str,
    resource_id: str,
    adapter: str,
    for_update: bool = False,
) -> AdapterStatus | None:
    stmt = select(AdapterStatus).where(
        *_live_key_filter(resource_type, resource_id),
        AdapterStatus.adapter == adapter,
    )
    if for_update:
        # Serialize read-modify-write cycles on the same key for the rest of the transaction.
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def insert(
    session: AsyncSession,
    *,
    resource_type: str,
    resource_id: str,
    adapter: str,
    observed_generation: int,
    conditions: list[dict[str, Any]],
    data: dict[str, Any] | None,
    metadata_json: dict[str, Any] | None,
    now: datetime,
) -> AdapterStatus:
    """Insert a new live row inside a SAVEPOINT.

    A concurrent insert for the same key surfaces as IntegrityError with only
    the savepoint rolled back, so the caller can fall back to the update path
    within the same transaction.
    """
    row = AdapterStatus(
        id=str(uuid4()),
        resource_type=resource_type,
        resource_id=resource_id,
        adapter=adapter,
        observed_generation=observed_generation,
        conditions=conditions,
        data=data,
        metadata_json=metadata_json,
        created_time=now,
        last_report_time=now,
    )
    async with session.begin_nested():
        session.add(row)
    return row


async def apply_update(
    session: AsyncSession,
    row: AdapterStatus,
    *,
    observed_generation: int,
    conditions: list[dict[str, Any]],
    data: dict[str, Any] | None,
    metadata_json: dict[str, Any] | None,
    now: datetime,
) -> AdapterStatus:
    # Update in place by primary key; created_time is never touched here.
    row.observed_generation = observed_generation
    row.conditions = conditions
    row.data = data
    row.metadata_json = metadata_json
    row.last_report_time = now
    await session.flush()
    return row


async def list_for_resource(
    session: AsyncSession,
    *,
    resource_type: str,
    resource_id: str,
    offset: int = 0,
    limit: int | None = None,
) -> tuple[list[AdapterStatus], int]:
    filters = _live_key_filter(resource_type, resource_id)
    total = await session.execute(select(func.count()).select_from(AdapterStatus).where(*filters))
    # Stable ordering keeps pagination deterministic across pages.
    stmt = (
        select(AdapterStatus)
        .where(*filters)
        .order_by(AdapterStatus.created_time, AdapterStatus.id)
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all()), int(total.scalar() or 0)


async def soft_delete_for_resource(
    session: AsyncSession, *, resource_type: str, resource_id: str
) -> int:
    # Cascade resource deletion to every live adapter status of the resource.
    result = await session.execute(
        update(AdapterStatus)
        .where(*_live_key_filter(resource_type, resource_id))
        .values(deleted_at=func.now())
    )
    return int(result.rowcount or 0)
