from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetledger.apps.api.deps import (
    Pagination,
    Principal,
    get_db,
    get_pagination,
    get_principal,
    get_reconciler,
    get_resource_kind,
)
from fleetledger.apps.api.errors import fleet_http_exception
from fleetledger.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetledger.apps.api.response import Envelope, Page, envelope, page_envelope
from fleetledger.apps.api.routes.resources import load_resource
from fleetledger.core.errors import FleetError
from fleetledger.domain.conditions import Condition
from fleetledger.domain.models import AdapterStatus
from fleetledger.persistence.repos import adapter_statuses as adapter_status_repo
from fleetledger.services.kinds import ResourceKind
from fleetledger.services.status.reconciler import AdapterStatusReconciler, AdapterStatusReport


logger = logging.getLogger(__name__)

router = APIRouter(tags=["adapter-statuses"], responses=DEFAULT_ERROR_RESPONSES)


class ConditionRequest(BaseModel):
    # Type and status stay plain strings so domain validation can name the bad value.
    type: str
    status: str
    reason: str | None = None
    message: str | None = None


class AdapterStatusMetadata(BaseModel):
    job_name: str | None = None
    job_namespace: str | None = None
    attempt: int | None = None
    started_time: datetime | None = None
    completed_time: datetime | None = None

    model_config = {"extra": "allow"}


class AdapterStatusCreateRequest(BaseModel):
    adapter: str = Field(min_length=1, max_length=255)
    observed_generation: int = Field(ge=0)
    observed_time: datetime | None = None
    conditions: list[ConditionRequest]
    data: dict[str, Any] | None = None
    metadata: AdapterStatusMetadata | None = None

    model_config = {"extra": "forbid"}


class AdapterStatusResponse(BaseModel):
    id: str
    resource_type: str
    resource_id: str
    adapter: str
    observed_generation: int
    conditions: list[dict[str, Any]]
    data: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    created_time: str
    last_report_time: str


def _to_response(row: AdapterStatus) -> AdapterStatusResponse:
    return AdapterStatusResponse(
        id=row.id,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        adapter=row.adapter,
        observed_generation=row.observed_generation,
        conditions=row.conditions or [],
        data=row.data,
        metadata=row.metadata_json,
        created_time=row.created_time.isoformat(),
        last_report_time=row.last_report_time.isoformat(),
    )


def _to_report(kind: ResourceKind, resource_id: str, payload: AdapterStatusCreateRequest) -> AdapterStatusReport:
    metadata = None
    if payload.metadata is not None:
        metadata = jsonable_encoder(payload.metadata.model_dump(exclude_none=True))
    return AdapterStatusReport(
        resource_type=kind.name,
        resource_id=resource_id,
        adapter=payload.adapter,
        observed_generation=payload.observed_generation,
        conditions=tuple(
            Condition(type=item.type, status=item.status, reason=item.reason, message=item.message)
            for item in payload.conditions
        ),
        observed_time=payload.observed_time,
        data=payload.data,
        metadata=metadata,
    )


@router.post(
    "/{plural}/{resource_id}/statuses",
    status_code=201,
    response_model=Envelope[AdapterStatusResponse],
    responses={204: {"description": "Report discarded; stored status left unchanged"}},
)
async def report_adapter_status(
    request: Request,
    resource_id: str,
    payload: AdapterStatusCreateRequest,
    kind: ResourceKind = Depends(get_resource_kind),
    reconciler: AdapterStatusReconciler = Depends(get_reconciler),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    resource = await load_resource(db, principal=principal, kind=kind, resource_id=resource_id)
    report = _to_report(kind, resource.id, payload)
    try:
        outcome = await reconciler.reconcile(db, report)
        if outcome.discarded:
            # Nothing was written; release the row lock without touching the record.
            await db.rollback()
            return Response(status_code=204)
        await db.commit()
    except FleetError as exc:
        await db.rollback()
        raise fleet_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("adapter_status.commit_failed", extra={"adapter": payload.adapter})
        raise HTTPException(status_code=500, detail="Database error while storing adapter status") from exc
    body = _to_response(outcome.status)
    # New rows answer 201; in-place updates answer 200.
    return JSONResponse(
        content=jsonable_encoder(envelope(request, body)),
        status_code=201 if outcome.created else 200,
    )


@router.get(
    "/{plural}/{resource_id}/statuses",
    response_model=Envelope[Page[AdapterStatusResponse]],
)
async def list_adapter_statuses(
    request: Request,
    resource_id: str,
    kind: ResourceKind = Depends(get_resource_kind),
    pagination: Pagination = Depends(get_pagination),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Envelope[Page[AdapterStatusResponse]]:
    resource = await load_resource(db, principal=principal, kind=kind, resource_id=resource_id)
    try:
        rows, total = await adapter_status_repo.list_for_resource(
            db,
            resource_type=kind.name,
            resource_id=resource.id,
            offset=pagination.offset,
            limit=pagination.size,
        )
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing adapter statuses") from exc
    return page_envelope(
        request,
        kind="AdapterStatusList",
        page=pagination.page,
        items=[_to_response(row) for row in rows],
        total=total,
    )
