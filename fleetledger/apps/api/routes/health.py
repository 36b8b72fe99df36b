from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from fleetledger.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetledger.apps.api.response import Envelope, envelope

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=Envelope[HealthResponse])
async def health(request: Request) -> Envelope[HealthResponse]:
    return envelope(request, HealthResponse(status="ok"))
