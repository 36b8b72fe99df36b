from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request

from fleetledger.apps.api.errors import install_exception_handlers
from fleetledger.apps.api.response import API_VERSION, REQUEST_ID_HEADER
from fleetledger.apps.api.routes.adapter_statuses import router as adapter_statuses_router
from fleetledger.apps.api.routes.health import router as health_router
from fleetledger.apps.api.routes.resources import router as resources_router
from fleetledger.core.config import get_settings
from fleetledger.core.logging import configure_logging


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=get_settings().app_name, version=API_VERSION)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):  # type: ignore[override]
        # Adapters retry with their own request IDs; echo them back for correlation.
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        started = time.monotonic()
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        logger.debug(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": round((time.monotonic() - started) * 1000.0, 2),
            },
        )
        return response

    install_exception_handlers(app)

    # Health first so "/health" never resolves as a resource collection.
    for router in (health_router, adapter_statuses_router, resources_router):
        app.include_router(router, prefix=f"/{API_VERSION}")
    return app


app = create_app()
