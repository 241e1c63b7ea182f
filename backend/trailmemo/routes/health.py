"""
TrailMemo Backend — Health Check Route
========================================

GET /health (no prefix, no auth)

    ok         database answers SELECT 1 and audio storage is available
    degraded   database fine, audio storage unavailable (circuit open, root
               not writable); reads still work
    unhealthy  database unreachable → HTTP 503
"""

import logging
import time

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text

from trailmemo import __version__
from trailmemo.context import AppContext
from trailmemo.dependencies import get_context
from trailmemo.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "trailmemo-api"

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(
    response: Response,
    context: AppContext = Depends(get_context),
) -> HealthResponse:
    db_status = "connected"
    storage_status = "available"
    overall = "ok"

    try:
        async with context.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    try:
        storage_ok = await context.object_store.health_check()
    except Exception as e:
        storage_ok = False
        logger.warning("Health check: storage probe failed: %s", str(e))
    if not storage_ok:
        storage_status = "unavailable"
        if overall == "ok":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=overall,
        service=SERVICE_NAME,
        version=__version__,
        database=db_status,
        storage=storage_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
