"""
Tourbook API: Health Check Route
================================

What:  Liveness / readiness probe for load balancers and container health checks.
How:   Pings MongoDB. `healthy` (200) when the ping answers, `unhealthy` (503)
       otherwise; the body says which.
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from tourbook import __version__
from tourbook.database import get_database, ping
from tourbook.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(db: AsyncDatabase = Depends(get_database)):
    db_status = "connected"
    overall = "healthy"
    try:
        await ping(db)
    except PyMongoError as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    return JSONResponse(status_code=200 if overall == "healthy" else 503, content=body.model_dump())
