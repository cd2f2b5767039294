"""
OrderDesk Backend - Health Check Route
========================================

What:  Health endpoint for container probes and load balancers.
How:   Runs SELECT 1 against the database and reports whether the mail
       relay credentials are configured (the relay itself is not contacted).

Status levels:
    - healthy:   database reachable, mail configured
    - degraded:  database reachable, mail not configured (invoice email fails)
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text

from orderdesk import __version__
from orderdesk.database import engine
from orderdesk.schemas.order import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    dispatcher = getattr(request.app.state, "mail_dispatcher", None)
    mail_status = "configured" if dispatcher is not None and dispatcher.is_configured else "unconfigured"
    if mail_status == "unconfigured" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        mail=mail_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
