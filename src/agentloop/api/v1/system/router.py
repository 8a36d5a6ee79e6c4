"""System router providing the health check."""

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from agentloop.schemas.jsonapi import JSONAPIResource, JSONAPISingleResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=JSONAPISingleResponse)
async def health_check(request: Request) -> JSONAPISingleResponse:
    """Report database connectivity and the number of scheduled heartbeats.

    ``status`` is ``healthy`` when the database answers, ``degraded`` otherwise.
    """
    db_ok = False
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Database health check failed", exc_info=True)

    return JSONAPISingleResponse(
        data=JSONAPIResource(
            type="system-health",
            id="current",
            attributes={
                "status": "healthy" if db_ok else "degraded",
                "database": "connected" if db_ok else "disconnected",
                "scheduled_heartbeats": len(request.app.state.scheduler.scheduled_agent_ids()),
            },
        )
    )
