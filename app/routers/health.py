"""
Health check endpoint.

Reports "degraded" when the account database cannot answer a trivial
query, so load balancers can stop routing logins to this process.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from app import db
from app.models import HealthResponse
from app.rate_limit import rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

VERSION = "0.1.0"


async def _database_ok() -> bool:
    try:
        async with db.get_db().execute("SELECT 1") as cur:
            await cur.fetchone()
    except Exception:
        logger.exception("Health check: database unavailable")
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    operation_id="getHealth",
    summary="Health check",
)
async def get_health() -> HealthResponse:
    database_ok = await _database_ok()
    return HealthResponse(
        status="ok" if database_ok else "degraded",
        version=VERSION,
        database="ok" if database_ok else "unavailable",
        rate_limit_keys=len(rate_limiter),
        timestamp=datetime.now(timezone.utc),
    )
