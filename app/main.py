"""Main FastAPI application for the account security service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app import db
from app.config import ENVIRONMENT, LOG_LEVEL
from app.rate_limit import RateLimitSweeper, limiter, rate_limiter
from app.routers import auth, health
from app.services.auth import build_auth_service

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

sweeper = RateLimitSweeper(rate_limiter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await db.init_db()
    app.state.auth_service = build_auth_service()
    await sweeper.start()
    logger.info("Account service started (environment=%s)", ENVIRONMENT)
    try:
        yield
    finally:
        await sweeper.stop()
        await app.state.auth_service.aclose()
        await db.close_db()


app = FastAPI(
    title="Account Security API",
    description="Registration, email verification, login and sessions",
    version=health.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(health.router)
app.include_router(auth.router)
