"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from src.esc_common.database import check_database, engine
from src.esc_common.errors import AppError
from src.esc_common.redis_client import close_redis, ping_redis
from src.esc_common.response import app_error_response
from src.esc_dispute.api.router import router as dispute_router
from src.esc_gateway.middleware.request_log import RequestLogMiddleware
from src.esc_jobs.sweeper import start_sweeper, stop_sweeper
from src.esc_offer.api.router import router as offer_router
from src.esc_transaction.api.payment_router import router as payment_router
from src.esc_transaction.api.router import router as transaction_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB (+ Redis when notifications are on), start sweeper. Shutdown: dispose."""
    # Startup
    await check_database()
    if settings.NOTIFICATIONS_ENABLED:
        await ping_redis()
    sweeper = (
        start_sweeper(settings.SWEEP_INTERVAL_SECONDS)
        if settings.SWEEP_INTERVAL_SECONDS > 0
        else None
    )
    yield
    # Shutdown
    if sweeper is not None:
        await stop_sweeper(sweeper)
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return app_error_response(exc, request)


app.include_router(offer_router, prefix="/api/v1")
app.include_router(transaction_router, prefix="/api/v1")
app.include_router(payment_router, prefix="/api/v1")
app.include_router(dispute_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
