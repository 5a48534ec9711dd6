"""Main FastAPI application."""
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from orderflow.core.config import settings
from orderflow.core.dependencies import broadcaster, get_menu_repository
from orderflow.core.logging import setup_logging
from orderflow.db.database import AsyncSessionLocal, init_db
from orderflow.api import admin, auth, health, kitchen, menu, orders, realtime
from orderflow.services.ordering.commands import describe_validation_error
from orderflow.services.ordering.errors import StoreError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging(settings.log_level)
    await init_db()
    async with AsyncSessionLocal() as db:
        await get_menu_repository().sync_to_database(db)
    logger.info(f"[STARTUP] {settings.venue_name} order service ready")
    yield
    # Shutdown
    await broadcaster.drain()
    logger.info("[SHUTDOWN] Order service stopping")


app = FastAPI(
    title="Orderflow",
    description="Realtime order fulfillment for booth ordering, payment desk, kitchen and serving",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Persistence faults are retryable; nothing was partially applied."""
    logger.error(f"[STORE ERROR] {request.method} {request.url.path} - {exc}")
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "Storage unavailable, please retry", "retryable": True},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are rejected commands, not protocol errors."""
    message = describe_validation_error(exc)
    logger.info(f"[VALIDATION] {request.method} {request.url.path} rejected - {message}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "outcome": "rejected", "message": message},
    )


app.include_router(health.router, tags=["health"])
app.include_router(menu.router, tags=["menu"])
app.include_router(orders.router, tags=["orders"])
app.include_router(auth.router, tags=["auth"])
app.include_router(admin.router, tags=["admin"])
app.include_router(kitchen.router, tags=["kitchen"])
app.include_router(realtime.router, tags=["realtime"])
