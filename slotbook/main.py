# slotbook/main.py
from __future__ import annotations

# Load .env early so settings and os.getenv agree
from dotenv import load_dotenv
load_dotenv()

import secrets
import time

import sqlalchemy as sa
from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.config import settings
from slotbook.core.logging import setup_logging, LoggingMiddleware, get_logger
from slotbook.core.errors import BookingError, log_error, ErrorSeverity, get_error_summary
from slotbook.core.metrics import booking_metrics
from slotbook.db.base import init_db
from slotbook.db.session import get_session

# Routers
from slotbook.api.routes.providers import router as providers_router
from slotbook.api.routes.appointments import router as appointments_router

setup_logging(debug=settings.is_development, max_log_length=settings.MAX_LOG_LENGTH, level=settings.LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(title="Slotbook", description="Slot availability and conflict-free booking")

# -------- Health / readiness (public) --------
@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"ok": True}

@app.get("/readyz", include_in_schema=False)
async def readyz(db: AsyncSession = Depends(get_session)):
    await db.execute(sa.text("SELECT 1"))
    return {"db": "ok"}

@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Internal metrics endpoint for monitoring."""
    return {
        "status": "healthy",
        "bookings": booking_metrics.get_metrics(),
        "errors": get_error_summary(),
        "timestamp": time.time(),
    }

# -------- Optional API key gate --------
PUBLIC_EXACT = {"/healthz", "/readyz", "/metrics", "/docs", "/openapi.json"}

@app.middleware("http")
async def require_api_key(request: Request, call_next):
    if not settings.API_KEY or request.url.path in PUBLIC_EXACT:
        return await call_next(request)

    api_key = request.headers.get("X-API-Key", "")
    if not secrets.compare_digest(api_key, settings.API_KEY):
        log_error(Exception("API key validation failed"),
                  {"endpoint": request.url.path, "has_key": bool(api_key)},
                  ErrorSeverity.LOW)
        return JSONResponse({"detail": "Invalid or missing API key"}, status_code=401)

    return await call_next(request)

# Registered last so it wraps the key gate and sees every request
app.middleware("http")(LoggingMiddleware(
    log_requests=settings.LOG_REQUESTS or settings.is_development,
    log_responses=settings.LOG_RESPONSES,
))

# -------- Domain errors that escape a route --------
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    log_error(exc, {"endpoint": request.url.path})
    status = {"invalid_request": 422, "provider_not_found": 404, "not_found": 404}.get(exc.reason, 503)
    return JSONResponse({"detail": exc.message, "reason": exc.reason}, status_code=status)

# -------- Include routers --------
app.include_router(providers_router)
app.include_router(appointments_router)

# -------- Application startup --------
@app.on_event("startup")
async def startup_event():
    logger.info("application_startup", env=settings.APP_ENV, production=settings.is_production, sqlite=settings.is_sqlite)
    if settings.AUTO_CREATE_TABLES:
        await init_db()
        logger.info("tables_created")
