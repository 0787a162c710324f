import contextvars
import logging
import traceback
import uuid

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from crewcall.config import get_settings
from crewcall.database import AsyncSessionLocal, engine
from crewcall.routes.reminders import router as reminders_router
from crewcall.routes.twilio import router as twilio_router
from crewcall.services.container import build_services

settings = get_settings()
logger = logging.getLogger(__name__)

_is_production = settings.APP_ENV == "production"

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Request ID context, propagated into every log record
# ---------------------------------------------------------------------------
request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class _RequestIdFilter(logging.Filter):
    """Inject the current request ID into every log record."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")
        return True


logging.getLogger().addFilter(_RequestIdFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service graph and start the reminder scheduler."""
    services = build_services(settings, AsyncSessionLocal)
    app.state.services = services

    if settings.REMINDER_SCHEDULER_ENABLED:
        services.scheduler.start()
    else:
        logger.info("Reminder scheduler disabled by configuration")

    logger.info("Application startup complete")
    yield

    logger.info("Shutting down, waiting for in-flight reminder cycles...")
    await services.scheduler.shutdown(timeout=settings.SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS)

    try:
        await engine.dispose()
        logger.info("Database connection pool disposed")
    except Exception as exc:
        logger.warning("Error disposing database engine: %s", exc)

    logger.info("Shutdown complete")


app = FastAPI(
    title="Crewcall Reminder API",
    version=VERSION,
    lifespan=lifespan,
    docs_url=None if _is_production else "/docs",
    redoc_url=None if _is_production else "/redoc",
    openapi_url=None if _is_production else "/openapi.json",
)


# ---------------------------------------------------------------------------
# Global exception handler: log unhandled errors, return 500
# ---------------------------------------------------------------------------
@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method,
        request.url.path,
        exc,
        traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)

# ---------------------------------------------------------------------------
# Request body size limit. Twilio webhooks and scheduler updates are tiny.
# ---------------------------------------------------------------------------
MAX_BODY_BYTES = 1024 * 1024  # 1 MB


@app.middleware("http")
async def _limit_request_body(request: Request, call_next):
    """Reject oversized request bodies before they reach a route."""
    if request.method in ("GET", "HEAD", "OPTIONS", "DELETE"):
        return await call_next(request)

    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > MAX_BODY_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={"detail": "Request body too large"},
                )
        except (ValueError, TypeError):
            return JSONResponse(
                status_code=400,
                content={"detail": "Invalid Content-Length header"},
            )

    return await call_next(request)


@app.middleware("http")
async def _request_id(request: Request, call_next):
    """Attach X-Request-ID to every response and to the log context."""
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    token = request_id_ctx.set(rid)
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        request_id_ctx.reset(token)


# ---------------------------------------------------------------------------
# Route blueprints
# ---------------------------------------------------------------------------
app.include_router(reminders_router, prefix="/api/reminders", tags=["Reminders"])
app.include_router(twilio_router, prefix="/api/twilio", tags=["Twilio Webhooks"])


@app.get("/api/health")
async def health_check(request: Request):
    """Report database connectivity and reminder scheduler state.

    Returns HTTP 503 when the database is unreachable so that load balancers
    stop routing traffic to this instance.
    """
    db_ok = False
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            db_ok = True
    except Exception as e:
        logger.warning("health_check: database connection failed: %s", e)

    scheduler = request.app.state.services.scheduler
    stats = scheduler.get_stats()
    scheduler_info = {
        "active": scheduler.is_active(),
        "is_running": stats.is_running,
        "last_run_time": stats.last_run_time.isoformat() if stats.last_run_time else None,
        "next_run_time": stats.next_run_time.isoformat() if stats.next_run_time else None,
        "total_runs": stats.total_runs,
        "failed_runs": stats.failed_runs,
    }

    if not db_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "version": VERSION, "database": "unavailable", "scheduler": scheduler_info},
        )

    return {
        "status": "healthy",
        "version": VERSION,
        "database": "connected",
        "scheduler": scheduler_info,
    }
