"""FastAPI application wiring for the chat backend"""

import logging
import time
import uuid
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from app.api.deps import read_credentials
from app.api.errors import register_exception_handlers
from app.api.routes import auth, chats, messages, realtime
from app.config import settings
from app.core import database
from app.core.logging_config import configure_logging
from app.core.metrics import REALTIME_CONNECTIONS, REQUEST_COUNT, REQUEST_LATENCY
from app.schemas.response import HealthResponse
from app.services.access_log_service import access_log_service
from app.services.realtime import RealtimeChannel

configure_logging()
logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api-docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


def _write_access_log(**fields) -> None:
    db = database.SessionLocal()
    try:
        access_log_service.record(db, **fields)
    finally:
        db.close()


@app.middleware("http")
async def observe_request(request: Request, call_next):
    """Request id, security headers, metrics, slow-request warning and the access log row"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers.update({
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "X-Request-ID": request_id,
    })

    # Route template, not the raw path
    route_path = getattr(request.scope.get("route"), "path", request.url.path)
    REQUEST_COUNT.labels(request.method, route_path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, route_path).observe(elapsed)

    if elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(
            "Slow request: %s %s took %.2fs request_id=%s",
            request.method, request.url.path, elapsed, request_id,
        )

    if settings.ACCESS_LOG_ENABLED:
        access_token, _ = read_credentials(request)
        try:
            await run_in_threadpool(
                _write_access_log,
                method=request.method,
                url=request.url.path,
                status=response.status_code,
                response_time_ms=int(elapsed * 1000),
                user_id=access_log_service.infer_user_id(access_token),
                user_agent=request.headers.get("user-agent"),
                ip_address=request.client.host if request.client else None,
            )
        except SQLAlchemyError as exc:
            logger.error("Could not open access log session: %s", exc)

    return response


@app.on_event("startup")
async def startup_event():
    settings.validate_security_settings()
    logger.info("Starting %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)

    database.init_db()

    channel = getattr(app.state, "realtime_channel", None)
    if channel is None or channel.closed:
        app.state.realtime_channel = RealtimeChannel()
    REALTIME_CONNECTIONS.set(0)


@app.on_event("shutdown")
async def shutdown_event():
    channel = getattr(app.state, "realtime_channel", None)
    if channel is not None:
        channel.close()
    REALTIME_CONNECTIONS.set(0)
    logger.info("Stopped %s", settings.APP_NAME)


def _realtime_connections() -> int:
    channel = getattr(app.state, "realtime_channel", None)
    return channel.connection_count if channel is not None else 0


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Liveness plus a database round trip"""
    db_error = None
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        db_error = str(exc)
    finally:
        db.close()

    return HealthResponse(
        status="OK" if db_error is None else "degraded",
        message="Backend is running",
        version=settings.APP_VERSION,
        timestamp=datetime.utcnow().isoformat(),
        database={"ok": db_error is None, "error": db_error},
        realtime_connections=_realtime_connections(),
    )


@app.get("/metrics")
async def metrics():
    """Prometheus exposition"""
    REALTIME_CONNECTIONS.set(_realtime_connections())
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api-docs" if settings.DEBUG else "disabled",
    }


app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(chats.router, prefix="/chats", tags=["Chats"])
app.include_router(messages.router, prefix="/chats", tags=["Messages"])
app.include_router(realtime.router, tags=["Realtime"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
    )
