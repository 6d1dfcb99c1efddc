"""FastAPI application entry point."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError

from reservation_engine.api.routes import api_router
from reservation_engine.core.config import settings
from reservation_engine.core.errors import (
    AppError,
    ValidationError,
    app_error_handler,
    integrity_error_handler,
    unhandled_error_handler,
)
from reservation_engine.core.rate_limit import limiter
from reservation_engine.db.base import Base
from reservation_engine.db.session import SessionLocal, engine
from reservation_engine.services.change_notifier import MutationEvent, change_notifier

VERSION = "1.0.0"
BOOKINGS_CHANNEL = "bookings"


# WebSocket Connection Manager for live mutation events
class ConnectionManager:
    """Tracks websocket subscribers per channel."""

    MAX_CONNECTIONS_PER_CHANNEL = 1000

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, websocket: WebSocket, channel: str = BOOKINGS_CHANNEL) -> bool:
        """Accept a websocket; returns False when the channel is full."""
        if len(self.active_connections.get(channel, [])) >= self.MAX_CONNECTIONS_PER_CHANNEL:
            logger.warning(f"WebSocket connection rejected: channel '{channel}' at capacity")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return False

        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)
        logger.debug(f"WebSocket connected to channel '{channel}'")
        return True

    def disconnect(self, websocket: WebSocket, channel: str = BOOKINGS_CHANNEL):
        if websocket in self.active_connections.get(channel, []):
            self.active_connections[channel].remove(websocket)
        logger.debug(f"WebSocket disconnected from channel '{channel}'")

    async def broadcast(self, message: Dict[str, Any], channel: str = BOOKINGS_CHANNEL):
        """Broadcast a message to all connections in a channel."""
        disconnected = []
        for connection in list(self.active_connections.get(channel, [])):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.debug(f"WebSocket send failed: {e}")
                disconnected.append(connection)

        for conn in disconnected:
            self.disconnect(conn, channel)

    def get_connection_count(self, channel: Optional[str] = None) -> int:
        if channel:
            return len(self.active_connections.get(channel, []))
        return sum(len(conns) for conns in self.active_connections.values())

    def publish_event(self, event: MutationEvent) -> None:
        """ChangeNotifier subscriber; may be called from a worker thread."""
        if self.loop is None or not self.get_connection_count(BOOKINGS_CHANNEL):
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(event.to_message(), BOOKINGS_CHANNEL), self.loop)


# Global connection manager instance
ws_manager = ConnectionManager()

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    import json as _json
    import sys

    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return _json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            }, ensure_ascii=False)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and logs every HTTP request and response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", "").strip()[:100] or f"req_{uuid4().hex[:16]}"
        request.state.request_id = request_id

        # Skip logging for health checks and docs
        if request.url.path in ["/health", "/", "/docs", "/openapi.json"]:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        request_logger.info(
            f"Request: {request.method} {request.url.path} - Client: {client_ip} - Request-ID: {request_id}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Request-ID: {request_id}"
            )
            raise

        process_time = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Request-ID: {request_id}"
        )
        response.headers["X-Request-ID"] = request_id
        return response


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/query validation failures in the 400 envelope."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or None,
            "code": "type" if "type" in err.get("type", "") else "format",
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return await app_error_handler(request, ValidationError("Validation failed", details=errors))


def _ensure_sqlite_directory() -> None:
    database = make_url(settings.database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Reservation Record Engine")

    # Create tables if they don't exist (for SQLite dev)
    # In production with PostgreSQL, use Alembic migrations
    if settings.database_url.startswith("sqlite"):
        _ensure_sqlite_directory()
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    ws_manager.loop = asyncio.get_running_loop()
    unsubscribe = change_notifier.subscribe(ws_manager.publish_event)

    yield

    unsubscribe()
    ws_manager.loop = None
    logger.info("Shutting down Reservation Record Engine")


app = FastAPI(
    title="Reservation Record Engine",
    description="Reservation records with runtime-extensible fields, optimistic concurrency, "
                "audit trail and bulk operations",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Error envelope
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(IntegrityError, integrity_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - added last so it runs first (Starlette LIFO order)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
        "X-Request-ID",
        "X-Actor",
        "If-Unmodified-Since",
    ],
    expose_headers=["X-Request-ID", "Content-Disposition"],
    max_age=600,  # Cache preflight for 10 minutes
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/health/ready")
def readiness_check():
    """Readiness probe with database and WebSocket manager checks."""
    checks = {
        "database": "unknown",
        "websocket_manager": "unknown",
    }

    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"
    finally:
        if db:
            db.close()

    connection_count = ws_manager.get_connection_count()
    checks["websocket_manager"] = f"healthy ({connection_count} connections)"

    all_healthy = all(c.startswith("healthy") for c in checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Reservation Record Engine API",
        "docs": "/docs",
        "health": "/health",
    }


@app.websocket("/ws/bookings")
async def websocket_bookings(websocket: WebSocket):
    """Live reservation mutation events (create, update, cancel, delete, restore, bulk)."""
    if not await ws_manager.connect(websocket, BOOKINGS_CHANNEL):
        return

    try:
        await websocket.send_json({
            "event": "connected",
            "data": {"recent": [event.to_message() for event in change_notifier.recent(10)]},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket, BOOKINGS_CHANNEL)
    except Exception as e:
        logger.error(f"WebSocket error in {BOOKINGS_CHANNEL}: {e}", exc_info=True)
        ws_manager.disconnect(websocket, BOOKINGS_CHANNEL)
