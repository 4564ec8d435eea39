# PURPOSE: FastAPI application: routers, middleware, error handlers and the
# deadline sweeper lifecycle.

from fastapi import FastAPI, HTTPException, status, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import os

from sqlalchemy import text
import logging
import time
import uuid

from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .api.errors import register_exception_handlers
from .config import settings
from .db import engine, SessionLocal
from .logging_utils import setup_logging
from .rate_limit import limiter, _rate_limit_exceeded_handler
from .routers import auth as auth_router
from .routers import tasks as tasks_router
from .sweeper import start_sweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    """App startup/shutdown lifecycle."""
    # --- Startup ---
    # Schema is managed by Alembic (alembic upgrade head)
    setup_logging(settings.LOG_LEVEL)

    is_test = "PYTEST_CURRENT_TEST" in os.environ
    scheduler = None
    if settings.SWEEPER_ENABLED and not is_test:
        scheduler = start_sweeper(SessionLocal)

    try:
        yield
    finally:
        # --- Shutdown ---
        if scheduler is not None:
            scheduler.shutdown(wait=False)


tags_metadata = [
    {"name": "auth", "description": "Authentication: register, login, me."},
    {"name": "tasks", "description": "Task management: create (custom/simple), list, update, status, delete."},
]

app = FastAPI(
    title="Taskpilot API",
    version="1.0.0",
    description=(
        "Personal task management. Register or log in to obtain a Bearer token "
        "and send it in the Authorization header on /tasks endpoints."
    ),
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)


@app.get("/health")
def health():
    """Simple healthcheck endpoint."""
    return {"status": "ok"}


# Mount routers
app.include_router(auth_router.router)
app.include_router(tasks_router.router)

# Unified error handlers
register_exception_handlers(app)

# Rate limiting (global middleware + handler)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


# Request ID + access log middleware
@app.middleware("http")
async def request_id_and_logging(request: Request, call_next):
    start = time.perf_counter()
    incoming = request.headers.get(settings.REQUEST_ID_HEADER)
    req_id = incoming or uuid.uuid4().hex
    request.state.request_id = req_id
    response = await call_next(request)
    response.headers.setdefault(settings.REQUEST_ID_HEADER, req_id)
    duration_ms = int((time.perf_counter() - start) * 1000)
    logging.getLogger("taskpilot.request").info(
        "method=%s path=%s status=%s duration_ms=%s request_id=%s",
        request.method,
        request.url.path,
        getattr(response, "status_code", "-"),
        duration_ms,
        req_id,
    )
    return response

# --- Security: CORS and security headers ---

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers(request, call_next):
    response = await call_next(request)
    # Basic hardening headers for a JSON API
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if settings.SECURITY_ENABLE_HSTS:
        # 6 months; adjust as needed in prod
        response.headers.setdefault("Strict-Transport-Security", "max-age=15552000; includeSubDomains")
    return response


# --- Observability: liveness, readiness, metrics ---

@app.get("/live")
def live():
    return {"status": "live"}


@app.get("/ready")
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="not ready") from exc


# Expose Prometheus metrics at /metrics
Instrumentator().instrument(app).expose(app, include_in_schema=False)
