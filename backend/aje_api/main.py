"""FastAPI app: CORS, security headers, public forms, functions, back-office routers."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from aje_api.core.config import get_settings
from aje_api.core.request_logging import RequestLoggingMiddleware
from aje_api.core.deps import require_metrics_access
from aje_api.core.metrics import get_metrics
from aje_api.db.session import close_db, engine
from aje_api.api.public import router as public_router
from aje_api.api.functions import router as functions_router
from aje_api.api.auth import router as auth_router
from aje_api.api.admin import router as admin_router

settings = get_settings()
if settings.log_json:
    for h in logging.getLogger("aje_api.request").handlers[:]:
        logging.getLogger("aje_api.request").removeHandler(h)
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger("aje_api.request").addHandler(h)
    logging.getLogger("aje_api.request").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", settings.csrf_header_name],
    expose_headers=["X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After", "X-Request-ID"],
)


@app.middleware("http")
async def security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none';"
    response.headers["Permissions-Policy"] = "accelerometer=(), camera=(), geolocation=(), microphone=(), payment=(), usb=()"
    return response

app.include_router(public_router, prefix="/api")
app.include_router(functions_router, prefix="/api")
app.include_router(auth_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/healthz")
async def healthz():
    """Liveness: no auth, no DB."""
    return {"status": "ok"}


@app.get("/readyz")
async def readyz():
    """Readiness: light DB check."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except (SQLAlchemyError, OSError):
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "detail": "database unreachable"},
        )


@app.get("/metrics", response_class=Response)
async def metrics(_: None = Depends(require_metrics_access)):
    """Prometheus metrics. Guard via METRICS_REQUIRE_ADMIN=1 (admin auth) or METRICS_SECRET + X-Metrics-Secret header."""
    body, content_type = get_metrics()
    return Response(content=body, media_type=content_type)
