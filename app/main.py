"""
Shortgate — short links with a request-time access-policy pipeline.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.deps import close_http_client
from app.api.redirect import router as redirect_router
from app.api.risk_control import router as risk_control_router
from app.api.verify import router as verify_router
from app.middleware.security import SecurityHeadersMiddleware
from app.config import get_settings
from app.store.factory import StoreNotConfigured, close_policy_store, get_policy_store
from app.store.redis import RedisPolicyStore

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.3.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("shortgate_starting", base_url=get_settings().base_url)
    yield
    await close_http_client()
    await close_policy_store()
    logger.info("shortgate_shutting_down")


app = FastAPI(
    title="Shortgate",
    description="Short links with device fingerprinting, risk scoring and per-link access policy.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

# Security headers on every response
app.add_middleware(SecurityHeadersMiddleware)

# CORS: subscription clients and the admin UI call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "HEAD", "POST", "DELETE"],
    allow_headers=["X-API-Key", "Content-Type"],
)


# --- Error envelope: {"success": false, "error": {"code", "message"}} ---

def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": status_code, "message": message}},
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _error(422, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, error=str(exc))
    return _error(500, "Service temporarily unavailable")


@app.get("/health")
async def health():
    store_ok = True
    try:
        store = get_policy_store()
    except StoreNotConfigured:
        store_ok = False
    else:
        if isinstance(store, RedisPolicyStore):
            store_ok = await store.ping()
    return {
        "status": "ok" if store_ok else "degraded",
        "service": "shortgate",
        "version": VERSION,
        "store": "ok" if store_ok else "unavailable",
    }


# --- Routes (visitor catch-all last) ---
app.include_router(risk_control_router)
app.include_router(verify_router)
app.include_router(redirect_router)
