"""FastAPI application wiring for the Sales Knowledge API.

This module bootstraps the HTTP API:

- Configures logging, optional CORS for the web UI, security headers,
  Prometheus metrics and rate limiting.
- Installs the organization context middleware that authenticates every
  non-public ``/api`` request.
- Mounts the account, invitation, user admin, knowledge, sales and
  monitoring routers, plus health/version/config endpoints.
- Adds a Japanese ``message`` next to every error ``detail`` so clients can
  show it as-is.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.org_middleware import OrgContextMiddleware
from .messages import localize_error
from .models.session import create_schema, get_engine
from .rate_limit import limiter
from .routers import (
    accounts,
    auth_api,
    invitations,
    knowledge,
    monitoring,
    sales,
    slack,
    users,
)

load_dotenv()

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'",
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if os.getenv("DB_CREATE_SCHEMA", "false").lower() == "true":
        engine = get_engine()
        try:
            create_schema(engine)
            logger.info("Database schema ensured")
        finally:
            engine.dispose()
    yield


app = FastAPI(title="Sales Knowledge API", version=__version__, lifespan=lifespan)
init_logging(app)
app.state.limiter = limiter


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "message": localize_error(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    email_error = any("email" in str(err.get("loc", ())) for err in errors)
    message = localize_error("invalid email" if email_error else errors)
    return JSONResponse(
        status_code=422,
        content={"detail": _jsonable_errors(errors), "message": message},
    )


def _jsonable_errors(errors: list) -> list:
    """Drop non-serialisable ``ctx`` entries from Pydantic errors."""

    cleaned = []
    for err in errors:
        item = {k: v for k, v in err.items() if k not in {"ctx", "input", "url"}}
        item["loc"] = list(item.get("loc", ()))
        cleaned.append(item)
    return cleaned


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    detail = f"Rate limit exceeded: {exc.detail}"
    response = JSONResponse(
        status_code=429,
        content={"detail": detail, "message": localize_error(detail)},
    )
    view_limit = getattr(request.state, "view_rate_limit", None)
    if view_limit is not None:
        response = request.app.state.limiter._inject_headers(response, view_limit)
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"detail": detail, "message": localize_error(detail)},
    )


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(OrgContextMiddleware)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# Optional CORS for the web UI
app_ui_origins = os.getenv("APP_UI_ORIGINS")
if app_ui_origins:
    origins = [o.strip() for o in app_ui_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(accounts.router)
app.include_router(auth_api.router)
app.include_router(invitations.router)
app.include_router(users.router)
app.include_router(knowledge.router)
app.include_router(sales.router)
app.include_router(monitoring.router)
app.include_router(slack.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }


@app.get("/api/config")
async def config():
    """Expose selected frontend configuration from environment variables."""
    return {
        "BRAND_NAME": os.getenv("BRAND_NAME", "Sales Knowledge"),
        "POWERED_BY_LABEL": os.getenv("POWERED_BY_LABEL", "Powered by Sales Knowledge"),
        "LOGO_URL": os.getenv("LOGO_URL", ""),
        "PUBLIC_APP_URL": os.getenv("PUBLIC_APP_URL", "http://localhost:3000"),
    }
