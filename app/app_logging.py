"""Application and access logging setup for the Sales Knowledge API.

- ``LOG_JSON`` switches between JSON lines and a human-readable format.
- Application logs (``app.log``) and access logs (``access.log``) rotate at
  midnight and keep ``LOG_RETENTION_DAYS`` files.
- An HTTP middleware writes one structured access line per request with the
  method, path, status, latency, client IP, user, headers and (optionally)
  the body. Credentials are replaced by ``***`` and e-mail addresses masked.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

from .core.org_context import get_current_org_id, get_current_user_id
from .rate_limit import get_client_ip
from .security.validators import mask_email


class JsonFormatter(logging.Formatter):
    """JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in ("org_id", "user_id"):
            value = getattr(record, field, None)
            if value:
                log_record[field] = value
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


class OrgContextFilter(logging.Filter):
    """Stamp records with the organization and user of the current request."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.org_id = get_current_org_id()
        record.user_id = get_current_user_id()
        return True


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "password",
    "token",
    "code",
    "access_token",
    "refresh_token",
    "invitation_token",
}
MASKED_FIELDS = {"email"}


def _scrub(data: object) -> object:
    """Recursively hide credentials and mask e-mail addresses."""

    if isinstance(data, dict):
        cleaned: dict[Any, object] = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if lowered in SENSITIVE_FIELDS:
                cleaned[key] = "***"
            elif lowered in MASKED_FIELDS and isinstance(value, str):
                cleaned[key] = mask_email(value)
            else:
                cleaned[key] = _scrub(value)
        return cleaned
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


def _install_access_logging(app: FastAPI) -> None:
    """Install request/response access logging middleware.

    Health and metrics probes are skipped. Every other request gets an
    ``X-Request-Id`` (taken from the request or generated) that is echoed in
    the response.
    """

    log_request_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    skip_paths = {"/api/health", "/api/metrics"}
    access_logger = logging.getLogger("uvicorn.access")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in skip_paths:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id

        start = time.time()

        body_content = None
        if log_request_bodies:
            body_bytes = await request.body()

            async def receive() -> dict:
                return {"type": "http.request", "body": body_bytes, "more_body": False}

            request._receive = receive  # type: ignore[attr-defined]

            if body_bytes:
                try:
                    body_content = _scrub(json.loads(body_bytes))
                except ValueError:
                    body_content = body_bytes.decode("utf-8", errors="replace")

        response = await call_next(request)

        process_time_ms = (time.time() - start) * 1000
        user_id = getattr(request.state, "user_id", None)
        org_id = getattr(request.state, "org_id", None)

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(process_time_ms, 2),
            "client_ip": get_client_ip(request),
            "user_id": str(user_id) if user_id else None,
            "org_id": str(org_id) if org_id else None,
            "headers": _scrub(dict(request.headers)),
        }

        if body_content is not None:
            log_data["body"] = body_content

        response.headers["X-Request-Id"] = request_id

        access_logger.info(json.dumps(log_data, default=str, ensure_ascii=False))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise application and access loggers."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("LOG_JSON", "false").lower() == "true"
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)

    formatter = _get_formatter(log_json)
    log_level = getattr(logging, log_level_str, logging.INFO)

    app_logger = logging.getLogger("app")
    if not app_logger.handlers:
        handler = TimedRotatingFileHandler(
            os.path.join(log_dir, "app.log"),
            when="midnight",
            backupCount=retention_days,
            utc=rotate_utc,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        handler.addFilter(OrgContextFilter())
        app_logger.addHandler(handler)
    app_logger.setLevel(log_level)

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.handlers.clear()
    handler = TimedRotatingFileHandler(
        os.path.join(log_dir, "access.log"),
        when="midnight",
        backupCount=retention_days,
        utc=rotate_utc,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    access_logger.addHandler(handler)
    access_logger.setLevel(log_level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)
