"""Application and access logging setup.

Logging for the triage service is configured in one place:

- A JSON formatter (opt-in via LOG_JSON) or a human-readable formatter.
- Midnight rotation of ``misunderstood.log`` (the ``misunderstood`` logger
  hierarchy) and ``access.log`` (the ``uvicorn.access`` logger).
- An HTTP middleware writing one structured access line per request, with
  an ``X-Request-Id`` echoed back to the client and sensitive fields scrubbed.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

APP_LOGGER_NAME = "misunderstood"
ACCESS_LOGGER_NAME = "uvicorn.access"
UNLOGGED_PATHS = frozenset({"/api/health", "/api/metrics"})
BOT_PATH_RE = re.compile(r"^/api/bots/(?P<bot_id>[^/]+)/")

SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "password",
    "token",
    "access_token",
    "refresh_token",
    "x-bp-externalauth",
}


@dataclass(slots=True)
class LogConfig:
    log_dir: str
    level: int
    json: bool
    retention_days: int
    rotate_utc: bool


def read_log_config() -> LogConfig:
    """Read the logging configuration from the environment."""

    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return LogConfig(
        log_dir=os.getenv("LOG_DIR", "logs"),
        level=getattr(logging, level_name, logging.INFO),
        json=os.getenv("LOG_JSON", "false").lower() == "true",
        retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
        rotate_utc=os.getenv("LOG_ROTATE_UTC", "false").lower() == "true",
    )


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def _rotating_handler(config: LogConfig, filename: str) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        os.path.join(config.log_dir, filename),
        when="midnight",
        backupCount=config.retention_days,
        utc=config.rotate_utc,
    )
    handler.setFormatter(_get_formatter(config.json))
    return handler


def _scrub(data: object) -> object:
    """Mask sensitive keys at any depth of a decoded JSON document."""

    if isinstance(data, list):
        return [_scrub(item) for item in data]
    if not isinstance(data, dict):
        return data
    return {
        key: "***" if key.lower() in SENSITIVE_FIELDS else _scrub(value)
        for key, value in data.items()
    }


async def _capture_body(request: Request) -> object | None:
    """Read the request body for logging and replay it to the route."""

    raw = await request.body()

    async def replay() -> dict:  # pragma: no cover - internal
        return {"type": "http.request", "body": raw, "more_body": False}

    request._receive = replay  # type: ignore[attr-defined]
    if not raw:
        return None
    try:
        return _scrub(json.loads(raw))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _client_address(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client is not None else None


def _access_record(
    request: Request, request_id: str, status_code: int, elapsed: float
) -> dict[str, Any]:
    match = BOT_PATH_RE.match(request.url.path)
    return {
        "request_id": request_id,
        "bot_id": match.group("bot_id") if match else None,
        "method": request.method,
        "path": request.url.path,
        "query": request.url.query or None,
        "status": status_code,
        "latency_ms": round(elapsed * 1000, 2),
        "client_ip": _client_address(request),
        "headers": _scrub(dict(request.headers)),
    }


def _install_access_logging(app: FastAPI) -> None:
    """Log one JSON line per operator API call to the access logger."""

    capture_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        body = await _capture_body(request) if capture_bodies else None

        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id

        record = _access_record(
            request, request_id, response.status_code, time.perf_counter() - started
        )
        if body is not None:
            record["body"] = body
        access_logger.info(json.dumps(record, default=str))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise application and access loggers."""

    config = read_log_config()
    os.makedirs(config.log_dir, exist_ok=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(_rotating_handler(config, "misunderstood.log"))
    app_logger.setLevel(config.level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(_rotating_handler(config, "access.log"))
    access_logger.setLevel(config.level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)


__all__ = ["JsonFormatter", "LogConfig", "init_logging", "read_log_config"]
