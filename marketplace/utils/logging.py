# marketplace/utils/logging.py
import json
import logging
import sys
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from marketplace.utils.settings import LOG_FORMAT, LOG_LEVEL

SERVICE_NAME = "marketplace"

# pola z extra=... przepisywane do logu json
_EXTRA_FIELDS = (
    "event",
    "request_id",
    "customer_id",
    "session_id",
    "cart_id",
    "order_id",
    "payment_id",
    "product_id",
    "vendor_id",
    "coupon_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
)

_configured = False


class JSONFormatter(logging.Formatter):
    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self.service_name,
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "func": record.funcName,
            "line": record.lineno,
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        if record.exc_info:
            log_obj["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_obj, default=str)


def _configure_root() -> None:
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(LOG_LEVEL.upper())

    handler = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT.lower() == "json":
        handler.setFormatter(JSONFormatter(SERVICE_NAME))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    _configure_root()
    return logging.getLogger(name)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Nadaje X-Request-ID i loguje czas obslugi kazdego requestu."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = get_logger("marketplace.http")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, start, request_id, exc_info=sys.exc_info())
            raise

        self._log(request, response.status_code, start, request_id)
        response.headers["X-Request-ID"] = request_id
        return response

    def _log(self, request: Request, status_code: int, start: float, request_id: str, exc_info=None):
        extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
        }
        message = f"{request.method} {request.url.path} -> {status_code}"
        if status_code >= 500:
            self.logger.error(message, extra=extra, exc_info=exc_info)
        elif status_code >= 400:
            self.logger.warning(message, extra=extra)
        else:
            self.logger.info(message, extra=extra)
