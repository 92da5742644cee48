import logging
import json
import time
import sys
import uuid
from datetime import datetime, timezone
import traceback

import httpx

# Sensitive headers to mask
SENSITIVE_HEADERS = {"authorization", "cookie", "apikey", "x-api-key"}

EXTRA_FIELDS = (
    "request_id",
    "user_id",
    "order_id",
    "product_id",
    "event",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "headers",
)

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
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        # Add extra fields if present
        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        # Exception Info
        if record.exc_info:
            log_obj["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_obj, default=str)

def setup_logging(service_name: str, level: str = "INFO"):
    logger = logging.getLogger()
    logger.setLevel(level)

    # clear existing handlers
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = JSONFormatter(service_name)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logging.getLogger(service_name)

def mask_headers(headers) -> dict:
    masked = {}
    for k, v in headers.items():
        if k.lower() not in SENSITIVE_HEADERS:
            masked[k] = v
        else:
            masked[k] = "***"
    return masked

class BackendCallLogger:
    """
    httpx event hooks that tag every outgoing backend call with an
    X-Request-ID and log it once the response arrives.
    """

    def __init__(self, service_name: str):
        self.logger = logging.getLogger(service_name)

    def event_hooks(self) -> dict:
        return {"request": [self.on_request], "response": [self.on_response]}

    async def on_request(self, request: httpx.Request):
        # Correlation ID
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.headers["X-Request-ID"] = request_id
        request.extensions["start_time"] = time.time()

    async def on_response(self, response: httpx.Response):
        request = response.request
        start_time = request.extensions.get("start_time", time.time())
        duration = (time.time() - start_time) * 1000
        self.log_call(request, response.status_code, duration)

    def log_call(self, request: httpx.Request, status_code: int, duration: float):
        extra = {
            "request_id": request.headers.get("X-Request-ID"),
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration, 2),
            "headers": mask_headers(request.headers),
        }

        if status_code >= 500:
            self.logger.error("Backend Call Failed", extra=extra)
        elif status_code >= 400:
            self.logger.warning("Backend Call Error", extra=extra)
        else:
            self.logger.info("Backend Call Processed", extra=extra)
