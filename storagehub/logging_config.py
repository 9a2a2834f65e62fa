"""
Structured JSON logging for storage observability.

Provides structured logging with request and bucket IDs for correlating logs
across one inbound operation, plus a context manager for timing storage calls.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variables for request correlation
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
bucket_id_var: ContextVar[str | None] = ContextVar("bucket_id", default=None)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "request_id": "...", ...}
    """

    EXTRA_FIELDS = (
        "event",
        "duration_ms",
        "operation",
        "provider",
        "bucket",
        "key",
        "size_bytes",
        "status_code",
        "error_code",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        bucket_id = bucket_id_var.get()
        if bucket_id:
            log_data["bucket_id"] = bucket_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure root logging.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def configure_logging_from_settings() -> None:
    from storagehub.config import get_settings

    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def request_context(request_id: str | None = None, bucket_id: str | None = None):
    """
    Tag every log line emitted inside the block with request/bucket IDs.

    Usage:
        with request_context(request_id=req.id, bucket_id=bucket.id):
            provider = factory.get_provider(bucket.id)
            await provider.upload(key, data)
    """
    request_token = request_id_var.set(request_id) if request_id else None
    bucket_token = bucket_id_var.set(bucket_id) if bucket_id else None
    try:
        yield
    finally:
        if bucket_token is not None:
            bucket_id_var.reset(bucket_token)
        if request_token is not None:
            request_id_var.reset(request_token)


@contextmanager
def log_storage_operation(operation: str, key: str | None, provider: str, bucket: str):
    """
    Context manager for storage operation instrumentation.

    Logs operation completion or failure with timing and size. Object keys are
    logged; credentials and endpoints never are.

    Usage:
        with log_storage_operation("upload", key, "compatible", bucket) as metrics:
            body = await read_upload_body(data)
            metrics["size_bytes"] = len(body)
    """
    start_time = time.time()
    logger = logging.getLogger("storagehub.operations")
    metrics: dict = {"size_bytes": None}

    try:
        yield metrics

        duration_ms = int((time.time() - start_time) * 1000)
        extra = {
            "event": f"storage_{operation}_complete",
            "operation": operation,
            "provider": provider,
            "bucket": bucket,
            "duration_ms": duration_ms,
        }
        if key is not None:
            extra["key"] = key
        if metrics["size_bytes"] is not None:
            extra["size_bytes"] = metrics["size_bytes"]
        logger.debug(f"Storage {operation} completed: {bucket}/{key or ''} ({duration_ms}ms)", extra=extra)
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        extra = {
            "event": f"storage_{operation}_failed",
            "operation": operation,
            "provider": provider,
            "bucket": bucket,
            "duration_ms": duration_ms,
        }
        if key is not None:
            extra["key"] = key
        for attr, field in (("status_code", "status_code"), ("code", "error_code")):
            value = getattr(e, attr, None)
            if value is not None:
                extra[field] = value
        logger.error(f"Storage {operation} failed: {bucket}/{key or ''} - {e}", extra=extra)
        raise
