"""
Logging for the record transform Lambda.

Inside Lambda every line is a single JSON document carrying the invocation's
correlation ID and whatever S3 location fields the caller attached; locally
a plain one-line format is used instead.
"""

import functools
import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# LogRecord attributes copied verbatim into the JSON payload when present.
_CONTEXT_FIELDS = (
    "s3_bucket",
    "s3_key",
    "destination_bucket",
    "destination_key",
    "aws_request_id",
    "event_type",
    "status_code",
    "duration_ms",
    "error",
)

_LOCAL_FORMAT = "[%(levelname)s] %(asctime)s - %(name)s - %(message)s"

# SDK loggers that are only useful when debugging the SDK itself.
_QUIET_LOGGERS = ("boto3", "botocore", "urllib3")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation ID to the current context, generating one if needed."""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    return correlation_id_var.get()


class StructuredJsonFormatter(logging.Formatter):
    """Render each record as one JSON object for CloudWatch Logs Insights."""

    def __init__(self, service_name: str = "record-transform"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "correlation_id": get_correlation_id(),
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update(
            (name, getattr(record, name))
            for name in _CONTEXT_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
            }
        return json.dumps(payload, default=str)


class ContextualLogger(logging.LoggerAdapter):
    """
    Adapter that stamps the current correlation ID on every record.

    Fields bound through ``self.extra`` are merged under any per-call
    ``extra`` so a call site can still override them.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {
            **self.extra,
            **kwargs.get("extra", {}),
            "correlation_id": get_correlation_id(),
        }
        return msg, kwargs

    def with_object(self, bucket: str, key: str) -> "ObjectLogger":
        return ObjectLogger(self.logger, {"s3_bucket": bucket, "s3_key": key})


class ObjectLogger(ContextualLogger):
    """Contextual logger bound to one S3 object."""


def _build_formatter(service_name: str) -> logging.Formatter:
    if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
        return StructuredJsonFormatter(service_name)
    return logging.Formatter(_LOCAL_FORMAT)


def configure_logging(
    level: str = "INFO",
    service_name: str = "record-transform",
) -> ContextualLogger:
    """
    Replace the root handlers with a single stdout handler.

    Lambda pre-installs its own root handler, which would otherwise emit
    every record twice.

    Args:
        level: Log level name; unknown names fall back to INFO
        service_name: Value of the ``service`` field in JSON output

    Returns:
        Contextual logger wrapping the root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(_build_formatter(service_name))
    root_logger.addHandler(stream_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return ContextualLogger(root_logger, {})


def log_execution_time(logger: logging.Logger):
    """
    Log the wall-clock duration of each call, at ERROR when it raised.

    Example:
        @log_execution_time(logger)
        def process_object(source, destination_bucket, transformer):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            failure = None
            try:
                return func(*args, **kwargs)
            except Exception as e:
                failure = e
                raise
            finally:
                elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
                if failure is None:
                    logger.info(
                        f"{func.__name__} completed",
                        extra={"duration_ms": elapsed_ms},
                    )
                else:
                    logger.error(
                        f"{func.__name__} failed after {elapsed_ms}ms: {failure}",
                        extra={"duration_ms": elapsed_ms},
                    )

        return wrapper

    return decorator
