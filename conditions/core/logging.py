"""
Structured logging

JSON lines in production, readable lines in development. Every record
carries the correlation ID of the request or task that produced it and,
during a cron run, the pipeline stage that was executing.

    logger = get_logger(__name__)
    logger.info("Bulletins stored", extra_data={"count": 3})
"""
import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
cron_stage_var: ContextVar[str] = ContextVar("cron_stage", default="")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] [%(stage)s] | %(message)s"

# chatty third-party loggers and the level they are capped at
LIBRARY_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "botocore": logging.WARNING,
    "celery": logging.INFO,
}


def _context() -> dict[str, str]:
    """Non-empty context values, keyed as they appear in JSON output"""
    values = {"correlation_id": correlation_id_var.get(), "stage": cron_stage_var.get()}
    return {key: value for key, value in values.items() if value}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            **_context(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra_data = getattr(record, "extra_data", None)
        if extra_data is not None:
            entry["extra"] = extra_data
        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.Logger):
    """Logger whose level methods accept an ``extra_data`` mapping"""

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1,
             extra_data: dict[str, Any] | None = None):
        if extra_data:
            extra = {**(extra or {}), "extra_data": extra_data}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra,
                     stack_info=stack_info, stacklevel=stacklevel + 1)


logging.setLoggerClass(StructuredLogger)


class ContextFilter(logging.Filter):
    """Puts the context on the record for the text format ("-" when unset)"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        record.stage = cron_stage_var.get() or "-"
        return True


def setup_logging(level: str = "INFO", json_format: bool = True, app_name: str = "conditions") -> None:
    """Replace the root handlers with one stdout handler at the given level"""
    numeric_level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)

    get_logger(__name__).debug("Logging configured", extra_data={"app_name": app_name})


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation ID; one is generated and kept if none is set"""
    return correlation_id_var.get() or set_correlation_id()


def set_cron_stage(stage: str) -> None:
    cron_stage_var.set(stage)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


def log_async_operation(operation_name: str):
    """Log start, completion (with duration) and failure of a coroutine function"""
    def decorator(func):
        logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.monotonic()
            logger.debug(f"Starting {operation_name}", extra_data={"operation": operation_name})
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}: {e}",
                    extra_data={
                        "operation": operation_name,
                        "duration_seconds": round(time.monotonic() - started, 3),
                        "error": str(e),
                    },
                    exc_info=True
                )
                raise
            logger.info(
                f"Completed {operation_name}",
                extra_data={"operation": operation_name, "duration_seconds": round(time.monotonic() - started, 3)}
            )
            return result

        return wrapper
    return decorator
