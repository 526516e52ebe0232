import dataclasses
import enum
import json
import logging
import os
import traceback
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
import queue
import sys
from typing import Any, Dict, Optional, Tuple, List
from logging import Handler

from .config import Settings


_REDACT_KEYS: set[str] = set()

_logger: Optional[logging.Logger] = None
_log_listener: Optional[QueueListener] = None

_MAX_DATA_STRING_LENGTH = 5000


def _json_dumps_compact(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def _is_json_serializable(obj: Any) -> bool:
    try:
        json.dumps(obj)
        return True
    except (TypeError, ValueError):
        return False


def _sanitize_for_json(obj: Any) -> Any:
    """Recursively sanitize an object for JSON serialization.

    Converts non-serializable types (bytes, dataclasses, etc.) into
    JSON-compatible structures while redacting sensitive fields:
    - Bytes: decoded as UTF-8 with replacement characters
    - Dataclasses: converted to dictionaries
    - Dictionaries: keys listed in _REDACT_KEYS are masked, null values dropped
    - Lists/sets/tuples: each element sanitized, null values dropped
    - Anything else that json cannot encode: repr()
    """
    if isinstance(obj, bytes):
        return obj.decode("utf-8", "replace")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _sanitize_for_json(dataclasses.asdict(obj))
    if isinstance(obj, dict):
        redacted = {}
        for k, v in obj.items():
            if isinstance(k, str) and k.lower() in _REDACT_KEYS:
                redacted[k] = "***REDACTED***"
            else:
                sanitized_value = _sanitize_for_json(v)
                if sanitized_value is not None:
                    redacted[k] = sanitized_value
        return redacted
    if isinstance(obj, (list, tuple, set)):
        return [
            item for item in (_sanitize_for_json(x) for x in obj) if item is not None
        ]
    if isinstance(obj, enum.Enum):
        return obj.value
    if _is_json_serializable(obj):
        return obj
    return repr(obj)


class LogEvent(enum.Enum):
    """Structured log events emitted throughout the gateway.

    Each value marks a distinct milestone or failure category while serving a
    generation request. They end up in ``LogRecord.event`` so dashboards can
    filter on them.
    """

    REQUEST_START = "request_start"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILURE = "request_failure"
    CONFIGURATION = "configuration"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    CACHE_STORE = "cache_store"
    CACHE_ERROR = "cache_error"
    RATE_LIMIT_WAIT = "rate_limit_wait"
    UPSTREAM_REQUEST = "upstream_request"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_FAILURE = "upstream_failure"
    RETRY_BACKOFF = "retry_backoff"
    QUOTA_CHECK = "quota_check"
    QUOTA_EXCEEDED = "quota_exceeded"
    QUOTA_FAIL_OPEN = "quota_fail_open"
    FALLBACK_RESPONSE = "fallback_response"
    PERSISTENCE_ERROR = "persistence_error"
    HEALTH_CHECK = "health_check"


@dataclasses.dataclass
class LogError:
    """Structured representation of an exception attached to a log entry."""

    name: str
    message: str
    stack_trace: Optional[str] = None
    args: Optional[Tuple[Any, ...]] = None


@dataclasses.dataclass
class LogRecord:
    """Primary payload transported via the logging system.

    Attributes:
        event: Identifier from :class:`LogEvent` or custom tag.
        message: Short human-readable summary.
        request_id: Correlator generated per HTTP request.
        data: Arbitrary contextual dictionary (sanitized/truncated).
        error: Optional :class:`LogError` with exception details.
    """

    event: str
    message: str
    request_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[LogError] = None


class JSONFormatter(logging.Formatter):
    """Formatter that outputs log records as compact JSON lines.

    Injects timestamp, level and logger name, serializes an attached
    :class:`LogRecord`, truncates oversized strings and redacts configured
    sensitive fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        header: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        log_payload = getattr(record, "log_record", None)
        if isinstance(log_payload, LogRecord):
            detail = _sanitize_for_json(dataclasses.asdict(log_payload))
            if (
                isinstance(detail, dict)
                and detail.get("data")
                and isinstance(detail["data"], dict)
            ):
                for key, value in detail["data"].items():
                    if isinstance(value, str) and len(value) > _MAX_DATA_STRING_LENGTH:
                        detail["data"][key] = (
                            value[:_MAX_DATA_STRING_LENGTH] + "...[truncated]"
                        )
            header["detail"] = detail
        else:
            header["message"] = record.getMessage()
            if record.exc_info:
                exc_type, exc_value, exc_tb = record.exc_info
                header["error"] = _sanitize_for_json(
                    {
                        "name": exc_type.__name__ if exc_type else "UnknownError",
                        "message": str(exc_value),
                        "stack_trace": "".join(
                            traceback.format_exception(exc_type, exc_value, exc_tb)
                        ),
                        "args": exc_value.args
                        if exc_value and hasattr(exc_value, "args")
                        else [],
                    }
                )
        return _json_dumps_compact(_sanitize_for_json(header))


class ConsoleJSONFormatter(JSONFormatter):
    """Variant of :class:`JSONFormatter` for interactive consoles.

    Drops stack traces for brevity while keeping the JSON structure.
    """

    def format(self, record: logging.LogRecord) -> str:
        header: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        log_payload = getattr(record, "log_record", None)
        if isinstance(log_payload, LogRecord):
            detail = _sanitize_for_json(dataclasses.asdict(log_payload))
            if (
                isinstance(detail, dict)
                and detail.get("error")
                and detail["error"].get("stack_trace")
            ):
                detail["error"]["stack_trace"] = None
            header["detail"] = detail
        else:
            header["message"] = record.getMessage()
            if record.exc_info:
                exc_type, exc_value, _ = record.exc_info
                header["error"] = _sanitize_for_json(
                    {
                        "name": exc_type.__name__ if exc_type else "UnknownError",
                        "message": str(exc_value),
                        "args": exc_value.args
                        if exc_value and hasattr(exc_value, "args")
                        else [],
                    }
                )
        return _json_dumps_compact(_sanitize_for_json(header))


def init_logging(settings: Settings) -> logging.Logger:
    global _logger
    global _log_listener
    shutdown_logging()

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    queue_handler = QueueHandler(log_queue)

    console_handler = logging.StreamHandler(stream=sys.stdout)
    console_handler.setFormatter(
        ConsoleJSONFormatter() if settings.log_pretty_console else JSONFormatter()
    )

    handlers: List[Handler] = [console_handler]

    if settings.log_file_path:
        try:
            log_dir = os.path.dirname(settings.log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(
                settings.log_file_path, mode="a", encoding="utf-8"
            )
            file_handler.setFormatter(JSONFormatter())
            handlers.append(file_handler)
        except OSError as e:
            logging.getLogger(settings.app_name).warning(
                "Failed to configure file logging: %s", e
            )

    if settings.error_log_file_path:
        try:
            err_dir = os.path.dirname(settings.error_log_file_path)
            if err_dir:
                os.makedirs(err_dir, exist_ok=True)
            err_handler = logging.FileHandler(
                settings.error_log_file_path, mode="a", encoding="utf-8"
            )
            err_handler.setLevel(logging.ERROR)
            err_handler.setFormatter(JSONFormatter())
            handlers.append(err_handler)
        except OSError as e:
            logging.getLogger(settings.app_name).warning(
                "Failed to configure error file logging: %s", e
            )

    _log_listener = QueueListener(log_queue, *handlers)
    _log_listener.start()

    for logger_name in [
        "",
        settings.app_name,
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
    ]:
        logger = logging.getLogger(logger_name)
        logger.handlers = [queue_handler]
        logger.propagate = False if logger_name != "" else True
        logger.setLevel(
            logging.WARNING
            if logger_name == ""
            else settings.log_level.upper()
            if logger_name == settings.app_name
            else "INFO"
        )
    _logger = logging.getLogger(settings.app_name)
    global _REDACT_KEYS
    _REDACT_KEYS = {k.lower() for k in settings.redact_log_fields}
    return _logger


def shutdown_logging() -> None:
    """Safely shutdown logging system, flushing all messages."""
    global _log_listener
    if _log_listener:
        _log_listener.stop()
        _log_listener = None


def _log(level: int, record: LogRecord, exc: Optional[BaseException] = None) -> None:
    """Attach exception details (if any) to the record and emit it."""
    if exc:
        include_stack = _logger is not None and any(
            isinstance(h, logging.FileHandler) for h in _logger.handlers
        )
        stack_str = None
        if include_stack:
            stack_str = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        sanitized = _sanitize_for_json(exc.args)
        sanitized_args = (
            tuple(sanitized) if isinstance(sanitized, (list, tuple)) else (sanitized,)
        )

        record.error = LogError(
            name=type(exc).__name__,
            message=str(exc),
            stack_trace=stack_str,
            args=sanitized_args,
        )
        if not record.message and str(exc):
            record.message = str(exc)
        elif not record.message:
            record.message = "An unspecified error occurred"

    if _logger:
        _logger.log(level=level, msg=record.message, extra={"log_record": record})


def is_debug_enabled() -> bool:
    return _logger is not None and _logger.isEnabledFor(logging.DEBUG)


def debug(record: LogRecord) -> None:
    _log(logging.DEBUG, record)


def info(record: LogRecord) -> None:
    _log(logging.INFO, record)


def warning(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.WARNING, record, exc=exc)


def error(record: LogRecord, exc: Optional[BaseException] = None) -> None:
    _log(logging.ERROR, record, exc=exc)

