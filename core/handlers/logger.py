"""
Structured Logger with Request Context

JSON logging for production and colored output for dev mode, with
request-scoped context (request id, model, endpoint type) attached to
every record.
"""

from __future__ import annotations
import logging
import sys
import json
from datetime import datetime, timezone
from contextvars import ContextVar
from typing import Any, Optional, Mapping
from dataclasses import dataclass, field


LOGGER_NAME = "droid-gateway"

# Header values never written to logs
REDACTED_HEADERS = {"authorization", "x-api-key", "cookie"}


# =============================================================================
# Context Variables
# =============================================================================

@dataclass
class RequestContext:
    """Request-scoped context data"""
    request_id: Optional[str] = None
    model: Optional[str] = None
    endpoint: Optional[str] = None
    start_time: Optional[float] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = {}
        if self.request_id:
            result["request_id"] = self.request_id
        if self.model:
            result["model"] = self.model
        if self.endpoint:
            result["endpoint"] = self.endpoint
        result.update(self.extra)
        return result


request_context: ContextVar[RequestContext] = ContextVar(
    "request_context",
    default=RequestContext()
)


def get_context() -> RequestContext:
    """Get current request context"""
    return request_context.get()


def set_context(ctx: RequestContext) -> Any:
    """Set request context, returns token for reset"""
    return request_context.set(ctx)


def update_context(**kwargs) -> None:
    """Update current context with additional data"""
    ctx = get_context()
    for key, value in kwargs.items():
        if hasattr(ctx, key):
            setattr(ctx, key, value)
        else:
            ctx.extra[key] = value


# =============================================================================
# Formatters
# =============================================================================

# Attributes every LogRecord carries; anything else came from `extra`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def extra_fields(record: logging.LogRecord) -> dict:
    """Fields passed to the logging call via `extra`"""
    return {
        key: value for key, value in vars(record).items()
        if key not in _RECORD_ATTRS
    }


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_data.update(request_context.get().to_dict())
        log_data.update(extra_fields(record))

        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Human-readable formatter for dev mode"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")

        ctx = request_context.get()
        ctx_parts = []
        if ctx.request_id:
            ctx_parts.append(f"req={ctx.request_id[:12]}")
        if ctx.model:
            ctx_parts.append(f"model={ctx.model}")
        if ctx.endpoint:
            ctx_parts.append(f"endpoint={ctx.endpoint}")
        ctx_str = f"[{' '.join(ctx_parts)}] " if ctx_parts else ""

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname.ljust(8)
        msg = f"{timestamp} {color}{level}{self.RESET} {ctx_str}{record.getMessage()}"

        extra = extra_fields(record)
        if extra:
            extra_str = " ".join(f"{k}={v}" for k, v in extra.items())
            msg += f" | {extra_str}"

        if record.exc_info:
            msg += f"\n{self.formatException(record.exc_info)}"

        return msg


# =============================================================================
# Logger Setup
# =============================================================================

def setup_logger(
    name: str = LOGGER_NAME,
    level: str = "INFO",
    json_format: bool = True,
    stream: Any = None
) -> logging.Logger:
    """
    Configure and return the gateway logger.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines (True) or colored dev output (False)
        stream: Output stream (default: stdout)
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(StructuredFormatter() if json_format else PrettyFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


# =============================================================================
# Logging Helpers
# =============================================================================

def redact_headers(headers: Mapping[str, str]) -> dict:
    """Copy of headers safe to log"""
    return {
        key: ("***" if key.lower() in REDACTED_HEADERS else value)
        for key, value in headers.items()
    }


def log_request(
    logger: logging.Logger,
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None,
    dev_mode: bool = False,
) -> None:
    """Log an outbound upstream request; headers and body only in dev mode"""
    logger.info(f"Request: {method} {url}", extra={"method": method, "url": url})
    if dev_mode:
        if headers:
            logger.debug(f"Request headers: {json.dumps(redact_headers(headers), indent=2)}")
        if body is not None:
            logger.debug(f"Request body: {json.dumps(body, indent=2, default=str)}")


def log_response(
    logger: logging.Logger,
    status_code: int,
    body: Any = None,
    dev_mode: bool = False,
    **extra
) -> None:
    """Log an upstream response status; body only in dev mode"""
    logger.info(f"Response: {status_code}", extra={"status_code": status_code, **extra})
    if dev_mode and body is not None:
        logger.debug(f"Response body: {json.dumps(body, indent=2, default=str)}")


def log_upstream_call(
    logger: logging.Logger,
    endpoint: str,
    model: str,
    streaming: bool = False,
    **extra
) -> None:
    """Log upstream routing decision"""
    logger.info(
        f"Upstream: {endpoint}/{model} (stream={streaming})",
        extra={"endpoint_type": endpoint, "upstream_model": model, "streaming": streaming, **extra}
    )
