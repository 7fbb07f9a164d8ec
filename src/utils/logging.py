"""Structured logging: correlation IDs, operation timing and PII masking."""

import hashlib
import inspect
import logging
import re
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, Optional

from src.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# (pattern, replacement, flags) applied in order by mask_sensitive_data
_MASKS = (
    (r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', '[REDACTED_EMAIL]', re.IGNORECASE),
    (r'\b\+?\d[\d\s().-]{7,}\b', '[REDACTED_PHONE]', 0),
    (r'(api[_-]?key|token|secret|password|auth)[\s:=]+([A-Za-z0-9_-]{20,})', r'\1=[REDACTED]', re.IGNORECASE),
    (r'bearer\s+[A-Za-z0-9._-]+', 'Bearer [REDACTED]', re.IGNORECASE),
    # KYC document links
    (r'https?://\S+/(identity|residency)[^\s]*', '[REDACTED_DOCUMENT_URL]', re.IGNORECASE),
)


def generate_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Bind a correlation ID (generated when missing) for the duration of a request."""
    token = _correlation_id_var.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Redact emails, phone numbers, credentials and KYC document links."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text
    for pattern, replacement, flags in _MASKS:
        text = re.sub(pattern, replacement, text, flags=flags)
    return text


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Shorten long user IDs to a prefix plus a stable hash."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not user_id:
        return user_id

    user_id = str(user_id)
    if len(user_id) <= 12:
        return user_id
    digest = hashlib.sha256(user_id.encode()).hexdigest()[:8]
    return f"{user_id[:4]}...{digest}"


def sanitize_message_text(text: str, max_length: int = 500) -> Optional[str]:
    """Free text (notification bodies, vetting notes) as it may appear in logs, or None."""
    if not text or not LoggingConfig.LOG_MESSAGE_CONTENT:
        return None
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return mask_sensitive_data(text)


class StructuredLogger:
    """Logger wrapper that turns keyword arguments into structured fields."""

    def __init__(self, logger: logging.Logger, **bound: Any):
        self.logger = logger
        self.bound = bound

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Child logger that adds `fields` to every record."""
        return StructuredLogger(self.logger, **{**self.bound, **fields})

    def _fields(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id
        extra.update(self.bound)
        extra.update(kwargs)
        return extra

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._fields(kwargs), exc_info=exc_info)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **kwargs)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """
    Time a block and log its outcome.

    Logs `Completed <op>` at INFO (with `outcome` set to `ok` or the exception
    class name) and a second WARNING record when the block exceeded
    LOG_SLOW_OPERATION_THRESHOLD_MS. Exceptions propagate unchanged.
    """
    log = logger or get_structured_logger(__name__)
    log.debug(f"Starting {operation_name}", operation=operation_name, **context)
    started = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except Exception as e:
        outcome = type(e).__name__
        raise
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        log.info(
            f"Completed {operation_name}",
            operation=operation_name,
            outcome=outcome,
            processing_time_ms=elapsed_ms,
            **context
        )
        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if elapsed_ms > threshold:
            log.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=elapsed_ms,
                threshold_ms=threshold,
                **context
            )


def timed(operation_name: Optional[str] = None, logger: Optional[StructuredLogger] = None):
    """Decorator form of log_timing for plain and async functions."""
    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"
        log = logger or get_structured_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_timing(name, logger=log):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with log_timing(name, logger=log):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


def setup_logging(force: bool = False) -> logging.Logger:
    """Configure root logging once and return the package logger."""
    LoggingConfig.setup_logging(force=force)
    return get_logger("src")
