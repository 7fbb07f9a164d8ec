"""Environment-driven logging setup for the HTTP functions and workers."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "viewing-desk-backend"

# Client libraries that log every PostgREST round trip at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "gotrue", "realtime")


class LoggingConfig:
    """Logging settings, read once from the environment at import."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MESSAGE_CONTENT = os.environ.get("LOG_MESSAGE_CONTENT", "true").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_CORRELATION_ID_HEADER = os.environ.get("LOG_CORRELATION_ID_HEADER", "X-Correlation-ID")
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))
    ENVIRONMENT = os.environ.get("ENVIRONMENT", "production").lower()

    _configured = False

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True,
                static_fields={"service": SERVICE_NAME, "environment": cls.ENVIRONMENT},
            )
        return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    @classmethod
    def setup_logging(cls, force: bool = False) -> None:
        """
        Install a single stdout handler on the root logger.

        Warm serverless workers import handlers repeatedly, so this is a no-op
        after the first call unless `force` is set.
        """
        if cls._configured and not force:
            return

        level = getattr(logging, cls.LOG_LEVEL, logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(cls.build_formatter())
        root_logger.addHandler(handler)

        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        cls._configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
