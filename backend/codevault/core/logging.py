"""
Structured logging utilities

This module provides structured logging for operator-facing events:

- JSON-formatted log output for parsing
- Context manager for timing operations
- Process-wide logging setup shared by both services
"""
import logging
import json
import time
from typing import Any, Dict, Optional
from contextlib import contextmanager


NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "uvicorn.asgi",
    "httpx",
    "httpcore",
    "sqlalchemy",
    "sqlalchemy.engine",
    "aiosqlite",
)


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging for a service process.

    Third-party loggers are held at WARNING; codevault loggers use the
    configured level.
    """
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("codevault").setLevel(level.upper())


class StructuredLogger:
    """
    Logger that outputs structured JSON for important events.

    Useful for:
    - Log aggregation systems (ELK, Splunk, etc.)
    - Debugging with grep/jq
    - Finding orphaned blobs after a failed upload

    Usage:
        logger = StructuredLogger(__name__)
        logger.info("Upload batch stored", codebase_id="...", accepted=3)
    """

    def __init__(self, name: str):
        """
        Initialize the structured logger.

        Args:
            name: Logger name (typically __name__)
        """
        self.logger = logging.getLogger(name)
        self.default_fields: Dict[str, Any] = {}

    def _log(self, log_level: int, message: str, **fields):
        """Internal logging method with JSON formatting"""
        data = {
            **self.default_fields,
            **fields,
            "message": message,
            "timestamp": time.time()
        }
        self.logger.log(log_level, json.dumps(data, default=str))

    def info(self, message: str, **fields):
        """Log at INFO level with structured fields"""
        self._log(logging.INFO, message, level="info", **fields)

    def warning(self, message: str, **fields):
        """Log at WARNING level with structured fields"""
        self._log(logging.WARNING, message, level="warning", **fields)

    def error(self, message: str, **fields):
        """Log at ERROR level with structured fields"""
        self._log(logging.ERROR, message, level="error", **fields)

    def debug(self, message: str, **fields):
        """Log at DEBUG level with structured fields"""
        self._log(logging.DEBUG, message, level="debug", **fields)


@contextmanager
def log_duration(operation: str, logger: Optional[StructuredLogger] = None, **extra_fields):
    """
    Context manager to log operation duration.

    Usage:
        with log_duration("store_files", codebase_id=codebase_id):
            result = await client.store_files(...)

    Args:
        operation: Name of the operation being timed
        logger: Optional StructuredLogger (creates one if not provided)
        **extra_fields: Additional fields to include in the log
    """
    if logger is None:
        logger = get_logger("codevault.timing")

    start = time.perf_counter()
    error_occurred = None
    try:
        yield
    except Exception as e:
        error_occurred = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        if error_occurred:
            logger.error(
                f"{operation} failed",
                operation=operation,
                duration_ms=round(duration_ms, 2),
                error=error_occurred,
                **extra_fields
            )
        else:
            logger.info(
                f"{operation} completed",
                operation=operation,
                duration_ms=round(duration_ms, 2),
                **extra_fields
            )


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

        from codevault.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Something happened", codebase_id="123")

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
