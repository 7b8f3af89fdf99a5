"""Internal logging utilities."""

import logging

# Create package logger
logger = logging.getLogger("otlp_setup")

# Default to WARNING to avoid noise
logger.setLevel(logging.WARNING)


def log_internal_error(operation: str, error: BaseException) -> None:
    """Log an internal error on a path that must not raise to user code."""
    logger.warning(
        "otlp_setup internal error in %s: %s",
        operation,
        error,
        exc_info=(type(error), error, error.__traceback__),
    )
