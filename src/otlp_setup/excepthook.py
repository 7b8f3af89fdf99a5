"""Uncaught exception reporting through ``logging``.

Installing the hook routes uncaught exceptions to the ``otlp_setup.exception``
logger at ERROR with ``exception.*`` attributes, so an installed log bridge
exports them before the previous hook runs.
"""

from __future__ import annotations

import logging
import sys
import threading
import traceback
from types import TracebackType

logger = logging.getLogger("otlp_setup.exception")

_install_lock = threading.Lock()
_installed = False


def report_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: TracebackType | None,
) -> None:
    """Log an exception with OpenTelemetry exception attributes."""
    location = "<unknown>"
    if exc_tb is not None:
        frame = traceback.extract_tb(exc_tb)[-1]
        location = f"{frame.filename}:{frame.lineno}"

    logger.error(
        "exception",
        exc_info=(exc_type, exc_value, exc_tb),
        extra={
            "exception.type": exc_type.__qualname__,
            "exception.message": str(exc_value),
            "exception.location": location,
            "exception.stacktrace": "".join(
                traceback.format_exception(exc_type, exc_value, exc_tb)
            ),
        },
    )


def install_excepthook() -> None:
    """Install the reporting hook once, chaining to the previous ``sys.excepthook``."""
    global _installed
    with _install_lock:
        if _installed:
            return
        _installed = True
        previous = sys.excepthook

        def hook(
            exc_type: type[BaseException],
            exc_value: BaseException,
            exc_tb: TracebackType | None,
        ) -> None:
            if not issubclass(exc_type, KeyboardInterrupt):
                report_exception(exc_type, exc_value, exc_tb)
            previous(exc_type, exc_value, exc_tb)

        sys.excepthook = hook
