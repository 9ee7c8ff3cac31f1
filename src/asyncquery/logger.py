"""Library-wide logging hook.

Terminal query and mutation errors are reported here, whether or not any
observer is listening. Swap the logger with :func:`set_logger` to route them
to telemetry.
"""

import logging

_logger: logging.Logger = logging.getLogger("asyncquery")


def get_logger() -> logging.Logger:
    """Return the logger asyncquery reports to."""
    return _logger


def set_logger(logger: logging.Logger) -> None:
    """Replace the logger asyncquery reports to."""
    global _logger
    _logger = logger


__all__ = ["get_logger", "set_logger"]
