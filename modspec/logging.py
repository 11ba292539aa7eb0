"""Logging helpers for the modspec logger hierarchy."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "modspec"
DIAGNOSTICS_LOGGER = f"{_LOGGER_NAME}.diagnostics"

CONSOLE_FORMAT = "[modspec] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a child logger such as ``modspec.orchestrator``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


class _HideDiagnostics(logging.Filter):
    """Keeps traceback dumps off the console; the file sink still receives them."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(DIAGNOSTICS_LOGGER)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach the console handler and, optionally, a DEBUG file sink.

    Records from ``modspec.diagnostics`` reach the console only in verbose
    mode. The file sink always records everything down to DEBUG.
    """
    console_level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    if not verbose:
        console.addFilter(_HideDiagnostics())
    logger.addHandler(console)

    if log_file is not None:
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)

    logger.setLevel(logging.DEBUG if verbose or log_file is not None else logging.INFO)
    return logger


__all__ = ["DIAGNOSTICS_LOGGER", "configure_logging", "get_logger"]
