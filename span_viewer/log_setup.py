"""Logging setup for the viewer (console via Rich, optional log file)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

# Console on stderr so command output on stdout stays machine-readable.
console = Console(stderr=True)

LOGGER_NAME = "span_viewer"


def configure_logging(debugging: Optional[Dict[str, Any]] = None, verbose: bool = False) -> logging.Logger:
    """
    Install handlers on the package logger from the config "debugging" section.

    Nothing is attached unless logging is enabled in config or `verbose` is set.
    Calling it again replaces the handlers it installed before.
    """
    debugging = debugging or {}
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    enabled = verbose or bool(debugging.get("enable_logging"))
    if not enabled:
        logger.addHandler(logging.NullHandler())
        logger.propagate = True
        return logger

    level = "DEBUG" if verbose else str(debugging.get("log_level") or "INFO").upper()
    logger.setLevel(level)
    logger.addHandler(RichHandler(console=console, rich_tracebacks=True, show_path=False))

    if debugging.get("log_to_file"):
        file_handler = logging.FileHandler(debugging.get("log_file") or "spanview.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
