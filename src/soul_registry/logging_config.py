"""Logging setup for the soul registry server and CLI.

``text`` output is the usual human-readable format; ``json`` emits one JSON
object per line through ``pythonjsonlogger``.
"""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def build_formatter(fmt: str = "text") -> logging.Formatter:
    """Return the formatter for *fmt* (``"text"`` or ``"json"``)."""
    if fmt.lower() == "json":
        return JsonFormatter(fmt=JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    return logging.Formatter(TEXT_FORMAT)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure the root logger with a single stderr handler.

    Calling it again replaces the handler rather than adding another.
    """
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(fmt))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric)


__all__ = ["build_formatter", "configure_logging"]
