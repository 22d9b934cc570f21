"""Logging setup for quality runs.

Human-readable lines by default; ``json_format`` switches to one JSON object
per line for log shippers. Logs always go to stderr because reports are
written to stdout.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

__all__ = [
    "CONTEXT_FIELDS",
    "JSONFormatter",
    "setup_logging",
]

# Attributes attached via ``extra=`` that are promoted to top-level keys
CONTEXT_FIELDS = ("rule", "table", "as_of")

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Backend loggers that are noisy at INFO
_QUIET_LOGGERS = ("ibis", "sqlglot", "pyodbc")


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    ``rule``, ``table`` and ``as_of`` passed through ``extra=`` become
    top-level keys so a failing rule can be filtered on directly; any other
    extras are grouped under ``"extra"``.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "ERROR",
         "logger": "dwh_quality.lib.engine", "message": "...",
         "rule": "bdate_range", "table": "erp_cust_az12"}
    """

    def __init__(self, exclude_fields: Optional[Iterable[str]] = None):
        super().__init__()
        self.exclude_fields = frozenset(exclude_fields or ())

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extras: Dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key in self.exclude_fields:
                continue
            if key in CONTEXT_FIELDS:
                entry[key] = value
            else:
                extras[key] = value
        if extras:
            entry["extra"] = extras

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Replace the root logger's handlers for a quality run.

    Args:
        verbose: Log at DEBUG instead of INFO
        json_format: Emit JSON lines instead of text
        log_file: Also write logs to this file
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter = (
        JSONFormatter()
        if json_format
        else logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
