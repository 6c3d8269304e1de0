"""
logs.py - Logging setup shared by the API server and the CLI.

Development gets a single human-readable console stream. Production keeps
the console (container logs) and adds two JSON-lines files next to the
process: combined.log with everything and error.log with ERROR and above,
so the on-call person can tail one short file.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
SERVICE_NAME = "tender-qa"
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "pdfminer", "multipart")


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line; messages are escaped, tracebacks included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(
    level: str = "INFO",
    environment: str = "development",
    log_dir: Optional[str] = None,
) -> None:
    """
    Configure the root logger. Safe to call more than once; handlers are
    replaced rather than stacked.
    """
    lvl = getattr(logging, level.upper(), logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    handlers = [console]

    if environment.lower() == "production":
        base = log_dir or "."
        os.makedirs(base, exist_ok=True)
        file_fmt = JsonLineFormatter()

        combined = logging.FileHandler(os.path.join(base, "combined.log"), encoding="utf-8")
        combined.setFormatter(file_fmt)
        handlers.append(combined)

        errors = logging.FileHandler(os.path.join(base, "error.log"), encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(file_fmt)
        handlers.append(errors)

    logging.basicConfig(level=lvl, handlers=handlers, force=True)

    # pdfminer in particular logs every font it cannot map at DEBUG.
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(lvl, logging.WARNING))
    logging.captureWarnings(True)
