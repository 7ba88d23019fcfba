"""Logging setup shared by the CLI, the worker threads and the tests."""
from __future__ import annotations

import logging
import os
import sys
from datetime import date
from pathlib import Path

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"

_CONSOLE_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
# File lines carry the worker thread name.
_FILE_FORMAT = "%(asctime)s  %(levelname)-8s  [%(threadName)s]  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"

# Per-request HTTP client loggers, held at WARNING or above.
_NOISY = ("urllib3", "httpx", "httpcore", "openai")

_configured = False


def configure_logging(level: str | None = None, log_dir: Path | None = None) -> None:
    """Install console and daily-file handlers on the root logger.

    *level* falls back to ``LOG_LEVEL`` (default INFO). Setting
    ``JOBMAIL_NO_LOG_FILE`` keeps output on the console only. Calling again
    only changes the level.
    """
    global _configured
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    numeric = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric)
    for name in _NOISY:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    if _configured or root.handlers:
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(numeric)
        _configured = True
        return
    _configured = True

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FMT))
    root.addHandler(console)

    if os.environ.get("JOBMAIL_NO_LOG_FILE"):
        return
    directory = log_dir or LOG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(directory / f"jobmail_{date.today():%Y-%m-%d}.log", encoding="utf-8")
    except OSError as exc:
        root.warning("File logging disabled: %s", exc)
        return
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FMT))
    root.addHandler(fh)


def get_logger(name: str) -> logging.Logger:
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
