"""Structured logging via structlog, with optional hourly rotating JSON file output."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from typing import TextIO

import structlog


class _TeeWriter:
    """Write structured log lines to stderr and, optionally, a log file."""

    def __init__(self, log_file: TextIO | None) -> None:
        self._log_file = log_file

    def write(self, message: str) -> None:
        sys.stderr.write(message)
        if self._log_file is not None:
            self._log_file.write(message)
            self._log_file.flush()

    def flush(self) -> None:
        sys.stderr.flush()
        if self._log_file is not None:
            self._log_file.flush()


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure structlog and the stdlib root logger (used by httpx).

    Without ``log_dir`` events are rendered for the console on stderr. With
    it, events are JSON lines, also appended to ``<log_dir>/evsource.jsonl``
    and stdlib records go to an hourly rotating ``evsource-http.log``.
    """
    level = logging.getLevelName(log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    root_logger.addHandler(stderr_handler)

    log_file: TextIO | None = None
    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=os.path.join(log_dir, "evsource-http.log"),
            when="H",
            interval=1,
            backupCount=24,
            utc=True,
        )
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)
        log_file = open(os.path.join(log_dir, "evsource.jsonl"), "a")  # noqa: SIM115
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=_TeeWriter(log_file)),
        cache_logger_on_first_use=True,
    )
