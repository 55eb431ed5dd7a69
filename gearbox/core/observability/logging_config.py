"""
Logging configuration — one call per process, made by the CLI.

Modules only ever do ``logger = logging.getLogger(__name__)``; this
module decides where those records go and how they look.

Console verbosity comes from the CLI (-q / -v / --debug), falling back
to GEARBOX_LOG_LEVEL and then WARNING. A log file (GEARBOX_LOG_FILE)
can run at its own level, so a quiet terminal can still leave a full
trace of a long parallel build behind.

Build script output never passes through logging; the script backend
streams it to the terminal as it arrives.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# ── Formats ─────────────────────────────────────────────────────

# Builds run on pool threads named build_0, build_1, ... so anything
# above WARNING shows which worker a record came from.
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: (
        "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d  %(message)s",
        "%H:%M:%S",
    ),
    logging.INFO: ("%(asctime)s [%(threadName)s] %(message)s", "%H:%M:%S"),
}
_CONSOLE_DEFAULT = ("%(message)s", None)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(threadName)s] %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, optionally, a file handler.

    Calling it again replaces whatever a previous call installed.

    Args:
        level: Console level name.
        log_file: Path of a log file to append to. Parent directories
            are created.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level))

    lowest = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(Path(log_file), file_level))
        lowest = min(lowest, file_level)

    root.setLevel(lowest)


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = _CONSOLE_DEFAULT
    for threshold in sorted(_CONSOLE_FORMATS):
        if level <= threshold:
            fmt, datefmt = _CONSOLE_FORMATS[threshold]
            break
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name to number; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
