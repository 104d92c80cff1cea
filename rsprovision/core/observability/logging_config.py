"""
Logging setup for provisioning runs.

``setup_logging`` is called once by main.py. Modules log through
``logging.getLogger(__name__)`` and inherit it.

Level precedence: CLI flag, then RSP_LOG_LEVEL, then WARNING.
RSP_LOG_FILE / RSP_LOG_FILE_LEVEL add a file log; a full build takes
long enough that a DEBUG file log is the usual way to keep a trace.

Every record carries ``step``: the id of the recipe step being
executed, or ``-`` outside of one. The executor sets it with
``step_context``.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_NO_STEP = "-"

_current_step: ContextVar[str] = ContextVar("rsprovision_step", default=_NO_STEP)

# WARNING and above: the message is enough
_FMT_CONSOLE = "%(message)s"

# INFO: clock and step
_FMT_INFO = "%(asctime)s [%(step)s] %(message)s"
_DATEFMT_INFO = "%H:%M:%S"

# DEBUG and the file log: step, level, module and line
_FMT_TRACE = "%(asctime)s %(levelname)-5s [%(step)s] %(name)s:%(lineno)d — %(message)s"
_DATEFMT_TRACE = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


class StepFilter(logging.Filter):
    """Stamp each record with the current step id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.step = _current_step.get()
        return True


@contextmanager
def step_context(step_id: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``step_id``."""
    token = _current_step.set(step_id)
    try:
        yield
    finally:
        _current_step.reset(token)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, optionally, a file handler.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path of a log file to append to.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)

    if console_level <= logging.DEBUG:
        console_fmt = logging.Formatter(_FMT_TRACE, datefmt=_DATEFMT_TRACE)
    elif console_level <= logging.INFO:
        console_fmt = logging.Formatter(_FMT_INFO, datefmt=_DATEFMT_INFO)
    else:
        console_fmt = logging.Formatter(_FMT_CONSOLE)

    step_filter = StepFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(console_fmt)
    console.addFilter(step_filter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_TRACE, datefmt=_DATEFMT_FILE))
        fh.addFilter(step_filter)
        root.addHandler(fh)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name → numeric level, WARNING when unknown."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
