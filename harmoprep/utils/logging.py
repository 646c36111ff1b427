"""
Logging set-up shared by every harmoprep command.

Three sinks are configured:

* a Rich console handler whose level follows ``-v`` / ``--debug``;
* a rotating JSON log (``harmoprep.log``) under ``$HARMOPREP_LOG_DIR``,
  ``<root>/code/logs`` or, without a study root, the package ``logs/`` folder;
* an optional plain-text mirror (``--save-logfile``).

Events are emitted through structlog. Context bound with
:func:`structlog.contextvars.bound_contextvars` (the batch runner binds the
session and modality of each job) is merged into every event, so lines
written by concurrent jobs stay attributable.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

import structlog
from rich.logging import RichHandler

__all__ = ["setup_logging", "log_dir"]

LOG_NAME = "harmoprep.log"
_MAX_BYTES = 5_000_000
_BACKUPS = 3


def log_dir(dataset_root: Path | None) -> Path:
    """Return the folder receiving the rotating JSON log."""
    env_dir = os.environ.get("HARMOPREP_LOG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    if dataset_root is not None:
        return dataset_root / "code" / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _levels(verbose: bool, debug: bool) -> tuple[int, int]:
    """Return ``(console level, file level)``."""
    if debug:
        return logging.DEBUG, logging.DEBUG
    return (logging.INFO if verbose else logging.WARNING), logging.INFO


def _rotating_json(folder: Path, level: int) -> logging.Handler:
    folder.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        folder / LOG_NAME,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _text_mirror(path: Path, level: int) -> logging.Handler:
    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    atexit.register(handler.close)
    return handler


def setup_logging(
    *,
    dataset_root: Path | None = None,
    verbose: bool = False,
    debug: bool = False,
    extra_text_log: Optional[Path] = None,
) -> Path:
    """Configure console, JSON and optional text logging.

    Args:
        dataset_root: Study root; selects the JSON log folder.
        verbose: Show INFO events on the console.
        debug: Show DEBUG events and rich tracebacks.
        extra_text_log: Path of a plain-text mirror of the console output.

    Returns:
        Path of the JSON log file.
    """
    console_level, file_level = _levels(verbose, debug)
    folder = log_dir(dataset_root)

    handlers: list[logging.Handler] = [
        RichHandler(level=console_level, rich_tracebacks=debug, markup=False, show_path=debug),
        _rotating_json(folder, file_level),
    ]
    if extra_text_log is not None:
        handlers.append(_text_mirror(extra_text_log, console_level))

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, format="%(message)s", force=True)

    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if verbose or debug
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min(console_level, file_level)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return folder / LOG_NAME
