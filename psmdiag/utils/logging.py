"""
Package-level logging configuration.

* Rich console output (colourised, nicely formatted).
* Rotating **JSON** log file in the batch/subject root (or
  ``$PSMDIAG_LOG_DIR`` when set).
* Optional plain-text mirror controlled via ``--save-logfile`` on the CLI.
* One timestamped plain-text diagnostic log per subject
  (``psmd_diag_<YYYYmmdd_HHMMSS>.log``) that also receives the engine output.

:func:`setup_logging` wires the process-wide handlers and should be the sole
entry-point used by the CLI; pipelines obtain their per-subject logger from
:func:`subject_logger`.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import structlog
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer as StructlogConsoleRenderer
from structlog.stdlib import LoggerFactory

__all__ = [
    "setup_logging",
    "subject_logger",
    "subject_logger_name",
    "close_subject_logger",
]

DIAG_PREFIX = "psmd_diag_"


# --------------------------------------------------------------------------- #
# Internal helpers – file-based handlers                                      #
# --------------------------------------------------------------------------- #
def _json_file_handler(log_dir: Path | None, level: int) -> logging.Handler:
    """Return a rotating *JSON* file handler.

    Args:
        log_dir: Directory for ``psmdiag.log`` when ``PSMDIAG_LOG_DIR`` is
            not set; the package-local ``logs/`` folder otherwise.
        level: Log-level for the handler.
    """
    env_dir = os.environ.get("PSMDIAG_LOG_DIR")

    if env_dir:
        logdir = Path(env_dir).expanduser()
    elif log_dir is not None:
        logdir = log_dir
    else:
        logdir = Path(__file__).resolve().parents[1] / "logs"
    logdir.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        filename=logdir / "psmdiag.log",
        maxBytes=5_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _plain_text_file_handler(
    path: Optional[Path], level: int
) -> logging.Handler | None:
    """Return a plain-text file handler or *None* when *path* is *None*."""
    if path is None:
        return None

    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    atexit.register(handler.close)
    return handler


# --------------------------------------------------------------------------- #
# Public API – process-wide configuration                                     #
# --------------------------------------------------------------------------- #
def setup_logging(
    *,
    log_dir: Path | None = None,
    verbose: bool = False,
    debug: bool = False,
    extra_text_log: Optional[Path] = None,
) -> None:
    """Configure rich console logging and file mirrors.

    Args:
        log_dir: Directory receiving the rotating JSON log.
        verbose: Emit INFO-level messages (including engine output) to the
            console.
        debug: Emit DEBUG-level messages, e.g. every external command line.
        extra_text_log: Optional path for a plain-text mirror of console output.
    """
    console_lvl = (
        logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    )
    file_lvl = logging.DEBUG if debug else logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(
            level=console_lvl,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=False,
        ),
        _json_file_handler(log_dir, file_lvl),
    ]
    txt_handler = _plain_text_file_handler(extra_text_log, console_lvl)
    if txt_handler:
        handlers.append(txt_handler)

    logging.basicConfig(
        level=logging.DEBUG,  # root logger stays at DEBUG; handlers filter
        handlers=handlers,
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            (
                StructlogConsoleRenderer()
                if verbose or debug
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(file_lvl),
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=False,
    )


# --------------------------------------------------------------------------- #
# Public API – per-subject diagnostic log                                     #
# --------------------------------------------------------------------------- #
def subject_logger_name(subject: str) -> str:
    """Return a logger name for *subject* that is a leaf of ``psmdiag.subject``.

    ``%`` and ``.`` are percent-escaped so no subject logger is an ancestor
    of another (``sub`` vs ``sub.rerun``).
    """
    escaped = subject.replace("%", "%25").replace(".", "%2E")
    return f"psmdiag.subject.{escaped}"


def subject_logger(subject_dir: Path, subject: str) -> Tuple[logging.Logger, Path]:
    """Return a logger writing to a fresh diagnostic log inside *subject_dir*.

    The logger propagates to the root handlers, so messages also reach the
    console and the JSON log.

    Returns:
        ``(logger, path)`` where *path* is ``psmd_diag_<timestamp>.log``.
    """
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = subject_dir / f"{DIAG_PREFIX}{ts}.log"

    logger = logging.getLogger(subject_logger_name(subject))
    logger.setLevel(logging.DEBUG)
    close_subject_logger(logger)

    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger, path


def close_subject_logger(logger: logging.Logger) -> None:
    """Flush and detach every file handler attached to *logger*."""
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            handler.close()
            logger.removeHandler(handler)
