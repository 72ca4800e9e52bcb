"""
Per-subject pipeline: resolve → mask → sanitize → integrity → primary →
fallback.

:func:`run_subject` always returns exactly one :class:`OutcomeRecord`.
Expected failures (:class:`~psmdiag.utils.errors.PsmdError`) and unexpected
exceptions alike end as ``method="fail"``; the latter are logged with a
traceback into the subject's diagnostic log.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import structlog

from psmdiag.config import PsmdConfig
from psmdiag.engines import ExecutionEngine
from psmdiag.io.skeleton import acquire_mask
from psmdiag.utils.errors import PsmdError
from psmdiag.utils.logging import close_subject_logger, subject_logger

from .classify import EngineOutcome, Failure, Success
from .discovery import resolve_subject_files
from .fallback import fallback_log_path, run_fallback
from .integrity import check_integrity
from .primary import (
    DEPENDENCY_UNAVAILABLE,
    precheck_dependencies,
    primary_log_path,
    run_primary,
)
from .sanitize import sanitize_tables
from .types import Method, OutcomeRecord, SubjectState

log = structlog.get_logger()

STALE_LOG_GLOB = "psmd_mode_*.log"


def clear_stale_logs(subject_dir: Path) -> list[Path]:
    """Delete ``psmd_mode_*.log`` left by an earlier run and return them.

    The results table is derived from these logs, so a previous run's
    success must not leak into the current one.
    """
    removed = sorted(subject_dir.glob(STALE_LOG_GLOB))
    for p in removed:
        p.unlink()
    return removed


class _StateTracker:
    """Record and log the subject's state transitions."""

    def __init__(self, subject: str, logger: logging.Logger) -> None:
        self.subject = subject
        self.logger = logger
        self.history: list[SubjectState] = [SubjectState.INIT]

    @property
    def state(self) -> SubjectState:
        return self.history[-1]

    def advance(self, state: SubjectState) -> None:
        log.debug("subject.state", subject=self.subject, src=self.state.value, dst=state.value)
        self.logger.debug("state: %s -> %s", self.state.value, state.value)
        self.history.append(state)


def _attempt_fallback(files, tables, mask, cfg, engine, lg) -> EngineOutcome:
    """Run the fallback, folding its exceptions into a :class:`Failure`."""
    try:
        return run_fallback(files, tables, mask, cfg, engine, lg)
    except PsmdError as exc:
        lg.error("ERROR: fallback failed: %s", exc)
        return Failure(str(exc))


def run_subject(
    subject_dir: Path,
    cfg: PsmdConfig,
    engine: ExecutionEngine,
    mask_override: Optional[Path] = None,
) -> OutcomeRecord:
    """Process one subject directory end-to-end.

    Args:
        subject_dir: Folder holding ``.bval``, ``.bvec`` and the 4D image.
        cfg: Frozen run configuration.
        engine: Backend executing PSMD and FSL inside the engine image.
        mask_override: Skeleton mask supplied by the user.

    Returns:
        The subject's :class:`OutcomeRecord`.
    """
    subject_dir = Path(subject_dir).expanduser().resolve()
    subject = subject_dir.name
    primary_log = primary_log_path(subject_dir, cfg.mode)
    fb_log = fallback_log_path(subject_dir)

    clear_stale_logs(subject_dir)
    lg, diag_log = subject_logger(subject_dir, subject)
    tracker = _StateTracker(subject, lg)
    log.info("subject.start", subject=subject, mode=cfg.mode.value)

    lg.info("==== PSMD Diagnostics ====")
    lg.info("Directory : %s", subject_dir)
    lg.info("Mode      : -%s", cfg.mode.short)
    lg.info("Image     : %s", cfg.image)
    lg.info("Log       : %s", diag_log)

    method: Method = "fail"
    value: Optional[float] = None
    reason: Optional[str] = None
    try:
        files = resolve_subject_files(subject_dir)
        lg.info("BVAL: %s", files.bval.name)
        lg.info("BVEC: %s", files.bvec.name)
        lg.info("DWI : %s", files.nii.name)

        mask = acquire_mask(
            subject_dir,
            mask_name=cfg.mask_name,
            mask_url=cfg.mask_url,
            override=mask_override,
            logger=lg,
        )
        lg.info("MASK: %s", mask.name)

        tables = sanitize_tables(files, lg)
        check_integrity(files, tables, b0_max=cfg.fallback.b0_max, logger=lg)
        tracker.advance(SubjectState.INTEGRITY_CHECKED)

        missing = precheck_dependencies(subject_dir, cfg, engine, lg)
        primary: EngineOutcome
        if missing:
            lg.info("Primary mode not executed (missing dependencies).")
            primary = Failure(f"{DEPENDENCY_UNAVAILABLE}: {', '.join(missing)}")
        else:
            tracker.advance(SubjectState.PRIMARY_ATTEMPTED)
            primary = run_primary(files, tables, mask, cfg, engine, lg)

        if isinstance(primary, Success):
            tracker.advance(SubjectState.PRIMARY_SUCCEEDED)
            method, value = "primary", primary.value
            lg.info("Fallback not executed.")
        else:
            tracker.advance(SubjectState.PRIMARY_FAILED)
            tracker.advance(SubjectState.FALLBACK_ATTEMPTED)
            fallback = _attempt_fallback(files, tables, mask, cfg, engine, lg)
            if isinstance(fallback, Success):
                tracker.advance(SubjectState.FALLBACK_SUCCEEDED)
                method, value = "fallback", fallback.value
            else:
                tracker.advance(SubjectState.FALLBACK_FAILED)
                reason = f"primary: {primary.reason}; fallback: {fallback.reason}"
    except PsmdError as exc:
        lg.error("ERROR: %s", exc)
        reason = str(exc)
    except Exception as exc:  # noqa: BLE001
        lg.exception("unexpected error while processing %s", subject)
        reason = f"unexpected error: {exc}"
    finally:
        tracker.advance(SubjectState.DONE)
        if value is not None:
            lg.info("PSMD (%s) = %s", method, value)
        lg.info("==== End of diagnostics ====")
        lg.info("Send this log if you need support: %s", diag_log)
        close_subject_logger(lg)

    log.info("subject.done", subject=subject, method=method, psmd=value)
    return OutcomeRecord(
        subject=subject,
        subject_dir=subject_dir,
        mode=cfg.mode,
        method=method,
        value=value,
        primary_log=primary_log,
        fallback_log=fb_log,
        diag_log=diag_log,
        reason=reason,
    )
