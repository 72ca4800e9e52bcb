"""Run many subjects concurrently with a bounded worker pool."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from psmdiag.config import PsmdConfig
from psmdiag.engines import ExecutionEngine

from .discovery import discover_subjects
from .fallback import fallback_log_path
from .primary import primary_log_path
from .subject import run_subject
from .types import OutcomeRecord

log = structlog.get_logger()


def _failed_record(subject_dir: Path, cfg: PsmdConfig, exc: BaseException) -> OutcomeRecord:
    """Return the ``fail`` record for a worker that raised."""
    return OutcomeRecord(
        subject=subject_dir.name,
        subject_dir=subject_dir,
        mode=cfg.mode,
        method="fail",
        primary_log=primary_log_path(subject_dir, cfg.mode),
        fallback_log=fallback_log_path(subject_dir),
        reason=f"worker error: {exc}",
    )


def run_batch(
    root: Path,
    cfg: PsmdConfig,
    engine: ExecutionEngine,
    mask_override: Optional[Path] = None,
) -> List[OutcomeRecord]:
    """Process every valid subject below *root*.

    At most ``cfg.jobs`` subjects run at the same time. The call returns
    only after all of them finished; records come back in discovery order
    regardless of completion order.

    Raises:
        NoValidSubjects: If *root* has no subject directory.
    """
    lg = logging.getLogger(__name__)
    subjects = discover_subjects(root)
    total = len(subjects)
    lg.info("Subjects detected: %d", total)
    log.info("batch.start", root=str(root), subjects=total, jobs=cfg.jobs)

    records: Dict[Path, OutcomeRecord] = {}
    with ThreadPoolExecutor(max_workers=cfg.jobs, thread_name_prefix="psmd") as pool:
        fut2dir = {}
        for i, sdir in enumerate(subjects, start=1):
            lg.info("Starting [%d/%d]: %s", i, total, sdir.name)
            fut2dir[pool.submit(run_subject, sdir, cfg, engine, mask_override)] = sdir
        for fut in as_completed(fut2dir):
            sdir = fut2dir[fut]
            try:
                records[sdir] = fut.result()
            except Exception as exc:  # noqa: BLE001
                lg.error("Subject %s failed: %s", sdir.name, exc)
                records[sdir] = _failed_record(sdir, cfg, exc)
            lg.info("Finished: %s (%s)", sdir.name, records[sdir].method)

    log.info("batch.done", root=str(root), subjects=total)
    return [records[s] for s in subjects]
