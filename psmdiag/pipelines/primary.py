"""Primary PSMD stage: dependency precheck, then ``-d`` or ``-p`` mode.

Both entry points return an outcome instead of raising so the subject
pipeline can route every kind of failure into the fallback uniformly.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from psmdiag.config import PsmdConfig
from psmdiag.engines import ExecutionEngine
from psmdiag.tools.psmd import PrecheckTool, PsmdTool, missing_from_precheck

from .classify import EngineOutcome, Failure, Success, classify_engine_output
from .types import EngineMode, SanitizedTables, SubjectFiles

PRECHECK_NAME = "psmd_precheck.txt"
DEPENDENCY_UNAVAILABLE = "dependency-unavailable"


def primary_log_path(subject_dir: Path, mode: EngineMode) -> Path:
    """Return ``psmd_mode_<d|p>.log`` for *mode*."""
    return subject_dir / f"psmd_mode_{mode.short}.log"


def precheck_dependencies(
    subject_dir: Path,
    cfg: PsmdConfig,
    engine: ExecutionEngine,
    logger: logging.Logger | None = None,
) -> List[str]:
    """Return commands the primary modes need but the image lacks.

    The raw probe output is saved to ``psmd_precheck.txt``. A probe that
    itself fails (non-zero exit) is treated as every dependency missing.
    """
    lg = logger or logging.getLogger(__name__)
    lg.info("---- IMAGE PRE-CHECK ----")
    if not cfg.primary_requires:
        (subject_dir / PRECHECK_NAME).write_text("")
        return []
    res = PrecheckTool(cfg.image, cfg.primary_requires).execute(engine)
    (subject_dir / PRECHECK_NAME).write_text(res.output)
    if res.returncode != 0:
        lg.warning(">> pre-check exited with %d", res.returncode)
        return list(cfg.primary_requires)
    missing = missing_from_precheck(res.output)
    for cmd in missing:
        lg.info(">> %s missing: skipping -%s mode", cmd, cfg.mode.short)
    return missing


def select_primary_image(files: SubjectFiles, mode: EngineMode) -> str:
    """Return the image basename for *mode*.

    Preprocessing mode prefers an existing ``<stem>_pp.nii.gz`` produced by
    an earlier preprocessing run.
    """
    name = files.nii.name
    if mode is EngineMode.PREPROCESSING and name.endswith(".nii.gz"):
        pp = name[: -len(".nii.gz")] + "_pp.nii.gz"
        if (files.subject_dir / pp).is_file():
            return pp
    return name


def run_primary(
    files: SubjectFiles,
    tables: SanitizedTables,
    mask: Path,
    cfg: PsmdConfig,
    engine: ExecutionEngine,
    logger: logging.Logger | None = None,
) -> EngineOutcome:
    """Run PSMD in the configured mode and classify its output.

    The combined output is written to ``psmd_mode_<d|p>.log`` and mirrored
    into the diagnostic log line by line.
    """
    lg = logger or logging.getLogger(__name__)
    mode = cfg.mode
    dwi = select_primary_image(files, mode)
    lg.info("---- PSMD (mode -%s) ----", mode.short)
    lg.info(">> psmd %s /data/%s ...", mode.flag, dwi)

    tool = PsmdTool(
        image=cfg.image,
        subject_dir=files.subject_dir,
        mode=mode,
        mask=mask.name,
        dwi=dwi,
        bval=tables.bval.name,
        bvec=tables.bvec.name,
        omp_threads=cfg.omp_threads,
    )
    res = tool.execute(engine, on_stdout=lg.info)
    primary_log_path(files.subject_dir, mode).write_text(res.output)

    outcome = classify_engine_output(res.returncode, res.output)
    if isinstance(outcome, Failure):
        lg.info(">> %s", outcome.reason)
    elif isinstance(outcome, Success) and res.returncode != 0:
        lg.warning(
            ">> PSMD exited with %d but reported a value; keeping it", res.returncode
        )
    lg.info(">> PSMD (-%s) exit code: %d", mode.short, res.returncode)
    return outcome
