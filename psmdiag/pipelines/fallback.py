"""
Fallback stage: b0-threshold brain mask → ``dtifit`` → PSMD from maps.

Every FSL call is a separate engine invocation against the subject folder
(mounted at ``/data``); the threshold arithmetic and the collapse decision
are taken here from the numbers ``fslstats`` prints. Any tool that is
missing or exits non-zero aborts the sequence with
:class:`~psmdiag.utils.errors.FallbackComputationFailure`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from psmdiag.config import PsmdConfig
from psmdiag.engines import ExecutionEngine
from psmdiag.tools.fsl import FslTool, fsl_available_script
from psmdiag.tools.psmd import PsmdTool
from psmdiag.utils.errors import FallbackComputationFailure, MissingFile
from psmdiag.utils.mask import adaptive_threshold, mask_collapsed, parse_first_number

from .classify import EngineOutcome, Failure, classify_engine_output
from .integrity import first_b0_index, read_bvals
from .types import EngineMode, SanitizedTables, SubjectFiles

FALLBACK_LOG = "psmd_mode_fm.log"
B0 = "b0"
B0_MASK0 = "b0_mask0"
BRAIN_MASK = "b0_brain_mask"
DTI_PREFIX = "dti"

# Exit status of the availability script when an FSL command is missing.
TOOL_MISSING_RC = 98


def fallback_log_path(subject_dir: Path) -> Path:
    """Return the path of the from-maps PSMD log."""
    return subject_dir / FALLBACK_LOG


def _run_fsl(
    engine: ExecutionEngine,
    cfg: PsmdConfig,
    subject_dir: Path,
    logger: logging.Logger,
    *,
    command: Sequence[str] = (),
    script: str | None = None,
) -> str:
    """Run one FSL step and return its output; raise on non-zero exit."""
    tool = FslTool(
        image=cfg.image,
        subject_dir=subject_dir,
        command=list(command),
        script=script,
        omp_threads=cfg.omp_threads,
    )
    res = tool.execute(engine, on_stdout=logger.info)
    if res.returncode == 0:
        return res.output
    label = command[0] if command else "availability check"
    if script is not None and res.returncode == TOOL_MISSING_RC:
        raise FallbackComputationFailure(res.output.strip() or "FSL tool unavailable")
    raise FallbackComputationFailure(f"{label} exited with {res.returncode}")


def _stat(
    engine: ExecutionEngine,
    cfg: PsmdConfig,
    subject_dir: Path,
    logger: logging.Logger,
    *args: str,
) -> float:
    out = _run_fsl(engine, cfg, subject_dir, logger, command=["fslstats", *args])
    try:
        return parse_first_number(out)
    except ValueError as exc:
        raise FallbackComputationFailure(f"fslstats {' '.join(args)}: {exc}") from exc


def locate_map(subject_dir: Path, suffix: str) -> Path:
    """Return ``dti_<suffix>.nii.gz`` or ``dti_<suffix>.nii``.

    Raises:
        MissingFile: If ``dtifit`` produced neither.
    """
    for ext in (".nii.gz", ".nii"):
        cand = subject_dir / f"{DTI_PREFIX}_{suffix}{ext}"
        if cand.is_file():
            return cand
    raise MissingFile(f"{DTI_PREFIX}_{suffix} not found after fallback")


def build_brain_mask(
    files: SubjectFiles,
    tables: SanitizedTables,
    cfg: PsmdConfig,
    engine: ExecutionEngine,
    logger: logging.Logger,
) -> Path:
    """Extract the first b0 and derive ``b0_brain_mask`` from it."""
    fb = cfg.fallback
    sdir = files.subject_dir

    idx = first_b0_index(read_bvals(tables.bval), fb.b0_max)
    logger.info("first_b0 = %d", idx)

    _run_fsl(engine, cfg, sdir, logger, command=["fslroi", files.nii.name, B0, str(idx), "1"])
    p_low = _stat(engine, cfg, sdir, logger, B0, "-P", f"{fb.p_low:g}")
    p_high = _stat(engine, cfg, sdir, logger, B0, "-P", f"{fb.p_high:g}")
    thr = adaptive_threshold(p_low, p_high, fb.frac)
    logger.info("P%g=%g   P%g=%g   thr=%.6f", fb.p_low, p_low, fb.p_high, p_high, thr)

    _run_fsl(engine, cfg, sdir, logger, command=["fslmaths", B0, "-thr", f"{thr:.6f}", "-bin", B0_MASK0])
    _run_fsl(
        engine, cfg, sdir, logger,
        command=["fslmaths", B0_MASK0, "-dilM", "-ero", "-dilM", BRAIN_MASK],
    )

    voxels = int(_stat(engine, cfg, sdir, logger, BRAIN_MASK, "-V"))
    if mask_collapsed(voxels, fb.min_mask_voxels):
        logger.info(
            "Small mask (%d voxels) → using -thrP %g", voxels, fb.collapse_percentile
        )
        _run_fsl(
            engine, cfg, sdir, logger,
            command=[
                "fslmaths", B0, "-thrP", f"{fb.collapse_percentile:g}",
                "-bin", "-dilM", "-ero", BRAIN_MASK,
            ],
        )
    return sdir / f"{BRAIN_MASK}.nii.gz"


def run_fallback(
    files: SubjectFiles,
    tables: SanitizedTables,
    mask: Path,
    cfg: PsmdConfig,
    engine: ExecutionEngine,
    logger: logging.Logger | None = None,
) -> EngineOutcome:
    """Compute FA/MD maps without skull stripping and run PSMD on them.

    Returns:
        The classified outcome of the from-maps PSMD run.

    Raises:
        FallbackComputationFailure: A tool is unavailable or failed.
        MissingFile: ``dtifit`` did not leave FA/MD maps behind.
    """
    lg = logger or logging.getLogger(__name__)
    sdir = files.subject_dir
    lg.info("---- FALLBACK (b0-threshold → dtifit → PSMD -f/-m) ----")

    _run_fsl(engine, cfg, sdir, lg, script=fsl_available_script(cfg.fallback.tools))
    build_brain_mask(files, tables, cfg, engine, lg)
    _run_fsl(
        engine, cfg, sdir, lg,
        command=[
            "dtifit", "-k", files.nii.name, "-o", DTI_PREFIX, "-m", BRAIN_MASK,
            "-r", tables.bvec.name, "-b", tables.bval.name, "-V",
        ],
    )

    fa = locate_map(sdir, "FA")
    md = locate_map(sdir, "MD")
    lg.info("PSMD (-f/-m): /data/%s | /data/%s", fa.name, md.name)

    tool = PsmdTool(
        image=cfg.image,
        subject_dir=sdir,
        mode=EngineMode.FROM_MAPS,
        mask=mask.name,
        fa=fa.name,
        md=md.name,
        omp_threads=cfg.omp_threads,
    )
    res = tool.execute(engine, on_stdout=lg.info)
    fallback_log_path(sdir).write_text(res.output)

    outcome = classify_engine_output(res.returncode, res.output)
    if isinstance(outcome, Failure):
        lg.info(">> PSMD not obtained in fallback: %s", outcome.reason)
    return outcome
