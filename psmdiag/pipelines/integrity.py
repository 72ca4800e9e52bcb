"""Cross-check image volumes against the gradient tables.

Nothing here aborts a subject: the report is written to the diagnostic log
and its b-value parsing feeds the b0 index used by the fallback.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import nibabel as nib
import numpy as np
from nibabel.filebasedimages import ImageFileError

from .sanitize import table_shape
from .types import IntegrityReport, SanitizedTables, SubjectFiles

# b-values strictly below this are treated as non-diffusion-weighted.
B0_MAX = 50.0


def read_bvals(path: Path) -> np.ndarray:
    """Return all b-values of *path* as floats.

    Tokens that are not numbers become ``nan`` so they are counted as values
    but never as b0 volumes.
    """
    values = []
    for token in path.read_text().split():
        try:
            values.append(float(token))
        except ValueError:
            values.append(np.nan)
    return np.asarray(values, dtype=float)


def count_b0(bvals: np.ndarray, b0_max: float = B0_MAX) -> int:
    """Return the number of b-values below *b0_max*."""
    return int(np.count_nonzero(bvals < b0_max))


def first_b0_index(bvals: np.ndarray, b0_max: float = B0_MAX) -> int:
    """Return the position of the first b-value below *b0_max*, else 0."""
    hits = np.flatnonzero(bvals < b0_max)
    return int(hits[0]) if hits.size else 0


def image_dim4(path: Path) -> Optional[int]:
    """Return the number of volumes from the image header, ``None`` if unreadable."""
    try:
        shape = nib.load(str(path)).shape
    except (OSError, ValueError, ImageFileError):
        return None
    return int(shape[3]) if len(shape) > 3 else 1


def check_integrity(
    files: SubjectFiles,
    tables: SanitizedTables,
    *,
    b0_max: float = B0_MAX,
    logger: logging.Logger | None = None,
) -> IntegrityReport:
    """Measure the subject's inputs and log the result.

    Args:
        files: Resolved subject inputs (the image is read header-only).
        tables: Sanitized gradient tables.
        b0_max: Threshold below which a b-value counts as b0.
        logger: Per-subject diagnostic logger.

    Returns:
        :class:`IntegrityReport`; mismatches are logged, never raised.
    """
    lg = logger or logging.getLogger(__name__)
    bvals = read_bvals(tables.bval)
    rows, cols = table_shape(tables.bvec)
    report = IntegrityReport(
        dim4=image_dim4(files.nii),
        n_bvals=int(bvals.size),
        bvec_rows=rows,
        bvec_cols=cols,
        n_b0=count_b0(bvals, b0_max),
    )

    lg.info("---- INTEGRITY ----")
    lg.info("NIfTI dim4................: %s", report.dim4 if report.dim4 is not None else "NA")
    lg.info("#bvals....................: %d", report.n_bvals)
    lg.info("bvec lines (expect=3)....: %d", report.bvec_rows)
    lg.info("bvec columns (== dim4)...: %d", report.bvec_cols)
    lg.info("#b0 (b<%g)................: %d", b0_max, report.n_b0)
    for issue in report.mismatches():
        lg.warning("integrity: %s", issue)
    return report
