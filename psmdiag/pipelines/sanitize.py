"""Produce cleaned copies of the gradient tables.

Originals are never modified. The copies (``<name>.clean``) have Windows
line endings removed and the b-vector table oriented as 3 rows × N columns,
which is what FSL's ``dtifit`` and the PSMD engine expect.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import List, Tuple

from .types import SanitizedTables, SubjectFiles

_CR_EOL = re.compile(rb"\r$", re.MULTILINE)

CLEAN_SUFFIX = ".clean"


def clean_path(path: Path) -> Path:
    """Return the sanitized-copy path for *path*."""
    return path.with_name(path.name + CLEAN_SUFFIX)


def strip_carriage_returns(path: Path, logger: logging.Logger | None = None) -> bool:
    """Remove trailing ``\\r`` from every line of *path* in place.

    Best effort: an I/O error is logged and swallowed because the engine
    usually copes with CRLF tables and a read-only copy must not abort the
    subject.

    Returns:
        ``True`` when the file was rewritten or already clean.
    """
    lg = logger or logging.getLogger(__name__)
    try:
        data = path.read_bytes()
        cleaned = _CR_EOL.sub(b"", data)
        if cleaned != data:
            path.write_bytes(cleaned)
    except OSError as exc:
        lg.warning("could not strip CR from %s: %s", path.name, exc)
        return False
    return True


def _rows(path: Path) -> List[List[str]]:
    """Return whitespace-split, non-empty lines of *path*."""
    return [line.split() for line in path.read_text().splitlines() if line.strip()]


def table_shape(path: Path) -> Tuple[int, int]:
    """Return ``(lines, columns of the first line)`` of a text table."""
    rows = _rows(path)
    if not rows:
        return 0, 0
    return len(rows), len(rows[0])


def transpose_table(path: Path) -> None:
    """Transpose the whitespace table in *path* in place.

    Tokens are copied verbatim so numeric formatting is preserved. The new
    content is written to a sibling temporary file and moved over *path*.
    """
    rows = _rows(path)
    columns = [" ".join(col) for col in zip(*rows)]
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text("\n".join(columns) + "\n")
    os.replace(tmp, path)


def sanitize_tables(
    files: SubjectFiles, logger: logging.Logger | None = None
) -> SanitizedTables:
    """Copy, clean and orient the gradient tables of one subject.

    Args:
        files: Resolved subject inputs.
        logger: Per-subject diagnostic logger.

    Returns:
        :class:`SanitizedTables` pointing at the ``.clean`` copies.
    """
    lg = logger or logging.getLogger(__name__)
    bval_clean = clean_path(files.bval)
    bvec_clean = clean_path(files.bvec)
    shutil.copyfile(files.bval, bval_clean)
    shutil.copyfile(files.bvec, bvec_clean)
    for p in (bval_clean, bvec_clean):
        strip_carriage_returns(p, lg)

    lines, cols = table_shape(bvec_clean)
    transposed = False
    if lines != 3 and cols == 3:
        lg.info(">> .bvec %d x %d; transposing to 3xN...", lines, cols)
        transpose_table(bvec_clean)
        transposed = True
    return SanitizedTables(bval=bval_clean, bvec=bvec_clean, transposed=transposed)
