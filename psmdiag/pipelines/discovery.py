"""Locate the gradient tables and diffusion image of a subject directory.

The search is purely name based:

* b-values: first lexicographic ``*DTI*.bval``, else first ``*.bval``;
* b-vectors: the same stem with ``.bvec``;
* image: the sibling of the b-value file, then ``*dti*`` images, then any
  image, compressed before uncompressed at every step.

Exporters such as dcm2niix sometimes write ``name.nii.bval`` next to
``name.nii``; a naive glob would then happily treat metadata as the image,
so every candidate whose name still ends in ``.bval``/``.bvec`` is rejected.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Optional

import structlog

from psmdiag.utils.errors import MissingFile, NiftiNotFound, NoValidSubjects

from .types import SubjectFiles

log = structlog.get_logger()

_BVAL_PATTERNS = ("*DTI*.bval", "*.bval")
_IMAGE_EXTS = (".nii.gz", ".nii")
_META_SUFFIXES = (".bval", ".bvec")
_DTI_RE = re.compile(r"dti", re.IGNORECASE)

# Files this package writes into subject directories; never mistake them for
# the raw series when falling back to the generic image pattern.
_DERIVED_PREFIXES = ("b0", "dti_", "skeleton_mask")


def _is_image(path: Path) -> bool:
    """Return ``True`` for an existing NIfTI file that is not a metadata twin."""
    name = path.name
    if name.endswith(_META_SUFFIXES):
        return False
    return name.endswith(_IMAGE_EXTS) and path.is_file()


def _first(paths: Iterable[Path]) -> Optional[Path]:
    """Return the first valid image among *paths*."""
    for p in paths:
        if _is_image(p):
            return p
    return None


def find_bval(subject_dir: Path) -> Optional[Path]:
    """Return the preferred ``.bval`` file in *subject_dir* or ``None``."""
    for pattern in _BVAL_PATTERNS:
        hits = sorted(p for p in subject_dir.glob(pattern) if p.is_file())
        if hits:
            return hits[0]
    return None


def bvec_for(bval: Path) -> Path:
    """Return the ``.bvec`` path that pairs with *bval*."""
    return bval.with_name(bval.name[: -len(".bval")] + ".bvec")


def _sibling_candidates(bval: Path) -> List[Path]:
    """Candidates derived from the b-value name (``x.bval`` / ``x.nii.bval``)."""
    stem = bval.name[: -len(".bval")]
    if stem.endswith("."):
        stem = stem[:-1]
    if stem.endswith(".nii"):
        stem = stem[: -len(".nii")]
    return [bval.with_name(stem + ext) for ext in _IMAGE_EXTS]


def _pattern_candidates(subject_dir: Path, *, dti_only: bool) -> List[Path]:
    """Image candidates found by globbing, compressed before uncompressed."""
    out: List[Path] = []
    for ext in _IMAGE_EXTS:
        hits = sorted(subject_dir.glob(f"*{ext}"))
        for p in hits:
            if dti_only and not _DTI_RE.search(p.name):
                continue
            if not dti_only and p.name.startswith(_DERIVED_PREFIXES):
                continue
            out.append(p)
    return out


def find_image(subject_dir: Path, bval: Path) -> Optional[Path]:
    """Return the diffusion image for *bval* or ``None`` when nothing is valid."""
    return (
        _first(_sibling_candidates(bval))
        or _first(_pattern_candidates(subject_dir, dti_only=True))
        or _first(_pattern_candidates(subject_dir, dti_only=False))
    )


def resolve_subject_files(subject_dir: Path) -> SubjectFiles:
    """Resolve the ``(bval, bvec, image)`` triplet of *subject_dir*.

    Args:
        subject_dir: Directory holding one subject's raw diffusion data.

    Returns:
        :class:`SubjectFiles` with absolute paths.

    Raises:
        MissingFile: If no ``.bval`` or no matching ``.bvec`` exists.
        NiftiNotFound: If no image distinguishable from metadata exists.
    """
    subject_dir = Path(subject_dir).expanduser().resolve()
    bval = find_bval(subject_dir)
    if bval is None:
        raise MissingFile(f".bval not found in {subject_dir}")
    bvec = bvec_for(bval)
    if not bvec.is_file():
        raise MissingFile(f"corresponding .bvec not found: {bvec}")
    nii = find_image(subject_dir, bval)
    if nii is None:
        raise NiftiNotFound(
            f"NIfTI not found in {subject_dir} (avoided *.nii.bval/*.nii.bvec)"
        )
    return SubjectFiles(subject_dir=subject_dir, bval=bval, bvec=bvec, nii=nii)


def is_subject_dir(path: Path) -> bool:
    """Return ``True`` when *path* resolves as a subject without raising."""
    path = Path(path)
    if not path.is_dir():
        return False
    try:
        resolve_subject_files(path)
    except MissingFile:
        return False
    return True


def discover_subjects(root: Path) -> List[Path]:
    """Return valid immediate subject directories of *root*, sorted by name.

    Raises:
        NoValidSubjects: If none of the subdirectories resolves.
    """
    root = Path(root).expanduser().resolve()
    candidates = sorted(p for p in root.iterdir() if p.is_dir())
    valid = [p for p in candidates if is_subject_dir(p)]
    skipped = [p.name for p in candidates if p not in valid]
    if skipped:
        log.info("discovery.skipped", root=str(root), dirs=skipped)
    if not valid:
        raise NoValidSubjects(f"no valid subjects in: {root}")
    log.info("discovery.subjects", root=str(root), count=len(valid))
    return valid
