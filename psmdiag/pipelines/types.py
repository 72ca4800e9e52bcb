"""
Typed, immutable value objects that circulate between pipeline stages.

The module depends only on the Python standard library and *pydantic* so it
can be imported by the tool wrappers and the configuration schema without
pulling in the scientific stack.

Every model inherits from :class:`pydantic.BaseModel` with ``frozen=True``
so records cannot be mutated once a stage has produced them.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel

Method = Literal["primary", "fallback", "fail"]


class EngineMode(str, Enum):
    """PSMD invocation modes and their command-line flags."""

    DIRECT = "direct"
    PREPROCESSING = "preprocessing"
    FROM_MAPS = "from-maps"

    @property
    def short(self) -> str:
        """Suffix used in log names (``psmd_mode_<short>.log``)."""
        return {"direct": "d", "preprocessing": "p", "from-maps": "fm"}[self.value]

    @property
    def flag(self) -> str:
        """Primary command-line flag passed to the engine."""
        return {"direct": "-d", "preprocessing": "-p", "from-maps": "-f"}[self.value]

    @classmethod
    def parse(cls, value: "str | EngineMode") -> "EngineMode":
        """Accept full names as well as the historical ``d`` / ``p`` letters."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().lstrip("-")
        aliases = {"d": cls.DIRECT, "p": cls.PREPROCESSING, "fm": cls.FROM_MAPS}
        if text in aliases:
            return aliases[text]
        return cls(text)


class SubjectState(str, Enum):
    """States of the per-subject primary/fallback state machine."""

    INIT = "init"
    INTEGRITY_CHECKED = "integrity_checked"
    PRIMARY_ATTEMPTED = "primary_attempted"
    PRIMARY_SUCCEEDED = "primary_succeeded"
    PRIMARY_FAILED = "primary_failed"
    FALLBACK_ATTEMPTED = "fallback_attempted"
    FALLBACK_SUCCEEDED = "fallback_succeeded"
    FALLBACK_FAILED = "fallback_failed"
    DONE = "done"


class SubjectFiles(BaseModel, frozen=True):
    """Resolved inputs of one subject directory.

    Attributes
    ----------
    subject_dir
        Absolute subject directory; every derived file is written here.
    bval, bvec
        Original gradient tables.
    nii
        4D diffusion image (``.nii.gz`` or ``.nii``).
    """

    subject_dir: Path
    bval: Path
    bvec: Path
    nii: Path


class SanitizedTables(BaseModel, frozen=True):
    """Cleaned copies of the gradient tables (``<name>.clean``)."""

    bval: Path
    bvec: Path
    transposed: bool = False


class IntegrityReport(BaseModel, frozen=True):
    """Shape and count measurements taken before any engine run."""

    dim4: Optional[int]
    n_bvals: int
    bvec_rows: int
    bvec_cols: int
    n_b0: int

    def mismatches(self) -> list[str]:
        """Return informational problems; an empty list means consistent."""
        issues: list[str] = []
        if self.bvec_rows != 3:
            issues.append(f"bvec has {self.bvec_rows} lines (expected 3)")
        if self.bvec_cols != self.n_bvals:
            issues.append(
                f"bvec columns ({self.bvec_cols}) != number of bvals ({self.n_bvals})"
            )
        if self.dim4 is None:
            issues.append("could not read dim4 from the image header")
        elif self.dim4 != self.n_bvals:
            issues.append(f"image dim4 ({self.dim4}) != number of bvals ({self.n_bvals})")
        if self.n_b0 == 0:
            issues.append("no b0 volume (b<50) found")
        return issues


class OutcomeRecord(BaseModel, frozen=True):
    """Final, immutable result of one subject pipeline."""

    subject: str
    subject_dir: Path
    mode: EngineMode
    method: Method
    value: Optional[float] = None
    primary_log: Path
    fallback_log: Path
    diag_log: Optional[Path] = None
    reason: Optional[str] = None
