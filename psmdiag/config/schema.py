"""
Pydantic models mirroring ``psmd.yaml``.

The configuration is built once at start-up and handed to every stage; both
models are frozen so no stage can change behaviour for its siblings during a
parallel batch.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator

from psmdiag.pipelines.types import EngineMode

DEFAULT_IMAGE = "ghcr.io/miac-research/psmd:latest"
DEFAULT_MASK_NAME = "skeleton_mask_2019.nii.gz"
DEFAULT_MASK_URL = (
    "https://raw.githubusercontent.com/miac-research/psmd/main/skeleton_mask_2019.nii.gz"
)


class FallbackConfig(BaseModel, frozen=True):
    """Heuristics of the b0-threshold → dtifit fallback.

    Attributes:
        b0_max: b-values strictly below this count as b0.
        p_low: Lower robust percentile of the b0 intensities.
        p_high: Upper robust percentile of the b0 intensities.
        frac: Fraction of the ``p_high - p_low`` range added to ``p_low``.
        min_mask_voxels: Refined masks smaller than this count as collapsed.
        collapse_percentile: ``fslmaths -thrP`` value used after a collapse.
    """

    b0_max: float = 50.0
    p_low: float = 2.0
    p_high: float = 98.0
    frac: float = 0.20
    min_mask_voxels: int = 1000
    collapse_percentile: float = 10.0
    tools: List[str] = Field(default_factory=lambda: ["fslroi", "fslmaths", "fslstats", "dtifit"])


class PsmdConfig(BaseModel, frozen=True):
    """Root configuration consumed by the pipelines and the CLI.

    Attributes:
        mode: Primary engine mode (``direct`` or ``preprocessing``).
        image: PSMD container image.
        omp_threads: ``OMP_NUM_THREADS`` inside the container.
        jobs: Maximum number of subjects processed at the same time.
        mask_name: File name of the skeleton mask inside subject folders.
        mask_url: Remote location of the default skeleton mask.
        primary_requires: Commands the primary modes need inside the image.
        pull_missing_image: Pull the image when it is not available locally.
        fallback: :class:`FallbackConfig`.
    """

    mode: EngineMode = EngineMode.PREPROCESSING
    image: str = DEFAULT_IMAGE
    omp_threads: int = 1
    jobs: int = 1
    mask_name: str = DEFAULT_MASK_NAME
    mask_url: str = DEFAULT_MASK_URL
    primary_requires: List[str] = Field(default_factory=lambda: ["bc"])
    pull_missing_image: bool = True
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value):
        """Accept ``d``/``p`` as well as full names; reject ``from-maps``."""
        mode = EngineMode.parse(value)
        if mode is EngineMode.FROM_MAPS:
            raise ValueError("from-maps is reserved for the fallback")
        return mode

    @field_validator("jobs", "omp_threads", mode="before")
    @classmethod
    def _at_least_one(cls, value):
        """Clamp counts to ``>= 1``."""
        return max(1, int(value))
