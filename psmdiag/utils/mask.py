"""Threshold arithmetic for the b0 brain mask used by the fallback.

The image statistics themselves come from ``fslstats`` inside the engine
image; only the decisions taken on those numbers live here.
"""

from __future__ import annotations


def adaptive_threshold(p_low: float, p_high: float, frac: float = 0.20) -> float:
    """Return ``p_low + frac * (p_high - p_low)``.

    With the default robust-range percentiles (P2, P98) this places the
    cut-off a fifth of the way into the intensity range of the b0 volume.
    """
    return p_low + frac * (p_high - p_low)


def mask_collapsed(voxels: int, min_voxels: int = 1000) -> bool:
    """Return ``True`` when a refined mask is too small to be a brain."""
    return voxels < min_voxels


def parse_first_number(text: str) -> float:
    """Return the first whitespace token of *text* that parses as a number.

    ``fslstats`` prints its result on stdout, but login shells in some images
    add banner lines first; those are skipped.

    Raises:
        ValueError: If *text* contains no number.
    """
    for token in text.split():
        try:
            return float(token)
        except ValueError:
            continue
    raise ValueError(f"no number in output: {text.strip()[:80]!r}")
