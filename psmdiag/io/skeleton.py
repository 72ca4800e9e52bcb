"""Provide the skeleton mask each subject's PSMD run is restricted to.

Resolution order for one subject:

1. an explicit override path (copied into the subject folder when it lives
   elsewhere, because only the subject folder is mounted in the container;
   a different file of the same name there is never overwritten);
2. ``<subject>/<mask_name>`` already present;
3. ``<parent>/<mask_name>`` shared by a batch, copied in;
4. download from the configured URL.
"""

from __future__ import annotations

import filecmp
import logging
import shutil
from pathlib import Path
from typing import Optional

import requests

from psmdiag.utils.errors import MaskAcquisitionFailure

_CHUNK = 1 << 16


def download_mask(dst: Path, url: str, *, timeout: float = 60.0) -> Path:
    """Fetch the default skeleton mask from *url* into *dst*.

    The payload is streamed into ``<dst>.part`` and renamed on success so an
    interrupted download never leaves a truncated mask behind.

    Raises:
        MaskAcquisitionFailure: On any network or HTTP error.
    """
    part = dst.with_name(dst.name + ".part")
    try:
        with requests.get(url, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            with part.open("wb") as fh:
                for chunk in resp.iter_content(chunk_size=_CHUNK):
                    if chunk:
                        fh.write(chunk)
    except (requests.RequestException, OSError) as exc:
        part.unlink(missing_ok=True)
        raise MaskAcquisitionFailure(f"could not obtain mask from {url}: {exc}") from exc
    part.replace(dst)
    return dst


def acquire_mask(
    subject_dir: Path,
    *,
    mask_name: str,
    mask_url: str,
    override: Optional[Path] = None,
    logger: logging.Logger | None = None,
) -> Path:
    """Return a skeleton mask located inside *subject_dir*.

    Args:
        subject_dir: Subject folder (mounted as ``/data`` for the engine).
        mask_name: File name used for inherited or downloaded masks.
        mask_url: Remote default used as the last resort.
        override: Mask supplied on the command line.
        logger: Per-subject diagnostic logger.

    Raises:
        MaskAcquisitionFailure: If the override is missing or every source fails.
    """
    lg = logger or logging.getLogger(__name__)

    if override is not None:
        src = Path(override).expanduser().resolve()
        if not src.is_file():
            raise MaskAcquisitionFailure(f"mask override not found: {src}")
        if src.parent == Path(subject_dir).resolve():
            return src
        dst = Path(subject_dir) / src.name
        if dst.exists():
            if dst.is_file() and filecmp.cmp(src, dst, shallow=False):
                lg.info(">> Mask override already present: %s", dst.name)
                return dst
            raise MaskAcquisitionFailure(
                f"refusing to overwrite {dst} with mask override {src}"
            )
        shutil.copyfile(src, dst)
        lg.info(">> Copied mask override into subject folder: %s", dst.name)
        return dst

    dst = subject_dir / mask_name
    if dst.is_file():
        return dst

    shared = subject_dir.parent / mask_name
    if shared.is_file():
        shutil.copyfile(shared, dst)
        lg.info(">> Using shared mask from %s", shared)
        return dst

    lg.info(">> Downloading mask to: %s", dst)
    return download_mask(dst, mask_url)
