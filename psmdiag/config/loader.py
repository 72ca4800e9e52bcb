"""
YAML configuration loader.

Search precedence for ``psmd.yaml`` (first match wins)
1. An explicit path argument (``--config`` on the CLI).
2. ``<root>/code/config/psmd.yaml`` – project-local override next to the data.
3. The packaged default shipped inside the wheel.

Inside the document, top-level keys override the ``defaults:`` mapping, and
non-``None`` *overrides* (CLI options and environment variables) override
both. The merged mapping is validated once into a frozen :class:`PsmdConfig`.
"""

from __future__ import annotations

from importlib.resources import as_file, files
from pathlib import Path
from typing import Any, Mapping, Optional

import structlog
import yaml

from .schema import PsmdConfig

log = structlog.get_logger()

_DEFAULT_YAML = files("psmdiag.resources") / "default_psmd.yaml"
_LOCAL_NAME = "psmd.yaml"


def _dataset_local(root: Optional[str | Path], name: str) -> Optional[Path]:
    """Return ``<root>/code/config/<name>`` or *None* if *root* is ``None``."""
    if root is None:
        return None
    return Path(root).expanduser().resolve() / "code" / "config" / name


def _first_existing(*candidates: Optional[Path]) -> Optional[Path]:
    """Return the first path in *candidates* that exists on disk."""
    for p in candidates:
        if p is not None and p.exists():
            return p
    return None


def _load_yaml(path: Path) -> dict:
    """Read a YAML file, returning an empty dict for an empty document."""
    return yaml.safe_load(path.read_text()) or {}


def _merge(data: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict:
    """Flatten ``defaults:`` and apply non-``None`` *overrides*."""
    merged: dict = dict(data.get("defaults") or {})
    merged.update({k: v for k, v in data.items() if k != "defaults"})
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged


def load_config(
    explicit: Optional[str | Path] = None,
    *,
    dataset_root: Optional[str | Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PsmdConfig:
    """Return a validated :class:`PsmdConfig`.

    Args:
        explicit: Path given via ``--config``; must exist when supplied.
        dataset_root: Directory searched for ``code/config/psmd.yaml``.
        overrides: Values taking precedence over the YAML (``None`` entries
            are ignored so unset CLI options do not mask the file).

    Returns:
        A frozen :class:`PsmdConfig`.

    Raises:
        FileNotFoundError: If *explicit* does not exist.
        RuntimeError: When the merged document fails validation.
    """
    explicit_path = Path(explicit).expanduser().resolve() if explicit else None
    if explicit_path is not None and not explicit_path.exists():
        raise FileNotFoundError(f"config file not found: {explicit_path}")

    path = _first_existing(explicit_path, _dataset_local(dataset_root, _LOCAL_NAME))
    if path is None:
        with as_file(_DEFAULT_YAML) as p:
            data = _load_yaml(p)
        source = "packaged"
    else:
        data = _load_yaml(path)
        source = str(path)

    merged = _merge(data, overrides or {})
    try:
        cfg = PsmdConfig(**merged)
    except Exception as exc:  # pydantic.ValidationError or bad YAML types
        raise RuntimeError(f"Invalid configuration – {exc}") from exc
    log.info(
        "config.loaded",
        source=source,
        mode=cfg.mode.value,
        image=cfg.image,
        omp_threads=cfg.omp_threads,
        jobs=cfg.jobs,
    )
    return cfg
