from pathlib import Path

import pytest

from psmdiag import load_config
from psmdiag.config import PsmdConfig
from psmdiag.pipelines.types import EngineMode


def test_packaged_defaults():
    """Verify the packaged YAML matches the documented defaults."""
    cfg = load_config()
    assert cfg.mode is EngineMode.PREPROCESSING
    assert cfg.image == "ghcr.io/miac-research/psmd:latest"
    assert cfg.jobs == 1 and cfg.omp_threads == 1
    assert cfg.mask_name == "skeleton_mask_2019.nii.gz"
    assert cfg.primary_requires == ["bc"]
    assert cfg.fallback.min_mask_voxels == 1000
    assert cfg.fallback.frac == pytest.approx(0.20)


def test_dataset_local_yaml(tmp_path: Path):
    """Verify ``<root>/code/config/psmd.yaml`` is picked up."""
    cfg_dir = tmp_path / "code" / "config"
    cfg_dir.mkdir(parents=True)
    (cfg_dir / "psmd.yaml").write_text(
        "image: local:1\ndefaults:\n  mode: d\n  jobs: 3\n  fallback:\n    frac: 0.3\n"
    )
    cfg = load_config(dataset_root=tmp_path)
    assert cfg.image == "local:1"
    assert cfg.mode is EngineMode.DIRECT
    assert cfg.jobs == 3
    assert cfg.fallback.frac == pytest.approx(0.3)


def test_overrides_win(tmp_path: Path):
    """Verify non-None overrides replace YAML values."""
    path = tmp_path / "x.yaml"
    path.write_text("defaults:\n  mode: preprocessing\n  jobs: 4\n")
    cfg = load_config(path, overrides={"mode": "direct", "jobs": None, "image": "o:1"})
    assert cfg.mode is EngineMode.DIRECT
    assert cfg.jobs == 4
    assert cfg.image == "o:1"


def test_counts_clamped_and_modes_validated():
    """Verify counts are clamped to one and from-maps is rejected."""
    cfg = PsmdConfig(jobs=0, omp_threads=-2)
    assert (cfg.jobs, cfg.omp_threads) == (1, 1)
    assert PsmdConfig(mode="-p").mode is EngineMode.PREPROCESSING
    with pytest.raises(ValueError):
        PsmdConfig(mode="from-maps")


def test_invalid_config(tmp_path: Path):
    """Verify bad values and missing files are reported."""
    bad = tmp_path / "bad.yaml"
    bad.write_text("mode: sideways\n")
    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_config(bad)
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
