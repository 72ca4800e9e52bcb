from pathlib import Path

import pytest

from psmdiag.config import PsmdConfig
from psmdiag.pipelines import subject as subject_mod
from psmdiag.pipelines.subject import run_subject
from psmdiag.pipelines.types import EngineMode

from .utils import ABORTED, ScriptedEngine, make_subject


def _diag_text(rec) -> str:
    return Path(rec.diag_log).read_text()


def test_primary_success(tmp_path: Path, cfg: PsmdConfig):
    """Verify a clean primary run never triggers the fallback."""
    sdir = make_subject(tmp_path)
    engine = ScriptedEngine()

    rec = run_subject(sdir, cfg, engine)

    assert rec.method == "primary"
    assert rec.value == pytest.approx(2.45)
    assert rec.mode is EngineMode.PREPROCESSING
    assert engine.kinds() == ["precheck", "psmd-p"]
    assert (sdir / "psmd_mode_p.log").read_text() == engine.primary[1]
    assert (sdir / "psmd_precheck.txt").exists()
    assert (sdir / "dwi_DTI.bval.clean").exists()
    diag = _diag_text(rec)
    assert diag.startswith("==== PSMD Diagnostics ====")
    assert "---- INTEGRITY ----" in diag
    assert "PSMD is 2.45" in diag
    assert "==== End of diagnostics ====" in diag
    assert rec.diag_log.name.startswith("psmd_diag_")


def test_primary_abort_uses_fallback(tmp_path: Path, cfg: PsmdConfig):
    """Verify an aborted primary run falls back to the from-maps value."""
    sdir = make_subject(tmp_path)
    engine = ScriptedEngine(primary=(0, ABORTED))

    rec = run_subject(sdir, cfg, engine)

    assert rec.method == "fallback"
    assert rec.value == pytest.approx(1.98)
    assert engine.kinds()[-1] == "psmd-f"
    assert (sdir / "psmd_mode_fm.log").exists()
    assert "FALLBACK" in _diag_text(rec)


def test_both_fail(tmp_path: Path, cfg: PsmdConfig):
    """Verify a subject whose fallback fails too is reported as ``fail``."""
    sdir = make_subject(tmp_path)
    engine = ScriptedEngine(primary=(1, "boom\n"), from_maps=(0, ABORTED))

    rec = run_subject(sdir, cfg, engine)

    assert rec.method == "fail"
    assert rec.value is None
    assert "primary:" in rec.reason and "fallback:" in rec.reason


def test_missing_dependency_skips_primary(tmp_path: Path, cfg: PsmdConfig):
    """Verify a missing ``bc`` skips the primary run entirely."""
    sdir = make_subject(tmp_path)
    engine = ScriptedEngine(precheck=(0, "NO_BC\n"))

    rec = run_subject(sdir, cfg, engine)

    assert "psmd-p" not in engine.kinds()
    assert rec.method == "fallback"
    assert not (sdir / "psmd_mode_p.log").exists()
    assert "NO_BC" in (sdir / "psmd_precheck.txt").read_text()


def test_direct_mode_and_pp_image(tmp_path: Path):
    """Verify ``-d`` uses the raw image and ``-p`` prefers ``<stem>_pp``."""
    sdir = make_subject(tmp_path)
    (sdir / "dwi_DTI_pp.nii.gz").write_bytes(b"pp")

    engine = ScriptedEngine()
    rec = run_subject(sdir, PsmdConfig(image="i", mode="d"), engine)
    assert rec.primary_log.name == "psmd_mode_d.log"
    assert engine.calls[-1].args[:2] == ["-d", "/data/dwi_DTI.nii.gz"]

    engine = ScriptedEngine()
    run_subject(sdir, PsmdConfig(image="i", mode="p"), engine)
    assert engine.calls[-1].args[:2] == ["-p", "/data/dwi_DTI_pp.nii.gz"]


def test_stale_logs_removed(tmp_path: Path, cfg: PsmdConfig):
    """Verify logs from an earlier run do not survive a new one."""
    sdir = make_subject(tmp_path)
    (sdir / "psmd_mode_fm.log").write_text("PSMD is 9.9\n")
    run_subject(sdir, cfg, ScriptedEngine())
    assert not (sdir / "psmd_mode_fm.log").exists()


def test_unreadable_inputs_fail(tmp_path: Path, cfg: PsmdConfig):
    """Verify a subject without an image yields one ``fail`` record."""
    sdir = make_subject(tmp_path, image=False)
    engine = ScriptedEngine()
    rec = run_subject(sdir, cfg, engine)
    assert rec.method == "fail"
    assert "NIfTI not found" in rec.reason
    assert engine.calls == []
    assert "ERROR:" in _diag_text(rec)


def test_unexpected_exception_is_contained(tmp_path: Path, cfg: PsmdConfig, monkeypatch):
    """Verify programming errors are logged with a traceback, not raised."""
    sdir = make_subject(tmp_path)

    def boom(*args, **kwargs):
        raise KeyError("surprise")

    monkeypatch.setattr(subject_mod, "sanitize_tables", boom)
    rec = run_subject(sdir, cfg, ScriptedEngine())
    assert rec.method == "fail"
    assert "Traceback" in _diag_text(rec)


def test_external_mask_copied(tmp_path: Path, cfg: PsmdConfig):
    """Verify a mask outside the subject folder is copied in and mounted."""
    sdir = make_subject(tmp_path / "subjects", mask=False)
    ext = tmp_path / "masks" / "custom_mask.nii.gz"
    ext.parent.mkdir()
    ext.write_bytes(b"m")
    engine = ScriptedEngine()

    run_subject(sdir, cfg, engine, mask_override=ext)

    assert (sdir / "custom_mask.nii.gz").read_bytes() == b"m"
    args = engine.calls[-1].args
    assert args[args.index("-s") + 1] == "/data/custom_mask.nii.gz"
