from pathlib import Path

import pandas as pd
import pytest
from click.testing import CliRunner

import psmdiag.cli as cli_mod
from psmdiag.cli import main as cli_main
from psmdiag.utils.errors import EngineUnavailable

from .utils import ABORTED, ScriptedEngine, make_subject


@pytest.fixture
def engine(monkeypatch):
    """Replace Docker pre-flight and the engine with in-memory fakes.

    Returns:
        The :class:`ScriptedEngine` the CLI will use.
    """
    eng = ScriptedEngine()
    seen: dict = {}

    def fake_setup_logging(**kwargs):
        seen["logging"] = kwargs

    def fake_ensure(image, *, pull=True):
        seen["image"] = image
        return True

    monkeypatch.setattr(cli_mod, "setup_logging", fake_setup_logging)
    monkeypatch.setattr(cli_mod, "require_docker", lambda: "/usr/bin/docker")
    monkeypatch.setattr(cli_mod, "ensure_image", fake_ensure)
    monkeypatch.setattr(cli_mod, "detect_platform", lambda image: None)
    monkeypatch.setattr(cli_mod, "DockerEngine", lambda platform=None: eng)
    eng.seen = seen
    return eng


def test_single_subject(tmp_path: Path, engine):
    """Verify single-subject mode prints the outcome and exits 0."""
    sdir = make_subject(tmp_path)
    res = CliRunner().invoke(cli_main, [str(sdir)])
    assert res.exit_code == 0, res.output
    assert "method=primary psmd=2.45" in res.output
    assert not (tmp_path / "psmd_results.csv").exists()


def test_single_subject_failure_still_exits_zero(tmp_path: Path, engine):
    """Verify a failed subject does not change the exit status."""
    sdir = make_subject(tmp_path)
    engine.primary = (0, ABORTED)
    engine.from_maps = (0, ABORTED)
    res = CliRunner().invoke(cli_main, [str(sdir)])
    assert res.exit_code == 0
    assert "method=fail" in res.output


def test_batch_with_env(tmp_path: Path, engine):
    """Verify batch mode writes the CSV and honours environment variables."""
    for name in ("s1", "s2", "s3"):
        make_subject(tmp_path, name)

    def hook(call):
        if call.kind == "psmd-d" and call.host_dir.name == "s2":
            return 0, ABORTED
        if call.kind == "psmd-f" and call.host_dir.name == "s3":
            return 0, ABORTED
        if call.kind == "psmd-d" and call.host_dir.name == "s3":
            return 1, ""
        return None

    engine.hook = hook
    res = CliRunner().invoke(
        cli_main,
        [str(tmp_path)],
        env={"PSMD_MODE": "d", "JOBS": "2", "PSMD_IMAGE": "psmd:env"},
    )
    assert res.exit_code == 0, res.output
    assert engine.seen["image"] == "psmd:env"
    assert "Total success........: 2 / 3" in res.output
    assert "via fallback.....: 1" in res.output
    assert "Failures............: 1" in res.output

    df = pd.read_csv(tmp_path / "psmd_results.csv")
    assert df["method"].tolist() == ["primary", "fallback", "fail"]
    assert df["mode"].unique().tolist() == ["direct"]
    assert all(c.image == "psmd:env" for c in engine.calls)


def test_mask_argument(tmp_path: Path, engine):
    """Verify the optional MASK argument reaches the engine call."""
    sdir = make_subject(tmp_path / "data", mask=False)
    mask = tmp_path / "my_mask.nii.gz"
    mask.write_bytes(b"m")
    res = CliRunner().invoke(cli_main, [str(sdir), str(mask)])
    assert res.exit_code == 0, res.output
    args = engine.calls[-1].args
    assert args[args.index("-s") + 1] == "/data/my_mask.nii.gz"


def test_preflight_errors(tmp_path: Path, engine, monkeypatch):
    """Verify pre-flight problems produce a non-zero exit."""
    runner = CliRunner()
    res = runner.invoke(cli_main, [str(tmp_path / "missing")])
    assert res.exit_code != 0
    assert "directory not found" in res.output

    (tmp_path / "empty").mkdir()
    res = runner.invoke(cli_main, [str(tmp_path)])
    assert res.exit_code != 0
    assert "no valid subjects" in res.output

    def no_docker():
        raise EngineUnavailable("required command not found: docker")

    monkeypatch.setattr(cli_mod, "require_docker", no_docker)
    res = runner.invoke(cli_main, [str(make_subject(tmp_path))])
    assert res.exit_code != 0
    assert "docker" in res.output


def test_options_and_logging_flags(tmp_path: Path, engine):
    """Verify CLI options override the configuration and reach logging."""
    sdir = make_subject(tmp_path)
    log_file = tmp_path / "run.txt"
    res = CliRunner().invoke(
        cli_main,
        [str(sdir), "--mode", "direct", "--omp-threads", "3", "-v", "--save-logfile", str(log_file)],
    )
    assert res.exit_code == 0, res.output
    assert engine.kinds() == ["precheck", "psmd-d"]
    assert engine.calls[-1].env["OMP_NUM_THREADS"] == "3"
    assert engine.seen["logging"]["verbose"] is True
    assert engine.seen["logging"]["extra_text_log"] == log_file


def test_version():
    """Verify ``--version`` works without a target."""
    res = CliRunner().invoke(cli_main, ["--version"])
    assert res.exit_code == 0
