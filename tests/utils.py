"""Test helpers for psmdiag modules."""

from __future__ import annotations

import shlex
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

import nibabel as nib
import numpy as np

from psmdiag.engines import EngineResult, ExecutionEngine

PRIMARY_OK = "Processing...\nPSMD is 2.45\n"
FALLBACK_OK = "Reading maps\nPSMD is 1.98\n"
ABORTED = "Starting\nAborted (core dumped)\n"


def make_subject(
    root: Path,
    name: str = "sub-01",
    *,
    n_vols: int = 4,
    bvals: str = "0 1000 1000 1000",
    bvec_rows: Optional[Sequence[str]] = None,
    image: bool = True,
    mask: bool = True,
    stem: str = "dwi_DTI",
) -> Path:
    """Create a minimal subject folder.

    Args:
        root: Parent directory.
        name: Subject folder name.
        n_vols: Number of volumes of the generated 4D image.
        bvals: Content of the ``.bval`` file.
        bvec_rows: Lines of the ``.bvec`` file; three rows of zeros by default.
        image: Write ``<stem>.nii.gz`` when ``True``.
        mask: Place a skeleton mask in the folder so nothing is downloaded.
        stem: Base name shared by the image and the gradient tables.

    Returns:
        Path to the subject folder.
    """
    sdir = root / name
    sdir.mkdir(parents=True, exist_ok=True)
    if image:
        img = nib.Nifti1Image(np.zeros((2, 2, 2, n_vols), dtype="float32"), np.eye(4))
        img.to_filename(sdir / f"{stem}.nii.gz")
    (sdir / f"{stem}.bval").write_text(bvals + "\n")
    if bvec_rows is None:
        n = len(bvals.split())
        bvec_rows = [" ".join(["0"] * n)] * 3
    (sdir / f"{stem}.bvec").write_text("\n".join(bvec_rows) + "\n")
    if mask:
        (sdir / "skeleton_mask_2019.nii.gz").write_bytes(b"mask")
    return sdir


@dataclass
class Call:
    """One recorded :meth:`ScriptedEngine.run` invocation."""

    image: str
    args: list[str]
    volumes: dict[str, str]
    env: dict[str, str]
    entrypoint: str | None
    workdir: str | None

    @property
    def host_dir(self) -> Path | None:
        for host, guest in self.volumes.items():
            if guest == "/data":
                return Path(host)
        return None

    @property
    def kind(self) -> str:
        """``precheck``, ``fsl-check``, the FSL command, or ``psmd<flag>``."""
        if self.entrypoint == "bash":
            body = self.args[1]
            if "NO_" in body:
                return "precheck"
            if "exit 98" in body:
                return "fsl-check"
            return shlex.split(body)[0]
        return "psmd" + self.args[0]

    @property
    def command(self) -> list[str]:
        """FSL command vector of a ``bash -lc`` call."""
        return shlex.split(self.args[1])


@dataclass
class ScriptedEngine(ExecutionEngine):
    """In-memory engine that simulates the PSMD image.

    FSL commands create the files they would produce inside the mounted
    subject folder. Responses can be overridden per call kind with
    *responses* (``kind -> (returncode, output)``) or by a callable.
    """

    primary: tuple[int, str] = (0, PRIMARY_OK)
    from_maps: tuple[int, str] = (0, FALLBACK_OK)
    precheck: tuple[int, str] = (0, "")
    p_low: str = "100.000000"
    p_high: str = "1100.000000"
    voxels: str = "50000 400000.000000"
    responses: dict[str, tuple[int, str]] = field(default_factory=dict)
    hook: Optional[Callable[[Call], Optional[tuple[int, str]]]] = None
    delay: float = 0.0
    calls: list[Call] = field(default_factory=list)
    active: int = 0
    max_active: int = 0

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    def kinds(self) -> list[str]:
        return [c.kind for c in self.calls]

    def _default(self, call: Call) -> tuple[int, str]:
        kind = call.kind
        if kind == "precheck":
            return self.precheck
        if kind == "fsl-check":
            return 0, ""
        if kind == "psmd-f":
            return self.from_maps
        if kind.startswith("psmd"):
            return self.primary

        cmd = call.command
        sdir = call.host_dir
        if kind == "fslroi":
            (sdir / f"{cmd[2]}.nii.gz").write_bytes(b"b0")
        elif kind == "fslmaths":
            (sdir / f"{cmd[-1]}.nii.gz").write_bytes(b"mask")
        elif kind == "fslstats":
            if "-V" in cmd:
                return 0, self.voxels + "\n"
            pct = cmd[cmd.index("-P") + 1]
            return 0, (self.p_low if float(pct) < 50 else self.p_high) + "\n"
        elif kind == "dtifit":
            out = cmd[cmd.index("-o") + 1]
            for suffix in ("FA", "MD", "V1"):
                (sdir / f"{out}_{suffix}.nii.gz").write_bytes(b"map")
        return 0, ""

    def run(
        self,
        image: str,
        args: Sequence[str],
        *,
        volumes: Mapping[str, str],
        env: Mapping[str, str],
        entrypoint: str | None = None,
        workdir: str | None = None,
        on_stdout=None,
    ) -> EngineResult:
        call = Call(image, list(args), dict(volumes), dict(env), entrypoint, workdir)
        with self._lock:
            self.calls.append(call)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            result = self.hook(call) if self.hook else None
            if result is None:
                result = self.responses.get(call.kind) or self._default(call)
            rc, out = result
            if on_stdout:
                for line in out.splitlines():
                    on_stdout(line)
            return EngineResult(rc, out)
        finally:
            with self._lock:
                self.active -= 1
