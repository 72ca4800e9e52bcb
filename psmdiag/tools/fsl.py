"""Generic wrapper for FSL commands run inside the engine image."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .base import DATA_MOUNT, Tool, ToolSpec, base_env


def fsl_available_script(commands: Sequence[str]) -> str:
    """Return a shell snippet that exits 98 when any of *commands* is missing."""
    checks = [
        f'command -v {shlex.quote(c)} >/dev/null || {{ echo "ERROR: {c} unavailable in container"; exit 98; }}'
        for c in commands
    ]
    return "\n".join(checks)


@dataclass
class FslTool(Tool):
    """Run one FSL command (or a small script) against a subject directory.

    The command is executed through a login shell so the image's FSL
    environment is sourced, with the subject directory mounted at ``/data``
    and used as the working directory. Outputs are written as ``.nii.gz``.
    """

    image: str
    subject_dir: Path
    command: Sequence[str] = field(default_factory=list)
    script: str | None = None
    omp_threads: int = 1

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the container specification for the configured command."""
        if self.script is None and not self.command:
            raise ValueError("FslTool needs a command or a script")
        body = self.script if self.script is not None else shlex.join(
            [str(c) for c in self.command]
        )
        env = base_env(self.omp_threads)
        env["FSLOUTPUTTYPE"] = "NIFTI_GZ"
        return ToolSpec(
            self.image,
            ["-lc", body],
            {str(self.subject_dir): DATA_MOUNT},
            env,
            entrypoint="bash",
            workdir=DATA_MOUNT,
        )
