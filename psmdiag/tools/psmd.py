"""Tool wrappers for the PSMD engine and its dependency precheck."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from psmdiag.pipelines.types import EngineMode

from .base import DATA_MOUNT, Tool, ToolSpec, base_env

# PSMD writes temporary files into its working directory; the mounted input
# directory is not always writable for the container user.
SCRATCH_DIR = "/tmp"


def _guest(name: str | None) -> str:
    """Return the container path for a file living in the subject directory."""
    return f"{DATA_MOUNT}/{name}"


@dataclass
class PsmdTool(Tool):
    """Build a container spec for one PSMD invocation.

    ``direct`` and ``preprocessing`` modes take a diffusion image plus the
    sanitized b-value/b-vector tables; ``from-maps`` takes FA and MD maps.
    All names are basenames relative to *subject_dir*.
    """

    image: str
    subject_dir: Path
    mode: EngineMode
    mask: str
    dwi: str | None = None
    bval: str | None = None
    bvec: str | None = None
    fa: str | None = None
    md: str | None = None
    omp_threads: int = 1
    extra_args: Sequence[str] = field(default_factory=lambda: ["-v", "-t"])

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the container spec for PSMD in the configured mode."""
        if self.mode is EngineMode.FROM_MAPS:
            if not (self.fa and self.md):
                raise ValueError("from-maps mode requires fa and md")
            args = ["-f", _guest(self.fa), "-m", _guest(self.md)]
        else:
            if not (self.dwi and self.bval and self.bvec):
                raise ValueError(f"{self.mode.value} mode requires dwi, bval and bvec")
            args = [
                self.mode.flag,
                _guest(self.dwi),
                "-b",
                _guest(self.bval),
                "-r",
                _guest(self.bvec),
            ]
        args += ["-s", _guest(self.mask), *self.extra_args]
        return ToolSpec(
            self.image,
            args,
            {str(self.subject_dir): DATA_MOUNT},
            base_env(self.omp_threads),
            workdir=SCRATCH_DIR,
        )


@dataclass
class PrecheckTool(Tool):
    """Probe the image for commands the primary PSMD modes depend on.

    Prints ``NO_<CMD>`` for every missing command and always exits 0.
    """

    image: str
    commands: Sequence[str] = field(default_factory=lambda: ["bc"])

    def script(self) -> str:
        """Return the probing shell snippet."""
        lines = [
            f"command -v {shlex.quote(c)} >/dev/null || echo NO_{c.upper()}"
            for c in self.commands
        ]
        lines.append("true")
        return "\n".join(lines)

    def build_spec(self) -> ToolSpec:  # type: ignore[override]
        """Return the container spec for the dependency probe."""
        return ToolSpec(self.image, ["-lc", self.script()], {}, {}, entrypoint="bash")


def missing_from_precheck(output: str) -> list[str]:
    """Return command names reported missing by :class:`PrecheckTool`."""
    return [
        line.strip()[3:].lower()
        for line in output.splitlines()
        if line.strip().startswith("NO_")
    ]
