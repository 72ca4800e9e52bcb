"""Base classes for containerised tools."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from psmdiag.engines import EngineResult, ExecutionEngine

# Mount point of the subject directory inside every container.
DATA_MOUNT = "/data"


@dataclass
class ToolSpec:
    """Specification returned by :class:`Tool.build_spec`.

    Attributes mirror the arguments of :func:`ExecutionEngine.run` for
    convenience.
    """

    image: str
    args: Sequence[str]
    volumes: Mapping[str, str]
    env: Mapping[str, str]
    entrypoint: str | None = None
    workdir: str | None = None


def base_env(omp_threads: int) -> dict[str, str]:
    """Environment shared by every call into the engine image."""
    return {"OMP_NUM_THREADS": str(omp_threads), "LC_ALL": "C.UTF-8"}


class Tool:
    """Base class for wrappers around external utilities."""

    def execute(
        self,
        engine: ExecutionEngine,
        on_stdout: Optional[Callable[[str], None]] = None,
    ) -> EngineResult:
        """Build a :class:`ToolSpec` and execute it with *engine*."""
        spec = self.build_spec()
        return engine.run(
            spec.image,
            spec.args,
            volumes=spec.volumes,
            env=spec.env,
            entrypoint=spec.entrypoint,
            workdir=spec.workdir,
            on_stdout=on_stdout,
        )

    def build_spec(self) -> ToolSpec:
        """Return a :class:`ToolSpec` describing how to run this tool."""
        raise NotImplementedError
