"""Execution back-ends for running the containerised PSMD engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class EngineResult:
    """Exit status plus the combined stdout/stderr text of one invocation."""

    returncode: int
    output: str


class ExecutionEngine(ABC):
    """Abstract execution engine.

    Concrete implementations launch one operating-system process per call
    and block the calling thread until it exits. The interface is shared by
    the dependency precheck, the primary PSMD run, every FSL step of the
    fallback and the from-maps PSMD run, so all of them go through one code
    path.
    """

    @abstractmethod
    def run(
        self,
        image: str,
        args: Sequence[str],
        *,
        volumes: Mapping[str, str],
        env: Mapping[str, str],
        entrypoint: str | None = None,
        workdir: str | None = None,
        on_stdout: Optional[Callable[[str], None]] = None,
    ) -> EngineResult:
        """Run *image* with *args*.

        Args:
            image: Container image identifier.
            args: Command line arguments passed to the image.
            volumes: Mapping of host paths → guest mount points.
            env: Environment variables visible inside the container.
            entrypoint: Optional process entrypoint overriding the image default.
            workdir: Working directory inside the container.
            on_stdout: Callback receiving each output line as it arrives.

        Returns:
            :class:`EngineResult`; a non-zero status is reported, not raised.
        """
        raise NotImplementedError
