"""Docker execution engine."""

from __future__ import annotations

from typing import Callable, Mapping, Optional, Sequence

import structlog

from psmdiag.utils import proc
from psmdiag.utils.errors import EngineUnavailable

from .base import EngineResult, ExecutionEngine

log = structlog.get_logger()


class DockerEngine(ExecutionEngine):
    """Run tools inside Docker containers."""

    def __init__(self, platform: str | None = None) -> None:
        """Configure the engine.

        Args:
            platform: Optional ``docker --platform`` value to request a
                specific architecture for the image.
        """
        self.platform = platform

    def build_command(
        self,
        image: str,
        args: Sequence[str],
        *,
        volumes: Mapping[str, str],
        env: Mapping[str, str],
        entrypoint: str | None = None,
        workdir: str | None = None,
    ) -> list[str]:
        """Return the ``docker run`` vector for the given invocation."""
        cmd: list[str] = ["docker", "run", "--rm"]
        if self.platform:
            cmd += ["--platform", self.platform]
        if entrypoint:
            cmd += ["--entrypoint", entrypoint]
        for key, value in env.items():
            cmd += ["-e", f"{key}={value}"]
        for host, guest in volumes.items():
            cmd += ["-v", f"{host}:{guest}"]
        if workdir:
            cmd += ["-w", workdir]
        cmd.append(image)
        cmd.extend(str(a) for a in args)
        return cmd

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
        """Execute *image* while propagating mounts and environment data.

        Args:
            image: Container reference such as ``my/image:tag``.
            args: Positional arguments forwarded to the container entrypoint.
            volumes: Mapping of host paths to mount inside the container.
            env: Environment variables to expose in the container.
            entrypoint: Optional command overriding the image entrypoint.
            workdir: Working directory inside the container (``-w``).
            on_stdout: Callback receiving each output line.

        Returns:
            :class:`EngineResult` holding the exit status and combined output.

        Raises:
            EngineUnavailable: If the ``docker`` executable cannot be found.
        """
        cmd = self.build_command(
            image,
            args,
            volumes=volumes,
            env=env,
            entrypoint=entrypoint,
            workdir=workdir,
        )
        log.info("docker.run", image=image, entrypoint=entrypoint, args=list(args))
        try:
            res = proc.run_cmd(cmd, capture=True, check=False, on_stdout=on_stdout)
        except FileNotFoundError as exc:
            raise EngineUnavailable("docker executable not found on PATH") from exc
        if res.returncode != 0:
            log.info("docker.nonzero", image=image, returncode=res.returncode)
        return EngineResult(res.returncode, res.stdout or "")
