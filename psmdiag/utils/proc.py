from __future__ import annotations

import subprocess
from typing import Callable, Optional, Sequence

import structlog

log = structlog.get_logger()


def run_cmd(
    cmd: Sequence[str],
    *,
    capture: bool = True,
    check: bool = True,
    on_stdout: Optional[Callable[[str], None]] = None,
) -> subprocess.CompletedProcess:
    """Execute *cmd* with stdout and stderr merged into a single stream.

    Args:
        cmd: Command vector passed to :func:`subprocess.Popen`.
        capture: When True, keep the combined output and return it as
            ``stdout`` on the result.
        check: Raise :class:`subprocess.CalledProcessError` on a non-zero
            exit status. Engine calls pass ``False`` because their output,
            not their status, decides success.
        on_stdout: Optional callback invoked for each completed output line
            while the process runs (used to mirror output into per-subject
            diagnostic logs).

    Returns:
        :class:`subprocess.CompletedProcess` describing the execution result.

    Raises:
        subprocess.CalledProcessError: If *check* is set and the command exits
            with a non-zero status.
        FileNotFoundError: If the executable does not exist.
    """
    cmd = [str(c) for c in cmd]
    log.debug("run-cmd", cmd=" ".join(cmd))

    captured: list[str] = []
    with subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
    ) as p:
        assert p.stdout is not None
        for line in p.stdout:
            # Docker may emit CRLF when a TTY is attached.
            line = line.replace("\r\n", "\n").replace("\r", "\n")
            if capture:
                captured.append(line)
            if on_stdout is not None:
                on_stdout(line.rstrip("\n"))
        rc = p.wait()

    stdout = "".join(captured) if capture else None
    if check and rc != 0:
        raise subprocess.CalledProcessError(rc, cmd, output=stdout)
    return subprocess.CompletedProcess(cmd, rc, stdout=stdout)
