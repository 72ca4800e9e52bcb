"""Docker helpers used before any subject is processed."""

from __future__ import annotations

import platform
import shutil
import subprocess

import structlog

from .errors import EngineUnavailable

log = structlog.get_logger()

# "platform" is both a parameter name and a module; keep a module handle.
platform_module = platform


def require_docker() -> str:
    """Return the path of the ``docker`` executable.

    Raises:
        EngineUnavailable: When Docker is not installed or not on ``PATH``.
    """
    exe = shutil.which("docker")
    if exe is None:
        raise EngineUnavailable("required command not found: docker")
    return exe


def ensure_image(image: str, *, pull: bool = True) -> bool:
    """Make sure *image* is available locally, pulling it when allowed.

    Args:
        image: Container reference, e.g. ``ghcr.io/miac-research/psmd:latest``.
        pull: Run ``docker pull`` when the image is missing.

    Returns:
        ``True`` when the image was already present, ``False`` when it was
        pulled.

    Raises:
        EngineUnavailable: If the image is missing and cannot be pulled.
    """
    inspect = subprocess.run(
        ["docker", "image", "inspect", image],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=False,
    )
    if inspect.returncode == 0:
        return True
    if not pull:
        raise EngineUnavailable(f"image not available locally: {image}")

    log.info("docker.pull", image=image)
    try:
        subprocess.run(["docker", "pull", image], check=True)
    except subprocess.CalledProcessError as exc:
        raise EngineUnavailable(
            f"docker pull {image} exited with status {exc.returncode}"
        ) from exc
    return False


def detect_platform(image: str) -> str | None:
    """Return a Docker platform string supported by ``image`` when available.

    Args:
        image: Name of the container image to inspect via ``docker imagetools``.

    Returns:
        A platform string suitable for ``--platform`` or ``None`` to defer to
        Docker's native selection.

    On ``arm64`` hosts the helper favours an ``arm64`` variant when the
    manifest lists one and otherwise falls back to ``amd64`` emulation. On
    ``x86_64`` hosts ``None`` is returned so Docker picks the native
    architecture. Probing errors are treated as if the image lacked an
    ``arm64`` manifest.
    """
    host = platform_module.machine()
    if host not in {"arm64", "aarch64"}:
        return None
    try:
        out = subprocess.check_output(
            ["docker", "buildx", "imagetools", "inspect", image],
            text=True,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        log.info("docker.platform_probe_failed", error=str(exc))
        return "linux/amd64"
    return "linux/arm64" if "linux/arm64" in out else "linux/amd64"
