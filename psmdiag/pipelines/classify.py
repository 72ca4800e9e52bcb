"""Turn captured PSMD output into a tagged outcome.

PSMD reports its result as a free-text line (``PSMD is 0.000245``) and
signals many failures only through messages while still exiting 0. The
functions here are pure so the precedence rules can be tested without a
container:

1. a known failure marker in the text → :class:`Failure`;
2. no well-formed ``PSMD is <number>`` line → :class:`Failure`;
3. otherwise → :class:`Success`, whatever the exit status.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from psmdiag.utils.errors import NoResultFound

RESULT_RE = re.compile(r"PSMD is\s*([0-9]+(?:\.[0-9]+)?)")
FAILURE_RE = re.compile(
    r"Aborted|No image files match|Failed to read volume|cannot access .?origdata/"
)


@dataclass(frozen=True)
class Success:
    """Engine produced a PSMD value."""

    value: float
    returncode: int = 0


@dataclass(frozen=True)
class Failure:
    """Engine did not produce a usable value; *reason* says why."""

    reason: str
    returncode: int | None = None


EngineOutcome = Union[Success, Failure]


def extract_psmd_text(text: str) -> str:
    """Return the number of the last ``PSMD is <number>`` line exactly as printed.

    Raises:
        NoResultFound: If no line matches.
    """
    matches = RESULT_RE.findall(text)
    if not matches:
        raise NoResultFound("no numeric value after 'PSMD is'")
    return matches[-1]


def extract_psmd(text: str) -> float:
    """Return the value of the last ``PSMD is <number>`` line in *text*.

    Raises:
        NoResultFound: If no line matches.
    """
    return float(extract_psmd_text(text))


def read_psmd_text(path: Path | None) -> str:
    """Like :func:`extract_psmd_text` for a log file; a missing file has no result."""
    if path is None or not Path(path).is_file():
        raise NoResultFound(f"log not found: {path}")
    return extract_psmd_text(Path(path).read_text(errors="replace"))


def extract_psmd_from_file(path: Path | None) -> float:
    """Like :func:`extract_psmd` for a log file; a missing file has no result."""
    return float(read_psmd_text(path))


def classify_engine_output(returncode: int, text: str) -> EngineOutcome:
    """Map an exit status and captured output to :class:`Success`/:class:`Failure`."""
    marker = FAILURE_RE.search(text)
    if marker:
        return Failure(f"failure marker in log: {marker.group(0)!r}", returncode)
    try:
        value = extract_psmd(text)
    except NoResultFound:
        return Failure("no numeric value after 'PSMD is'", returncode)
    return Success(value, returncode)
