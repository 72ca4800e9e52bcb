"""Consolidate per-subject outcomes into ``psmd_results.csv``."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple

import pandas as pd
import structlog

from psmdiag.utils.errors import NoResultFound

from .classify import read_psmd_text
from .types import EngineMode, Method, OutcomeRecord

log = structlog.get_logger()

RESULTS_NAME = "psmd_results.csv"
RESULTS_TMP = ".psmd_results.tmp"
COLUMNS = [
    "subject",
    "mode",
    "method",
    "psmd",
    "primary_log",
    "fallback_log",
    "diag_log",
]


@dataclass(frozen=True)
class Summary:
    """Counts printed at the end of a batch."""

    total: int
    success: int
    via_fallback: int
    failures: int


def _log_value(path: Optional[Path]) -> Optional[str]:
    """Return the last PSMD value recorded in *path* as printed, or ``None``.

    Only the ``PSMD is <number>`` line counts; failure markers elsewhere in
    the log are ignored.
    """
    try:
        return read_psmd_text(path)
    except NoResultFound:
        return None


def classify_method(
    primary_log: Optional[Path], fallback_log: Optional[Path]
) -> Tuple[Method, Optional[str]]:
    """Decide how a subject's value was obtained from its logs.

    The primary log wins whenever it holds a result; the from-maps log is
    consulted only otherwise. The value is returned verbatim so the CSV
    keeps the engine's own formatting.
    """
    value = _log_value(primary_log)
    if value is not None:
        return "primary", value
    value = _log_value(fallback_log)
    if value is not None:
        return "fallback", value
    return "fail", None


def build_results_table(
    records: Iterable[OutcomeRecord], mode: Optional[EngineMode] = None
) -> pd.DataFrame:
    """Return one row per record, in the order given.

    Args:
        records: Outcomes in discovery order.
        mode: Value of the ``mode`` column; defaults to each record's mode.
    """
    rows = []
    for rec in records:
        method, value = classify_method(rec.primary_log, rec.fallback_log)
        rows.append(
            {
                "subject": rec.subject,
                "mode": (mode or rec.mode).value,
                "method": method,
                "psmd": value,
                "primary_log": str(rec.primary_log),
                "fallback_log": str(rec.fallback_log),
                "diag_log": str(rec.diag_log) if rec.diag_log else "",
            }
        )
    return pd.DataFrame(rows, columns=COLUMNS)


def write_results_csv(df: pd.DataFrame, root: Path) -> Path:
    """Write *df* to ``<root>/psmd_results.csv`` atomically.

    The table is written to ``.psmd_results.tmp`` first and renamed so
    readers never see a partially written file.
    """
    root = Path(root)
    tmp = root / RESULTS_TMP
    dst = root / RESULTS_NAME
    df.to_csv(tmp, index=False)
    os.replace(tmp, dst)
    log.info("saved_results_csv", path=str(dst), rows=len(df))
    return dst


def summarise(df: pd.DataFrame) -> Summary:
    """Count successes (primary or fallback), fallbacks and failures."""
    methods = df["method"] if "method" in df else pd.Series(dtype=str)
    via_fallback = int((methods == "fallback").sum())
    success = int((methods == "primary").sum()) + via_fallback
    return Summary(
        total=len(df),
        success=success,
        via_fallback=via_fallback,
        failures=int((methods == "fail").sum()),
    )
