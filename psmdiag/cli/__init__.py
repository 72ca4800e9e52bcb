"""Expose the ``psmdiag-cli`` command.

The command:

* sets up logging via :pyfunc:`psmdiag.utils.logging.setup_logging`;
* merges the YAML configuration with CLI options and environment variables;
* checks Docker and the engine image before any subject is touched;
* runs a single subject when *TARGET* resolves as one, a batch otherwise.

Subject-level failures never change the exit status; only pre-flight
problems (bad target, missing Docker, no subjects) raise
:class:`click.ClickException`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import click

from psmdiag import __version__
from psmdiag.config import load_config
from psmdiag.engines import DockerEngine
from psmdiag.pipelines.batch import run_batch
from psmdiag.pipelines.discovery import is_subject_dir
from psmdiag.pipelines.report import build_results_table, summarise, write_results_csv
from psmdiag.pipelines.subject import run_subject
from psmdiag.utils.docker import detect_platform, ensure_image, require_docker
from psmdiag.utils.errors import EngineUnavailable, NoValidSubjects
from psmdiag.utils.logging import setup_logging

_CTX: Dict[str, Any] = dict(
    help_option_names=["-h", "--help"],
    show_default=True,
    max_content_width=120,
)


@click.command(
    context_settings=_CTX,
    help="""\b
psmdiag-cli – PSMD with diagnostics and automatic fallback.

TARGET is a subject folder (bval, bvec and 4D NIfTI) or a folder of subject
folders. MASK optionally replaces the default skeleton mask.
""",
)
@click.version_option(__version__)
@click.argument("target", type=click.Path(path_type=Path))
@click.argument(
    "mask",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option(
    "--mode",
    envvar="PSMD_MODE",
    type=click.Choice(["d", "p", "direct", "preprocessing"], case_sensitive=False),
    help="Primary PSMD mode (-d direct, -p preprocessing).  [env: PSMD_MODE]",
)
@click.option("--image", envvar="PSMD_IMAGE", help="PSMD container image.  [env: PSMD_IMAGE]")
@click.option(
    "--omp-threads",
    envvar="OMP_THREADS",
    type=int,
    help="OMP_NUM_THREADS inside the container.  [env: OMP_THREADS]",
)
@click.option(
    "-j",
    "--jobs",
    envvar="JOBS",
    type=int,
    help="Subjects processed in parallel (batch mode).  [env: JOBS]",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Explicit psmd.yaml.",
)
@click.option("-v", "--verbose", is_flag=True, help="INFO-level console output.")
@click.option("--debug", is_flag=True, help="DEBUG console + JSON logfile.")
@click.option(
    "--save-logfile",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Mirror console output into this plain-text file.",
)
def main(  # noqa: D401 – Click requires the callback to be named “main”.
    target: Path,
    mask: Path | None,
    mode: str | None,
    image: str | None,
    omp_threads: int | None,
    jobs: int | None,
    config_path: Path | None,
    verbose: bool,
    debug: bool,
    save_logfile: Path | None,
) -> None:
    """Run PSMD on one subject or a batch of subjects.

    Raises:
        click.ClickException: For a missing target, an unusable configuration,
            a missing Docker installation or image, or a batch root without
            any subject.
    """
    target = target.expanduser().resolve()
    if not target.is_dir():
        raise click.ClickException(f"directory not found: {target}")

    setup_logging(
        log_dir=target,
        verbose=verbose,
        debug=debug,
        extra_text_log=save_logfile,
    )

    try:
        cfg = load_config(
            config_path,
            dataset_root=target,
            overrides={
                "mode": mode,
                "image": image,
                "omp_threads": omp_threads,
                "jobs": jobs,
            },
        )
    except (FileNotFoundError, RuntimeError) as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        require_docker()
        ensure_image(cfg.image, pull=cfg.pull_missing_image)
    except EngineUnavailable as exc:
        raise click.ClickException(str(exc)) from exc
    engine = DockerEngine(platform=detect_platform(cfg.image))
    mask_override = mask.expanduser().resolve() if mask else None

    # Single subject ---------------------------------------------------------
    if is_subject_dir(target):
        click.echo(f"Subject: {target}")
        rec = run_subject(target, cfg, engine, mask_override)
        value = "" if rec.value is None else f"{rec.value:g}"
        click.echo(f"{rec.subject}: method={rec.method} psmd={value}")
        click.echo(f"Diagnostic log: {rec.diag_log}")
        return

    # Batch ------------------------------------------------------------------
    click.echo(f"BATCH mode detected. Root folder: {target}")
    try:
        records = run_batch(target, cfg, engine, mask_override)
    except NoValidSubjects as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo("All subjects finished. Consolidating results...")
    df = build_results_table(records, cfg.mode)
    csv_path = write_results_csv(df, target)
    summary = summarise(df)
    click.echo("Summary:")
    click.echo(f"  Total success........: {summary.success} / {summary.total}")
    click.echo(f"   └─ via fallback.....: {summary.via_fallback}")
    click.echo(f"  Failures............: {summary.failures}")
    click.echo(f"CSV generated: {csv_path}")


# The public symbol exported by this module.  Required for ``python -m`` entry-points.
cli = main
__all__: list[str] = ["main"]
