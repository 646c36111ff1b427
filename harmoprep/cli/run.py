"""``harmoprep-cli run`` – per-session T1/ASL/DTI pipelines."""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

import click
import structlog

from harmoprep.engines import make_engine
from harmoprep.models import Modality, discover_sessions
from harmoprep.pipelines import build_pipeline, run_batch
from harmoprep.pipelines.batch import expand_jobs
from harmoprep.utils.errors import HarmoprepError
from harmoprep.utils.filters import scanner_codes, select_scanners, split_commas

log = structlog.get_logger()

_MODALITIES = [m.value for m in Modality]


@click.command(name="run")
@click.argument("modalities", nargs=-1, required=True, type=click.Choice(_MODALITIES))
@click.option("--filter-sub", "filter_sub", multiple=True, callback=split_commas, metavar="<sub>")
@click.option("--filter-ses", "filter_ses", multiple=True, callback=split_commas, metavar="<ses>")
@click.option(
    "--scanner",
    "scanners",
    multiple=True,
    callback=scanner_codes,
    metavar="<code>",
    help="Only sessions with these scanner codes (N, A, B).",
)
@click.option("-j", "--jobs", type=click.IntRange(min=1), help="Parallel sessions (default: max_workers).")
@click.option("--dry-run", is_flag=True, help="List the stages of every pipeline without running them.")
@click.pass_obj
def cli(
    ctx_obj,
    modalities: Tuple[str, ...],
    filter_sub: Tuple[str, ...],
    filter_ses: Tuple[str, ...],
    scanners: Tuple[str, ...],
    jobs: int | None,
    dry_run: bool,
) -> None:
    """Run the MODALITIES pipelines (t1, asl, dti) for every selected session."""
    cfg = ctx_obj["cfg"]
    store = ctx_obj["store"]
    root: Path = ctx_obj["root"]

    if not store.bids_dir.is_dir():
        raise click.ClickException(f"raw data folder not found: {store.bids_dir}")

    sessions = select_scanners(
        discover_sessions(store.bids_dir, filter_sub=filter_sub, filter_ses=filter_ses), scanners
    )
    if not sessions:
        raise click.ClickException("no sessions matched the filters")

    work = expand_jobs(sessions, [Modality(m) for m in dict.fromkeys(modalities)])
    log.info("run.jobs", sessions=len(sessions), jobs=len(work))

    if dry_run:
        for session, modality in work:
            try:
                pipeline = build_pipeline(session, modality, store)
            except HarmoprepError as exc:
                click.echo(f"{session} [{modality.value}] skipped: {exc}")
                continue
            click.echo(f"{session} [{pipeline.variant.value}]")
            for stage_id, command in pipeline.describe():
                click.echo(f"  {stage_id:<20} {command}")
        return

    outcomes = run_batch(
        work,
        store,
        make_engine(cfg, root),
        max_workers=jobs or cfg.max_workers,
        timeout=cfg.timeout_s,
    )
    failed = [o for o in outcomes if not o.ok]
    for o in outcomes:
        status = "ok" if o.ok else f"FAILED – {o.error}"
        click.echo(f"{o.session} [{o.modality.value}] {status}")
    if failed:
        raise click.ClickException(f"{len(failed)} of {len(outcomes)} pipeline(s) failed")


__all__ = ["cli"]
