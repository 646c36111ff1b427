"""``harmoprep-cli tsnr`` – temporal SNR maps and grey-matter summaries."""

from __future__ import annotations

from typing import Tuple

import click
import structlog

from harmoprep.models import discover_sessions
from harmoprep.stats.tsnr import process_session
from harmoprep.utils.errors import HarmoprepError
from harmoprep.utils.filters import split_commas

log = structlog.get_logger()


@click.command(name="tsnr")
@click.option("--filter-sub", "filter_sub", multiple=True, callback=split_commas, metavar="<sub>")
@click.option("--filter-ses", "filter_ses", multiple=True, callback=split_commas, metavar="<ses>")
@click.option("--task", help="BIDS task label (default from config).")
@click.option("--runs", multiple=True, callback=split_commas, metavar="<run>", help="Run labels, e.g. run-01.")
@click.pass_obj
def cli(
    ctx_obj,
    filter_sub: Tuple[str, ...],
    filter_ses: Tuple[str, ...],
    task: str | None,
    runs: Tuple[str, ...],
) -> None:
    """Compute tSNR for every selected session."""
    cfg = ctx_obj["cfg"]
    store = ctx_obj["store"]
    sessions = discover_sessions(store.bids_dir, filter_sub=filter_sub, filter_ses=filter_ses)
    if not sessions:
        raise click.ClickException("no sessions matched the filters")

    for session in sessions:
        try:
            table = process_session(
                session,
                store,
                task=task or cfg.tsnr.task,
                runs=runs or tuple(cfg.tsnr.runs),
                mask_folder=cfg.tsnr.mask_dir,
            )
        except HarmoprepError as exc:
            raise click.ClickException(f"{session}: {exc}") from exc
        click.echo(f"{session}")
        click.echo(table.to_string(index=False, float_format=lambda v: f"{v:.2f}"))


__all__ = ["cli"]
