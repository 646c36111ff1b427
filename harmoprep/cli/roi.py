"""``harmoprep-cli roi`` – atlas ROI means on the TBSS skeleton."""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

import click
import structlog

from harmoprep.stats.roi import run_roi_extraction
from harmoprep.utils.errors import HarmoprepError
from harmoprep.utils.filters import split_commas

log = structlog.get_logger()


@click.command(name="roi")
@click.option("--atlas", type=click.Path(dir_okay=False, path_type=Path), help="Labelled atlas (default: JHU ICBM labels).")
@click.option("--n-rois", type=click.IntRange(min=1), help="Number of labels (default from config).")
@click.option("--metric", "metrics", multiple=True, callback=split_commas, metavar="<metric>")
@click.pass_obj
def cli(ctx_obj, atlas: Path | None, n_rois: int | None, metrics: Tuple[str, ...]) -> None:
    """Write ROI_<i>_<metric>.txt, global_wm_<metric>.txt and <metric>_all.tsv."""
    cfg = ctx_obj["cfg"]
    try:
        tables = run_roi_extraction(
            ctx_obj["store"],
            atlas or cfg.roi.atlas_path(),
            metrics=metrics or tuple(cfg.roi.metrics),
            n_rois=n_rois or cfg.roi.n_rois,
        )
    except HarmoprepError as exc:
        raise click.ClickException(str(exc)) from exc
    for metric, frame in tables.items():
        click.echo(f"{metric}: {len(frame)} regions × {frame.shape[1] - 1} subjects")


__all__ = ["cli"]
