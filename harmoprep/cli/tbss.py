"""``harmoprep-cli tbss`` – group TBSS on the aggregated FA/MD maps."""

from __future__ import annotations

import click
import structlog

from harmoprep.engines import make_engine
from harmoprep.pipelines.tbss import build_tbss_pipeline
from harmoprep.utils.errors import HarmoprepError

log = structlog.get_logger()


@click.command(name="tbss")
@click.option("--dry-run", is_flag=True, help="List the stages without running them.")
@click.pass_obj
def cli(ctx_obj, dry_run: bool) -> None:
    """Run tbss_1..4 on FA, then project MD onto the skeleton."""
    cfg = ctx_obj["cfg"]
    store = ctx_obj["store"]
    try:
        pipeline = build_tbss_pipeline(store)
        if dry_run:
            for stage_id, command in pipeline.describe():
                click.echo(f"  {stage_id:<14} {command}")
            return
        result = pipeline.run(make_engine(cfg, ctx_obj["root"]), timeout=cfg.timeout_s)
    except HarmoprepError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"TBSS complete ({len(result.completed)} stages)")


__all__ = ["cli"]
