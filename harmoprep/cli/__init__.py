"""``harmoprep-cli`` entry point.

:func:`main` parses the global options, configures logging, loads the
configuration and stores the shared objects in ``ctx.obj``:

``root``
    Study root (``--root``, ``$HARMOPREP_ROOT`` or the current directory).
``cfg``
    Validated :class:`~harmoprep.config.schema.HarmoprepConfig`.
``store``
    :class:`~harmoprep.pipelines.artifacts.ArtifactStore` over the configured
    raw and derivatives folders.

Sub-commands live in sibling modules listed in :data:`SUBCOMMANDS` and are
imported on first use.
"""

from __future__ import annotations

import importlib
import os
from pathlib import Path
from typing import Mapping

import click

from harmoprep import __version__
from harmoprep.config import load_config
from harmoprep.pipelines.artifacts import ArtifactStore
from harmoprep.utils.logging import setup_logging

SUBCOMMANDS: Mapping[str, str] = {
    "run": "harmoprep.cli.run",
    "tsnr": "harmoprep.cli.tsnr",
    "tbss": "harmoprep.cli.tbss",
    "roi": "harmoprep.cli.roi",
}


class LazyGroup(click.Group):
    """Group whose sub-commands are the ``cli`` objects of *subcommands* modules."""

    def __init__(self, *args, subcommands: Mapping[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.subcommands = dict(subcommands or {})

    def list_commands(self, ctx):
        return sorted(set(super().list_commands(ctx)) | set(self.subcommands))

    def get_command(self, ctx, cmd_name):
        if cmd_name in self.commands or cmd_name not in self.subcommands:
            return super().get_command(ctx, cmd_name)
        command = importlib.import_module(self.subcommands[cmd_name]).cli
        self.add_command(command, name=cmd_name)
        return command


@click.group(
    cls=LazyGroup,
    subcommands=SUBCOMMANDS,
    context_settings={"help_option_names": ["-h", "--help"], "max_content_width": 120},
    help="harmoprep-cli – multi-site MRI preprocessing (T1, ASL, DTI, tSNR, TBSS).",
)
@click.version_option(__version__)
@click.option(
    "-r",
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Study root containing bids/ and derivatives/ (default: $HARMOPREP_ROOT or cwd).",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Explicit harmoprep.yaml.",
)
@click.option("-v", "--verbose", is_flag=True, help="INFO-level console output.")
@click.option("--debug", is_flag=True, help="DEBUG console + JSON logfile.")
@click.option(
    "--save-logfile",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Mirror console output into this plain-text file.",
)
@click.pass_context
def main(
    ctx: click.Context,
    root: Path | None,
    config_path: Path | None,
    verbose: bool,
    debug: bool,
    save_logfile: Path | None,
) -> None:
    """Prepare logging, configuration and the artifact store for sub-commands."""
    root = (root or Path(os.environ.get("HARMOPREP_ROOT", "."))).resolve()
    setup_logging(
        dataset_root=root if root.is_dir() else None,
        verbose=verbose,
        debug=debug,
        extra_text_log=save_logfile,
    )

    try:
        cfg = load_config(config_path=config_path, dataset_root=root)
    except (RuntimeError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc

    ctx.obj = {
        "root": root,
        "cfg": cfg,
        "store": ArtifactStore.from_config(cfg),
        "verbose": verbose,
        "debug": debug,
    }


cli = main
__all__: list[str] = ["main"]
