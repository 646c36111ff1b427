"""Parameter template for FreeSurfer ``recon-all``."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .base import CommandTool


@dataclass
class FreeSurferTool(CommandTool):
    """Run a FreeSurfer command."""

    suite: str = "freesurfer"
    command: Sequence[str | Path] = field(default_factory=tuple)
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Path | None = None


def recon_all(
    t1: Path, subject: str, subjects_dir: Path, *, resume: bool = False
) -> FreeSurferTool:
    """Full cortical reconstruction of *t1* into ``<subjects_dir>/<subject>``.

    ``SUBJECTS_DIR`` is exported as well as passed via ``-sd`` so helper
    scripts spawned by ``recon-all`` see the same location. With *resume*
    the ``-i`` import is skipped; ``recon-all`` refuses to import into an
    existing subject directory.
    """
    args: list[str | Path] = ["recon-all"]
    if not resume:
        args += ["-i", t1]
    args += ["-subject", subject, "-sd", subjects_dir, "-all"]
    return FreeSurferTool(command=tuple(args), env={"SUBJECTS_DIR": str(subjects_dir)})
