"""Parameter templates for MRtrix3 commands.

``-force`` is always passed so a rerun overwrites the previous output instead
of aborting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .base import CommandTool


@dataclass
class MrtrixTool(CommandTool):
    """Run an MRtrix3 command."""

    suite: str = "mrtrix"
    command: Sequence[str | Path] = field(default_factory=tuple)
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Path | None = None


def dwiextract_b0(dwi: Path, bvec: Path, bval: Path, out_file: Path) -> MrtrixTool:
    """Extract the b=0 volumes of *dwi* using FSL-style gradient tables."""
    return MrtrixTool(
        command=("dwiextract", dwi, "-fslgrad", bvec, bval, out_file, "-bzero", "-force")
    )


def mrmath_mean(in_file: Path, out_file: Path, axis: int = 3) -> MrtrixTool:
    """Average *in_file* along *axis* (3 = volumes)."""
    return MrtrixTool(
        command=("mrmath", in_file, "mean", out_file, "-axis", str(axis), "-force")
    )


def mrconvert(in_file: Path, out_file: Path) -> MrtrixTool:
    return MrtrixTool(command=("mrconvert", in_file, out_file, "-force"))
