"""Stage factories shared by the ASL and DTI builders."""

from __future__ import annotations

from pathlib import Path
from typing import List

from harmoprep.config.acquisition import AcquisitionParameterSet
from harmoprep.tools import fsl

from .artifacts import ArtifactStore
from .engine import Stage

ACQPARAMS = "acqparams.txt"


def nii(base: Path) -> Path:
    """Return ``<base>.nii.gz`` (FSL's default output type)."""
    return base.with_name(base.name + ".nii.gz")


def acqparams_stage(store: ArtifactStore, path: Path, params: AcquisitionParameterSet) -> Stage:
    """Write the two-row phase-encoding table for topup/eddy."""
    return Stage(
        "acqparams",
        outputs=[path],
        action=lambda: store.write(path, params.as_text()),
    )


def topup_field(base: Path) -> List[Path]:
    """Field coefficients and movement parameters read by applytopup/eddy."""
    return [
        base.with_name(base.name + "_fieldcoef.nii.gz"),
        base.with_name(base.name + "_movpar.txt"),
    ]


def topup_stage(imain: Path, acqparams: Path, base: Path, iout: Path, fout: Path) -> Stage:
    return Stage(
        "topup",
        inputs=[imain, acqparams],
        outputs=[*topup_field(base), nii(iout)],
        tool=fsl.topup(imain, acqparams, base, iout=iout, fout=fout),
    )
