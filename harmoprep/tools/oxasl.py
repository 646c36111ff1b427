"""Parameter templates for the FSL BASIL tools (``asl_file``, ``oxford_asl``).

The multi-delay pCASL protocol is identical on both scanners: five
post-labelling delays with repeat counts that sum to 86 label/control frames.
Scanner-specific timing lives in :class:`PerfusionModel`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .fsl import FslTool

#: Post-labelling delays in ms, ascending (merge order of the Philips series).
PLDS_MS: tuple[int, ...] = (200, 700, 1200, 1700, 2200)
#: Label/control frames acquired per delay.
REPEATS: tuple[int, ...] = (12, 12, 12, 20, 30)
#: Total label/control frames in the multi-delay series.
N_LABEL_CONTROL = sum(REPEATS)
#: Trailing calibration frames in the Siemens combined acquisition.
N_CALIBRATION = 2


@dataclass(frozen=True)
class PerfusionModel:
    """Constants passed to ``oxford_asl``.

    ``tr`` and ``te`` differ between scanners; everything else is shared.
    Values are emitted with :func:`str` so the command line matches the
    calibrated protocol exactly.
    """

    tr: float
    te: float
    bolus: float = 1.4
    slicedt: float = 0.018
    t1: float = 1.3
    t1b: float = 1.65
    alpha: float = 0.85
    t2bl: float = 0.15
    cgain: float = 1.0
    cmethod: str = "voxel"


PHILIPS_MODEL = PerfusionModel(tr=10, te=14)
SIEMENS_MODEL = PerfusionModel(tr=3.58, te=19)


def inflow_times(
    plds_ms: Sequence[int] = PLDS_MS,
    repeats: Sequence[int] = REPEATS,
    bolus: float = PerfusionModel.bolus,
) -> list[float]:
    """Return one TI (PLD + bolus, in s) per label/control *pair*."""
    if len(plds_ms) != len(repeats):
        raise ValueError("one repeat count is required per delay")
    tis: list[float] = []
    for pld, rpt in zip(plds_ms, repeats):
        tis.extend([round(pld / 1000 + bolus, 3)] * (rpt // 2))
    return tis


def asl_file(
    data: Path,
    out_base: Path,
    mean_base: Path,
    *,
    label_order: str | None,
    repeats: Sequence[int] = REPEATS,
) -> FslTool:
    """Label-control subtraction over a multi-delay series.

    Args:
        data: Distortion-corrected label/control series.
        out_base: Difference series (``--out``).
        mean_base: Mean difference per delay (``--mean``).
        label_order: ``--iaf`` value, or ``None`` to leave the tool default.
        repeats: Frames per delay (``--rpts``).
    """
    args: list[str | Path] = ["asl_file", f"--data={data}", f"--ntis={len(repeats)}"]
    if label_order:
        args.append(f"--iaf={label_order}")
    args += [
        "--ibf=tis",
        f"--rpts={','.join(str(r) for r in repeats)}",
        "--diff",
        f"--out={out_base}",
        f"--mean={mean_base}",
    ]
    return FslTool(command=tuple(args))


def oxford_asl(
    diff: Path,
    out_dir: Path,
    calib: Path,
    fslanat: Path,
    model: PerfusionModel,
    tis: Sequence[float] | None = None,
) -> FslTool:
    """Spatially regularised perfusion fit with partial-volume correction."""
    tis = inflow_times(bolus=model.bolus) if tis is None else tis
    return FslTool(
        command=(
            "oxford_asl",
            "-i", diff,
            "-o", out_dir,
            "--iaf=diff",
            f"--tis={','.join(str(t) for t in tis)}",
            "--casl",
            f"--bolus={model.bolus}",
            f"--slicedt={model.slicedt}",
            f"--t1={model.t1}",
            f"--t1b={model.t1b}",
            f"--alpha={model.alpha}",
            "--spatial",
            "-c", calib,
            f"--tr={model.tr}",
            f"--cgain={model.cgain}",
            f"--cmethod={model.cmethod}",
            f"--te={model.te}",
            f"--t2bl={model.t2bl}",
            f"--fslanat={fslanat}",
            "--pvcorr",
        )
    )
