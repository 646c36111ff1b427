"""Parameter templates for FSL commands.

Every helper returns an :class:`FslTool` whose command vector reproduces the
calls made by the study's processing scripts. Images are passed as absolute
paths; output *bases* (``topup --out``, ``eddy --out``, ``dtifit -o``) are
passed without extension because FSL appends its own suffixes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .base import CommandTool

TOPUP_CONFIG = "b02b0.cnf"


@dataclass
class FslTool(CommandTool):
    """Run an FSL command."""

    suite: str = "fsl"
    command: Sequence[str | Path] = field(default_factory=tuple)
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Path | None = None


def _cmd(*args: str | Path, cwd: Path | None = None) -> FslTool:
    return FslTool(command=tuple(args), cwd=cwd)


# --------------------------------------------------------------------------- #
# Image arithmetic                                                            #
# --------------------------------------------------------------------------- #
def fslmaths(in_file: Path, *ops: str | Path, out_file: Path) -> FslTool:
    """``fslmaths <in> <ops…> <out>``."""
    return _cmd("fslmaths", in_file, *ops, out_file)


def temporal_mean(in_file: Path, out_file: Path) -> FslTool:
    """``fslmaths <in> -Tmean <out>``."""
    return fslmaths(in_file, "-Tmean", out_file=out_file)


def threshold_binarise(in_file: Path, thr: float, out_file: Path) -> FslTool:
    """``fslmaths <in> -thr <thr> -bin <out>``."""
    return fslmaths(in_file, "-thr", str(thr), "-bin", out_file=out_file)


def fslmerge_t(out_file: Path, inputs: Sequence[Path]) -> FslTool:
    """Concatenate *inputs* along time, preserving their order."""
    return _cmd("fslmerge", "-t", out_file, *inputs)


def fslroi(in_file: Path, out_file: Path, tmin: int, tsize: int) -> FslTool:
    """Extract ``tsize`` volumes starting at zero-based index ``tmin``."""
    return _cmd("fslroi", in_file, out_file, str(tmin), str(tsize))


def fslreorient2std(in_file: Path, out_file: Path) -> FslTool:
    return _cmd("fslreorient2std", in_file, out_file)


def bet(in_file: Path, out_base: Path, frac: float, *, mask: bool = True) -> FslTool:
    """Brain extraction; ``-m`` also writes ``<out_base>_mask``."""
    args: list[str | Path] = ["bet", in_file, out_base]
    if mask:
        args.append("-m")
    args += ["-f", str(frac)]
    return _cmd(*args)


# --------------------------------------------------------------------------- #
# Distortion / eddy-current correction                                        #
# --------------------------------------------------------------------------- #
def topup(
    imain: Path,
    datain: Path,
    out_base: Path,
    *,
    iout: Path,
    fout: Path,
) -> FslTool:
    """Estimate the off-resonance field from a merged reverse-PE pair."""
    return _cmd(
        "topup",
        f"--imain={imain}",
        f"--datain={datain}",
        f"--config={TOPUP_CONFIG}",
        f"--out={out_base}",
        f"--iout={iout}",
        f"--fout={fout}",
    )


def applytopup(
    imain: Sequence[Path],
    topup_base: Path,
    datain: Path,
    inindex: Sequence[int],
    out_base: Path,
) -> FslTool:
    """Apply a topup field with Jacobian modulation."""
    if len(imain) != len(inindex):
        raise ValueError("applytopup needs one --inindex entry per input image")
    return _cmd(
        "applytopup",
        f"--imain={','.join(str(p) for p in imain)}",
        f"--topup={topup_base}",
        f"--datain={datain}",
        f"--inindex={','.join(str(i) for i in inindex)}",
        "--method=jac",
        f"--out={out_base}",
    )


def eddy(
    imain: Path,
    mask: Path,
    index: Path,
    acqp: Path,
    bvecs: Path,
    bvals: Path,
    topup_base: Path,
    out_base: Path,
) -> FslTool:
    """Motion and eddy-current correction on multi-shell data."""
    return _cmd(
        "eddy",
        f"--imain={imain}",
        f"--mask={mask}",
        f"--index={index}",
        f"--acqp={acqp}",
        f"--bvecs={bvecs}",
        f"--bvals={bvals}",
        f"--topup={topup_base}",
        f"--out={out_base}",
        "--data_is_shelled",
    )


def eddy_quad(eddy_base: Path, index: Path, acqp: Path, mask: Path, bvals: Path) -> FslTool:
    """Single-subject eddy QC report (written to ``<eddy_base>.qc``)."""
    return _cmd(
        "eddy_quad", eddy_base, "-idx", index, "-par", acqp, "-m", mask, "-b", bvals
    )


def dtifit(data: Path, out_base: Path, mask: Path, bvecs: Path, bvals: Path) -> FslTool:
    """Fit the diffusion tensor (writes ``<out_base>_FA``, ``_MD``, …)."""
    return _cmd("dtifit", "-k", data, "-o", out_base, "-m", mask, "-r", bvecs, "-b", bvals)


# --------------------------------------------------------------------------- #
# TBSS (operate on the working directory)                                     #
# --------------------------------------------------------------------------- #
def tbss_1_preproc(images: Sequence[str], cwd: Path) -> FslTool:
    return _cmd("tbss_1_preproc", *images, cwd=cwd)


def tbss_2_reg(cwd: Path) -> FslTool:
    """Register to the FMRIB58 target (``-T``)."""
    return _cmd("tbss_2_reg", "-T", cwd=cwd)


def tbss_3_postreg(cwd: Path) -> FslTool:
    """Derive the mean FA skeleton from the study (``-S``)."""
    return _cmd("tbss_3_postreg", "-S", cwd=cwd)


def tbss_4_prestats(threshold: float, cwd: Path) -> FslTool:
    return _cmd("tbss_4_prestats", str(threshold), cwd=cwd)


def tbss_non_fa(metric: str, cwd: Path) -> FslTool:
    """Project a non-FA metric through the FA registration and skeleton."""
    return _cmd("tbss_non_FA", metric, cwd=cwd)
