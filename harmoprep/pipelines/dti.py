"""
Diffusion preprocessing: topup, eddy, tensor fit and TBSS hand-off.

The three scanner codes share one stage sequence and differ only in which
b=0 reference plays the forward role:

* ``N`` (Philips) – the DWI's own b=0 volumes are posterior→anterior; the
  reverse reference is the ``dir-AP`` fieldmap; merge order ``[PA, AP]``.
* ``A`` / ``B`` (Siemens) – the DWI's b=0 volumes are anterior→posterior; the
  reverse reference is read from the ``dir-PA`` fieldmap for *both* codes;
  merge order ``[AP, PA]``.

In every case the first merged volume matches row 1 of ``acqparams.txt``.
"""

from __future__ import annotations

from pathlib import Path

import nibabel as nib
import structlog

from harmoprep.config.acquisition import resolve
from harmoprep.models import Modality, PipelineVariant, Session
from harmoprep.tools import fsl, mrtrix

from ._common import ACQPARAMS, acqparams_stage, nii, topup_field, topup_stage
from .artifacts import ANALYSIS_DIRS, ArtifactStore
from .engine import Pipeline, Stage

log = structlog.get_logger()

BET_FRAC = 0.25
METRICS = ("FA", "MD")

# variant -> (forward label, reverse label, fieldmap dir- entity)
_PHASE_ROLES: dict[PipelineVariant, tuple[str, str, str]] = {
    PipelineVariant.DTI_PHILIPS: ("PA", "AP", "AP"),
    PipelineVariant.DTI_SIEMENS_A: ("AP", "PA", "PA"),
    PipelineVariant.DTI_SIEMENS_B: ("AP", "PA", "PA"),
}


def write_eddy_index(dwi: Path, index: Path, store: ArtifactStore) -> int:
    """Write one ``1`` per volume of *dwi* (all volumes share acqparams row 1)."""
    shape = nib.load(str(dwi)).shape
    nvols = shape[3] if len(shape) > 3 else 1
    store.write(index, "1\n" * nvols)
    log.info("dti.eddy_index", dwi=str(dwi), volumes=nvols)
    return nvols


def build_dti_pipeline(
    session: Session,
    store: ArtifactStore,
    variant: PipelineVariant,
) -> Pipeline:
    """Return the 16-stage diffusion pipeline for *variant*."""
    forward, reverse, fmap_dir = _PHASE_ROLES[variant]
    params = resolve(session.scanner_code, Modality.DTI)

    p = session.prefix
    out = store.session_dir(ANALYSIS_DIRS[Modality.DTI], session)

    def d(name: str) -> Path:
        return out / f"{p}_{name}"

    dwi = store.raw_path(session, "dwi", f"{p}_dwi.nii.gz")
    bvec = store.raw_path(session, "dwi", f"{p}_dwi.bvec")
    bval = store.raw_path(session, "dwi", f"{p}_dwi.bval")
    fieldmap = store.raw_path(session, "fmap", f"{p}_acq-dwi_dir-{fmap_dir}_epi.nii.gz")

    acq = out / ACQPARAMS
    index = out / "index.txt"
    b0s = nii(d("b0s"))
    b0_fwd = nii(d(f"b0_{forward}"))
    b0_rev = nii(d(f"b0_{reverse}"))
    merged = nii(d(f"b0_{forward}{reverse}"))
    dwi_reor = nii(d("dwi_reorient"))
    b0_reor = nii(d("b0_merged_reoriented"))
    topup_base = out / "topup_b0"
    iout = out / "topup_iout"
    b0_mean = nii(d("b0_mean"))
    mask = nii(d("b0_brain_mask"))
    eddy_base = d("dwi_eddy")
    qc_dir = eddy_base.with_name(eddy_base.name + ".qc")
    tensor = d("tensor")
    tensor_maps = {m: nii(tensor.with_name(f"{tensor.name}_{m}")) for m in METRICS}
    aggregated = [store.aggregate_path(m, session) for m in METRICS]

    def _aggregate() -> None:
        for metric, dst in zip(METRICS, aggregated):
            store.copy(tensor_maps[metric], dst)

    stages = [
        acqparams_stage(store, acq, params),
        Stage(
            "extract-b0",
            inputs=[dwi, bvec, bval],
            outputs=[b0s],
            tool=mrtrix.dwiextract_b0(dwi, bvec, bval, b0s),
        ),
        Stage("mean-b0", inputs=[b0s], outputs=[b0_fwd], tool=mrtrix.mrmath_mean(b0s, b0_fwd)),
        Stage("reverse-b0", inputs=[fieldmap], outputs=[b0_rev], tool=mrtrix.mrconvert(fieldmap, b0_rev)),
        Stage(
            "merge-b0",
            inputs=[b0_fwd, b0_rev],
            outputs=[merged],
            tool=fsl.fslmerge_t(merged, [b0_fwd, b0_rev]),
        ),
        Stage("reorient-dwi", inputs=[dwi], outputs=[dwi_reor], tool=fsl.fslreorient2std(dwi, dwi_reor)),
        Stage("reorient-b0", inputs=[merged], outputs=[b0_reor], tool=fsl.fslreorient2std(merged, b0_reor)),
        topup_stage(b0_reor, acq, topup_base, iout, out / "topup_fout"),
        Stage(
            "applytopup",
            inputs=[dwi_reor, acq, *topup_field(topup_base)],
            outputs=[nii(d("dwi_topup"))],
            tool=fsl.applytopup([dwi_reor], topup_base, acq, [1], d("dwi_topup")),
        ),
        Stage(
            "mean-corrected-b0",
            inputs=[nii(iout)],
            outputs=[b0_mean],
            tool=fsl.temporal_mean(nii(iout), b0_mean),
        ),
        Stage("brain-mask", inputs=[b0_mean], outputs=[mask], tool=fsl.bet(b0_mean, d("b0_brain"), BET_FRAC)),
        Stage(
            "eddy-index",
            inputs=[dwi_reor],
            outputs=[index],
            action=lambda: write_eddy_index(dwi_reor, index, store),
        ),
        Stage(
            "eddy",
            inputs=[dwi_reor, mask, index, acq, bvec, bval, *topup_field(topup_base)],
            outputs=[nii(eddy_base)],
            tool=fsl.eddy(dwi_reor, mask, index, acq, bvec, bval, topup_base, eddy_base),
        ),
        Stage(
            "eddy-qc",
            inputs=[nii(eddy_base), index, acq, mask, bval],
            outputs=[qc_dir / "qc.json"],
            workdirs=[out],
            stale=[qc_dir],
            tool=fsl.eddy_quad(eddy_base, index, acq, mask, bval),
        ),
        Stage(
            "tensor-fit",
            inputs=[nii(eddy_base), mask, bvec, bval],
            outputs=list(tensor_maps.values()),
            tool=fsl.dtifit(nii(eddy_base), tensor, mask, bvec, bval),
        ),
        Stage(
            "aggregate",
            inputs=list(tensor_maps.values()),
            outputs=aggregated,
            action=_aggregate,
        ),
    ]
    return Pipeline("dti", stages, store, session=session, variant=variant)
