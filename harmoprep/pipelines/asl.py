"""
Multi-delay pCASL preprocessing and perfusion quantification.

Two scanner-specific stage lists share the same tail (topup, applytopup,
label/control subtraction, ``oxford_asl``):

* **Philips (N)** – one file per post-labelling delay, merged in ascending
  delay order; calibration pair from the 1200 ms run and its reverse-PE scan;
  separate M0 scan.
* **Siemens (B)** – one combined series of 86 label/control frames followed
  by 2 calibration frames; calibration pair from the SE fieldmaps.

Both read the FAST grey-matter partial-volume map from the session's
``fsl_anat`` folder.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

from harmoprep.config.acquisition import resolve
from harmoprep.models import Modality, PipelineVariant, Session
from harmoprep.tools import fsl
from harmoprep.tools.oxasl import (
    N_CALIBRATION,
    N_LABEL_CONTROL,
    PHILIPS_MODEL,
    PLDS_MS,
    SIEMENS_MODEL,
    PerfusionModel,
    asl_file,
    oxford_asl,
)

from ._common import ACQPARAMS, acqparams_stage, nii, topup_field, topup_stage
from .artifacts import ANALYSIS_DIRS, ArtifactStore
from .engine import Pipeline, Stage

GM_PVE = "T1_fast_pve_1.nii.gz"
GM_THRESHOLD = 0.5


class _Layout:
    """Input/output paths of one ASL session."""

    def __init__(self, store: ArtifactStore, session: Session) -> None:
        self.store = store
        self.session = session
        self.perf = store.raw_dir(session, "perf")
        self.fmap = store.raw_dir(session, "fmap")
        self.anat = store.fsl_anat_dir(session)
        self.out = store.session_dir(ANALYSIS_DIRS[Modality.ASL], session)

    def raw(self, folder: Path, suffix: str) -> Path:
        return folder / f"{self.session.prefix}_{suffix}.nii.gz"

    def d(self, name: str) -> Path:
        """Derivative base (no extension) inside the session folder."""
        return self.out / name


def _gm_mask(lay: _Layout) -> Stage:
    pve = lay.anat / GM_PVE
    mask = nii(lay.d("gm_mask_std"))
    return Stage(
        "gm-mask",
        inputs=[pve],
        outputs=[mask],
        tool=fsl.threshold_binarise(pve, GM_THRESHOLD, mask),
    )


def _tail(
    lay: _Layout,
    *,
    model: PerfusionModel,
    series: Path,
    corrected: str,
    calib_pair: List[Path],
    label_order: str | None,
) -> List[Stage]:
    """Shared distortion correction and perfusion stages."""
    acq = lay.out / ACQPARAMS
    base = lay.d("topup_b0")
    field = topup_field(base)
    calib = nii(lay.d("M0_avg"))
    diff = nii(lay.d("diff_asl"))
    out_dir = lay.d("output")
    corr = nii(lay.d(corrected))
    aslfile = asl_file(corr, lay.d("diff_asl"), lay.d("asl_mean_diff"), label_order=label_order)
    return [
        Stage(
            "applytopup-calib",
            inputs=[*calib_pair, acq, *field],
            outputs=[nii(lay.d("aslcalib_corr"))],
            tool=fsl.applytopup(calib_pair, base, acq, [1, 2], lay.d("aslcalib_corr")),
        ),
        Stage(
            "applytopup-series",
            inputs=[series, acq, *field],
            outputs=[corr],
            tool=fsl.applytopup([series], base, acq, [1], lay.d(corrected)),
        ),
        Stage(
            "label-control-diff",
            inputs=[corr],
            outputs=[diff, nii(lay.d("asl_mean_diff"))],
            tool=aslfile,
        ),
        Stage(
            "perfusion-fit",
            inputs=[diff, calib, lay.anat],
            outputs=[out_dir / "native_space" / "perfusion.nii.gz"],
            workdirs=[lay.out],
            stale=[out_dir],
            tool=oxford_asl(lay.d("diff_asl"), out_dir, calib, lay.anat, model),
        ),
    ]


def build_asl_philips(
    session: Session,
    store: ArtifactStore,
    variant: PipelineVariant = PipelineVariant.ASL_PHILIPS,
) -> Pipeline:
    lay = _Layout(store, session)
    acq = lay.out / ACQPARAMS
    params = resolve(session.scanner_code, Modality.ASL)

    fwd_src = lay.raw(lay.perf, "acq-1200msPLD_asl")
    rev_src = lay.raw(lay.perf, "reverse_pcasl_1200")
    delays = [lay.raw(lay.perf, f"acq-{pld}msPLD_asl") for pld in PLDS_MS]
    m0_src = lay.raw(lay.perf, "m0scan")

    pa, ap = nii(lay.d("pcASL_PA")), nii(lay.d("pcASL_AP"))
    series = nii(lay.d("pcASL_PA_main"))
    merged = nii(lay.d("ASL_PA_AP"))
    m0 = nii(lay.d("M0_avg"))

    stages = [
        _gm_mask(lay),
        acqparams_stage(store, acq, params),
        Stage("calib-mean-forward", inputs=[fwd_src], outputs=[pa], tool=fsl.temporal_mean(fwd_src, pa)),
        Stage("calib-mean-reverse", inputs=[rev_src], outputs=[ap], tool=fsl.temporal_mean(rev_src, ap)),
        Stage("merge-delays", inputs=delays, outputs=[series], tool=fsl.fslmerge_t(series, delays)),
        Stage("merge-calib", inputs=[pa, ap], outputs=[merged], tool=fsl.fslmerge_t(merged, [pa, ap])),
        Stage("m0-mean", inputs=[m0_src], outputs=[m0], tool=fsl.temporal_mean(m0_src, m0)),
        topup_stage(merged, acq, lay.d("topup_b0"), lay.d("topup_iout"), lay.d("topup_fout")),
        *_tail(
            lay,
            model=PHILIPS_MODEL,
            series=series,
            corrected="aslct_corr",
            calib_pair=[pa, ap],
            label_order="ct",
        ),
    ]
    return Pipeline("asl", stages, store, session=session, variant=variant)


def build_asl_siemens(
    session: Session,
    store: ArtifactStore,
    variant: PipelineVariant = PipelineVariant.ASL_SIEMENS,
) -> Pipeline:
    lay = _Layout(store, session)
    acq = lay.out / ACQPARAMS
    params = resolve(session.scanner_code, Modality.ASL)

    asl_src = lay.raw(lay.perf, "asl")
    se_ap = lay.raw(lay.fmap, "acq-asl_dir-AP_epi")
    se_pa = lay.raw(lay.fmap, "acq-asl_dir-PA_epi")

    label_control = nii(lay.d("pcASL"))
    m0_frames = nii(lay.d("M0"))
    m0 = nii(lay.d("M0_avg"))
    merged = nii(lay.d("ASL_AP_PA"))

    stages = [
        _gm_mask(lay),
        acqparams_stage(store, acq, params),
        Stage(
            "split-label-control",
            inputs=[asl_src],
            outputs=[label_control],
            tool=fsl.fslroi(asl_src, label_control, 0, N_LABEL_CONTROL),
        ),
        Stage(
            "split-calibration",
            inputs=[asl_src],
            outputs=[m0_frames],
            tool=fsl.fslroi(asl_src, m0_frames, N_LABEL_CONTROL, N_CALIBRATION),
        ),
        Stage("m0-mean", inputs=[m0_frames], outputs=[m0], tool=fsl.temporal_mean(m0_frames, m0)),
        Stage("merge-fieldmaps", inputs=[se_ap, se_pa], outputs=[merged], tool=fsl.fslmerge_t(merged, [se_ap, se_pa])),
        topup_stage(merged, acq, lay.d("topup_b0"), lay.d("topup_iout"), lay.d("topup_fout")),
        *_tail(
            lay,
            model=SIEMENS_MODEL,
            series=label_control,
            corrected="asltc_corr",
            calib_pair=[se_ap, se_pa],
            label_order=None,
        ),
    ]
    return Pipeline("asl", stages, store, session=session, variant=variant)
