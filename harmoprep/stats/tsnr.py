"""Voxel-wise temporal SNR and grey-matter region summaries.

For a 4-D BOLD series the temporal mean and sample standard deviation
(``ddof=1``) are computed per voxel. Voxels whose mean does not exceed
5 % of the maximum mean are background: they receive ``0`` and are left out
of every region average. Voxels above the threshold with zero variance have
no defined tSNR; they are written as ``NaN`` and also left out.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Sequence

import nibabel as nib
import numpy as np
import pandas as pd
import structlog

from harmoprep.models import Session
from harmoprep.pipelines.artifacts import TSNR_DIR, ArtifactStore
from harmoprep.utils.errors import GridMismatch, MissingInputArtifact

log = structlog.get_logger()

THRESHOLD_FRACTION = 0.05
GM_REGION = "Grey Matter"
GM_MASK = "gm_mask_epi.nii.gz"
# (file label, display name)
ROI_LABELS: tuple[tuple[str, str], ...] = (
    ("frontal", "Frontal"),
    ("cingulate", "Cingulate"),
    ("motor", "Motor"),
    ("occipital", "Occipital"),
    ("parietal", "Parietal"),
)


@dataclass
class TsnrMap:
    """Result of :func:`compute_tsnr`.

    Attributes:
        tsnr: 3-D map; ``0`` below threshold, ``NaN`` where undefined.
        valid: Voxels with a defined tSNR value above threshold.
        threshold: Mean-intensity threshold actually applied.
        n_undefined: Above-threshold voxels with zero temporal variance.
    """

    tsnr: np.ndarray
    valid: np.ndarray
    threshold: float
    n_undefined: int


def compute_tsnr(data: np.ndarray, fraction: float = THRESHOLD_FRACTION) -> TsnrMap:
    """Return the tSNR map of a ``(X, Y, Z, T)`` array."""
    data = np.asarray(data, dtype="float64")
    if data.ndim != 4:
        raise ValueError(f"expected a 4-D series, got shape {data.shape}")
    if data.shape[3] < 2:
        raise ValueError("tSNR needs at least two volumes")

    mean = data.mean(axis=3)
    std = data.std(axis=3, ddof=1)
    threshold = fraction * float(mean.max())

    above = mean > threshold
    undefined = above & (std == 0)
    valid = above & ~undefined

    tsnr = np.zeros(mean.shape, dtype="float64")
    tsnr[valid] = mean[valid] / std[valid]
    tsnr[undefined] = np.nan
    return TsnrMap(tsnr, valid, threshold, int(undefined.sum()))


def _check_grid(name: str, mask: np.ndarray, shape: tuple[int, ...]) -> None:
    if mask.shape != shape:
        raise GridMismatch(f"mask {name} has shape {mask.shape}, expected {shape}")


def region_mean(values: np.ndarray, selection: np.ndarray, *, region: str) -> float:
    """Mean of *values* over *selection*, skipping non-finite entries."""
    picked = values[selection]
    finite = np.isfinite(picked)
    skipped = int(picked.size - finite.sum())
    if skipped:
        log.warning("tsnr.undefined_skipped", region=region, voxels=skipped)
    if not finite.any():
        log.warning("tsnr.empty_region", region=region)
        return float("nan")
    return float(picked[finite].mean())


def region_means(
    result: TsnrMap,
    gm_mask: np.ndarray,
    roi_masks: Mapping[str, np.ndarray],
) -> Dict[str, float]:
    """Average tSNR in grey matter and in each ROI ∩ grey matter.

    Raises:
        GridMismatch: A mask does not share the map's voxel grid.
    """
    shape = result.tsnr.shape
    _check_grid(GM_REGION, gm_mask, shape)
    gm = gm_mask.astype(bool) & result.valid
    out = {GM_REGION: region_mean(result.tsnr, gm, region=GM_REGION)}
    for name, mask in roi_masks.items():
        _check_grid(name, mask, shape)
        region = f"{name} GM"
        out[region] = region_mean(result.tsnr, mask.astype(bool) & gm, region=region)
    return out


def load_masks(mask_dir: Path) -> tuple[np.ndarray, Dict[str, np.ndarray]]:
    """Load the EPI-space grey-matter mask and the five lobar ROIs."""
    gm_path = mask_dir / GM_MASK
    if not ArtifactStore.exists(gm_path):
        raise MissingInputArtifact("tsnr-masks", gm_path)
    gm = np.asanyarray(nib.load(str(gm_path)).dataobj) > 0

    rois: Dict[str, np.ndarray] = {}
    for label, name in ROI_LABELS:
        path = mask_dir / f"{label}_roi_epi.nii.gz"
        if not ArtifactStore.exists(path):
            raise MissingInputArtifact("tsnr-masks", path)
        rois[name] = np.asanyarray(nib.load(str(path)).dataobj) > 0
    return gm, rois


def save_tsnr_map(result: TsnrMap, like: nib.Nifti1Image, out_file: Path) -> Path:
    """Write *result* as a 3-D float32 image on *like*'s grid."""
    hdr = like.header.copy()
    hdr.set_data_dtype(np.float32)
    hdr.set_slope_inter(None, None)
    img = nib.Nifti1Image(result.tsnr.astype("float32"), like.affine, hdr)
    nib.save(img, str(out_file))
    log.info("tsnr.saved_map", path=str(out_file))
    return out_file


def _run_column(run: str) -> str:
    """``run-01`` → ``Run-01``."""
    return run[:1].upper() + run[1:]


def process_session(
    session: Session,
    store: ArtifactStore,
    *,
    task: str = "CRT",
    runs: Sequence[str] = ("run-01", "run-02", "run-03"),
    mask_folder: str = "ROI_masks",
) -> pd.DataFrame:
    """Compute tSNR for every run of one session and write the summaries.

    Writes ``tsnr_map_<run>.nii.gz`` and ``tsnr_summary_<run>.csv`` per run
    plus ``tsnr_summary_session_avg.csv`` under ``<derivatives>/tsnr``.

    Returns:
        The session table (``Region``, one column per run, ``SessionMean``).
    """
    gm, rois = load_masks(store.mask_dir(session, mask_folder))
    out_dir = store.ensure_dir(store.session_dir(TSNR_DIR, session))

    columns: Dict[str, Dict[str, float]] = {}
    for run in runs:
        bold = store.raw_path(session, "func", f"{session.prefix}_task-{task}_{run}_bold.nii.gz")
        if not ArtifactStore.exists(bold):
            raise MissingInputArtifact(f"tsnr-{run}", bold)
        log.info("tsnr.run", session=str(session), run=run, bold=str(bold))

        img = nib.load(str(bold))
        result = compute_tsnr(img.get_fdata(dtype="float32"))
        if result.n_undefined:
            log.warning("tsnr.zero_variance", run=run, voxels=result.n_undefined)
        save_tsnr_map(result, img, out_dir / f"tsnr_map_{run}.nii.gz")

        means = region_means(result, gm, rois)
        per_run = pd.DataFrame(
            {"Region": list(means), "Mean_tSNR": list(means.values())},
            columns=["Region", "Mean_tSNR"],
        )
        per_run.to_csv(out_dir / f"tsnr_summary_{run}.csv", index=False)
        columns[_run_column(run)] = means

    regions = [GM_REGION, *(f"{name} GM" for _, name in ROI_LABELS)]
    table = pd.DataFrame(
        {col: [means[r] for r in regions] for col, means in columns.items()},
        index=pd.Index(regions, name="Region"),
    )
    table["SessionMean"] = table.mean(axis=1, skipna=True)
    table = table.reset_index()
    dst = out_dir / "tsnr_summary_session_avg.csv"
    table.to_csv(dst, index=False)
    log.info("tsnr.saved_summary", path=str(dst))
    return table
