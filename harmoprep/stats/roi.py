"""Atlas-based ROI means on TBSS skeletonised maps.

For each label *i* of the atlas the skeletonised map is restricted to
``atlas == i`` and averaged over non-zero skeleton voxels, one value per
subject volume (the ``fslstats -t -M`` convention). Region *i* always maps
to label *i*. Every output file is rewritten on each call so repeated runs
produce identical results.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence

import nibabel as nib
import numpy as np
import pandas as pd
import structlog

from harmoprep.pipelines.artifacts import ArtifactStore
from harmoprep.pipelines.tbss import FA_SUFFIX, skeleton_outputs
from harmoprep.utils.errors import GridMismatch, MissingInputArtifact

log = structlog.get_logger()


def _as_4d(stat_map: np.ndarray) -> np.ndarray:
    return stat_map[..., np.newaxis] if stat_map.ndim == 3 else stat_map


def nonzero_means(stat_map: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Per-volume mean of the non-zero values of *stat_map* inside *mask*.

    Volumes without any non-zero voxel in *mask* yield ``NaN``.
    """
    data = _as_4d(np.asarray(stat_map, dtype="float64"))
    picked = data[mask.astype(bool)]  # (voxels, volumes)
    nonzero = picked != 0
    counts = nonzero.sum(axis=0)
    sums = np.where(nonzero, picked, 0.0).sum(axis=0)
    out = np.full(data.shape[3], np.nan)
    np.divide(sums, counts, out=out, where=counts > 0)
    return out


def extract_roi_means(
    atlas: np.ndarray,
    stat_map: np.ndarray,
    skeleton: np.ndarray,
    n_rois: int = 48,
) -> np.ndarray:
    """Return an ``(n_rois, n_volumes)`` array; row ``i - 1`` is label ``i``.

    Raises:
        GridMismatch: Atlas, map and skeleton do not share a voxel grid.
    """
    grid = stat_map.shape[:3]
    if atlas.shape[:3] != grid or skeleton.shape[:3] != grid:
        raise GridMismatch(
            f"atlas {atlas.shape[:3]}, map {grid} and skeleton {skeleton.shape[:3]} differ"
        )
    labels = np.rint(atlas).astype(int)
    skel = skeleton.astype(bool)
    rows = []
    for i in range(1, n_rois + 1):
        roi = (labels == i) & skel
        if not roi.any():
            log.warning("roi.empty_label", label=i)
        rows.append(nonzero_means(stat_map, roi))
    return np.vstack(rows)


def global_means(stat_map: np.ndarray, skeleton: np.ndarray) -> np.ndarray:
    """Whole-skeleton mean per volume."""
    if skeleton.shape[:3] != stat_map.shape[:3]:
        raise GridMismatch(f"skeleton {skeleton.shape[:3]} vs map {stat_map.shape[:3]}")
    return nonzero_means(stat_map, skeleton)


def roi_file_name(index: int, metric: str) -> str:
    return f"ROI_{index}_{metric}.txt"


def write_roi_tables(
    out_dir: Path,
    metric: str,
    roi_values: np.ndarray,
    global_values: np.ndarray,
    subjects: Sequence[str],
) -> pd.DataFrame:
    """Write per-region text files, the global file and ``<metric>_all.tsv``.

    Returns:
        The wide table (one row per region file, one column per subject).
    """
    folder = ArtifactStore.ensure_dir(out_dir)
    for i, values in enumerate(roi_values, start=1):
        np.savetxt(folder / roi_file_name(i, metric), values, fmt="%.6f")
    np.savetxt(folder / f"global_wm_{metric}.txt", global_values, fmt="%.6f")

    frame = pd.DataFrame(roi_values, columns=list(subjects))
    frame.insert(0, "region", [roi_file_name(i, metric) for i in range(1, len(roi_values) + 1)])
    dst = out_dir / f"{metric}_all.tsv"
    frame.to_csv(dst, sep="\t", index=False, na_rep="n/a", float_format="%.6f")
    log.info("roi.saved_table", metric=metric, path=str(dst), regions=len(frame))
    return frame


def skeleton_subjects(store: ArtifactStore, n_volumes: int) -> List[str]:
    """Session labels in the volume order of the skeletonised 4-D maps."""
    origdata = store.tbss_dir("FA") / "origdata"
    names = sorted(p.name[: -len(FA_SUFFIX)] for p in origdata.glob(f"*{FA_SUFFIX}"))
    if len(names) == n_volumes:
        return names
    log.warning("roi.subject_labels_unavailable", found=len(names), volumes=n_volumes)
    return [f"vol-{i:03d}" for i in range(n_volumes)]


def run_roi_extraction(
    store: ArtifactStore,
    atlas_path: Path,
    *,
    metrics: Sequence[str] = ("FA", "MD"),
    n_rois: int = 48,
) -> Dict[str, pd.DataFrame]:
    """Summarise every skeletonised metric with the labelled atlas.

    Outputs are written to ``<derivatives>/TBSS_analysis``.
    """
    outputs = skeleton_outputs(store)
    required = {"atlas": atlas_path, "mask": outputs["mask"]}
    for metric in metrics:
        required[metric] = outputs["FA"].with_name(f"all_{metric}_skeletonised.nii.gz")
    for path in required.values():
        if not ArtifactStore.exists(path):
            raise MissingInputArtifact("roi-extract", path)

    atlas = np.asanyarray(nib.load(str(atlas_path)).dataobj)
    skeleton = np.asanyarray(nib.load(str(outputs["mask"])).dataobj) > 0

    tables: Dict[str, pd.DataFrame] = {}
    for metric in metrics:
        stat_map = _as_4d(nib.load(str(required[metric])).get_fdata(dtype="float32"))
        log.info("roi.extract", metric=metric, volumes=stat_map.shape[3], n_rois=n_rois)
        roi_values = extract_roi_means(atlas, stat_map, skeleton, n_rois)
        global_values = global_means(stat_map, skeleton)
        subjects = skeleton_subjects(store, stat_map.shape[3])
        tables[metric] = write_roi_tables(
            store.tbss_dir(), metric, roi_values, global_values, subjects
        )
    return tables
