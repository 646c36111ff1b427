"""
Pydantic models that mirror the YAML configuration consumed by *harmoprep*.

Only operational settings live here (directory layout, execution back-end,
container images, timeouts, tSNR run selection, atlas location). Physical
acquisition constants are fixed in code and deliberately absent.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

_DEFAULT_IMAGES: Dict[str, str] = {
    "fsl": "fsl/fsl:6.0.7.5",
    "mrtrix": "mrtrix3/mrtrix3:3.0.4",
    "freesurfer": "freesurfer/freesurfer:7.4.1",
}


class TsnrSection(BaseModel):
    """Functional runs and masks used by the tSNR summary.

    Attributes:
        task: BIDS task label of the BOLD runs.
        runs: Run labels processed per session, in column order.
        mask_dir: Folder name (under ``<derivatives>/<sub>/<ses>``) holding
            the grey-matter and ROI masks in EPI space.
    """

    task: str = "CRT"
    runs: List[str] = Field(default_factory=lambda: ["run-01", "run-02", "run-03"])
    mask_dir: str = "ROI_masks"


class RoiSection(BaseModel):
    """Atlas settings for skeleton ROI extraction.

    Attributes:
        atlas: Labelled atlas volume. ``None`` selects the JHU ICBM labels
            shipped with FSL (``$FSLDIR/data/atlases/JHU``).
        n_rois: Number of labels extracted (label *i* → region *i*).
        metrics: Skeletonised metrics summarised, e.g. ``["FA", "MD"]``.
    """

    atlas: Optional[Path] = None
    n_rois: int = Field(48, ge=1)
    metrics: List[str] = Field(default_factory=lambda: ["FA", "MD"])

    def atlas_path(self) -> Path:
        """Return the configured atlas or the FSL default."""
        if self.atlas is not None:
            return self.atlas
        fsldir = Path(os.environ.get("FSLDIR", "/usr/local/fsl"))
        return fsldir / "data" / "atlases" / "JHU" / "JHU-ICBM-labels-1mm.nii.gz"


class HarmoprepConfig(BaseModel):
    """Root configuration object consumed by the rest of *harmoprep*.

    Attributes:
        version: Version string of the configuration schema.
        bids_dir: Raw BIDS tree (relative paths resolve against the root).
        derivatives_dir: Derivatives namespace.
        engine: Execution back-end for external tools.
        images: Container image per tool suite (docker/slurm engines).
        timeout_s: Wall-clock budget per external call; ``None`` disables it.
        max_workers: Parallel worker slots for batch runs.
        tsnr: tSNR settings.
        roi: Skeleton ROI settings.
    """

    version: str
    bids_dir: Path = Path("bids")
    derivatives_dir: Path = Path("derivatives")
    engine: Literal["local", "docker", "slurm"] = "local"
    images: Dict[str, str] = Field(default_factory=lambda: dict(_DEFAULT_IMAGES))
    timeout_s: Optional[float] = Field(None, gt=0)
    max_workers: int = Field(1, ge=1)
    tsnr: TsnrSection = Field(default_factory=TsnrSection)
    roi: RoiSection = Field(default_factory=RoiSection)

    @field_validator("images")
    @classmethod
    def _fill_images(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Keep packaged images for suites the YAML does not override."""
        return {**_DEFAULT_IMAGES, **v}

    def anchored(self, root: Path) -> "HarmoprepConfig":
        """Return a copy whose relative paths are resolved against *root*."""

        def _abspath(p: Path) -> Path:
            return p if p.is_absolute() else (root / p)

        roi = self.roi
        if roi.atlas is not None:
            roi = roi.model_copy(update={"atlas": _abspath(roi.atlas)})
        return self.model_copy(
            update={
                "bids_dir": _abspath(self.bids_dir),
                "derivatives_dir": _abspath(self.derivatives_dir),
                "roi": roi,
            }
        )
