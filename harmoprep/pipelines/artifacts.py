"""
Deterministic locations for raw inputs and derivatives.

Every derivative lives at ``<derivatives>/<analysis>/<sub>/<ses>/<name>``;
the same (session, modality, name) triple always maps to the same path so a
rerun overwrites the previous outputs instead of scattering new ones.
Directories are created lazily, right before a stage writes into them.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Union

import structlog

from harmoprep.models import Modality, Session
from harmoprep.utils.errors import StorageUnavailable

log = structlog.get_logger()

ANALYSIS_DIRS: dict[Modality, str] = {
    Modality.T1: "cortical_thickness_analysis",
    Modality.ASL: "asl_analysis",
    Modality.DTI: "dti_preproc",
}
TSNR_DIR = "tsnr"
TBSS_DIR = "TBSS_analysis"
FSL_ANAT_DIR = "fsl_anat"


class ArtifactStore:
    """Path resolver and minimal writer for the raw and derivative trees."""

    def __init__(self, bids_dir: Path, derivatives_dir: Path) -> None:
        self.bids_dir = Path(bids_dir)
        self.derivatives_dir = Path(derivatives_dir)

    @classmethod
    def from_config(cls, cfg) -> "ArtifactStore":
        """Build a store from an anchored :class:`HarmoprepConfig`."""
        return cls(cfg.bids_dir, cfg.derivatives_dir)

    # ------------------------------------------------------------------ #
    # Path resolution                                                    #
    # ------------------------------------------------------------------ #
    def session_dir(self, analysis: str, session: Session) -> Path:
        return self.derivatives_dir / analysis / session.sub / session.ses

    def resolve_path(self, sub: str, ses: str, modality: Modality | str, logical_name: str) -> Path:
        """Return the derivative path of *logical_name* for one session."""
        session = Session(sub=sub, ses=ses)
        analysis = ANALYSIS_DIRS[Modality(modality)]
        return self.session_dir(analysis, session) / logical_name

    def derivative_path(self, analysis: str, session: Session, name: str) -> Path:
        return self.session_dir(analysis, session) / name

    def raw_dir(self, session: Session, datatype: str) -> Path:
        """Return ``<bids>/<sub>/<ses>/<datatype>``."""
        return self.bids_dir / session.sub / session.ses / datatype

    def raw_path(self, session: Session, datatype: str, name: str) -> Path:
        return self.raw_dir(session, datatype) / name

    def fsl_anat_dir(self, session: Session) -> Path:
        """Anatomical processing folder consumed by the ASL pipeline."""
        return self.derivatives_dir / FSL_ANAT_DIR / session.sub / session.ses

    def mask_dir(self, session: Session, folder: str = "ROI_masks") -> Path:
        """EPI-space masks used by the tSNR summary."""
        return self.derivatives_dir / session.sub / session.ses / folder

    def tbss_dir(self, metric: str | None = None) -> Path:
        """``<derivatives>/TBSS_analysis`` or one of its metric folders."""
        root = self.derivatives_dir / TBSS_DIR
        return root / metric if metric else root

    def aggregate_path(self, metric: str, session: Session) -> Path:
        """Cross-subject location of a per-session scalar map (FA, MD)."""
        return self.tbss_dir(metric) / f"{session.prefix}_{metric}.nii.gz"

    # ------------------------------------------------------------------ #
    # Presence / writing                                                 #
    # ------------------------------------------------------------------ #
    @staticmethod
    def exists(path: Path) -> bool:
        """Return ``True`` for a non-empty file or a non-empty directory."""
        path = Path(path)
        if path.is_file():
            return path.stat().st_size > 0
        if path.is_dir():
            return any(path.iterdir())
        return False

    @staticmethod
    def ensure_dir(path: Path) -> Path:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"cannot create {path}: {exc}") from exc
        return path

    def write(self, path: Path, data: Union[str, bytes]) -> Path:
        """Write *data* to *path*, replacing any previous content."""
        self.ensure_dir(path.parent)
        try:
            if isinstance(data, bytes):
                path.write_bytes(data)
            else:
                path.write_text(data)
        except OSError as exc:
            raise StorageUnavailable(f"cannot write {path}: {exc}") from exc
        log.debug("artifact.write", path=str(path))
        return path

    def copy(self, src: Path, dst: Path) -> Path:
        self.ensure_dir(dst.parent)
        try:
            shutil.copyfile(src, dst)
        except OSError as exc:
            raise StorageUnavailable(f"cannot copy {src} → {dst}: {exc}") from exc
        log.debug("artifact.copy", src=str(src), dst=str(dst))
        return dst

    def move(self, src: Path, dst: Path) -> Path:
        self.ensure_dir(dst.parent)
        try:
            src.replace(dst)
        except OSError as exc:
            raise StorageUnavailable(f"cannot move {src} → {dst}: {exc}") from exc
        log.debug("artifact.move", src=str(src), dst=str(dst))
        return dst

    def clear(self, path: Path) -> None:
        """Delete a previous run's output folder (or file) if present."""
        try:
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            else:
                return
        except OSError as exc:
            raise StorageUnavailable(f"cannot remove {path}: {exc}") from exc
        log.info("artifact.cleared", path=str(path))
