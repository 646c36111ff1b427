"""Cortical reconstruction of the session T1w image (vendor independent)."""

from __future__ import annotations

from pathlib import Path

from harmoprep.models import Modality, PipelineVariant, Session
from harmoprep.tools import fsl
from harmoprep.tools.freesurfer import recon_all

from .artifacts import ANALYSIS_DIRS, ArtifactStore
from .engine import Pipeline, Stage

FREESURFER_DIR = "freesurfer"


def t1_input(store: ArtifactStore, session: Session) -> Path:
    """Return the raw T1w image, preferring ``.nii`` over ``.nii.gz``."""
    plain = store.raw_path(session, "anat", f"{session.prefix}_T1w.nii")
    if plain.is_file():
        return plain
    return plain.with_name(plain.name + ".gz")


def subjects_dir(store: ArtifactStore) -> Path:
    return store.derivatives_dir / ANALYSIS_DIRS[Modality.T1] / FREESURFER_DIR


def build_t1_pipeline(
    session: Session,
    store: ArtifactStore,
    variant: PipelineVariant = PipelineVariant.T1,
) -> Pipeline:
    """Reorient to standard space, then run ``recon-all -all``."""
    t1 = t1_input(store, session)
    reoriented = store.resolve_path(
        session.sub, session.ses, Modality.T1, f"{session.prefix}_T1w_reoriented.nii.gz"
    )
    sd = subjects_dir(store)
    subject_dir = sd / session.prefix
    done = subject_dir / "scripts" / "recon-all.done"

    stages = [
        Stage("reorient", inputs=[t1], outputs=[reoriented], tool=fsl.fslreorient2std(t1, reoriented)),
        Stage(
            "recon-all",
            inputs=[reoriented],
            outputs=[done],
            workdirs=[sd],
            tool=recon_all(reoriented, session.prefix, sd, resume=subject_dir.is_dir()),
        ),
    ]
    return Pipeline("t1", stages, store, session=session, variant=variant)
