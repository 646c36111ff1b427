"""Test helpers for harmoprep: tiny NIfTI datasets and a recording engine."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable

import nibabel as nib
import numpy as np

from harmoprep.engines.base import ExecutionEngine
from harmoprep.models import Session
from harmoprep.pipelines.artifacts import ArtifactStore
from harmoprep.pipelines.engine import Pipeline
from harmoprep.tools.base import ToolSpec
from harmoprep.tools.oxasl import PLDS_MS


def write_nifti(path: Path, shape: tuple[int, ...] = (2, 2, 2, 4), data=None) -> Path:
    """Save a small float32 image (positive ramp unless *data* is given)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if data is None:
        data = np.arange(1, int(np.prod(shape)) + 1, dtype="float32").reshape(shape)
    nib.save(nib.Nifti1Image(np.asarray(data, dtype="float32"), np.eye(4)), str(path))
    return path


def touch_output(path: Path) -> None:
    """Create a plausible artifact at *path* (image, text file or folder)."""
    if path.name.endswith((".nii.gz", ".nii")):
        write_nifti(path)
    elif "." not in path.name:
        write_nifti(path / "placeholder.nii.gz")
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x\n")


class FakeEngine(ExecutionEngine):
    """Record every command and fabricate the outputs its stage declares.

    Args:
        fail: Stage ids that exit with status 1.
        timeout: Stage ids that raise :class:`subprocess.TimeoutExpired`.
        silent: Stage ids that exit 0 without writing anything.
        garbage: Stage ids whose outputs are filled with unreadable bytes.
    """

    def __init__(
        self,
        *,
        fail: Iterable[str] = (),
        timeout: Iterable[str] = (),
        silent: Iterable[str] = (),
        garbage: Iterable[str] = (),
    ) -> None:
        self.fail = set(fail)
        self.timeout = set(timeout)
        self.silent = set(silent)
        self.garbage = set(garbage)
        self.calls: list[ToolSpec] = []
        self.stage_calls: list[str | None] = []
        self._by_args: dict[tuple[str, ...], tuple[str, tuple[Path, ...]]] = {}

    def attach(self, pipeline: Pipeline) -> "FakeEngine":
        for stage in pipeline.stages:
            if stage.tool is not None:
                args = tuple(stage.tool.build_spec().args)
                self._by_args[args] = (stage.id, tuple(Path(p) for p in stage.outputs))
        return self

    def run(self, spec: ToolSpec, *, timeout: float | None = None) -> int:
        self.calls.append(spec)
        stage_id, outputs = self._by_args.get(tuple(spec.args), (None, ()))
        self.stage_calls.append(stage_id)
        if stage_id in self.timeout:
            raise subprocess.TimeoutExpired(list(spec.args), timeout or 1)
        if stage_id in self.fail:
            return 1
        if stage_id in self.garbage:
            for out in outputs:
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_bytes(b"not an image")
        elif stage_id not in self.silent:
            for out in outputs:
                touch_output(out)
        return 0

    def call(self, program: str) -> ToolSpec:
        """Return the first recorded call of *program*."""
        for spec in self.calls:
            if spec.program == program:
                return spec
        raise AssertionError(f"{program} was never called")


# ---------------------------------------------------------------------------
# Raw dataset builders
# ---------------------------------------------------------------------------

def make_fsl_anat(store: ArtifactStore, session: Session) -> Path:
    anat = store.fsl_anat_dir(session)
    write_nifti(anat / "T1_fast_pve_1.nii.gz", (2, 2, 2))
    return anat


def make_dti_session(
    store: ArtifactStore,
    session: Session,
    *,
    fmap_dirs: Iterable[str] = ("AP", "PA"),
    n_vols: int = 4,
) -> None:
    p = session.prefix
    write_nifti(store.raw_path(session, "dwi", f"{p}_dwi.nii.gz"), (2, 2, 2, n_vols))
    store.write(store.raw_path(session, "dwi", f"{p}_dwi.bval"), " ".join(["0"] + ["1000"] * (n_vols - 1)) + "\n")
    store.write(
        store.raw_path(session, "dwi", f"{p}_dwi.bvec"),
        "\n".join(" ".join(["0"] + ["1"] * (n_vols - 1)) for _ in range(3)) + "\n",
    )
    for d in fmap_dirs:
        write_nifti(store.raw_path(session, "fmap", f"{p}_acq-dwi_dir-{d}_epi.nii.gz"), (2, 2, 2, 1))


def make_asl_philips(store: ArtifactStore, session: Session) -> None:
    p = session.prefix
    for pld in PLDS_MS:
        write_nifti(store.raw_path(session, "perf", f"{p}_acq-{pld}msPLD_asl.nii.gz"))
    write_nifti(store.raw_path(session, "perf", f"{p}_reverse_pcasl_1200.nii.gz"))
    write_nifti(store.raw_path(session, "perf", f"{p}_m0scan.nii.gz"))
    make_fsl_anat(store, session)


def make_asl_siemens(store: ArtifactStore, session: Session) -> None:
    p = session.prefix
    write_nifti(store.raw_path(session, "perf", f"{p}_asl.nii.gz"), (2, 2, 2, 88))
    for d in ("AP", "PA"):
        write_nifti(store.raw_path(session, "fmap", f"{p}_acq-asl_dir-{d}_epi.nii.gz"), (2, 2, 2, 1))
    make_fsl_anat(store, session)


def make_t1(store: ArtifactStore, session: Session, suffix: str = ".nii.gz") -> Path:
    return write_nifti(store.raw_path(session, "anat", f"{session.prefix}_T1w{suffix}"), (2, 2, 2))
